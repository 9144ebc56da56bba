"""Configuration management for taskfork.

Global settings live in ``~/.taskfork/config.json`` (relocatable with
``TASKFORK_CONFIG_DIR``); a project may override them in
``<project>/.taskfork/config.json``.
"""

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from taskfork.core.fork import DEFAULT_FORK_SUFFIX
from taskfork.utils.log import get_logger


logger = get_logger()

CONFIG_DIR_ENV = "TASKFORK_CONFIG_DIR"
CONFIG_FILENAME = "config.json"


class GlobalConfig(BaseModel):
    """User-wide settings."""

    fork_directory_suffix: str = DEFAULT_FORK_SUFFIX
    enable_checkpoints: bool = True
    auto_approve_forks: bool = False


class ProjectConfig(BaseModel):
    """Per-project overrides; unset fields fall back to the global config."""

    fork_directory_suffix: Optional[str] = None
    enable_checkpoints: Optional[bool] = None
    auto_approve_forks: Optional[bool] = None


class ForkSettings(BaseModel):
    """Effective settings for forking tasks of one project."""

    fork_directory_suffix: str = DEFAULT_FORK_SUFFIX
    enable_checkpoints: bool = True
    auto_approve_forks: bool = False


def global_config_dir() -> Path:
    override = os.getenv(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".taskfork"


class ConfigManager:
    """Loads and caches configuration files."""

    def __init__(self) -> None:
        self._global_config: Optional[GlobalConfig] = None
        self._project_config: Optional[ProjectConfig] = None
        self.current_project_path: Optional[Path] = None

    @property
    def global_config_path(self) -> Path:
        return global_config_dir() / CONFIG_FILENAME

    def _read_json(self, path: Path) -> Optional[dict]:
        if not path.exists():
            logger.debug("[config] Config not found; using defaults", extra={"path": str(path)})
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(
                "Error loading config: %s: %s",
                type(e).__name__,
                e,
                extra={"error": str(e), "path": str(path)},
            )
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object config", extra={"path": str(path)})
            return None
        return data

    def get_global_config(self) -> GlobalConfig:
        """Load and return global configuration."""
        if self._global_config is None:
            data = self._read_json(self.global_config_path)
            try:
                self._global_config = GlobalConfig(**data) if data else GlobalConfig()
            except (ValueError, TypeError) as e:
                logger.warning(
                    "Error loading global config: %s: %s",
                    type(e).__name__,
                    e,
                    extra={"path": str(self.global_config_path)},
                )
                self._global_config = GlobalConfig()
        return self._global_config

    def save_global_config(self, config: GlobalConfig) -> None:
        self._global_config = config
        path = self.global_config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
        logger.debug("[config] Saved global configuration", extra={"path": str(path)})

    def get_project_config(self, project_path: Optional[Path] = None) -> ProjectConfig:
        """Load and return project configuration."""
        if project_path is not None:
            # Reset cached project config when switching projects
            if self.current_project_path != project_path:
                self._project_config = None
            self.current_project_path = project_path

        if self.current_project_path is None:
            return ProjectConfig()

        if self._project_config is None:
            config_path = self.current_project_path / ".taskfork" / CONFIG_FILENAME
            data = self._read_json(config_path)
            try:
                self._project_config = ProjectConfig(**data) if data else ProjectConfig()
            except (ValueError, TypeError) as e:
                logger.warning(
                    "Error loading project config: %s: %s",
                    type(e).__name__,
                    e,
                    extra={"path": str(config_path)},
                )
                self._project_config = ProjectConfig()
        return self._project_config

    def save_project_config(self, config: ProjectConfig, project_path: Optional[Path] = None) -> None:
        if project_path is not None:
            self.current_project_path = project_path
        if self.current_project_path is None:
            return

        config_dir = self.current_project_path / ".taskfork"
        config_dir.mkdir(exist_ok=True)
        config_path = config_dir / CONFIG_FILENAME
        self._project_config = config
        config_path.write_text(config.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
        logger.debug("[config] Saved project config", extra={"path": str(config_path)})

    def get_fork_settings(self, project_path: Optional[Path] = None) -> ForkSettings:
        """Merge project overrides over the global configuration."""
        merged = self.get_global_config().model_dump()
        overrides = self.get_project_config(project_path).model_dump(exclude_none=True)
        merged.update(overrides)
        return ForkSettings(**merged)


config_manager = ConfigManager()


def get_global_config() -> GlobalConfig:
    return config_manager.get_global_config()


def get_project_config(project_path: Optional[Path] = None) -> ProjectConfig:
    return config_manager.get_project_config(project_path)


def get_fork_settings(project_path: Optional[Path] = None) -> ForkSettings:
    return config_manager.get_fork_settings(project_path)
