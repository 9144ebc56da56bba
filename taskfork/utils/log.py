"""Logging utilities for taskfork."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from taskfork.utils.path_utils import sanitize_project_path


_LOG_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "asctime",
    "stacklevel",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """Formatter with ISO timestamps and the record's ``extra`` fields."""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return timestamp.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _LOG_RECORD_FIELDS and not key.startswith("_")
        }
        if extras:
            try:
                serialized = json.dumps(extras, sort_keys=True, ensure_ascii=True, default=str)
            except (TypeError, ValueError):
                serialized = str(extras)
            return f"{message} | {serialized}"
        return message


class TaskforkLogger:
    """Logger for taskfork."""

    def __init__(self, name: str = "taskfork", log_dir: Optional[Path] = None):
        self.logger = logging.getLogger(name)
        level_name = os.getenv("TASKFORK_LOG_LEVEL", "WARNING").upper()
        level = getattr(logging, level_name, logging.WARNING)
        # File handlers capture debug logs while the console respects the configured level.
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
            self.logger.addHandler(console_handler)

        self._file_handler: Optional[logging.Handler] = None
        self._file_handler_path: Optional[Path] = None

        if log_dir:
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"taskfork_{datetime.now().strftime('%Y%m%d')}.log"
            self.attach_file_handler(log_file)

    @property
    def file_handler_path(self) -> Optional[Path]:
        return self._file_handler_path

    def attach_file_handler(self, log_file: Path) -> Path:
        """Attach or replace a file handler for logging to disk."""
        log_file.parent.mkdir(parents=True, exist_ok=True)
        if self._file_handler and self._file_handler_path == log_file:
            return log_file

        if self._file_handler:
            try:
                self.logger.removeHandler(self._file_handler)
                self._file_handler.close()
            except (ValueError, RuntimeError):
                # Console logging should continue even if rotation fails.
                pass

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter("%(asctime)s [%(levelname)s] %(message)s"))
        self.logger.addHandler(file_handler)
        self._file_handler = file_handler
        self._file_handler_path = log_file
        return log_file

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""
        self.logger.warning(message, *args, **kwargs)


_logger: Optional[TaskforkLogger] = None


def get_logger() -> TaskforkLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = TaskforkLogger()
    return _logger


def init_logger(log_dir: Optional[Path] = None) -> TaskforkLogger:
    """Initialize the global logger."""
    global _logger
    _logger = TaskforkLogger(log_dir=log_dir)
    return _logger


def session_log_path(project_path: Path, task_id: str, when: Optional[datetime] = None) -> Path:
    """Build the log file path for one task of a project."""
    timestamp = (when or datetime.now()).strftime("%Y%m%d-%H%M%S")
    safe_name = sanitize_project_path(project_path)
    return Path.home() / ".taskfork" / "logs" / safe_name / f"{timestamp}-{task_id}.log"


def enable_session_file_logging(project_path: Path, task_id: str) -> Path:
    """Ensure the global logger writes to the task-specific log file."""
    logger = get_logger()
    log_file = session_log_path(project_path, task_id)
    logger.attach_file_handler(log_file)
    logger.debug(f"[logging] File logging enabled at {log_file}")
    return log_file
