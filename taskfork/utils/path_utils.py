"""Filesystem path helpers."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

_UNSAFE_PATH_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_project_path(project_path: Path) -> str:
    """Make a project path safe for directory names and avoid collisions.

    Non-alphanumeric characters (including non-ASCII) are replaced with "-".
    A short hash of the full resolved path is appended to prevent collisions
    between different paths that would otherwise sanitize to the same string.
    """
    normalized = str(project_path.resolve())
    safe = re.sub(r"[^a-zA-Z0-9]+", "-", normalized).strip("-") or "project"
    digest = hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:8]
    return f"{safe}-{digest}"


def safe_path_component(value: str) -> str:
    """Replace characters that are not portable in a single path component."""
    return _UNSAFE_PATH_CHARS.sub("-", value).strip("-")
