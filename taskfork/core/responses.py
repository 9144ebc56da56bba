"""Formatting of tool results reported back to the conversation."""

from typing import Any, List

from pydantic import ValidationError


def format_tool_error(message: str) -> str:
    return f"The tool execution failed with the following error:\n<error>\n{message}\n</error>"


def format_action_error(action: str, error: BaseException) -> str:
    """Describe a failure of ``action`` (e.g. "forking conversation")."""
    detail = str(error)
    if not detail:
        return f"Error {action}: {type(error).__name__}"
    return f"Error {action}: {type(error).__name__}: {detail}"


def format_pydantic_errors(error: ValidationError) -> str:
    """Render a compact validation error summary."""
    details = []
    for err in error.errors():
        loc: List[Any] = list(err.get("loc") or [])
        loc_str = ".".join(str(part) for part in loc) if loc else ""
        msg = err.get("msg") or ""
        if loc_str and msg:
            details.append(f"{loc_str}: {msg}")
        elif msg:
            details.append(msg)
    return "; ".join(details) or str(error)
