"""Parsing of text-delimited tool invocations, complete or still streaming.

A tool call in model output looks like::

    <fork_conversation>
    <message_index>5</message_index>
    </fork_conversation>

The streaming parser re-parses its buffer on every chunk and reports the
current state of the first tool block it has seen.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Tuple

from taskfork.core.tool import ToolUse
from taskfork.utils.log import get_logger

logger = get_logger()

_PARAM_OPEN = re.compile(r"<([a-z_][a-z0-9_]*)>")


def _clean_value(value: str) -> str:
    return value.strip("\r\n")


def _parse_params(body: str) -> Tuple[Dict[str, str], List[str]]:
    """Parse ``<param>value</param>`` children of a tool block body.

    A parameter without its closing tag swallows the rest of the body and is
    reported as open.
    """
    params: Dict[str, str] = {}
    open_params: List[str] = []
    pos = 0
    while True:
        match = _PARAM_OPEN.search(body, pos)
        if match is None:
            break
        param = match.group(1)
        closing = f"</{param}>"
        end = body.find(closing, match.end())
        if end == -1:
            params[param] = body[match.end():]
            open_params.append(param)
            break
        params[param] = _clean_value(body[match.end():end])
        pos = end + len(closing)
    return params, open_params


def _find_first_block(text: str, tool_names: Iterable[str]) -> Optional[Tuple[str, int]]:
    first: Optional[Tuple[str, int]] = None
    for name in tool_names:
        idx = text.find(f"<{name}>")
        if idx != -1 and (first is None or idx < first[1]):
            first = (name, idx)
    return first


def parse_tool_uses(text: str, tool_names: Iterable[str]) -> List[ToolUse]:
    """Parse every tool block in ``text``.

    A trailing block without its closing tag is returned as partial.
    """
    names = list(tool_names)
    blocks: List[ToolUse] = []
    pos = 0
    while True:
        found = _find_first_block(text[pos:], names)
        if found is None:
            break
        name, rel_idx = found
        body_start = pos + rel_idx + len(name) + 2
        closing = f"</{name}>"
        end = text.find(closing, body_start)
        if end == -1:
            params, open_params = _parse_params(text[body_start:])
            blocks.append(ToolUse(name=name, params=params, partial=True, open_params=open_params))
            break
        params, open_params = _parse_params(text[body_start:end])
        if open_params:
            logger.debug(
                "[tool_use_parser] Closed tool block has unterminated params",
                extra={"tool": name, "params": open_params},
            )
        blocks.append(ToolUse(name=name, params=params, partial=False))
        pos = end + len(closing)
    return blocks


class StreamingToolUseParser:
    """Accumulates streamed model output and tracks one tool block."""

    def __init__(self, tool_names: Iterable[str]) -> None:
        self._tool_names = list(tool_names)
        self._buffer = ""
        self._current: Optional[ToolUse] = None

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def is_complete(self) -> bool:
        return self._current is not None and not self._current.partial

    def feed(self, chunk: str) -> Optional[ToolUse]:
        """Append a chunk and return the latest snapshot of the tool block."""
        if self.is_complete:
            return self._current
        self._buffer += chunk
        blocks = parse_tool_uses(self._buffer, self._tool_names)
        self._current = blocks[0] if blocks else None
        return self._current

    def reset(self) -> None:
        self._buffer = ""
        self._current = None
