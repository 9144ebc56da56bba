"""Human approval for effectful tool calls.

A task suspends at :meth:`taskfork.core.task.Task.ask` until its approval
channel answers. The console channel here renders the request with rich and
reads the answer with prompt_toolkit; hosts with their own UI pass any async
callable with the same signature.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from taskfork.utils.log import get_logger

logger = get_logger()

FORK_TOOL_MESSAGE = "forkConversation"

_APPROVE_ANSWERS = {"y", "yes", "1"}

_FIELD_LABELS = {
    "tool": "Tool",
    "forkPoint": "Fork point",
    "sourceWorkspace": "Source workspace",
    "targetWorkspace": "Target workspace",
    "messageIndex": "Message index",
    "targetDirectory": "Target directory",
    "pendingFields": "Still receiving",
}


class ApprovalRequest(BaseModel):
    """A request surfaced to the human on the approval channel."""

    kind: str
    payload: str
    partial: bool = False


ApprovalChannel = Callable[[ApprovalRequest], Awaitable[bool]]


def build_fork_approval_payload(fork_point: str, source: str, target: str) -> str:
    """Serialize the summary shown before a fork is executed."""
    return json.dumps(
        {
            "tool": FORK_TOOL_MESSAGE,
            "forkPoint": fork_point,
            "sourceWorkspace": source,
            "targetWorkspace": target,
        }
    )


def _decode_payload(payload: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def render_approval_request(request: ApprovalRequest) -> str:
    """Render a request payload as one ``label: value`` line per field."""
    data = _decode_payload(request.payload)
    if data is None:
        return request.payload
    lines = []
    for key, value in data.items():
        if value in (None, "", []):
            continue
        if isinstance(value, list):
            value = ", ".join(str(item) for item in value)
        lines.append(f"{_FIELD_LABELS.get(key, key)}: {value}")
    return "\n".join(lines)


class ConsoleApprovalChannel:
    """Approval channel backed by the terminal.

    Blocks without a timeout until the user answers; wrap the owning task in
    an external cancellation scope if bounded waiting is needed.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        prompt_fn: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.console = console or Console(stderr=True)
        self._prompt_fn = prompt_fn

    def _prompt(self, message: str) -> str:
        if self._prompt_fn is not None:
            return self._prompt_fn(message)
        from prompt_toolkit import prompt as pt_prompt

        return pt_prompt(message)

    async def __call__(self, request: ApprovalRequest) -> bool:
        body = render_approval_request(request)
        if request.partial:
            self.console.print(Text(body, style="dim"))
            return False

        self.console.print(Panel(Text(body), title=f"Approve {request.kind}?", expand=False))
        loop = asyncio.get_running_loop()
        answer = await loop.run_in_executor(None, lambda: self._prompt("Approve? [y/N]: "))
        approved = answer.strip().lower() in _APPROVE_ANSWERS
        logger.debug(
            "[approval] Console answer received",
            extra={"kind": request.kind, "approved": approved},
        )
        return approved
