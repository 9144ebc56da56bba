"""Task state shared between a conversation and the tools it invokes."""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol, runtime_checkable
from uuid import uuid4

from taskfork.core.permissions import ApprovalChannel, ApprovalRequest
from taskfork.utils.log import get_logger

if TYPE_CHECKING:
    from taskfork.core.config import ForkSettings

logger = get_logger()

CheckpointCallable = Callable[[bool], Any]


@runtime_checkable
class Provider(Protocol):
    """Host runtime that owns tasks and their workspaces.

    ``fork_conversation`` receives a :class:`taskfork.core.fork.ForkDescriptor`
    and returns, synchronously or as an awaitable, either a mapping with
    ``taskId``/``targetDirectory`` keys or an object with ``task_id`` and
    ``target_directory`` attributes.
    """

    cwd: str

    def fork_conversation(self, descriptor: Any) -> Any: ...


class Task:
    """A live conversation with its two parallel message logs.

    ``messages`` is the display-oriented log and ``api_messages`` the log
    exchanged with the model; index ``i`` refers to the same point in both.
    The provider is held weakly; use :meth:`resolve_provider` and treat
    ``None`` as a lost reference.
    """

    def __init__(
        self,
        provider: Optional[Provider] = None,
        *,
        task_id: Optional[str] = None,
        approval_channel: Optional[ApprovalChannel] = None,
        checkpoint: Optional[CheckpointCallable] = None,
        enable_checkpoints: bool = True,
        auto_approve: bool = False,
    ) -> None:
        self.task_id = task_id or str(uuid4())
        self.messages: List[Any] = []
        self.api_messages: List[Any] = []
        self.enable_checkpoints = enable_checkpoints
        self.auto_approve = auto_approve
        self.consecutive_mistake_count = 0
        self.did_tool_fail_in_current_turn = False
        self.tool_errors: Dict[str, int] = {}
        self._approval_channel = approval_channel
        self._checkpoint = checkpoint
        self._provider_ref: Optional[weakref.ReferenceType[Provider]] = (
            weakref.ref(provider) if provider is not None else None
        )

    @classmethod
    def from_settings(
        cls, provider: Optional[Provider], settings: "ForkSettings", **kwargs: Any
    ) -> "Task":
        """Create a task whose checkpoint and approval behaviour follow ``settings``."""
        kwargs.setdefault("enable_checkpoints", settings.enable_checkpoints)
        kwargs.setdefault("auto_approve", settings.auto_approve_forks)
        return cls(provider, **kwargs)

    def resolve_provider(self) -> Optional[Provider]:
        if self._provider_ref is None:
            return None
        return self._provider_ref()

    def add_message(self, message: Any, api_message: Any) -> int:
        """Append one logical message to both logs and return its index."""
        self.messages.append(message)
        self.api_messages.append(api_message)
        return len(self.messages) - 1

    def begin_turn(self) -> None:
        self.did_tool_fail_in_current_turn = False

    def record_tool_error(self, tool_name: str) -> None:
        self.tool_errors[tool_name] = self.tool_errors.get(tool_name, 0) + 1

    def checkpoint_save(self, is_pre_action: bool = False) -> Any:
        """Forward a checkpoint request; returns whatever the saver returns."""
        if self._checkpoint is None:
            logger.debug("[task] No checkpoint saver configured", extra={"task_id": self.task_id})
            return None
        return self._checkpoint(is_pre_action)

    async def ask(self, kind: str, payload: str, partial: bool = False) -> bool:
        """Surface a request to the human and wait for the answer.

        Partial requests are status updates: they are shown but never wait
        and never count as approval.
        """
        request = ApprovalRequest(kind=kind, payload=payload, partial=partial)
        if not partial and self.auto_approve:
            logger.debug(
                "[task] Auto-approving request", extra={"task_id": self.task_id, "kind": kind}
            )
            return True
        if self._approval_channel is None:
            if partial:
                return False
            raise RuntimeError("No approval channel configured for task")
        approved = await self._approval_channel(request)
        return False if partial else bool(approved)
