"""Best-effort state snapshot taken right before a fork copies anything."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Set

from taskfork.utils.log import get_logger

logger = get_logger()

# In-flight checkpoint saves; the event loop only holds tasks weakly.
_pending_checkpoints: Set["asyncio.Future[Any]"] = set()


def _log_checkpoint_failure(task_id: str, exc: BaseException) -> None:
    logger.warning(
        "[checkpoint] Pre-fork checkpoint failed: %s: %s",
        type(exc).__name__,
        exc,
        extra={"task_id": task_id},
    )


def request_pre_fork_checkpoint(task: Any) -> bool:
    """Ask the task to save a checkpoint without waiting for it.

    Returns ``True`` when a checkpoint was requested. Failures are logged and
    never propagate; the fork proceeds regardless.
    """
    if not getattr(task, "enable_checkpoints", False):
        return False

    task_id = getattr(task, "task_id", "")
    try:
        pending = task.checkpoint_save(is_pre_action=True)
    except Exception as exc:
        _log_checkpoint_failure(task_id, exc)
        return True

    if inspect.isawaitable(pending):
        future = asyncio.ensure_future(pending)
        _pending_checkpoints.add(future)

        def _on_done(done: "asyncio.Future[Any]") -> None:
            _pending_checkpoints.discard(done)
            if done.cancelled():
                logger.debug("[checkpoint] Pre-fork checkpoint cancelled", extra={"task_id": task_id})
                return
            exc = done.exception()
            if exc is not None:
                _log_checkpoint_failure(task_id, exc)

        future.add_done_callback(_on_done)

    logger.debug("[checkpoint] Pre-fork checkpoint requested", extra={"task_id": task_id})
    return True
