"""Fork point resolution and the descriptor handed to the host runtime."""

from __future__ import annotations

import copy
import inspect
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from taskfork.utils.log import get_logger
from taskfork.utils.path_utils import safe_path_component

logger = get_logger()

CURRENT_FORK_POINT = "current"
DEFAULT_FORK_SUFFIX = "fork"


class InvalidForkPoint(ValueError):
    """Requested fork index lies outside the conversation log."""

    def __init__(self, index: int, length: int) -> None:
        self.index = index
        self.length = length
        super().__init__(f"Invalid message index: {index}. Must be between 0 and {length}")


class ForkDescriptor(BaseModel):
    """Everything the runtime needs to materialize a fork.

    The message lists are prefixes of the parent's logs, copied so that the
    parent's later activity cannot change what the fork starts from.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    parent_task_id: str
    fork_index: int = Field(ge=0)
    target_directory: str
    messages: List[Any] = Field(default_factory=list)
    api_messages: List[Any] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Return the camelCase mapping expected by loosely-typed runtimes."""
        return {
            "parentTaskId": self.parent_task_id,
            "forkIndex": self.fork_index,
            "targetDirectory": self.target_directory,
            "messages": self.messages,
            "apiMessages": self.api_messages,
        }


class ForkResult(BaseModel):
    """What the runtime reports back about the new task."""

    model_config = ConfigDict(from_attributes=True)

    task_id: str = Field(validation_alias=AliasChoices("taskId", "task_id"))
    target_directory: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("targetDirectory", "target_directory")
    )

    @field_validator("task_id", "target_directory", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # Runtimes may report numeric ids or path objects.
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, os.PathLike):
            return os.fspath(value)
        return str(value)


def resolve_fork_index(requested: Optional[int], length: int) -> int:
    """Return the effective fork index, forking "from now" when none is given."""
    if requested is None:
        return length
    if requested < 0 or requested > length:
        raise InvalidForkPoint(requested, length)
    return requested


def describe_fork_point(index: int, length: int) -> str:
    return CURRENT_FORK_POINT if index == length else f"message {index}"


def fork_timestamp(now: Optional[datetime] = None) -> str:
    """Sortable, filesystem-safe UTC timestamp (no colons, no fractions)."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H-%M-%S")


def derive_target_directory(
    cwd: str,
    requested: Optional[str] = None,
    now: Optional[datetime] = None,
    suffix: str = DEFAULT_FORK_SUFFIX,
) -> str:
    """Pick the fork's workspace directory.

    A caller-supplied directory is used verbatim. Otherwise the fork lands
    next to the source workspace as ``<name>-<suffix>-<timestamp>``. Whether
    that path already exists is the copier's concern.
    """
    if requested:
        return requested
    source = Path(cwd)
    suffix = safe_path_component(suffix) or DEFAULT_FORK_SUFFIX
    return str(source.parent / f"{source.name}-{suffix}-{fork_timestamp(now)}")


def build_fork_descriptor(task: Any, fork_index: int, target_directory: str) -> ForkDescriptor:
    """Snapshot the first ``fork_index`` entries of both task logs."""
    return ForkDescriptor(
        parent_task_id=task.task_id,
        fork_index=fork_index,
        target_directory=target_directory,
        messages=copy.deepcopy(list(task.messages[:fork_index])),
        api_messages=copy.deepcopy(list(task.api_messages[:fork_index])),
    )


def _coerce_result(raw: Any) -> ForkResult:
    if isinstance(raw, ForkResult):
        return raw
    if isinstance(raw, Mapping):
        return ForkResult.model_validate(dict(raw))
    return ForkResult.model_validate(raw, from_attributes=True)


async def fork_via_provider(provider: Any, descriptor: ForkDescriptor) -> ForkResult:
    """Ask the host runtime to create the forked task.

    Called once per approved fork; failures propagate to the caller.
    """
    logger.info(
        "[fork] Requesting fork from provider",
        extra={
            "parent_task_id": descriptor.parent_task_id,
            "fork_index": descriptor.fork_index,
            "target_directory": descriptor.target_directory,
        },
    )
    raw = provider.fork_conversation(descriptor)
    if inspect.isawaitable(raw):
        raw = await raw
    result = _coerce_result(raw)
    logger.info(
        "[fork] Provider created forked task",
        extra={"parent_task_id": descriptor.parent_task_id, "task_id": result.task_id},
    )
    return result
