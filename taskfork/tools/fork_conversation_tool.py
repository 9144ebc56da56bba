"""Fork the running conversation into a new, independent task.

The tool resolves the fork point, asks the user to approve, requests a
checkpoint of the source task and hands a truncated copy of the history to
the host runtime, which copies the workspace and starts the new task.
"""

from __future__ import annotations

import json
from pathlib import Path
from textwrap import dedent
from typing import Any, AsyncGenerator, Optional

from pydantic import BaseModel, Field

from taskfork.core.checkpoint import request_pre_fork_checkpoint
from taskfork.core.config import ForkSettings, get_fork_settings
from taskfork.core.fork import (
    InvalidForkPoint,
    build_fork_descriptor,
    derive_target_directory,
    describe_fork_point,
    fork_via_provider,
    resolve_fork_index,
)
from taskfork.core.permissions import FORK_TOOL_MESSAGE, build_fork_approval_payload
from taskfork.core.responses import format_action_error, format_tool_error
from taskfork.core.tool import (
    Tool,
    ToolOutput,
    ToolResult,
    ToolUse,
    ToolUseContext,
    remove_closing_tag,
)
from taskfork.utils.log import get_logger

logger = get_logger()

TOOL_NAME = "fork_conversation"
ACTION_DESCRIPTION = "forking conversation"

FORK_CONVERSATION_PROMPT = dedent(
    """\
    ## fork_conversation

    Description: Fork the current conversation at a specific point, creating a new independent task with its own copy of the workspace. Use it to explore an alternative approach without affecting the original conversation or its files.

    Parameters:
    - message_index: (optional) The 0-based index of the message to fork from. Messages before this index are carried over. If omitted, the whole conversation so far is carried over.
    - target_directory: (optional) Where the forked workspace should be created. If omitted, a timestamped directory is created next to the current workspace.

    Usage:
    <fork_conversation>
    <message_index>5</message_index>
    <target_directory>/path/to/forked-workspace</target_directory>
    </fork_conversation>

    Notes:
    - The workspace is copied without common ignore patterns such as .git and node_modules
    - The forked task is independent: changes in one never affect the other
    - Both tasks can continue after the fork
    - Forking requires user approval
    """
)


class ForkConversationToolInput(BaseModel):
    """Input for the fork_conversation tool."""

    message_index: Optional[int] = Field(
        default=None,
        description="0-based index of the message to fork from; defaults to the current point",
    )
    target_directory: Optional[str] = Field(
        default=None,
        description="Directory for the forked workspace; defaults to a sibling of the current one",
    )


class ForkConversationToolOutput(BaseModel):
    """Output from the fork_conversation tool."""

    task_id: str
    target_directory: str
    fork_index: int


class ForkConversationTool(Tool[ForkConversationToolInput, ForkConversationToolOutput]):
    """Creates a new task from a prefix of the current conversation."""

    def __init__(self, settings: Optional[ForkSettings] = None) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return TOOL_NAME

    async def description(self) -> str:
        return (
            "Fork the conversation at a message index into a new task "
            "with its own copy of the workspace"
        )

    @property
    def input_schema(self) -> type[ForkConversationToolInput]:
        return ForkConversationToolInput

    async def prompt(self, yolo_mode: bool = False) -> str:  # noqa: ARG002
        return FORK_CONVERSATION_PROMPT

    def user_facing_name(self) -> str:
        return "Fork conversation"

    def needs_permissions(
        self,
        input_data: Optional[ForkConversationToolInput] = None,  # noqa: ARG002
    ) -> bool:
        return True

    def render_result_for_assistant(self, output: ForkConversationToolOutput) -> str:
        return (
            f"Successfully forked conversation to new task {output.task_id} "
            f"with workspace at {output.target_directory}"
        )

    def render_tool_use_message(
        self,
        input_data: ForkConversationToolInput,
        verbose: bool = False,  # noqa: ARG002
    ) -> str:
        point = (
            "current point"
            if input_data.message_index is None
            else f"message {input_data.message_index}"
        )
        if input_data.target_directory:
            return f"Forking conversation from {point} into {input_data.target_directory}"
        return f"Forking conversation from {point}"

    def _settings_for(self, cwd: str) -> ForkSettings:
        if self._settings is not None:
            return self._settings
        return get_fork_settings(Path(cwd))

    @staticmethod
    def _error(message: str) -> ToolResult:
        return ToolResult(data=None, result_for_assistant=format_tool_error(message), is_error=True)

    async def call(
        self,
        input_data: ForkConversationToolInput,
        context: ToolUseContext,
    ) -> AsyncGenerator[ToolOutput, None]:
        task = context.task
        if task is None:
            yield self._error("fork_conversation requires a task context")
            return

        try:
            provider = task.resolve_provider()
            if provider is None:
                yield self._error("Provider reference lost")
                return

            log_length = len(task.messages)
            try:
                fork_index = resolve_fork_index(input_data.message_index, log_length)
            except InvalidForkPoint as exc:
                task.consecutive_mistake_count += 1
                task.record_tool_error(TOOL_NAME)
                task.did_tool_fail_in_current_turn = True
                logger.debug(
                    "[fork] Rejected fork point",
                    extra={"task_id": task.task_id, "index": exc.index, "length": exc.length},
                )
                yield self._error(str(exc))
                return

            workspace_path = provider.cwd
            settings = self._settings_for(workspace_path)
            target_directory = derive_target_directory(
                workspace_path,
                input_data.target_directory,
                suffix=settings.fork_directory_suffix,
            )

            payload = build_fork_approval_payload(
                describe_fork_point(fork_index, log_length), workspace_path, target_directory
            )
            approved = await task.ask("tool", payload, partial=False)
            if not approved:
                logger.debug("[fork] Fork rejected by user", extra={"task_id": task.task_id})
                return

            task.consecutive_mistake_count = 0

            request_pre_fork_checkpoint(task)

            descriptor = build_fork_descriptor(task, fork_index, target_directory)
            result = await fork_via_provider(provider, descriptor)

            output = ForkConversationToolOutput(
                task_id=result.task_id,
                target_directory=result.target_directory or target_directory,
                fork_index=fork_index,
            )
            yield ToolResult(data=output, result_for_assistant=self.render_result_for_assistant(output))
        except Exception as exc:
            logger.warning(
                "[fork] Error %s: %s: %s",
                ACTION_DESCRIPTION,
                type(exc).__name__,
                exc,
                extra={"task_id": getattr(task, "task_id", None)},
            )
            task.did_tool_fail_in_current_turn = True
            yield self._error(format_action_error(ACTION_DESCRIPTION, exc))

    async def handle_partial(self, task: Any, block: ToolUse) -> None:
        """Show what has arrived of a streaming fork request."""
        if task is None:
            return
        fields = ("message_index", "target_directory")
        payload = json.dumps(
            {
                "tool": FORK_TOOL_MESSAGE,
                "messageIndex": remove_closing_tag(
                    "message_index", block.params.get("message_index"), block.partial
                ),
                "targetDirectory": remove_closing_tag(
                    "target_directory", block.params.get("target_directory"), block.partial
                ),
                "pendingFields": [name for name in block.open_params if name in fields],
            }
        )
        try:
            await task.ask("tool", payload, partial=block.partial)
        except Exception as exc:
            logger.debug(
                "[fork] Ignoring error while showing partial fork request: %s: %s",
                type(exc).__name__,
                exc,
            )
