"""Dispatch of parsed tool blocks to their tools."""

from asyncio import CancelledError
from typing import Any, AsyncGenerator, AsyncIterable, Dict, Optional

from pydantic import ValidationError

from taskfork.core.responses import format_pydantic_errors, format_tool_error
from taskfork.core.tool import Tool, ToolOutput, ToolResult, ToolUse, ToolUseContext
from taskfork.core.tool_use_parser import StreamingToolUseParser
from taskfork.utils.log import get_logger

logger = get_logger()


def _error_result(message: str) -> ToolResult:
    return ToolResult(data=None, result_for_assistant=format_tool_error(message), is_error=True)


def _count_mistake(task: Any, tool_name: str) -> None:
    if task is None:
        return
    task.consecutive_mistake_count += 1
    task.record_tool_error(tool_name)
    task.did_tool_fail_in_current_turn = True


async def run_tool_use(
    tool: Tool[Any, Any], block: ToolUse, context: ToolUseContext
) -> AsyncGenerator[ToolOutput, None]:
    """Run one tool block.

    Partial blocks are only previewed through ``tool.handle_partial`` and
    yield nothing. Complete blocks are parsed, validated and executed.
    """
    task = context.task
    if block.partial:
        await tool.handle_partial(task, block)
        return

    try:
        parsed_input = tool.parse_params(block.params)
    except ValidationError as ve:
        detail_text = format_pydantic_errors(ve)
        logger.debug(
            f"[tool] Invalid input for tool '{tool.name}': {detail_text}",
            extra={"tool": tool.name},
        )
        _count_mistake(task, tool.name)
        yield _error_result(f"Invalid input for tool '{tool.name}': {detail_text}")
        return

    validation = await tool.validate_input(parsed_input, context)
    if not validation.result:
        _count_mistake(task, tool.name)
        yield _error_result(validation.message or "Tool input validation failed.")
        return

    try:
        async for output in tool.call(parsed_input, context):
            yield output
    except CancelledError:
        raise
    except (RuntimeError, ValueError, TypeError, OSError, AttributeError, KeyError) as exc:
        logger.warning(
            "Error executing tool '%s': %s: %s",
            tool.name,
            type(exc).__name__,
            exc,
            extra={"tool": tool.name},
        )
        if task is not None:
            task.did_tool_fail_in_current_turn = True
        yield _error_result(f"Error executing tool: {exc}")


async def run_streamed_tool_use(
    tools: Dict[str, Tool[Any, Any]],
    chunks: AsyncIterable[str],
    context: ToolUseContext,
) -> AsyncGenerator[ToolOutput, None]:
    """Follow a streamed model reply and run the first tool block it contains.

    Every chunk that changes the block while it is partial is previewed; once
    the block is complete it is executed and the stream is no longer read.
    """
    parser = StreamingToolUseParser(tools.keys())
    last_preview: Optional[ToolUse] = None
    async for chunk in chunks:
        block = parser.feed(chunk)
        if block is None:
            continue
        if block.partial:
            if block != last_preview:
                last_preview = block
                async for output in run_tool_use(tools[block.name], block, context):
                    yield output
            continue
        async for output in run_tool_use(tools[block.name], block, context):
            yield output
        return
