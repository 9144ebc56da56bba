"""Shared factory for default tool instances."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from taskfork.core.config import ForkSettings
from taskfork.core.tool import Tool
from taskfork.tools.fork_conversation_tool import ForkConversationTool


def get_default_tools(settings: Optional[ForkSettings] = None) -> List[Tool[Any, Any]]:
    """Construct the default tool set."""
    return [ForkConversationTool(settings=settings)]


def tools_by_name(tools: List[Tool[Any, Any]]) -> Dict[str, Tool[Any, Any]]:
    return {tool.name: tool for tool in tools}
