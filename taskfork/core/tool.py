"""Base Tool interface for taskfork.

Tools are invoked by the model through text-delimited blocks such as
``<tool_name><param>value</param></tool_name>``. While a block is still
streaming in it is delivered as a partial :class:`ToolUse`; once its closing
tag has arrived it is delivered as a complete one and may be executed.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, Dict, List, Mapping, Optional, TypeVar, Generic, Union

from pydantic import BaseModel, ConfigDict, Field


class ToolResult(BaseModel):
    """Result from a tool execution."""

    type: str = "result"
    data: Any
    result_for_assistant: Optional[str] = None
    is_error: bool = False


class ToolProgress(BaseModel):
    """Progress update from a tool execution."""

    type: str = "progress"
    content: Any


class ToolUseContext(BaseModel):
    """Context for tool execution."""

    # The invoking task; tools mutate its per-turn counters and ask through it.
    task: Optional[Any] = None
    verbose: bool = False
    model_config = ConfigDict(arbitrary_types_allowed=True)


class ValidationResult(BaseModel):
    """Result of input validation."""

    result: bool
    message: Optional[str] = None
    error_code: Optional[int] = None


class ToolUse(BaseModel):
    """A tool invocation block parsed from model output."""

    name: str
    params: Dict[str, str] = Field(default_factory=dict)
    partial: bool = False
    # Parameters whose closing tag has not been received yet.
    open_params: List[str] = Field(default_factory=list)


def remove_closing_tag(tag: str, text: Optional[str], partial: bool) -> str:
    """Strip a trailing, possibly half-received ``</tag>`` from a streamed value.

    While a block is partial the value of its last parameter may end with a
    fragment of its own closing tag (``"/tmp/x</targ"``). Complete values are
    returned untouched.
    """
    if not partial:
        return text or ""
    if not text:
        return ""
    optional_chars = "".join(f"(?:{re.escape(char)})?" for char in tag)
    return re.sub(rf"\s?</?{optional_chars}$", "", text)


TInput = TypeVar("TInput", bound=BaseModel)
TOutput = TypeVar("TOutput")
ToolOutput = Union[ToolResult, ToolProgress]


class Tool(ABC, Generic[TInput, TOutput]):
    """Abstract base class for all tools.

    Each tool must implement the core methods for describing itself,
    validating input, and executing the tool's functionality.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool's name."""
        pass

    @abstractmethod
    async def description(self) -> str:
        """Get the tool's description for the AI model."""
        pass

    @property
    @abstractmethod
    def input_schema(self) -> type[TInput]:
        """Get the Pydantic model for input validation."""
        pass

    @abstractmethod
    async def prompt(self, yolo_mode: bool = False) -> str:
        """Get the system prompt for this tool."""
        pass

    def user_facing_name(self) -> str:
        """Get the user-facing name of the tool."""
        return self.name

    async def is_enabled(self) -> bool:
        return True

    def is_read_only(self) -> bool:
        """Check if this tool only reads data (doesn't modify state)."""
        return False

    def needs_permissions(self, input_data: Optional[TInput] = None) -> bool:
        """Check if this tool needs permission to execute."""
        return not self.is_read_only()

    def parse_params(self, params: Mapping[str, str]) -> TInput:
        """Convert raw text parameters into the tool's typed input.

        Empty values are treated as absent. Raises ``pydantic.ValidationError``
        when a value cannot be coerced.
        """
        present = {key: value for key, value in params.items() if value not in (None, "")}
        return self.input_schema.model_validate(present)

    async def validate_input(
        self, input_data: TInput, context: Optional[ToolUseContext] = None
    ) -> ValidationResult:
        """Validate the input before execution."""
        return ValidationResult(result=True)

    @abstractmethod
    def render_result_for_assistant(self, output: TOutput) -> str:
        """Render the tool output for the AI assistant."""
        pass

    @abstractmethod
    def render_tool_use_message(self, input_data: TInput, verbose: bool = False) -> str:
        """Render the tool use message for display."""
        pass

    @abstractmethod
    async def call(
        self, input_data: TInput, context: ToolUseContext
    ) -> AsyncGenerator[ToolOutput, None]:
        """Execute the tool with the given input.

        Yields progress updates and finally the result. A tool that yields
        nothing reports no result for this invocation.
        """
        pass
        # This is an abstract method, subclasses must implement
        yield ToolResult(data=None)  # type: ignore

    async def handle_partial(self, task: Any, block: ToolUse) -> None:
        """Preview a block whose parameters are still streaming in.

        Must not have side effects beyond surfacing a status to the user.
        """
        return None


def create_tool_schema(tool: Tool[Any, Any]) -> Dict[str, Any]:
    """Create a JSON schema for the tool that can be sent to the AI model."""
    return {
        "name": tool.name,
        "description": "",  # Will be populated async
        "input_schema": tool.input_schema.model_json_schema(),
    }
