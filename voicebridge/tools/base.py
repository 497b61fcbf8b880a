"""
Base classes for the tool calling system.

This module defines the core abstractions that all tools must implement:
a provider-facing definition (name, description, JSON parameters schema),
a pydantic model that validates incoming arguments, and an async handler
returning a ToolResult.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Type
from enum import Enum

from pydantic import BaseModel, ValidationError

from voicebridge.tools.context import ToolExecutionContext


class ToolCategory(Enum):
    """Category of tool for logging and analytics."""
    TELEPHONY = "telephony"  # Acts on the call itself (transfer, hangup)
    BUSINESS = "business"    # Looks up or books business data


class ToolError(Exception):
    """Base class for every failure raised by the tool dispatcher."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class UnsupportedToolError(ToolError):
    """The AI asked for a tool that is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"Unsupported tool: {tool_name}")


class InvalidToolArgumentsError(ToolError):
    """Arguments failed validation against the tool's input model."""

    def __init__(self, tool_name: str, errors: List[Dict[str, Any]]):
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())) or "arguments" for e in errors)
        super().__init__(tool_name, f"Invalid arguments for {tool_name}: {fields}")
        self.errors = errors


class ToolHandlerError(ToolError):
    """The handler raised or exceeded its execution budget."""

    def __init__(self, tool_name: str, cause: BaseException):
        super().__init__(tool_name, f"Tool {tool_name} failed: {cause}")
        self.cause = cause


@dataclass
class ToolResult:
    """
    Outcome of a tool invocation.

    output is handed back to the AI verbatim as machine-readable data;
    follow_up_instructions, when set, becomes the next response directive.
    """
    output: Dict[str, Any]
    follow_up_instructions: Optional[str] = None


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "number", "array", "object"
    description: str
    required: bool = False
    enum: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "description": self.description
        }
        if self.enum:
            result["enum"] = self.enum
        return result


@dataclass
class ToolDefinition:
    """
    Provider-facing tool definition.

    Contains all metadata needed to advertise a tool to the realtime model.
    """
    name: str
    description: str
    category: ToolCategory
    parameters: List[ToolParameter] = field(default_factory=list)
    max_execution_time: float = 30.0  # seconds

    def json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.to_dict() for p in self.parameters},
            "additionalProperties": False,
        }
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema

    def to_openai_realtime_schema(self) -> Dict[str, Any]:
        """
        Convert to OpenAI Realtime API function calling format.

        Realtime format keeps name/description at top level:
        {
            "type": "function",
            "name": "tool_name",
            "description": "Tool description",
            "parameters": {"type": "object", "properties": {...}, "required": [...]}
        }
        """
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.json_schema(),
        }


class Tool(ABC):
    """
    Abstract base class for all tools.

    Subclasses provide:
    - definition: ToolDefinition advertised to the AI
    - args_model: pydantic model validating raw arguments
    - run(): the handler, receiving validated arguments and the call context

    Handlers never see the session or its channel; all conversational effects
    flow back through the returned ToolResult.
    """

    args_model: Type[BaseModel]

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return tool definition with metadata."""

    @abstractmethod
    async def run(self, args: BaseModel, context: ToolExecutionContext) -> ToolResult:
        """Execute the tool with validated arguments."""

    def validate_arguments(self, raw_arguments: Any) -> BaseModel:
        """
        Validate raw arguments against args_model.

        Raises:
            InvalidToolArgumentsError: If validation fails
        """
        try:
            return self.args_model.model_validate(raw_arguments if raw_arguments is not None else {})
        except ValidationError as exc:
            raise InvalidToolArgumentsError(self.definition.name, exc.errors()) from exc
