"""Type definitions for bibble.

This module holds the provider-neutral data model the conversation loop works
on: messages, tool call requests, tool definitions, tool results and the
chunks and events that flow between adapters, the loop and the caller.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Roles a message can have in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """A single tool invocation requested by the model.

    Attributes:
        id: Provider-generated identifier, unique within a turn
        name: Name of a built-in, control-flow or remote tool
        args: Arguments as one structured mapping
    """

    id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """A message in a conversation.

    Assistant messages may carry the tool calls of their turn. Tool messages
    carry the name and id of the call they answer.

    Attributes:
        role: The role of the message sender
        content: The message text, or the serialized tool result
        tool_calls: Tool calls requested by an assistant message
        tool_name: Name of the tool a tool message answers
        tool_call_id: Id of the tool call a tool message answers
    """

    role: MessageRole
    content: str = ""
    tool_calls: Optional[List[ToolCallRequest]] = None
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Optional[List[ToolCallRequest]] = None
    ) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, content: str, tool_name: str, tool_call_id: str) -> "Message":
        return cls(
            role=MessageRole.TOOL,
            content=content,
            tool_name=tool_name,
            tool_call_id=tool_call_id
        )


class ToolParameter(BaseModel):
    """Definition of a built-in tool parameter.

    Attributes:
        type: The JSON Schema type of the parameter (string, number, boolean, etc.)
        description: A human-readable description of the parameter
        required: Whether the parameter is required (default: False)
        default: Default value for the parameter if not provided
        enum: Optional list of allowed values for the parameter
        items: Optional item schema for array parameters
    """

    type: str
    description: str
    required: bool = False
    default: Optional[Any] = None
    enum: Optional[List[str]] = None
    items: Optional[Dict[str, Any]] = None


class ToolDefinition(BaseModel):
    """A tool as offered to the model.

    Built-in and remote tools share this shape. Remote tools record the
    server that owns them.

    Attributes:
        name: The name of the tool
        description: A human-readable description of what the tool does
        parameter_schema: JSON Schema object describing the arguments
        server_name: Owning MCP server, None for local tools
    """

    name: str
    description: str = ""
    parameter_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    server_name: Optional[str] = None

    @classmethod
    def from_parameters(
        cls,
        name: str,
        description: str,
        parameters: Dict[str, ToolParameter]
    ) -> "ToolDefinition":
        """Build a definition from named ToolParameter entries."""
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for param_name, param in parameters.items():
            prop: Dict[str, Any] = {
                "type": param.type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default
            if param.items:
                prop["items"] = param.items
            properties[param_name] = prop
            if param.required:
                required.append(param_name)

        schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return cls(name=name, description=description, parameter_schema=schema)

    @property
    def required_parameters(self) -> List[str]:
        return list(self.parameter_schema.get("required", []))


class ToolResult(BaseModel):
    """Outcome of a built-in tool execution.

    Attributes:
        success: Whether the tool succeeded
        data: Optional structured payload
        message: Optional human-readable summary
        error: Error text, meaningful when success is False
    """

    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "ToolResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)


class ToolCallOutcome(BaseModel):
    """What the tool bridge hands back to the loop for any tool call."""

    content: str


class TextChunk(BaseModel):
    """A piece of streamed text."""

    type: Literal["text"] = "text"
    text: str


class ToolCallChunk(BaseModel):
    """A complete tool call with fully assembled arguments."""

    type: Literal["tool_call"] = "tool_call"
    tool_call: ToolCallRequest


StreamChunk = Union[TextChunk, ToolCallChunk]


class ToolResultEvent(BaseModel):
    """Emitted by the agent after a tool result has been recorded."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    content: str


ChatEvent = Union[TextChunk, ToolResultEvent]
