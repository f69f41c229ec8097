"""Canonical message, tool and stream types."""

from bibble.types.models import (
    ChatEvent,
    Message,
    MessageRole,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    ToolCallOutcome,
    ToolCallRequest,
    ToolDefinition,
    ToolParameter,
    ToolResult,
    ToolResultEvent,
)

__all__ = [
    "ChatEvent",
    "Message",
    "MessageRole",
    "StreamChunk",
    "TextChunk",
    "ToolCallChunk",
    "ToolCallOutcome",
    "ToolCallRequest",
    "ToolDefinition",
    "ToolParameter",
    "ToolResult",
    "ToolResultEvent",
]
