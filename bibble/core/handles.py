"""Tool handles.

A tool handle wraps one callable tool behind a common interface. There are
three kinds: built-in tools executed locally, control-flow tools that only
signal the conversation loop, and remote tools served by an MCP server. The
tool bridge resolves a name to a handle once and then dispatches on its kind.
"""

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict

from bibble.core.registry import BuiltInTool, ToolRegistry
from bibble.mcp.transport import RemoteToolTransport
from bibble.types.models import ToolDefinition, ToolResult

TASK_COMPLETE = "task_complete"
ASK_QUESTION = "ask_question"
CONTROL_FLOW_TOOLS = (TASK_COMPLETE, ASK_QUESTION)


class ToolKind(str, Enum):
    """Where a tool runs."""

    BUILT_IN = "built_in"
    CONTROL_FLOW = "control_flow"
    REMOTE = "remote"


class ToolHandle(ABC):
    """Common interface over every kind of tool."""

    kind: ToolKind

    @abstractmethod
    def describe(self) -> ToolDefinition:
        """Definition offered to the model."""
        pass

    @abstractmethod
    async def invoke(self, args: Dict[str, Any]) -> Any:
        """Run the tool. The return type depends on the kind."""
        pass

    @property
    def name(self) -> str:
        return self.describe().name


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size} B"


def _format_directory_listing(data: Dict[str, Any]) -> str:
    lines = [f"Directory: {data.get('directory', '')}", ""]
    entries = data.get("entries") or []
    if not entries:
        lines.append("No files found.")
    else:
        lines.append("Contents:")
        for entry in entries:
            marker = "[dir] " if entry.get("type") == "directory" else "[file]"
            size = f" ({_format_size(entry['size'])})" if entry.get("size") else ""
            lines.append(f"{marker} {entry.get('name')}{size}")

    summary = data.get("summary")
    if summary:
        lines.append("")
        lines.append(
            f"Summary: {summary.get('total_files', 0)} files, "
            f"{summary.get('total_directories', 0)} directories"
        )
    return "\n".join(lines)


def render_tool_result(tool_name: str, result: ToolResult) -> str:
    """Turn a built-in ToolResult into message content.

    An error wins when the tool failed; otherwise the message, then the data,
    then a generic success line.
    """
    if not result.success:
        return result.error or "Tool execution failed"
    if result.message:
        return result.message
    if result.data is None or result.data == "" or result.data == {} or result.data == []:
        return "Tool executed successfully"
    if isinstance(result.data, str):
        return result.data
    if tool_name == "list_directory" and isinstance(result.data, dict):
        return _format_directory_listing(result.data)
    return json.dumps(result.data, indent=2, default=str)


class BuiltInToolHandle(ToolHandle):
    """A local tool executed through the built-in registry."""

    kind = ToolKind.BUILT_IN

    def __init__(self, registry: ToolRegistry, tool: BuiltInTool):
        self._registry = registry
        self._tool = tool

    def describe(self) -> ToolDefinition:
        return self._tool.definition

    async def invoke(self, args: Dict[str, Any]) -> str:
        result = await self._registry.execute_tool(self._tool.name, args)
        return render_tool_result(self._tool.name, result)


class ControlFlowToolHandle(ToolHandle):
    """A pseudo-tool that only tells the loop to stop."""

    kind = ToolKind.CONTROL_FLOW

    def __init__(self, definition: ToolDefinition, acknowledgement: str):
        self._definition = definition
        self._acknowledgement = acknowledgement

    def describe(self) -> ToolDefinition:
        return self._definition

    async def invoke(self, args: Dict[str, Any]) -> str:
        return self._acknowledgement


class RemoteToolHandle(ToolHandle):
    """A tool served by a remote transport. Returns the raw result."""

    kind = ToolKind.REMOTE

    def __init__(self, definition: ToolDefinition, transport: RemoteToolTransport):
        self._definition = definition
        self.transport = transport

    @property
    def server_name(self) -> str:
        return self.transport.server_name

    def describe(self) -> ToolDefinition:
        return self._definition

    async def invoke(self, args: Dict[str, Any]) -> Any:
        return await self.transport.invoke(self._definition.name, args)


TASK_COMPLETE_TOOL = ControlFlowToolHandle(
    ToolDefinition(
        name=TASK_COMPLETE,
        description="Call this tool when the task given by the user is complete",
        parameter_schema={"type": "object", "properties": {}},
    ),
    "Task completed successfully. The assistant has finished the requested task.",
)

ASK_QUESTION_TOOL = ControlFlowToolHandle(
    ToolDefinition(
        name=ASK_QUESTION,
        description=(
            "Ask a question to the user to get more info required to solve "
            "or clarify their problem."
        ),
        parameter_schema={"type": "object", "properties": {}},
    ),
    "Question acknowledged. Please provide the requested information.",
)
