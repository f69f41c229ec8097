"""Remote tool transport interface and its MCP implementation."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from mcp import ClientSession
from mcp.types import Tool as MCPTool

from bibble.types.models import ToolDefinition
from bibble.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)


class RemoteToolTransport(ABC):
    """What the tool bridge needs from one connected tool server.

    Attributes:
        server_name: Name the server was configured under
    """

    server_name: str

    @abstractmethod
    async def list_tools(self) -> List[ToolDefinition]:
        """Return the tools the server offers."""
        pass

    @abstractmethod
    async def invoke(self, name: str, args: Dict[str, Any]) -> Any:
        """Call a tool and return the server's raw result."""
        pass


def tool_definition_from_mcp(tool: MCPTool, server_name: str) -> ToolDefinition:
    """Convert an MCP tool description into a ToolDefinition."""
    # inputSchema in mcp 1.x, input_schema in later releases
    input_schema = getattr(tool, "inputSchema", None) or getattr(tool, "input_schema", None)
    schema = dict(input_schema or {})
    schema.setdefault("type", "object")
    schema.setdefault("properties", {})
    return ToolDefinition(
        name=tool.name,
        description=tool.description or "",
        parameter_schema=schema,
        server_name=server_name,
    )


class MCPServerTransport(RemoteToolTransport):
    """RemoteToolTransport over an initialized MCP client session."""

    def __init__(self, server_name: str, session: ClientSession):
        self.server_name = server_name
        self.session = session

    async def list_tools(self) -> List[ToolDefinition]:
        response = await self.session.list_tools()
        return [tool_definition_from_mcp(tool, self.server_name) for tool in response.tools]

    async def invoke(self, name: str, args: Dict[str, Any]) -> Any:
        """Call a tool on the server.

        Returns:
            The CallToolResult returned by the session

        Raises:
            Exception: Whatever the session raises; error results flagged by
                the server are returned, not raised
        """
        start_time = time.time()
        try:
            result = await self.session.call_tool(name, args)
        except Exception as e:
            logger.error("Remote tool call failed", extra={
                "tool_name": name,
                "server_name": self.server_name,
                "error": sanitize_log_message(str(e)),
                "duration_ms": int((time.time() - start_time) * 1000)
            })
            raise
        logger.debug("Remote tool call returned", extra={
            "tool_name": name,
            "server_name": self.server_name,
            "is_error": bool(getattr(result, "isError", False)),
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return result
