"""Remote tool registry.

Keeps track of which connected server offers which tool, so the tool bridge
can route a call by name.

Example:
    ```python
    registry = RemoteToolRegistry()
    registry.register_server_tools("server1", tools)
    server = registry.find_tool_server("tool_name")
    num_removed = registry.remove_server_tools("server1")
    ```
"""

import logging
from typing import Dict, List, Optional

from bibble.types.models import ToolDefinition

logger = logging.getLogger(__name__)


class RemoteToolRegistry:
    """Registration and lookup of remote tools across servers.

    When two servers offer a tool with the same name, the server registered
    first wins the lookup.

    Attributes:
        tools_by_server (Dict[str, List[ToolDefinition]]): Tools indexed by server
        all_tools (List[ToolDefinition]): Combined list of all available tools
    """

    def __init__(self):
        """Initialize an empty tool registry."""
        self.tools_by_server: Dict[str, List[ToolDefinition]] = {}
        self.all_tools: List[ToolDefinition] = []

    def register_server_tools(self, server_name: str, tools: List[ToolDefinition]) -> None:
        """Register tools for a specific server.

        Args:
            server_name: Name of the server
            tools: Tools offered by the server

        Note:
            If the server already has registered tools, they are replaced.
        """
        logger.debug(
            "Registering tools for server",
            extra={"server_name": server_name, "num_tools": len(tools)},
        )

        if server_name in self.tools_by_server:
            self.remove_server_tools(server_name)

        tagged = [
            tool if tool.server_name == server_name
            else tool.model_copy(update={"server_name": server_name})
            for tool in tools
        ]
        self.tools_by_server[server_name] = tagged
        self.all_tools.extend(tagged)

        logger.debug(
            "Tools registered successfully",
            extra={"server_name": server_name, "total_tools": len(self.all_tools)},
        )

    def remove_server_tools(self, server_name: str) -> int:
        """Remove all tools for a specific server.

        Returns:
            Number of tools removed, 0 if the server is unknown
        """
        if server_name not in self.tools_by_server:
            return 0

        num_removed = len(self.tools_by_server[server_name])
        del self.tools_by_server[server_name]

        self.all_tools = [
            tool
            for tools in self.tools_by_server.values()
            for tool in tools
        ]

        logger.debug(
            "Server tools removed",
            extra={
                "server_name": server_name,
                "num_removed": num_removed,
                "remaining_tools": len(self.all_tools),
            },
        )
        return num_removed

    def find_tool_server(self, tool_name: str) -> Optional[str]:
        """Find which server hosts a specific tool.

        Returns:
            Server name if found, None otherwise
        """
        for server_name, tools in self.tools_by_server.items():
            if any(tool.name == tool_name for tool in tools):
                return server_name
        return None

    def get_tool(self, tool_name: str) -> Optional[ToolDefinition]:
        for tool in self.all_tools:
            if tool.name == tool_name:
                return tool
        return None

    def clear(self) -> tuple[int, int]:
        """Clear all registered tools.

        Returns:
            Tuple of (number of tools cleared, number of servers cleared)
        """
        num_tools = len(self.all_tools)
        num_servers = len(self.tools_by_server)

        logger.debug(
            "Clearing tool registry",
            extra={"num_tools": num_tools, "num_servers": num_servers},
        )

        self.tools_by_server.clear()
        self.all_tools.clear()
        return num_tools, num_servers

    def get_server_tools(self, server_name: str) -> List[ToolDefinition]:
        """Get all tools registered for a server, or an empty list."""
        return self.tools_by_server.get(server_name, [])
