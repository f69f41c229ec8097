"""Connects configured MCP servers and hands their tools to the tool bridge.

Example:
    ```python
    client = MCPClient(bridge, config_store.get_mcp_servers())
    try:
        results = await client.connect_all()
        for server_name, error in results:
            if error:
                print(f"Failed to connect to {server_name}: {error}")
    finally:
        await client.cleanup_all()
    ```
"""

import logging
import time
from contextlib import AsyncExitStack
from typing import Dict, List, Optional, Tuple

from bibble.core.bridge import ToolBridge
from bibble.mcp.connection import MCPConnectionManager
from bibble.mcp.schemas import ServerConfig
from bibble.mcp.transport import MCPServerTransport
from bibble.types.models import ToolDefinition
from bibble.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)


class MCPClient:
    """Owns the MCP server connections of one chat client.

    Attributes:
        bridge: Receives a transport for every connected server
        available_servers: Server configurations by name
        connection_manager: Opens and closes the sessions
    """

    def __init__(
        self,
        bridge: ToolBridge,
        servers: Dict[str, ServerConfig],
        connection_manager: Optional[MCPConnectionManager] = None
    ):
        self.bridge = bridge
        self.available_servers = dict(servers)
        self.exit_stack = AsyncExitStack()
        self.connection_manager = connection_manager or MCPConnectionManager(self.exit_stack)

    def list_available_servers(self) -> List[str]:
        return list(self.available_servers.keys())

    async def connect(self, server_name: str) -> List[ToolDefinition]:
        """Connect one server and register its tools.

        Returns:
            The server's tools

        Raises:
            ValueError: If the server is not configured
            ConnectionError: If the connection or tool listing fails
        """
        start_time = time.time()
        if server_name not in self.available_servers:
            raise ValueError(
                f"Unknown server: {server_name}. Available servers: {self.list_available_servers()}"
            )

        try:
            session = await self.connection_manager.connect(
                server_name, self.available_servers[server_name]
            )
            tools = await self.bridge.register_transport(MCPServerTransport(server_name, session))
        except Exception as e:
            logger.error("Server connection failed", extra={
                "server_name": server_name,
                "error": sanitize_log_message(str(e)),
                "duration_ms": int((time.time() - start_time) * 1000)
            })
            await self.disconnect(server_name)
            raise ConnectionError(f"Failed to connect to server '{server_name}': {str(e)}")

        logger.info("Server connection successful", extra={
            "server_name": server_name,
            "num_tools": len(tools),
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return tools

    async def connect_all(self) -> List[Tuple[str, Optional[Exception]]]:
        """Connect every configured server, one at a time.

        A failing server does not stop the others.

        Returns:
            (server name, None on success or the exception) per server
        """
        start_time = time.time()
        servers = self.list_available_servers()
        if not servers:
            logger.info("No MCP servers configured")
            return []

        results: List[Tuple[str, Optional[Exception]]] = []
        for server_name in servers:
            try:
                await self.connect(server_name)
                results.append((server_name, None))
            except Exception as e:
                results.append((server_name, e))

        logger.info("All server connections completed", extra={
            "successful_connections": sum(1 for _, e in results if e is None),
            "failed_connections": sum(1 for _, e in results if e is not None),
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return results

    async def disconnect(self, server_name: str) -> None:
        """Remove a server's tools and forget its session."""
        removed = self.bridge.remove_transport(server_name)
        await self.connection_manager.cleanup(server_name)
        logger.debug("Server disconnected", extra={
            "server_name": server_name,
            "num_tools_removed": removed
        })

    async def cleanup_all(self) -> None:
        """Disconnect every server and close their processes."""
        for server_name in self.bridge.server_names:
            self.bridge.remove_transport(server_name)
        await self.connection_manager.cleanup_all()
        logger.info("MCP client cleanup completed")
