"""Connection management for MCP servers.

Starts stdio-based MCP servers and keeps their client sessions open for the
life of the chat client.
- Automatic connection retry with exponential backoff
- Resource cleanup through a shared AsyncExitStack
- Connection state tracking per server name

Example:
    ```python
    from contextlib import AsyncExitStack
    from bibble.mcp.connection import MCPConnectionManager
    from bibble.mcp.schemas import ServerConfig

    async with AsyncExitStack() as stack:
        manager = MCPConnectionManager(stack)
        session = await manager.connect("files", ServerConfig(command="mcp-files"))
        tools = await session.list_tools()
    ```
"""

import asyncio
import logging
import shutil
from contextlib import AsyncExitStack
from typing import Any, Dict, Tuple

import backoff
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from bibble.mcp.schemas import ServerConfig
from bibble.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)


def resolve_command(command: str) -> str:
    """Resolve a server command against PATH, keeping it unchanged if not found."""
    return shutil.which(command) or command


class MCPConnectionManager:
    """Manages connections to MCP servers.

    Attributes:
        MAX_RETRIES (int): Maximum number of connection attempts
        BASE_DELAY (float): Base delay in seconds between attempts
        sessions (Dict[str, ClientSession]): Active server sessions
        stdios (Dict[str, Any]): Read streams per server
        writes (Dict[str, Any]): Write streams per server
    """

    # Connection settings
    MAX_RETRIES = 3
    BASE_DELAY = 1.0

    def __init__(self, exit_stack: AsyncExitStack):
        """Initialize the connection manager.

        Args:
            exit_stack: Owns the transport and session contexts. The caller
                decides when it closes.
        """
        self.exit_stack = exit_stack
        self.sessions: Dict[str, ClientSession] = {}
        self.stdios: Dict[str, Any] = {}
        self.writes: Dict[str, Any] = {}

    @backoff.on_exception(
        backoff.expo,
        (ConnectionError, TimeoutError),
        max_tries=MAX_RETRIES,
        base=BASE_DELAY
    )
    async def _connect_with_retry(
        self,
        server_name: str,
        server_params: StdioServerParameters
    ) -> Tuple[ClientSession, Any, Any]:
        """Open the stdio transport and initialize a session, retrying on failure.

        Returns:
            Tuple of (session, read stream, write stream)

        Raises:
            ConnectionError: If every attempt fails
        """
        try:
            logger.debug("Establishing connection", extra={"server_name": server_name})
            stdio, write = await self.exit_stack.enter_async_context(
                stdio_client(server_params)
            )

            session = await self.exit_stack.enter_async_context(ClientSession(stdio, write))
            await session.initialize()

            return session, stdio, write

        except Exception as e:
            logger.warning("Connection attempt failed", extra={
                "server_name": server_name,
                "error": sanitize_log_message(str(e))
            })
            raise ConnectionError(f"Failed to connect to server '{server_name}': {str(e)}")

    async def connect(self, server_name: str, config: ServerConfig) -> ClientSession:
        """Connect to an MCP server.

        Args:
            server_name: Unique server name
            config: How to start the server

        Returns:
            The initialized ClientSession

        Raises:
            ValueError: If the server is already connected
            ConnectionError: If the connection fails after retries
        """
        if server_name in self.sessions:
            raise ValueError(f"Server {server_name} is already connected")

        try:
            return await self._handle_connection(server_name, config)
        except Exception as e:
            await self.cleanup(server_name)
            raise ConnectionError(f"Failed to connect to server '{server_name}': {str(e)}")

    async def _handle_connection(self, server_name: str, config: ServerConfig) -> ClientSession:
        params: Dict[str, Any] = {
            "command": resolve_command(config.command),
            "args": config.args
        }
        if config.env:
            params["env"] = config.env
        if config.cwd:
            params["cwd"] = config.cwd

        session, stdio, write = await self._connect_with_retry(
            server_name, StdioServerParameters(**params)
        )

        self.sessions[server_name] = session
        self.stdios[server_name] = stdio
        self.writes[server_name] = write
        return session

    async def cleanup(self, server_name: str) -> None:
        """Forget a server's session. Safe to call more than once.

        The underlying contexts are closed with the exit stack.
        """
        self.sessions.pop(server_name, None)
        self.stdios.pop(server_name, None)
        self.writes.pop(server_name, None)
        logger.debug("Cleanup completed for server", extra={"server_name": server_name})

    async def cleanup_all(self) -> None:
        """Close every session and the exit stack. Safe to call more than once."""
        logger.debug("Starting cleanup of all servers")

        for server_name in list(self.sessions.keys()):
            await self.cleanup(server_name)

        try:
            await self.exit_stack.aclose()
            logger.debug("Exit stack closed successfully")
        except asyncio.CancelledError:
            logger.info("Task cancelled during exit stack cleanup")
            raise
        except Exception as e:
            logger.error("Error closing exit stack", extra={
                "error": sanitize_log_message(str(e))
            })
        finally:
            self.sessions.clear()
            self.stdios.clear()
            self.writes.clear()
