"""Built-in tools.

Every tool is sandboxed by a BuiltInToolsConfig and registered into a
ToolRegistry, which rate-limits and validates each call.

Example:
    ```python
    registry = ToolRegistry()
    register_builtin_tools(registry, BuiltInToolsConfig())
    result = await registry.execute_tool("list_directory", {"path": "."})
    ```
"""

import logging
from typing import List, Optional

from bibble.config.schemas import BuiltInToolsConfig
from bibble.core.registry import BuiltInTool, ToolRegistry
from bibble.tools.datetime_tool import datetime_tools
from bibble.tools.edit import edit_tools
from bibble.tools.filesystem import filesystem_tools
from bibble.tools.process import process_tools
from bibble.tools.sandbox import ToolSandbox
from bibble.tools.search import search_tools
from bibble.tools.web import web_tools

logger = logging.getLogger(__name__)


def builtin_tools(config: Optional[BuiltInToolsConfig] = None) -> List[BuiltInTool]:
    """Every built-in tool, bound to a sandbox built from the config."""
    sandbox = ToolSandbox(config)
    return (
        filesystem_tools(sandbox)
        + edit_tools(sandbox)
        + search_tools(sandbox)
        + process_tools(sandbox)
        + datetime_tools()
        + web_tools()
    )


def register_builtin_tools(registry: ToolRegistry, config: Optional[BuiltInToolsConfig] = None) -> int:
    """Register the built-in tools.

    Returns:
        Number of tools registered; zero when built-in tools are disabled
    """
    config = config or BuiltInToolsConfig()
    if not config.enabled:
        logger.info("Built-in tools disabled")
        return 0

    tools = builtin_tools(config)
    for tool in tools:
        registry.register_tool(tool)
    logger.info("Built-in tools registered", extra={"num_tools": len(tools)})
    return len(tools)


__all__ = ["ToolSandbox", "builtin_tools", "register_builtin_tools"]
