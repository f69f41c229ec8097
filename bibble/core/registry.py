"""Built-in tool registry.

This module provides the registry that holds built-in tool definitions along
with their handlers, validates arguments and executes tools under a per-tool
rate limit.
"""

import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from bibble.core.errors import ToolExecutionError
from bibble.core.rate_limit import RateLimiter
from bibble.types.models import ToolDefinition, ToolResult
from bibble.utils.log_utils import redact_sensitive_data, sanitize_log_message

logger = logging.getLogger(__name__)

SyncToolHandler = Callable[[Dict[str, Any]], ToolResult]
AsyncToolHandler = Callable[[Dict[str, Any]], Awaitable[ToolResult]]
ToolHandler = Union[SyncToolHandler, AsyncToolHandler]


@dataclass
class BuiltInTool:
    """A local tool: its definition plus the function that runs it.

    Attributes:
        definition: Name, description and parameter schema
        handler: Sync or async callable taking the argument mapping
        category: Grouping label (filesystem, process, search, ...)
    """

    definition: ToolDefinition
    handler: ToolHandler
    category: str = "general"

    @property
    def name(self) -> str:
        return self.definition.name


class ToolRegistry:
    """Registry for built-in tools.

    The registry keeps tool names unique and is the only place built-in tools
    are executed from. Execution never raises for tool-level problems: unknown
    tools, rate limiting, invalid arguments and handler failures all come back
    as a failed ToolResult.
    """

    def __init__(self, rate_limiter: Optional[RateLimiter] = None) -> None:
        """Initialize an empty tool registry.

        Args:
            rate_limiter: Shared limiter; a private one is created if omitted
        """
        self._tools: Dict[str, BuiltInTool] = {}
        self._rate_limiter = rate_limiter or RateLimiter()

    def register_tool(self, tool: BuiltInTool) -> None:
        """Register a new tool in the registry.

        Args:
            tool: The tool to register

        Raises:
            ValueError: If a tool with the same name already exists
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug("Registered built-in tool", extra={
            "tool_name": tool.name,
            "category": tool.category
        })

    def get_tool(self, name: str) -> BuiltInTool:
        """Get a tool by name.

        Raises:
            KeyError: If no tool with the given name exists
        """
        if name not in self._tools:
            raise KeyError(f"No tool named '{name}' is registered")
        return self._tools[name]

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> List[BuiltInTool]:
        return list(self._tools.values())

    def list_definitions(self) -> List[ToolDefinition]:
        return [tool.definition for tool in self._tools.values()]

    def list_by_category(self) -> Dict[str, List[ToolDefinition]]:
        grouped: Dict[str, List[ToolDefinition]] = {}
        for tool in self._tools.values():
            grouped.setdefault(tool.category, []).append(tool.definition)
        return grouped

    def clear(self) -> None:
        self._tools.clear()

    async def execute_tool(self, name: str, parameters: Dict[str, Any]) -> ToolResult:
        """Execute a tool with the given parameters.

        Args:
            name: The name of the tool to execute
            parameters: Arguments for the tool handler

        Returns:
            The handler's ToolResult, or a failed ToolResult describing why
            the tool could not run
        """
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult.fail(f"Tool '{name}' not found")

        if not self._rate_limiter.check(f"tool:{name}"):
            logger.warning("Rate limit exceeded", extra={"tool_name": name})
            return ToolResult.fail(f"Rate limit exceeded for tool '{name}'")

        start_time = time.time()
        try:
            validated = self._validate_parameters(tool.definition, parameters or {})
            result = tool.handler(validated)
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, ToolResult):
                result = ToolResult.ok(data=result)
            logger.debug("Built-in tool executed", extra={
                "tool_name": name,
                "success": result.success,
                "duration_ms": int((time.time() - start_time) * 1000)
            })
            return result
        except Exception as e:
            logger.error("Built-in tool failed", extra=redact_sensitive_data({
                "tool_name": name,
                "parameters": parameters,
                "error": sanitize_log_message(str(e)),
                "duration_ms": int((time.time() - start_time) * 1000)
            }), exc_info=not isinstance(e, ToolExecutionError))
            return ToolResult.fail(f"Tool '{name}' execution failed: {e}")

    def _validate_parameters(self, definition: ToolDefinition, parameters: Dict[str, Any]) -> Dict[str, Any]:
        """Validate parameters against a tool definition and apply defaults.

        Args:
            definition: The tool definition
            parameters: Parameters to validate

        Returns:
            A copy of the parameters with schema defaults filled in

        Raises:
            ToolExecutionError: If a required parameter is missing or an enum
                value is not allowed
        """
        if not isinstance(parameters, dict):
            raise ToolExecutionError(
                f"Parameters for tool '{definition.name}' must be an object",
                tool_name=definition.name
            )

        properties = definition.parameter_schema.get("properties", {})
        validated = dict(parameters)

        for param_name in definition.required_parameters:
            if validated.get(param_name) is None:
                raise ToolExecutionError(
                    f"Missing required parameter '{param_name}' for tool '{definition.name}'",
                    tool_name=definition.name
                )

        for param_name, schema in properties.items():
            if param_name not in validated and "default" in schema:
                validated[param_name] = schema["default"]
            allowed = schema.get("enum")
            if allowed and param_name in validated and validated[param_name] not in allowed:
                raise ToolExecutionError(
                    f"Invalid value for '{param_name}': expected one of {', '.join(map(str, allowed))}",
                    tool_name=definition.name
                )

        return validated
