"""Tool bridge.

The bridge is the single entry point the conversation loop uses to run a tool
call, whatever the tool's origin. It resolves the name to a tool handle,
applies the security policy to remote tools, executes, and flattens every
kind of result into one content string.

Resolution order:
    1. Built-in tools run directly; they are sandboxed by the tools themselves
    2. Control-flow tools return a fixed acknowledgement
    3. Anything else is looked up among the tools of connected servers
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from bibble.core.errors import ToolBlockedError, ToolDeniedError, ToolTimeoutError
from bibble.core.handles import (
    ASK_QUESTION_TOOL,
    CONTROL_FLOW_TOOLS,
    TASK_COMPLETE_TOOL,
    BuiltInToolHandle,
    RemoteToolHandle,
    ToolHandle,
    ToolKind,
)
from bibble.core.registry import ToolRegistry
from bibble.mcp.tool_registry import RemoteToolRegistry
from bibble.mcp.transport import RemoteToolTransport
from bibble.security.policy import SecurityDecision, SecurityPolicyEngine
from bibble.types.models import ToolCallOutcome, ToolDefinition
from bibble.utils.log_utils import redact_sensitive_data, sanitize_log_message

logger = logging.getLogger(__name__)

NO_CONTENT = "No content returned from tool"
UNKNOWN_SERVER = "unknown"


def _to_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    try:
        return json.dumps(value, indent=2, default=str)
    except (TypeError, ValueError):
        return str(value)


def _content_part(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, BaseModel):
        item = item.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(item, dict):
        text = item.get("text")
        if isinstance(text, str) and text:
            return text
        return _to_json(item)
    return str(item)


def _join_parts(items: List[Any]) -> str:
    parts = [part for part in (_content_part(item) for item in items) if part]
    return "\n\n".join(parts) if parts else NO_CONTENT


def normalize_content(raw: Any) -> str:
    """Flatten a remote tool result into a single string.

    Text blocks contribute their text, other blocks are serialized as JSON,
    and the parts are separated by blank lines. Plain strings pass through
    and other objects are serialized as JSON.
    """
    if raw is None:
        return NO_CONTENT
    if isinstance(raw, str):
        return raw or NO_CONTENT

    content = getattr(raw, "content", None)
    if content is None and isinstance(raw, dict) and "content" in raw:
        content = raw["content"]

    if content is not None:
        if isinstance(content, str):
            return content or NO_CONTENT
        if isinstance(content, list):
            return _join_parts(content)
        return _content_part(content)

    if isinstance(raw, list):
        return _join_parts(raw)

    return _to_json(raw)


def is_error_result(raw: Any) -> bool:
    """Whether a server flagged its result as a tool error."""
    if isinstance(raw, dict):
        return raw.get("isError") is True or raw.get("is_error") is True
    return getattr(raw, "isError", None) is True or getattr(raw, "is_error", None) is True


class ToolBridge:
    """Routes tool calls to built-in, control-flow or remote tools.

    Attributes:
        registry: Built-in tool registry
        security: Security policy engine applied to remote tools
        remote_tools: Which server offers which remote tool
    """

    def __init__(
        self,
        registry: ToolRegistry,
        security: SecurityPolicyEngine,
        remote_tools: Optional[RemoteToolRegistry] = None
    ):
        self.registry = registry
        self.security = security
        self.remote_tools = remote_tools or RemoteToolRegistry()
        self._transports: Dict[str, RemoteToolTransport] = {}

    async def register_transport(self, transport: RemoteToolTransport) -> List[ToolDefinition]:
        """List a server's tools and make them callable.

        Returns:
            The tools registered for the server
        """
        tools = await transport.list_tools()
        self._transports[transport.server_name] = transport
        self.remote_tools.register_server_tools(transport.server_name, tools)
        logger.info("Remote tools registered", extra={
            "server_name": transport.server_name,
            "num_tools": len(tools),
            "tool_names": [tool.name for tool in tools]
        })
        return self.remote_tools.get_server_tools(transport.server_name)

    def remove_transport(self, server_name: str) -> int:
        """Forget a server and its tools. Returns the number of tools removed."""
        self._transports.pop(server_name, None)
        return self.remote_tools.remove_server_tools(server_name)

    @property
    def server_names(self) -> List[str]:
        return list(self._transports.keys())

    def resolve(self, name: str) -> Optional[ToolHandle]:
        """Find the handle for a tool name, or None if nothing offers it."""
        if self.registry.has_tool(name):
            return BuiltInToolHandle(self.registry, self.registry.get_tool(name))

        if name in CONTROL_FLOW_TOOLS:
            return TASK_COMPLETE_TOOL if name == TASK_COMPLETE_TOOL.name else ASK_QUESTION_TOOL

        server_name = self.remote_tools.find_tool_server(name)
        if server_name is None or server_name not in self._transports:
            return None
        definition = next(
            tool for tool in self.remote_tools.get_server_tools(server_name) if tool.name == name
        )
        return RemoteToolHandle(definition, self._transports[server_name])

    def list_builtin_definitions(self) -> List[ToolDefinition]:
        return self.registry.list_definitions()

    def list_remote_definitions(self) -> List[ToolDefinition]:
        """Remote tools that are reachable, without names shadowed locally."""
        seen = set(tool.name for tool in self.registry.list_definitions())
        seen.update(CONTROL_FLOW_TOOLS)
        definitions = []
        for tool in self.remote_tools.all_tools:
            if tool.name in seen or tool.server_name not in self._transports:
                continue
            seen.add(tool.name)
            definitions.append(tool)
        return definitions

    def list_control_definitions(self) -> List[ToolDefinition]:
        return [TASK_COMPLETE_TOOL.describe(), ASK_QUESTION_TOOL.describe()]

    def list_tool_definitions(self) -> List[ToolDefinition]:
        """Every tool offered to the model: built-in, remote, then control-flow."""
        return (
            self.list_builtin_definitions()
            + self.list_remote_definitions()
            + self.list_control_definitions()
        )

    async def call_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> ToolCallOutcome:
        """Run one tool call.

        Args:
            name: Tool name requested by the model
            args: Tool arguments

        Returns:
            The tool output as content

        Raises:
            ToolBlockedError: If the security policy denies a remote call
            ToolDeniedError: If the user declines a remote call
            ToolTimeoutError: If a remote call exceeds its time bound
        """
        args = args if isinstance(args, dict) else {}
        handle = self.resolve(name)

        if handle is None:
            return ToolCallOutcome(content=self._missing_tool(name, args))

        if handle.kind is ToolKind.BUILT_IN:
            return ToolCallOutcome(content=await handle.invoke(args))

        if handle.kind is ToolKind.CONTROL_FLOW:
            return ToolCallOutcome(content=await handle.invoke(args))

        return ToolCallOutcome(content=await self._call_remote(handle, args))

    def _missing_tool(self, name: str, args: Dict[str, Any]) -> str:
        server_name = self.remote_tools.find_tool_server(name)
        if server_name is not None:
            error = "No MCP client found"
            content = f"Error: No MCP client found for tool: {name}"
        else:
            server_name = UNKNOWN_SERVER
            error = "No MCP server found"
            content = f"Error: No tool or MCP server found for tool: {name}"

        logger.warning("Tool not found", extra={"tool_name": name, "server_name": server_name})
        self.security.log(server_name, name, SecurityDecision.DENY, args, error=error)
        return content

    async def _call_remote(self, handle: RemoteToolHandle, args: Dict[str, Any]) -> str:
        name = handle.name
        server_name = handle.server_name

        decision = self.security.evaluate(name, server_name, args)
        logger.debug("Security decision", extra=redact_sensitive_data({
            "tool_name": name,
            "server_name": server_name,
            "decision": decision.value,
            "tool_args": args
        }))

        if decision is SecurityDecision.DENY:
            self.security.log(server_name, name, SecurityDecision.DENY, args,
                              error="Blocked by security policy")
            raise ToolBlockedError(name, server_name)

        if decision is SecurityDecision.PROMPT:
            try:
                approved = await self.security.maybe_confirm(name, server_name, args)
            except asyncio.CancelledError:
                self.security.log(server_name, name, SecurityDecision.DENY, args,
                                  error="Cancelled")
                raise
            if not approved:
                self.security.log(server_name, name, SecurityDecision.DENY, args,
                                  error="Denied by user")
                raise ToolDeniedError(name, server_name)

        start_time = time.time()
        try:
            raw = await self.security.with_timeout(handle.invoke(args), server_name)
        except asyncio.TimeoutError:
            timeout = self.security.timeout_for(server_name)
            self.security.log(server_name, name, SecurityDecision.DENY, args,
                              duration_ms=int((time.time() - start_time) * 1000),
                              error=f"Timed out after {timeout:g}s")
            raise ToolTimeoutError(name, server_name, timeout)
        except asyncio.CancelledError:
            self.security.log(server_name, name, SecurityDecision.DENY, args,
                              duration_ms=int((time.time() - start_time) * 1000),
                              error="Cancelled")
            raise
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error("Error calling remote tool", extra={
                "tool_name": name,
                "server_name": server_name,
                "error": sanitize_log_message(str(e)),
                "duration_ms": duration_ms
            }, exc_info=True)
            self.security.log(server_name, name, SecurityDecision.DENY, args,
                              duration_ms=duration_ms, error=str(e))
            return f"Error executing tool {name}: {e}"

        duration_ms = int((time.time() - start_time) * 1000)
        if is_error_result(raw):
            error = normalize_content(raw)
            logger.warning("Remote tool reported an error", extra={
                "tool_name": name,
                "server_name": server_name,
                "error": sanitize_log_message(error),
                "duration_ms": duration_ms
            })
            self.security.log(server_name, name, SecurityDecision.DENY, args,
                              duration_ms=duration_ms, error=error)
            return f"Error executing tool {name}: {error}"

        self.security.log(server_name, name, SecurityDecision.ALLOW, args, duration_ms=duration_ms)
        logger.info("Remote tool executed", extra={
            "tool_name": name,
            "server_name": server_name,
            "duration_ms": duration_ms
        })
        return normalize_content(raw)
