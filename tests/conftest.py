"""Common test fixtures for the entire test suite."""

from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from bibble.config.schemas import SecurityConfig
from bibble.core.bridge import ToolBridge
from bibble.core.context import RuntimeContext
from bibble.core.registry import BuiltInTool
from bibble.mcp.transport import RemoteToolTransport
from bibble.providers.base import ChatCompletionParams, ProviderAdapter
from bibble.security.policy import SecurityPolicyEngine
from bibble.types.models import (
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    ToolCallRequest,
    ToolDefinition,
    ToolResult,
)


def text(value: str) -> TextChunk:
    return TextChunk(text=value)


def call(name: str, args: Optional[Dict[str, Any]] = None, call_id: Optional[str] = None) -> ToolCallChunk:
    return ToolCallChunk(tool_call=ToolCallRequest(
        id=call_id or f"call_{name}",
        name=name,
        args=args or {},
    ))


class ScriptedAdapter(ProviderAdapter):
    """Adapter that replays one scripted list of chunks per turn.

    A turn entry may also be an exception, raised when the turn streams.
    Inside a turn, awaitable factories (zero-argument async callables) are
    awaited in place, which lets tests act between chunks.
    """

    name = "scripted"
    display_name = "Scripted"

    def __init__(
        self,
        turns: Optional[List[Any]] = None,
        repeat_last: bool = False,
        complete: Optional[List[StreamChunk]] = None
    ):
        self.turns = list(turns or [])
        self.repeat_last = repeat_last
        self.complete_chunks = list(complete or [])
        self.requests: List[ChatCompletionParams] = []
        self.complete_calls = 0

    async def _stream(self, params: ChatCompletionParams):
        self.requests.append(params)
        index = len(self.requests) - 1
        if index < len(self.turns):
            turn = self.turns[index]
        elif self.repeat_last and self.turns:
            turn = self.turns[-1]
        else:
            turn = [text("done")]

        if isinstance(turn, Exception):
            raise turn
        for item in turn:
            if isinstance(item, Exception):
                raise item
            if callable(item):
                await item()
                continue
            yield item

    async def _complete(self, params: ChatCompletionParams) -> List[StreamChunk]:
        self.complete_calls += 1
        return list(self.complete_chunks)


class FakeTransport(RemoteToolTransport):
    """In-memory remote tool server.

    ``results`` maps tool names to a value, an exception to raise, or an
    async callable receiving the arguments.
    """

    def __init__(
        self,
        server_name: str = "remote",
        tools: Optional[List[ToolDefinition]] = None,
        results: Optional[Dict[str, Any]] = None
    ):
        self.server_name = server_name
        self.tools = list(tools or [])
        self.results = dict(results or {})
        self.calls: List[tuple] = []

    async def list_tools(self) -> List[ToolDefinition]:
        return list(self.tools)

    async def invoke(self, name: str, args: Dict[str, Any]) -> Any:
        self.calls.append((name, args))
        result = self.results.get(name, f"{name} ok")
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return await result(args)
        return result


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    """Fixture to ensure no environment variables affect tests."""
    env_vars = [
        "OPENAI_API_KEY", "OPENAI_BASE_URL",
        "ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL",
        "GOOGLE_API_KEY", "GEMINI_API_KEY",
        "OPENROUTER_API_KEY", "OPENROUTER_BASE_URL",
        "OPENAI_COMPATIBLE_API_KEY", "OPENAI_COMPATIBLE_BASE_URL",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_definition():
    """Factory for tool definitions.

    Example:
        def test_something(make_definition):
            tool = make_definition("read_notes", properties={"path": {"type": "string"}}, required=["path"])
    """
    def _make_definition(
        name: str,
        description: str = "Test tool",
        properties: Optional[Dict[str, Any]] = None,
        required: Optional[List[str]] = None,
        server_name: Optional[str] = None
    ) -> ToolDefinition:
        schema: Dict[str, Any] = {"type": "object", "properties": properties or {}}
        if required:
            schema["required"] = required
        return ToolDefinition(
            name=name,
            description=description,
            parameter_schema=schema,
            server_name=server_name,
        )
    return _make_definition


@pytest.fixture
def runtime():
    """A fresh runtime context per test."""
    context = RuntimeContext.create()
    yield context
    context.teardown()


@pytest.fixture
def confirm():
    """Confirmation callback that approves every request."""
    return AsyncMock(return_value=True)


@pytest.fixture
def make_security(runtime, confirm):
    """Factory for security engines sharing the runtime's audit log.

    Example:
        def test_something(make_security):
            security = make_security(default_policy="prompt")
    """
    def _make_security(confirm_callback: Optional[Callable] = None, **config: Any) -> SecurityPolicyEngine:
        return SecurityPolicyEngine(
            SecurityConfig(**config),
            audit_log=runtime.audit_log,
            confirm=confirm_callback or confirm,
        )
    return _make_security


@pytest.fixture
def make_bridge(runtime, make_security):
    """Factory for tool bridges over the runtime's registries."""
    def _make_bridge(security: Optional[SecurityPolicyEngine] = None) -> ToolBridge:
        return ToolBridge(runtime.tool_registry, security or make_security(), runtime.remote_tools)
    return _make_bridge


@pytest.fixture
def register_builtin(runtime, make_definition):
    """Register a built-in tool with a handler.

    Example:
        def test_something(register_builtin):
            register_builtin("echo", lambda params: ToolResult.ok(data=params["text"]))
    """
    def _register(
        name: str,
        handler: Callable[[Dict[str, Any]], Any],
        properties: Optional[Dict[str, Any]] = None,
        required: Optional[List[str]] = None
    ) -> BuiltInTool:
        tool = BuiltInTool(
            definition=make_definition(name, properties=properties, required=required),
            handler=handler,
        )
        runtime.tool_registry.register_tool(tool)
        return tool
    return _register


@pytest.fixture
def echo_tool(register_builtin):
    """A built-in tool returning its text argument."""
    return register_builtin(
        "echo",
        lambda params: ToolResult.ok(data=params["text"]),
        properties={"text": {"type": "string", "description": "Text to echo"}},
        required=["text"],
    )
