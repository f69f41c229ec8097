"""Tests for the MCP server transport."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from mcp.types import CallToolResult, TextContent, Tool

from bibble.mcp.transport import MCPServerTransport, tool_definition_from_mcp


def test_tool_definition_from_mcp():
    """Test conversion of a described tool."""
    tool = Tool(
        name="read_file",
        description="Read a file",
        inputSchema={"type": "object", "properties": {"path": {"type": "string"}}, "required": ["path"]},
    )

    definition = tool_definition_from_mcp(tool, "files")

    assert definition.name == "read_file"
    assert definition.description == "Read a file"
    assert definition.server_name == "files"
    assert definition.parameter_schema["required"] == ["path"]


def test_tool_definition_fills_schema_defaults():
    """Test that a bare schema gets an object type and properties."""
    tool = Tool(name="ping", inputSchema={})

    definition = tool_definition_from_mcp(tool, "net")

    assert definition.description == ""
    assert definition.parameter_schema == {"type": "object", "properties": {}}


def test_tool_definition_reads_snake_case_schema():
    """Test tools that expose the schema as input_schema."""
    tool = SimpleNamespace(
        name="ping",
        description=None,
        input_schema={"type": "object", "properties": {"host": {"type": "string"}}},
    )

    definition = tool_definition_from_mcp(tool, "net")

    assert definition.parameter_schema["properties"] == {"host": {"type": "string"}}


@pytest.mark.asyncio
async def test_list_tools():
    """Test that the session's tools are converted."""
    session = AsyncMock()
    session.list_tools.return_value = SimpleNamespace(tools=[
        Tool(name="a", inputSchema={"type": "object"}),
        Tool(name="b", inputSchema={"type": "object"}),
    ])
    transport = MCPServerTransport("srv", session)

    tools = await transport.list_tools()

    assert [(tool.name, tool.server_name) for tool in tools] == [("a", "srv"), ("b", "srv")]


@pytest.mark.asyncio
async def test_invoke_returns_raw_result():
    """Test that results, including error results, are returned as-is."""
    result = CallToolResult(content=[TextContent(type="text", text="boom")], isError=True)
    session = AsyncMock()
    session.call_tool.return_value = result
    transport = MCPServerTransport("srv", session)

    assert await transport.invoke("explode", {"level": 3}) is result
    session.call_tool.assert_awaited_once_with("explode", {"level": 3})


@pytest.mark.asyncio
async def test_invoke_propagates_session_errors():
    """Test that session failures are raised to the caller."""
    session = AsyncMock()
    session.call_tool.side_effect = ConnectionResetError("server went away")
    transport = MCPServerTransport("srv", session)

    with pytest.raises(ConnectionResetError):
        await transport.invoke("anything", {})
