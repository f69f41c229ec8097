"""Tests for the terminal chat client."""

from unittest.mock import patch

import pytest

from bibble.chat_client import (
    RESULT_PREVIEW_CHARS,
    build_agent,
    handle_command,
    parse_arguments,
    render_event,
    run_query,
    switch_model,
)
from bibble.config.store import DictConfigStore
from bibble.core.agent import LoopState
from bibble.core.errors import ConfigError
from bibble.mcp.client import MCPClient
from bibble.types.models import Message, TextChunk, ToolResultEvent

from conftest import ScriptedAdapter, text


def test_parse_arguments_defaults():
    args = parse_arguments([])

    assert args.config is None
    assert args.model is None
    assert args.provider is None
    assert args.log_level == "WARNING"


def test_parse_arguments():
    args = parse_arguments(["-c", "/tmp/c.json", "-m", "gpt-4o", "-p", "openai", "--log-level", "DEBUG"])

    assert (args.config, args.model, args.provider, args.log_level) == ("/tmp/c.json", "gpt-4o", "openai", "DEBUG")


def test_render_text_chunk(capsys):
    render_event(TextChunk(text="Hello"))

    assert capsys.readouterr().out == "Hello"


def test_render_tool_result_is_cut(capsys):
    render_event(ToolResultEvent(tool_call_id="1", tool_name="read_file", content="x" * (RESULT_PREVIEW_CHARS + 10)))

    out = capsys.readouterr().out
    assert "[read_file] " in out
    assert "x" * RESULT_PREVIEW_CHARS + "..." in out


@pytest.fixture
def store():
    return DictConfigStore({
        "defaultModel": "claude-haiku",
        "userGuidelines": "Be brief.",
        "maxTurns": 4,
        "mcpServers": {"files": {"command": "mcp-files"}},
    })


@pytest.fixture
def built(store):
    with patch("bibble.chat_client.create_adapter", return_value=ScriptedAdapter()) as create:
        agent, mcp_client, context = build_agent(store)
    yield agent, mcp_client, create
    context.teardown()


def test_build_agent(built):
    """Test that configuration reaches the agent and the MCP client."""
    agent, mcp_client, create = built

    create.assert_called_once_with("anthropic")
    assert agent.model == "claude-haiku"
    assert agent.max_turns == 4
    assert isinstance(mcp_client, MCPClient)
    assert mcp_client.list_available_servers() == ["files"]
    assert any(tool.name == "read_file" for tool in agent.tool_definitions)


def test_build_agent_with_overrides(store):
    with patch("bibble.chat_client.create_adapter", return_value=ScriptedAdapter()) as create:
        agent, _, context = build_agent(store, model="gemini-2.0-flash", provider="openrouter")
    context.teardown()

    create.assert_called_once_with("openrouter")
    assert agent.model == "gemini-2.0-flash"


def test_handle_command(built, capsys):
    agent, _, _ = built
    agent.adapter.name = "anthropic"

    assert handle_command(agent, "/model claude-sonnet")
    assert agent.model == "claude-sonnet"
    assert "Model: claude-sonnet (anthropic)" in capsys.readouterr().out
    assert handle_command(agent, "/tools")
    assert "- task_complete (built-in)" in capsys.readouterr().out
    assert not handle_command(agent, "/unknown")


def test_model_command_switches_provider(built):
    """Test that a model served by another provider gets that provider's adapter."""
    agent, _, _ = built
    agent.adapter.name = "anthropic"
    replacement = ScriptedAdapter()
    replacement.name = "openai"

    with patch("bibble.chat_client.create_adapter", return_value=replacement) as create:
        assert handle_command(agent, "/model gpt-4o")

    create.assert_called_once_with("openai")
    assert agent.adapter is replacement
    assert agent.model == "gpt-4o"


def test_model_command_keeps_agent_when_provider_fails(built, capsys):
    agent, _, _ = built
    agent.adapter.name = "anthropic"
    adapter = agent.adapter

    with patch("bibble.chat_client.create_adapter", side_effect=ConfigError("missing API key")):
        assert not switch_model(agent, "gemini-2.0-flash")

    assert agent.adapter is adapter
    assert agent.model == "claude-haiku"
    assert "Cannot switch to gemini-2.0-flash: missing API key" in capsys.readouterr().out


def test_reset_command(built):
    agent, _, _ = built
    agent.conversation.append(Message.user("hello"))

    assert handle_command(agent, "/reset")
    assert [m.role.value for m in agent.get_conversation()] == ["system", "system"]


@pytest.mark.asyncio
async def test_run_query(built, capsys):
    """Test one query streamed to the terminal."""
    agent, _, _ = built
    agent.adapter.turns = [[text("Hi "), text("there")]]

    state = await run_query(agent, "hello")

    assert state is LoopState.COMPLETED
    assert "Hi there" in capsys.readouterr().out
