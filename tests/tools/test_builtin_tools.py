"""Tests for built-in tool registration."""

import pytest

from bibble.config.schemas import BuiltInToolsConfig
from bibble.core.registry import ToolRegistry
from bibble.tools import builtin_tools, register_builtin_tools

EXPECTED_TOOLS = [
    "copy_file", "create_directory", "delete_file", "delete_lines", "execute_command",
    "find_files", "find_replace_in_file", "get_current_datetime", "get_file_info",
    "get_processes", "insert_text", "kill_process", "list_directory", "move_file",
    "read_file", "search_in_file", "search_in_files", "web_search", "write_file",
]


def test_builtin_tool_names():
    assert sorted(tool.name for tool in builtin_tools()) == EXPECTED_TOOLS


def test_register_builtin_tools():
    registry = ToolRegistry()

    assert register_builtin_tools(registry) == len(EXPECTED_TOOLS)
    assert set(registry.list_by_category()) == {"filesystem", "edit", "search", "process", "utility", "web"}


def test_disabled_builtin_tools():
    registry = ToolRegistry()

    assert register_builtin_tools(registry, BuiltInToolsConfig(enabled=False)) == 0
    assert registry.list_tools() == []


@pytest.mark.asyncio
async def test_registered_tools_are_sandboxed(tmp_path):
    """Test a full call through the registry, including defaults and sandboxing."""
    (tmp_path / "hello.txt").write_text("hi there")
    registry = ToolRegistry()
    register_builtin_tools(registry, BuiltInToolsConfig(allowed_directories=[str(tmp_path)]))

    result = await registry.execute_tool("read_file", {"path": str(tmp_path / "hello.txt")})
    refused = await registry.execute_tool("read_file", {"path": str(tmp_path.parent / "other.txt")})
    missing = await registry.execute_tool("write_file", {"path": str(tmp_path / "x.txt")})

    assert result.success and result.data == "hi there"
    assert not refused.success
    assert "outside the allowed directories" in refused.error
    assert missing.error == "Tool 'write_file' execution failed: Missing required parameter 'content' for tool 'write_file'"
