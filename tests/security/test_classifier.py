"""Tests for tool risk classification."""

import pytest

from bibble.security.classifier import ToolRisk, classify_tool_risk, describe_risk


@pytest.mark.parametrize("tool_name,expected", [
    ("read_file", ToolRisk.SAFE),
    ("list_directory", ToolRisk.SAFE),
    ("create_directory", ToolRisk.MODERATE),
    ("push_files", ToolRisk.MODERATE),
    ("execute_command", ToolRisk.SENSITIVE),
    ("move_file", ToolRisk.SENSITIVE),
])
def test_known_tools(tool_name, expected):
    """Test the table of well-known tool names."""
    assert classify_tool_risk(tool_name) is expected


@pytest.mark.parametrize("tool_name,expected", [
    ("purge_and_delete_everything", ToolRisk.SENSITIVE),
    ("run_script", ToolRisk.SENSITIVE),
    ("update_ticket", ToolRisk.MODERATE),
    ("fetch_page", ToolRisk.SAFE),
    ("show_status", ToolRisk.SAFE),
])
def test_patterns(tool_name, expected):
    """Test keyword patterns for unknown tools."""
    assert classify_tool_risk(tool_name) is expected


def test_sensitive_pattern_checked_first():
    """Test that a name matching several patterns gets the highest risk."""
    assert classify_tool_risk("get_and_delete_item") is ToolRisk.SENSITIVE


def test_unrecognized_tool_is_moderate():
    """Test the fallback classification."""
    assert classify_tool_risk("zorp") is ToolRisk.MODERATE


def test_overrides_win():
    """Test that overrides beat the table and the patterns."""
    overrides = {"execute_command": "safe", "zorp": "sensitive"}

    assert classify_tool_risk("execute_command", overrides) is ToolRisk.SAFE
    assert classify_tool_risk("zorp", overrides) is ToolRisk.SENSITIVE


def test_descriptions():
    """Test that every level has a description."""
    for risk in ToolRisk:
        assert describe_risk(risk)
