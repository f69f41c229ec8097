"""Risk classification for remote tools.

Tools are classified by name: first against explicit overrides, then a table
of well-known MCP tool names, then keyword patterns. Anything unrecognized is
treated as moderate.
"""

import re
from enum import Enum
from typing import Dict, Mapping, Optional, Pattern, Tuple


class ToolRisk(str, Enum):
    """How much damage a tool can do."""

    SAFE = "safe"
    MODERATE = "moderate"
    SENSITIVE = "sensitive"


KNOWN_TOOL_RISKS: Dict[str, ToolRisk] = {
    # Read-only
    "read_file": ToolRisk.SAFE,
    "read_multiple_files": ToolRisk.SAFE,
    "list_directory": ToolRisk.SAFE,
    "get_file_info": ToolRisk.SAFE,
    "search_files": ToolRisk.SAFE,
    "search_code": ToolRisk.SAFE,
    "get_current_datetime": ToolRisk.SAFE,
    "DuckDuckGoWebSearch": ToolRisk.SAFE,
    "UrlContentExtractor": ToolRisk.SAFE,
    "search_memory": ToolRisk.SAFE,
    "get-library-docs": ToolRisk.SAFE,
    "resolve-library-id": ToolRisk.SAFE,
    "get_file_contents": ToolRisk.SAFE,
    "list_issues": ToolRisk.SAFE,
    "get_issue": ToolRisk.SAFE,
    "list_pull_requests": ToolRisk.SAFE,
    "get_pull_request": ToolRisk.SAFE,
    "list_commits": ToolRisk.SAFE,
    "search_issues": ToolRisk.SAFE,
    "search_repositories": ToolRisk.SAFE,
    "puppeteer_screenshot": ToolRisk.SAFE,
    "list_processes": ToolRisk.SAFE,
    "list_sessions": ToolRisk.SAFE,
    "read_output": ToolRisk.SAFE,
    "get_config": ToolRisk.SAFE,
    # Create or modify, not destructive
    "create_directory": ToolRisk.MODERATE,
    "edit_block": ToolRisk.MODERATE,
    "add_memory": ToolRisk.MODERATE,
    "update_task": ToolRisk.MODERATE,
    "create_issue": ToolRisk.MODERATE,
    "add_issue_comment": ToolRisk.MODERATE,
    "create_branch": ToolRisk.MODERATE,
    "create_or_update_file": ToolRisk.MODERATE,
    "push_files": ToolRisk.MODERATE,
    "create_pull_request": ToolRisk.MODERATE,
    "merge_pull_request": ToolRisk.MODERATE,
    "puppeteer_navigate": ToolRisk.MODERATE,
    "puppeteer_click": ToolRisk.MODERATE,
    "puppeteer_fill": ToolRisk.MODERATE,
    "puppeteer_evaluate": ToolRisk.MODERATE,
    "sequentialthinking": ToolRisk.MODERATE,
    # Destructive or code execution
    "execute_command": ToolRisk.SENSITIVE,
    "force_terminate": ToolRisk.SENSITIVE,
    "kill_process": ToolRisk.SENSITIVE,
    "move_file": ToolRisk.SENSITIVE,
    "delete_memory": ToolRisk.SENSITIVE,
    "delete_task": ToolRisk.SENSITIVE,
    "set_config_value": ToolRisk.SENSITIVE,
}

# Checked in order: sensitive, then moderate, then safe.
RISK_PATTERNS: Tuple[Tuple[ToolRisk, Tuple[Pattern[str], ...]], ...] = (
    (ToolRisk.SENSITIVE, (
        re.compile(r"delete|remove|kill|terminate|destroy", re.IGNORECASE),
        re.compile(r"execute|run|cmd|command|shell", re.IGNORECASE),
        re.compile(r"move|mv|rename", re.IGNORECASE),
        re.compile(r"config|setting|preference", re.IGNORECASE),
    )),
    (ToolRisk.MODERATE, (
        re.compile(r"create|add|update|edit|modify|write", re.IGNORECASE),
        re.compile(r"push|commit|merge|fork", re.IGNORECASE),
        re.compile(r"generate|render|process", re.IGNORECASE),
    )),
    (ToolRisk.SAFE, (
        re.compile(r"read|get|list|search|find|view|show", re.IGNORECASE),
        re.compile(r"download|fetch|extract", re.IGNORECASE),
    )),
)

RISK_DESCRIPTIONS: Dict[ToolRisk, str] = {
    ToolRisk.SAFE: "Read-only operations that cannot modify data or system state",
    ToolRisk.MODERATE: "Creates or modifies data but is not destructive",
    ToolRisk.SENSITIVE: "Potentially dangerous operations that could delete data or execute code",
}


def classify_tool_risk(
    tool_name: str,
    overrides: Optional[Mapping[str, str]] = None
) -> ToolRisk:
    """Classify a tool by its risk level.

    Args:
        tool_name: The name of the tool to classify
        overrides: Optional tool name to risk mapping that wins over
            the built-in table and patterns

    Returns:
        The tool's risk level
    """
    if overrides and tool_name in overrides:
        return ToolRisk(overrides[tool_name])

    if tool_name in KNOWN_TOOL_RISKS:
        return KNOWN_TOOL_RISKS[tool_name]

    for risk, patterns in RISK_PATTERNS:
        if any(pattern.search(tool_name) for pattern in patterns):
            return risk

    return ToolRisk.MODERATE


def describe_risk(risk: ToolRisk) -> str:
    """Get a human-readable description of what a risk level means."""
    return RISK_DESCRIPTIONS[risk]
