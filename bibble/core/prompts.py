"""System prompt text and the tool catalogue appended to it."""

import json
from typing import Dict, List

from bibble.types.models import ToolDefinition

BUILT_IN_GROUP = "built-in"

DEFAULT_SYSTEM_PROMPT = """
# ROLE:

You are an intelligent agent with access to tools. Your goal is to help users by using the available tools when needed to gather information, perform actions, or solve problems.

# TOOL USAGE RULES:

When calling tools, you MUST follow these rules:

1. **Never call a tool without its required parameters**
2. **Check the tool's required parameters** before calling it
3. **Provide ALL required parameters** with appropriate values
4. **Use the exact parameter names** shown in the tool documentation

If you don't have the information needed for a required parameter, ask the user for it instead of calling the tool without parameters.

# WORKFLOW:

1. **Understand the task** - Read the user's request carefully
2. **Plan your approach** - Think about which tools you might need
3. **Use tools systematically** - Call tools with proper parameters to gather information
4. **Provide complete answers** - Use what the tools return to give thorough responses
5. **Continue until complete** - Keep working until the request is fully addressed

Plan before each function call and reflect on the outcome of previous calls.

When the task is finished, give your final answer and call `task_complete`. When you need more information from the user, call `ask_question`.
""".strip()

USER_GUIDELINES_PREFIX = "Additional user guidelines: "


def _group_by_server(tools: List[ToolDefinition]) -> Dict[str, List[ToolDefinition]]:
    grouped: Dict[str, List[ToolDefinition]] = {}
    for tool in tools:
        grouped.setdefault(tool.server_name or BUILT_IN_GROUP, []).append(tool)
    return grouped


def format_tools_list(tools: List[ToolDefinition]) -> str:
    """Render a Markdown catalogue of tools grouped by server.

    Control-flow tools are left out; they are described in the prompt itself.
    """
    lines = [
        "# Available Tools",
        "",
        "You have access to the following tools. Each tool has specific parameters that you MUST provide when calling it.",
        "",
    ]

    for server_name, server_tools in _group_by_server(tools).items():
        lines.append(f"## Server: {server_name}")
        lines.append("")
        for tool in server_tools:
            lines.append(f"### {tool.name}")
            lines.append(tool.description or "No description provided.")
            lines.append("")

            properties = tool.parameter_schema.get("properties") or {}
            if not properties:
                continue

            required = set(tool.parameter_schema.get("required", []))
            lines.append("**Parameters:**")
            lines.append("")
            for param_name, details in properties.items():
                marker = " (required)" if param_name in required else ""
                lines.append(f"- **{param_name}{marker}**: {details.get('description', 'No description')}")
                if details.get("type"):
                    lines.append(f"  - Type: `{details['type']}`")
                if details.get("enum"):
                    allowed = ", ".join(f"`{value}`" for value in details["enum"])
                    lines.append(f"  - Allowed values: {allowed}")
                if "default" in details:
                    lines.append(f"  - Default: `{json.dumps(details['default'], default=str)}`")
            lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def build_system_prompt(tools: List[ToolDefinition]) -> str:
    """The default prompt followed by the tool catalogue."""
    if not tools:
        return DEFAULT_SYSTEM_PROMPT
    return f"{DEFAULT_SYSTEM_PROMPT}\n\n{format_tools_list(tools)}"
