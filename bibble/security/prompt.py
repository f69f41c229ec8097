"""Terminal confirmation prompt for remote tool calls."""

import asyncio
import json

from bibble.security.policy import ConfirmationRequest

RISK_MARKERS = {
    "safe": "[safe]",
    "moderate": "[moderate]",
    "sensitive": "[SENSITIVE]",
}


def format_request(request: ConfirmationRequest) -> str:
    """Render a confirmation request as plain text."""
    lines = [
        "",
        "Tool permission required",
        f"  Tool:   {request.tool_name}",
        f"  Server: {request.server_name}",
        f"  Risk:   {RISK_MARKERS.get(request.risk.value, request.risk.value)} {request.risk_description}",
        f"  Policy: {request.policy}",
    ]
    if request.show_args and request.args:
        preview = json.dumps(request.args, indent=2, default=str)
        if len(preview) > 2000:
            preview = preview[:2000] + "\n  ... (truncated)"
        lines.append("  Arguments:")
        lines.extend(f"    {line}" for line in preview.splitlines())
    return "\n".join(lines)


async def console_confirm(request: ConfirmationRequest) -> bool:
    """Ask on the terminal whether the tool may run.

    Anything other than an explicit yes counts as a refusal.
    """
    print(format_request(request))
    answer = await asyncio.to_thread(input, "Allow this tool call? [y/N]: ")
    return answer.strip().lower() in ("y", "yes")
