"""Current date and time."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from bibble.core.errors import ToolExecutionError
from bibble.core.registry import BuiltInTool
from bibble.types.models import ToolDefinition, ToolParameter, ToolResult


def get_current_datetime(
    params: Dict[str, Any],
    now: Optional[Callable[[], datetime]] = None
) -> ToolResult:
    """Report the current date and time.

    Args:
        params: Dictionary containing:
            - timezone: IANA zone name such as "Europe/Paris" (default: local)
            - format: strftime format for the "formatted" field
        now: Clock returning an aware UTC datetime, for tests
    """
    current = (now or (lambda: datetime.now(timezone.utc)))()

    zone_name = params.get("timezone")
    if zone_name:
        try:
            current = current.astimezone(ZoneInfo(zone_name))
        except (ZoneInfoNotFoundError, ValueError):
            raise ToolExecutionError(f"Unknown timezone: {zone_name}")
    else:
        current = current.astimezone()

    fmt = params.get("format") or "%A, %B %d, %Y %H:%M:%S %Z"
    return ToolResult.ok(data={
        "iso": current.isoformat(),
        "formatted": current.strftime(fmt),
        "timezone": zone_name or current.tzname(),
        "unix": int(current.timestamp()),
    })


def datetime_tools() -> List[BuiltInTool]:
    return [
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "get_current_datetime",
                "Get the current date and time, optionally in a given timezone",
                {
                    "timezone": ToolParameter(
                        type="string", description="IANA timezone, e.g. 'America/New_York'"
                    ),
                    "format": ToolParameter(
                        type="string", description="strftime format string"
                    ),
                },
            ),
            handler=get_current_datetime,
            category="utility",
        ),
    ]
