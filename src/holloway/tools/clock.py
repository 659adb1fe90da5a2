"""Current date/time lookup tool."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import ToolDefinition, ToolExecutionError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/London"

DEFINITION: dict[str, Any] = {
    "name": "get_current_datetime",
    "description": (
        "Returns the current date and time. This is the authoritative source for the current date and time; "
        "always use this tool rather than guessing or assuming the date.\n\n"
        "If no timezone is provided, defaults to Europe/London (UK time). You can optionally provide a "
        "different IANA timezone identifier (e.g., 'America/New_York', 'Asia/Tokyo').\n\n"
        "Returns structured data including the ISO 8601 date, time, day of week, and UTC offset."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "timezone": {
                "type": "string",
                "description": "IANA timezone identifier (e.g., 'Europe/London', 'America/New_York').",
            },
        },
        "required": [],
    },
}


def current_datetime(tz_name: str, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    utc_iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    try:
        local = now.astimezone(ZoneInfo(tz_name))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid timezone requested: %s", tz_name)
        return {"error": f"Invalid timezone '{tz_name}'.", "utc_iso": utc_iso}
    return {
        "timezone": tz_name,
        "date": local.strftime("%Y-%m-%d"),
        "time": local.strftime("%H:%M:%S"),
        "day_of_week": local.strftime("%A"),
        "utc_offset": local.strftime("%z"),
        "utc_iso": utc_iso,
    }


def build(default_timezone: str = DEFAULT_TIMEZONE) -> ToolDefinition:
    async def execute(tool_input: dict[str, Any]) -> str:
        tz_name = tool_input.get("timezone") or default_timezone
        if not isinstance(tz_name, str):
            raise ToolExecutionError("'timezone' must be a string")
        return json.dumps(current_datetime(tz_name), indent=2)

    return ToolDefinition(
        name=DEFINITION["name"],
        description=DEFINITION["description"],
        input_schema=DEFINITION["parameters"],
        execute=execute,
    )
