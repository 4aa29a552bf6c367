from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.tools.base import BaseTool, tool_failed, tool_ok


class CurrentTimeTool(BaseTool):
    """Returns the current date and time."""

    @property
    def name(self) -> str:
        return "current_time"

    @property
    def description(self) -> str:
        return "Get the current date and time, optionally in a specific timezone."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "timezone": {
                    "type": "string",
                    "description": "IANA timezone name, e.g. 'Europe/Berlin'. Defaults to UTC.",
                },
            },
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        tz_name = arguments.get("timezone", "UTC")
        try:
            tz = UTC if tz_name == "UTC" else ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            return tool_failed(f"Unknown timezone: {tz_name}")

        now = datetime.now(tz)
        return tool_ok(
            time=now.strftime("%Y-%m-%d %H:%M:%S"),
            timezone=tz_name,
            iso=now.isoformat(),
        )
