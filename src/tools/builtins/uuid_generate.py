from __future__ import annotations

import uuid

from src.tools.base import BaseTool, tool_ok


class UuidGenerateTool(BaseTool):
    @property
    def name(self) -> str:
        return "uuid_generate"

    @property
    def description(self) -> str:
        return "Generate one or more random (version 4) UUIDs."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "count": {"type": "integer", "minimum": 1, "maximum": 100},
            },
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        count = arguments.get("count", 1)
        return tool_ok(uuids=[str(uuid.uuid4()) for _ in range(count)])
