from __future__ import annotations

import json

from src.tools.base import BaseTool, tool_failed, tool_ok


class JsonParseTool(BaseTool):
    """Parse a JSON string, reporting the error position on failure."""

    @property
    def name(self) -> str:
        return "json_parse"

    @property
    def description(self) -> str:
        return "Parse a JSON string and return the resulting value."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        try:
            value = json.loads(arguments["text"])
        except json.JSONDecodeError as e:
            return tool_failed(f"Invalid JSON at line {e.lineno} column {e.colno}: {e.msg}")
        return tool_ok(value=value)
