from __future__ import annotations

import base64
import binascii

from src.tools.base import BaseTool, tool_failed, tool_ok


class Base64EncodeTool(BaseTool):
    @property
    def name(self) -> str:
        return "base64_encode"

    @property
    def description(self) -> str:
        return "Encode a UTF-8 string as Base64."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        encoded = base64.b64encode(arguments["text"].encode("utf-8")).decode("ascii")
        return tool_ok(encoded=encoded)


class Base64DecodeTool(BaseTool):
    @property
    def name(self) -> str:
        return "base64_decode"

    @property
    def description(self) -> str:
        return "Decode a Base64 string back to UTF-8 text."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"encoded": {"type": "string"}},
            "required": ["encoded"],
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        try:
            raw = base64.b64decode(arguments["encoded"], validate=True)
        except (binascii.Error, ValueError) as e:
            return tool_failed(f"Invalid Base64 input: {e}")
        try:
            return tool_ok(text=raw.decode("utf-8"))
        except UnicodeDecodeError:
            return tool_failed("Decoded bytes are not valid UTF-8 text")
