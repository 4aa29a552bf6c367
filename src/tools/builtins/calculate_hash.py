from __future__ import annotations

import hashlib

from src.tools.base import BaseTool, tool_ok

_ALGORITHMS = ("md5", "sha1", "sha256", "sha512")


class CalculateHashTool(BaseTool):
    """Hex digest of a UTF-8 string."""

    @property
    def name(self) -> str:
        return "calculate_hash"

    @property
    def description(self) -> str:
        return f"Calculate the hex digest of text using one of: {', '.join(_ALGORITHMS)}."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string"},
                "algorithm": {"type": "string", "enum": list(_ALGORITHMS)},
            },
            "required": ["text", "algorithm"],
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        algorithm = arguments["algorithm"]
        digest = hashlib.new(algorithm, arguments["text"].encode("utf-8")).hexdigest()
        return tool_ok(algorithm=algorithm, digest=digest)
