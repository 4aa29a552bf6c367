"""Tool-call argument parsing and input contract checks."""

from __future__ import annotations

import json
from typing import Any

import jsonschema

from src.infra.errors import ToolArgumentsError


def parse_arguments(raw: str | dict | None) -> dict[str, Any]:
    """Parse raw tool call arguments into a dict.

    Streaming providers deliver arguments as a JSON string; an empty string
    means "no arguments". Raises ToolArgumentsError on invalid JSON or a
    non-object payload.
    """
    if isinstance(raw, dict):
        return raw
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolArgumentsError(f"JSON parse error: {e}") from e
    if not isinstance(parsed, dict):
        raise ToolArgumentsError(f"Expected dict, got {type(parsed).__name__}")
    return parsed


def validate_arguments(arguments: dict[str, Any], schema: dict[str, Any]) -> None:
    """Check arguments against the tool's JSON Schema.

    Raises ToolArgumentsError with the validator's message (prefixed with the
    failing path when there is one).
    """
    try:
        jsonschema.validate(instance=arguments, schema=schema)
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        detail = f"{location}: {e.message}" if location else e.message
        raise ToolArgumentsError(f"Invalid arguments: {detail}") from e
    except jsonschema.SchemaError as e:
        raise ToolArgumentsError(f"Tool input schema is invalid: {e.message}") from e


def parse_and_validate(raw: str | dict | None, schema: dict[str, Any]) -> dict[str, Any]:
    arguments = parse_arguments(raw)
    validate_arguments(arguments, schema)
    return arguments
