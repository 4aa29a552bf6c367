from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TextDelta:
    """A chunk of text content from the model."""

    content: str


@dataclass
class ToolCallInfo:
    """Notification that the model called a tool."""

    tool_name: str
    arguments: dict
    call_id: str


@dataclass
class ToolResultInfo:
    """Outcome of one tool call, as returned to the model.

    repaired: arguments were replaced by a repair round trip before execution.
    """

    tool_name: str
    call_id: str
    result: dict[str, Any]
    repaired: bool = False

    @property
    def success(self) -> bool:
        return bool(self.result.get("success"))


@dataclass
class SessionFinished:
    """Last event of a session that ran to completion (not cancelled/failed)."""

    session_id: str
    finish_reason: str
    steps: int
    model_requests: int
    repair_requests: int
    messages: list[dict[str, Any]] = field(default_factory=list)


SessionEvent = TextDelta | ToolCallInfo | ToolResultInfo | SessionFinished
