from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

import structlog

logger = structlog.get_logger()

Role = Literal["user", "assistant", "system", "tool"]


@dataclass
class Message:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """OpenAI chat message shape."""
        msg: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = self.tool_calls
        if self.tool_call_id:
            msg["tool_call_id"] = self.tool_call_id
        return msg

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Message:
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            tool_calls=data.get("tool_calls"),
            tool_call_id=data.get("tool_call_id"),
        )


@dataclass
class Session:
    id: str
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ChatHistoryStore:
    """In-process chat history, keyed by session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get_or_create(self, session_id: str) -> Session:
        if session_id not in self._sessions:
            self._sessions[session_id] = Session(id=session_id)
            logger.info("session_created", session_id=session_id)
        return self._sessions[session_id]

    def append(self, session_id: str, message: Message) -> None:
        session = self.get_or_create(session_id)
        session.messages.append(message)
        session.updated_at = message.timestamp

    def extend_from_wire(self, session_id: str, messages: list[dict[str, Any]]) -> None:
        for data in messages:
            self.append(session_id, Message.from_wire(data))

    def get_history(self, session_id: str) -> list[dict[str, Any]]:
        """Full history in wire format, for sending to a model."""
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return [m.to_wire() for m in session.messages]

    def get_history_for_display(self, session_id: str) -> list[dict[str, Any]]:
        """User and assistant text only; tool plumbing is hidden."""
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return [
            {"role": m.role, "content": m.content, "timestamp": m.timestamp.isoformat()}
            for m in session.messages
            if m.role in ("user", "assistant") and m.content
        ]

    def delete(self, session_id: str) -> bool:
        """Remove a session and its messages. Returns False if it did not exist."""
        if self._sessions.pop(session_id, None) is None:
            return False
        logger.info("session_deleted", session_id=session_id)
        return True

    def list_sessions(self) -> list[dict[str, Any]]:
        """Session summaries, most recently updated first."""
        return [
            {
                "id": s.id,
                "message_count": len(s.messages),
                "updated_at": s.updated_at.isoformat(),
            }
            for s in sorted(self._sessions.values(), key=lambda s: s.updated_at, reverse=True)
        ]
