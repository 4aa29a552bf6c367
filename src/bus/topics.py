"""The closed set of topics a client may subscribe to.

Fixed topics carry one piece of gateway-wide state. Scoped topics carry
per-entity state and are keyed ``prefix/entity_id``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from src.infra.errors import GatewayError


class FixedTopicName(StrEnum):
    tool_status = "allToolsStatusUpdate"
    streaming_status = "streamingStatus"
    custom_instructions = "customInstructions"
    chat_sessions = "chatSessionsUpdate"
    provider_status = "providerStatus"


class ScopedTopicPrefix(StrEnum):
    chat_history = "chatHistoryUpdate"
    session_delta = "sessionDelta"


# Topics whose payloads are incremental deltas: delivered verbatim, never diffed.
RAW_DELTA_PREFIXES = frozenset({ScopedTopicPrefix.session_delta})


@dataclass(frozen=True)
class FixedTopic:
    name: FixedTopicName

    @property
    def key(self) -> str:
        return self.name.value

    @property
    def is_raw(self) -> bool:
        return False


@dataclass(frozen=True)
class ScopedTopic:
    prefix: ScopedTopicPrefix
    entity_id: str

    def __post_init__(self) -> None:
        if not self.entity_id or "/" in self.entity_id:
            raise ValueError(f"Invalid entity id for topic {self.prefix}: {self.entity_id!r}")

    @property
    def key(self) -> str:
        return f"{self.prefix.value}/{self.entity_id}"

    @property
    def is_raw(self) -> bool:
        return self.prefix in RAW_DELTA_PREFIXES


Topic = FixedTopic | ScopedTopic


def parse_topic(raw: str) -> Topic:
    """Parse a wire topic string. Raises GatewayError(INVALID_TOPIC)."""
    prefix, sep, entity_id = raw.partition("/")
    try:
        if not sep:
            return FixedTopic(FixedTopicName(raw))
        return ScopedTopic(ScopedTopicPrefix(prefix), entity_id)
    except ValueError as e:
        raise GatewayError(f"Unknown topic: {raw!r}", code="INVALID_TOPIC") from e


def tool_status_topic() -> FixedTopic:
    return FixedTopic(FixedTopicName.tool_status)


def streaming_status_topic() -> FixedTopic:
    return FixedTopic(FixedTopicName.streaming_status)


def chat_history_topic(session_id: str) -> ScopedTopic:
    return ScopedTopic(ScopedTopicPrefix.chat_history, session_id)


def session_delta_topic(session_id: str) -> ScopedTopic:
    return ScopedTopic(ScopedTopicPrefix.session_delta, session_id)
