"""Custom exception hierarchy for Switchboard.

All application-specific exceptions inherit from SwitchboardError,
which carries an error code for RPC error frame mapping.

Session-level failures (precondition, generation) propagate to the caller.
Tool-call and producer failures have containment boundaries and are only
raised internally, then turned into structured results.
"""

from __future__ import annotations


class SwitchboardError(Exception):
    """Base exception for all Switchboard errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class GatewayError(SwitchboardError):
    """Errors in the Gateway / WebSocket layer."""

    def __init__(self, message: str, *, code: str = "GATEWAY_ERROR") -> None:
        super().__init__(message, code=code)


class SessionError(SwitchboardError):
    """Errors in the stream session lifecycle."""

    def __init__(self, message: str, *, code: str = "SESSION_ERROR") -> None:
        super().__init__(message, code=code)


class PreconditionFailedError(SessionError):
    """Session start rejected before any side effect took place.

    Raised for a missing or disabled model handle, or an empty/malformed
    history. The previously active session (if any) is left untouched.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="PRECONDITION_FAILED")


class SessionCancelledError(SessionError):
    """Terminal, non-error outcome of cooperative cancellation.

    Callers must not report this as a failure to users.
    """

    def __init__(self, session_id: str, reason: str) -> None:
        super().__init__(
            f"Session {session_id} cancelled: {reason}", code="CANCELLED"
        )
        self.session_id = session_id
        self.reason = reason


class GenerationError(SessionError):
    """Any non-cancellation failure of the underlying model call."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="GENERATION_FAILED")


class LLMError(SwitchboardError):
    """Errors from LLM API calls (timeouts, rate limits, failures)."""

    def __init__(self, message: str, *, code: str = "LLM_ERROR") -> None:
        super().__init__(message, code=code)


class ToolCallError(SwitchboardError):
    """A single tool invocation (or its repair attempt) failed.

    Contained at the tool-result level; never aborts a session.
    """

    def __init__(self, message: str, *, code: str = "TOOL_CALL_FAILED") -> None:
        super().__init__(message, code=code)


class ToolArgumentsError(ToolCallError):
    """Tool call arguments violate the tool's input contract."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_ARGS")


class ProducerError(SwitchboardError):
    """A bus value producer raised while computing a topic value."""

    def __init__(self, topic: str, message: str) -> None:
        super().__init__(f"Producer for '{topic}' failed: {message}", code="PRODUCER_FAILED")
        self.topic = topic
