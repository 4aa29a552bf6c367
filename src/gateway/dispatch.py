"""Chat dispatch: provider routing → effective tools → session start → stream → settle.

ChatService sits between the transport (WebSocket RPC) and the core
components. It owns no session state of its own beyond the chat history
store; it feeds every observable change into the state bus.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog

from src.agent.events import SessionEvent, SessionFinished, TextDelta
from src.agent.orchestrator import StreamOrchestrator
from src.agent.provider_registry import ModelRegistry
from src.authz.policy import PolicyUpdate
from src.authz.resolver import ToolAuthorizationResolver
from src.authz.store import PolicyStore
from src.bus.bus import StateDistributionBus
from src.bus.topics import (
    FixedTopic,
    FixedTopicName,
    ScopedTopic,
    ScopedTopicPrefix,
    Topic,
    chat_history_topic,
    session_delta_topic,
    streaming_status_topic,
    tool_status_topic,
)
from src.infra.errors import GatewayError, SessionCancelledError
from src.session.store import ChatHistoryStore, Message

logger = structlog.get_logger()

InstructionsLoader = Callable[[], str]


class ChatService:
    """Runs chat turns and publishes their observable state."""

    def __init__(
        self,
        *,
        orchestrator: StreamOrchestrator,
        models: ModelRegistry,
        resolver: ToolAuthorizationResolver,
        policy_store: PolicyStore,
        history: ChatHistoryStore,
        bus: StateDistributionBus,
        instructions: InstructionsLoader,
    ) -> None:
        self._orchestrator = orchestrator
        self._models = models
        self._resolver = resolver
        self._policy_store = policy_store
        self._history = history
        self._bus = bus
        self._instructions = instructions
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def history(self) -> ChatHistoryStore:
        return self._history

    @property
    def bus(self) -> StateDistributionBus:
        return self._bus

    async def send(
        self,
        *,
        session_id: str,
        content: str,
        provider: str | None = None,
        model: str | None = None,
    ) -> AsyncIterator[SessionEvent]:
        """Run one chat turn and yield its events.

        Raises GatewayError(PROVIDER_NOT_AVAILABLE) for an unknown provider,
        PreconditionFailedError before anything is recorded, and
        SessionCancelledError / GenerationError from the stream itself.
        """
        try:
            chat_history_topic(session_id)
        except ValueError as e:
            raise GatewayError(str(e), code="INVALID_PARAMS") from e
        try:
            model_handle = self._models.resolve(provider, model)
        except KeyError:
            raise GatewayError(
                f"Provider '{provider}' is not available. "
                f"Configured: {self._models.available_providers()}",
                code="PROVIDER_NOT_AVAILABLE",
            )

        user_message = Message(role="user", content=content)
        history = [*self._history.get_history(session_id), user_message.to_wire()]
        handle = await self._orchestrator.start_session(
            session_id,
            model_handle,
            history,
            self._instructions(),
            self._resolver.prepare_effective_set(),
        )
        logger.info(
            "chat_turn_started",
            session_id=session_id,
            provider=model_handle.provider,
            model=model_handle.model,
            source="request" if provider else "default",
        )

        self._history.append(session_id, user_message)
        await self.publish_history(session_id)
        await self.publish_streaming_status()
        streamed: list[str] = []
        try:
            async for event in handle:
                if isinstance(event, TextDelta):
                    streamed.append(event.content)
                    await self._bus.publish_delta(
                        session_delta_topic(session_id), {"content": event.content}
                    )
                elif isinstance(event, SessionFinished):
                    self._history.extend_from_wire(session_id, event.messages)
                yield event
        except SessionCancelledError as e:
            self._record_partial_reply(session_id, "".join(streamed), e.reason)
            raise
        finally:
            await self.publish_streaming_status()
            await self.publish_history(session_id)

    def stop(self) -> str | None:
        return self._orchestrator.abort_active()

    def _record_partial_reply(self, session_id: str, text: str, reason: str) -> None:
        if not text:
            return
        self._history.append(session_id, Message(role="assistant", content=text))
        logger.info(
            "partial_reply_recorded", session_id=session_id, chars=len(text), reason=reason
        )

    async def delete_session(self, session_id: str) -> bool:
        """Delete a chat session. A session that is still streaming cannot be deleted."""
        if self._orchestrator.active_session_id == session_id:
            raise GatewayError(
                f"Session '{session_id}' is streaming; stop it first", code="SESSION_BUSY"
            )
        deleted = self._history.delete(session_id)
        if deleted:
            await self.publish_history(session_id)
        return deleted

    async def set_provider_enabled(self, provider: str, enabled: bool) -> list[dict[str, Any]]:
        try:
            self._models.set_enabled(provider, enabled)
        except KeyError as e:
            raise GatewayError(
                f"Provider '{provider}' is not available. "
                f"Configured: {self._models.available_providers()}",
                code="PROVIDER_NOT_AVAILABLE",
            ) from e
        logger.info("provider_toggled", provider=provider, enabled=enabled)
        await self.publish(FixedTopic(FixedTopicName.provider_status))
        return self._models.status()

    def tool_status(self) -> list[dict[str, Any]]:
        return [g.model_dump(mode="json") for g in self._resolver.compute_status_report()]

    async def set_authorization(self, update: PolicyUpdate) -> list[dict[str, Any]]:
        self._policy_store.update(update)
        await self.publish_tool_status()
        return self.tool_status()

    # ── Bus producers ──

    def streaming_status(self) -> dict[str, Any]:
        active = self._orchestrator.active_session_id
        return {"streaming": active is not None, "session_id": active}

    def producer_for(self, topic: Topic) -> Callable[[], Any] | None:
        """Current-value producer for topic, or None for raw delta topics."""
        if isinstance(topic, ScopedTopic):
            if topic.prefix == ScopedTopicPrefix.chat_history:
                return lambda: self._history.get_history_for_display(topic.entity_id)
            return None
        producers: dict[FixedTopicName, Callable[[], Any]] = {
            FixedTopicName.tool_status: self.tool_status,
            FixedTopicName.streaming_status: self.streaming_status,
            FixedTopicName.custom_instructions: lambda: {"text": self._instructions()},
            FixedTopicName.chat_sessions: self._history.list_sessions,
            FixedTopicName.provider_status: self._models.status,
        }
        return producers[topic.name]

    async def publish(self, topic: Topic) -> bool:
        producer = self.producer_for(topic)
        if producer is None:
            return False
        return await self._bus.publish(topic, producer)

    async def publish_tool_status(self) -> bool:
        return await self.publish(tool_status_topic())

    async def publish_streaming_status(self) -> bool:
        return await self.publish(streaming_status_topic())

    async def publish_history(self, session_id: str) -> None:
        await self.publish(chat_history_topic(session_id))
        await self.publish(FixedTopic(FixedTopicName.chat_sessions))

    def on_catalogue_changed(self) -> None:
        """ToolRegistry listener: republish tool status in the background."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("catalogue_changed_without_loop")
            return
        task = loop.create_task(self.publish_tool_status())
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("background_publish_failed", error=str(error), exc_info=error)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
