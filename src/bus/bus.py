"""State distribution bus: push minimal updates for subscribed topics.

Producers publish the latest value of a topic; the bus diffs it against the
last value it delivered for that topic and ships only the patch. Topics
nobody subscribes to cost nothing: the producer is never invoked and no
value is cached.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import asdict, is_dataclass
from typing import Any

import structlog
from pydantic import BaseModel

from src.bus.patch import compute_patch, empty_like
from src.bus.topics import Topic
from src.infra.errors import ProducerError

logger = structlog.get_logger()

ValueProducer = Callable[[], Any]
Transport = Callable[["PushUpdate"], Awaitable[None] | None]


class PushUpdatePayload(BaseModel):
    topic: str
    data: Any


class PushUpdate(BaseModel):
    """Envelope delivered to the transport for every update."""

    type: str = "pushUpdate"
    payload: PushUpdatePayload


def to_jsonable(value: Any) -> Any:
    """Normalize producer output into plain JSON-compatible data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class StateDistributionBus:
    """Tracks subscribed topics and delivers diffed updates.

    Same-topic publishes are chained: each waits until the previous publish
    for that topic has finished its cache update before reading the cache.
    Publishes to different topics do not wait on each other.
    """

    def __init__(self) -> None:
        self._topics: set[str] = set()
        self._cache: dict[str, Any] = {}
        self._tails: dict[str, asyncio.Future[None]] = {}
        self._transport: Transport | None = None

    @property
    def transport(self) -> Transport | None:
        return self._transport

    def set_transport(self, transport: Transport | None) -> None:
        self._transport = transport

    def clear(self) -> None:
        """Drop every subscription and cached snapshot."""
        if self._topics:
            logger.info("bus_cleared", topics=len(self._topics))
        self._topics.clear()
        self._cache.clear()

    def drop_snapshot(self, topic: Topic) -> None:
        """Forget the last delivered value so the next publish sends it in full."""
        self._cache.pop(topic.key, None)

    def subscribe(self, topic: Topic) -> None:
        if topic.key not in self._topics:
            self._topics.add(topic.key)
            logger.info("topic_subscribed", topic=topic.key)

    def unsubscribe(self, topic: Topic) -> None:
        if topic.key in self._topics:
            self._topics.discard(topic.key)
            self._cache.pop(topic.key, None)
            logger.info("topic_unsubscribed", topic=topic.key)
        else:
            logger.debug("topic_unsubscribe_inactive", topic=topic.key)

    def is_subscribed(self, topic: Topic) -> bool:
        return topic.key in self._topics

    def active_topics(self) -> list[str]:
        return sorted(self._topics)

    def cached_value(self, topic: Topic) -> Any:
        """Deep copy of the last delivered value (None when nothing cached)."""
        return copy.deepcopy(self._cache.get(topic.key))

    async def publish(self, topic: Topic, producer: ValueProducer) -> bool:
        """Publish the producer's current value for topic.

        Returns True when an update was delivered. Raw delta topics must use
        publish_delta() instead.
        """
        if topic.is_raw:
            raise ValueError(f"Topic {topic.key} carries raw deltas; use publish_delta()")
        if self._transport is None or not self.is_subscribed(topic):
            return False

        key = topic.key
        previous = self._tails.get(key)
        tail: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._tails[key] = tail
        chained = False
        try:
            if previous is not None:
                try:
                    await asyncio.shield(previous)
                except asyncio.CancelledError:
                    # Successors must still wait for everything queued before us.
                    previous.add_done_callback(lambda _: self._release(key, tail))
                    chained = True
                    raise
            return await self._publish_serialized(topic, producer)
        finally:
            if not chained:
                self._release(key, tail)

    def _release(self, key: str, tail: asyncio.Future[None]) -> None:
        if not tail.done():
            tail.set_result(None)
        if self._tails.get(key) is tail:
            del self._tails[key]

    async def publish_delta(self, topic: Topic, data: Any) -> bool:
        """Deliver a raw incremental payload as-is. No diff, no cache."""
        if self._transport is None or not self.is_subscribed(topic):
            return False
        await self._deliver(topic.key, to_jsonable(data))
        return True

    async def _publish_serialized(self, topic: Topic, producer: ValueProducer) -> bool:
        key = topic.key
        # Re-check: the topic may have been dropped while waiting our turn.
        if not self.is_subscribed(topic):
            return False

        try:
            value = producer()
            if inspect.isawaitable(value):
                value = await value
            value = to_jsonable(value)
        except Exception as e:
            error = ProducerError(key, str(e))
            logger.exception("producer_failed", topic=key, code=error.code)
            return False

        if not self.is_subscribed(topic):
            return False

        baseline = self._cache[key] if key in self._cache else empty_like(value)
        patch = compute_patch(baseline, value)
        if not patch:
            logger.debug("publish_skipped_unchanged", topic=key)
            return False

        await self._deliver(key, [op.to_wire() for op in patch])
        if self.is_subscribed(topic):
            self._cache[key] = copy.deepcopy(value)
        logger.debug("publish_delivered", topic=key, ops=len(patch))
        return True

    async def _deliver(self, key: str, data: Any) -> None:
        transport = self._transport
        if transport is None:
            return
        envelope = PushUpdate(payload=PushUpdatePayload(topic=key, data=data))
        result = transport(envelope)
        if inspect.isawaitable(result):
            await result
