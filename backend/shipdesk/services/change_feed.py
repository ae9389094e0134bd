from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from shipdesk.core.redis_client import get_redis, json_dumps, json_loads

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    shipment_id: str

    def to_message(self) -> str:
        return json_dumps({"kind": self.kind, "shipmentId": self.shipment_id})

    @classmethod
    def from_message(cls, raw: str | bytes) -> "ChangeEvent":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        payload = json_loads(raw)
        return cls(kind=str(payload.get("kind") or "update"), shipment_id=str(payload.get("shipmentId") or ""))


class InProcessListener:
    def __init__(self, feed: "InProcessChangeFeed") -> None:
        self._feed = feed
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

    async def start(self) -> None:
        self._feed._listeners.add(self)

    def deliver(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    def drain_pending(self) -> int:
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        return dropped

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        while True:
            yield await self._queue.get()

    async def aclose(self) -> None:
        self._feed._listeners.discard(self)


class InProcessChangeFeed:
    """Fan change events out to every listener in this process."""

    def __init__(self) -> None:
        self._listeners: set[InProcessListener] = set()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            listener.deliver(event)

    def listen(self) -> InProcessListener:
        return InProcessListener(self)


class RedisListener:
    def __init__(self, redis: Any, channel: str) -> None:
        self._redis = redis
        self._channel = channel
        self._pubsub: Any = None

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self._channel)

    def drain_pending(self) -> int:
        return 0

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        if self._pubsub is None:
            await self.start()
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                yield ChangeEvent.from_message(message.get("data") or "{}")
            except (ValueError, UnicodeDecodeError):
                logger.warning("change_feed_invalid_message", extra={"channel": self._channel})

    async def aclose(self) -> None:
        pubsub = self._pubsub
        self._pubsub = None
        if pubsub is None:
            return
        with suppress(Exception):
            await pubsub.unsubscribe(self._channel)
        with suppress(Exception):
            await pubsub.aclose()


class RedisChangeFeed:
    """Publish change events on a Redis channel so every process sees them."""

    def __init__(self, redis: Any, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def publish(self, event: ChangeEvent) -> None:
        await self._redis.publish(self._channel, event.to_message())

    def listen(self) -> RedisListener:
        return RedisListener(self._redis, self._channel)


ChangeFeed = InProcessChangeFeed | RedisChangeFeed


def build_change_feed(*, redis_url: str | None, channel: str) -> ChangeFeed:
    redis = get_redis(redis_url or "")
    if redis is None:
        return InProcessChangeFeed()
    logger.info("change_feed_redis", extra={"channel": channel})
    return RedisChangeFeed(redis, channel)
