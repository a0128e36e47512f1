"""Redis PubSub push channel.

Each topic maps to a Redis channel named ``<prefix><topic>``. The message body
is ignored; only the channel name matters.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from redis.exceptions import ConnectionError as RedisConnectionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from redis.asyncio import Redis
    from redis.asyncio.client import PubSub

    from thread_sync.core.settings import RealtimeSettings

logger = logging.getLogger(__name__)

# Reconnect backoff: 1s, 2s, 4s, ... capped at 10s
RECONNECT_INITIAL_DELAY = 1.0
RECONNECT_MAX_DELAY = 10.0


class RedisPushChannel:
    """Push channel backed by Redis PubSub for cross-process delivery.

    The listener task starts with the first subscription. After a connection
    error it backs off, resumes listening (redis-py resubscribes on connect)
    and notifies reconnect listeners so missed events can be compensated.

    Example:
        channel = RedisPushChannel.from_settings(get_realtime_settings())
        await channel.subscribe("inbox:user-1", on_change)
        ...
        await channel.close()
    """

    def __init__(self, redis_client: Redis, channel_prefix: str = "sync:") -> None:
        self._redis = redis_client
        self._channel_prefix = channel_prefix
        self._pubsub: PubSub | None = None
        self._listener_task: asyncio.Task[None] | None = None
        self._handlers: dict[str, list[Callable[[str], Awaitable[None]]]] = {}
        self._reconnect_listeners: list[Callable[[], None]] = []

    @classmethod
    def from_settings(cls, settings: RealtimeSettings) -> RedisPushChannel:
        from redis.asyncio import Redis

        if not settings.redis_url:
            msg = "RedisPushChannel requires REALTIME_REDIS_URL"
            raise ValueError(msg)
        return cls(Redis.from_url(settings.redis_url), channel_prefix=settings.channel_prefix)

    def _channel(self, topic: str) -> str:
        return f"{self._channel_prefix}{topic}"

    async def subscribe(self, topic: str, handler: Callable[[str], Awaitable[None]]) -> None:
        handlers = self._handlers.setdefault(topic, [])
        if handler in handlers:
            return
        handlers.append(handler)

        if len(handlers) == 1:
            if self._pubsub is None:
                self._pubsub = self._redis.pubsub()
            await self._pubsub.subscribe(self._channel(topic))
            logger.debug("Subscribed to push topic", extra={"topic": topic})

        if self._listener_task is None or self._listener_task.done():
            self._listener_task = asyncio.create_task(self._listen())

    async def unsubscribe(self, topic: str, handler: Callable[[str], Awaitable[None]]) -> None:
        handlers = self._handlers.get(topic)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)
        if handlers:
            return

        del self._handlers[topic]
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self._channel(topic))
            logger.debug("Unsubscribed from push topic", extra={"topic": topic})

    async def publish(self, topic: str) -> int:
        """Publish a change signal.

        Returns:
            Number of Redis subscribers that received it
        """
        return await self._redis.publish(self._channel(topic), "changed")

    def add_reconnect_listener(self, callback: Callable[[], None]) -> None:
        self._reconnect_listeners.append(callback)

    async def close(self) -> None:
        if self._listener_task is not None:
            self._listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener_task
            self._listener_task = None

        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None

        self._handlers.clear()
        await self._redis.aclose()

    async def _listen(self) -> None:
        """Dispatch PubSub messages to local handlers until unsubscribed."""
        failures = 0
        while self._pubsub is not None and self._handlers:
            try:
                async for message in self._pubsub.listen():
                    if failures:
                        failures = 0
                        self._notify_reconnect()
                    if message["type"] != "message":
                        continue
                    await self._dispatch(message["channel"])
                # listen() returns once nothing is subscribed
                return
            except RedisConnectionError as e:
                delay = min(RECONNECT_INITIAL_DELAY * (2**failures), RECONNECT_MAX_DELAY)
                failures += 1
                logger.warning(
                    "Push channel connection lost, retrying",
                    extra={"error": str(e), "delay": delay, "attempt": failures},
                )
                await asyncio.sleep(delay)

    async def _dispatch(self, channel: bytes | str) -> None:
        if isinstance(channel, bytes):
            channel = channel.decode()
        topic = channel.removeprefix(self._channel_prefix)

        for handler in list(self._handlers.get(topic, ())):
            try:
                await handler(topic)
            except Exception as e:
                logger.error(
                    "Push handler failed",
                    extra={"topic": topic, "error": str(e)},
                )

    def _notify_reconnect(self) -> None:
        logger.info("Push channel reconnected", extra={"topics": len(self._handlers)})
        for callback in self._reconnect_listeners:
            callback()
