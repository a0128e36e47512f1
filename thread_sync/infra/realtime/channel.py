"""Push channel interface and the in-process implementation.

A push channel delivers a fire-and-forget "changed" signal per topic. The
signal carries no trusted payload; receivers refetch from the store. Events
may be lost, which the cache's periodic revalidation covers.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PushChannel(Protocol):
    """Topic-scoped change notifications."""

    async def subscribe(self, topic: str, handler: Callable[[str], Awaitable[None]]) -> None: ...

    async def unsubscribe(self, topic: str, handler: Callable[[str], Awaitable[None]]) -> None: ...

    async def publish(self, topic: str) -> int: ...

    def add_reconnect_listener(self, callback: Callable[[], None]) -> None: ...

    async def close(self) -> None: ...


class LocalPushChannel:
    """In-process push channel.

    Events only reach handlers registered in the same process. Used when no
    Redis URL is configured and in tests.

    Example:
        channel = LocalPushChannel()
        await channel.subscribe("thread:7", on_change)
        await channel.publish("thread:7")
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[str], Awaitable[None]]]] = {}
        self._reconnect_listeners: list[Callable[[], None]] = []

    async def subscribe(self, topic: str, handler: Callable[[str], Awaitable[None]]) -> None:
        handlers = self._handlers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)

    async def unsubscribe(self, topic: str, handler: Callable[[str], Awaitable[None]]) -> None:
        handlers = self._handlers.get(topic)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)
        if not handlers:
            del self._handlers[topic]

    async def publish(self, topic: str) -> int:
        """Deliver a change signal to every handler of ``topic``.

        Returns:
            Number of handlers reached
        """
        handlers = list(self._handlers.get(topic, ()))
        for handler in handlers:
            try:
                await handler(topic)
            except Exception as e:
                logger.error(
                    "Push handler failed",
                    extra={"topic": topic, "error": str(e)},
                )
        return len(handlers)

    def topics(self) -> list[str]:
        return list(self._handlers)

    def add_reconnect_listener(self, callback: Callable[[], None]) -> None:
        self._reconnect_listeners.append(callback)

    def reconnect(self) -> None:
        """Notify listeners that the channel came back after an outage."""
        logger.info("Push channel reconnected", extra={"topics": len(self._handlers)})
        for callback in self._reconnect_listeners:
            callback()

    async def close(self) -> None:
        self._handlers.clear()
