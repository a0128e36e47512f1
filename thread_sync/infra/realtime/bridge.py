"""Push channel to cache invalidation bridge.

Architecture:
    store change -> push channel -> InvalidationBridge -> CacheCoordinator.invalidate

The bridge:
1. Follows the topics the cache has subscribers for
2. Coalesces bursts of events on one topic within the debounce window
3. Invalidates the topic's keys once per window
4. On reconnect, invalidates every watched topic to cover missed events
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from thread_sync.infra.cache.keys import Topic
from thread_sync.infra.metrics.tracking import track_push_event

if TYPE_CHECKING:
    from thread_sync.infra.cache.coordinator import CacheCoordinator
    from thread_sync.infra.realtime.channel import PushChannel

logger = logging.getLogger(__name__)


class InvalidationBridge:
    """Turns push events into debounced cache invalidations.

    Example:
        bridge = InvalidationBridge(cache, LocalPushChannel(), debounce_seconds=1.0)
        await cache.subscribe(InboxKey(user_id="user-1"))  # bridge now watches inbox:user-1
    """

    def __init__(
        self,
        cache: CacheCoordinator,
        channel: PushChannel,
        *,
        debounce_seconds: float = 1.0,
    ) -> None:
        self._cache = cache
        self._channel = channel
        self._debounce = debounce_seconds
        self._pending: dict[str, asyncio.TimerHandle] = {}
        self._watched: set[str] = set()

        cache.attach_watcher(self)
        channel.add_reconnect_listener(self.handle_reconnect)

    async def watch(self, topic: Topic) -> None:
        if topic.name in self._watched:
            return
        self._watched.add(topic.name)
        await self._channel.subscribe(topic.name, self._on_event)
        logger.debug("Watching topic", extra={"topic": topic.name})

    async def unwatch(self, topic: Topic) -> None:
        if topic.name not in self._watched:
            return
        self._watched.discard(topic.name)
        self._cancel_pending(topic.name)
        await self._channel.unsubscribe(topic.name, self._on_event)
        logger.debug("Stopped watching topic", extra={"topic": topic.name})

    @property
    def watched(self) -> set[str]:
        return set(self._watched)

    async def _on_event(self, topic: str) -> None:
        track_push_event(Topic(topic).kind)

        if self._debounce <= 0:
            self._flush(topic)
            return

        # Later events inside the window ride along with the pending flush
        if topic in self._pending:
            return
        loop = asyncio.get_running_loop()
        self._pending[topic] = loop.call_later(self._debounce, self._flush, topic)

    def _flush(self, topic: str) -> None:
        self._pending.pop(topic, None)
        matched = self._cache.invalidate(Topic(topic))
        logger.debug("Push event applied", extra={"topic": topic, "matched": matched})

    def handle_reconnect(self) -> int:
        """Invalidate every watched topic after the channel reconnects.

        Returns:
            Number of cache entries matched
        """
        for topic in list(self._pending):
            self._cancel_pending(topic)

        matched = sum(self._cache.invalidate(Topic(name)) for name in self._watched)
        logger.info(
            "Recovered from push channel reconnect",
            extra={"topics": len(self._watched), "matched": matched},
        )
        return matched

    def _cancel_pending(self, topic: str) -> None:
        handle = self._pending.pop(topic, None)
        if handle is not None:
            handle.cancel()

    async def close(self) -> None:
        """Cancel pending flushes and stop following every topic."""
        for topic in list(self._pending):
            self._cancel_pending(topic)
        for name in list(self._watched):
            await self.unwatch(Topic(name))
