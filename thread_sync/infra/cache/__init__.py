"""Client-side cache of query results with push-driven invalidation."""

from __future__ import annotations

from thread_sync.infra.cache.coordinator import CacheCoordinator, CacheEntry, TopicWatcher
from thread_sync.infra.cache.keys import (
    KEY_KINDS,
    CacheKey,
    InboxKey,
    ThreadDetailKey,
    ThreadListKey,
    Topic,
    UnreadCountKey,
)

__all__ = [
    "KEY_KINDS",
    "CacheCoordinator",
    "CacheEntry",
    "CacheKey",
    "InboxKey",
    "ThreadDetailKey",
    "ThreadListKey",
    "Topic",
    "TopicWatcher",
    "UnreadCountKey",
]
