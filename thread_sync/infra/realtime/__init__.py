"""Push channels and the bridge that turns push events into cache invalidation."""

from __future__ import annotations

from thread_sync.infra.realtime.bridge import InvalidationBridge
from thread_sync.infra.realtime.channel import LocalPushChannel, PushChannel
from thread_sync.infra.realtime.redis import RedisPushChannel

__all__ = [
    "InvalidationBridge",
    "LocalPushChannel",
    "PushChannel",
    "RedisPushChannel",
]
