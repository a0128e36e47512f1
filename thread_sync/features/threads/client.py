"""Consumer-facing facade over pager, cache, reconciler and push channel."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Self

from thread_sync.core.settings import get_cache_settings, get_realtime_settings
from thread_sync.features.threads.read_state import ReadStateReconciler
from thread_sync.features.threads.schemas import Inbox, ThreadDetail, UnreadResponses
from thread_sync.features.threads.service import ThreadPage, ThreadPager
from thread_sync.infra.cache import (
    CacheCoordinator,
    InboxKey,
    ThreadDetailKey,
    ThreadListKey,
    Topic,
    UnreadCountKey,
)
from thread_sync.infra.realtime import InvalidationBridge, LocalPushChannel, RedisPushChannel

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncEngine

    from thread_sync.core.settings import (
        CacheSettings,
        DatabaseSettings,
        PaginationSettings,
        RealtimeSettings,
        SyncSettings,
    )
    from thread_sync.features.threads.store import ThreadStore
    from thread_sync.infra.cache import CacheKey
    from thread_sync.infra.realtime import PushChannel

logger = logging.getLogger(__name__)

DEFAULT_INBOX_LIMIT = 50


class ThreadSyncClient:
    """One viewer's synchronized view of threads, inbox and unread counts.

    Example:
        async with ThreadSyncClient(store, viewer_id="user-1") as client:
            page = await client.fetch_page()
            await client.subscribe(InboxKey(user_id="user-1"))
            client.mark_thread_read(page.rows[0].id)
            print(await client.get_unread_total())
    """

    def __init__(
        self,
        store: ThreadStore,
        viewer_id: str,
        *,
        channel: PushChannel | None = None,
        pagination_settings: PaginationSettings | None = None,
        cache_settings: CacheSettings | None = None,
        sync_settings: SyncSettings | None = None,
        realtime_settings: RealtimeSettings | None = None,
    ) -> None:
        self.viewer_id = viewer_id
        self.store = store
        realtime = realtime_settings or get_realtime_settings()

        self.pager = ThreadPager(store, pagination_settings, sync_settings)
        self.cache = CacheCoordinator(cache_settings or get_cache_settings(), loader=self.fetcher_for)
        self.channel: PushChannel = channel or LocalPushChannel()
        self.bridge = InvalidationBridge(
            self.cache,
            self.channel,
            debounce_seconds=realtime.debounce_seconds,
        )
        self.reconciler = ReadStateReconciler(store, self.cache, viewer_id, sync_settings)
        self._engine: AsyncEngine | None = None

    @classmethod
    def from_settings(
        cls,
        viewer_id: str,
        db_settings: DatabaseSettings | None = None,
        realtime_settings: RealtimeSettings | None = None,
    ) -> ThreadSyncClient:
        """Build a client on the SQL store and the configured push channel."""
        from thread_sync.core.database import create_engine, create_session_factory
        from thread_sync.features.threads.store import SqlThreadStore

        realtime = realtime_settings or get_realtime_settings()
        engine = create_engine(db_settings)
        channel: PushChannel
        if realtime.is_configured:
            channel = RedisPushChannel.from_settings(realtime)
        else:
            channel = LocalPushChannel()

        client = cls(
            SqlThreadStore(create_session_factory(engine)),
            viewer_id,
            channel=channel,
            realtime_settings=realtime,
        )
        client._engine = engine
        return client

    # ──────────────────────────────────────────────────────────────
    # Fetchers
    # ──────────────────────────────────────────────────────────────

    def fetcher_for(self, key: CacheKey) -> Callable[[], Awaitable[Any]]:
        """Map a cache key to the store call that produces its value."""
        if isinstance(key, ThreadListKey):
            return lambda: self.pager.fetch_page(key.page_size, key.cursor)

        if isinstance(key, ThreadDetailKey):
            async def fetch_detail() -> ThreadDetail:
                responses = await self.store.fetch_responses(key.thread_id)
                return ThreadDetail(thread_id=key.thread_id, viewer_id=key.viewer_id, responses=responses)

            return fetch_detail

        if isinstance(key, InboxKey):
            async def fetch_inbox() -> Inbox:
                items = await self.store.fetch_inbox(key.user_id, key.limit)
                return Inbox(user_id=key.user_id, items=items)

            return fetch_inbox

        if isinstance(key, UnreadCountKey):
            async def fetch_unread() -> UnreadResponses:
                rows = await self.store.fetch_unread_responses(key.user_id)
                return UnreadResponses(user_id=key.user_id, rows=rows)

            return fetch_unread

        msg = f"Unknown cache key {key!r}"
        raise TypeError(msg)

    # ──────────────────────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────────────────────

    async def fetch_page(self, page_size: int | None = None, cursor: str | None = None) -> ThreadPage:
        """One page of the thread list, served from cache when possible."""
        key = ThreadListKey(page_size=self.pager.resolve_page_size(page_size), cursor=cursor)
        return await self.cache.get_or_fetch(key)

    async def get_thread(self, thread_id: int) -> ThreadDetail:
        return await self.cache.get_or_fetch(ThreadDetailKey(thread_id=thread_id, viewer_id=self.viewer_id))

    async def get_inbox(self, limit: int = DEFAULT_INBOX_LIMIT) -> Inbox:
        return await self.cache.get_or_fetch(InboxKey(user_id=self.viewer_id, limit=limit))

    async def unread_count(self, thread_id: int) -> int:
        """Unread responses under one thread, counted from its rows."""
        return (await self.get_thread(thread_id)).unread_count

    async def get_unread_total(self, user_id: str | None = None) -> int:
        """Unread responses across a user's threads (the viewer's by default), counted from rows."""
        unread: UnreadResponses = await self.cache.get_or_fetch(UnreadCountKey(user_id=user_id or self.viewer_id))
        return unread.count

    def is_out_of_date(self, key: CacheKey) -> bool:
        return self.cache.is_out_of_date(key)

    # ──────────────────────────────────────────────────────────────
    # Mutations
    # ──────────────────────────────────────────────────────────────

    def mark_thread_read(self, thread_id: int) -> asyncio.Task[int]:
        return self.reconciler.mark_thread_read(thread_id)

    def mark_response_read(self, response_id: int, thread_id: int) -> asyncio.Task[bool]:
        return self.reconciler.mark_response_read(response_id, thread_id)

    # ──────────────────────────────────────────────────────────────
    # Subscriptions and invalidation
    # ──────────────────────────────────────────────────────────────

    async def subscribe(self, key: CacheKey) -> None:
        await self.cache.subscribe(key)

    async def unsubscribe(self, key: CacheKey) -> None:
        await self.cache.unsubscribe(key)

    def invalidate(self, scope: CacheKey | Topic | str | Callable[[CacheKey], bool]) -> int:
        """Mark a key, a topic (object or name) or a predicate's matches dirty."""
        if isinstance(scope, str):
            scope = Topic(scope)
        return self.cache.invalidate(scope)

    # ──────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic revalidation sweep."""
        self.cache.start()

    async def close(self) -> None:
        """End the session: stop background work and drop cached state."""
        await self.reconciler.close()
        await self.bridge.close()
        await self.cache.stop()
        self.cache.clear()
        await self.channel.close()
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        logger.info("Client closed", extra={"viewer_id": self.viewer_id})

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
