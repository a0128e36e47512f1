"""Cache and invalidation coordinator.

The coordinator owns the in-memory map of cached query results. Every other
component reads and writes cached values only through it.

Strategies:
- Stale-while-revalidate: dirty or expired entries keep serving while a
  background refetch runs
- Last write wins by issue order: every fetch and optimistic mutation takes a
  sequence number when it is issued; a result that lands after a newer write
  is discarded
- Overlays: transforms applied to every result that lands on matching keys
  (keeps optimistic state while a commit is in flight)
- LRU eviction among entries without subscribers when a capacity is set

Example:
    cache = CacheCoordinator(loader=client.fetcher_for)
    detail = await cache.get_or_fetch(ThreadDetailKey(thread_id=7, viewer_id="u1"))
    cache.invalidate(Topic.thread(7))
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
import contextlib
from dataclasses import dataclass
from functools import partial
import itertools
import logging
import time
from typing import TYPE_CHECKING, Any, Protocol

from thread_sync.core.settings import get_cache_settings
from thread_sync.infra.cache.keys import (
    CacheKey,
    InboxKey,
    ThreadDetailKey,
    ThreadListKey,
    Topic,
    UnreadCountKey,
)
from thread_sync.infra.metrics import tracking

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from thread_sync.core.settings import CacheSettings

logger = logging.getLogger(__name__)


class TopicWatcher(Protocol):
    """Receives topic interest changes so it can follow the push channel."""

    async def watch(self, topic: Topic) -> None: ...

    async def unwatch(self, topic: Topic) -> None: ...


@dataclass(slots=True)
class CacheEntry:
    """Last-known result for one key.

    Attributes:
        key: Tagged cache key
        value: Last-known result (never a source of truth)
        fetched_at: Clock reading when the value landed
        seq: Issue sequence of the write that produced the value
        dirty: Set by invalidation until a newer result lands
        dirty_since: Clock reading when the entry became dirty
        invalidated_seq: Issue sequence of the last invalidation; results
            issued before it land without clearing dirty
    """

    key: CacheKey
    value: Any
    fetched_at: float
    seq: int
    dirty: bool = False
    dirty_since: float | None = None
    invalidated_seq: int = 0


class CacheCoordinator:
    """Staleness-aware cache of query results keyed by tagged cache keys.

    Args:
        settings: Cache settings. Defaults to get_cache_settings().
        loader: Maps a key to a fetcher. Used whenever a call does not supply
            its own fetcher (background refetch, forced refetch).
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        settings: CacheSettings | None = None,
        *,
        loader: Callable[[CacheKey], Callable[[], Awaitable[Any]]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_cache_settings()
        self._loader = loader
        self._clock = clock

        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._subscribers: dict[CacheKey, int] = {}
        self._fetchers: dict[CacheKey, Callable[[], Awaitable[Any]]] = {}
        self._inflight: dict[CacheKey, asyncio.Task[Any]] = {}
        self._overlays: dict[int, tuple[Callable[[CacheKey], bool], Callable[[Any], Any]]] = {}
        self._overlay_ids = itertools.count(1)
        self._seq = itertools.count(1)

        self._topic_refs: dict[Topic, int] = {}
        self._watcher: TopicWatcher | None = None
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ============================================================================
    # Configuration
    # ============================================================================

    def attach_watcher(self, watcher: TopicWatcher) -> None:
        """Register the component that follows topic interest on the push channel."""
        self._watcher = watcher

    def stale_after(self, kind: str) -> float:
        """Revalidation window in seconds for a key kind."""
        windows = {
            ThreadListKey.kind: self.settings.thread_list_stale_after,
            ThreadDetailKey.kind: self.settings.thread_detail_stale_after,
            InboxKey.kind: self.settings.inbox_stale_after,
            UnreadCountKey.kind: self.settings.unread_count_stale_after,
        }
        return windows[kind]

    # ============================================================================
    # Reads and writes
    # ============================================================================

    def get(self, key: CacheKey) -> CacheEntry | None:
        """Return the entry for ``key`` and mark it recently used."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def keys(self, target: CacheKey | Topic | Callable[[CacheKey], bool] | None = None) -> list[CacheKey]:
        """Cached keys matching a key, topic or predicate (all keys when None)."""
        if target is None:
            return list(self._entries)
        match = self._matcher(target)
        return [key for key in self._entries if match(key)]

    def set(self, key: CacheKey, value: Any, seq: int | None = None) -> bool:
        """Store a result for ``key``.

        Args:
            key: Cache key
            value: Result to store
            seq: Issue sequence of the request that produced the value. A
                value older than the entry's current write is discarded.

        Returns:
            True if the value was applied, False if it was discarded
        """
        if seq is None:
            seq = next(self._seq)

        current = self._entries.get(key)
        if current is not None and current.seq > seq:
            logger.debug(
                "Discarding superseded result",
                extra={"cache_key": repr(key), "seq": seq, "current_seq": current.seq},
            )
            return False

        invalidated_seq = current.invalidated_seq if current is not None else 0
        # Issued before the last invalidation, so it may predate the change
        still_dirty = current is not None and seq < invalidated_seq
        self._entries[key] = CacheEntry(
            key=key,
            value=self._apply_overlays(key, value),
            fetched_at=self._clock(),
            seq=seq,
            dirty=still_dirty,
            dirty_since=current.dirty_since if still_dirty else None,
            invalidated_seq=invalidated_seq,
        )
        self._entries.move_to_end(key)
        self._evict()
        tracking.set_cache_size(len(self._entries))
        return True

    def mutate(
        self,
        target: CacheKey | Topic | Callable[[CacheKey], bool],
        fn: Callable[[Any], Any],
    ) -> int:
        """Apply an optimistic write synchronously.

        Each matching entry takes a new issue sequence, so any fetch issued
        before the mutation is discarded when it lands.

        Returns:
            Number of entries mutated
        """
        keys = self.keys(target)
        for key in keys:
            entry = self._entries[key]
            entry.value = fn(entry.value)
            entry.seq = next(self._seq)
        return len(keys)

    def snapshot(self, target: CacheKey | Topic | Callable[[CacheKey], bool]) -> dict[CacheKey, Any]:
        """Current values of matching entries."""
        return {key: self._entries[key].value for key in self.keys(target)}

    def restore(self, key: CacheKey, value: Any) -> None:
        """Put back a previously captured value, marked dirty.

        Active overlays apply to the restored value like to any other write.
        """
        now = self._clock()
        current = self._entries.get(key)
        self._entries[key] = CacheEntry(
            key=key,
            value=self._apply_overlays(key, value),
            fetched_at=current.fetched_at if current is not None else now,
            seq=next(self._seq),
            dirty=True,
            dirty_since=now,
            invalidated_seq=current.invalidated_seq if current is not None else 0,
        )
        self._evict()
        tracking.set_cache_size(len(self._entries))

    def add_overlay(
        self,
        target: CacheKey | Topic | Callable[[CacheKey], bool],
        transform: Callable[[Any], Any],
    ) -> int:
        """Apply ``transform`` to every result that lands on matching keys.

        Returns:
            Token for remove_overlay()
        """
        token = next(self._overlay_ids)
        self._overlays[token] = (self._matcher(target), transform)
        return token

    def remove_overlay(self, token: int) -> None:
        self._overlays.pop(token, None)

    # ============================================================================
    # Staleness
    # ============================================================================

    def is_stale(self, key: CacheKey) -> bool:
        """Dirty, or older than the revalidation window of its kind."""
        entry = self._entries.get(key)
        if entry is None:
            return True
        return self._entry_is_stale(entry)

    def is_out_of_date(self, key: CacheKey) -> bool:
        """Dirty for longer than the revalidation window of its kind."""
        entry = self._entries.get(key)
        if entry is None or not entry.dirty or entry.dirty_since is None:
            return False
        return self._clock() - entry.dirty_since > self.stale_after(key.kind)

    def invalidate(self, target: CacheKey | Topic | Callable[[CacheKey], bool]) -> int:
        """Mark matching entries dirty and refetch the subscribed ones.

        Dirty entries keep serving their last-known value. Entries without
        subscribers are only marked and revalidate on next read.

        Args:
            target: A cache key, a Topic, or a predicate over keys

        Returns:
            Number of cached entries matched
        """
        match = self._matcher(target)
        now = self._clock()
        mark = next(self._seq)
        matched = 0

        for key, entry in self._entries.items():
            if not match(key):
                continue
            matched += 1
            entry.invalidated_seq = mark
            if not entry.dirty:
                entry.dirty = True
                entry.dirty_since = now
                tracking.track_cache_invalidation(key.kind)

        # A fetch already in flight may predate the change, so issue a new one
        for key in [k for k in self._subscribers if match(k)]:
            self._schedule_refresh(key, force=True)

        logger.debug(
            "Cache invalidated",
            extra={"target": str(target) if isinstance(target, Topic) else repr(target), "matched": matched},
        )
        return matched

    # ============================================================================
    # Fetching
    # ============================================================================

    async def get_or_fetch(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]] | None = None,
    ) -> Any:
        """Return the cached value, fetching on a miss.

        A fresh hit returns immediately. A dirty or expired hit returns the
        cached value and refreshes in the background. A miss awaits the
        fetch; concurrent misses share one in-flight request.

        Raises:
            LookupError: On a miss when no fetcher is available for the key
        """
        entry = self.get(key)
        if entry is not None:
            stale = self._entry_is_stale(entry)
            tracking.track_cache_hit(key.kind, stale=stale)
            if stale:
                self._schedule_refresh(key, fetcher)
            return entry.value

        tracking.track_cache_miss(key.kind)
        task = self._inflight.get(key)
        if task is None:
            task = self._start_fetch(key, self._require_fetcher(key, fetcher))
        return await asyncio.shield(task)

    async def refetch(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]] | None = None,
    ) -> Any:
        """Issue a new fetch for ``key`` and wait for it.

        Never joins a request that is already in flight, since that request
        was issued earlier and may predate a write.
        """
        task = self._start_fetch(key, self._require_fetcher(key, fetcher))
        return await asyncio.shield(task)

    def _resolve_fetcher(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]] | None = None,
    ) -> Callable[[], Awaitable[Any]] | None:
        if fetcher is not None:
            return fetcher
        if key in self._fetchers:
            return self._fetchers[key]
        if self._loader is not None:
            return self._loader(key)
        return None

    def _require_fetcher(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]] | None,
    ) -> Callable[[], Awaitable[Any]]:
        resolved = self._resolve_fetcher(key, fetcher)
        if resolved is None:
            msg = f"No fetcher registered for {key!r}"
            raise LookupError(msg)
        return resolved

    def _schedule_refresh(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]] | None = None,
        *,
        force: bool = False,
    ) -> asyncio.Task[Any] | None:
        """Start a background refetch unless one is already in flight.

        With ``force`` a new fetch is issued even when one is in flight.
        """
        task = self._inflight.get(key)
        if task is not None and not force:
            return task

        resolved = self._resolve_fetcher(key, fetcher)
        if resolved is None:
            return None

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, refresh deferred", extra={"cache_key": repr(key)})
            return None

        return self._start_fetch(key, resolved)

    def _start_fetch(self, key: CacheKey, fetcher: Callable[[], Awaitable[Any]]) -> asyncio.Task[Any]:
        # The sequence number is taken now, at issue time
        seq = next(self._seq)
        task = asyncio.get_running_loop().create_task(self._run_fetch(key, fetcher, seq))
        self._inflight[key] = task
        task.add_done_callback(partial(self._fetch_done, key))
        return task

    async def _run_fetch(self, key: CacheKey, fetcher: Callable[[], Awaitable[Any]], seq: int) -> Any:
        try:
            value = await fetcher()
        except Exception as e:
            tracking.track_cache_refresh(key.kind, "failed")
            logger.warning(
                "Cache fetch failed",
                extra={"cache_key": repr(key), "error": str(e), "has_stale": key in self._entries},
            )
            raise

        applied = self.set(key, value, seq)
        tracking.track_cache_refresh(key.kind, "applied" if applied else "discarded")

        entry = self._entries.get(key)
        return entry.value if entry is not None else value

    def _fetch_done(self, key: CacheKey, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Failures are logged in _run_fetch; retrieve them so background
        # refreshes nobody awaits do not warn at garbage collection
        if not task.cancelled():
            task.exception()

    # ============================================================================
    # Subscriptions
    # ============================================================================

    async def subscribe(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        """Register interest in ``key``.

        Subscribed keys are refetched on invalidation and never evicted.
        The first interest in a topic starts following it on the push channel.
        """
        count = self._subscribers.get(key, 0) + 1
        self._subscribers[key] = count
        if fetcher is not None:
            self._fetchers[key] = fetcher

        if count == 1:
            for topic in key.topics():
                refs = self._topic_refs.get(topic, 0) + 1
                self._topic_refs[topic] = refs
                if refs == 1 and self._watcher is not None:
                    await self._watcher.watch(topic)

        if self.is_stale(key):
            self._schedule_refresh(key)

    async def unsubscribe(self, key: CacheKey) -> None:
        """Drop one unit of interest in ``key``."""
        count = self._subscribers.get(key, 0)
        if count == 0:
            logger.debug("Unsubscribe without subscription", extra={"cache_key": repr(key)})
            return
        if count > 1:
            self._subscribers[key] = count - 1
            return

        del self._subscribers[key]
        self._fetchers.pop(key, None)

        for topic in key.topics():
            refs = self._topic_refs.get(topic, 0) - 1
            if refs > 0:
                self._topic_refs[topic] = refs
                continue
            self._topic_refs.pop(topic, None)
            if self._watcher is not None:
                await self._watcher.unwatch(topic)

        self._evict()

    def subscriber_count(self, key: CacheKey) -> int:
        return self._subscribers.get(key, 0)

    def watched_topics(self) -> list[Topic]:
        return list(self._topic_refs)

    # ============================================================================
    # Revalidation sweep
    # ============================================================================

    def revalidate_stale(self) -> int:
        """Refetch subscribed keys that are dirty, expired or missing.

        Covers push events that never arrived.

        Returns:
            Number of refreshes started or already in flight
        """
        started = 0
        for key in list(self._subscribers):
            if self.is_stale(key) and self._schedule_refresh(key) is not None:
                started += 1
        if started:
            logger.debug("Revalidation sweep", extra={"refreshes": started})
        return started

    def start(self) -> None:
        """Start the periodic revalidation sweep."""
        interval = self.settings.revalidate_interval
        if interval <= 0 or (self._sweeper is not None and not self._sweeper.done()):
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop(interval))
        logger.info("Revalidation sweep started", extra={"interval": interval})

    async def stop(self) -> None:
        """Stop the sweep and cancel in-flight fetches."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None

        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.revalidate_stale()

    def clear(self) -> None:
        """Drop every entry and overlay (session end)."""
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
        self._entries.clear()
        self._overlays.clear()
        tracking.set_cache_size(0)
        logger.info("Cache cleared")

    # ============================================================================
    # Internals
    # ============================================================================

    def _entry_is_stale(self, entry: CacheEntry) -> bool:
        if entry.dirty:
            return True
        return self._clock() - entry.fetched_at >= self.stale_after(entry.key.kind)

    def _apply_overlays(self, key: CacheKey, value: Any) -> Any:
        for match, transform in self._overlays.values():
            if match(key):
                value = transform(value)
        return value

    def _evict(self) -> None:
        """Evict least-recently-used entries that have no subscribers."""
        capacity = self.settings.capacity
        if capacity is None:
            return

        while len(self._entries) > capacity:
            victim = next((k for k in self._entries if k not in self._subscribers), None)
            if victim is None:
                # Everything left is subscribed
                break
            del self._entries[victim]
            tracking.track_cache_eviction(victim.kind)
            logger.debug("Cache entry evicted", extra={"cache_key": repr(victim)})

    @staticmethod
    def _matcher(target: CacheKey | Topic | Callable[[CacheKey], bool]) -> Callable[[CacheKey], bool]:
        if isinstance(target, Topic):
            return lambda key: target in key.topics()
        if isinstance(target, ThreadListKey | ThreadDetailKey | InboxKey | UnreadCountKey):
            return lambda key: key == target
        return target
