"""Read-state reconciliation.

Marking a thread read updates every cached projection immediately, then
confirms against the store in the background:

    UNREAD --begin--> MARKING --confirm--> READ
                         |
                         +----rollback---> UNREAD

On commit failure or timeout the optimistic projections are thrown away and
the affected keys are refetched from the store before the failure surfaces,
so the cache reflects the store's truth rather than a guess. Commits are never
retried blindly.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
import logging
from typing import TYPE_CHECKING, Any

from thread_sync.core.database.base import utc_now
from thread_sync.core.exceptions import CommitFailed, InvalidTransition
from thread_sync.core.settings import get_sync_settings
from thread_sync.infra.cache.keys import InboxKey, ThreadDetailKey, Topic, UnreadCountKey
from thread_sync.infra.logging.context import set_log_context
from thread_sync.infra.metrics.tracking import track_read_commit

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Hashable
    from datetime import datetime

    from thread_sync.core.settings import SyncSettings
    from thread_sync.features.threads.store import ThreadStore
    from thread_sync.infra.cache.coordinator import CacheCoordinator
    from thread_sync.infra.cache.keys import CacheKey

logger = logging.getLogger(__name__)


class ReadPhase(StrEnum):
    """Read state of one thread for the current viewer."""

    UNREAD = "unread"
    MARKING = "marking"
    READ = "read"


# ============================================================================
# Transitions
# ============================================================================


def begin(phase: ReadPhase) -> ReadPhase:
    """Start an optimistic mark-read.

    Allowed from READ too: new responses can arrive after a thread was read.
    """
    if phase is ReadPhase.MARKING:
        raise InvalidTransition(
            detail="A read commit is already in flight",
            extra={"phase": phase.value, "event": "begin"},
        )
    return ReadPhase.MARKING


def confirm(phase: ReadPhase) -> ReadPhase:
    """The store accepted the commit."""
    if phase is not ReadPhase.MARKING:
        raise InvalidTransition(
            detail=f"Cannot confirm from {phase.value}",
            extra={"phase": phase.value, "event": "confirm"},
        )
    return ReadPhase.READ


def rollback(phase: ReadPhase) -> ReadPhase:
    """The commit failed or timed out."""
    if phase is not ReadPhase.MARKING:
        raise InvalidTransition(
            detail=f"Cannot roll back from {phase.value}",
            extra={"phase": phase.value, "event": "rollback"},
        )
    return ReadPhase.UNREAD


class ReadStateMachine:
    """Tracks the read phase per thread (or per response)."""

    def __init__(self) -> None:
        self._phases: dict[Hashable, ReadPhase] = {}

    def phase(self, key: Hashable) -> ReadPhase:
        return self._phases.get(key, ReadPhase.UNREAD)

    def begin(self, key: Hashable) -> ReadPhase:
        self._phases[key] = begin(self.phase(key))
        return self._phases[key]

    def confirm(self, key: Hashable) -> ReadPhase:
        self._phases[key] = confirm(self.phase(key))
        return self._phases[key]

    def rollback(self, key: Hashable) -> ReadPhase:
        self._phases[key] = rollback(self.phase(key))
        return self._phases[key]


# ============================================================================
# Reconciler
# ============================================================================


class ReadStateReconciler:
    """Optimistic mark-read with store confirmation and rollback.

    Args:
        store: Authoritative store
        cache: Coordinator holding the projections to update
        viewer_id: The user on whose behalf reads are recorded
        settings: Sync settings (commit timeout). Defaults to get_sync_settings().
        now: Source of provisional read timestamps

    Example:
        task = reconciler.mark_thread_read(7)  # projections already show 0 unread
        try:
            affected = await task
        except CommitFailed:
            ...  # projections now match the store again
    """

    def __init__(
        self,
        store: ThreadStore,
        cache: CacheCoordinator,
        viewer_id: str,
        settings: SyncSettings | None = None,
        *,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self.viewer_id = viewer_id
        self.settings = settings or get_sync_settings()
        self._now = now

        self.threads = ReadStateMachine()
        self.responses = ReadStateMachine()
        self._pending_threads: dict[int, asyncio.Task[int]] = {}
        self._pending_responses: dict[int, asyncio.Task[bool]] = {}
        self._resyncs: set[asyncio.Task[None]] = set()

    def phase(self, thread_id: int) -> ReadPhase:
        return self.threads.phase(thread_id)

    async def close(self) -> None:
        """Cancel in-flight commits, rolling each back, then any pending resync."""
        pending = [*self._pending_threads.values(), *self._pending_responses.values()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        resyncs = list(self._resyncs)
        for task in resyncs:
            task.cancel()
        if resyncs:
            await asyncio.gather(*resyncs, return_exceptions=True)

    def affects(self, thread_id: int) -> Callable[[CacheKey], bool]:
        """Predicate selecting every cached projection holding the thread's responses."""
        viewer_id = self.viewer_id

        def match(key: CacheKey) -> bool:
            if isinstance(key, ThreadDetailKey):
                return key.thread_id == thread_id and key.viewer_id == viewer_id
            if isinstance(key, InboxKey | UnreadCountKey):
                return key.user_id == viewer_id
            return False

        return match

    def mark_thread_read(self, thread_id: int) -> asyncio.Task[int]:
        """Mark every response under a thread read.

        Projections are updated before this returns. The returned task
        resolves to the number of responses the store stamped, or raises
        CommitFailed after the cache was resynchronized with the store.
        A second call while a commit is in flight returns the same task.
        Cancelling the task rolls back and resynchronizes in the background.

        Must be called with a running event loop.
        """
        pending = self._pending_threads.get(thread_id)
        if pending is not None:
            return pending

        self.threads.begin(thread_id)
        read_at = self._now()
        viewer_id = self.viewer_id

        def stamp(value: Any) -> Any:
            return value.mark_read(thread_id, viewer_id, read_at)

        task = self._start(
            thread_id,
            stamp,
            commit=lambda: self._store.mark_read(thread_id, viewer_id),
            machine=self.threads,
            machine_key=thread_id,
            operation="mark_thread_read",
            extra={"thread_id": thread_id},
        )
        self._pending_threads[thread_id] = task
        task.add_done_callback(lambda _: self._pending_threads.pop(thread_id, None))
        return task

    def mark_response_read(self, response_id: int, thread_id: int) -> asyncio.Task[bool]:
        """Mark a single response read, with the same protocol as mark_thread_read.

        A store answer of False (no such response) is a rejection.
        """
        pending = self._pending_responses.get(response_id)
        if pending is not None:
            return pending

        self.responses.begin(response_id)
        read_at = self._now()
        viewer_id = self.viewer_id

        def stamp(value: Any) -> Any:
            return value.mark_read(thread_id, viewer_id, read_at, response_id=response_id)

        async def commit() -> bool:
            accepted = await self._store.mark_response_read(response_id, viewer_id)
            if not accepted:
                raise CommitFailed(
                    detail=f"Store rejected read of response {response_id}",
                    extra={"response_id": response_id},
                )
            return accepted

        task = self._start(
            thread_id,
            stamp,
            commit=commit,
            machine=self.responses,
            machine_key=response_id,
            operation="mark_response_read",
            extra={"thread_id": thread_id, "response_id": response_id},
        )
        self._pending_responses[response_id] = task
        task.add_done_callback(lambda _: self._pending_responses.pop(response_id, None))
        return task

    def _start(
        self,
        thread_id: int,
        stamp: Callable[[Any], Any],
        *,
        commit: Callable[[], Awaitable[Any]],
        machine: ReadStateMachine,
        machine_key: int,
        operation: str,
        extra: dict[str, Any],
    ) -> asyncio.Task[Any]:
        affected = self.affects(thread_id)

        # Everything up to create_task runs synchronously
        snapshots = self._cache.snapshot(affected)
        self._cache.mutate(affected, stamp)
        overlay = self._cache.add_overlay(affected, stamp)

        logger.debug(
            "Optimistic read applied",
            extra={"operation": operation, "viewer_id": self.viewer_id, "projections": len(snapshots), **extra},
        )

        task = asyncio.get_running_loop().create_task(
            self._commit(
                thread_id,
                commit,
                overlay=overlay,
                snapshots=snapshots,
                machine=machine,
                machine_key=machine_key,
                operation=operation,
                extra=extra,
            ),
        )

        # Also runs when the task is cancelled before its first step
        def on_done(done: asyncio.Task[Any]) -> None:
            if not done.cancelled() or machine.phase(machine_key) is not ReadPhase.MARKING:
                return
            self._roll_back(machine, machine_key, overlay)
            logger.warning(
                "Read commit cancelled, resynchronizing",
                extra={"operation": operation, "viewer_id": self.viewer_id, **extra},
            )
            self._spawn_resync(thread_id, snapshots)

        task.add_done_callback(on_done)
        return task

    async def _commit(
        self,
        thread_id: int,
        commit: Callable[[], Awaitable[Any]],
        *,
        overlay: int,
        snapshots: dict[CacheKey, Any],
        machine: ReadStateMachine,
        machine_key: int,
        operation: str,
        extra: dict[str, Any],
    ) -> Any:
        # Runs in its own task, so the context stays with this commit
        set_log_context(viewer_id=self.viewer_id, operation=operation)
        timeout = self.settings.commit_timeout
        try:
            result = await asyncio.wait_for(commit(), timeout=timeout)
        except Exception as e:
            self._roll_back(machine, machine_key, overlay)

            reason = f"timed out after {timeout}s" if isinstance(e, TimeoutError) else str(e)
            logger.warning(
                "Read commit failed, resynchronizing",
                extra={"operation": operation, "viewer_id": self.viewer_id, "reason": reason, **extra},
            )

            await self._resync(thread_id, snapshots)
            raise CommitFailed(
                detail=f"{operation} failed: {reason}",
                extra={"viewer_id": self.viewer_id, **extra},
            ) from e

        machine.confirm(machine_key)
        self._cache.remove_overlay(overlay)
        track_read_commit("confirmed")

        # Converge provisional timestamps with the store's
        self._cache.invalidate(Topic.thread(thread_id))
        self._cache.invalidate(Topic.inbox(self.viewer_id))

        logger.info(
            "Read commit confirmed",
            extra={"operation": operation, "viewer_id": self.viewer_id, "result": result, **extra},
        )
        return result

    def _roll_back(self, machine: ReadStateMachine, machine_key: int, overlay: int) -> None:
        machine.rollback(machine_key)
        self._cache.remove_overlay(overlay)
        track_read_commit("rolled_back")

    def _spawn_resync(self, thread_id: int, snapshots: dict[CacheKey, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self._resync(thread_id, snapshots))
        self._resyncs.add(task)
        task.add_done_callback(self._resyncs.discard)

    async def _resync(self, thread_id: int, snapshots: dict[CacheKey, Any]) -> None:
        """Replace optimistic projections with fresh store reads.

        A key whose refetch also fails gets its pre-mutation value back,
        marked dirty so it revalidates later.
        """
        keys = list(dict.fromkeys([*snapshots, *self._cache.keys(self.affects(thread_id))]))
        results = await asyncio.gather(
            *(self._cache.refetch(key) for key in keys),
            return_exceptions=True,
        )

        for key, result in zip(keys, results, strict=True):
            if not isinstance(result, BaseException):
                continue
            logger.warning(
                "Forced refetch failed, restoring last confirmed value",
                extra={"cache_key": repr(key), "error": str(result)},
            )
            if key in snapshots:
                self._cache.restore(key, snapshots[key])
            else:
                self._cache.invalidate(key)
