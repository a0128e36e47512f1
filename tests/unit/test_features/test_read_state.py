"""Unit tests for the read-state machine and reconciler."""

from __future__ import annotations

import asyncio

import pytest

from thread_sync.core.exceptions import CommitFailed, InvalidTransition, StoreUnavailable
from thread_sync.core.settings import SyncSettings
from thread_sync.features.threads import ReadPhase, ReadStateMachine, ReadStateReconciler
from thread_sync.features.threads.read_state import begin, confirm, rollback
from thread_sync.infra.cache import InboxKey, ThreadDetailKey, Topic, UnreadCountKey

DETAIL = ThreadDetailKey(thread_id=1, viewer_id="owner")
INBOX = InboxKey(user_id="owner")
UNREAD = UnreadCountKey(user_id="owner")


@pytest.fixture
def seeded(fake_store):
    """Thread 1 (owner) with three unread responses and one of the owner's own."""
    fake_store.insert_thread(owner_id="owner", thread_id=1)
    fake_store._next_id = 10
    for _ in range(3):
        fake_store.insert_response(1, author_id="responder")
    fake_store.insert_response(1, author_id="owner")
    return fake_store


async def _load_projections(client):
    await client.get_thread(1)
    await client.get_inbox()
    await client.get_unread_total()


def _cached_unread(client) -> tuple[int, int, int]:
    cache = client.cache
    return (
        cache.get(DETAIL).value.unread_count,
        cache.get(INBOX).value.unread_total,
        cache.get(UNREAD).value.count,
    )


@pytest.mark.unit
class TestReadTransitions:
    """Test suite for the pure read-state transitions."""

    def test_happy_path(self):
        assert begin(ReadPhase.UNREAD) is ReadPhase.MARKING
        assert confirm(ReadPhase.MARKING) is ReadPhase.READ

    def test_rollback_returns_to_unread(self):
        assert rollback(ReadPhase.MARKING) is ReadPhase.UNREAD

    def test_begin_again_after_read(self):
        """New responses can arrive after a thread was read."""
        assert begin(ReadPhase.READ) is ReadPhase.MARKING

    @pytest.mark.parametrize(
        ("transition", "phase"),
        [
            (begin, ReadPhase.MARKING),
            (confirm, ReadPhase.UNREAD),
            (confirm, ReadPhase.READ),
            (rollback, ReadPhase.UNREAD),
            (rollback, ReadPhase.READ),
        ],
    )
    def test_illegal_transitions(self, transition, phase):
        with pytest.raises(InvalidTransition):
            transition(phase)

    def test_machine_tracks_phase_per_key(self):
        machine = ReadStateMachine()

        machine.begin(1)

        assert machine.phase(1) is ReadPhase.MARKING
        assert machine.phase(2) is ReadPhase.UNREAD


@pytest.mark.unit
class TestReadStateReconciler:
    """Test suite for optimistic mark-read with rollback."""

    @pytest.mark.asyncio
    async def test_projections_update_before_commit_resolves(self, sync_client, seeded):
        await _load_projections(sync_client)
        assert _cached_unread(sync_client) == (3, 3, 3)

        task = sync_client.mark_thread_read(1)

        assert _cached_unread(sync_client) == (0, 0, 0)
        assert sync_client.reconciler.phase(1) is ReadPhase.MARKING
        assert await task == 3
        assert sync_client.reconciler.phase(1) is ReadPhase.READ

    @pytest.mark.asyncio
    async def test_confirmed_read_survives_refetch(self, sync_client, seeded, settle):
        await _load_projections(sync_client)

        await sync_client.mark_thread_read(1)
        await sync_client.cache.refetch(DETAIL)
        await sync_client.cache.refetch(UNREAD)

        assert await sync_client.unread_count(1) == 0
        assert await sync_client.get_unread_total() == 0

    @pytest.mark.asyncio
    async def test_own_responses_are_never_counted(self, sync_client, seeded):
        detail = await sync_client.get_thread(1)

        assert len(detail.responses) == 4
        assert detail.unread_count == 3

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back_to_store_truth(self, sync_client, seeded, store_down):
        await _load_projections(sync_client)
        seeded.fail_next("mark_read", store_down)
        fetches_before = seeded.calls["fetch_responses"]

        task = sync_client.mark_thread_read(1)
        assert _cached_unread(sync_client) == (0, 0, 0)

        with pytest.raises(CommitFailed) as exc_info:
            await task

        assert isinstance(exc_info.value.__cause__, StoreUnavailable)
        assert _cached_unread(sync_client) == (3, 3, 3)
        assert seeded.calls["fetch_responses"] == fetches_before + 1
        assert sync_client.reconciler.phase(1) is ReadPhase.UNREAD
        assert sync_client.cache.get(DETAIL).dirty is False

    @pytest.mark.asyncio
    async def test_commit_timeout_is_a_failure(self, sync_client, seeded):
        await _load_projections(sync_client)
        seeded.gate("mark_read")
        reconciler = ReadStateReconciler(
            seeded,
            sync_client.cache,
            "owner",
            SyncSettings(commit_timeout=0.05),
        )

        task = reconciler.mark_thread_read(1)
        assert _cached_unread(sync_client) == (0, 0, 0)

        with pytest.raises(CommitFailed, match="timed out"):
            await task

        assert _cached_unread(sync_client) == (3, 3, 3)
        assert reconciler.phase(1) is ReadPhase.UNREAD

    @pytest.mark.asyncio
    async def test_failed_resync_restores_snapshot_marked_dirty(self, sync_client, seeded, store_down):
        await _load_projections(sync_client)
        seeded.fail_next("mark_read", store_down)
        seeded.fail_next("fetch_responses", store_down)

        with pytest.raises(CommitFailed):
            await sync_client.mark_thread_read(1)

        entry = sync_client.cache.get(DETAIL)
        assert entry.value.unread_count == 3
        assert entry.dirty is True
        assert sync_client.cache.get(INBOX).dirty is False

    @pytest.mark.asyncio
    async def test_fetch_issued_before_mutation_cannot_resurrect_unread(self, sync_client, seeded):
        await _load_projections(sync_client)
        fetch_gate = seeded.gate("fetch_responses")
        commit_gate = seeded.gate("mark_read")

        stale_fetch = asyncio.create_task(sync_client.cache.refetch(DETAIL))
        await asyncio.sleep(0)
        task = sync_client.mark_thread_read(1)

        fetch_gate.set()
        await stale_fetch
        assert sync_client.cache.get(DETAIL).value.unread_count == 0

        # Issued after the mutation but before the commit lands: the overlay stamps it
        await sync_client.cache.refetch(DETAIL)
        assert sync_client.cache.get(DETAIL).value.unread_count == 0

        commit_gate.set()
        assert await task == 3

    @pytest.mark.asyncio
    async def test_duplicate_call_returns_in_flight_task(self, sync_client, seeded):
        await sync_client.get_thread(1)
        gate = seeded.gate("mark_read")

        first = sync_client.mark_thread_read(1)
        second = sync_client.mark_thread_read(1)
        gate.set()

        assert first is second
        assert await first == 3
        assert seeded.calls["mark_read"] == 1

    @pytest.mark.asyncio
    async def test_confirm_invalidates_affected_topics(self, sync_client, seeded, settle):
        await _load_projections(sync_client)
        await sync_client.subscribe(INBOX)

        await sync_client.mark_thread_read(1)
        await settle()

        assert seeded.calls["fetch_inbox"] == 2
        assert sync_client.cache.get(DETAIL).dirty is True

    @pytest.mark.asyncio
    async def test_mark_response_read_stamps_single_row(self, sync_client, seeded):
        await _load_projections(sync_client)
        target = next(r for r in seeded.responses.values() if r.author_id == "responder")

        task = sync_client.mark_response_read(target.id, thread_id=1)

        assert _cached_unread(sync_client) == (2, 2, 2)
        assert await task is True
        assert seeded.responses[target.id].read_at is not None

    @pytest.mark.asyncio
    async def test_rejected_response_read_rolls_back(self, sync_client, seeded):
        await _load_projections(sync_client)

        with pytest.raises(CommitFailed, match="rejected"):
            await sync_client.mark_response_read(999, thread_id=1)

        assert _cached_unread(sync_client) == (3, 3, 3)
        assert sync_client.reconciler.responses.phase(999) is ReadPhase.UNREAD

    @pytest.mark.asyncio
    async def test_other_viewers_projections_are_untouched(self, sync_client, seeded):
        other = ThreadDetailKey(thread_id=1, viewer_id="someone")
        await sync_client.cache.get_or_fetch(other)
        gate = seeded.gate("mark_read")

        task = sync_client.mark_thread_read(1)

        assert sync_client.cache.get(other).value.unread_count == 4
        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_restored_snapshot_keeps_other_in_flight_read(self, sync_client, seeded, store_down):
        seeded.insert_thread(owner_id="owner", thread_id=2)
        seeded.insert_response(2, author_id="responder")
        seeded.insert_response(2, author_id="responder")
        await _load_projections(sync_client)

        first_gate = seeded.gate("mark_read")
        seeded.fail_next("mark_read", store_down)
        first = sync_client.mark_thread_read(1)
        await asyncio.sleep(0)
        second_gate = seeded.gate("mark_read")
        second = sync_client.mark_thread_read(2)
        await asyncio.sleep(0)

        seeded.fail_next("fetch_inbox", store_down)
        seeded.fail_next("fetch_unread_responses", store_down)
        first_gate.set()
        with pytest.raises(CommitFailed):
            await first

        inbox = sync_client.cache.get(INBOX)
        assert inbox.dirty is True
        assert {item.thread.id: item.unread_count for item in inbox.value.items} == {1: 3, 2: 0}
        assert inbox.value.unread_total == 3
        assert sync_client.cache.get(UNREAD).value.count == 3

        second_gate.set()
        assert await second == 2

    @pytest.mark.asyncio
    async def test_cancelled_commit_rolls_back_and_resyncs(self, sync_client, seeded, settle):
        await _load_projections(sync_client)
        gate = seeded.gate("mark_read")

        task = sync_client.mark_thread_read(1)
        await settle()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert sync_client.reconciler.phase(1) is ReadPhase.UNREAD
        await settle(30)
        assert _cached_unread(sync_client) == (3, 3, 3)

        gate.set()
        await sync_client.cache.refetch(DETAIL)
        assert sync_client.cache.get(DETAIL).value.unread_count == 3

        assert await sync_client.mark_thread_read(1) == 3
        assert sync_client.reconciler.phase(1) is ReadPhase.READ

    @pytest.mark.asyncio
    async def test_commit_cancelled_before_it_starts_rolls_back(self, sync_client, seeded, settle):
        await _load_projections(sync_client)

        task = sync_client.mark_thread_read(1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert sync_client.reconciler.phase(1) is ReadPhase.UNREAD
        await settle(30)
        assert _cached_unread(sync_client) == (3, 3, 3)
        assert seeded.calls["mark_read"] == 0

    def test_topics_used_for_invalidation(self):
        assert Topic.thread(1) in DETAIL.topics()
