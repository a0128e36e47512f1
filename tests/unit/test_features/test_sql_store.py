"""Unit tests for the SQLAlchemy-backed store (SQLite in memory)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from thread_sync.core.database import create_session_factory
from thread_sync.core.exceptions import StoreUnavailable
from thread_sync.core.pagination import CursorCodec
from thread_sync.core.settings import PaginationSettings, SyncSettings
from thread_sync.features.threads import SqlThreadStore, ThreadPager

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


async def _seed(store: SqlThreadStore, count: int, owner: str = "owner", same_time: bool = False):
    threads = []
    for n in range(count):
        created_at = BASE_TIME if same_time else BASE_TIME + timedelta(minutes=n, microseconds=n)
        threads.append(await store.add_thread(owner, f"thread {n}", created_at=created_at))
    return threads


@pytest.mark.unit
class TestSqlThreadStore:
    """Test suite for SqlThreadStore."""

    @pytest.mark.asyncio
    async def test_fetch_threads_orders_newest_first(self, sql_store):
        threads = await _seed(sql_store, 3)

        rows = await sql_store.fetch_threads(limit=10)

        assert [r.id for r in rows] == [t.id for t in reversed(threads)]
        assert rows[0].created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_fetch_thread_by_id(self, sql_store):
        threads = await _seed(sql_store, 2, owner="u1")

        found = await sql_store.fetch_thread(threads[1].id)

        assert found.owner_id == "u1"
        assert found.content == "thread 1"
        assert await sql_store.fetch_thread(999) is None

    @pytest.mark.asyncio
    async def test_seek_condition_is_strict(self, sql_store):
        threads = await _seed(sql_store, 4)
        cursor_row = threads[2]

        rows = await sql_store.fetch_threads(
            limit=10,
            cursor_created_at=cursor_row.created_at,
            cursor_id=cursor_row.id,
        )

        assert [r.id for r in rows] == [threads[1].id, threads[0].id]

    @pytest.mark.asyncio
    async def test_pager_over_sql_with_tied_timestamps(self, sql_store):
        """Ties on created_at are broken by id across page boundaries."""
        threads = await _seed(sql_store, 5, same_time=True)
        pager = ThreadPager(
            sql_store,
            PaginationSettings(),
            SyncSettings(retry_initial_delay=0, retry_max_delay=0),
        )

        ids = [row.id async for page in pager.iter_pages(page_size=2) for row in page.rows]

        assert ids == sorted((t.id for t in threads), reverse=True)

    @pytest.mark.asyncio
    async def test_cursor_from_sql_row_round_trips(self, sql_store):
        await _seed(sql_store, 2)
        row = (await sql_store.fetch_threads(limit=1))[0]

        position = CursorCodec.decode(CursorCodec.encode(row))

        assert (position.created_at, position.id) == (row.created_at, row.id)

    @pytest.mark.asyncio
    async def test_inbox_lists_threads_with_responses(self, sql_store):
        quiet, busy, other = (
            await sql_store.add_thread("owner", "quiet", created_at=BASE_TIME),
            await sql_store.add_thread("owner", "busy", created_at=BASE_TIME + timedelta(minutes=1)),
            await sql_store.add_thread("someone-else", "other", created_at=BASE_TIME + timedelta(minutes=2)),
        )
        await sql_store.add_response(busy.id, "responder", "hi")
        await sql_store.add_response(busy.id, "owner", "thanks")
        await sql_store.add_response(other.id, "responder", "hey")

        inbox = await sql_store.fetch_inbox("owner", limit=50)

        assert [item.thread.id for item in inbox] == [busy.id]
        assert len(inbox[0].responses) == 2
        assert inbox[0].unread_count == 1
        assert quiet.id not in [item.thread.id for item in inbox]

    @pytest.mark.asyncio
    async def test_unread_responses_exclude_own_and_read(self, sql_store):
        thread = await sql_store.add_thread("owner", "t")
        unread = await sql_store.add_response(thread.id, "responder", "a")
        await sql_store.add_response(thread.id, "owner", "b")
        already = await sql_store.add_response(thread.id, "responder", "c")
        await sql_store.mark_response_read(already.id, "owner")

        rows = await sql_store.fetch_unread_responses("owner")

        assert [r.id for r in rows] == [unread.id]

    @pytest.mark.asyncio
    async def test_mark_read_stamps_unread_and_returns_count(self, sql_store):
        thread = await sql_store.add_thread("owner", "t")
        for _ in range(3):
            await sql_store.add_response(thread.id, "responder")
        await sql_store.add_response(thread.id, "owner")

        assert await sql_store.mark_read(thread.id, "owner") == 3
        assert await sql_store.mark_read(thread.id, "owner") == 0
        assert await sql_store.fetch_unread_responses("owner") == []

    @pytest.mark.asyncio
    async def test_mark_response_read_never_overwrites(self, sql_store):
        thread = await sql_store.add_thread("owner", "t")
        response = await sql_store.add_response(thread.id, "responder")

        assert await sql_store.mark_response_read(response.id, "owner") is True
        first = (await sql_store.fetch_responses(thread.id))[0].read_at
        assert await sql_store.mark_response_read(response.id, "owner") is True
        second = (await sql_store.fetch_responses(thread.id))[0].read_at

        assert first is not None
        assert first == second

    @pytest.mark.asyncio
    async def test_mark_missing_response_returns_false(self, sql_store):
        assert await sql_store.mark_response_read(999, "owner") is False

    @pytest.mark.asyncio
    async def test_driver_errors_become_store_unavailable(self):
        """A database without the schema surfaces as StoreUnavailable."""
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        store = SqlThreadStore(create_session_factory(engine))
        try:
            with pytest.raises(StoreUnavailable):
                await store.fetch_threads(limit=5)
        finally:
            await engine.dispose()
