"""Pytest configuration and shared fixtures.

Organization:
    - Environment: keep settings independent of the developer's .env
    - Settings Fixtures: fast retry and commit settings
    - Store Fixtures: in-memory fake store with failure injection, SQLite store
    - Cache Fixtures: controllable clock and coordinator
    - Client Fixtures: a fully wired ThreadSyncClient over the fake store
"""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
import os

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from thread_sync.core.database import Base, create_session_factory
from thread_sync.core.exceptions import StoreUnavailable
from thread_sync.core.settings import (
    CacheSettings,
    PaginationSettings,
    RealtimeSettings,
    SyncSettings,
    clear_settings_cache,
)
from thread_sync.features.threads import (
    InboxItem,
    Response,
    SqlThreadStore,
    Thread,
    ThreadSyncClient,
)
from thread_sync.infra.cache import CacheCoordinator

os.environ.setdefault("REALTIME_REDIS_URL", "")

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Drop cached settings so env changes in one test never leak into another."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def pagination_settings() -> PaginationSettings:
    return PaginationSettings(default_page_size=50, max_page_size=200)


@pytest.fixture
def sync_settings() -> SyncSettings:
    """Sync settings with near-zero backoff so retry tests run fast."""
    return SyncSettings(
        commit_timeout=0.5,
        store_max_attempts=3,
        retry_initial_delay=0.0,
        retry_max_delay=0.0,
        retry_jitter=False,
    )


@pytest.fixture
def cache_settings() -> CacheSettings:
    return CacheSettings(capacity=None, revalidate_interval=0)


@pytest.fixture
def realtime_settings() -> RealtimeSettings:
    return RealtimeSettings(redis_url=None, debounce_seconds=0)


# ============================================================================
# Store Fixtures
# ============================================================================


class FakeThreadStore:
    """In-memory ThreadStore with failure injection and call gating.

    Example:
        store.fail_next("mark_read", StoreUnavailable(detail="down"))
        gate = store.gate("fetch_responses")  # calls wait until gate.set()
    """

    def __init__(self) -> None:
        self.threads: dict[int, Thread] = {}
        self.responses: dict[int, Response] = {}
        self.calls: Counter[str] = Counter()
        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self._gates: dict[str, asyncio.Event] = {}
        self._next_id = 1

    # ──────────────────────────────────────────────────────────────
    # Test helpers
    # ──────────────────────────────────────────────────────────────

    def _new_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def insert_thread(
        self,
        owner_id: str = "owner",
        created_at: datetime | None = None,
        thread_id: int | None = None,
        content: str = "",
    ) -> Thread:
        thread_id = thread_id if thread_id is not None else self._new_id()
        thread = Thread(
            id=thread_id,
            owner_id=owner_id,
            content=content or f"thread {thread_id}",
            created_at=created_at or BASE_TIME + timedelta(minutes=thread_id),
        )
        self.threads[thread.id] = thread
        return thread

    def insert_response(
        self,
        thread_id: int,
        author_id: str = "responder",
        created_at: datetime | None = None,
        read_at: datetime | None = None,
    ) -> Response:
        response_id = self._new_id()
        response = Response(
            id=response_id,
            thread_id=thread_id,
            author_id=author_id,
            content=f"response {response_id}",
            created_at=created_at or BASE_TIME + timedelta(minutes=response_id),
            read_at=read_at,
        )
        self.responses[response.id] = response
        return response

    def fail_next(self, operation: str, exc: BaseException, times: int = 1) -> None:
        self._failures[operation].extend([exc] * times)

    def gate(self, operation: str) -> asyncio.Event:
        event = asyncio.Event()
        self._gates[operation] = event
        return event

    def unread_for(self, owner_id: str) -> list[Response]:
        return [
            r
            for r in self.responses.values()
            if r.read_at is None
            and r.author_id != owner_id
            and self.threads[r.thread_id].owner_id == owner_id
        ]

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()
        if self._failures[operation]:
            raise self._failures[operation].pop(0)

    @staticmethod
    def _newest_first(rows):
        return sorted(rows, key=lambda r: (r.created_at, r.id), reverse=True)

    # ──────────────────────────────────────────────────────────────
    # ThreadStore protocol
    # ──────────────────────────────────────────────────────────────

    async def fetch_threads(self, limit, cursor_created_at=None, cursor_id=None):
        await self._enter("fetch_threads")
        rows = self._newest_first(self.threads.values())
        if cursor_created_at is not None:
            rows = [t for t in rows if (t.created_at, t.id) < (cursor_created_at, cursor_id)]
        return rows[:limit]

    async def fetch_responses(self, thread_id):
        await self._enter("fetch_responses")
        return self._newest_first(r for r in self.responses.values() if r.thread_id == thread_id)

    async def fetch_inbox(self, owner_id, limit):
        await self._enter("fetch_inbox")
        items = []
        for thread in self._newest_first(t for t in self.threads.values() if t.owner_id == owner_id):
            responses = self._newest_first(r for r in self.responses.values() if r.thread_id == thread.id)
            if responses:
                items.append(InboxItem(thread=thread, responses=responses))
        return items[:limit]

    async def fetch_unread_responses(self, owner_id):
        await self._enter("fetch_unread_responses")
        return self._newest_first(self.unread_for(owner_id))

    async def mark_read(self, thread_id, viewer_id):
        await self._enter("mark_read")
        now = datetime.now(UTC)
        affected = 0
        for response in list(self.responses.values()):
            if response.thread_id == thread_id and response.is_unread_for(viewer_id):
                self.responses[response.id] = response.model_copy(update={"read_at": now})
                affected += 1
        return affected

    async def mark_response_read(self, response_id, viewer_id):
        await self._enter("mark_response_read")
        response = self.responses.get(response_id)
        if response is None:
            return False
        if response.read_at is None:
            self.responses[response_id] = response.model_copy(update={"read_at": datetime.now(UTC)})
        return True


@pytest.fixture
def fake_store() -> FakeThreadStore:
    return FakeThreadStore()


@pytest.fixture
def store_down() -> StoreUnavailable:
    return StoreUnavailable(detail="store unreachable")


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """In-memory SQLite engine with the store schema.

    StaticPool keeps one connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def sql_store(db_engine: AsyncEngine) -> SqlThreadStore:
    return SqlThreadStore(create_session_factory(db_engine))


# ============================================================================
# Cache Fixtures
# ============================================================================


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def cache(cache_settings: CacheSettings, clock: FakeClock) -> AsyncGenerator[CacheCoordinator]:
    coordinator = CacheCoordinator(cache_settings, clock=clock)
    try:
        yield coordinator
    finally:
        await coordinator.stop()


# ============================================================================
# Client Fixtures
# ============================================================================


@pytest.fixture
async def sync_client(
    fake_store: FakeThreadStore,
    pagination_settings: PaginationSettings,
    cache_settings: CacheSettings,
    sync_settings: SyncSettings,
    realtime_settings: RealtimeSettings,
) -> AsyncGenerator[ThreadSyncClient]:
    """ThreadSyncClient for viewer ``owner`` over the fake store."""
    client = ThreadSyncClient(
        fake_store,
        "owner",
        pagination_settings=pagination_settings,
        cache_settings=cache_settings,
        sync_settings=sync_settings,
        realtime_settings=realtime_settings,
    )
    try:
        yield client
    finally:
        await client.close()


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Coroutine function that lets scheduled background tasks run to completion."""
    return _settle
