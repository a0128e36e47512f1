"""Authoritative store interface and its SQLAlchemy adapter.

The store is the only source of truth. Everything the client caches is a
projection of what these calls return.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
import logging
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import exists, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from thread_sync.core.database.base import utc_now
from thread_sync.core.exceptions import StoreUnavailable
from thread_sync.core.models import ResponseRecord, ThreadRecord
from thread_sync.core.pagination import CursorPosition, KeysetFilter
from thread_sync.features.threads.schemas import InboxItem, Response, Thread
from thread_sync.infra.metrics.tracking import track_store_operation

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


class ThreadStore(Protocol):
    """Operations the synchronization layer needs from the authoritative store.

    Implementations raise StoreUnavailable when the backend cannot be reached.
    Access control is enforced by the backend.
    """

    async def fetch_threads(
        self,
        limit: int,
        cursor_created_at: datetime | None = None,
        cursor_id: int | str | None = None,
    ) -> list[Thread]:
        """Threads ordered (created_at DESC, id DESC), strictly after the cursor."""
        ...

    async def fetch_responses(self, thread_id: int) -> list[Response]:
        """All responses under a thread, newest first."""
        ...

    async def fetch_inbox(self, owner_id: str, limit: int) -> list[InboxItem]:
        """The owner's threads that have responses, newest thread first."""
        ...

    async def fetch_unread_responses(self, owner_id: str) -> list[Response]:
        """Unread responses on the owner's threads not authored by the owner."""
        ...

    async def mark_read(self, thread_id: int, viewer_id: str) -> int:
        """Stamp every unread response under a thread. Returns the affected count."""
        ...

    async def mark_response_read(self, response_id: int, viewer_id: str) -> bool:
        """Stamp one response. Returns False when the response does not exist."""
        ...


class SqlThreadStore:
    """ThreadStore backed by SQLAlchemy async sessions.

    Example:
        engine = create_engine()
        store = SqlThreadStore(create_session_factory(engine))
        threads = await store.fetch_threads(limit=51)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session, time the call and translate driver errors."""
        async with track_store_operation(operation):
            try:
                async with self._session_factory() as session:
                    yield session
            except SQLAlchemyError as e:
                logger.warning(
                    "Store operation failed",
                    extra={"operation": operation, "error": str(e)},
                )
                raise StoreUnavailable(
                    detail=f"Store operation {operation} failed: {e}",
                    extra={"operation": operation},
                ) from e

    # ──────────────────────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────────────────────

    async def fetch_threads(
        self,
        limit: int,
        cursor_created_at: datetime | None = None,
        cursor_id: int | str | None = None,
    ) -> list[Thread]:
        position = None
        if cursor_created_at is not None and cursor_id is not None:
            position = CursorPosition(created_at=cursor_created_at, id=cursor_id)

        stmt = KeysetFilter(
            ThreadRecord.created_at,
            ThreadRecord.id,
            position,
            limit=limit,
        ).apply(select(ThreadRecord))

        async with self._session("fetch_threads") as session:
            result = await session.scalars(stmt)
            return [Thread.model_validate(record) for record in result]

    async def fetch_thread(self, thread_id: int) -> Thread | None:
        async with self._session("fetch_thread") as session:
            record = await session.get(ThreadRecord, thread_id)
            return Thread.model_validate(record) if record is not None else None

    async def fetch_responses(self, thread_id: int) -> list[Response]:
        stmt = (
            select(ResponseRecord)
            .where(ResponseRecord.thread_id == thread_id)
            .order_by(ResponseRecord.created_at.desc(), ResponseRecord.id.desc())
        )
        async with self._session("fetch_responses") as session:
            result = await session.scalars(stmt)
            return [Response.model_validate(record) for record in result]

    async def fetch_inbox(self, owner_id: str, limit: int) -> list[InboxItem]:
        has_responses = exists().where(ResponseRecord.thread_id == ThreadRecord.id)
        stmt = (
            select(ThreadRecord)
            .where(ThreadRecord.owner_id == owner_id, has_responses)
            .order_by(ThreadRecord.created_at.desc(), ThreadRecord.id.desc())
            .limit(limit)
            .options(selectinload(ThreadRecord.responses))
        )
        async with self._session("fetch_inbox") as session:
            result = await session.scalars(stmt)
            return [
                InboxItem(
                    thread=Thread.model_validate(record),
                    responses=[Response.model_validate(r) for r in record.responses],
                )
                for record in result
            ]

    async def fetch_unread_responses(self, owner_id: str) -> list[Response]:
        stmt = (
            select(ResponseRecord)
            .join(ThreadRecord, ResponseRecord.thread_id == ThreadRecord.id)
            .where(
                ThreadRecord.owner_id == owner_id,
                ResponseRecord.read_at.is_(None),
                ResponseRecord.author_id != owner_id,
            )
            .order_by(ResponseRecord.created_at.desc(), ResponseRecord.id.desc())
        )
        async with self._session("fetch_unread_responses") as session:
            result = await session.scalars(stmt)
            return [Response.model_validate(record) for record in result]

    # ──────────────────────────────────────────────────────────────
    # Writes
    # ──────────────────────────────────────────────────────────────

    async def mark_read(self, thread_id: int, viewer_id: str) -> int:
        stmt = (
            update(ResponseRecord)
            .where(
                ResponseRecord.thread_id == thread_id,
                ResponseRecord.read_at.is_(None),
                ResponseRecord.author_id != viewer_id,
            )
            .values(read_at=utc_now())
        )
        async with self._session("mark_read") as session:
            result = await session.execute(stmt)
            await session.commit()
            affected = result.rowcount or 0

        logger.info(
            "Thread marked read",
            extra={"thread_id": thread_id, "viewer_id": viewer_id, "affected": affected},
        )
        return affected

    async def mark_response_read(self, response_id: int, viewer_id: str) -> bool:
        # read_at is never overwritten once set
        stmt = (
            update(ResponseRecord)
            .where(ResponseRecord.id == response_id, ResponseRecord.read_at.is_(None))
            .values(read_at=utc_now())
        )
        async with self._session("mark_response_read") as session:
            result = await session.execute(stmt)
            await session.commit()
            if result.rowcount:
                return True
            found = await session.scalar(
                select(ResponseRecord.id).where(ResponseRecord.id == response_id),
            )

        if found is None:
            logger.warning(
                "Response not found",
                extra={"response_id": response_id, "viewer_id": viewer_id},
            )
            return False
        return True

    async def add_thread(
        self,
        owner_id: str,
        content: str = "",
        created_at: datetime | None = None,
    ) -> Thread:
        """Insert a thread. Used by the CLI and for seeding."""
        record = ThreadRecord(
            owner_id=owner_id,
            content=content,
            created_at=created_at or utc_now(),
        )
        async with self._session("add_thread") as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return Thread.model_validate(record)

    async def add_response(
        self,
        thread_id: int,
        author_id: str,
        content: str = "",
        created_at: datetime | None = None,
    ) -> Response:
        """Insert a response under a thread."""
        record = ResponseRecord(
            thread_id=thread_id,
            author_id=author_id,
            content=content,
            created_at=created_at or utc_now(),
        )
        async with self._session("add_response") as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return Response.model_validate(record)
