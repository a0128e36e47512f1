"""Paginated query engine for the thread list.

Keyset pagination over (created_at DESC, id DESC). Each page asks the store
for one row more than it returns; the extra row only signals that another
page exists. Rows inserted ahead of the cursor while a client pages never
shift later pages, so nothing is skipped or repeated.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from thread_sync.core.exceptions import CapacityExceeded, ValidationError
from thread_sync.core.pagination import CursorCodec, CursorPage, CursorPosition
from thread_sync.core.settings import get_pagination_settings, get_sync_settings
from thread_sync.features.threads.schemas import Thread
from thread_sync.utils.retry import StoreRetryPolicy, retry_store_calls

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from thread_sync.core.settings import PaginationSettings, SyncSettings
    from thread_sync.features.threads.store import ThreadStore

logger = logging.getLogger(__name__)

ThreadPage = CursorPage[Thread]


class ThreadPager:
    """Fetch pages of the thread list from the authoritative store.

    Example:
        pager = ThreadPager(store)
        page = await pager.fetch_page(page_size=20)
        while page.next_cursor:
            page = await pager.fetch_page(page_size=20, cursor=page.next_cursor)
    """

    def __init__(
        self,
        store: ThreadStore,
        settings: PaginationSettings | None = None,
        sync_settings: SyncSettings | None = None,
    ) -> None:
        self._store = store
        self.settings = settings or get_pagination_settings()
        sync = sync_settings or get_sync_settings()

        self._fetch_rows = retry_store_calls(StoreRetryPolicy.from_settings(sync))(self._fetch_rows_once)

    def resolve_page_size(self, page_size: int | None) -> int:
        """Apply the default and the configured maximum to a requested size.

        Raises:
            ValidationError: If page_size is below 1
            CapacityExceeded: If page_size is over the maximum and oversized
                requests are rejected rather than clamped
        """
        if page_size is None:
            return self.settings.default_page_size

        if page_size < 1:
            raise ValidationError(
                detail=f"page_size must be at least 1, got {page_size}",
                extra={"page_size": page_size},
            )

        max_size = self.settings.max_page_size
        if page_size > max_size:
            if self.settings.reject_oversized:
                raise CapacityExceeded(
                    detail=f"page_size {page_size} exceeds the maximum of {max_size}",
                    extra={"page_size": page_size, "max_page_size": max_size},
                )
            logger.warning(
                "Page size clamped",
                extra={"requested": page_size, "max_page_size": max_size},
            )
            return max_size

        return page_size

    async def fetch_page(
        self,
        page_size: int | None = None,
        cursor: str | None = None,
    ) -> ThreadPage:
        """Fetch one page of threads, newest first.

        Args:
            page_size: Rows per page (default and maximum from settings)
            cursor: Opaque cursor from a previous page, None for the first page

        Returns:
            Page with rows and the cursor of the next page (None when exhausted)

        Raises:
            MalformedCursor: Before any store call, if the cursor is corrupt
            StoreUnavailable: After the retry attempts are exhausted
        """
        size = self.resolve_page_size(page_size)
        position = CursorCodec.decode(cursor) if cursor is not None else None

        rows = await self._fetch_rows(size + 1, position)

        next_cursor = None
        if len(rows) > size:
            rows = rows[:size]
            next_cursor = CursorCodec.encode(rows[-1])

        logger.debug(
            "Fetched thread page",
            extra={"page_size": size, "rows": len(rows), "has_more": next_cursor is not None},
        )
        return ThreadPage(rows=rows, next_cursor=next_cursor)

    async def iter_pages(self, page_size: int | None = None) -> AsyncIterator[ThreadPage]:
        """Walk every page from the newest thread to the oldest."""
        cursor = None
        while True:
            page = await self.fetch_page(page_size=page_size, cursor=cursor)
            yield page
            if page.next_cursor is None:
                return
            cursor = page.next_cursor

    async def _fetch_rows_once(self, limit: int, position: CursorPosition | None) -> list[Thread]:
        if position is None:
            return await self._store.fetch_threads(limit)
        return await self._store.fetch_threads(
            limit,
            cursor_created_at=position.created_at,
            cursor_id=position.id,
        )
