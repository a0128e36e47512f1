"""Cursor-based (keyset) pagination.

Provides:
- CursorCodec: encode/decode opaque cursors carrying (created_at, id)
- KeysetFilter: SQLAlchemy seek condition for (created_at DESC, id DESC)
- CursorPage: page schema with rows and next_cursor
"""

from __future__ import annotations

from thread_sync.core.pagination.cursor import CursorCodec, CursorPosition
from thread_sync.core.pagination.filters import KeysetFilter
from thread_sync.core.pagination.schemas import CursorPage

__all__ = [
    "CursorCodec",
    "CursorPage",
    "CursorPosition",
    "KeysetFilter",
]
