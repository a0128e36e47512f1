"""Page schema for cursor-based pagination."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class CursorPage(BaseModel, Generic[T]):
    """One page of a keyset-paginated result.

    Attributes:
        rows: Items in this page, ordered newest first
        next_cursor: Cursor for the next page, None on the last page

    Example:
        {
            "rows": [...],
            "next_cursor": "eyJ2Ijp7ImNyZWF...",
        }
    """

    rows: list[T] = Field(description="Items in this page")
    next_cursor: str | None = Field(
        default=None,
        description="Cursor for the next page (None when exhausted)",
    )

    model_config = {"frozen": True}

    @property
    def has_more(self) -> bool:
        """Whether another page exists."""
        return self.next_cursor is not None
