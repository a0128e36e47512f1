"""Keyset (seek) filter for SQLAlchemy thread queries.

Instead of OFFSET, the filter adds a WHERE condition that seeks directly past
the cursor position. Results stay stable while rows are inserted or deleted
between page requests.

For ORDER BY created_at DESC, id DESC with cursor at (t1, id1):
    WHERE (created_at < t1) OR (created_at = t1 AND id < id1)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import Select, and_, or_

if TYPE_CHECKING:
    from sqlalchemy.orm import InstrumentedAttribute

    from thread_sync.core.pagination.cursor import CursorPosition


class KeysetFilter:
    """Apply descending keyset pagination to a SQLAlchemy query.

    Example:
        stmt = KeysetFilter(
            created_at=ThreadRecord.created_at,
            id=ThreadRecord.id,
            position=position,
            limit=51,
        ).apply(select(ThreadRecord))

    Attributes:
        position: Decoded cursor (None for the first page)
        limit: Maximum rows returned by the statement
    """

    def __init__(
        self,
        created_at: InstrumentedAttribute[Any],
        id: InstrumentedAttribute[Any],
        position: CursorPosition | None,
        *,
        limit: int,
    ) -> None:
        self.created_at = created_at
        self.id = id
        self.position = position
        self.limit = limit

    def apply(self, statement: Select[Any]) -> Select[Any]:
        """Add ordering, the seek condition and the limit to a statement."""
        statement = statement.order_by(self.created_at.desc(), self.id.desc())

        if self.position is not None:
            statement = statement.where(self.seek_condition())

        return statement.limit(self.limit)

    def seek_condition(self) -> Any:
        """Build the compound condition selecting rows strictly after the cursor."""
        assert self.position is not None
        created_at, row_id = self.position
        return or_(
            self.created_at < created_at,
            and_(self.created_at == created_at, self.id < row_id),
        )
