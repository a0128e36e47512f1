"""Cursor encoding and decoding for thread pagination.

Cursors are opaque strings that encode the position of the last row of a
page. They carry the sort key of that row, allowing the next query to seek
directly past it without any server-side session state.

The cursor format is:
1. JSON object with the sort field values
2. Base64 URL-safe encoded for use in URLs

Example cursor payload:
    {"v": {"created_at": "2025-01-15T10:30:00.123456+00:00", "id": 42}, "d": "forward"}

Ordering is always (created_at DESC, id DESC); ``id`` breaks ties between
rows created in the same instant.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime
import json
from typing import Any, NamedTuple

from thread_sync.core.exceptions import MalformedCursor

SORT_FIELDS = ("created_at", "id")


class CursorPosition(NamedTuple):
    """Decoded cursor: the sort key of the last row already delivered."""

    created_at: datetime
    id: int | str


class CursorCodec:
    """Encode and decode pagination cursors.

    Usage:
        # Encoding
        cursor = CursorCodec.encode(thread)

        # Decoding
        position = CursorCodec.decode(cursor)
        print(position.created_at, position.id)
    """

    @staticmethod
    def encode(row: Any) -> str:
        """Encode the sort key of a row to an opaque string.

        Args:
            row: Any object with ``created_at`` and ``id`` attributes
                (ORM record, schema, or CursorPosition)

        Returns:
            URL-safe base64 encoded string

        Example:
            cursor = CursorCodec.encode(page.rows[-1])
        """
        payload = {
            "v": {
                # isoformat keeps microseconds and the UTC offset
                "created_at": row.created_at.isoformat(),
                "id": row.id,
            },
            "d": "forward",
        }
        json_str = json.dumps(payload, separators=(",", ":"))
        return base64.urlsafe_b64encode(json_str.encode()).decode()

    @staticmethod
    def decode(cursor: str) -> CursorPosition:
        """Decode a cursor string to a position.

        Args:
            cursor: URL-safe base64 encoded cursor string

        Returns:
            CursorPosition with the sort key values

        Raises:
            MalformedCursor: If the cursor is not base64 JSON, has the wrong
                sort fields, or carries values of the wrong type
        """
        try:
            json_str = base64.urlsafe_b64decode(cursor.encode()).decode()
            payload = json.loads(json_str)
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise MalformedCursor(
                detail=f"Invalid cursor: {e}",
                extra={"cursor": cursor},
            ) from e

        values = payload.get("v") if isinstance(payload, dict) else None
        if not isinstance(values, dict) or set(values) != set(SORT_FIELDS):
            raise MalformedCursor(
                detail=f"Cursor must carry exactly the sort fields {', '.join(SORT_FIELDS)}",
                extra={"cursor": cursor},
            )

        raw_created_at = values["created_at"]
        raw_id = values["id"]

        if not isinstance(raw_created_at, str):
            raise MalformedCursor(
                detail="Cursor timestamp must be an ISO 8601 string",
                extra={"cursor": cursor},
            )
        try:
            created_at = datetime.fromisoformat(raw_created_at)
        except ValueError as e:
            raise MalformedCursor(
                detail=f"Unparseable cursor timestamp: {raw_created_at!r}",
                extra={"cursor": cursor},
            ) from e

        # bool is an int subclass but never a valid id
        if isinstance(raw_id, bool) or not isinstance(raw_id, (int, str)):
            raise MalformedCursor(
                detail="Cursor id must be an integer or string",
                extra={"cursor": cursor},
            )

        return CursorPosition(created_at=created_at, id=raw_id)
