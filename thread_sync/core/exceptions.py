"""Custom exception classes for the synchronization layer."""

from __future__ import annotations

from typing import Any


class ThreadSyncError(Exception):
    """Base synchronization exception.

    All custom exceptions should inherit from this class. The attributes
    follow the shape of RFC 7807 problem details so callers can surface
    them uniformly.

    Attributes:
        detail: Human-readable error message.
        type: Error type identifier.
        title: Short, human-readable summary of the problem type.
        extra: Additional context-specific information about the error.

    Example:
        raise ThreadSyncError(
            detail="Something went wrong",
            type="sync-error",
            extra={"thread_id": 42},
        )
    """

    default_type = "sync-error"
    default_title = "Synchronization Error"

    def __init__(
        self,
        detail: str,
        type: str | None = None,
        title: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize synchronization exception.

        Args:
            detail: Human-readable error message.
            type: Error type identifier.
            title: Short summary of the problem type.
            extra: Additional context about the error.
        """
        self.detail = detail
        self.type = type or self.default_type
        self.title = title or self.default_title
        self.extra = extra or {}
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a problem-details style dictionary."""
        return {
            "type": self.type,
            "title": self.title,
            "detail": self.detail,
            **self.extra,
        }


class MalformedCursor(ThreadSyncError, ValueError):
    """Raised when a pagination token cannot be decoded.

    Callers recover by resetting to the first page.

    Example:
        raise MalformedCursor(
            detail="Cursor is missing the id field",
            extra={"cursor": token},
        )
    """

    default_type = "malformed-cursor"
    default_title = "Malformed Cursor"


class StoreUnavailable(ThreadSyncError):
    """Raised when the authoritative store cannot be reached.

    Transient: the pager retries it with backoff and the cache keeps
    serving the last-known value.
    """

    default_type = "store-unavailable"
    default_title = "Store Unavailable"


class CommitFailed(ThreadSyncError):
    """Raised when a read-state commit is rejected or times out.

    Example:
        raise CommitFailed(
            detail="Commit timed out after 10.0s",
            extra={"thread_id": 7, "viewer_id": "user-1"},
        )
    """

    default_type = "commit-failed"
    default_title = "Commit Failed"


class CapacityExceeded(ThreadSyncError):
    """Raised when a requested page size exceeds the configured maximum.

    Only raised when oversized requests are configured to be rejected;
    by default the page size is clamped instead.
    """

    default_type = "capacity-exceeded"
    default_title = "Capacity Exceeded"


class ValidationError(ThreadSyncError, ValueError):
    """Raised for invalid arguments."""

    default_type = "validation-error"
    default_title = "Validation Error"


class InvalidTransition(ThreadSyncError):
    """Raised when a read-state transition is not allowed from the current phase."""

    default_type = "invalid-transition"
    default_title = "Invalid Transition"


__all__ = [
    "CapacityExceeded",
    "CommitFailed",
    "InvalidTransition",
    "MalformedCursor",
    "StoreUnavailable",
    "ThreadSyncError",
    "ValidationError",
]
