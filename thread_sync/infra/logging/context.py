"""Context management for structured logging.

Provides automatic context injection into log records using contextvars, so
the viewer, thread or cache key being worked on shows up in every record a
background task emits without passing it around explicitly.

Each asyncio task gets its own copy of the context, which keeps commit and
refresh tasks for different threads from leaking fields into each other.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Set logging context for the current async task.

    Args:
        **kwargs: Key-value pairs to add to logging context.
            Common examples: viewer_id, thread_id, cache_key

    Example:
        ```python
        set_log_context(viewer_id="user-1", thread_id=42)
        logger.info("Committing read state")  # Includes viewer_id and thread_id
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for the current async task."""
    _log_context.set({})


def remove_from_log_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    current = _log_context.get().copy()
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


class ContextInjectingFilter(logging.Filter):
    """Logging filter that injects the contextvars log context into LogRecords.

    Applied to the root logger by configure_logging(), so every logger
    benefits without code changes.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject context into log record.

        Returns:
            True (always allow the record to be logged).
        """
        for key, value in _log_context.get().items():
            # Don't overwrite existing attributes
            if not hasattr(record, key):
                setattr(record, key, value)

        return True
