"""Logging infrastructure.

Structured logging with:
- JSONL format for log aggregation
- Automatic context injection (viewer_id, thread_id, ...)
- QueueHandler + QueueListener for non-blocking I/O

Basic usage:
    from thread_sync.infra.logging import set_log_context
    import logging

    logger = logging.getLogger(__name__)

    set_log_context(viewer_id="user-1")
    logger.info("Marking thread read")  # Automatically includes viewer_id
"""

from thread_sync.infra.logging.config import configure_logging, setup_logging, shutdown
from thread_sync.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    remove_from_log_context,
    set_log_context,
)
from thread_sync.infra.logging.formatters import JSONFormatter

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "remove_from_log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
