"""CLI utilities for running async operations and formatting output."""

from thread_sync.cli.utils.async_runner import coro
from thread_sync.cli.utils.formatters import error, header, info, success, warning

__all__ = [
    "coro",
    "error",
    "header",
    "info",
    "success",
    "warning",
]
