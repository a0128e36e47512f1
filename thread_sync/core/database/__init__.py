"""Database base classes and session helpers."""

from __future__ import annotations

from thread_sync.core.database.base import NAMING_CONVENTION, Base, IntegerPKMixin, utc_now
from thread_sync.core.database.session import (
    create_engine,
    create_session_factory,
    init_database,
)

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "IntegerPKMixin",
    "create_engine",
    "create_session_factory",
    "init_database",
    "utc_now",
]
