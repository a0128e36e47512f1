"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from thread_sync.core.settings.loader import get_pagination_settings

    settings = get_pagination_settings()  # First call: loads and validates
    settings = get_pagination_settings()  # Subsequent calls: returns cached instance

Testing:
    In tests, clear the cache to force reload:
    clear_settings_cache()

    Or pass explicit instances to the components that take settings.
"""

from __future__ import annotations

from functools import lru_cache

from .cache import CacheSettings
from .database import DatabaseSettings
from .logs import LoggingSettings
from .pagination import PaginationSettings
from .realtime import RealtimeSettings
from .sync import SyncSettings


@lru_cache(maxsize=1)
def get_pagination_settings() -> PaginationSettings:
    """Get cached pagination settings.

    Returns:
        Validated and frozen PaginationSettings instance.
    """
    return PaginationSettings()


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """Get cached cache coordinator settings.

    Returns:
        Validated and frozen CacheSettings instance.
    """
    return CacheSettings()


@lru_cache(maxsize=1)
def get_sync_settings() -> SyncSettings:
    """Get cached read-state commit and retry settings."""
    return SyncSettings()


@lru_cache(maxsize=1)
def get_realtime_settings() -> RealtimeSettings:
    """Get cached push channel settings."""
    return RealtimeSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings."""
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings."""
    return LoggingSettings()


def clear_settings_cache() -> None:
    """Clear all settings caches.

    Useful for testing or when you need to force reload settings.
    In production, prefer process restarts over cache clearing.
    """
    get_pagination_settings.cache_clear()
    get_cache_settings.cache_clear()
    get_sync_settings.cache_clear()
    get_realtime_settings.cache_clear()
    get_db_settings.cache_clear()
    get_logging_settings.cache_clear()
