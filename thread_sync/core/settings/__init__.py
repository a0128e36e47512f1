"""Modular Pydantic Settings v2 configuration.

Each domain (pagination, cache, sync, realtime, database, logging) has its own
frozen settings model read from environment variables with a domain prefix.

Import settings via cached loaders:
    from thread_sync.core.settings import get_pagination_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file (development only)
"""

from __future__ import annotations

from .cache import CacheSettings
from .database import DatabaseSettings
from .loader import (
    clear_settings_cache,
    get_cache_settings,
    get_db_settings,
    get_logging_settings,
    get_pagination_settings,
    get_realtime_settings,
    get_sync_settings,
)
from .logs import LoggingSettings
from .pagination import PaginationSettings
from .realtime import RealtimeSettings
from .sync import SyncSettings

__all__ = [
    "CacheSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "PaginationSettings",
    "RealtimeSettings",
    "SyncSettings",
    "clear_settings_cache",
    "get_cache_settings",
    "get_db_settings",
    "get_logging_settings",
    "get_pagination_settings",
    "get_realtime_settings",
    "get_sync_settings",
]
