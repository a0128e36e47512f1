"""Unit tests for settings models and loaders."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from thread_sync.core.settings import (
    CacheSettings,
    PaginationSettings,
    SyncSettings,
    get_cache_settings,
    get_pagination_settings,
    get_realtime_settings,
)


@pytest.mark.unit
class TestSettings:
    """Test suite for domain settings."""

    def test_defaults(self, monkeypatch):
        for name in ("PAGINATION_DEFAULT_PAGE_SIZE", "PAGINATION_MAX_PAGE_SIZE", "CACHE_CAPACITY"):
            monkeypatch.delenv(name, raising=False)

        pagination = PaginationSettings()
        cache = CacheSettings()

        assert pagination.default_page_size == 50
        assert pagination.max_page_size == 200
        assert pagination.reject_oversized is False
        assert cache.thread_list_stale_after == 30
        assert cache.thread_detail_stale_after == 15
        assert cache.inbox_stale_after == 20
        assert cache.unread_count_stale_after == 10

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("PAGINATION_MAX_PAGE_SIZE", "25")
        monkeypatch.setenv("SYNC_COMMIT_TIMEOUT", "2.5")

        assert PaginationSettings().max_page_size == 25
        assert SyncSettings().commit_timeout == 2.5

    def test_settings_are_frozen(self):
        settings = PaginationSettings()

        with pytest.raises(ValidationError):
            settings.max_page_size = 10

    def test_validation(self):
        with pytest.raises(ValidationError):
            PaginationSettings(default_page_size=0)
        with pytest.raises(ValidationError):
            SyncSettings(commit_timeout=0)

    def test_loaders_cache_instances(self):
        assert get_pagination_settings() is get_pagination_settings()
        assert get_cache_settings() is get_cache_settings()

    def test_realtime_is_configured(self, monkeypatch):
        monkeypatch.setenv("REALTIME_REDIS_URL", "redis://localhost:6379/0")

        assert get_realtime_settings().is_configured is True
