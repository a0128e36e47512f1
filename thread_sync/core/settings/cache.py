"""Client cache configuration settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Staleness windows and capacity for the cache coordinator.

    Environment variables use CACHE_ prefix.
    Example: CACHE_CAPACITY=500, CACHE_THREAD_LIST_STALE_AFTER=30
    """

    capacity: int | None = Field(
        default=500,
        ge=1,
        description="Maximum number of cache entries. None disables eviction.",
    )

    # ──────────────────────────────────────────────────────────────
    # Revalidation windows (seconds) per key kind
    # ──────────────────────────────────────────────────────────────

    thread_list_stale_after: float = Field(
        default=30.0,
        ge=0.0,
        description="Seconds before a cached thread list page needs revalidation",
    )
    thread_detail_stale_after: float = Field(
        default=15.0,
        ge=0.0,
        description="Seconds before a cached thread detail needs revalidation",
    )
    inbox_stale_after: float = Field(
        default=20.0,
        ge=0.0,
        description="Seconds before a cached inbox needs revalidation",
    )
    unread_count_stale_after: float = Field(
        default=10.0,
        ge=0.0,
        description="Seconds before cached unread rows need revalidation",
    )

    revalidate_interval: float = Field(
        default=30.0,
        ge=0.0,
        description="Seconds between periodic revalidation sweeps (0 disables the sweep)",
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )
