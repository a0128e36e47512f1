"""Push channel configuration settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RealtimeSettings(BaseSettings):
    """Push channel settings.

    Environment variables use REALTIME_ prefix.
    Example: REALTIME_REDIS_URL="redis://localhost:6379/0"

    When no Redis URL is configured the in-process channel is used and
    events only reach subscribers inside the same process.
    """

    redis_url: str | None = Field(
        default=None,
        description="Redis URL for cross-process PubSub. None selects the local channel.",
    )
    channel_prefix: str = Field(
        default="sync:",
        description="Prefix for Redis PubSub channel names",
    )
    debounce_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Coalescing window for bursts of change events on one topic",
    )

    model_config = SettingsConfigDict(
        env_prefix="REALTIME_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def is_configured(self) -> bool:
        """Check if a Redis URL is set."""
        return bool(self.redis_url)
