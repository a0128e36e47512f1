"""Read-state commit and store retry settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Timeouts and retry policy for calls to the authoritative store.

    Environment variables use SYNC_ prefix.
    Example: SYNC_COMMIT_TIMEOUT=5, SYNC_STORE_MAX_ATTEMPTS=3
    """

    commit_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Seconds to wait for a read-state commit before rolling back",
    )
    store_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts for a page fetch when the store is unavailable",
    )
    retry_initial_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Initial backoff delay in seconds",
    )
    retry_max_delay: float = Field(
        default=10.0,
        ge=0.0,
        le=300.0,
        description="Upper bound for a single backoff delay in seconds",
    )
    retry_jitter: bool = Field(
        default=True,
        description="Randomize backoff delays",
    )

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )
