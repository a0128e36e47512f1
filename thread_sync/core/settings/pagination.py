"""Pagination settings for thread feeds.

This module provides configurable defaults for keyset pagination. Having
centralized pagination settings bounds the load any single page request can
put on the authoritative store.

Environment variables use PAGINATION_ prefix.
Example: PAGINATION_DEFAULT_PAGE_SIZE=50, PAGINATION_MAX_PAGE_SIZE=200
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaginationSettings(BaseSettings):
    """Pagination configuration settings.

    Attributes:
        default_page_size: Page size used when the caller does not specify one.
        max_page_size: Maximum allowed page size (hard limit).
        reject_oversized: Raise CapacityExceeded instead of clamping.

    Example:
        settings = PaginationSettings()
        page_size = min(requested, settings.max_page_size)
    """

    default_page_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Default page size when page_size is not specified",
    )
    max_page_size: int = Field(
        default=200,
        ge=1,
        le=10000,
        description="Maximum allowed page size (hard limit)",
    )
    reject_oversized: bool = Field(
        default=False,
        description="Reject page sizes above max_page_size instead of clamping them",
    )

    model_config = SettingsConfigDict(
        env_prefix="PAGINATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )
