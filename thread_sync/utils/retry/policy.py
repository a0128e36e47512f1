"""Backoff policy for calls to the authoritative store."""

from __future__ import annotations

from dataclasses import dataclass
import random
from typing import TYPE_CHECKING

from thread_sync.core.exceptions import StoreUnavailable

if TYPE_CHECKING:
    from thread_sync.core.settings import SyncSettings


@dataclass(frozen=True, slots=True)
class StoreRetryPolicy:
    """Exponential backoff for transient store outages.

    Only StoreUnavailable is retried. Delays grow by ``exponential_base`` per
    attempt, are capped at ``max_delay`` and, with jitter, scaled by a random
    factor in [0.5, 1.5].
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> StoreRetryPolicy:
        return cls(
            max_attempts=settings.store_max_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )

    def should_retry(self, exception: Exception) -> bool:
        return isinstance(exception, StoreUnavailable)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
        delay = min(self.initial_delay * self.exponential_base**attempt, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay
