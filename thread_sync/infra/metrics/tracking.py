"""Helper functions for tracking operational metrics."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time
from typing import TYPE_CHECKING

from thread_sync.infra.metrics import prometheus

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


# ============================================================================
# Cache Tracking
# ============================================================================


def track_cache_hit(kind: str, *, stale: bool) -> None:
    """Track a cache hit.

    Args:
        kind: Cache key kind (thread_list, thread_detail, inbox, unread_count)
        stale: Whether the served value was dirty or past its window
    """
    prometheus.cache_hits_total.labels(
        kind=kind,
        freshness="stale" if stale else "fresh",
    ).inc()


def track_cache_miss(kind: str) -> None:
    """Track a cache miss."""
    prometheus.cache_misses_total.labels(kind=kind).inc()


def track_cache_invalidation(kind: str) -> None:
    """Track an entry being marked dirty."""
    prometheus.cache_invalidations_total.labels(kind=kind).inc()


def track_cache_eviction(kind: str) -> None:
    """Track an LRU eviction."""
    prometheus.cache_evictions_total.labels(kind=kind).inc()


def track_cache_refresh(kind: str, outcome: str) -> None:
    """Track a background refresh.

    Args:
        kind: Cache key kind
        outcome: applied, discarded (superseded by a newer write) or failed

    Example:
        track_cache_refresh("inbox", "discarded")
    """
    prometheus.cache_refreshes_total.labels(kind=kind, outcome=outcome).inc()


def set_cache_size(size: int) -> None:
    """Record the current number of cache entries."""
    prometheus.cache_entries.set(size)


# ============================================================================
# Store Tracking
# ============================================================================


@asynccontextmanager
async def track_store_operation(operation: str) -> AsyncIterator[None]:
    """Time an authoritative store call.

    Example:
            async with track_store_operation("fetch_threads"):
                rows = await session.execute(stmt)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        prometheus.store_operation_duration_seconds.labels(operation=operation).observe(
            time.perf_counter() - start,
        )


def track_read_commit(outcome: str) -> None:
    """Track a read-state commit outcome (confirmed or rolled_back)."""
    prometheus.read_commits_total.labels(outcome=outcome).inc()


# ============================================================================
# Retry Tracking
# ============================================================================


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Track a retry attempt.

    Args:
        operation: Name of the operation being retried
        attempt_number: Current attempt number (1-indexed)

    Example:
            track_retry_attempt("fetch_threads", 2)
    """
    prometheus.retry_attempts_total.labels(
        operation=operation,
        attempt_number=str(attempt_number),
    ).inc()


def track_retry_exhausted(operation: str) -> None:
    """Track when all retry attempts are exhausted."""
    prometheus.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts_needed: int) -> None:
    """Track successful operation after retries."""
    prometheus.retry_success_after_failure_total.labels(
        operation=operation,
        attempts_needed=str(attempts_needed),
    ).inc()


# ============================================================================
# Realtime Tracking
# ============================================================================


def track_push_event(topic_kind: str) -> None:
    """Track a change event received from the push channel."""
    prometheus.push_events_total.labels(topic_kind=topic_kind).inc()
    logger.debug("Tracked push event", extra={"topic_kind": topic_kind})
