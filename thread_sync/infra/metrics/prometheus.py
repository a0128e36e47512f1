"""Prometheus metrics for the synchronization layer."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry keeps library metrics separate from the host application's
REGISTRY = CollectorRegistry()

DEFAULT_LATENCY_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)

# ============================================================================
# Cache Coordinator Metrics
# ============================================================================

cache_hits_total = Counter(
    "sync_cache_hits_total",
    "Total number of cache hits by key kind and freshness",
    ["kind", "freshness"],  # freshness: fresh, stale
    registry=REGISTRY,
)

cache_misses_total = Counter(
    "sync_cache_misses_total",
    "Total number of cache misses by key kind",
    ["kind"],
    registry=REGISTRY,
)

cache_invalidations_total = Counter(
    "sync_cache_invalidations_total",
    "Total number of cache entries marked dirty",
    ["kind"],
    registry=REGISTRY,
)

cache_evictions_total = Counter(
    "sync_cache_evictions_total",
    "Total number of cache entries evicted by the LRU policy",
    ["kind"],
    registry=REGISTRY,
)

cache_refreshes_total = Counter(
    "sync_cache_refreshes_total",
    "Total number of background refreshes by outcome",
    ["kind", "outcome"],  # outcome: applied, discarded, failed
    registry=REGISTRY,
)

cache_entries = Gauge(
    "sync_cache_entries",
    "Current number of cache entries",
    registry=REGISTRY,
)

# ============================================================================
# Store Metrics
# ============================================================================

store_operation_duration_seconds = Histogram(
    "sync_store_operation_duration_seconds",
    "Authoritative store operation latency in seconds",
    ["operation"],
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

read_commits_total = Counter(
    "sync_read_commits_total",
    "Total number of read-state commits by outcome",
    ["outcome"],  # outcome: confirmed, rolled_back
    registry=REGISTRY,
)

# ============================================================================
# Retry Metrics
# ============================================================================

retry_attempts_total = Counter(
    "sync_retry_attempts_total",
    "Total number of retry attempts",
    ["operation", "attempt_number"],
    registry=REGISTRY,
)

retry_exhausted_total = Counter(
    "sync_retry_exhausted_total",
    "Total number of operations that exhausted all retries",
    ["operation"],
    registry=REGISTRY,
)

retry_success_after_failure_total = Counter(
    "sync_retry_success_after_failure_total",
    "Total number of operations that succeeded after at least one retry",
    ["operation", "attempts_needed"],
    registry=REGISTRY,
)

# ============================================================================
# Realtime Metrics
# ============================================================================

push_events_total = Counter(
    "sync_push_events_total",
    "Total number of push channel events by topic kind",
    ["topic_kind"],
    registry=REGISTRY,
)
