from __future__ import annotations

from thread_sync.utils.retry.decorator import retry_store_calls
from thread_sync.utils.retry.policy import StoreRetryPolicy

__all__ = ["retry_store_calls", "StoreRetryPolicy"]
