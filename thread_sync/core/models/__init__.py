"""ORM models of the authoritative store."""

from __future__ import annotations

from thread_sync.core.models.thread import ResponseRecord, ThreadRecord

__all__ = ["ResponseRecord", "ThreadRecord"]
