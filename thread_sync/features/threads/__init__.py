"""Threads feature: store, pager, read-state reconciler and client facade."""

from __future__ import annotations

from thread_sync.features.threads.client import ThreadSyncClient
from thread_sync.features.threads.read_state import (
    ReadPhase,
    ReadStateMachine,
    ReadStateReconciler,
)
from thread_sync.features.threads.schemas import (
    Inbox,
    InboxItem,
    Response,
    Thread,
    ThreadDetail,
    UnreadResponses,
)
from thread_sync.features.threads.service import ThreadPage, ThreadPager
from thread_sync.features.threads.store import SqlThreadStore, ThreadStore

__all__ = [
    "Inbox",
    "InboxItem",
    "ReadPhase",
    "ReadStateMachine",
    "ReadStateReconciler",
    "Response",
    "SqlThreadStore",
    "Thread",
    "ThreadDetail",
    "ThreadPage",
    "ThreadPager",
    "ThreadStore",
    "ThreadSyncClient",
    "UnreadResponses",
]
