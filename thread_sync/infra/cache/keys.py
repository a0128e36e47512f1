"""Tagged cache keys and push topics.

Every cached query has a key class carrying its parameters. Keys are
hashable, compare by value, and declare which push topics can change them.

Topics:
    threads          the global thread list
    thread:<id>      responses under one thread
    inbox:<user_id>  the inbox and unread rows of one user
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True, slots=True)
class Topic:
    """A push-channel topic name."""

    name: str

    @classmethod
    def threads(cls) -> Topic:
        return cls("threads")

    @classmethod
    def thread(cls, thread_id: int) -> Topic:
        return cls(f"thread:{thread_id}")

    @classmethod
    def inbox(cls, user_id: str) -> Topic:
        return cls(f"inbox:{user_id}")

    @property
    def kind(self) -> str:
        """Topic family (``threads``, ``thread`` or ``inbox``)."""
        return self.name.split(":", 1)[0]

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class ThreadListKey:
    """One page of the global thread list."""

    kind: ClassVar[str] = "thread_list"

    page_size: int
    cursor: str | None = None

    def topics(self) -> tuple[Topic, ...]:
        return (Topic.threads(),)


@dataclass(frozen=True, slots=True)
class ThreadDetailKey:
    """Responses under one thread as seen by one viewer."""

    kind: ClassVar[str] = "thread_detail"

    thread_id: int
    viewer_id: str

    def topics(self) -> tuple[Topic, ...]:
        return (Topic.thread(self.thread_id),)


@dataclass(frozen=True, slots=True)
class InboxKey:
    """A user's inbox."""

    kind: ClassVar[str] = "inbox"

    user_id: str
    limit: int = 50

    def topics(self) -> tuple[Topic, ...]:
        return (Topic.inbox(self.user_id),)


@dataclass(frozen=True, slots=True)
class UnreadCountKey:
    """A user's unread response rows, from which the unread total is counted."""

    kind: ClassVar[str] = "unread_count"

    user_id: str

    def topics(self) -> tuple[Topic, ...]:
        return (Topic.inbox(self.user_id),)


CacheKey = ThreadListKey | ThreadDetailKey | InboxKey | UnreadCountKey

KEY_KINDS = (
    ThreadListKey.kind,
    ThreadDetailKey.kind,
    InboxKey.kind,
    UnreadCountKey.kind,
)
