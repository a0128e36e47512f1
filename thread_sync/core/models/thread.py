"""Thread and response tables of the authoritative store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from thread_sync.core.database.base import Base, IntegerPKMixin, utc_now


class ThreadRecord(Base, IntegerPKMixin):
    """An originating post. Immutable once created."""

    __tablename__ = "threads"
    __table_args__ = (Index("ix_threads_created_at_id", "created_at", "id"),)

    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    content: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    responses: Mapped[list[ResponseRecord]] = relationship(
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="ResponseRecord.created_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<ThreadRecord(id={self.id}, owner_id={self.owner_id!r})>"


class ResponseRecord(Base, IntegerPKMixin):
    """A reply under a thread. ``read_at`` is set once and never cleared."""

    __tablename__ = "responses"

    thread_id: Mapped[int] = mapped_column(
        ForeignKey("threads.id", ondelete="CASCADE"),
        index=True,
    )
    author_id: Mapped[str] = mapped_column(String(64))
    content: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    thread: Mapped[ThreadRecord] = relationship(back_populates="responses")

    def __repr__(self) -> str:
        return f"<ResponseRecord(id={self.id}, thread_id={self.thread_id}, read={self.read_at is not None})>"
