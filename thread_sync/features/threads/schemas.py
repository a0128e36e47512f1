"""Thread, response and inbox schemas.

These are the values the cache holds. They are frozen; read-state changes
produce new instances through the ``mark_read`` helpers so a cached value is
never mutated in place.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands timestamps back naive; they are stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Thread(BaseModel):
    """An originating post."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    owner_id: str
    content: str = ""
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Response(BaseModel):
    """A reply under a thread."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    thread_id: int
    author_id: str
    content: str = ""
    created_at: datetime
    read_at: datetime | None = None

    @field_validator("created_at", "read_at")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def is_unread_for(self, viewer_id: str) -> bool:
        """Unread and authored by someone other than the viewer."""
        return not self.is_read and self.author_id != viewer_id


def stamp_responses(
    responses: list[Response],
    *,
    thread_id: int,
    viewer_id: str,
    read_at: datetime,
    response_id: int | None = None,
) -> list[Response]:
    """Return a copy of ``responses`` with the matching unread rows stamped read.

    Only rows under ``thread_id`` that are unread for the viewer are touched;
    when ``response_id`` is given only that row is.
    """
    stamped = []
    for response in responses:
        if (
            response.thread_id == thread_id
            and response.is_unread_for(viewer_id)
            and (response_id is None or response.id == response_id)
        ):
            response = response.model_copy(update={"read_at": read_at})
        stamped.append(response)
    return stamped


def count_unread(responses: list[Response], viewer_id: str) -> int:
    """Count responses unread for the viewer. Always derived from rows."""
    return sum(1 for response in responses if response.is_unread_for(viewer_id))


class ThreadDetail(BaseModel):
    """A thread's responses as seen by one viewer, newest first."""

    model_config = ConfigDict(frozen=True)

    thread_id: int
    viewer_id: str
    responses: list[Response] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def unread_count(self) -> int:
        return count_unread(self.responses, self.viewer_id)

    def mark_read(
        self,
        thread_id: int,
        viewer_id: str,
        read_at: datetime,
        response_id: int | None = None,
    ) -> ThreadDetail:
        if thread_id != self.thread_id:
            return self
        return self.model_copy(
            update={
                "responses": stamp_responses(
                    self.responses,
                    thread_id=thread_id,
                    viewer_id=viewer_id,
                    read_at=read_at,
                    response_id=response_id,
                ),
            },
        )


class InboxItem(BaseModel):
    """A thread owned by the viewer together with its responses."""

    model_config = ConfigDict(frozen=True)

    thread: Thread
    responses: list[Response] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def unread_count(self) -> int:
        return count_unread(self.responses, self.thread.owner_id)

    @property
    def latest_response_at(self) -> datetime | None:
        return max((r.created_at for r in self.responses), default=None)


class Inbox(BaseModel):
    """The viewer's threads that have responses, newest thread first."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    items: list[InboxItem] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def unread_total(self) -> int:
        return sum(item.unread_count for item in self.items)

    def mark_read(
        self,
        thread_id: int,
        viewer_id: str,
        read_at: datetime,
        response_id: int | None = None,
    ) -> Inbox:
        items = []
        for item in self.items:
            if item.thread.id == thread_id:
                item = item.model_copy(
                    update={
                        "responses": stamp_responses(
                            item.responses,
                            thread_id=thread_id,
                            viewer_id=viewer_id,
                            read_at=read_at,
                            response_id=response_id,
                        ),
                    },
                )
            items.append(item)
        return self.model_copy(update={"items": items})


class UnreadResponses(BaseModel):
    """Unread responses across the viewer's threads.

    The unread total is the count of rows still unread, never a stored number.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    rows: list[Response] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        return count_unread(self.rows, self.user_id)

    def mark_read(
        self,
        thread_id: int,
        viewer_id: str,
        read_at: datetime,
        response_id: int | None = None,
    ) -> UnreadResponses:
        return self.model_copy(
            update={
                "rows": stamp_responses(
                    self.rows,
                    thread_id=thread_id,
                    viewer_id=viewer_id,
                    read_at=read_at,
                    response_id=response_id,
                ),
            },
        )
