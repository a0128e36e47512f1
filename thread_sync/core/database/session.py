"""Async engine and session factory for the authoritative store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from thread_sync.core.database.base import Base
from thread_sync.core.settings import get_db_settings

if TYPE_CHECKING:
    from thread_sync.core.settings import DatabaseSettings

logger = logging.getLogger(__name__)


def create_engine(settings: DatabaseSettings | None = None) -> AsyncEngine:
    """Create an async engine from database settings.

    Args:
        settings: Explicit settings. Defaults to get_db_settings().
    """
    db_settings = settings or get_db_settings()
    return create_async_engine(db_settings.url, echo=db_settings.echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by SqlThreadStore."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(engine: AsyncEngine) -> None:
    """Create the store tables if they do not exist yet."""
    # Register the models on Base.metadata
    from thread_sync.core.models import thread  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database schema ensured", extra={"url": engine.url.render_as_string()})
