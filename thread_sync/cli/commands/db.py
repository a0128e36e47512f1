"""Store schema and seed commands."""

import sys

import click
from sqlalchemy.exc import SQLAlchemyError

from thread_sync.cli.utils import coro, error, info, success
from thread_sync.core.database import create_engine, create_session_factory, init_database
from thread_sync.core.settings import get_db_settings
from thread_sync.features.threads.store import SqlThreadStore


@click.group(name="db")
def db() -> None:
    """Authoritative store management commands."""


@db.command()
@coro
async def init() -> None:
    """Create the threads and responses tables."""
    settings = get_db_settings()
    info(f"Initializing store at: {settings.url}")

    engine = create_engine(settings)
    try:
        await init_database(engine)
    except SQLAlchemyError as e:
        error(f"Failed to initialize store: {e}")
        sys.exit(1)
    finally:
        await engine.dispose()

    success("Store schema ready")


@db.command()
@click.option("--owner", required=True, help="Owner of the seeded threads")
@click.option("--threads", "thread_count", default=5, type=int, help="Number of threads")
@click.option("--responses", "response_count", default=2, type=int, help="Responses per thread")
@click.option("--author", default="responder", help="Author of the seeded responses")
@coro
async def seed(owner: str, thread_count: int, response_count: int, author: str) -> None:
    """Insert sample threads with unread responses."""
    engine = create_engine()
    try:
        await init_database(engine)
        store = SqlThreadStore(create_session_factory(engine))
        for n in range(1, thread_count + 1):
            thread = await store.add_thread(owner, f"Thread {n}")
            for m in range(1, response_count + 1):
                await store.add_response(thread.id, author, f"Response {m} to thread {n}")
    except SQLAlchemyError as e:
        error(f"Failed to seed store: {e}")
        sys.exit(1)
    finally:
        await engine.dispose()

    success(f"Seeded {thread_count} threads with {response_count} responses each")
