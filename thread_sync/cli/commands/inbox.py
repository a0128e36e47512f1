"""Inbox commands."""

import sys

import click

from thread_sync.cli.utils import coro, error, header, info
from thread_sync.core.exceptions import ThreadSyncError
from thread_sync.features.threads import ThreadSyncClient


@click.group(name="inbox")
def inbox() -> None:
    """Inbox and unread count commands."""


@inbox.command()
@click.option("--user", "user_id", required=True, help="Inbox owner")
@click.option("--limit", default=50, type=int, help="Maximum threads")
@coro
async def show(user_id: str, limit: int) -> None:
    """List the user's threads that have responses."""
    client = ThreadSyncClient.from_settings(user_id)
    try:
        result = await client.get_inbox(limit=limit)
    except ThreadSyncError as e:
        error(f"Failed to load inbox: {e.detail}")
        sys.exit(1)
    finally:
        await client.close()

    header(f"Inbox for {user_id}: {result.unread_total} unread")
    if not result.items:
        info("No threads with responses")
        return
    for item in result.items:
        latest = item.latest_response_at
        click.echo(
            f"  #{item.thread.id}  {item.thread.content}  "
            f"({len(item.responses)} responses, {item.unread_count} unread)"
            f"  last reply {latest.isoformat() if latest else '-'}"
        )


@inbox.command()
@click.option("--user", "user_id", required=True, help="Inbox owner")
@coro
async def unread(user_id: str) -> None:
    """Print the user's unread response total."""
    client = ThreadSyncClient.from_settings(user_id)
    try:
        total = await client.get_unread_total()
    except ThreadSyncError as e:
        error(f"Failed to count unread responses: {e.detail}")
        sys.exit(1)
    finally:
        await client.close()

    click.echo(total)
