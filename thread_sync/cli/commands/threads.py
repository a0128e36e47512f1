"""Thread list and read-state commands."""

import sys

import click

from thread_sync.cli.utils import coro, error, header, info, success
from thread_sync.core.exceptions import CommitFailed, MalformedCursor, ThreadSyncError
from thread_sync.features.threads import ThreadSyncClient
from thread_sync.infra.cache import Topic


@click.group(name="threads")
def threads() -> None:
    """Thread list and read-state commands."""


@threads.command()
@click.option("--size", "page_size", type=int, default=None, help="Rows per page")
@click.option("--cursor", default=None, help="Cursor printed by the previous page")
@click.option("--viewer", default="cli", help="Viewer id")
@click.option("--json", "as_json", is_flag=True, help="Print the page as JSON")
@coro
async def page(page_size: int | None, cursor: str | None, viewer: str, as_json: bool) -> None:
    """Print one page of threads, newest first."""
    client = ThreadSyncClient.from_settings(viewer)
    try:
        result = await client.fetch_page(page_size=page_size, cursor=cursor)
    except MalformedCursor as e:
        error(f"{e.detail}. Start again without --cursor.")
        sys.exit(1)
    except ThreadSyncError as e:
        error(f"Failed to fetch page: {e.detail}")
        sys.exit(1)
    finally:
        await client.close()

    if as_json:
        click.echo(result.model_dump_json(indent=2))
        return

    header(f"{len(result.rows)} threads")
    for thread in result.rows:
        click.echo(f"  #{thread.id}  {thread.created_at.isoformat()}  {thread.owner_id}: {thread.content}")

    if result.next_cursor:
        info(f"Next page: --cursor {result.next_cursor}")
    else:
        info("No more pages")


@threads.command(name="mark-read")
@click.argument("thread_id", type=int)
@click.option("--viewer", required=True, help="Viewer id")
@coro
async def mark_read(thread_id: int, viewer: str) -> None:
    """Mark every response under THREAD_ID read."""
    client = ThreadSyncClient.from_settings(viewer)
    try:
        affected = await client.mark_thread_read(thread_id)
        await client.channel.publish(Topic.thread(thread_id).name)
        await client.channel.publish(Topic.inbox(viewer).name)
    except CommitFailed as e:
        error(f"Read state not saved: {e.detail}")
        sys.exit(1)
    finally:
        await client.close()

    success(f"Marked {affected} responses read")


@threads.command()
@click.option("--owner", required=True, help="Owner id")
@click.argument("content")
@coro
async def post(owner: str, content: str) -> None:
    """Create a thread."""
    client = ThreadSyncClient.from_settings(owner)
    try:
        thread = await client.store.add_thread(owner, content)
        await client.channel.publish(Topic.threads().name)
    except ThreadSyncError as e:
        error(f"Failed to create thread: {e.detail}")
        sys.exit(1)
    finally:
        await client.close()

    success(f"Created thread #{thread.id}")


@threads.command()
@click.argument("thread_id", type=int)
@click.option("--author", required=True, help="Author id")
@click.argument("content")
@coro
async def reply(thread_id: int, author: str, content: str) -> None:
    """Add a response to THREAD_ID."""
    client = ThreadSyncClient.from_settings(author)
    try:
        thread = await client.store.fetch_thread(thread_id)
        if thread is None:
            error(f"Thread #{thread_id} not found")
            sys.exit(1)
        response = await client.store.add_response(thread_id, author, content)
        await client.channel.publish(Topic.thread(thread_id).name)
        await client.channel.publish(Topic.inbox(thread.owner_id).name)
    except ThreadSyncError as e:
        error(f"Failed to add response: {e.detail}")
        sys.exit(1)
    finally:
        await client.close()

    success(f"Added response #{response.id}")
