"""Main CLI entry point for thread-sync commands."""

import click

from thread_sync import __version__
from thread_sync.cli.commands import config, db, inbox, threads
from thread_sync.infra.logging.config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="thread-sync")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """thread-sync CLI - Inspect and drive the thread synchronization layer.

    \b
    Command Groups:
      db       Store schema and sample data
      threads  Thread pages, posting and read state
      inbox    Inbox and unread totals
      config   Effective configuration

    \b
    Quick Start:
      thread-sync db init
      thread-sync db seed --owner user-1
      thread-sync threads page --size 2
      thread-sync inbox unread --user user-1
    """
    ctx.ensure_object(dict)


cli.add_command(db.db)
cli.add_command(threads.threads)
cli.add_command(inbox.inbox)
cli.add_command(config.config)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
