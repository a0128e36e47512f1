"""Configuration commands."""

import json

import click

from thread_sync.cli.utils import header
from thread_sync.core.settings import (
    get_cache_settings,
    get_db_settings,
    get_logging_settings,
    get_pagination_settings,
    get_realtime_settings,
    get_sync_settings,
)


@click.group(name="config")
def config() -> None:
    """Configuration management commands."""


@config.command()
@click.option("--json", "as_json", is_flag=True, help="Print as a single JSON document")
def show(as_json: bool) -> None:
    """Show the effective settings of every domain."""
    sections = {
        "pagination": get_pagination_settings(),
        "cache": get_cache_settings(),
        "sync": get_sync_settings(),
        "realtime": get_realtime_settings(),
        "database": get_db_settings(),
        "logging": get_logging_settings(),
    }

    if as_json:
        click.echo(json.dumps({name: s.model_dump(mode="json") for name, s in sections.items()}, indent=2))
        return

    for name, settings in sections.items():
        header(name)
        for field, value in settings.model_dump().items():
            click.echo(f"  {field}: {value}")
