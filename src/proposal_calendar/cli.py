"""CLI for the proposal calendar: serve the API or print a view window."""

from __future__ import annotations

import asyncio
from datetime import date, tzinfo
from pathlib import Path

import click
import uvicorn

from proposal_calendar import __version__
from proposal_calendar.config import CalendarConfig, ConfigError, load_config
from proposal_calendar.core.logging import configure_logging
from proposal_calendar.errors import EntityStoreError
from proposal_calendar.models import EventQuery, EventWindowResult
from proposal_calendar.service import CalendarService, build_store
from proposal_calendar.store import PostgresEntityStore
from proposal_calendar.windows import window_title

_VIEW_MODES = ("month", "week", "day", "agenda")


def _load(config_path: Path | None) -> CalendarConfig:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    log_root = Path(config.logging.log_root) if config.logging.log_root else None
    configure_logging(config.logging.level, config.logging.format, log_root)
    return config


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Proposal calendar: unified events across proposals, tasks and meetings."""


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="calendar.toml, or a directory containing it",
)
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=8200, show_default=True)
def serve(config_path: Path | None, host: str, port: int) -> None:
    """Run the calendar HTTP API."""
    from proposal_calendar.api.app import create_app

    config = _load(config_path)
    click.echo(f"Serving calendar API on http://{host}:{port}")
    uvicorn.run(create_app(config=config), host=host, port=port, log_config=None)


@cli.command()
@click.option("--org", "organization_id", required=True, help="Organization id")
@click.option(
    "--view",
    "view_mode",
    type=click.Choice(_VIEW_MODES),
    default="month",
    show_default=True,
)
@click.option(
    "--anchor",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Any day inside the period (YYYY-MM-DD); defaults to today",
)
@click.option("--search", "text", default=None, help="Case-insensitive text filter")
@click.option("--source-type", default=None, help="Only show one source type")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="calendar.toml, or a directory containing it",
)
def events(
    organization_id: str,
    view_mode: str,
    anchor,
    text: str | None,
    source_type: str | None,
    config_path: Path | None,
) -> None:
    """Print the events of one view window as a table."""
    config = _load(config_path)
    day = anchor.date() if anchor is not None else date.today()
    query = EventQuery(text=text, source_type=source_type)
    try:
        result = asyncio.run(_fetch_window(config, organization_id, view_mode, day, query))
    except EntityStoreError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(window_title(view_mode, day))
    _print_events(result, config.zoneinfo)
    for failure in result.failures:
        click.echo(f"warning: {failure.source_type} unavailable: {failure.message}", err=True)


async def _fetch_window(
    config: CalendarConfig,
    organization_id: str,
    view_mode: str,
    anchor: date,
    query: EventQuery,
) -> EventWindowResult:
    store = build_store(config)
    if isinstance(store, PostgresEntityStore):
        await store.connect()
    try:
        service = CalendarService(store, config)
        return await service.get_events_for_window(organization_id, view_mode, anchor, query)
    finally:
        if isinstance(store, PostgresEntityStore):
            await store.close()


def _print_events(result: EventWindowResult, tz: tzinfo) -> None:
    if not result.events:
        click.echo("No events in this window.")
        return
    click.echo(f"{'Start':<17} {'Source':<18} {'Drag':<5} {'Title'}")
    click.echo("-" * 80)
    for event in result.events:
        start = event.start_date.astimezone(tz)
        drag = "yes" if event.can_drag else "no"
        click.echo(f"{start:%Y-%m-%d %H:%M}  {event.source_type:<18} {drag:<5} {event.title}")
