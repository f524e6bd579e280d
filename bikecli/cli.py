"""
Command-line entry point.

Usage:
    bike auth login
    bike auth status
    bike auth logout
    bike sync [--since YYYY-MM-DD] [--full]
    bike bikes list
    bike bikes default <bike-id>
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator

import click

from bikecli.core.config import (
    CREDENTIALS_MISSING,
    Settings,
    StravaCredentials,
    get_strava_credentials,
    load_settings,
)
from bikecli.core.db import open_session
from bikecli.core.errors import BikeCliError
from bikecli.core.logging_setup import configure_logging
from bikecli.core.observability import init_sentry
from bikecli.services.authorization import authorize
from bikecli.services.bikes import list_bikes, set_default_bike
from bikecli.services.document_store import DocumentStore
from bikecli.services.sync import sync
from bikecli.services.token_manager import TokenManager
from bikecli.services.token_store import TokenStore


@contextmanager
def _store(settings: Settings) -> Generator[DocumentStore, None, None]:
    try:
        with open_session(settings.database_url) as db:
            yield DocumentStore(db)
    except BikeCliError as exc:
        raise click.ClickException(str(exc)) from exc


def _credentials(settings: Settings) -> StravaCredentials:
    credentials = get_strava_credentials(settings)
    if credentials is None:
        raise click.ClickException(CREDENTIALS_MISSING)
    return credentials


def _line(label: str, value) -> None:
    click.echo(f"{label:<12} {value}")


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to config.json (default: ~/.config/bike-cli/config.json)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None):
    """Strava sync for your bikes and rides."""
    try:
        settings = load_settings(config_path)
    except ValueError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc

    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    init_sentry(settings)
    ctx.obj = settings


@cli.group()
def auth():
    """Manage Strava authentication."""


@auth.command("login")
@click.option("--timeout", default=120.0, show_default=True, help="Seconds to wait for the callback")
@click.pass_obj
def auth_login(settings: Settings, timeout: float):
    """Authenticate with Strava."""
    credentials = _credentials(settings)
    with _store(settings) as store:
        profile = authorize(
            credentials, TokenStore(store), scopes=settings.scopes, timeout_s=timeout, notify=click.echo
        )

    click.echo("")
    _line("Name:", profile.display_name)
    if profile.location:
        _line("Location:", profile.location)
    _line("Athlete ID:", profile.id)
    _line("Scopes:", ",".join(profile.scopes))


@auth.command("status")
@click.pass_obj
def auth_status(settings: Settings):
    """Check Strava authentication status."""
    with _store(settings) as store:
        tokens = TokenStore(store)
        token = tokens.get()

    if token is None:
        _line("Status:", "Not authenticated")
        click.echo("Run 'bike auth login' to connect your account.")
        return

    expired = TokenManager(tokens, get_strava_credentials(settings)).needs_refresh(token)
    _line("Athlete ID:", token.athlete_id)
    _line("Scopes:", ",".join(token.scopes))
    _line("Expires:", datetime.fromtimestamp(token.expires_at).strftime("%Y-%m-%d %H:%M"))
    _line("Status:", "EXPIRED (refreshed on next sync)" if expired else "Active")


@auth.command("logout")
@click.pass_obj
def auth_logout(settings: Settings):
    """Log out from Strava."""
    with _store(settings) as store:
        tokens = TokenStore(store)
        token = tokens.get()
        if token is None:
            click.echo("Not authenticated with Strava.")
            return
        tokens.delete(token.athlete_id)

    click.echo("Logged out from Strava.")


@cli.command("sync")
@click.option("--since", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Sync activities since date (YYYY-MM-DD)")
@click.option("--full", is_flag=True, default=False, help="Full sync (last 365 days)")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the summary as JSON")
@click.pass_obj
def sync_command(settings: Settings, since: datetime | None, full: bool, as_json: bool):
    """Sync bikes and activities from Strava."""
    credentials = get_strava_credentials(settings)

    with _store(settings) as store:

        def login():
            return authorize(credentials, TokenStore(store), scopes=settings.scopes, notify=click.echo)

        result = sync(store, credentials, since=since, full=full, authorizer=login)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
        return

    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)

    click.echo("Sync complete")
    _line("Athlete:", f"{result.athlete.display_name} ({result.athlete.id})")
    if result.athlete.location:
        _line("Location:", result.athlete.location)
    _line("Since:", result.since.strftime("%Y-%m-%d"))
    _line("Bikes:", result.bikes.count)
    _line("Added:", result.activities.added)
    _line("Updated:", result.activities.updated)


@cli.group()
def bikes():
    """Bikes known locally."""


@bikes.command("list")
@click.pass_obj
def bikes_list(settings: Settings):
    """List bikes, the default one first."""
    with _store(settings) as store:
        items = list_bikes(store)

    if not items:
        click.echo("No bikes found. Run 'bike sync' to import your Strava gear.")
        return

    for bike in items:
        marker = " [DEFAULT]" if bike.is_default else ""
        kind = f" ({bike.type})" if bike.type else ""
        strava = f" [Strava: {bike.strava_gear_id}]" if bike.strava_gear_id else ""
        click.echo(f"{bike.id}  {bike.name}{marker}{kind}{strava}")


@bikes.command("default")
@click.argument("bike_id")
@click.pass_obj
def bikes_default(settings: Settings, bike_id: str):
    """Make BIKE_ID the default bike."""
    with _store(settings) as store:
        bike = set_default_bike(store, bike_id)
    click.echo(f"Default bike: {bike.name}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
