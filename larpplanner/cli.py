"""Typer CLI for LarpPlanner."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from . import crud
from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .database import get_session
from .dates import resolve_timezone, to_local
from .layout import compute_schedule, normalize_statuses
from .models import Event
from .seed import seed_fake_data
from .storage import init_db, upgrade_database
from .users import get_display_names
from .utils import format_duration_hours

app = typer.Typer(help="LarpPlanner command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _exit_if_readonly(exc: OperationalError, action: str) -> None:
    message = str(getattr(exc, "orig", exc)).lower()
    if "readonly" in message or "read-only" in message:
        typer.secho(
            f"Unable to {action} because the database is read-only. "
            f"Ensure write access to {settings.database_path}.",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        _exit_if_readonly(exc, "upgrade")
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI app under uvicorn."""
    init_db()
    config = uvicorn.Config(
        "larpplanner.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting LarpPlanner on {host}:{port}")
    server.run()


@app.command("seed-data")
def seed_data(
    systems: int = typer.Option(
        settings.seed_systems, "--systems", min=0, help="Number of systems to create"
    ),
    games: int = typer.Option(
        settings.seed_games_per_system,
        "--games",
        min=1,
        help="Games to create for each system",
    ),
    events: int = typer.Option(
        settings.seed_events_per_game,
        "--events",
        min=1,
        help="Events to create for each game",
    ),
    modules: int = typer.Option(
        settings.seed_modules_per_event,
        "--modules",
        min=0,
        help="Modules to create for each event",
    ),
):
    """Populate the database with fake systems, games, events and modules."""
    stats = seed_fake_data(
        system_count=systems,
        games_per_system=games,
        events_per_game=events,
        modules_per_event=modules,
    )
    typer.echo(
        f"Seed complete: {stats['systems']} systems, {stats['games']} games, "
        f"{stats['events']} events, {stats['modules']} modules created."
    )


@app.command("grant-admin")
def grant_admin(
    user_id: str = typer.Argument(..., help="Opaque user id from the identity provider"),
    revoke: bool = typer.Option(False, "--revoke", help="Remove the admin flag instead"),
) -> None:
    """Grant (or revoke) application-wide admin rights."""
    init_db()
    try:
        with get_session() as session:
            if revoke:
                changed = crud.revoke_app_admin(session, user_id)
            else:
                crud.grant_app_admin(session, user_id)
                changed = True
    except OperationalError as exc:
        _exit_if_readonly(exc, "update admins")
        raise
    except ValueError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if revoke:
        typer.echo(f"Revoked admin from {user_id}." if changed else f"{user_id} was not an admin.")
    else:
        typer.echo(f"{user_id} is now an app admin.")


@app.command("schedule")
def schedule(
    event_id: str = typer.Argument(..., help="Event to lay out"),
    tz: str | None = typer.Option(
        None, "--tz", help="IANA timezone (default: display_timezone setting)"
    ),
    buffer_hours: float | None = typer.Option(
        None, "--buffer-hours", min=0.0, help="Hours of padding around the event"
    ),
    status: list[str] | None = typer.Option(
        None, "--status", help="Approval statuses to include (repeatable or comma-separated)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of text"),
) -> None:
    """Print an event's schedule grid: per day, each block's rows and column."""
    try:
        zone = resolve_timezone(tz or settings.display_timezone)
    except ValueError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        statuses = normalize_statuses(status) if status else settings.schedule_statuses
    except ValueError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    init_db()
    with get_session() as session:
        event = session.get(Event, event_id)
        if event is None:
            typer.secho(f"Event {event_id} not found", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        activities = crud.activities_for_event(session, event, statuses)
        layout = compute_schedule(
            activities,
            crud.display_window(event),
            buffer_hours=settings.buffer_hours if buffer_hours is None else buffer_hours,
            tz=zone,
        )
        names = get_display_names(
            session, [a.author_id for a in activities], game_id=event.game_id
        )
        durations = {a.id: a.duration_hours for a in activities}
        event_name = event.name

    if as_json:
        payload = {
            day.isoformat(): [
                {
                    "activity_id": block.activity_id,
                    "name": block.name,
                    "author": names.get(block.author_id or "", "Unknown"),
                    "row_start": block.row_start,
                    "row_span": block.row_span,
                    "column": block.column,
                    "column_count": block.column_count,
                    "approval_status": block.approval_status,
                }
                for block in blocks
            ]
            for day, blocks in layout.days.items()
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(f"{event_name} ({tz or settings.display_timezone})")
    for day, blocks in layout.days.items():
        typer.secho(day.strftime("%A %Y-%m-%d"), bold=True)
        if not blocks:
            typer.echo("  (nothing scheduled)")
        for block in blocks:
            start = to_local(block.block_start, zone).strftime("%H:%M")
            end = to_local(block.block_end, zone).strftime("%H:%M")
            typer.echo(
                f"  {start}-{end}  rows {block.row_start}+{block.row_span}  "
                f"col {block.column + 1}/{block.column_count}  {block.name} "
                f"[{block.approval_status}] "
                f"{format_duration_hours(durations.get(block.activity_id))} "
                f"by {names.get(block.author_id or '', 'Unknown')}"
            )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    buffer_hours: float | None = typer.Option(
        None, "--buffer-hours", min=0.0, help="Padding around event windows, in hours"
    ),
    display_timezone: str | None = typer.Option(
        None, "--display-timezone", help="Default IANA timezone for schedules"
    ),
    schedule_statuses: str | None = typer.Option(
        None,
        "--schedule-statuses",
        help="Comma-separated approval statuses shown on schedules",
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None,
        "--config-path",
        help="Path to larpplanner.toml (default: ./larpplanner.toml)",
    ),
    seed_systems: int | None = typer.Option(
        None, "--seed-systems", min=0, help="Default seed-data systems"
    ),
    seed_games_per_system: int | None = typer.Option(
        None, "--seed-games-per-system", min=1, help="Default seed-data games/system"
    ),
    seed_events_per_game: int | None = typer.Option(
        None, "--seed-events-per-game", min=1, help="Default seed-data events/game"
    ),
    seed_modules_per_event: int | None = typer.Option(
        None, "--seed-modules-per-event", min=0, help="Default seed-data modules/event"
    ),
):
    """View or update the persistent configuration file."""

    if display_timezone is not None:
        try:
            resolve_timezone(display_timezone)
        except ValueError as exc:
            typer.secho(str(exc), err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)

    updates = {
        "buffer_hours": buffer_hours,
        "display_timezone": display_timezone,
        "schedule_statuses": schedule_statuses,
        "app_host": host,
        "app_port": port,
        "seed_systems": seed_systems,
        "seed_games_per_system": seed_games_per_system,
        "seed_events_per_game": seed_events_per_game,
        "seed_modules_per_event": seed_modules_per_event,
    }
    updates = {key: value for key, value in updates.items() if value is not None}

    if not updates:
        current = load_settings(config_path) if config_path else settings
        typer.echo(json.dumps(settings_as_dict(current), indent=2))
        return

    try:
        new_settings = update_config_file(updates, path=config_path)
    except ValueError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Updated {new_settings.config_path}")
    if show:
        typer.echo(json.dumps(settings_as_dict(new_settings), indent=2))


@app.command("test")
def run_tests(pytest_args: list[str] = typer.Argument(None, help="Extra pytest args")):
    """Run the test suite with helpful defaults."""
    env = os.environ.copy()
    env.setdefault("PYTHONPATH", ".")
    uv_path = shutil.which("uv")
    if uv_path:
        cmd = [uv_path, "run", "pytest"]
    else:
        typer.echo("uv not found, falling back to python -m pytest")
        cmd = [sys.executable, "-m", "pytest"]
    if pytest_args:
        cmd.extend(pytest_args)
    typer.echo(f"Running tests: {' '.join(cmd)}")
    result = subprocess.run(cmd, env=env)
    raise typer.Exit(code=result.returncode)


if __name__ == "__main__":
    app()
