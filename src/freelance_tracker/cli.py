"""Command-line interface for the tracker."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from .config import TickerSettings, weekday_name
from .db import SQLiteStore
from .models import ReportingPeriod
from .paths import get_store_path
from .reporting import SummaryPrinter, format_duration
from .tracker import TimeTracker

app = typer.Typer(help="Personal time tracker with period reports and billing.")


@app.callback(no_args_is_help=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the tracker SQLite database.",
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    ctx.obj = db_path


@contextmanager
def _open_tracker(ctx: typer.Context) -> Iterator[TimeTracker]:
    tracker = TimeTracker(SQLiteStore(ctx.obj or get_store_path()))
    try:
        # Bring elapsed time and any midnight split up to date.
        tracker.tick()
        yield tracker
    finally:
        tracker.close()


def parse_duration(value: str) -> timedelta:
    """Parse ``H:MM`` or decimal hours."""
    text = value.strip()
    if ":" in text:
        hours_text, _, minutes_text = text.partition(":")
        hours = int(hours_text or 0)
        minutes = int(minutes_text or 0)
        if hours < 0 or not 0 <= minutes < 60:
            raise ValueError(f"invalid duration: {value!r}")
        return timedelta(hours=hours, minutes=minutes)
    hours_float = float(text)
    if hours_float < 0:
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(hours=hours_float)


def parse_day(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime.strptime(value, "%Y-%m-%d")


def _duration_arg(value: str) -> timedelta:
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _day_arg(value: Optional[str]) -> datetime:
    try:
        return parse_day(value)
    except ValueError as exc:
        raise typer.BadParameter("expected a date as YYYY-MM-DD") from exc


@app.command()
def start(ctx: typer.Context) -> None:
    """Start tracking."""
    with _open_tracker(ctx) as tracker:
        tracker.start()
        SummaryPrinter(tracker).print_status()


@app.command()
def pause(ctx: typer.Context) -> None:
    """Stop tracking and store the session."""
    with _open_tracker(ctx) as tracker:
        tracker.pause()
        SummaryPrinter(tracker).print_status()


@app.command()
def record(ctx: typer.Context) -> None:
    """Store the running session and immediately start a new one."""
    with _open_tracker(ctx) as tracker:
        tracker.record_and_restart()
        SummaryPrinter(tracker).print_status()


@app.command()
def reset(ctx: typer.Context) -> None:
    """Discard the running session and today's accumulated time."""
    with _open_tracker(ctx) as tracker:
        tracker.reset()
        SummaryPrinter(tracker).print_status()


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the live timer."""
    with _open_tracker(ctx) as tracker:
        SummaryPrinter(tracker).print_status()


@app.command()
def summary(
    ctx: typer.Context,
    periods: Optional[List[ReportingPeriod]] = typer.Option(
        None, "--period", "-p", help="Period to report; repeat for several."
    ),
) -> None:
    """Print hours and earnings per reporting period."""
    with _open_tracker(ctx) as tracker:
        SummaryPrinter(tracker).print_period_summary(periods or list(ReportingPeriod))


@app.command()
def entries(
    ctx: typer.Context,
    date: Optional[str] = typer.Option(
        None, "--date", help="Date (YYYY-MM-DD) to list. Defaults to today."
    ),
) -> None:
    """List the entries of a single day."""
    day = _day_arg(date)
    with _open_tracker(ctx) as tracker:
        SummaryPrinter(tracker).print_day_entries(day)


@app.command("edit-day")
def edit_day(
    ctx: typer.Context,
    date: str = typer.Argument(..., help="Date (YYYY-MM-DD)."),
    duration: str = typer.Argument(..., help="New total as H:MM or decimal hours."),
) -> None:
    """Replace a day's entries with a single total."""
    day = _day_arg(date)
    new_duration = _duration_arg(duration)
    with _open_tracker(ctx) as tracker:
        tracker.edit_day(day, new_duration)
        typer.echo(f"{date}: {format_duration(tracker.day_total(day))}")


@app.command("delete-day")
def delete_day(
    ctx: typer.Context,
    date: str = typer.Argument(..., help="Date (YYYY-MM-DD)."),
) -> None:
    """Remove every entry of a day."""
    day = _day_arg(date)
    with _open_tracker(ctx) as tracker:
        tracker.delete_day(day)
        typer.echo(f"Removed all entries for {date}.")


@app.command("edit-period")
def edit_period(
    ctx: typer.Context,
    period: ReportingPeriod = typer.Argument(...),
    duration: str = typer.Argument(..., help="New total as H:MM or decimal hours."),
) -> None:
    """Replace a period's entries with a single total."""
    new_duration = _duration_arg(duration)
    with _open_tracker(ctx) as tracker:
        tracker.edit_period(period, new_duration)
        typer.echo(f"{period.value}: {tracker.formatted_duration(period)}")


@app.command("reset-period")
def reset_period(
    ctx: typer.Context,
    period: ReportingPeriod = typer.Argument(...),
) -> None:
    """Remove every entry of a period."""
    with _open_tracker(ctx) as tracker:
        tracker.reset_period(period)
        typer.echo(f"{period.value}: {tracker.formatted_duration(period)}")


@app.command("adjust-period")
def adjust_period(
    ctx: typer.Context,
    period: ReportingPeriod = typer.Argument(...),
    duration: str = typer.Argument(..., help="Target total as H:MM or decimal hours."),
) -> None:
    """Add a correction entry so the period reaches the given total."""
    new_duration = _duration_arg(duration)
    with _open_tracker(ctx) as tracker:
        tracker.adjust_period(period, new_duration)
        typer.echo(f"{period.value}: {tracker.formatted_duration(period)}")


@app.command()
def settings(
    ctx: typer.Context,
    rate: Optional[float] = typer.Option(None, "--rate", min=0.0, help="Hourly rate."),
    week_start: Optional[int] = typer.Option(
        None, "--week-start", min=1, max=7, help="First weekday, 1 = Sunday ... 7 = Saturday."
    ),
    use_24h: Optional[bool] = typer.Option(
        None, "--24h/--12h", help="Show times in 24-hour or am/pm format."
    ),
) -> None:
    """Show or change settings."""
    changes = {}
    if rate is not None:
        changes["hourly_rate"] = rate
    if week_start is not None:
        changes["week_start_day"] = week_start
    if use_24h is not None:
        changes["use_24_hour_format"] = use_24h
    with _open_tracker(ctx) as tracker:
        current = tracker.update_settings(**changes) if changes else tracker.settings
        typer.echo(f"hourly rate: {current.hourly_rate:.2f}")
        typer.echo(f"week starts: {weekday_name(current.week_start_day)}")
        typer.echo(f"time format: {'24h' if current.use_24_hour_format else 'am/pm'}")


@app.command()
def web(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    tick_seconds: float = typer.Option(
        1.0,
        "--tick-interval",
        min=0.1,
        help="Seconds between timer ticks.",
    ),
) -> None:
    """Serve the local JSON API with the background ticker."""
    from .server_runner import run_server

    run_server(
        host=host,
        port=port,
        store_path=ctx.obj or get_store_path(),
        ticker=TickerSettings.from_seconds(tick_seconds),
    )
