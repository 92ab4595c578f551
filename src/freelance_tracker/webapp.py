"""FastAPI application that exposes the tracker as a local JSON API."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .aggregation import earnings
from .config import TickerSettings, weekday_name
from .db import SQLiteStore
from .models import ReportingPeriod, TimeEntry
from .paths import get_store_path
from .periods import day_range, month_range, start_of_day
from .reporting import (
    format_compact_duration,
    format_duration,
    format_hours_minutes,
    format_time_range,
)
from .tracker import TimeTracker

logger = logging.getLogger(__name__)


class TickerRunner:
    """Drive ``TimeTracker.tick`` from a background thread."""

    def __init__(self, tracker: TimeTracker, settings: TickerSettings) -> None:
        self._tracker = tracker
        self._settings = settings
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_ticker,
                args=(stop_event,),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Ticker background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Ticker background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def _run_ticker(self, stop_event: threading.Event) -> None:
        interval = self._settings.tick_interval.total_seconds()
        while not stop_event.is_set():
            try:
                self._tracker.tick()
            except Exception:
                logger.exception("Tick failed.")
            stop_event.wait(interval)


class DurationPayload(BaseModel):
    seconds: float = Field(ge=0)

    model_config = ConfigDict(extra="forbid")


class SettingsUpdate(BaseModel):
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    week_start_day: Optional[int] = Field(default=None, ge=1, le=7)
    use_24_hour_format: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    store_path: Optional[Path] = None,
    tracker: Optional[TimeTracker] = None,
    ticker: Optional[TickerSettings] = None,
) -> FastAPI:
    """Instantiate the FastAPI application.

    A ``tracker`` passed in stays owned by the caller; otherwise one is built
    on the SQLite store and closed on shutdown.
    """
    owns_tracker = tracker is None
    if tracker is None:
        tracker = TimeTracker(SQLiteStore(Path(store_path or get_store_path())))
    runner = TickerRunner(tracker, ticker or TickerSettings())

    app = FastAPI(title="Freelance Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.tracker = tracker
    app.state.ticker_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()
        if owns_tracker:
            tracker.close()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return _status_payload(request.app.state.tracker, request.app.state.ticker_runner)

    @app.post("/api/session/start")
    def start_session(request: Request) -> Dict[str, Any]:
        request.app.state.tracker.start()
        return status(request)

    @app.post("/api/session/pause")
    def pause_session(request: Request) -> Dict[str, Any]:
        request.app.state.tracker.pause()
        return status(request)

    @app.post("/api/session/record")
    def record_session(request: Request) -> Dict[str, Any]:
        request.app.state.tracker.record_and_restart()
        return status(request)

    @app.post("/api/session/reset")
    def reset_session(request: Request) -> Dict[str, Any]:
        request.app.state.tracker.reset()
        return status(request)

    @app.get("/api/periods/{period}")
    def period_summary(period: ReportingPeriod, request: Request) -> Dict[str, Any]:
        return _period_payload(request.app.state.tracker, period)

    @app.put("/api/periods/{period}")
    def edit_period(
        period: ReportingPeriod, payload: DurationPayload, request: Request
    ) -> Dict[str, Any]:
        tracker = request.app.state.tracker
        tracker.edit_period(period, _to_timedelta(payload))
        return _period_payload(tracker, period)

    @app.delete("/api/periods/{period}")
    def reset_period(period: ReportingPeriod, request: Request) -> Dict[str, Any]:
        tracker = request.app.state.tracker
        tracker.reset_period(period)
        return _period_payload(tracker, period)

    @app.post("/api/periods/{period}/adjust")
    def adjust_period(
        period: ReportingPeriod, payload: DurationPayload, request: Request
    ) -> Dict[str, Any]:
        tracker = request.app.state.tracker
        tracker.adjust_period(period, _to_timedelta(payload))
        return _period_payload(tracker, period)

    @app.get("/api/days/{day}")
    def day_entries(day: str, request: Request) -> Dict[str, Any]:
        return _day_payload(request.app.state.tracker, _parse_date(day))

    @app.put("/api/days/{day}")
    def edit_day(day: str, payload: DurationPayload, request: Request) -> Dict[str, Any]:
        tracker = request.app.state.tracker
        target = _parse_date(day)
        tracker.edit_day(target, _to_timedelta(payload))
        return _day_payload(tracker, target)

    @app.delete("/api/days/{day}")
    def delete_day(day: str, request: Request) -> Dict[str, Any]:
        tracker = request.app.state.tracker
        target = _parse_date(day)
        tracker.delete_day(target)
        return _day_payload(tracker, target)

    @app.get("/api/calendar/{month}")
    def calendar(month: str, request: Request) -> Dict[str, Any]:
        tracker = request.app.state.tracker
        try:
            first = datetime.strptime(month, "%Y-%m")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid month format") from exc
        start, end = month_range(first)
        totals = tracker.day_totals(start, end)
        summary = tracker.month_totals(first)
        rate = tracker.settings.hourly_rate
        return {
            "month": first.strftime("%Y-%m"),
            "seconds": summary.duration.total_seconds(),
            "hours": summary.hours,
            "earnings": summary.earnings,
            "formatted": format_compact_duration(summary.duration),
            "days_with_entries": sorted(tracker.days_with_entries(first)),
            "days": [
                {
                    "date": day.strftime("%Y-%m-%d"),
                    "seconds": total.total_seconds(),
                    "formatted": format_compact_duration(total),
                    "hours_minutes": format_hours_minutes(total),
                    "earnings": earnings(total, rate),
                    "manually_edited": tracker.is_day_manually_edited(day),
                }
                for day, total in totals.items()
            ],
        }

    @app.get("/api/settings")
    def get_settings(request: Request) -> Dict[str, Any]:
        return _settings_payload(request.app.state.tracker)

    @app.patch("/api/settings")
    def update_settings(payload: SettingsUpdate, request: Request) -> Dict[str, Any]:
        tracker = request.app.state.tracker
        changes = payload.model_dump(exclude_none=True)
        if changes:
            try:
                tracker.update_settings(**changes)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _settings_payload(tracker)

    return app


def _parse_date(value: str) -> datetime:
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return start_of_day(parsed)


def _to_timedelta(payload: DurationPayload) -> timedelta:
    return timedelta(seconds=payload.seconds)


def _status_payload(tracker: TimeTracker, runner: TickerRunner) -> Dict[str, Any]:
    snapshot = tracker.snapshot()
    start = snapshot.current_session_start
    return {
        "is_running": snapshot.is_running,
        "current_session_start": start.isoformat() if start else None,
        "elapsed_seconds": snapshot.elapsed_time.total_seconds(),
        "accumulated_seconds": snapshot.total_accumulated_time.total_seconds(),
        "display": tracker.current_elapsed_display(),
        "entry_count": snapshot.entry_count,
        "ticker_running": runner.is_running(),
    }


def _period_payload(tracker: TimeTracker, period: ReportingPeriod) -> Dict[str, Any]:
    totals = tracker.period_totals(period)
    return {
        "period": period.value,
        "seconds": totals.duration.total_seconds(),
        "hours": totals.hours,
        "earnings": totals.earnings,
        "formatted": format_duration(totals.duration),
        "hours_minutes": format_hours_minutes(totals.duration),
    }


def _day_payload(tracker: TimeTracker, day: datetime) -> Dict[str, Any]:
    entries = tracker.entries_for_day(day)
    total = tracker.day_total(day)
    start, _ = day_range(day)
    return {
        "date": start.strftime("%Y-%m-%d"),
        "manually_edited": tracker.is_day_manually_edited(day),
        "seconds": total.total_seconds(),
        "formatted": format_duration(total),
        "entries": [_entry_payload(tracker, entry) for entry in entries],
    }


def _entry_payload(tracker: TimeTracker, entry: TimeEntry) -> Dict[str, Any]:
    payload = entry.to_payload()
    duration = entry.duration(tracker.now())
    payload["durationSeconds"] = duration.total_seconds()
    payload["label"] = format_time_range(
        entry.start, entry.end, tracker.settings.use_24_hour_format
    )
    return payload


def _settings_payload(tracker: TimeTracker) -> Dict[str, Any]:
    current = tracker.settings
    return {
        "hourly_rate": current.hourly_rate,
        "week_start_day": current.week_start_day,
        "week_start_name": weekday_name(current.week_start_day),
        "use_24_hour_format": current.use_24_hour_format,
    }
