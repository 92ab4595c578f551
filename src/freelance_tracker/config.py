"""Configuration models and helpers for the tracker."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from .db import KeyValueStore

logger = logging.getLogger(__name__)

HOURLY_RATE_KEY = "hourlyRate"
WEEK_START_KEY = "weekStartsOn"
USE_24_HOUR_KEY = "use24HourFormat"

WEEKDAY_NAMES = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)


@dataclass(slots=True)
class TrackerSettings:
    """User preferences read by aggregation and formatting."""

    hourly_rate: float = 80.0
    week_start_day: int = 2  # 1 = Sunday ... 7 = Saturday
    use_24_hour_format: bool = True

    def __post_init__(self) -> None:
        if not 1 <= self.week_start_day <= 7:
            raise ValueError(f"week_start_day must be within 1..7, got {self.week_start_day}")
        if self.hourly_rate < 0:
            raise ValueError("hourly_rate must not be negative")

    @classmethod
    def from_store(cls, store: KeyValueStore) -> "TrackerSettings":
        defaults = cls()
        return cls(
            hourly_rate=_read_rate(store.get(HOURLY_RATE_KEY), defaults.hourly_rate),
            week_start_day=_read_week_start(store.get(WEEK_START_KEY), defaults.week_start_day),
            use_24_hour_format=_read_flag(store.get(USE_24_HOUR_KEY), defaults.use_24_hour_format),
        )

    def save(self, store: KeyValueStore) -> None:
        store.set(HOURLY_RATE_KEY, self.hourly_rate)
        store.set(WEEK_START_KEY, self.week_start_day)
        store.set(USE_24_HOUR_KEY, self.use_24_hour_format)


@dataclass(slots=True)
class TickerSettings:
    """Runtime configuration for the background ticker."""

    tick_interval: timedelta = timedelta(seconds=1)

    @classmethod
    def from_seconds(cls, tick_seconds: float) -> "TickerSettings":
        return cls(tick_interval=timedelta(seconds=tick_seconds))


def weekday_name(day: int) -> str:
    """Name for a 1-based weekday number where 1 is Sunday."""
    return WEEKDAY_NAMES[(day - 1) % 7]


def _read_rate(value: Any, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
        return float(value)
    logger.warning("Ignoring stored hourly rate %r; using %s.", value, default)
    return default


def _read_week_start(value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 7:
        return value
    logger.warning("Ignoring stored week start %r; using %s.", value, default)
    return default


def _read_flag(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is not None:
        logger.warning("Ignoring stored time format flag %r.", value)
    return default
