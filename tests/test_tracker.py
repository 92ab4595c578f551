"""Tests for the tracker service: commands, queries, persistence and events."""

import sqlite3
from datetime import datetime, timedelta

import pytest

from freelance_tracker.db import MemoryStore
from freelance_tracker.models import ReportingPeriod, TimeEntry
from freelance_tracker.tracker import TrackerEventType


def _hours(value):
    return timedelta(hours=value)


def _run(tracker, clock, start, end):
    clock.set(start)
    tracker.start()
    clock.set(end)
    tracker.pause()


class TestSessionCommands:
    def test_workday_scenario(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 3, 9, 0), datetime(2025, 9, 3, 17, 0))

        entries = tracker.entries_for_day(datetime(2025, 9, 3))
        assert [(entry.start, entry.end) for entry in entries] == [
            (datetime(2025, 9, 3, 9, 0), datetime(2025, 9, 3, 17, 0))
        ]
        assert tracker.total_hours(ReportingPeriod.TODAY) == 8.0
        assert tracker.earnings(ReportingPeriod.TODAY) == 640.0
        assert tracker.formatted_duration(ReportingPeriod.TODAY) == "08:00:00"

    def test_pause_twice_is_idempotent(self, tracker, clock):
        tracker.start()
        clock.advance(hours=2)
        tracker.pause()
        clock.advance(hours=1)
        tracker.pause()

        snapshot = tracker.snapshot()
        assert snapshot.entry_count == 1
        assert snapshot.total_accumulated_time == _hours(2)
        assert not snapshot.is_running

    def test_start_while_running_keeps_original_start(self, tracker, clock):
        tracker.start()
        first = clock.now()
        clock.advance(minutes=5)
        tracker.start()

        assert tracker.snapshot().current_session_start == first

    def test_record_and_restart(self, tracker, clock):
        tracker.start()
        clock.advance(hours=1)
        tracker.record_and_restart()

        snapshot = tracker.snapshot()
        assert snapshot.entry_count == 1
        assert snapshot.is_running
        assert snapshot.current_session_start == clock.now()
        assert snapshot.total_accumulated_time == timedelta(0)

    def test_record_while_idle_just_starts(self, tracker, clock):
        tracker.record_and_restart()

        assert tracker.snapshot().is_running
        assert tracker.snapshot().entry_count == 0

    def test_reset_discards_session(self, tracker, clock):
        tracker.start()
        clock.advance(hours=1)
        tracker.pause()
        tracker.start()
        clock.advance(hours=1)

        tracker.reset()

        snapshot = tracker.snapshot()
        assert not snapshot.is_running
        assert snapshot.total_accumulated_time == timedelta(0)
        assert snapshot.entry_count == 1

    def test_elapsed_display_includes_accumulated(self, tracker, clock):
        tracker.start()
        clock.advance(minutes=20)
        tracker.pause()
        tracker.start()
        clock.advance(minutes=10, seconds=5)
        tracker.tick()

        assert tracker.current_elapsed_display() == "00:30:05"


class TestRollover:
    def test_overnight_session_is_split(self, tracker, clock):
        clock.set(datetime(2025, 9, 3, 23, 0))
        tracker.start()
        clock.set(datetime(2025, 9, 4, 0, 30))

        tracker.tick()

        day_one = tracker.entries_for_day(datetime(2025, 9, 3))
        assert [(entry.start, entry.end) for entry in day_one] == [
            (datetime(2025, 9, 3, 23, 0), datetime(2025, 9, 4))
        ]
        assert tracker.day_total(datetime(2025, 9, 3)) == _hours(1)
        assert tracker.snapshot().current_session_start == datetime(2025, 9, 4)
        assert tracker.current_elapsed_display() == "00:30:00"

        tracker.pause()

        assert tracker.day_total(datetime(2025, 9, 4)) == _hours(0.5)
        assert tracker.total_hours(ReportingPeriod.TODAY) == 0.5

    def test_split_survives_restart(self, make_tracker, clock):
        tracker = make_tracker()
        clock.set(datetime(2025, 9, 3, 22, 0))
        tracker.start()
        clock.set(datetime(2025, 9, 4, 1, 0))
        tracker.tick()

        restored = make_tracker()

        assert restored.snapshot().current_session_start == datetime(2025, 9, 4)
        assert restored.day_total(datetime(2025, 9, 3)) == _hours(2)

    def test_tick_while_idle_emits_nothing(self, tracker, events):
        tracker.tick()

        assert events == []


class TestLedgerCommands:
    def test_edit_day_marks_day_as_manual(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 3, 9, 0), datetime(2025, 9, 3, 11, 0))
        _run(tracker, clock, datetime(2025, 9, 3, 12, 0), datetime(2025, 9, 3, 13, 0))

        tracker.edit_day(datetime(2025, 9, 3), _hours(2.5))

        assert tracker.is_day_manually_edited(datetime(2025, 9, 3))
        assert tracker.total_duration(ReportingPeriod.TODAY) == _hours(2.5)
        (entry,) = tracker.entries_for_day(datetime(2025, 9, 3))
        assert entry.start == datetime(2025, 9, 3)

    def test_edit_day_finalizes_running_session_first(self, tracker, clock):
        clock.set(datetime(2025, 9, 3, 9, 0))
        tracker.start()
        clock.set(datetime(2025, 9, 3, 10, 0))

        tracker.edit_day(datetime(2025, 9, 3), _hours(3))

        assert not tracker.snapshot().is_running
        assert tracker.total_duration(ReportingPeriod.TODAY) == _hours(3)

    def test_edit_day_with_zero_deletes(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 3, 9, 0), datetime(2025, 9, 3, 11, 0))

        tracker.edit_day(datetime(2025, 9, 3), timedelta(0))

        assert tracker.entries_for_day(datetime(2025, 9, 3)) == []
        assert not tracker.is_day_manually_edited(datetime(2025, 9, 3))

    def test_delete_day_leaves_other_days(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 2, 9, 0), datetime(2025, 9, 2, 12, 0))
        clock.set(datetime(2025, 9, 3, 9, 0))
        tracker.start()
        clock.set(datetime(2025, 9, 3, 11, 0))

        tracker.delete_day(datetime(2025, 9, 3))

        snapshot = tracker.snapshot()
        assert not snapshot.is_running
        assert snapshot.entry_count == 1
        # The running session was paused into accumulated time before deletion.
        assert snapshot.total_accumulated_time == _hours(5)
        assert tracker.day_total(datetime(2025, 9, 2)) == _hours(3)

    def test_edit_week_anchors_at_week_start(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 1, 9, 0), datetime(2025, 9, 1, 17, 0))
        _run(tracker, clock, datetime(2025, 8, 29, 9, 0), datetime(2025, 8, 29, 10, 0))
        clock.set(datetime(2025, 9, 3, 12, 0))

        tracker.edit_period(ReportingPeriod.THIS_WEEK, _hours(10))

        assert tracker.total_duration(ReportingPeriod.THIS_WEEK) == _hours(10)
        assert tracker.is_day_manually_edited(datetime(2025, 9, 1))
        assert tracker.total_duration(ReportingPeriod.LAST_WEEK) == _hours(1)

    def test_edit_total_replaces_ledger(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 1, 9, 0), datetime(2025, 9, 1, 17, 0))
        clock.set(datetime(2025, 9, 3, 9, 0))
        tracker.start()
        clock.advance(hours=1)

        tracker.edit_period(ReportingPeriod.TOTAL, _hours(100))

        snapshot = tracker.snapshot()
        assert snapshot.entry_count == 0
        assert not snapshot.is_running
        assert snapshot.total_accumulated_time == timedelta(seconds=360000)
        assert tracker.total_hours(ReportingPeriod.TOTAL) == 100.0

    def test_reset_total_clears_edited_total(self, tracker):
        tracker.edit_period(ReportingPeriod.TOTAL, _hours(100))

        tracker.reset_period(ReportingPeriod.TOTAL)

        assert tracker.total_hours(ReportingPeriod.TOTAL) == 0.0

    def test_reset_week_keeps_older_entries(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 8, 29, 9, 0), datetime(2025, 8, 29, 10, 0))
        _run(tracker, clock, datetime(2025, 9, 2, 9, 0), datetime(2025, 9, 2, 10, 0))
        clock.set(datetime(2025, 9, 3, 9, 0))
        tracker.start()
        clock.advance(minutes=30)

        tracker.reset_period(ReportingPeriod.THIS_WEEK)

        assert not tracker.snapshot().is_running
        assert tracker.total_duration(ReportingPeriod.THIS_WEEK) == timedelta(0)
        assert tracker.total_duration(ReportingPeriod.LAST_WEEK) == _hours(1)

    def test_reset_last_week_clears_everything(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 8, 29, 9, 0), datetime(2025, 8, 29, 10, 0))
        _run(tracker, clock, datetime(2025, 9, 2, 9, 0), datetime(2025, 9, 2, 10, 0))

        tracker.reset_period(ReportingPeriod.LAST_WEEK)

        assert tracker.snapshot().entry_count == 0

    def test_adjust_down_appends_negative_entry(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 3, 9, 0), datetime(2025, 9, 3, 17, 0))
        current = tracker.total_duration(ReportingPeriod.TODAY)

        tracker.adjust_period(ReportingPeriod.TODAY, current - timedelta(seconds=1800))

        entries = tracker.entries_for_day(datetime(2025, 9, 3))
        assert len(entries) == 2
        assert entries[-1].duration(clock.now()) == timedelta(seconds=-1800)
        assert tracker.total_hours(ReportingPeriod.TODAY) == 7.5

    def test_adjust_up_appends_positive_entry(self, tracker, clock):
        clock.set(datetime(2025, 9, 3, 12, 0))

        tracker.adjust_period(ReportingPeriod.THIS_WEEK, _hours(4))

        assert tracker.total_duration(ReportingPeriod.THIS_WEEK) == _hours(4)
        assert tracker.total_duration(ReportingPeriod.TODAY) == _hours(4)

    def test_adjust_last_week_lands_inside_last_week(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 8, 27, 9, 0), datetime(2025, 8, 27, 14, 0))
        clock.set(datetime(2025, 9, 3, 12, 0))

        tracker.adjust_period(ReportingPeriod.LAST_WEEK, _hours(3))

        assert tracker.total_duration(ReportingPeriod.LAST_WEEK) == _hours(3)
        assert tracker.total_duration(ReportingPeriod.THIS_WEEK) == timedelta(0)
        (correction,) = tracker.entries_for_day(datetime(2025, 8, 25))
        assert correction.start == datetime(2025, 8, 25)
        assert correction.duration(clock.now()) == _hours(-2)

    def test_adjust_below_one_second_is_ignored(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 3, 9, 0), datetime(2025, 9, 3, 10, 0))

        tracker.adjust_period(ReportingPeriod.TODAY, _hours(1) + timedelta(milliseconds=500))

        assert tracker.snapshot().entry_count == 1


class TestQueries:
    def test_totals_ignore_insertion_order(self, make_tracker, clock):
        entries = [
            TimeEntry(start=datetime(2025, 9, 1, 9), end=datetime(2025, 9, 1, 12)),
            TimeEntry(start=datetime(2025, 9, 2, 13), end=datetime(2025, 9, 2, 14, 30)),
            TimeEntry(start=datetime(2025, 9, 3, 8), end=datetime(2025, 9, 3, 8, 45)),
        ]
        forward = make_tracker(
            store=MemoryStore({"timeEntries": [e.to_payload() for e in entries]})
        )
        backward = make_tracker(
            store=MemoryStore({"timeEntries": [e.to_payload() for e in reversed(entries)]})
        )

        expected = timedelta(hours=3, minutes=90 + 45)
        assert forward.total_duration(ReportingPeriod.THIS_WEEK) == expected
        assert backward.total_duration(ReportingPeriod.THIS_WEEK) == expected

    def test_running_session_counts_toward_period(self, tracker, clock):
        tracker.start()
        clock.advance(hours=2)

        assert tracker.total_hours(ReportingPeriod.TODAY) == 2.0
        assert tracker.total_hours(ReportingPeriod.LAST_WEEK) == 0.0

    def test_month_totals_for_any_month(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 7, 31, 20, 0), datetime(2025, 7, 31, 22, 0))
        _run(tracker, clock, datetime(2025, 8, 14, 9, 0), datetime(2025, 8, 14, 12, 0))
        clock.set(datetime(2025, 9, 3, 9, 0))
        tracker.start()
        clock.advance(hours=1)

        july = tracker.month_totals(datetime(2025, 7, 15))
        august = tracker.month_totals(datetime(2025, 8, 1))
        september = tracker.month_totals(datetime(2025, 9, 3))

        assert july.month == datetime(2025, 7, 1)
        assert (july.hours, july.earnings) == (2.0, 160.0)
        assert (august.hours, august.earnings) == (3.0, 240.0)
        assert september.duration == _hours(1)
        assert september.duration == tracker.total_duration(ReportingPeriod.THIS_MONTH)

    def test_week_start_setting_changes_week(self, tracker, clock):
        # Sunday entry: outside a Monday-based week, inside a Sunday-based one.
        _run(tracker, clock, datetime(2025, 8, 31, 9, 0), datetime(2025, 8, 31, 10, 0))
        clock.set(datetime(2025, 9, 3, 12, 0))

        assert tracker.total_hours(ReportingPeriod.THIS_WEEK) == 0.0
        tracker.update_settings(week_start_day=1)
        assert tracker.total_hours(ReportingPeriod.THIS_WEEK) == 1.0

    def test_entries_for_day_includes_live_session(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 3, 8, 0), datetime(2025, 9, 3, 9, 0))
        clock.set(datetime(2025, 9, 3, 10, 0))
        tracker.start()

        entries = tracker.entries_for_day(datetime(2025, 9, 3))

        assert [entry.is_active for entry in entries] == [False, True]

    def test_day_totals_and_calendar_days(self, tracker, clock):
        _run(tracker, clock, datetime(2025, 9, 1, 9, 0), datetime(2025, 9, 1, 10, 0))
        _run(tracker, clock, datetime(2025, 9, 1, 11, 0), datetime(2025, 9, 1, 11, 30))
        clock.set(datetime(2025, 9, 3, 9, 0))
        tracker.start()
        clock.advance(minutes=15)

        totals = tracker.day_totals(datetime(2025, 9, 1), datetime(2025, 10, 1))

        assert totals == {
            datetime(2025, 9, 1): timedelta(minutes=90),
            datetime(2025, 9, 3): timedelta(minutes=15),
        }
        assert tracker.days_with_entries(datetime(2025, 9, 15)) == {1, 3}

    def test_earnings_use_hourly_rate(self, tracker, clock):
        tracker.update_settings(hourly_rate=50.0)
        _run(tracker, clock, datetime(2025, 9, 3, 9, 0), datetime(2025, 9, 3, 10, 30))

        assert tracker.earnings(ReportingPeriod.THIS_MONTH) == 75.0

    def test_invalid_settings_are_rejected(self, tracker):
        with pytest.raises(ValueError):
            tracker.update_settings(week_start_day=8)

        assert tracker.settings.week_start_day == 2


class TestPersistence:
    def test_running_session_is_restored(self, make_tracker, store, clock):
        make_tracker().start()

        assert store.get("isRunning") is True
        restored = make_tracker()

        assert restored.snapshot().is_running
        assert restored.snapshot().current_session_start == clock.now()

    def test_pause_clears_session_keys(self, make_tracker, store, clock):
        tracker = make_tracker()
        tracker.start()
        clock.advance(hours=1)
        tracker.pause()

        assert "isRunning" not in store
        assert "currentSessionStart" not in store
        assert store.get("totalAccumulatedTime") == 3600.0
        restored = make_tracker()
        assert restored.snapshot().entry_count == 1
        assert restored.total_hours(ReportingPeriod.TODAY) == 1.0

    def test_accumulated_time_resets_on_new_day(self, make_tracker, clock):
        store = MemoryStore(
            {
                "totalAccumulatedTime": 5400.0,
                "lastAccumulatedTimeUpdate": "2025-09-02T18:00:00",
            }
        )

        tracker = make_tracker(store=store)

        assert tracker.snapshot().total_accumulated_time == timedelta(0)
        assert store.get("totalAccumulatedTime") == 0.0

    def test_accumulated_time_kept_on_same_day(self, make_tracker):
        store = MemoryStore(
            {
                "totalAccumulatedTime": 5400.0,
                "lastAccumulatedTimeUpdate": "2025-09-03T08:00:00",
            }
        )

        tracker = make_tracker(store=store)

        assert tracker.snapshot().total_accumulated_time == timedelta(minutes=90)

    def test_malformed_data_is_discarded(self, make_tracker):
        good = TimeEntry(start=datetime(2025, 9, 3, 7), end=datetime(2025, 9, 3, 8))
        store = MemoryStore(
            {
                "timeEntries": [good.to_payload(), {"id": "x", "startDate": "garbage"}],
                "currentSessionStart": "2025-09-03T08:00:00",
                "totalAccumulatedTime": "lots",
                "hourlyRate": "eighty",
            }
        )

        tracker = make_tracker(store=store)

        snapshot = tracker.snapshot()
        assert snapshot.entry_count == 1
        assert not snapshot.is_running
        assert snapshot.total_accumulated_time == timedelta(0)
        assert tracker.settings.hourly_rate == 80.0
        assert "currentSessionStart" not in store

    def test_write_failures_do_not_escape(self, make_tracker, clock):
        class FailingStore(MemoryStore):
            def set(self, key, value):
                raise sqlite3.OperationalError("disk I/O error")

        tracker = make_tracker(store=FailingStore())
        received = []
        tracker.subscribe(received.append)

        tracker.start()
        clock.advance(hours=1)
        tracker.pause()

        types = [event.type for event in received]
        assert TrackerEventType.PERSISTENCE_FAILED in types
        assert TrackerEventType.PAUSED in types
        assert tracker.total_hours(ReportingPeriod.TODAY) == 1.0

    def test_settings_are_persisted(self, make_tracker):
        make_tracker().update_settings(hourly_rate=95.0, use_24_hour_format=False)

        restored = make_tracker()

        assert restored.settings.hourly_rate == 95.0
        assert restored.settings.use_24_hour_format is False


class TestEvents:
    def test_commands_publish_events(self, tracker, clock, events):
        tracker.start()
        clock.advance(seconds=1)
        tracker.tick()
        tracker.pause()
        tracker.edit_day(clock.now(), _hours(1))

        assert [event.type for event in events] == [
            TrackerEventType.STARTED,
            TrackerEventType.TICKED,
            TrackerEventType.PAUSED,
            TrackerEventType.LEDGER_CHANGED,
        ]

    def test_rollover_event(self, tracker, clock, events):
        clock.set(datetime(2025, 9, 3, 23, 0))
        tracker.start()
        clock.set(datetime(2025, 9, 4, 0, 1))
        tracker.tick()

        assert [event.type for event in events][-2:] == [
            TrackerEventType.ROLLED_OVER,
            TrackerEventType.TICKED,
        ]

    def test_failing_listener_does_not_break_tracker(self, tracker, caplog):
        def broken(event):
            raise RuntimeError("boom")

        tracker.subscribe(broken)
        tracker.start()

        assert tracker.snapshot().is_running
        assert "Listener failed" in caplog.text

    def test_unsubscribe(self, tracker, clock):
        received = []
        unsubscribe = tracker.subscribe(received.append)
        unsubscribe()

        tracker.start()

        assert received == []
