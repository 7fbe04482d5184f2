from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from larpplanner.month_view import (
    event_touches_day,
    events_on_day,
    events_starting_on,
    month_days,
    month_grid,
    next_month,
    partition_events,
)


@dataclass
class FakeEvent:
    id: str
    name: str
    start_time: datetime
    end_time: datetime


def _event(event_id: str, start: datetime, end: datetime) -> FakeEvent:
    return FakeEvent(id=event_id, name=event_id, start_time=start, end_time=end)


def test_month_days_handles_leap_years():
    assert len(month_days(2024, 2)) == 29
    assert len(month_days(2023, 2)) == 28


def test_month_grid_is_six_sunday_first_weeks():
    # March 2024 starts on a Friday.
    weeks = month_grid(2024, 3, [], today=date(2024, 3, 14))
    assert len(weeks) == 6
    assert all(len(week) == 7 for week in weeks)
    assert [cell.is_padding for cell in weeks[0][:5]] == [True] * 5
    assert weeks[0][5].day == date(2024, 3, 1)
    today_cells = [cell for week in weeks for cell in week if cell.is_today]
    assert [cell.day for cell in today_cells] == [date(2024, 3, 14)]


def test_multi_day_event_highlights_each_day():
    event = _event("con", datetime(2024, 3, 8, 18), datetime(2024, 3, 10, 14))
    weeks = month_grid(2024, 3, [event])
    marked = [cell.day for week in weeks for cell in week if cell.has_events]
    assert marked == [date(2024, 3, 8), date(2024, 3, 9), date(2024, 3, 10)]
    starting = [cell.day for week in weeks for cell in week if cell.starting_events]
    assert starting == [date(2024, 3, 8)]


def test_events_on_day_respects_timezone():
    tz = ZoneInfo("America/New_York")
    event = _event("late", datetime(2024, 3, 9, 2), datetime(2024, 3, 9, 4))
    assert event_touches_day(event, date(2024, 3, 8), tz)
    assert not event_touches_day(event, date(2024, 3, 9), tz)
    assert events_on_day(date(2024, 3, 9), [event]) == [event]
    assert events_starting_on(date(2024, 3, 8), [event], tz) == [event]


def test_partition_events_by_now():
    now = datetime(2024, 3, 10, 12)
    past = _event("past", datetime(2024, 3, 1), datetime(2024, 3, 2))
    ongoing = _event("ongoing", datetime(2024, 3, 10), datetime(2024, 3, 11))
    upcoming = _event("upcoming", datetime(2024, 3, 20), datetime(2024, 3, 21))
    buckets = partition_events([past, ongoing, upcoming], now)
    assert buckets["past"] == [past]
    assert buckets["ongoing"] == [ongoing]
    assert buckets["upcoming"] == [upcoming]


def test_next_month_wraps_year():
    assert next_month(2024, 12) == (2025, 1)
    assert next_month(2024, 1) == (2024, 2)
