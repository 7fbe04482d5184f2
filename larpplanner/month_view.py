"""Month calendar highlighting for a game's events."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import Iterable, Protocol, Sequence

from .dates import end_of_day, ensure_utc, local_date, start_of_day

GRID_CELLS = 6 * 7
WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


class TimedEvent(Protocol):
    id: str
    name: str
    start_time: datetime
    end_time: datetime


@dataclass
class DayCell:
    day: date | None
    events: list = field(default_factory=list)
    starting_events: list = field(default_factory=list)
    is_today: bool = False

    @property
    def has_events(self) -> bool:
        return bool(self.events)

    @property
    def is_padding(self) -> bool:
        return self.day is None


def month_days(year: int, month: int) -> list[date]:
    _, last = calendar.monthrange(year, month)
    return [date(year, month, number) for number in range(1, last + 1)]


def _sunday_first_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def event_touches_day(event: TimedEvent, day: date, tz: tzinfo | None = None) -> bool:
    """Whether any part of ``day`` falls inside the event's local date span."""

    tz = tz or UTC
    span_start = ensure_utc(start_of_day(local_date(event.start_time, tz), tz))
    span_end = ensure_utc(end_of_day(local_date(event.end_time, tz), tz))
    day_start = ensure_utc(start_of_day(day, tz))
    day_end = ensure_utc(end_of_day(day, tz))
    event_start = ensure_utc(event.start_time)
    return (
        span_start <= day_start <= span_end
        or span_start <= day_end <= span_end
        or day_start <= event_start <= day_end
    )


def events_on_day(
    day: date, events: Iterable[TimedEvent], tz: tzinfo | None = None
) -> list:
    return [event for event in events if event_touches_day(event, day, tz)]


def events_starting_on(
    day: date, events: Iterable[TimedEvent], tz: tzinfo | None = None
) -> list:
    return [event for event in events if local_date(event.start_time, tz) == day]


def month_grid(
    year: int,
    month: int,
    events: Sequence[TimedEvent],
    *,
    tz: tzinfo | None = None,
    today: date | None = None,
) -> list[list[DayCell]]:
    """Return six Sunday-first weeks of cells, padded before and after."""

    days = month_days(year, month)
    leading = _sunday_first_weekday(days[0])
    cells = [DayCell(day=None) for _ in range(leading)]
    for day in days:
        cells.append(
            DayCell(
                day=day,
                events=events_on_day(day, events, tz),
                starting_events=events_starting_on(day, events, tz),
                is_today=day == today,
            )
        )
    cells.extend(DayCell(day=None) for _ in range(GRID_CELLS - len(cells)))
    return [cells[index : index + 7] for index in range(0, GRID_CELLS, 7)]


def partition_events(
    events: Iterable[TimedEvent], now: datetime
) -> dict[str, list]:
    """Split events into ongoing, upcoming and past relative to ``now``."""

    moment = ensure_utc(now)
    buckets: dict[str, list] = {"ongoing": [], "upcoming": [], "past": []}
    for event in events:
        start = ensure_utc(event.start_time)
        end = ensure_utc(event.end_time)
        if start < moment < end:
            buckets["ongoing"].append(event)
        if start > moment:
            buckets["upcoming"].append(event)
        if end < moment:
            buckets["past"].append(event)
    return buckets


def next_month(year: int, month: int) -> tuple[int, int]:
    first = date(year, month, 1) + timedelta(days=31)
    return first.year, first.month
