from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from larpplanner.dates import (
    end_of_day,
    ensure_utc,
    format_instant,
    local_date,
    parse_input_datetime,
    resolve_timezone,
    start_of_day,
    to_local,
    to_naive_utc,
    whole_minutes_between,
)

NEW_YORK = ZoneInfo("America/New_York")


def test_resolve_timezone_defaults_and_errors():
    assert resolve_timezone(None) is UTC
    assert resolve_timezone("utc") is UTC
    assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")
    with pytest.raises(ValueError):
        resolve_timezone("Mars/Olympus_Mons")


def test_ensure_utc_handles_naive_and_offset_values():
    naive = datetime(2024, 3, 1, 10, 0)
    assert ensure_utc(naive) == datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
    shifted = datetime(2024, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(shifted).hour == 10
    assert to_naive_utc(shifted) == naive
    assert to_naive_utc(None) is None


def test_format_and_parse_instant():
    value = datetime(2024, 3, 1, 10, 5, 7, 123456, tzinfo=UTC)
    text = format_instant(value)
    assert text == "2024-03-01T10:05:07.123Z"
    assert parse_input_datetime(text) == value.replace(microsecond=123000)
    assert parse_input_datetime("2024-03-01T10:05:07") == datetime(
        2024, 3, 1, 10, 5, 7, tzinfo=UTC
    )


def test_parse_input_datetime_reads_local_values_in_zone():
    assert parse_input_datetime("2024-01-15T10:00", NEW_YORK) == datetime(
        2024, 1, 15, 15, 0, tzinfo=UTC
    )
    assert parse_input_datetime("2024-01-15T10:00Z", NEW_YORK) == datetime(
        2024, 1, 15, 10, 0, tzinfo=UTC
    )
    with pytest.raises(ValueError):
        parse_input_datetime("tomorrow", NEW_YORK)


def test_local_day_bounds():
    day = date(2024, 1, 15)
    assert ensure_utc(start_of_day(day, NEW_YORK)) == datetime(2024, 1, 15, 5, 0, tzinfo=UTC)
    end = end_of_day(day, NEW_YORK)
    assert (end.hour, end.minute, end.second, end.microsecond) == (23, 59, 59, 999000)
    assert local_date(datetime(2024, 1, 16, 3, 0, tzinfo=UTC), NEW_YORK) == day
    assert to_local(datetime(2024, 1, 16, 3, 0), NEW_YORK).hour == 22


def test_hour_and_minute_arithmetic():
    start = datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
    assert whole_minutes_between(start, start + timedelta(seconds=119)) == 1
    assert whole_minutes_between(start, start - timedelta(seconds=119)) == -1
