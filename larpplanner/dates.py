"""Conversions between stored UTC instants and the viewer's local frame."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Last representable millisecond of a local day.
END_OF_DAY = time(23, 59, 59, 999000)


def resolve_timezone(name: str | None) -> tzinfo:
    """Return a tzinfo for an IANA zone name, defaulting to UTC."""

    normalized = (name or "").strip()
    if not normalized or normalized.upper() in {"UTC", "Z"}:
        return UTC
    try:
        return ZoneInfo(normalized)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone {name!r}") from exc


def ensure_utc(value: datetime) -> datetime:
    """Return a timezone aware UTC datetime; naive values are taken as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_local(instant: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert an absolute instant into wall-clock time in ``tz``."""

    return ensure_utc(instant).astimezone(tz or UTC)


def to_utc(local: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert a local wall-clock value into an aware UTC instant.

    Naive values are interpreted in ``tz``; aware values keep their offset.
    """

    if local.tzinfo is None:
        local = local.replace(tzinfo=tz or UTC)
    return local.astimezone(UTC)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Return the naive UTC form used by the database columns."""

    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def parse_input_datetime(value: datetime | str, tz: tzinfo | None = None) -> datetime:
    """Parse a submitted time: an ISO instant, or a local value read in ``tz``."""

    if isinstance(value, datetime):
        return to_utc(value, tz)
    raw = str(value).strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(raw), tz)


def format_instant(value: datetime) -> str:
    """Format an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    utc_value = ensure_utc(value)
    millis = utc_value.microsecond // 1000
    return utc_value.strftime("%Y-%m-%dT%H:%M:%S") + f".{millis:03d}Z"


def local_date(instant: datetime, tz: tzinfo | None = None) -> date:
    return to_local(instant, tz).date()


def start_of_day(day: date, tz: tzinfo | None = None) -> datetime:
    """Local midnight of ``day`` as an aware datetime in ``tz``."""

    return datetime.combine(day, time.min, tzinfo=tz or UTC)


def end_of_day(day: date, tz: tzinfo | None = None) -> datetime:
    """Local 23:59:59.999 of ``day`` as an aware datetime in ``tz``."""

    return datetime.combine(day, END_OF_DAY, tzinfo=tz or UTC)


def whole_minutes_between(start: datetime, end: datetime) -> int:
    """Minutes from ``start`` to ``end``, truncated toward zero."""

    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return int(seconds / 60)
