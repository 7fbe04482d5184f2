"""Utility helpers for LarpPlanner."""

from __future__ import annotations

from datetime import UTC, datetime

from .dates import ensure_utc


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def humanize_time(value: datetime | None, *, now: datetime | None = None) -> str:
    """Return a friendly string such as 'in 2 weeks' or '3 hours ago'."""
    if not value:
        return ""
    now = now or utcnow()
    delta_seconds = (ensure_utc(value) - ensure_utc(now)).total_seconds()
    past = delta_seconds < 0
    seconds = abs(delta_seconds)

    units = [
        ("year", 365 * 24 * 3600),
        ("month", 30 * 24 * 3600),
        ("week", 7 * 24 * 3600),
        ("day", 24 * 3600),
        ("hour", 3600),
        ("minute", 60),
    ]

    for name, step in units:
        amount = int(seconds // step)
        if amount >= 1:
            label = name if amount == 1 else f"{name}s"
            return f"{amount} {label} ago" if past else f"in {amount} {label}"
    return "moments ago" if past else "in moments"


def format_duration_hours(hours: float | None) -> str:
    """Return a short "2h 30m" style string for a module duration."""
    if hours is None or hours <= 0:
        return ""
    minutes_total = round(hours * 60)
    hours_part, minutes = divmod(minutes_total, 60)
    parts: list[str] = []
    if hours_part:
        parts.append(f"{hours_part}h")
    if minutes:
        parts.append(f"{minutes}m")
    return " ".join(parts) or "<1m"
