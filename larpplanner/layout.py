"""Schedule layout engine.

Turns a snapshot of activities and an event's display window into blocks
positioned on a day/hour grid with 15-minute rows. Overlapping blocks on the
same day are split into side-by-side columns.

Everything here is a pure function of its arguments: no I/O, no shared state,
inputs are never mutated, and malformed activities simply produce no blocks.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Iterable, Sequence

from .colors import DEFAULT_COLOR
from .dates import (
    end_of_day,
    ensure_utc,
    local_date,
    start_of_day,
    to_local,
    whole_minutes_between,
)

# Use uvicorn's error logger so messages show up with level prefixes.
logger = logging.getLogger("uvicorn.error")

MINUTES_PER_ROW = 15
ROWS_PER_HOUR = 60 // MINUTES_PER_ROW
ROWS_PER_DAY = 24 * ROWS_PER_HOUR
DEFAULT_BUFFER_HOURS = 2

APPROVAL_STATUSES = ("in_progress", "submitted", "approved", "returned")


def normalize_statuses(values: str | Iterable[str]) -> tuple[str, ...]:
    """Split comma-separated entries, lowercase them and reject unknown statuses."""

    entries = [values] if isinstance(values, str) else [str(value) for value in values]
    statuses = tuple(
        part.strip().lower()
        for entry in entries
        for part in entry.split(",")
        if part.strip()
    )
    unknown = [status for status in statuses if status not in APPROVAL_STATUSES]
    if unknown:
        raise ValueError(f"Unknown approval status: {', '.join(unknown)}")
    return statuses


@dataclass(frozen=True)
class Activity:
    """A time-boxed module as the engine sees it."""

    id: str
    name: str
    author_id: str | None
    start_time: datetime
    duration_hours: float
    color: str = DEFAULT_COLOR
    approval_status: str = "in_progress"

    @property
    def end_time(self) -> datetime | None:
        """Absolute end instant, or ``None`` when the duration is unusable."""
        try:
            hours = float(self.duration_hours)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(hours):
            return None
        try:
            return ensure_utc(self.start_time) + timedelta(hours=hours)
        except OverflowError:
            return None


@dataclass(frozen=True)
class DisplayWindow:
    start: datetime
    end: datetime

    def padded(self, buffer_hours: float) -> tuple[datetime, datetime]:
        """Return the window widened by ``buffer_hours`` on both sides."""
        start, end = ensure_utc(self.start), ensure_utc(self.end)
        try:
            pad = timedelta(hours=float(buffer_hours))
            return start - pad, end + pad
        except (TypeError, ValueError, OverflowError):
            return start, end


@dataclass(frozen=True)
class PositionedBlock:
    """One activity clipped to one local day, positioned on the grid.

    ``row_start`` is 1-based over the 96 quarter-hour rows of the day.
    ``block_start``/``block_end`` are the clipped bounds as UTC instants.
    """

    activity_id: str
    day: date
    row_start: int
    row_span: int
    block_start: datetime
    block_end: datetime
    name: str
    author_id: str | None
    color: str
    approval_status: str
    column: int = 0
    column_count: int = 1

    @property
    def row_end(self) -> int:
        return self.row_start + self.row_span

    def overlaps(self, other: PositionedBlock) -> bool:
        return (
            self.block_start < other.block_end and other.block_start < self.block_end
        )


@dataclass(frozen=True)
class BlockGeometry:
    """Percentages for drawing a block inside its starting hour cell."""

    top: float
    height: float
    left: float
    width: float


@dataclass(frozen=True)
class ScheduleLayout:
    days: dict[date, list[PositionedBlock]]
    window: DisplayWindow
    display_start: datetime
    display_end: datetime
    timezone: tzinfo

    def blocks(self) -> list[PositionedBlock]:
        return [block for blocks in self.days.values() for block in blocks]

    def blocks_for(self, activity_id: str) -> list[PositionedBlock]:
        return [block for block in self.blocks() if block.activity_id == activity_id]


def enumerate_days(
    start: datetime, end: datetime, tz: tzinfo | None = None
) -> list[date]:
    """Return every local calendar day from ``start`` through ``end``."""

    if ensure_utc(end) < ensure_utc(start):
        return []
    first = local_date(start, tz)
    last = local_date(end, tz)
    return [first + timedelta(days=offset) for offset in range((last - first).days + 1)]


def _sort_key(block: PositionedBlock) -> tuple[datetime, int]:
    # Longer blocks first when two start together.
    return block.block_start, -block.row_span


def _position(
    activity: Activity,
    day: date,
    day_start: datetime,
    day_end: datetime,
    tz: tzinfo,
) -> PositionedBlock | None:
    activity_end = activity.end_time
    if activity_end is None:
        return None
    activity_start = ensure_utc(activity.start_time)

    starts_in_day = day_start <= activity_start <= day_end
    spans_day = activity_start < day_start and activity_end > day_end
    ends_in_day = not spans_day and day_start <= activity_end <= day_end
    if not (starts_in_day or spans_day or ends_in_day):
        return None

    block_start = max(activity_start, day_start)
    block_end = min(activity_end, day_end)
    minutes = whole_minutes_between(block_start, block_end)
    if minutes <= 0:
        return None

    local_start = to_local(block_start, tz)
    row_start = (
        local_start.hour * ROWS_PER_HOUR + local_start.minute // MINUTES_PER_ROW + 1
    )
    row_span = max(1, math.floor(minutes / MINUTES_PER_ROW + 0.5))
    # A 25-hour local day (DST fall back) must still fit the 96-row grid.
    row_span = min(row_span, ROWS_PER_DAY + 1 - row_start)

    return PositionedBlock(
        activity_id=activity.id,
        day=day,
        row_start=row_start,
        row_span=row_span,
        block_start=block_start,
        block_end=block_end,
        name=activity.name,
        author_id=activity.author_id,
        color=activity.color or DEFAULT_COLOR,
        approval_status=activity.approval_status or "in_progress",
    )


def extract_day_blocks(
    day: date, activities: Iterable[Activity], tz: tzinfo | None = None
) -> list[PositionedBlock]:
    """Clip every activity touching ``day`` and compute its grid rows.

    Blocks come back in input order with ``column=0, column_count=1``.
    """

    tz = tz or UTC
    day_start = ensure_utc(start_of_day(day, tz))
    day_end = ensure_utc(end_of_day(day, tz))
    blocks: list[PositionedBlock] = []
    for activity in activities:
        block = _position(activity, day, day_start, day_end, tz)
        if block is not None:
            blocks.append(block)
    return blocks


def group_overlaps(
    blocks: Iterable[PositionedBlock],
) -> list[list[PositionedBlock]]:
    """Partition a day's blocks into overlap groups.

    A block joins the first group holding any block it overlaps, so chains
    of pairwise overlaps end up in a single group.
    """

    groups: list[list[PositionedBlock]] = []
    for block in sorted(blocks, key=_sort_key):
        target = next(
            (group for group in groups if any(block.overlaps(m) for m in group)),
            None,
        )
        if target is None:
            groups.append([block])
        else:
            target.append(block)
    return groups


def assign_columns(
    groups: Sequence[Sequence[PositionedBlock]],
) -> list[list[PositionedBlock]]:
    """Give each block its index within the group as its column."""

    return [
        [
            replace(block, column=index, column_count=len(group))
            for index, block in enumerate(group)
        ]
        for group in groups
    ]


def layout_day(
    day: date, activities: Iterable[Activity], tz: tzinfo | None = None
) -> list[PositionedBlock]:
    """Extract, group and column a single day. Output is in start order."""

    groups = assign_columns(group_overlaps(extract_day_blocks(day, activities, tz)))
    return sorted((block for group in groups for block in group), key=_sort_key)


def compute_schedule(
    activities: Iterable[Activity],
    window: DisplayWindow,
    buffer_hours: float = DEFAULT_BUFFER_HOURS,
    tz: tzinfo | None = None,
) -> ScheduleLayout:
    """Lay out ``activities`` over every local day of ``window``."""

    tz = tz or UTC
    snapshot = tuple(activities)
    days = {
        day: layout_day(day, snapshot, tz)
        for day in enumerate_days(window.start, window.end, tz)
    }
    display_start, display_end = window.padded(buffer_hours)
    logger.debug(
        "Laid out %d activities over %d days (%d blocks)",
        len(snapshot),
        len(days),
        sum(len(blocks) for blocks in days.values()),
    )
    return ScheduleLayout(
        days=days,
        window=window,
        display_start=display_start,
        display_end=display_end,
        timezone=tz,
    )


def is_outside_window(
    day: date, hour: int, window: DisplayWindow, tz: tzinfo | None = None
) -> bool:
    """True when the local ``hour:00`` cell of ``day`` lies outside ``window``."""

    cell = datetime.combine(day, time.min, tzinfo=tz or UTC) + timedelta(hours=hour)
    cell_utc = ensure_utc(cell)
    return cell_utc < ensure_utc(window.start) or cell_utc > ensure_utc(window.end)


def hour_blocks(blocks: Iterable[PositionedBlock], hour: int) -> list[PositionedBlock]:
    """Blocks whose first row falls inside the given hour cell."""

    first_row = hour * ROWS_PER_HOUR + 1
    return [
        block
        for block in blocks
        if first_row <= block.row_start < first_row + ROWS_PER_HOUR
    ]


def block_geometry(block: PositionedBlock) -> BlockGeometry:
    width = 100 / block.column_count
    return BlockGeometry(
        top=((block.row_start - 1) % ROWS_PER_HOUR) * (100 / ROWS_PER_HOUR),
        height=block.row_span * (100 / ROWS_PER_HOUR),
        left=block.column * width,
        width=width,
    )
