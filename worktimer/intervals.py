from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from .errors import DataIntegrityError

ONE_SECOND = timedelta(seconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def duration(start: datetime, end: datetime | None = None, now: datetime | None = None) -> int:
    """Whole seconds between start and end, or between start and now if end is None."""
    if start.tzinfo is None or (end is not None and end.tzinfo is None):
        raise ValueError("start and end must be timezone-aware")

    stop = end if end is not None else (now or utc_now())
    if stop.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    # timedelta // timedelta floors to an int.
    seconds = (stop - start) // ONE_SECOND
    if seconds < 0:
        raise DataIntegrityError(
            f"Interval ends before it starts: {start.isoformat()} -> {stop.isoformat()}"
        )
    return seconds


def sum_durations(
    intervals: Iterable[tuple[datetime, datetime | None]],
    now: datetime | None = None,
) -> int:
    # Pin "now" once so every open interval is measured against the same instant.
    current = now or utc_now()
    return sum(duration(start, end, current) for start, end in intervals)
