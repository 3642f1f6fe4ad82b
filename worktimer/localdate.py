from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ValidationError

MAX_OVERNIGHT_SPAN = timedelta(hours=12)


def resolve_timezone(name: str) -> ZoneInfo:
    tz_name = (name or "").strip()
    if not tz_name:
        raise ValidationError("Timezone must not be empty")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {tz_name}") from exc


def local_date(instant: datetime, tz: ZoneInfo) -> str:
    """Return the YYYY-MM-DD calendar date of a UTC instant as observed in tz.

    This is the only place that decides which day a moment belongs to.
    """
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    return instant.astimezone(tz).date().isoformat()


def parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc


def parse_month(value: str) -> tuple[int, int]:
    try:
        year_raw, month_raw = value.strip().split("-")
        year, month = int(year_raw), int(month_raw)
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"Invalid month {value!r}, expected YYYY-MM") from exc

    if len(year_raw) != 4 or not 1 <= month <= 12:
        raise ValidationError(f"Invalid month {value!r}, expected YYYY-MM")
    return year, month


def parse_clock(value: str) -> time:
    try:
        return time.fromisoformat(value.strip())
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM") from exc


def combine_local(day_value: date, clock: str, tz: ZoneInfo) -> datetime:
    """Turn a local wall-clock time on a given day into a UTC instant."""
    local = datetime.combine(day_value, parse_clock(clock), tzinfo=tz)
    return local.astimezone(timezone.utc)


def local_end(day_value: date, clock: str, tz: ZoneInfo, start_at: datetime | None) -> datetime:
    """Resolve an end clock time, rolling over to the next day for overnight work.

    The rollover applies only when the resulting span is shorter than
    MAX_OVERNIGHT_SPAN. Otherwise the same-day instant is returned, so an
    inverted range such as 09:00-08:30 reaches validation unchanged.
    """
    end_at = combine_local(day_value, clock, tz)
    if start_at is None or end_at >= start_at:
        return end_at

    next_day_end = combine_local(day_value + timedelta(days=1), clock, tz)
    if next_day_end - start_at < MAX_OVERNIGHT_SPAN:
        return next_day_end
    return end_at


def week_days(start: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range(7)]


def month_days(year: int, month: int) -> list[date]:
    _, last_day = calendar.monthrange(year, month)
    return [date(year, month, day) for day in range(1, last_day + 1)]


def start_of_week(day_value: date) -> date:
    """Monday of the week containing day_value."""
    return day_value - timedelta(days=day_value.weekday())
