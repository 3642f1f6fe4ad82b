from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from worktimer.db import Database
from worktimer.models import SESSION_STOPPED
from worktimer.reporter import Reporter, format_duration, format_duration_hours
from worktimer.tracker import WorkTimer

T0 = datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc)


def _make_timer() -> WorkTimer:
    db = Database(":memory:")
    db.initialize()
    return WorkTimer(db=db)


def test_format_duration() -> None:
    assert format_duration(3661) == "1:01:01"
    assert format_duration(3600) == "1:00:00"
    assert format_duration(65) == "1:05"
    assert format_duration(3599) == "59:59"
    assert format_duration(0) == "0:00"


def test_format_duration_hours() -> None:
    assert format_duration_hours(3661) == "1h 1m"
    assert format_duration_hours(125) == "0h 2m"
    assert format_duration_hours(0) == "0h 0m"


def test_status_content_for_running_timer() -> None:
    timer = _make_timer()
    tz = ZoneInfo("America/New_York")
    timer.start("1", tz, now_utc=T0)
    status = timer.get_status("1", tz, now_utc=T0 + timedelta(minutes=61, seconds=1))

    content = Reporter(timer.projector).build_status_content(status, tz)

    assert "**Timer: Running**" in content
    assert "Running since 09:00 (America/New_York)" in content
    assert "Elapsed: `1:01:01`" in content
    assert "Today (2024-01-15): `1h 1m`" in content


def test_status_content_for_idle_timer() -> None:
    timer = _make_timer()
    status = timer.get_status("1", ZoneInfo("UTC"), now_utc=T0)

    content = Reporter(timer.projector).build_status_content(status, ZoneInfo("UTC"))

    assert content.splitlines()[0] == "**Timer: Idle**"
    assert "Session:" not in content
    assert "Elapsed: `0:00`" in content


def test_day_report_lists_sessions_with_spans() -> None:
    timer = _make_timer()
    tz = ZoneInfo("UTC")
    db = timer.db
    session = db.insert_session("1", "2024-01-15", status=SESSION_STOPPED, created_at=T0, note="planning")
    db.insert_segment("1", session.id, T0, T0 + timedelta(minutes=30))
    db.insert_segment("1", session.id, T0 + timedelta(hours=1), T0 + timedelta(hours=1, minutes=5))

    content = Reporter(timer.projector).day_report("1", date(2024, 1, 15), tz, now_utc=T0 + timedelta(hours=3))

    lines = content.splitlines()
    assert lines[0] == "**Work log - 2024-01-15**"
    assert lines[1] == f"- `{session.id}` 14:00-14:30, 15:00-15:05: `35:00` - planning"
    assert lines[-1] == "Total: `0h 35m`"


def test_no_activity_message() -> None:
    timer = _make_timer()

    content = Reporter(timer.projector).day_report("1", date(2024, 1, 15), ZoneInfo("UTC"))

    assert "No tracked time for 2024-01-15." in content


def test_week_report_marks_empty_days() -> None:
    timer = _make_timer()
    db = timer.db
    session = db.insert_session("1", "2024-01-16", status=SESSION_STOPPED, created_at=T0)
    db.insert_segment("1", session.id, T0, T0 + timedelta(hours=2))

    content = Reporter(timer.projector).week_report("1", date(2024, 1, 15), now_utc=T0 + timedelta(days=3))

    lines = content.splitlines()
    assert lines[0] == "**Week 2024-01-15 to 2024-01-21**"
    assert lines[1] == "- 2024-01-15: -"
    assert lines[2] == "- 2024-01-16: `2h 0m` (1 session)"
    assert lines[-1] == "Total: `2h 0m`"
    assert len(lines) == 9


def test_month_report_has_a_line_per_day() -> None:
    timer = _make_timer()

    content = Reporter(timer.projector).month_report("1", 2024, 2, now_utc=T0)

    lines = content.splitlines()
    assert lines[0] == "**Month 2024-02**"
    assert len(lines) == 1 + 29 + 1


def test_calendar_report_lists_tracked_days_only() -> None:
    timer = _make_timer()
    db = timer.db
    long_day = db.insert_session("1", "2024-01-15", status=SESSION_STOPPED, created_at=T0)
    db.insert_segment("1", long_day.id, T0, T0 + timedelta(hours=2, minutes=30))
    short_day = db.insert_session("1", "2024-01-18", status=SESSION_STOPPED, created_at=T0 + timedelta(days=3))
    db.insert_segment("1", short_day.id, T0 + timedelta(days=3), T0 + timedelta(days=3, minutes=20))

    content = Reporter(timer.projector).calendar_report(
        "1", date(2024, 1, 1), date(2024, 1, 31), now_utc=T0 + timedelta(days=5)
    )

    assert content.splitlines() == [
        "**Calendar 2024-01-01 to 2024-01-31**",
        "- 2024-01-15: `2h 30m` ###",
        "- 2024-01-18: `0h 20m` #",
        "Total: `2h 50m`",
    ]


def test_calendar_report_for_empty_range() -> None:
    timer = _make_timer()

    content = Reporter(timer.projector).calendar_report("1", date(2024, 2, 1), date(2024, 2, 29), now_utc=T0)

    assert content == "**Calendar 2024-02-01 to 2024-02-29**\nNo tracked time in this range."
