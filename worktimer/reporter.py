from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from .models import DaySummary, PeriodSummary, SessionDetail, TimerPhase, TimerStatus
from .projector import StatusProjector

PHASE_LABELS = {
    TimerPhase.IDLE: "Idle",
    TimerPhase.RUNNING: "Running",
    TimerPhase.PAUSED: "Paused",
}


def format_duration(total_seconds: int) -> str:
    """Render a duration as H:MM:SS, or M:SS below one hour."""
    hours, remainder = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02}:{seconds:02}"
    return f"{minutes}:{seconds:02}"


def format_duration_hours(total_seconds: int) -> str:
    hours, remainder = divmod(int(total_seconds), 3600)
    return f"{hours}h {remainder // 60}m"


def _clock(value: datetime | None, tz: ZoneInfo) -> str:
    if value is None:
        return "now"
    return value.astimezone(tz).strftime("%H:%M")


class Reporter:
    """Builds the plain-text replies for status and summary commands."""

    def __init__(self, projector: StatusProjector) -> None:
        self.projector = projector

    def build_status_content(self, status: TimerStatus, tz: ZoneInfo) -> str:
        lines = [f"**Timer: {PHASE_LABELS[status.phase]}**"]

        if status.current_session is not None:
            lines.append(f"Session: `{status.current_session.id}` ({status.current_session.local_date})")
        if status.current_segment is not None:
            lines.append(f"Running since {_clock(status.current_segment.start_at, tz)} ({tz.key})")

        lines.append(f"Elapsed: `{format_duration(status.elapsed_seconds)}`")
        lines.append(f"Today ({status.today}): `{format_duration_hours(status.today_total_seconds)}`")
        return "\n".join(lines)

    def day_report(self, user_id: str, day_value: date, tz: ZoneInfo, now_utc: datetime | None = None) -> str:
        return self.build_day_content(self.projector.day_summary(user_id, day_value, now_utc), tz)

    def week_report(self, user_id: str, start: date, now_utc: datetime | None = None) -> str:
        summary = self.projector.week_summary(user_id, start, now_utc)
        return self.build_period_content(f"Week {summary.start} to {summary.end}", summary)

    def month_report(self, user_id: str, year: int, month: int, now_utc: datetime | None = None) -> str:
        summary = self.projector.month_summary(user_id, year, month, now_utc)
        return self.build_period_content(f"Month {year:04}-{month:02}", summary)

    def calendar_report(self, user_id: str, from_day: date, to_day: date, now_utc: datetime | None = None) -> str:
        totals = self.projector.calendar(user_id, from_day, to_day, now_utc)
        return self.build_calendar_content(from_day, to_day, totals)

    def build_calendar_content(self, from_day: date, to_day: date, totals: dict[str, int]) -> str:
        """One line per tracked date, with a bar of one block per started hour."""
        header = f"**Calendar {from_day.isoformat()} to {to_day.isoformat()}**"
        if not totals:
            return f"{header}\nNo tracked time in this range."

        lines = [header]
        for day_key, seconds in totals.items():
            bar = "#" * -(-seconds // 3600)
            lines.append(f"- {day_key}: `{format_duration_hours(seconds)}` {bar}".rstrip())
        lines.append(f"Total: `{format_duration_hours(sum(totals.values()))}`")
        return "\n".join(lines)

    def build_day_content(self, summary: DaySummary, tz: ZoneInfo) -> str:
        header = f"**Work log - {summary.date}**"
        if not summary.sessions:
            return f"{header}\nNo tracked time for {summary.date}."

        lines = [header]
        lines.extend(self.build_session_line(detail, tz) for detail in summary.sessions)
        lines.append(f"Total: `{format_duration_hours(summary.total_seconds)}`")
        return "\n".join(lines)

    def build_session_line(self, detail: SessionDetail, tz: ZoneInfo) -> str:
        spans = ", ".join(
            f"{_clock(segment.start_at, tz)}-{_clock(segment.end_at, tz)}" for segment in detail.segments
        )
        line = f"- `{detail.session.id}` {spans or 'no segments'}: `{format_duration(detail.total_seconds)}`"
        if detail.session.note:
            line += f" - {detail.session.note}"
        return line

    def build_period_content(self, title: str, summary: PeriodSummary) -> str:
        lines = [f"**{title}**"]
        for day in summary.days:
            if day.session_count == 0:
                lines.append(f"- {day.date}: -")
                continue
            lines.append(
                f"- {day.date}: `{format_duration_hours(day.total_seconds)}` "
                f"({day.session_count} session{'s' if day.session_count != 1 else ''})"
            )
        lines.append(f"Total: `{format_duration_hours(summary.total_seconds)}`")
        return "\n".join(lines)
