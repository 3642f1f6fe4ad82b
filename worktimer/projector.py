from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from .db import Database
from .errors import ValidationError
from .intervals import sum_durations, utc_now
from .localdate import local_date, month_days, week_days
from .models import (
    DaySummary,
    DayTotal,
    PeriodSummary,
    Segment,
    Session,
    SessionDetail,
    TimerPhase,
    TimerState,
    TimerStatus,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def segment_total(segments: Iterable[Segment], now_utc: datetime) -> int:
    return sum_durations(((segment.start_at, segment.end_at) for segment in segments), now_utc)


def _last_end(segments: Iterable[Segment]) -> datetime:
    return max((segment.end_at or segment.start_at for segment in segments), default=_EPOCH)


def derive_state(
    open_segment: Segment | None,
    running_session: Session | None,
    paused_session: Session | None,
) -> TimerState:
    """Tag the query results with the phase they represent.

    An open segment always means Running. Otherwise the user's active
    session means Paused, whatever day it belongs to, so a session paused
    before local midnight can still be resumed after it. Anything else is Idle.
    """
    if open_segment is not None:
        return TimerState(phase=TimerPhase.RUNNING, session=running_session, open_segment=open_segment)
    if paused_session is not None:
        return TimerState(phase=TimerPhase.PAUSED, session=paused_session)
    return TimerState(phase=TimerPhase.IDLE)


class StatusProjector:
    """Read-only views computed from stored sessions and segments.

    Nothing here is cached; open segments are always measured against the
    ``now_utc`` passed in (or the current instant).
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def read_state(self, user_id: str) -> TimerState:
        open_segment = self.db.get_open_segment(user_id)
        if open_segment is not None:
            return derive_state(open_segment, self.db.get_session(open_segment.session_id, user_id), None)
        return derive_state(None, None, self.db.find_active_session(user_id))

    def status(self, user_id: str, tz: ZoneInfo, now_utc: datetime | None = None) -> TimerStatus:
        now = now_utc or utc_now()
        today = local_date(now, tz)
        state = self.read_state(user_id)

        today_sessions = self.db.list_sessions(user_id, today, today)
        by_session = self._segments_by_session(user_id, today_sessions)
        today_total = sum(segment_total(segments, now) for segments in by_session.values())

        if state.session is not None:
            # Cumulative over every pause/resume cycle of the session.
            elapsed = self.segment_seconds(user_id, state.session.id, now)
        elif today_sessions:
            # Idle: keep showing the session whose work ended last today, not the last one entered.
            latest = max(
                today_sessions,
                key=lambda session: (_last_end(by_session[session.id]), session.created_at),
            )
            elapsed = segment_total(by_session[latest.id], now)
        else:
            elapsed = 0

        return TimerStatus(
            phase=state.phase,
            elapsed_seconds=elapsed,
            today_total_seconds=today_total,
            today=today,
            current_session=state.session,
            current_segment=state.open_segment,
        )

    def segment_seconds(self, user_id: str, session_id: str, now_utc: datetime) -> int:
        return segment_total(self.db.list_segments(user_id, [session_id]), now_utc)

    def session_detail(self, session: Session, now_utc: datetime | None = None) -> SessionDetail:
        now = now_utc or utc_now()
        segments = self.db.list_segments(session.user_id, [session.id])
        return SessionDetail(session=session, segments=segments, total_seconds=segment_total(segments, now))

    def day_summary(self, user_id: str, day_value: date, now_utc: datetime | None = None) -> DaySummary:
        now = now_utc or utc_now()
        day_key = day_value.isoformat()
        sessions = self.db.list_sessions(user_id, day_key, day_key)
        by_session = self._segments_by_session(user_id, sessions)

        details = [
            SessionDetail(
                session=session,
                segments=by_session[session.id],
                total_seconds=segment_total(by_session[session.id], now),
            )
            for session in sessions
        ]
        return DaySummary(
            date=day_key,
            total_seconds=sum(detail.total_seconds for detail in details),
            sessions=details,
        )

    def week_summary(self, user_id: str, start: date, now_utc: datetime | None = None) -> PeriodSummary:
        return self._period_summary(user_id, week_days(start), now_utc)

    def month_summary(self, user_id: str, year: int, month: int, now_utc: datetime | None = None) -> PeriodSummary:
        return self._period_summary(user_id, month_days(year, month), now_utc)

    def calendar(
        self,
        user_id: str,
        from_day: date,
        to_day: date,
        now_utc: datetime | None = None,
    ) -> dict[str, int]:
        """Totals per date, only for dates that have at least one session."""
        if from_day > to_day:
            raise ValidationError(f"Range start {from_day} is after its end {to_day}")

        now = now_utc or utc_now()
        sessions = self.db.list_sessions(user_id, from_day.isoformat(), to_day.isoformat())
        by_session = self._segments_by_session(user_id, sessions)

        totals: dict[str, int] = {}
        for session in sessions:
            totals[session.local_date] = totals.get(session.local_date, 0) + segment_total(
                by_session[session.id], now
            )
        return totals

    def _period_summary(self, user_id: str, days: list[date], now_utc: datetime | None) -> PeriodSummary:
        now = now_utc or utc_now()
        start_key, end_key = days[0].isoformat(), days[-1].isoformat()
        sessions = self.db.list_sessions(user_id, start_key, end_key)
        by_session = self._segments_by_session(user_id, sessions)

        seconds_by_day: dict[str, int] = defaultdict(int)
        count_by_day: dict[str, int] = defaultdict(int)
        for session in sessions:
            seconds_by_day[session.local_date] += segment_total(by_session[session.id], now)
            count_by_day[session.local_date] += 1

        # Every day in the range is present, including the empty ones.
        totals = [
            DayTotal(
                date=day.isoformat(),
                total_seconds=seconds_by_day[day.isoformat()],
                session_count=count_by_day[day.isoformat()],
            )
            for day in days
        ]
        return PeriodSummary(
            start=start_key,
            end=end_key,
            total_seconds=sum(item.total_seconds for item in totals),
            days=totals,
        )

    def _segments_by_session(self, user_id: str, sessions: list[Session]) -> dict[str, list[Segment]]:
        grouped: dict[str, list[Segment]] = defaultdict(list)
        for segment in self.db.list_segments(user_id, [session.id for session in sessions]):
            grouped[segment.session_id].append(segment)
        return grouped
