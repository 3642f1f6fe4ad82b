from __future__ import annotations

import logging
from datetime import datetime

from .errors import ConflictError, NotFoundError, ValidationError
from .intervals import utc_now
from .localdate import parse_day
from .models import SESSION_ACTIVE, SESSION_STOPPED, Session, SessionDetail, TimerAction
from .tracker import WorkTimer, next_phase

UNSET = object()


class SessionEditor:
    """Manual corrections to recorded sessions: add, retime, annotate, delete."""

    def __init__(self, timer: WorkTimer, logger: logging.Logger | None = None) -> None:
        self.timer = timer
        self.db = timer.db
        self.projector = timer.projector
        self.logger = logger or logging.getLogger(__name__)

    def get_session(self, session_id: str, user_id: str, now_utc: datetime | None = None) -> SessionDetail:
        session = self._owned_session(session_id, user_id)
        return self.projector.session_detail(session, now_utc)

    def create_manual_session(
        self,
        user_id: str,
        day: str,
        start_at: datetime,
        end_at: datetime | None = None,
        *,
        note: str | None = None,
        project_id: str | None = None,
        now_utc: datetime | None = None,
    ) -> Session:
        """Record a session that was not timed live.

        With an end time the session is stored as stopped. Without one it
        becomes a back-dated running timer, which is only allowed when no
        timer is running or paused.
        """
        day_key = parse_day(day).isoformat()
        now = now_utc or utc_now()

        if end_at is not None:
            if end_at < start_at:
                raise ValidationError("Session end must not be before its start")
            with self.db.transaction():
                session = self.db.insert_session(
                    user_id, day_key, status=SESSION_STOPPED, created_at=now, note=note, project_id=project_id
                )
                self.db.insert_segment(user_id, session.id, start_at, end_at)
            self.logger.info("Manual session added: user=%s session=%s day=%s", user_id, session.id, day_key)
            return session

        if start_at > now:
            raise ValidationError("A running session cannot start in the future")

        tz = self.timer.timezone_for(user_id)
        try:
            with self.db.transaction():
                state = self.projector.read_state(user_id)
                next_phase(state, TimerAction.START)
                session = self.db.insert_session(
                    user_id, day_key, status=SESSION_ACTIVE, created_at=now, note=note, project_id=project_id
                )
                self.db.insert_segment(user_id, session.id, start_at)
        except ConflictError as exc:
            raise self.timer.attach_status(exc, user_id, tz, now) from exc

        self.logger.info("Back-dated timer started: user=%s session=%s day=%s", user_id, session.id, day_key)
        return session

    def update_session(
        self,
        session_id: str,
        user_id: str,
        *,
        note: object = UNSET,
        project_id: object = UNSET,
        start_at: datetime | None = None,
        end_at: datetime | None = None,
    ) -> Session:
        """Edit a session's details and retime its outer bounds.

        ``start_at`` moves the start of the first segment and ``end_at`` the end
        of the last one; segments in between are left as they are.
        """
        with self.db.transaction():
            session = self._owned_session(session_id, user_id)

            values = {}
            if note is not UNSET:
                values["note"] = note
            if project_id is not UNSET:
                values["project_id"] = project_id
            self.db.update_session_columns(session.id, user_id, values)

            if start_at is not None or end_at is not None:
                self._retime(session, start_at, end_at)

            updated = self.db.get_session(session.id, user_id)

        self.logger.info("Session updated: user=%s session=%s", user_id, session.id)
        return updated

    def delete_session(self, session_id: str, user_id: str) -> None:
        with self.db.transaction():
            session = self._owned_session(session_id, user_id)
            # Segments first: storage does not cascade.
            removed = self.db.delete_segments_for_session(session.id, user_id)
            self.db.delete_session(session.id, user_id)

        self.logger.info("Session deleted: user=%s session=%s segments=%d", user_id, session.id, removed)

    def _retime(self, session: Session, start_at: datetime | None, end_at: datetime | None) -> None:
        segments = self.db.list_segments(session.user_id, [session.id])
        if not segments:
            raise ValidationError("Session has no recorded time to adjust")

        first, last = segments[0], segments[-1]
        if end_at is not None and last.is_open:
            raise ValidationError("Stop the timer before changing the session end")

        if first.id == last.id:
            new_start = start_at or first.start_at
            new_end = end_at or first.end_at
            if new_end is not None and new_end < new_start:
                raise ValidationError("Session end must not be before its start")
            if new_end is None and new_start > utc_now():
                raise ValidationError("A running session cannot start in the future")
            self.db.retime_segment(first.id, session.user_id, new_start, new_end)
            return

        if start_at is not None:
            if first.end_at is not None and first.end_at < start_at:
                raise ValidationError("New start is after the end of the first segment")
            self.db.retime_segment(first.id, session.user_id, start_at, first.end_at)

        if end_at is not None:
            if end_at < last.start_at:
                raise ValidationError("New end is before the start of the last segment")
            self.db.retime_segment(last.id, session.user_id, last.start_at, end_at)

    def _owned_session(self, session_id: str, user_id: str) -> Session:
        session = self.db.get_session(session_id, user_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session
