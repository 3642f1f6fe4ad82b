from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from .db import Database
from .errors import ConflictError, DataIntegrityError, ValidationError
from .intervals import utc_now
from .localdate import local_date, resolve_timezone
from .models import SESSION_STOPPED, Profile, Segment, TimerAction, TimerPhase, TimerState, TimerStatus
from .projector import StatusProjector


def next_phase(state: TimerState, action: TimerAction) -> TimerPhase | None:
    """Validate an action against the current state.

    Returns the phase the timer ends up in, or None when the action is a
    no-op. Raises ConflictError/ValidationError for rejected transitions.
    """
    phase = state.phase

    if action is TimerAction.START:
        if phase is TimerPhase.RUNNING:
            raise ConflictError("Timer is already running")
        if phase is TimerPhase.PAUSED:
            raise ConflictError("A paused session exists; resume or stop it first")
        return TimerPhase.RUNNING

    if action is TimerAction.PAUSE:
        return TimerPhase.PAUSED if phase is TimerPhase.RUNNING else None

    if action is TimerAction.RESUME:
        if phase is TimerPhase.RUNNING:
            raise ConflictError("Timer is already running")
        if phase is TimerPhase.IDLE:
            raise ValidationError("No session to resume")
        return TimerPhase.RUNNING

    if action is TimerAction.STOP:
        return TimerPhase.IDLE if phase is not TimerPhase.IDLE else None

    raise ValueError(f"Unknown timer action: {action!r}")


class WorkTimer:
    """Start/pause/resume/stop transitions over the stored segments of a user.

    Each transition reads the current state, validates it with ``next_phase``
    and writes the result inside a single storage transaction, then returns a
    freshly projected status.
    """

    def __init__(
        self,
        db: Database,
        default_timezone: str = "UTC",
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.projector = StatusProjector(db)
        self.default_timezone = default_timezone
        self.logger = logger or logging.getLogger(__name__)

    def timezone_for(self, user_id: str) -> ZoneInfo:
        profile = self.db.ensure_profile(user_id, self.default_timezone)
        return resolve_timezone(profile.timezone)

    def set_timezone(self, user_id: str, timezone_name: str) -> Profile:
        tz = resolve_timezone(timezone_name)
        profile = self.db.set_profile_timezone(user_id, tz.key)
        self.logger.info("Timezone updated: user=%s tz=%s", user_id, tz.key)
        return profile

    def get_status(self, user_id: str, tz: ZoneInfo | None = None, now_utc: datetime | None = None) -> TimerStatus:
        zone = tz or self.timezone_for(user_id)
        return self.projector.status(user_id, zone, now_utc or utc_now())

    def start(self, user_id: str, tz: ZoneInfo | None = None, now_utc: datetime | None = None) -> TimerStatus:
        now = now_utc or utc_now()
        zone = tz or self.timezone_for(user_id)
        today = local_date(now, zone)

        try:
            with self.db.transaction():
                state = self.projector.read_state(user_id)
                next_phase(state, TimerAction.START)

                # Both rows commit together; a failed segment insert discards the session.
                session = self.db.insert_session(user_id, today, created_at=now)
                self.db.insert_segment(user_id, session.id, now)
        except (ConflictError, ValidationError) as exc:
            raise self.attach_status(exc, user_id, zone, now) from exc

        self.logger.info("Timer started: user=%s session=%s day=%s", user_id, session.id, today)
        return self.projector.status(user_id, zone, now)

    def pause(self, user_id: str, tz: ZoneInfo | None = None, now_utc: datetime | None = None) -> TimerStatus:
        now = now_utc or utc_now()
        zone = tz or self.timezone_for(user_id)

        try:
            with self.db.transaction():
                state = self.projector.read_state(user_id)
                if next_phase(state, TimerAction.PAUSE) is None:
                    self.logger.debug("Ignoring pause without running timer user=%s", user_id)
                    return self.projector.status(user_id, zone, now)
                self._close_segment(state.open_segment, user_id, now)
        except (ConflictError, ValidationError) as exc:
            raise self.attach_status(exc, user_id, zone, now) from exc

        self.logger.info("Timer paused: user=%s session=%s", user_id, state.open_segment.session_id)
        return self.projector.status(user_id, zone, now)

    def resume(self, user_id: str, tz: ZoneInfo | None = None, now_utc: datetime | None = None) -> TimerStatus:
        now = now_utc or utc_now()
        zone = tz or self.timezone_for(user_id)

        try:
            with self.db.transaction():
                state = self.projector.read_state(user_id)
                next_phase(state, TimerAction.RESUME)
                self.db.insert_segment(user_id, state.session.id, now)
        except (ConflictError, ValidationError) as exc:
            raise self.attach_status(exc, user_id, zone, now) from exc

        self.logger.info("Timer resumed: user=%s session=%s", user_id, state.session.id)
        return self.projector.status(user_id, zone, now)

    def stop(self, user_id: str, tz: ZoneInfo | None = None, now_utc: datetime | None = None) -> TimerStatus:
        now = now_utc or utc_now()
        zone = tz or self.timezone_for(user_id)

        try:
            with self.db.transaction():
                state = self.projector.read_state(user_id)
                if next_phase(state, TimerAction.STOP) is None:
                    self.logger.debug("Ignoring stop without session user=%s", user_id)
                    return self.projector.status(user_id, zone, now)

                if state.open_segment is not None:
                    self._close_segment(state.open_segment, user_id, now)
                self.db.set_session_status(state.session.id, user_id, SESSION_STOPPED)
        except (ConflictError, ValidationError) as exc:
            raise self.attach_status(exc, user_id, zone, now) from exc

        tracked = self.projector.segment_seconds(user_id, state.session.id, now)
        self.logger.info("Timer stopped: user=%s session=%s tracked=%ss", user_id, state.session.id, tracked)
        return self.projector.status(user_id, zone, now)

    def _close_segment(self, segment: Segment, user_id: str, now: datetime) -> None:
        if now < segment.start_at:
            raise DataIntegrityError(
                f"Cannot close segment {segment.id} at {now.isoformat()}, before its start"
            )
        if not self.db.close_segment(segment.id, user_id, now):
            raise ConflictError("Timer state changed while closing the running segment")

    def attach_status(
        self,
        exc: ConflictError | ValidationError,
        user_id: str,
        tz: ZoneInfo,
        now: datetime,
    ) -> ConflictError | ValidationError:
        # The failed transaction has been rolled back, so this is the state the caller should show.
        status = self.projector.status(user_id, tz, now)
        return type(exc)(str(exc), status=status)
