from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

SESSION_ACTIVE = "active"
SESSION_STOPPED = "stopped"


class TimerPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class TimerAction(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"


@dataclass(frozen=True, slots=True)
class Profile:
    user_id: str
    timezone: str


@dataclass(frozen=True, slots=True)
class Session:
    id: str
    user_id: str
    local_date: str
    status: str
    created_at: datetime
    note: str | None = None
    project_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SESSION_ACTIVE


@dataclass(frozen=True, slots=True)
class Segment:
    id: str
    user_id: str
    session_id: str
    start_at: datetime
    end_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end_at is None


@dataclass(frozen=True, slots=True)
class TimerState:
    """Derived timer state: the phase plus the records it was derived from."""

    phase: TimerPhase
    session: Session | None = None
    open_segment: Segment | None = None


@dataclass(frozen=True, slots=True)
class TimerStatus:
    phase: TimerPhase
    elapsed_seconds: int
    today_total_seconds: int
    today: str
    current_session: Session | None = None
    current_segment: Segment | None = None

    @property
    def is_running(self) -> bool:
        return self.phase is TimerPhase.RUNNING


@dataclass(frozen=True, slots=True)
class SessionDetail:
    session: Session
    segments: list[Segment]
    total_seconds: int


@dataclass(frozen=True, slots=True)
class DaySummary:
    date: str
    total_seconds: int
    sessions: list[SessionDetail] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DayTotal:
    date: str
    total_seconds: int
    session_count: int


@dataclass(frozen=True, slots=True)
class PeriodSummary:
    start: str
    end: str
    total_seconds: int
    days: list[DayTotal]
