from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TimerStatus


class WorkTimerError(Exception):
    """Base class for every error raised by the timer core."""


class AuthenticationError(WorkTimerError):
    pass


class ConflictError(WorkTimerError):
    """Raised when a start/resume is attempted while a timer is already running.

    Carries the current status so callers can reconcile without re-fetching.
    """

    def __init__(self, message: str, status: TimerStatus | None = None) -> None:
        super().__init__(message)
        self.status = status


class ValidationError(WorkTimerError):
    def __init__(self, message: str, status: TimerStatus | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(WorkTimerError):
    pass


class DependencyError(WorkTimerError):
    """The storage layer failed. The underlying error is kept as __cause__."""


class DataIntegrityError(WorkTimerError):
    """Stored data violates an invariant, e.g. a segment ending before it starts."""
