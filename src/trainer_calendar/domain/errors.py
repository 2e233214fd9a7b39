"""Error types raised by the scheduling engine."""

from trainer_calendar.domain.sessions import Session


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class ValidationError(SchedulingError, ValueError):
    """Input rejected before any repository call."""


class RepositoryError(SchedulingError):
    """A session repository or client directory call failed.

    ``persisted`` holds the sessions a batch write stored before failing, so
    callers can reconcile partial persistence.
    """

    def __init__(self, message: str, persisted: list[Session] | None = None) -> None:
        super().__init__(message)
        self.persisted = list(persisted or [])
