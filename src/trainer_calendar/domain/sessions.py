"""Domain models for scheduled training sessions."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class SessionStatus(StrEnum):
    """Status of a scheduled session. Set by the trainer, no transitions enforced."""

    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


@dataclass(frozen=True)
class SessionDraft:
    """A session that has not been persisted yet and has no id."""

    client_id: str
    date_key: str
    start_instant: datetime
    end_instant: datetime
    status: SessionStatus = SessionStatus.BOOKED
    location: str | None = None
    notes: str | None = None
    recurring: bool = False


@dataclass(frozen=True)
class Session:
    """Represents a persisted session.

    ``start_instant`` and ``end_instant`` are UTC-aware datetimes and
    ``date_key`` is the local calendar day of ``start_instant``.
    """

    id: str
    client_id: str
    date_key: str
    start_instant: datetime
    end_instant: datetime
    status: SessionStatus = SessionStatus.BOOKED
    location: str | None = None
    notes: str | None = None
    recurring: bool = False

    def to_draft(self) -> SessionDraft:
        """Return the session fields without the id."""
        return SessionDraft(
            client_id=self.client_id,
            date_key=self.date_key,
            start_instant=self.start_instant,
            end_instant=self.end_instant,
            status=self.status,
            location=self.location,
            notes=self.notes,
            recurring=self.recurring,
        )


@dataclass(frozen=True)
class SessionFilters:
    """Optional repository filters, combined with AND."""

    statuses: frozenset[SessionStatus] | None = None
    client_id: str | None = None

    def matches(self, session: Session) -> bool:
        """Return True when the session passes every configured filter."""
        if self.statuses and session.status not in self.statuses:
            return False
        if self.client_id and session.client_id != self.client_id:
            return False
        return True
