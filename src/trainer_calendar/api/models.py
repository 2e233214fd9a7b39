"""Pydantic models for the calendar HTTP API."""

from datetime import datetime

from pydantic import BaseModel, Field

from trainer_calendar.domain.sessions import Session, SessionStatus
from trainer_calendar.services.scheduling import AgendaItem


class SessionPayload(BaseModel):
    """Wire representation of a persisted session."""

    id: str
    client_id: str
    date_key: str
    start_instant: datetime
    end_instant: datetime
    status: SessionStatus
    location: str | None = None
    notes: str | None = None
    recurring: bool = False

    @classmethod
    def from_session(cls, session: Session) -> "SessionPayload":
        """Build a payload from a domain session."""
        return cls(
            id=session.id,
            client_id=session.client_id,
            date_key=session.date_key,
            start_instant=session.start_instant,
            end_instant=session.end_instant,
            status=session.status,
            location=session.location,
            notes=session.notes,
            recurring=session.recurring,
        )


class AgendaItemPayload(BaseModel):
    """A session row in the day agenda."""

    session: SessionPayload
    client_label: str
    time_range: str

    @classmethod
    def from_item(cls, item: AgendaItem) -> "AgendaItemPayload":
        """Build a payload from an agenda item."""
        return cls(
            session=SessionPayload.from_session(item.session),
            client_label=item.client_label,
            time_range=item.time_range,
        )


class SessionCreateRequest(BaseModel):
    """Create-session form values; times are local HH:MM on ``date_key``."""

    client_id: str
    date_key: str
    start_time: str
    end_time: str
    status: SessionStatus = SessionStatus.BOOKED
    location: str | None = None
    notes: str | None = None
    repeat_weeks: int = Field(default=0, ge=0)
    override: bool = False
    allow_past: bool = False


class SessionUpdateRequest(BaseModel):
    """Full replacement of an existing session."""

    client_id: str
    start_instant: datetime
    end_instant: datetime
    status: SessionStatus = SessionStatus.BOOKED
    location: str | None = None
    notes: str | None = None
    recurring: bool = False
    override: bool = False
