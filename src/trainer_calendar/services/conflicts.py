"""Double-booking detection within a single day."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from trainer_calendar.domain.sessions import Session, SessionDraft
from trainer_calendar.services.dates import ranges_overlap


@dataclass(frozen=True)
class ConflictResult:
    """A candidate session together with the sessions it collides with."""

    candidate: SessionDraft | Session
    conflicts: list[Session]


def find_conflicts(
    candidate_start: datetime,
    candidate_end: datetime,
    day_bucket: Iterable[Session],
    exclude_id: str | None = None,
) -> list[Session]:
    """Return every session in the bucket that overlaps the candidate interval.

    Only the candidate's own day is checked, so a session running past
    midnight is not compared with the following day's bucket.
    """
    return [
        session
        for session in day_bucket
        if session.id != exclude_id
        and ranges_overlap(
            candidate_start,
            candidate_end,
            session.start_instant,
            session.end_instant,
        )
    ]
