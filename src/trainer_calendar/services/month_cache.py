"""Month-keyed cache of sessions grouped by local date key."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from trainer_calendar.domain.sessions import Session


@dataclass
class MonthCache:
    """In-memory store of fetched months and day buckets.

    Each session id lives in exactly one bucket. Merges replace entries by id,
    so applying the same fetch twice, or two fetches in either order, leaves
    the same contents.

    Local writes (``put``, ``remove``, ``invalidate``) are stamped with a
    sequence number. A fetch result carries the sequence at which it started
    and never overrides a write stamped after that, so a slow fetch cannot
    resurrect a deleted session or roll back an edit.
    """

    _fetched: set[str]
    _buckets: dict[str, dict[str, Session]]
    _locations: dict[str, str]
    _sequence: int
    _written: dict[str, int]
    _invalidated: dict[str, int]
    _deleted: set[str]

    def __init__(self) -> None:
        self._fetched = set()
        self._buckets = {}
        self._locations = {}
        self._sequence = 0
        self._written = {}
        self._invalidated = {}
        self._deleted = set()

    def has(self, month_key: str) -> bool:
        """Return True when the month was fetched and not invalidated since."""
        return month_key in self._fetched

    def mark_fetched(self, month_key: str) -> None:
        """Record that the month's sessions are present in the buckets."""
        self._fetched.add(month_key)

    def invalidate(self, month_key: str) -> None:
        """Clear the fetched marker so the next read goes to the repository."""
        self._invalidated[month_key] = self._stamp()
        self._fetched.discard(month_key)

    def snapshot(self) -> int:
        """Return the write sequence a fetch starting now should carry."""
        return self._sequence

    def merge(self, grouped: dict[str, list[Session]]) -> None:
        """Add or replace sessions in their date-key buckets."""
        for key, sessions in grouped.items():
            for session in sessions:
                self._store(key, session)

    def apply_fetch(
        self,
        month_key: str,
        start: datetime,
        end: datetime,
        sessions: list[Session],
        since: int,
    ) -> None:
        """Replace the cached contents of [start, end] with a fetch result.

        Cached sessions in the window that the fetch did not return are
        dropped, unless a local write touched them after ``since``. Returned
        sessions that were deleted, or written after ``since``, are skipped.
        The month is marked fetched only if it was not invalidated meanwhile.
        """
        returned = {session.id for session in sessions}
        stale = [
            session
            for bucket in self._buckets.values()
            for session in bucket.values()
            if start <= session.start_instant <= end
            and session.id not in returned
            and not self._written_after(session.id, since)
        ]
        for session in stale:
            self._drop(session.id)
        for session in sessions:
            if session.id in self._deleted or self._written_after(session.id, since):
                continue
            self._store(session.date_key, session)
        if self._invalidated.get(month_key, 0) <= since:
            self._fetched.add(month_key)

    def put(self, session: Session) -> None:
        """Add or replace a single session in the bucket for its date key."""
        self._written[session.id] = self._stamp()
        self._deleted.discard(session.id)
        self._store(session.date_key, session)

    def remove(self, session_id: str) -> Session | None:
        """Drop a deleted session; later fetches will not bring it back."""
        self._written[session_id] = self._stamp()
        self._deleted.add(session_id)
        return self._drop(session_id)

    def get(self, session_id: str) -> Session | None:
        """Return a cached session by id."""
        key = self._locations.get(session_id)
        if key is None:
            return None
        return self._buckets[key].get(session_id)

    def bucket(self, date_key: str) -> list[Session]:
        """Return the sessions for a day, in no particular order."""
        return list(self._buckets.get(date_key, {}).values())

    def marked_dates(self) -> set[str]:
        """Return the date keys that hold at least one session."""
        return {key for key, bucket in self._buckets.items() if bucket}

    def _stamp(self) -> int:
        self._sequence += 1
        return self._sequence

    def _written_after(self, session_id: str, since: int) -> bool:
        return self._written.get(session_id, 0) > since

    def _drop(self, session_id: str) -> Session | None:
        key = self._locations.pop(session_id, None)
        if key is None:
            return None
        bucket = self._buckets.get(key, {})
        removed = bucket.pop(session_id, None)
        if not bucket:
            self._buckets.pop(key, None)
        return removed

    def _store(self, key: str, session: Session) -> None:
        previous = self._locations.get(session.id)
        if previous is not None and previous != key:
            self._drop(session.id)
        self._buckets.setdefault(key, {})[session.id] = session
        self._locations[session.id] = key


def group_by_date_key(sessions: Iterable[Session]) -> dict[str, list[Session]]:
    """Group sessions by their date key."""
    grouped: dict[str, list[Session]] = {}
    for session in sessions:
        grouped.setdefault(session.date_key, []).append(session)
    return grouped
