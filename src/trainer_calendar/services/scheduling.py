"""Calendar controller coordinating month loading, agenda reads and writes."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, tzinfo
from enum import StrEnum
from typing import Protocol

from trainer_calendar.domain.clients import ClientRecord
from trainer_calendar.domain.errors import RepositoryError, ValidationError
from trainer_calendar.domain.sessions import (
    Session,
    SessionDraft,
    SessionFilters,
    SessionStatus,
)
from trainer_calendar.services.conflicts import ConflictResult, find_conflicts
from trainer_calendar.services.dates import (
    DECEMBER,
    add_minutes,
    date_key,
    format_range,
    is_past,
    month_key,
    month_key_for_date_key,
    month_range,
    nearest_half_hour,
    parse_date_key,
    shift_month,
    to_local_date,
    to_stored_instant,
)
from trainer_calendar.services.month_cache import MonthCache
from trainer_calendar.services.recurrence import expand_weekly

_logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    """Persistence interface for calendar sessions."""

    async def load_sessions(
        self,
        start: datetime,
        end: datetime,
        filters: SessionFilters | None = None,
    ) -> list[Session]:
        """Return sessions whose start instant lies within [start, end]."""

    async def create(self, draft: SessionDraft) -> Session:
        """Persist a draft and return it with an id."""

    async def create_many(self, drafts: list[SessionDraft]) -> list[Session]:
        """Persist a batch of drafts and return them with ids."""

    async def update(self, session: Session) -> Session | None:
        """Replace a stored session, returning None when it does not exist."""

    async def delete(self, session_id: str) -> bool:
        """Delete a session and return True if it existed."""


class ClientDirectory(Protocol):
    """Read access to the client roster."""

    async def list_clients(self) -> list[ClientRecord]:
        """Return all clients."""


class ControllerState(StrEnum):
    """Loading state observed by the calendar UI."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class OutcomeStatus(StrEnum):
    """Result of a create, edit or delete request."""

    OK = "ok"
    CONFLICT = "conflict"
    PAST = "past"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionInput:
    """Form values for a new session; ``start`` and ``end`` are aware datetimes."""

    client_id: str
    start: datetime
    end: datetime
    status: SessionStatus = SessionStatus.BOOKED
    location: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class WriteOutcome:
    """Outcome of a write request.

    ``sessions`` lists what the repository stored, which can be a partial
    batch when ``status`` is FAILED.
    """

    status: OutcomeStatus
    sessions: list[Session] = field(default_factory=list)
    conflict: ConflictResult | None = None
    error: RepositoryError | None = None

    @property
    def ok(self) -> bool:
        """Return True when the write was applied."""
        return self.status is OutcomeStatus.OK


@dataclass(frozen=True)
class AgendaItem:
    """A session prepared for the day agenda."""

    session: Session
    client_label: str
    time_range: str


StateListener = Callable[[ControllerState], None]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SchedulingController:
    """State machine behind one calendar screen.

    Owns its MonthCache. Operations are coroutines that suspend only on
    repository and client directory calls.
    """

    repository: SessionRepository
    timezone: tzinfo
    client_directory: ClientDirectory | None = None
    cache: MonthCache = field(default_factory=MonthCache)
    padding_weeks: int = 2
    default_session_minutes: int = 60
    filters: SessionFilters | None = None
    clock: Callable[[], datetime] = field(default=_utc_now, repr=False)
    state: ControllerState = ControllerState.IDLE
    visible_month: tuple[int, int] | None = None
    selected_date: str | None = None
    last_error: RepositoryError | None = None
    _listeners: list[StateListener] = field(default_factory=list, repr=False)
    _clients: dict[str, ClientRecord] = field(default_factory=dict, repr=False)
    _load_generation: int = field(default=0, repr=False)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def select_month(self, year: int, month: int) -> ControllerState:
        """Show a month, fetching it padded and its neighbours unpadded."""
        if not 1 <= month <= DECEMBER:
            raise ValidationError(f"Invalid month: {month}")
        self.visible_month = (year, month)
        self._set_state(ControllerState.LOADING)
        await self._load_visible()
        return self.state

    async def refresh(self) -> ControllerState:
        """Re-fetch the visible month, e.g. to retry after an error."""
        if self.visible_month is None:
            return self.state
        self.cache.invalidate(month_key(*self.visible_month))
        self._set_state(ControllerState.LOADING)
        await self._load_visible()
        return self.state

    def select_day(self, key: str) -> list[Session]:
        """Select a day and return its sessions ordered by start."""
        parse_date_key(key)
        self.selected_date = key
        return sorted(self.cache.bucket(key), key=lambda s: s.start_instant)

    def day_agenda(self, key: str) -> list[AgendaItem]:
        """Return the selected day's sessions with labels and display times."""
        return [
            AgendaItem(
                session=session,
                client_label=self.client_label(session.client_id),
                time_range=format_range(
                    to_local_date(session.start_instant, self.timezone),
                    to_local_date(session.end_instant, self.timezone),
                ),
            )
            for session in self.select_day(key)
        ]

    def marked_dates(self) -> set[str]:
        """Return date keys that should show a session marker."""
        return self.cache.marked_dates()

    def today_key(self) -> str:
        """Return the local date key of the current day."""
        return date_key(to_local_date(self.clock(), self.timezone))

    def suggested_slot(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """Return a default start and end for the create form."""
        local_now = to_local_date(now or self.clock(), self.timezone)
        start = nearest_half_hour(local_now)
        return start, add_minutes(start, self.default_session_minutes)

    async def load_clients(self) -> list[ClientRecord]:
        """Load the client roster used for agenda labels."""
        if self.client_directory is None:
            return []
        clients = await self.client_directory.list_clients()
        self._clients = {client.id: client for client in clients}
        return clients

    def client_label(self, client_id: str) -> str:
        """Return the display label for a client id."""
        client = self._clients.get(client_id)
        return client.label if client else "Unknown client"

    async def create_session(
        self,
        session_input: SessionInput,
        *,
        override: bool = False,
        repeat_weeks: int = 0,
        allow_past: bool = False,
    ) -> WriteOutcome:
        """Create a session, optionally repeating it weekly.

        A start in the past returns PAST unless ``allow_past`` is set.
        Conflicts are returned instead of persisting unless ``override`` is set.
        """
        _validate_client(session_input.client_id)
        _validate_interval(session_input.start, session_input.end)
        if repeat_weeks < 0:
            raise ValidationError("Repeat weeks cannot be negative")

        start = to_stored_instant(session_input.start)
        base = SessionDraft(
            client_id=session_input.client_id,
            date_key=date_key(to_local_date(start, self.timezone)),
            start_instant=start,
            end_instant=to_stored_instant(session_input.end),
            status=session_input.status,
            location=session_input.location or None,
            notes=session_input.notes or None,
        )
        if not allow_past and is_past(base.start_instant, self.clock()):
            return WriteOutcome(
                status=OutcomeStatus.PAST,
                conflict=ConflictResult(candidate=base, conflicts=[]),
            )

        drafts = [base]
        if repeat_weeks:
            drafts.extend(expand_weekly(base, repeat_weeks, self.timezone))

        if not override:
            conflicts = self._conflicts_for(drafts)
            if conflicts:
                _logger.info(
                    "Session conflicts: date=%s count=%s", base.date_key, len(conflicts)
                )
                return WriteOutcome(
                    status=OutcomeStatus.CONFLICT,
                    conflict=ConflictResult(candidate=base, conflicts=conflicts),
                )

        try:
            if len(drafts) == 1:
                created = [await self.repository.create(base)]
            else:
                created = await self.repository.create_many(drafts)
        except RepositoryError as exc:
            _logger.warning(
                "Session create failed: date=%s persisted=%s: %s",
                base.date_key,
                len(exc.persisted),
                exc,
            )
            if exc.persisted:
                await self._apply_writes(self._record(exc.persisted))
            return WriteOutcome(
                status=OutcomeStatus.FAILED, sessions=exc.persisted, error=exc
            )

        _logger.info("Sessions created: count=%s date=%s", len(created), base.date_key)
        await self._apply_writes(self._record(created))
        return WriteOutcome(status=OutcomeStatus.OK, sessions=created)

    async def edit_session(
        self, session: Session, *, override: bool = False
    ) -> WriteOutcome:
        """Persist changes to a session, moving it between buckets if needed."""
        _validate_client(session.client_id)
        _validate_interval(session.start_instant, session.end_instant)
        start = to_stored_instant(session.start_instant)
        candidate = replace(
            session,
            start_instant=start,
            end_instant=to_stored_instant(session.end_instant),
            date_key=date_key(to_local_date(start, self.timezone)),
        )

        if not override:
            conflicts = find_conflicts(
                candidate.start_instant,
                candidate.end_instant,
                self.cache.bucket(candidate.date_key),
                exclude_id=candidate.id,
            )
            if conflicts:
                return WriteOutcome(
                    status=OutcomeStatus.CONFLICT,
                    conflict=ConflictResult(candidate=candidate, conflicts=conflicts),
                )

        try:
            updated = await self.repository.update(candidate)
        except RepositoryError as exc:
            _logger.warning("Session update failed: id=%s: %s", candidate.id, exc)
            return WriteOutcome(status=OutcomeStatus.FAILED, error=exc)
        if updated is None:
            return WriteOutcome(status=OutcomeStatus.NOT_FOUND)

        previous = self.cache.get(updated.id)
        affected = self._record([updated])
        if previous is not None:
            old_month = month_key_for_date_key(previous.date_key)
            self.cache.invalidate(old_month)
            affected.add(old_month)
        _logger.info("Session updated: id=%s date=%s", updated.id, updated.date_key)
        await self._apply_writes(affected)
        return WriteOutcome(status=OutcomeStatus.OK, sessions=[updated])

    async def delete_session(self, session_id: str) -> WriteOutcome:
        """Delete a session from the repository and its day bucket."""
        try:
            deleted = await self.repository.delete(session_id)
        except RepositoryError as exc:
            _logger.warning("Session delete failed: id=%s: %s", session_id, exc)
            return WriteOutcome(status=OutcomeStatus.FAILED, error=exc)

        previous = self.cache.remove(session_id)
        affected: set[str] = set()
        if previous is not None:
            affected.add(month_key_for_date_key(previous.date_key))
            self.cache.invalidate(month_key_for_date_key(previous.date_key))
        if not deleted:
            return WriteOutcome(status=OutcomeStatus.NOT_FOUND)
        _logger.info("Session deleted: id=%s", session_id)
        await self._apply_writes(affected)
        return WriteOutcome(
            status=OutcomeStatus.OK, sessions=[previous] if previous else []
        )

    async def _load_visible(self) -> None:
        if self.visible_month is None:
            return
        self._load_generation += 1
        generation = self._load_generation
        year, month = self.visible_month
        results = await asyncio.gather(
            self._fetch_month(year, month, self.padding_weeks),
            self._fetch_month(*shift_month(year, month, -1), 0),
            self._fetch_month(*shift_month(year, month, 1), 0),
            return_exceptions=True,
        )
        if generation != self._load_generation:
            return
        for result in results:
            if isinstance(result, BaseException) and not isinstance(
                result, RepositoryError
            ):
                self._set_state(ControllerState.ERROR)
                raise result
        failures = [r for r in results if isinstance(r, RepositoryError)]
        if failures:
            self.last_error = failures[0]
            _logger.error(
                "Session fetch failed: month=%s error=%s",
                month_key(year, month),
                failures[0],
            )
            self._set_state(ControllerState.ERROR)
            return
        self.last_error = None
        self._set_state(ControllerState.READY)

    async def _fetch_month(self, year: int, month: int, padding_weeks: int) -> None:
        key = month_key(year, month)
        if self.cache.has(key):
            return
        window = month_range(year, month, padding_weeks, self.timezone)
        since = self.cache.snapshot()
        try:
            sessions = await self.repository.load_sessions(
                window.start, window.end, self.filters
            )
        except RepositoryError:
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to load sessions: {exc}") from exc
        normalized = [self._normalize(session) for session in sessions]
        self.cache.apply_fetch(key, window.start, window.end, normalized, since)

    def _normalize(self, session: Session) -> Session:
        start = to_stored_instant(session.start_instant)
        return replace(
            session,
            start_instant=start,
            end_instant=to_stored_instant(session.end_instant),
            date_key=date_key(to_local_date(start, self.timezone)),
        )

    def _conflicts_for(self, drafts: list[SessionDraft]) -> list[Session]:
        conflicts: dict[str, Session] = {}
        for draft in drafts:
            for session in find_conflicts(
                draft.start_instant,
                draft.end_instant,
                self.cache.bucket(draft.date_key),
            ):
                conflicts.setdefault(session.id, session)
        return list(conflicts.values())

    def _record(self, sessions: list[Session]) -> set[str]:
        affected: set[str] = set()
        for session in sessions:
            stored = self._normalize(session)
            self.cache.put(stored)
            key = month_key_for_date_key(stored.date_key)
            self.cache.invalidate(key)
            affected.add(key)
        return affected

    async def _apply_writes(self, affected: set[str]) -> None:
        if self.visible_month is None:
            return
        if month_key(*self.visible_month) not in affected:
            return
        self._set_state(ControllerState.LOADING)
        await self._load_visible()

    def _set_state(self, state: ControllerState) -> None:
        if state is self.state:
            return
        self.state = state
        for listener in list(self._listeners):
            listener(state)


def _validate_client(client_id: str) -> None:
    if not client_id or not client_id.strip():
        raise ValidationError("Please select a client")


def _validate_interval(start: datetime, end: datetime) -> None:
    if start.tzinfo is None or end.tzinfo is None:
        raise ValidationError("Session times must be timezone-aware")
    if start >= end:
        raise ValidationError("End time must be after start time")
