"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, tzinfo

import pytest

from trainer_calendar.config import Settings
from trainer_calendar.containers import AppContainer, build_controller
from trainer_calendar.domain.clients import ClientRecord
from trainer_calendar.domain.errors import RepositoryError
from trainer_calendar.domain.sessions import (
    Session,
    SessionDraft,
    SessionFilters,
    SessionStatus,
)
from trainer_calendar.services.dates import date_key, to_local_date
from trainer_calendar.services.scheduling import ClientDirectory, SessionRepository


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository for tests."""

    sessions: dict[str, Session] = field(default_factory=dict)
    load_calls: list[tuple[datetime, datetime, SessionFilters | None]] = field(
        default_factory=list
    )
    created_batches: list[list[SessionDraft]] = field(default_factory=list)
    fail_loads: bool = False
    fail_writes: bool = False
    fail_batch_after: int | None = None
    load_exception: Exception | None = None
    hold_loads: bool = False
    held: list[asyncio.Event] = field(default_factory=list)
    _next_id: int = 0

    def add(self, session: Session) -> Session:
        self.sessions[session.id] = session
        return session

    async def load_sessions(
        self,
        start: datetime,
        end: datetime,
        filters: SessionFilters | None = None,
    ) -> list[Session]:
        self.load_calls.append((start, end, filters))
        if self.fail_loads:
            raise RepositoryError("storage unavailable")
        if self.load_exception is not None:
            raise self.load_exception
        snapshot = [
            session
            for session in self.sessions.values()
            if start <= session.start_instant <= end
            and (filters is None or filters.matches(session))
        ]
        if self.hold_loads:
            released = asyncio.Event()
            self.held.append(released)
            await released.wait()
            if self.fail_loads:
                raise RepositoryError("storage unavailable")
        return snapshot

    def release_loads(self) -> None:
        """Let every held load return the snapshot it took."""
        for released in self.held:
            released.set()
        self.held.clear()

    async def create(self, draft: SessionDraft) -> Session:
        if self.fail_writes:
            raise RepositoryError("write failed")
        return self._insert(draft)

    async def create_many(self, drafts: list[SessionDraft]) -> list[Session]:
        self.created_batches.append(list(drafts))
        if self.fail_writes:
            raise RepositoryError("write failed")
        created: list[Session] = []
        for index, draft in enumerate(drafts):
            if self.fail_batch_after is not None and index >= self.fail_batch_after:
                raise RepositoryError("batch interrupted", persisted=created)
            created.append(self._insert(draft))
        return created

    async def update(self, session: Session) -> Session | None:
        if self.fail_writes:
            raise RepositoryError("write failed")
        if session.id not in self.sessions:
            return None
        self.sessions[session.id] = session
        return session

    async def delete(self, session_id: str) -> bool:
        if self.fail_writes:
            raise RepositoryError("write failed")
        return self.sessions.pop(session_id, None) is not None

    def _insert(self, draft: SessionDraft) -> Session:
        self._next_id += 1
        session = Session(
            id=f"session-{self._next_id}",
            client_id=draft.client_id,
            date_key=draft.date_key,
            start_instant=draft.start_instant,
            end_instant=draft.end_instant,
            status=draft.status,
            location=draft.location,
            notes=draft.notes,
            recurring=draft.recurring,
        )
        self.sessions[session.id] = session
        return session


@dataclass
class InMemoryClientDirectory(ClientDirectory):
    """In-memory client roster for tests."""

    clients: list[ClientRecord] = field(default_factory=list)
    fail: bool = False

    async def list_clients(self) -> list[ClientRecord]:
        if self.fail:
            raise RepositoryError("roster unavailable")
        return list(self.clients)


NOW = datetime(2024, 3, 1, tzinfo=UTC)


def fixed_clock() -> datetime:
    return NOW


def make_session(
    session_id: str,
    start: datetime,
    end: datetime,
    tz: tzinfo = UTC,
    client_id: str = "client-1",
    status: SessionStatus = SessionStatus.BOOKED,
) -> Session:
    """Build a stored session with its local date key."""
    return Session(
        id=session_id,
        client_id=client_id,
        date_key=date_key(to_local_date(start, tz)),
        start_instant=start.astimezone(UTC),
        end_instant=end.astimezone(UTC),
        status=status,
    )


def moved(session: Session, start: datetime, end: datetime) -> Session:
    """Return a copy of a session at a new time."""
    return replace(session, start_instant=start, end_instant=end)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        timezone="UTC",
    )


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def client_directory() -> InMemoryClientDirectory:
    return InMemoryClientDirectory(
        clients=[
            ClientRecord(id="client-1", display_name="Dana"),
            ClientRecord(id="client-2", first_name="Sam", last_name="Lee"),
        ]
    )


@pytest.fixture
def container(
    settings: Settings,
    session_repository: InMemorySessionRepository,
    client_directory: InMemoryClientDirectory,
) -> AppContainer:
    controller = build_controller(settings, session_repository, client_directory, UTC)
    controller.clock = fixed_clock
    return AppContainer(
        settings=settings,
        timezone=UTC,
        session_repository=session_repository,
        client_directory=client_directory,
        scheduling_controller=controller,
    )
