"""Supabase-backed session repository."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from supabase import Client

from trainer_calendar.domain.errors import RepositoryError
from trainer_calendar.domain.sessions import (
    Session,
    SessionDraft,
    SessionFilters,
    SessionStatus,
)
from trainer_calendar.services.scheduling import SessionRepository

_COLUMNS = (
    "id, client_id, date_key, start_instant, end_instant, status, location, "
    "notes, recurring"
)

T = TypeVar("T")


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for calendar sessions.

    The supabase client is synchronous, so each query runs in a worker thread.
    """

    client: Client
    table_name: str = "sessions"

    async def load_sessions(
        self,
        start: datetime,
        end: datetime,
        filters: SessionFilters | None = None,
    ) -> list[Session]:
        """Return sessions starting within [start, end]."""

        def query() -> list[Session]:
            builder = (
                self.client.table(self.table_name)
                .select(_COLUMNS)
                .gte("start_instant", start.isoformat())
                .lte("start_instant", end.isoformat())
            )
            if filters and filters.statuses:
                builder = builder.in_(
                    "status", sorted(str(status) for status in filters.statuses)
                )
            if filters and filters.client_id:
                builder = builder.eq("client_id", filters.client_id)
            response = builder.order("start_instant", desc=False).execute()
            return [_parse_session(row) for row in response.data or []]

        return await _run("load sessions", query)

    async def create(self, draft: SessionDraft) -> Session:
        """Insert one session row and return it."""

        def query() -> Session:
            response = (
                self.client.table(self.table_name)
                .insert(_draft_payload(draft))
                .execute()
            )
            if not response.data:
                raise RepositoryError("Failed to create session")
            return _parse_session(response.data[0])

        return await _run("create session", query)

    async def create_many(self, drafts: list[SessionDraft]) -> list[Session]:
        """Insert a batch of session rows in a single request."""
        if not drafts:
            return []

        def query() -> list[Session]:
            response = (
                self.client.table(self.table_name)
                .insert([_draft_payload(draft) for draft in drafts])
                .execute()
            )
            rows = response.data or []
            created = [_parse_session(row) for row in rows]
            if len(created) != len(drafts):
                raise RepositoryError(
                    f"Created {len(created)} of {len(drafts)} sessions",
                    persisted=created,
                )
            return created

        return await _run("create sessions", query)

    async def update(self, session: Session) -> Session | None:
        """Replace a session row, returning None when no row matched."""

        def query() -> Session | None:
            response = (
                self.client.table(self.table_name)
                .update(_draft_payload(session.to_draft()))
                .eq("id", session.id)
                .execute()
            )
            if not response.data:
                return None
            return _parse_session(response.data[0])

        return await _run("update session", query)

    async def delete(self, session_id: str) -> bool:
        """Delete a session row and report whether it existed."""

        def query() -> bool:
            response = (
                self.client.table(self.table_name)
                .delete()
                .eq("id", session_id)
                .execute()
            )
            return bool(response.data)

        return await _run("delete session", query)


async def _run(action: str, query: Callable[[], T]) -> T:
    """Run a blocking query off the event loop and type its failures."""
    try:
        return await asyncio.to_thread(query)
    except RepositoryError:
        raise
    except Exception as exc:
        raise RepositoryError(f"Failed to {action}: {exc}") from exc


def _draft_payload(draft: SessionDraft) -> dict[str, object]:
    return {
        "client_id": draft.client_id,
        "date_key": draft.date_key,
        "start_instant": draft.start_instant.isoformat(),
        "end_instant": draft.end_instant.isoformat(),
        "status": str(draft.status),
        "location": draft.location,
        "notes": draft.notes,
        "recurring": draft.recurring,
    }


def _parse_session(row: dict[str, object]) -> Session:
    return Session(
        id=str(row["id"]),
        client_id=str(row["client_id"]),
        date_key=str(row["date_key"]),
        start_instant=_parse_instant(row["start_instant"]),
        end_instant=_parse_instant(row["end_instant"]),
        status=SessionStatus(str(row.get("status") or SessionStatus.BOOKED)),
        location=row.get("location") or None,
        notes=row.get("notes") or None,
        recurring=bool(row.get("recurring", False)),
    )


def _parse_instant(value: object) -> datetime:
    text = str(value)
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    return datetime.fromisoformat(text)
