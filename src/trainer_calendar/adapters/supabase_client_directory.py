"""Supabase-backed read access to the client roster."""

import asyncio
from dataclasses import dataclass

from supabase import Client

from trainer_calendar.domain.clients import ClientRecord
from trainer_calendar.domain.errors import RepositoryError
from trainer_calendar.services.scheduling import ClientDirectory


@dataclass
class SupabaseClientDirectory(ClientDirectory):
    """Lists clients from the roster table."""

    client: Client
    table_name: str = "clients"

    async def list_clients(self) -> list[ClientRecord]:
        """Return all clients with the name fields used for labels."""

        def query() -> list[ClientRecord]:
            response = (
                self.client.table(self.table_name)
                .select("id, display_name, first_name, last_name")
                .execute()
            )
            return [
                ClientRecord(
                    id=str(row["id"]),
                    display_name=row.get("display_name"),
                    first_name=row.get("first_name"),
                    last_name=row.get("last_name"),
                )
                for row in response.data or []
            ]

        try:
            return await asyncio.to_thread(query)
        except Exception as exc:
            raise RepositoryError(f"Failed to list clients: {exc}") from exc
