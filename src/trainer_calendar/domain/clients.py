"""Domain models for the externally owned client roster."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ClientRecord:
    """The subset of a client record the calendar reads."""

    id: str
    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @property
    def label(self) -> str:
        """Return the name shown next to a session."""
        if self.display_name:
            return self.display_name
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or "Unnamed Client"
