"""Dependency container wiring for the application."""

from dataclasses import dataclass
from datetime import tzinfo

from supabase import create_client

from trainer_calendar.adapters.supabase_client_directory import (
    SupabaseClientDirectory,
)
from trainer_calendar.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from trainer_calendar.config import Settings
from trainer_calendar.services.dates import resolve_timezone
from trainer_calendar.services.scheduling import (
    ClientDirectory,
    SchedulingController,
    SessionRepository,
)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    timezone: tzinfo
    session_repository: SessionRepository
    client_directory: ClientDirectory
    scheduling_controller: SchedulingController


def build_controller(
    settings: Settings,
    repository: SessionRepository,
    client_directory: ClientDirectory | None,
    timezone: tzinfo,
) -> SchedulingController:
    """Create a controller with its own cache for one calendar screen."""
    return SchedulingController(
        repository=repository,
        timezone=timezone,
        client_directory=client_directory,
        padding_weeks=settings.month_padding_weeks,
        default_session_minutes=settings.default_session_minutes,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    timezone = resolve_timezone(resolved_settings.timezone)
    session_repository = SupabaseSessionRepository(
        supabase_client, table_name=resolved_settings.sessions_table
    )
    client_directory = SupabaseClientDirectory(
        supabase_client, table_name=resolved_settings.clients_table
    )
    controller = build_controller(
        resolved_settings, session_repository, client_directory, timezone
    )
    return AppContainer(
        settings=resolved_settings,
        timezone=timezone,
        session_repository=session_repository,
        client_directory=client_directory,
        scheduling_controller=controller,
    )
