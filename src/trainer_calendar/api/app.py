"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from trainer_calendar.api.calendar import router as calendar_router
from trainer_calendar.app_logging import configure_logging
from trainer_calendar.containers import AppContainer
from trainer_calendar.domain.errors import RepositoryError


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await app.state.container.scheduling_controller.load_clients()
        except RepositoryError:
            logger.exception("Failed to load clients for agenda labels")
        yield

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(calendar_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
