"""ASGI entrypoint, e.g. ``uvicorn trainer_calendar.api.asgi:app``."""

from trainer_calendar.api.app import create_app
from trainer_calendar.config import Settings
from trainer_calendar.containers import build_container

settings = Settings()
app = create_app(build_container(settings))
