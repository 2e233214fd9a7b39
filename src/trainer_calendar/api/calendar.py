"""Calendar API endpoints backed by the scheduling controller."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from trainer_calendar.api.models import (
    AgendaItemPayload,
    SessionCreateRequest,
    SessionPayload,
    SessionUpdateRequest,
)
from trainer_calendar.config import parse_api_token
from trainer_calendar.domain.errors import ValidationError
from trainer_calendar.domain.sessions import Session
from trainer_calendar.services.dates import at_time_of_day, month_key
from trainer_calendar.services.scheduling import (
    ControllerState,
    OutcomeStatus,
    SessionInput,
    WriteOutcome,
)

if TYPE_CHECKING:
    from trainer_calendar.containers import AppContainer
    from trainer_calendar.services.scheduling import SchedulingController


def _get_api_token(request: Request) -> str | None:
    container: AppContainer = request.app.state.container
    return parse_api_token(container.settings.api_token)


async def require_token(
    x_api_token: str | None = Header(default=None),
    api_token: str | None = Depends(_get_api_token),
) -> None:
    """Ensure requests carry the configured API token, if one is set."""
    if api_token is not None and x_api_token != api_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


router = APIRouter(
    prefix="/calendar", tags=["calendar"], dependencies=[Depends(require_token)]
)


def _controller(request: Request) -> SchedulingController:
    container: AppContainer = request.app.state.container
    return container.scheduling_controller


@router.get("/months/{year}/{month}")
async def select_month(year: int, month: int, request: Request) -> dict[str, object]:
    """Show a month and report the loading state."""
    controller = _controller(request)
    try:
        state = await controller.select_month(year, month)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return _month_view(controller, month_key(year, month), state)


@router.post("/refresh")
async def refresh(request: Request) -> dict[str, object]:
    """Re-fetch the visible month."""
    controller = _controller(request)
    state = await controller.refresh()
    key = month_key(*controller.visible_month) if controller.visible_month else None
    return _month_view(controller, key, state)


@router.get("/days/{date_key}")
async def day_agenda(date_key: str, request: Request) -> dict[str, object]:
    """Return the agenda for a day."""
    controller = _controller(request)
    try:
        items = controller.day_agenda(date_key)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return {
        "date_key": date_key,
        "items": [
            AgendaItemPayload.from_item(item).model_dump(mode="json") for item in items
        ],
    }


@router.get("/suggested-slot")
async def suggested_slot(request: Request) -> dict[str, str]:
    """Return default start and end times for a new session."""
    start, end = _controller(request).suggested_slot()
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "start_time": start.strftime("%H:%M"),
        "end_time": end.strftime("%H:%M"),
    }


@router.post(
    "/sessions", status_code=status.HTTP_201_CREATED, response_model=None
)
async def create_session(
    body: SessionCreateRequest, request: Request
) -> dict[str, object] | JSONResponse:
    """Create a session, optionally repeating weekly."""
    controller = _controller(request)
    try:
        session_input = SessionInput(
            client_id=body.client_id,
            start=at_time_of_day(body.date_key, body.start_time, controller.timezone),
            end=at_time_of_day(body.date_key, body.end_time, controller.timezone),
            status=body.status,
            location=body.location,
            notes=body.notes,
        )
        outcome = await controller.create_session(
            session_input,
            override=body.override,
            repeat_weeks=body.repeat_weeks,
            allow_past=body.allow_past,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return _outcome_response(outcome)


@router.put("/sessions/{session_id}", response_model=None)
async def edit_session(
    session_id: str, body: SessionUpdateRequest, request: Request
) -> dict[str, object] | JSONResponse:
    """Replace a session's fields."""
    controller = _controller(request)
    session = Session(
        id=session_id,
        client_id=body.client_id,
        date_key="",
        start_instant=body.start_instant,
        end_instant=body.end_instant,
        status=body.status,
        location=body.location,
        notes=body.notes,
        recurring=body.recurring,
    )
    try:
        outcome = await controller.edit_session(session, override=body.override)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return _outcome_response(outcome)


@router.delete("/sessions/{session_id}", response_model=None)
async def delete_session(
    session_id: str, request: Request
) -> dict[str, object] | JSONResponse:
    """Delete a session."""
    outcome = await _controller(request).delete_session(session_id)
    return _outcome_response(outcome)


def _month_view(
    controller: SchedulingController, key: str | None, state: ControllerState
) -> dict[str, object]:
    return {
        "month": key,
        "state": str(state),
        "today": controller.today_key(),
        "marked_dates": sorted(controller.marked_dates()),
        "error": str(controller.last_error) if controller.last_error else None,
    }


def _outcome_response(outcome: WriteOutcome) -> dict[str, object] | JSONResponse:
    sessions = [
        SessionPayload.from_session(session).model_dump(mode="json")
        for session in outcome.sessions
    ]
    if outcome.status is OutcomeStatus.OK:
        return {"sessions": sessions}
    if outcome.status is OutcomeStatus.CONFLICT and outcome.conflict:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": (
                    f"This time conflicts with {len(outcome.conflict.conflicts)} "
                    "existing session(s)"
                ),
                "conflicts": [
                    SessionPayload.from_session(session).model_dump(mode="json")
                    for session in outcome.conflict.conflicts
                ],
            },
        )
    if outcome.status is OutcomeStatus.PAST:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": "This session is in the past"},
        )
    if outcome.status is OutcomeStatus.NOT_FOUND:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "Session not found"},
        )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(outcome.error), "sessions": sessions},
    )
