"""Tests for the calendar HTTP API."""

from datetime import UTC, datetime

from fastapi.testclient import TestClient

from trainer_calendar.api.app import create_app
from tests.conftest import InMemorySessionRepository, make_session


def _client(container) -> TestClient:  # type: ignore[no-untyped-def]
    return TestClient(create_app(container))


def _create_body(**overrides: object) -> dict[str, object]:
    body: dict[str, object] = {
        "client_id": "client-1",
        "date_key": "2024-03-04",
        "start_time": "09:00",
        "end_time": "10:00",
    }
    body.update(overrides)
    return body


def test_health(container) -> None:
    with _client(container) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_month_view_lists_marked_dates(
    container, session_repository: InMemorySessionRepository
) -> None:
    session_repository.add(
        make_session(
            "a",
            datetime(2024, 3, 4, 9, tzinfo=UTC),
            datetime(2024, 3, 4, 10, tzinfo=UTC),
        )
    )

    with _client(container) as client:
        response = client.get("/calendar/months/2024/3")

    assert response.status_code == 200
    assert response.json() == {
        "month": "2024-03",
        "state": "ready",
        "today": "2024-03-01",
        "marked_dates": ["2024-03-04"],
        "error": None,
    }


def test_month_view_rejects_invalid_month(container) -> None:
    with _client(container) as client:
        response = client.get("/calendar/months/2024/13")

    assert response.status_code == 422


def test_month_view_reports_fetch_errors(
    container, session_repository: InMemorySessionRepository
) -> None:
    session_repository.fail_loads = True

    with _client(container) as client:
        response = client.get("/calendar/months/2024/3")

    assert response.status_code == 200
    assert response.json()["state"] == "error"
    assert response.json()["error"] == "storage unavailable"


def test_create_then_conflict_then_override(container) -> None:
    with _client(container) as client:
        client.get("/calendar/months/2024/3")
        created = client.post("/calendar/sessions", json=_create_body())
        conflict = client.post(
            "/calendar/sessions",
            json=_create_body(start_time="09:30", end_time="10:30"),
        )
        overridden = client.post(
            "/calendar/sessions",
            json=_create_body(start_time="09:30", end_time="10:30", override=True),
        )

    assert created.status_code == 201
    session = created.json()["sessions"][0]
    assert session["date_key"] == "2024-03-04"
    assert session["status"] == "booked"
    assert conflict.status_code == 409
    assert conflict.json()["detail"] == "This time conflicts with 1 existing session(s)"
    assert [c["id"] for c in conflict.json()["conflicts"]] == [session["id"]]
    assert overridden.status_code == 201


def test_create_weekly_series(container) -> None:
    with _client(container) as client:
        response = client.post(
            "/calendar/sessions", json=_create_body(repeat_weeks=2)
        )

    assert response.status_code == 201
    assert [s["date_key"] for s in response.json()["sessions"]] == [
        "2024-03-04",
        "2024-03-11",
        "2024-03-18",
    ]


def test_create_rejects_invalid_input(container) -> None:
    with _client(container) as client:
        reversed_times = client.post(
            "/calendar/sessions",
            json=_create_body(start_time="10:00", end_time="09:00"),
        )
        bad_time = client.post("/calendar/sessions", json=_create_body(end_time="25:00"))
        negative_repeat = client.post(
            "/calendar/sessions", json=_create_body(repeat_weeks=-1)
        )

    assert reversed_times.status_code == 422
    assert bad_time.status_code == 422
    assert negative_repeat.status_code == 422


def test_create_reports_storage_failure(
    container, session_repository: InMemorySessionRepository
) -> None:
    session_repository.fail_writes = True

    with _client(container) as client:
        response = client.post("/calendar/sessions", json=_create_body())

    assert response.status_code == 502
    assert response.json() == {"detail": "write failed", "sessions": []}


def test_edit_and_delete_session(container) -> None:
    with _client(container) as client:
        client.get("/calendar/months/2024/3")
        created = client.post("/calendar/sessions", json=_create_body())
        session_id = created.json()["sessions"][0]["id"]
        edited = client.put(
            f"/calendar/sessions/{session_id}",
            json={
                "client_id": "client-1",
                "start_instant": "2024-03-11T09:00:00+00:00",
                "end_instant": "2024-03-11T10:00:00+00:00",
                "notes": "moved",
            },
        )
        old_day = client.get("/calendar/days/2024-03-04")
        deleted = client.delete(f"/calendar/sessions/{session_id}")
        missing = client.delete(f"/calendar/sessions/{session_id}")

    assert edited.status_code == 200
    assert edited.json()["sessions"][0]["date_key"] == "2024-03-11"
    assert old_day.json()["items"] == []
    assert deleted.status_code == 200
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Session not found"}


def test_day_agenda_uses_client_labels(container) -> None:
    with _client(container) as client:
        client.get("/calendar/months/2024/3")
        client.post(
            "/calendar/sessions", json=_create_body(client_id="client-2")
        )
        response = client.get("/calendar/days/2024-03-04")
        malformed = client.get("/calendar/days/2024-3-4")

    assert response.status_code == 200
    item = response.json()["items"][0]
    assert item["client_label"] == "Sam Lee"
    assert item["time_range"] == "9:00 AM - 10:00 AM"
    assert malformed.status_code == 422


def test_suggested_slot_shape(container) -> None:
    with _client(container) as client:
        response = client.get("/calendar/suggested-slot")

    body = response.json()
    assert response.status_code == 200
    assert set(body) == {"start", "end", "start_time", "end_time"}
    assert body["start_time"][-2:] in {"00", "30"}


def test_refresh_reloads_visible_month(
    container, session_repository: InMemorySessionRepository
) -> None:
    with _client(container) as client:
        client.get("/calendar/months/2024/3")
        calls = len(session_repository.load_calls)
        response = client.post("/calendar/refresh")

    assert response.status_code == 200
    assert response.json()["month"] == "2024-03"
    assert len(session_repository.load_calls) == calls + 1


def test_api_token_is_enforced(container) -> None:
    container.settings = container.settings.model_copy(update={"api_token": "secret"})

    with _client(container) as client:
        denied = client.get("/calendar/suggested-slot")
        allowed = client.get(
            "/calendar/suggested-slot", headers={"X-Api-Token": "secret"}
        )
        health = client.get("/health")

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert health.status_code == 200


def test_create_in_the_past_requires_allow_past(container) -> None:
    past_day = _create_body(date_key="2024-02-20")

    with _client(container) as client:
        warned = client.post("/calendar/sessions", json=past_day)
        confirmed = client.post(
            "/calendar/sessions", json={**past_day, "allow_past": True}
        )

    assert warned.status_code == 409
    assert warned.json() == {"detail": "This session is in the past"}
    assert confirmed.status_code == 201
