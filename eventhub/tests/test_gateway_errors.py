from unittest.mock import MagicMock

import psycopg2.errors

from eventhub.common.api_response import NotFound
from eventhub.gateway import server

from conftest import ADMIN


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["success"] is True


def test_unknown_route_envelope(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.get_json() == {"success": False, "message": "Invalid route"}


def test_api_error_raised_in_handler(client, mock_db, mocker):
    mocker.patch(
        "eventhub.events_service.repository.find_event",
        side_effect=NotFound("Event not found"),
    )

    response = client.get("/api/events/10")

    assert response.status_code == 404
    assert response.get_json()["message"] == "Event not found"


def test_unique_violation_maps_to_conflict(client, auth_headers, mocker):
    mocker.patch("eventhub.users_service.repository.find_user_by_id", return_value=dict(ADMIN))
    mocker.patch("eventhub.users_service.repository.email_exists", return_value=False)
    mocker.patch(
        "eventhub.users_service.repository.update_user",
        side_effect=psycopg2.errors.UniqueViolation(),
    )
    mocker.patch("eventhub.gateway.server.unique_violation_message", return_value="Email already exists")

    response = client.put("/api/users/3", json={"email": "taken@example.com"}, headers=auth_headers(ADMIN))

    assert response.status_code == 409
    assert response.get_json()["message"] == "Email already exists"


def test_unique_violation_message_from_constraint():
    exc = MagicMock(spec=["diag"])
    exc.diag.constraint_name = "users_email_key"
    assert server.unique_violation_message(exc) == "Email already exists"

    exc.diag.constraint_name = "rsvps_event_user_key"
    assert server.unique_violation_message(exc) == "RSVP already exists"


def test_unexpected_error_is_500(client, mock_db, mocker):
    mocker.patch("eventhub.events_service.repository.find_event", side_effect=RuntimeError("boom"))

    response = client.get("/api/events/10")

    assert response.status_code == 500
    assert response.get_json()["success"] is False


def test_unexpected_error_redacted_in_production(client, mock_db, mocker):
    mocker.patch("eventhub.gateway.server.APP_ENV", "production")
    mocker.patch("eventhub.events_service.repository.find_event", side_effect=RuntimeError("secret detail"))

    response = client.get("/api/events/10")

    assert response.status_code == 500
    assert response.get_json()["message"] == "Internal Server Error"
