import pytest
from datetime import datetime, timedelta, timezone

from conftest import ADMIN, ATTENDEE, ORGANIZER, OTHER

VALID_EVENT = {
    "title": "New Event",
    "description": "Description",
    "start_at": "2030-01-01T10:00:00Z",
    "end_at": "2030-01-01T12:00:00Z",
    "location": "Main Hall",
    "capacity": 100,
    "tags": ["Python", "meetup", "python"],
}


def test_list_events_anonymous(client, mock_db, mocker, make_event):
    search = mocker.patch(
        "eventhub.events_service.repository.search_events",
        return_value=([make_event()], 1),
    )

    response = client.get("/api/events?q=python&tags=python,web&page=1&limit=5&sort=title")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert len(data["events"]) == 1
    assert data["events"][0]["title"] == "Python Meetup"
    assert data["events"][0]["is_full"] is False
    assert data["pagination"] == {"total": 1, "page": 1, "pages": 1, "limit": 5}

    kwargs = search.call_args.kwargs
    assert kwargs["viewer"] is None
    assert kwargs["q"] == "python"
    assert kwargs["tags"] == ["python", "web"]
    assert kwargs["sort"] == "title"
    assert kwargs["limit"] == 5
    assert kwargs["offset"] == 0


def test_list_events_invalid_date_filter(client, mock_db):
    response = client.get("/api/events?from=yesterday")
    assert response.status_code == 400


def test_get_event_detail(client, mock_db, mocker, make_event):
    mocker.patch("eventhub.events_service.repository.find_event", return_value=make_event())

    response = client.get("/api/events/10")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["title"] == "Python Meetup"
    assert data["status"] == "upcoming"


def test_get_event_not_found(client, mock_db, mocker):
    mocker.patch("eventhub.events_service.repository.find_event", return_value=None)

    response = client.get("/api/events/999")

    assert response.status_code == 404
    assert response.get_json()["success"] is False


def test_get_private_event_visibility(client, auth_headers, mocker, make_event):
    mocker.patch("eventhub.events_service.repository.find_event", return_value=make_event(is_private=True))

    assert client.get("/api/events/10").status_code == 401
    assert client.get("/api/events/10", headers=auth_headers(OTHER)).status_code == 403
    assert client.get("/api/events/10", headers=auth_headers(ORGANIZER)).status_code == 200
    assert client.get("/api/events/10", headers=auth_headers(ADMIN)).status_code == 200


def test_get_event_reports_full(client, mock_db, mocker, make_event):
    mocker.patch(
        "eventhub.events_service.repository.find_event",
        return_value=make_event(capacity=2, attendees_count=2),
    )

    response = client.get("/api/events/10")

    assert response.get_json()["data"]["is_full"] is True


def test_create_event_success(client, auth_headers, mocker, make_event):
    insert = mocker.patch("eventhub.events_service.repository.insert_event", return_value=make_event(event_id=11))

    response = client.post("/api/events", json=VALID_EVENT, headers=auth_headers(ORGANIZER))

    assert response.status_code == 201
    assert response.get_json()["data"]["event_id"] == 11

    organizer_id, fields = insert.call_args.args[1:]
    assert organizer_id == ORGANIZER["user_id"]
    assert fields["tags"] == ["python", "meetup"]
    assert fields["start_at"] == datetime(2030, 1, 1, 10, tzinfo=timezone.utc)


def test_create_event_as_attendee_forbidden(client, auth_headers, mocker):
    insert = mocker.patch("eventhub.events_service.repository.insert_event")

    response = client.post("/api/events", json=VALID_EVENT, headers=auth_headers(ATTENDEE))

    assert response.status_code == 403
    insert.assert_not_called()


def test_create_event_requires_token(client):
    response = client.post("/api/events", json=VALID_EVENT)
    assert response.status_code == 401


def test_create_event_missing_fields(client, auth_headers):
    response = client.post("/api/events", json={"title": "Only a title"}, headers=auth_headers(ORGANIZER))

    assert response.status_code == 400
    body = response.get_json()
    assert body["message"] == "Validation Error"
    fields = {e["field"] for e in body["errors"]}
    assert {"description", "start_at", "end_at", "location", "capacity"} <= fields


@pytest.mark.parametrize("body", [[1, 2], "event", 42])
def test_create_event_body_not_an_object(client, auth_headers, body):
    response = client.post("/api/events", json=body, headers=auth_headers(ORGANIZER))

    assert response.status_code == 400
    assert response.get_json()["success"] is False
    assert response.get_json()["message"] == "Request body must be a JSON object"


def test_create_event_without_body(client, auth_headers):
    response = client.post("/api/events", headers=auth_headers(ORGANIZER))

    assert response.status_code == 400
    assert response.get_json()["message"] == "Validation Error"


def test_create_event_start_after_end(client, auth_headers):
    payload = dict(VALID_EVENT, start_at="2030-01-02T10:00:00Z")

    response = client.post("/api/events", json=payload, headers=auth_headers(ORGANIZER))

    assert response.status_code == 400


@pytest.mark.parametrize("capacity", [0, -5, "ten", True])
def test_create_event_invalid_capacity(client, auth_headers, capacity):
    payload = dict(VALID_EVENT, capacity=capacity)

    response = client.post("/api/events", json=payload, headers=auth_headers(ORGANIZER))

    assert response.status_code == 400


def test_update_event_by_owner(client, auth_headers, mocker, make_event):
    current = make_event()
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=ORGANIZER["user_id"])
    mocker.patch("eventhub.events_service.repository.find_event", return_value=current)
    update = mocker.patch(
        "eventhub.events_service.repository.update_event",
        return_value=make_event(title="Renamed"),
    )
    updated = mocker.patch("eventhub.notifications_service.notifier.event_updated")

    response = client.put("/api/events/10", json={"title": "Renamed"}, headers=auth_headers(ORGANIZER))

    assert response.status_code == 200
    assert response.get_json()["data"]["title"] == "Renamed"
    assert update.call_args.args[3] == {"title": "Renamed"}
    updated.assert_called_once()


def test_update_event_by_non_owner_forbidden(client, auth_headers, mocker):
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=ORGANIZER["user_id"])
    update = mocker.patch("eventhub.events_service.repository.update_event")

    response = client.put("/api/events/10", json={"title": "Hijacked"}, headers=auth_headers(OTHER))

    assert response.status_code == 403
    update.assert_not_called()


def test_update_event_by_admin(client, auth_headers, mocker, make_event):
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=ORGANIZER["user_id"])
    mocker.patch("eventhub.events_service.repository.find_event", return_value=make_event())
    mocker.patch("eventhub.events_service.repository.update_event", return_value=make_event(location="Room 2"))
    mocker.patch("eventhub.notifications_service.notifier.event_updated")

    response = client.put("/api/events/10", json={"location": "Room 2"}, headers=auth_headers(ADMIN))

    assert response.status_code == 200


def test_update_event_not_found(client, auth_headers, mocker):
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=None)

    response = client.put("/api/events/10", json={"title": "x"}, headers=auth_headers(ADMIN))

    assert response.status_code == 404


def test_update_event_window_checked_against_stored_values(client, auth_headers, mocker, make_event):
    current = make_event()
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=ORGANIZER["user_id"])
    mocker.patch("eventhub.events_service.repository.find_event", return_value=current)
    update = mocker.patch("eventhub.events_service.repository.update_event")

    new_start = (current["end_at"] + timedelta(days=1)).isoformat()
    response = client.put("/api/events/10", json={"start_at": new_start}, headers=auth_headers(ORGANIZER))

    assert response.status_code == 400
    update.assert_not_called()


def test_cancel_event_notifies_cancellation(client, auth_headers, mocker, make_event):
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=ORGANIZER["user_id"])
    mocker.patch("eventhub.events_service.repository.find_event", return_value=make_event())
    mocker.patch(
        "eventhub.events_service.repository.update_event",
        return_value=make_event(status="cancelled"),
    )
    cancelled = mocker.patch("eventhub.notifications_service.notifier.event_cancelled")
    updated = mocker.patch("eventhub.notifications_service.notifier.event_updated")

    response = client.put("/api/events/10", json={"status": "cancelled"}, headers=auth_headers(ORGANIZER))

    assert response.status_code == 200
    assert response.get_json()["data"]["status"] == "cancelled"
    cancelled.assert_called_once()
    updated.assert_not_called()


def test_update_rejects_derived_status(client, auth_headers, mocker):
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=ORGANIZER["user_id"])

    response = client.put("/api/events/10", json={"status": "completed"}, headers=auth_headers(ORGANIZER))

    assert response.status_code == 400


def test_delete_event_by_owner(client, auth_headers, mock_db, mocker, make_event):
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=ORGANIZER["user_id"])
    mocker.patch("eventhub.events_service.repository.find_event", return_value=make_event())
    mocker.patch("eventhub.events_service.repository.delete_event", return_value=True)
    cancelled = mocker.patch("eventhub.notifications_service.notifier.event_cancelled")

    response = client.delete("/api/events/10", headers=auth_headers(ORGANIZER))

    assert response.status_code == 200
    cancelled.assert_called_once()
    mock_conn, _ = mock_db
    mock_conn.commit.assert_called()


def test_delete_event_by_attendee_forbidden(client, auth_headers, mocker):
    mocker.patch("eventhub.events_service.repository.get_event_owner", return_value=ORGANIZER["user_id"])
    delete = mocker.patch("eventhub.events_service.repository.delete_event")

    response = client.delete("/api/events/10", headers=auth_headers(ATTENDEE))

    assert response.status_code == 403
    delete.assert_not_called()
