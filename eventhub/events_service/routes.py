"""
Events service routes: list, read, create, update and delete events.
RSVPs and comments live in their own blueprints under the same prefix.
"""

import logging
from typing import Tuple, Dict, Any, List, Optional

from flask import Blueprint, request, Response

from eventhub.auth_service.utils import (
    get_optional_user,
    require_event_access,
    require_owner_or_roles,
    verify_token_from_request,
)
from eventhub.common import api_response
from eventhub.common.utils import json_body, parse_bool, parse_dt, parse_pagination, page_count
from eventhub.database.db_connection import get_db
from eventhub.events_service import repository as events_repo
from eventhub.notifications_service import notifier

events_bp = Blueprint("events", __name__)

# --- CONSTANTS FOR VALIDATION ---
TITLE_MAX_LENGTH = 200
LOCATION_MAX_LENGTH = 255
VALID_VISIBILITY = ['public', 'private']
# Statuses a caller may set; the rest are derived from the time window
SETTABLE_STATUSES = ['upcoming', 'cancelled']
REQUIRED_FIELDS = ["title", "description", "start_at", "end_at", "location", "capacity"]
EVENT_MANAGER_ROLES = ["organizer", "admin"]


def _parse_tags(value: Any) -> Optional[List[str]]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
        return None
    # Strip, drop empties, keep first occurrence order
    return list(dict.fromkeys(t.strip().lower() for t in value if t.strip()))


def validate_event_payload(data: Dict[str, Any], partial: bool = False) -> Tuple[Dict[str, Any], List[Dict[str, str]]]:
    """
    Validate and normalise an event body.

    Args:
        data (dict): Raw JSON body.
        partial (bool): True for updates, where only present keys are checked.

    Returns:
        tuple: (clean fields, list of {"field", "message"} errors)
    """
    fields: Dict[str, Any] = {}
    errors: List[Dict[str, str]] = []

    def fail(field: str, message: str) -> None:
        errors.append({"field": field, "message": message})

    if not partial:
        for key in REQUIRED_FIELDS:
            if data.get(key) in (None, ""):
                fail(key, f"{key} is required")
        if errors:
            return fields, errors

    if "title" in data:
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            fail("title", "Title cannot be empty")
        elif len(title.strip()) > TITLE_MAX_LENGTH:
            fail("title", f"Title must be {TITLE_MAX_LENGTH} characters or less.")
        else:
            fields["title"] = title.strip()

    if "description" in data:
        description = data.get("description")
        if not isinstance(description, str) or not description.strip():
            fail("description", "Description cannot be empty")
        else:
            fields["description"] = description

    # --- DATETIME VALIDATION ---
    for key in ("start_at", "end_at"):
        if key in data:
            parsed = parse_dt(data.get(key))
            if not parsed:
                fail(key, f"Invalid {key} format. Use ISO-8601.")
            else:
                fields[key] = parsed

    if "location" in data:
        location = data.get("location")
        if not isinstance(location, str) or not location.strip():
            fail("location", "Location cannot be empty")
        elif len(location.strip()) > LOCATION_MAX_LENGTH:
            fail("location", f"Location must be {LOCATION_MAX_LENGTH} characters or less.")
        else:
            fields["location"] = location.strip()

    if "capacity" in data:
        capacity = data.get("capacity")
        # bool is an int subclass; reject it explicitly
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            fail("capacity", "capacity must be a positive integer")
        else:
            fields["capacity"] = capacity

    if "is_online" in data:
        is_online = parse_bool(data.get("is_online"))
        if is_online is None:
            fail("is_online", "is_online must be a boolean")
        else:
            fields["is_online"] = is_online

    for key in ("online_url", "cover_image"):
        if key in data:
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                fail(key, f"{key} must be a string")
            else:
                fields[key] = value or None

    # --- VISIBILITY ---
    if "visibility" in data:
        if data.get("visibility") not in VALID_VISIBILITY:
            fail("visibility", f"visibility must be one of: {', '.join(VALID_VISIBILITY)}")
        else:
            fields["is_private"] = data["visibility"] == "private"
    elif "is_private" in data:
        is_private = parse_bool(data.get("is_private"))
        if is_private is None:
            fail("is_private", "is_private must be a boolean")
        else:
            fields["is_private"] = is_private

    if "tags" in data:
        tags = _parse_tags(data.get("tags"))
        if tags is None:
            fail("tags", "tags must be a list of strings")
        else:
            fields["tags"] = tags

    if partial and "status" in data:
        if data.get("status") not in SETTABLE_STATUSES:
            fail("status", f"status must be one of: {', '.join(SETTABLE_STATUSES)}")
        else:
            fields["status"] = data["status"]

    if not partial and "start_at" in fields and "end_at" in fields:
        if fields["start_at"] > fields["end_at"]:
            fail("start_at", "start_at must not be after end_at")

    return fields, errors


@events_bp.route("", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    Search events.

    Query parameters:
    - q: text match on title, description and location
    - tags: comma-separated or repeated, matches any
    - from / to: bounds on start_at (ISO-8601)
    - sort: start_at | title | created_at
    - page, limit

    Anonymous callers only see public events; authenticated callers also see
    their own private events.
    """
    viewer = get_optional_user()

    start_from = parse_dt(request.args.get("from")) if request.args.get("from") else None
    start_to = parse_dt(request.args.get("to")) if request.args.get("to") else None
    if (request.args.get("from") and not start_from) or (request.args.get("to") and not start_to):
        return api_response.bad_request("Invalid date filter. Use ISO-8601.")

    tags: List[str] = []
    for raw in request.args.getlist("tags"):
        tags.extend(_parse_tags(raw) or [])

    page, limit, offset = parse_pagination(request.args)

    with get_db() as conn:
        with conn.cursor() as cur:
            rows, total = events_repo.search_events(
                cur,
                viewer=viewer,
                q=(request.args.get("q") or "").strip() or None,
                tags=tags,
                start_from=start_from,
                start_to=start_to,
                sort=request.args.get("sort", "start_at"),
                limit=limit,
                offset=offset,
            )

    data = {
        "events": [events_repo.event_to_dict(r) for r in rows],
        "pagination": {
            "total": total,
            "page": page,
            "pages": page_count(total, limit),
            "limit": limit,
        },
    }
    return api_response.success(data, 200, "Events retrieved successfully")


@events_bp.route("/<int:event_id>", methods=["GET"])
def get_event(event_id: int) -> Tuple[Response, int]:
    """
    Get a single event by ID.

    Returns:
        200: Event object (with computed status and is_full).
        401: Private event, anonymous caller.
        403: Private event, caller is neither organizer nor admin.
        404: Event not found.
    """
    viewer = get_optional_user()

    with get_db() as conn:
        with conn.cursor() as cur:
            event = events_repo.find_event(cur, event_id)

    if not event:
        return api_response.not_found("Event not found")

    err, code = require_event_access(viewer, event)
    if err:
        return err, code

    return api_response.success(events_repo.event_to_dict(event), 200, "Event retrieved successfully")


@events_bp.route("", methods=["POST"])
def create_event() -> Tuple[Response, int]:
    """
    Create an event. Organizers and admins only.

    Returns:
        201: The created event.
        400: Validation error.
        401/403: Authentication or role failure.
    """
    user, err, code = verify_token_from_request(required_roles=EVENT_MANAGER_ROLES)
    if err:
        return err, code

    data: Dict[str, Any] = json_body()
    fields, errors = validate_event_payload(data)
    if errors:
        return api_response.validation_error(errors)

    with get_db() as conn:
        with conn.cursor() as cur:
            event = events_repo.insert_event(cur, user["user_id"], fields)
            conn.commit()

    logging.info(f"[Events] User {user['user_id']} created event {event['event_id']}")
    return api_response.success(events_repo.event_to_dict(event), 201, "Event created successfully")


@events_bp.route("/<int:event_id>", methods=["PUT"])
def update_event(event_id: int) -> Tuple[Response, int]:
    """
    Update an event.

    Permission:
    - The event's organizer
    - OR an admin

    Attendees (attending/maybe) are notified; setting status to "cancelled"
    sends a cancellation instead.

    Returns:
        200: The updated event.
        400: Validation error.
        403: Forbidden.
        404: Event not found.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    data: Dict[str, Any] = json_body()
    if not data:
        return api_response.bad_request("No update data provided")

    with get_db() as conn:
        with conn.cursor() as cur:
            owner_id = events_repo.get_event_owner(cur, event_id)
            if owner_id is None:
                return api_response.not_found("Event not found")

            # --- PERMISSION CHECKS ---
            err, code = require_owner_or_roles(user, owner_id, ["admin"])
            if err:
                return err, code

            fields, errors = validate_event_payload(data, partial=True)
            if errors:
                return api_response.validation_error(errors)
            if not fields:
                return api_response.bad_request("No valid fields to update")

            current = events_repo.find_event(cur, event_id)

            # Check final start/end times
            final_start = fields.get("start_at", current["start_at"])
            final_end = fields.get("end_at", current["end_at"])
            if final_start > final_end:
                return api_response.validation_error(
                    [{"field": "start_at", "message": "start_at must not be after end_at"}]
                )

            event = events_repo.update_event(cur, event_id, current, fields)

            if event["status"] == "cancelled" and current["status"] != "cancelled":
                notifier.event_cancelled(cur, event, user["user_id"])
            else:
                notifier.event_updated(cur, event, user["user_id"])

            conn.commit()

    return api_response.success(events_repo.event_to_dict(event), 200, "Event updated successfully")


@events_bp.route("/<int:event_id>", methods=["DELETE"])
def delete_event(event_id: int) -> Tuple[Response, int]:
    """
    Delete an event if the caller is its organizer or an admin.
    Attendees are told the event was cancelled.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            owner_id = events_repo.get_event_owner(cur, event_id)
            if owner_id is None:
                return api_response.not_found("Event not found")

            err, code = require_owner_or_roles(user, owner_id, ["admin"])
            if err:
                return err, code

            event = events_repo.find_event(cur, event_id)
            notifier.event_cancelled(cur, event, user["user_id"])

            if not events_repo.delete_event(cur, event_id):
                conn.rollback()
                return api_response.not_found("Event not found or already deleted")
            conn.commit()

    logging.info(f"[Events] User {user['user_id']} deleted event {event_id}")
    return api_response.success(events_repo.event_to_dict(event), 200, "Event deleted successfully")
