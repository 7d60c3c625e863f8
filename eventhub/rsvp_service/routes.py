"""
RSVP routes, mounted under the events prefix.
"""

import logging
from typing import Tuple, Dict, Any

from flask import Blueprint, Response

from eventhub.auth_service.utils import (
    require_event_access,
    require_owner_or_roles,
    verify_token_from_request,
)
from eventhub.common import api_response
from eventhub.common.utils import json_body, row_to_dict, rows_to_dicts
from eventhub.database.db_connection import get_db
from eventhub.events_service import repository as events_repo
from eventhub.notifications_service import notifier
from eventhub.rsvp_service import repository as rsvp_repo

rsvp_bp = Blueprint("rsvp", __name__)


@rsvp_bp.route("/<int:event_id>/rsvp", methods=["POST"])
def rsvp(event_id: int) -> Tuple[Response, int]:
    """
    Create or update the caller's RSVP.

    Expects JSON: { "status": "attending" | "maybe" | "cancelled" }

    A second call updates the existing RSVP (one row per user and event).
    Moving to "attending" is refused when the event is already full, unless
    the caller is already counted as attending.

    Returns:
        201: RSVP created.
        200: RSVP updated.
        400: Invalid status, or the event is cancelled.
        401/403: Authentication failure or private event.
        404: Event not found.
        409: Event is full.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    data: Dict[str, Any] = json_body()
    status = data.get("status")
    if status not in rsvp_repo.VALID_RSVP_STATUSES:
        return api_response.bad_request(
            "Invalid RSVP status",
            {"field": "status", "message": f"status must be one of: {', '.join(rsvp_repo.VALID_RSVP_STATUSES)}"},
        )

    with get_db() as conn:
        with conn.cursor() as cur:
            event = events_repo.find_event(cur, event_id)
            if not event:
                return api_response.not_found("Event not found")

            err, code = require_event_access(user, event)
            if err:
                return err, code

            if event["status"] == "cancelled":
                return api_response.bad_request("Event is cancelled")

            existing = rsvp_repo.find_rsvp(cur, event_id, user["user_id"])
            already_attending = existing is not None and existing["status"] == "attending"
            if status == "attending" and not already_attending and events_repo.is_full(event):
                return api_response.conflict("Event is full")

            record, created = rsvp_repo.upsert_rsvp(cur, event_id, user["user_id"], status)
            notifier.rsvp_update(cur, event, user, status)
            conn.commit()

    logging.info(f"[RSVP] User {user['user_id']} -> event {event_id}: {status}")
    if created:
        return api_response.success(row_to_dict(record), 201, "RSVP created successfully")
    return api_response.success(row_to_dict(record), 200, "RSVP updated successfully")


@rsvp_bp.route("/<int:event_id>/rsvp", methods=["GET"])
def get_my_rsvp(event_id: int) -> Tuple[Response, int]:
    """
    The caller's own RSVP for the event.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            record = rsvp_repo.find_rsvp(cur, event_id, user["user_id"])

    if not record:
        return api_response.not_found("RSVP not found")
    return api_response.success(row_to_dict(record), 200, "RSVP retrieved successfully")


@rsvp_bp.route("/<int:event_id>/rsvp", methods=["DELETE"])
def delete_rsvp(event_id: int) -> Tuple[Response, int]:
    """
    Remove the caller's RSVP. The event's counters are recomputed.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            deleted = rsvp_repo.delete_rsvp(cur, event_id, user["user_id"])
            if not deleted:
                return api_response.not_found("RSVP not found")
            conn.commit()

    return api_response.success(row_to_dict(deleted), 200, "RSVP deleted successfully")


@rsvp_bp.route("/<int:event_id>/rsvps", methods=["GET"])
def get_rsvps(event_id: int) -> Tuple[Response, int]:
    """
    List RSVPs for an event with per-status counts.
    Restricted to the event's organizer and admins.
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

            rows = rsvp_repo.list_event_rsvps(cur, event_id)
            counts = rsvp_repo.get_event_rsvp_counts(cur, event_id)

    return api_response.success(
        {"counts": counts, "rsvps": rows_to_dicts(rows)},
        200,
        "RSVPs retrieved successfully",
    )


@rsvp_bp.route("/<int:event_id>/rsvps/<int:rsvp_id>", methods=["DELETE"])
def remove_rsvp(event_id: int, rsvp_id: int) -> Tuple[Response, int]:
    """
    Remove any RSVP on the event.

    Permission:
    - The RSVP's owner
    - OR the event's organizer
    - OR an admin
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            owner_id = rsvp_repo.get_rsvp_owner(cur, rsvp_id, event_id)
            if owner_id is None:
                return api_response.not_found("RSVP not found")

            event_owner_id = events_repo.get_event_owner(cur, event_id)
            if event_owner_id != user["user_id"]:
                err, code = require_owner_or_roles(user, owner_id, ["admin"])
                if err:
                    return err, code

            deleted = rsvp_repo.delete_rsvp_by_id(cur, rsvp_id)
            conn.commit()

    return api_response.success(row_to_dict(deleted), 200, "RSVP deleted successfully")
