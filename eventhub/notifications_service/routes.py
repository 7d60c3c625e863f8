"""
Notification inbox routes for the authenticated user.
"""

from typing import Tuple, Dict, Any

from flask import Blueprint, request, Response

from eventhub.auth_service.utils import require_owner_or_roles, verify_token_from_request
from eventhub.common import api_response
from eventhub.common.utils import json_body, parse_bool, parse_pagination, row_to_dict
from eventhub.database.db_connection import get_db
from eventhub.notifications_service import repository as notifications_repo

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("", methods=["GET"])
def list_notifications() -> Tuple[Response, int]:
    """
    The caller's notifications, newest first.

    Query parameters: page, limit, unread (true to hide read ones).
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    page, limit, _ = parse_pagination(request.args, default_limit=notifications_repo.DEFAULT_PAGE_SIZE)
    unread_only = parse_bool(request.args.get("unread")) or False

    with get_db() as conn:
        with conn.cursor() as cur:
            data = notifications_repo.list_notifications(
                cur, user["user_id"], page=page, limit=limit, unread_only=unread_only
            )
            data["unread_count"] = notifications_repo.get_unread_count(cur, user["user_id"])

    return api_response.success(data, 200, "Notifications retrieved successfully")


@notifications_bp.route("/unread-count", methods=["GET"])
def unread_count() -> Tuple[Response, int]:
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            count = notifications_repo.get_unread_count(cur, user["user_id"])

    return api_response.success({"unread_count": count}, 200, "Unread count retrieved successfully")


@notifications_bp.route("/read", methods=["POST"])
def mark_read() -> Tuple[Response, int]:
    """
    Mark several notifications as read.

    Expects JSON: { "ids"?: [int, ...] }. Without ids, everything is marked.
    Ids belonging to other users are ignored.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    data: Dict[str, Any] = json_body()
    ids = data.get("ids")
    if ids is not None:
        if not isinstance(ids, list) or not all(isinstance(i, int) and not isinstance(i, bool) for i in ids):
            return api_response.bad_request("ids must be a list of integers")

    with get_db() as conn:
        with conn.cursor() as cur:
            updated = notifications_repo.mark_as_read(cur, user["user_id"], ids)
            conn.commit()

    return api_response.success({"updated": updated}, 200, "Notifications marked as read")


@notifications_bp.route("/<int:notification_id>/read", methods=["PUT"])
def mark_one_read(notification_id: int) -> Tuple[Response, int]:
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            owner_id = notifications_repo.get_notification_owner(cur, notification_id)
            if owner_id is None:
                return api_response.not_found("Notification not found")

            err, code = require_owner_or_roles(user, owner_id, ["admin"])
            if err:
                return err, code

            notification = notifications_repo.mark_one_as_read(cur, notification_id)
            conn.commit()

    return api_response.success(row_to_dict(notification), 200, "Notification marked as read")


@notifications_bp.route("/<int:notification_id>", methods=["DELETE"])
def delete_notification(notification_id: int) -> Tuple[Response, int]:
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            owner_id = notifications_repo.get_notification_owner(cur, notification_id)
            if owner_id is None:
                return api_response.not_found("Notification not found")

            err, code = require_owner_or_roles(user, owner_id, ["admin"])
            if err:
                return err, code

            notifications_repo.delete_notification(cur, notification_id)
            conn.commit()

    return api_response.success({"notification_id": notification_id}, 200, "Notification deleted successfully")
