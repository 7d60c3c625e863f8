"""
Comment routes, mounted under the events prefix.
Handles threads (one level of replies), edits, likes and deletion.
"""

from typing import Tuple, Dict, Any, Optional

from flask import Blueprint, request, Response

from eventhub.auth_service.utils import (
    get_optional_user,
    require_event_access,
    require_owner_or_roles,
    verify_token_from_request,
)
from eventhub.comments_service import repository as comments_repo
from eventhub.common import api_response
from eventhub.common.utils import json_body, parse_pagination
from eventhub.database.db_connection import get_db
from eventhub.events_service import repository as events_repo
from eventhub.notifications_service import notifier

comments_bp = Blueprint("comments", __name__)


def _clean_content(data: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """
    Returns:
        tuple: (content, error message)
    """
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        return None, "Missing required fields"
    content = content.strip()
    if len(content) > comments_repo.CONTENT_MAX_LENGTH:
        return None, f"Comment must be {comments_repo.CONTENT_MAX_LENGTH} characters or less"
    return content, None


@comments_bp.route("/<int:event_id>/comments", methods=["POST"])
def create_comment(event_id: int) -> Tuple[Response, int]:
    """
    Create a comment, or a reply when parent_comment_id is given.

    Expects JSON:
        { "content": str, "parent_comment_id"?: int }

    Returns:
        201: The created comment.
        400: Missing content, or the parent belongs to another event.
        404: Event or parent comment not found.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    data: Dict[str, Any] = json_body()
    content, message = _clean_content(data)
    if message:
        return api_response.bad_request(message)

    parent_id = data.get("parent_comment_id")
    if parent_id is not None and (isinstance(parent_id, bool) or not isinstance(parent_id, int)):
        return api_response.bad_request("parent_comment_id must be an integer")

    with get_db() as conn:
        with conn.cursor() as cur:
            event = events_repo.find_event(cur, event_id)
            if not event:
                return api_response.not_found("Event not found")

            err, code = require_event_access(user, event)
            if err:
                return err, code

            parent = None
            if parent_id is not None:
                parent = comments_repo.find_comment(cur, parent_id)
                if not parent:
                    return api_response.not_found("Parent comment not found")
                if parent["event_id"] != event_id:
                    return api_response.bad_request("Parent comment belongs to another event")

            comment = comments_repo.insert_comment(cur, event_id, user["user_id"], content, parent_id)

            if parent:
                notifier.comment_reply(cur, event, parent, comment)
            else:
                notifier.new_comment(cur, event, comment)

            conn.commit()

    return api_response.success(comments_repo.comment_to_dict(comment), 201, "Comment created successfully")


@comments_bp.route("/<int:event_id>/comments", methods=["GET"])
def list_comments(event_id: int) -> Tuple[Response, int]:
    """
    Paginated top-level comments (newest first), each with its replies
    (oldest first).
    """
    viewer = get_optional_user()
    page, limit, _ = parse_pagination(request.args, default_limit=comments_repo.DEFAULT_PAGE_SIZE)

    with get_db() as conn:
        with conn.cursor() as cur:
            event = events_repo.find_event(cur, event_id)
            if not event:
                return api_response.not_found("Event not found")

            err, code = require_event_access(viewer, event)
            if err:
                return err, code

            data = comments_repo.get_event_comments(cur, event_id, page=page, limit=limit)

    return api_response.success(data, 200, "Comments retrieved successfully")


@comments_bp.route("/<int:event_id>/comments/<int:comment_id>", methods=["PUT"])
def edit_comment(event_id: int, comment_id: int) -> Tuple[Response, int]:
    """
    Edit a comment's content. Only its author may do this.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    data: Dict[str, Any] = json_body()
    content, message = _clean_content(data)
    if message:
        return api_response.bad_request(message)

    with get_db() as conn:
        with conn.cursor() as cur:
            owner_id = comments_repo.get_comment_owner(cur, comment_id, event_id)
            if owner_id is None:
                return api_response.not_found("Comment not found")

            err, code = require_owner_or_roles(user, owner_id)
            if err:
                return err, code

            comment = comments_repo.update_comment_content(cur, comment_id, content)
            conn.commit()

    return api_response.success(comments_repo.comment_to_dict(comment), 200, "Comment updated successfully")


@comments_bp.route("/<int:event_id>/comments/<int:comment_id>/like", methods=["POST"])
def like_comment(event_id: int, comment_id: int) -> Tuple[Response, int]:
    """
    Toggle the caller's like: the first call likes, the next one unlikes.
    Private events only accept likes from their organizer and admins.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            event = events_repo.find_event(cur, event_id)
            if not event:
                return api_response.not_found("Event not found")

            err, code = require_event_access(user, event)
            if err:
                return err, code

            comment = comments_repo.find_comment(cur, comment_id)
            if not comment or comment["event_id"] != event_id:
                return api_response.not_found("Comment not found")

            comment, liked = comments_repo.toggle_like(cur, comment_id, user["user_id"])
            conn.commit()

    data = comments_repo.comment_to_dict(comment)
    data["liked"] = liked
    message = "Comment liked successfully" if liked else "Comment unliked successfully"
    return api_response.success(data, 200, message)


@comments_bp.route("/<int:event_id>/comments/<int:comment_id>", methods=["DELETE"])
def delete_comment(event_id: int, comment_id: int) -> Tuple[Response, int]:
    """
    Delete a comment and its replies.

    Permission:
    - The comment's author
    - OR the event's organizer
    - OR an admin
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            owner_id = comments_repo.get_comment_owner(cur, comment_id, event_id)
            if owner_id is None:
                return api_response.not_found("Comment not found")

            event_owner_id = events_repo.get_event_owner(cur, event_id)
            if event_owner_id != user["user_id"]:
                err, code = require_owner_or_roles(user, owner_id, ["admin"])
                if err:
                    return err, code

            removed = comments_repo.delete_comment(cur, comment_id)
            conn.commit()

    return api_response.success(
        {"comment_id": comment_id, "removed": removed},
        200,
        "Comment deleted successfully",
    )
