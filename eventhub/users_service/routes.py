"""
User management routes: admin listing, public profiles, profile updates
and account deletion.
"""

import logging
from typing import Tuple, Dict, Any, List

from flask import Blueprint, request, Response

from eventhub.auth_service.utils import (
    get_optional_user,
    has_any_role,
    require_owner_or_roles,
    verify_token_from_request,
)
from eventhub.common import api_response
from eventhub.common.utils import json_body, parse_pagination, page_count
from eventhub.database.db_connection import get_db
from eventhub.users_service import repository as users_repo

users_bp = Blueprint("users", __name__)


def validate_profile_payload(data: Dict[str, Any]) -> Tuple[Dict[str, Any], List[Dict[str, str]]]:
    """
    Validate the editable profile fields present in ``data``.

    Returns:
        tuple: (clean fields, list of {"field", "message"} errors)
    """
    fields: Dict[str, Any] = {}
    errors: List[Dict[str, str]] = []

    if "name" in data:
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append({"field": "name", "message": "Name cannot be empty"})
        else:
            fields["name"] = name.strip()

    if "email" in data:
        email = users_repo.normalize_email(data.get("email") if isinstance(data.get("email"), str) else "")
        if "@" not in email:
            errors.append({"field": "email", "message": "Invalid email address"})
        else:
            fields["email"] = email

    if "avatar_url" in data:
        avatar_url = data.get("avatar_url")
        if avatar_url is not None and not isinstance(avatar_url, str):
            errors.append({"field": "avatar_url", "message": "avatar_url must be a string"})
        else:
            fields["avatar_url"] = avatar_url or None

    if "bio" in data:
        bio = data.get("bio")
        if bio is not None and not isinstance(bio, str):
            errors.append({"field": "bio", "message": "bio must be a string"})
        elif bio and len(bio) > users_repo.BIO_MAX_LENGTH:
            errors.append({"field": "bio", "message": f"Bio must be {users_repo.BIO_MAX_LENGTH} characters or less"})
        else:
            fields["bio"] = bio or None

    if "roles" in data:
        roles = data.get("roles")
        if not users_repo.valid_roles(roles):
            errors.append({
                "field": "roles",
                "message": f"roles must be a non-empty list of: {', '.join(users_repo.VALID_ROLES)}",
            })
        else:
            fields["roles"] = list(dict.fromkeys(roles))

    return fields, errors


# --- LIST USERS (ADMIN ONLY) ---
@users_bp.route("", methods=["GET"])
def list_users() -> Tuple[Response, int]:
    """
    Admin-only endpoint to list users.

    Query parameters: q (name/email), role, sort (name | email | created_at),
    page, limit.
    """
    _, err, code = verify_token_from_request(required_roles=["admin"])
    if err:
        return err, code

    page, limit, offset = parse_pagination(request.args)

    with get_db() as conn:
        with conn.cursor() as cur:
            rows, total = users_repo.list_users(
                cur,
                q=(request.args.get("q") or "").strip() or None,
                role=request.args.get("role") or None,
                sort=request.args.get("sort", "name"),
                limit=limit,
                offset=offset,
            )

    data = {
        "users": [users_repo.user_to_dict(r) for r in rows],
        "pagination": {
            "total": total,
            "page": page,
            "pages": page_count(total, limit),
            "limit": limit,
        },
    }
    return api_response.success(data, 200, "Users retrieved successfully")


# --- PUBLIC PROFILE ---
@users_bp.route("/<int:user_id>", methods=["GET"])
def get_user_profile(user_id: int) -> Tuple[Response, int]:
    """
    Get a user's profile.

    Roles are only shown to the user themself and to admins; timestamps only
    to admins.
    """
    viewer = get_optional_user()

    with get_db() as conn:
        with conn.cursor() as cur:
            profile = users_repo.find_user_by_id(cur, user_id)

    if not profile:
        return api_response.not_found("User not found")

    is_admin = has_any_role(viewer, ["admin"])
    is_self = viewer is not None and viewer["user_id"] == profile["user_id"]

    data = users_repo.user_to_dict(profile, include_roles=is_self or is_admin, include_timestamps=is_admin)
    return api_response.success(data, 200, "User retrieved successfully")


# --- UPDATE PROFILE ---
@users_bp.route("/<int:user_id>", methods=["PUT"])
def update_user_profile(user_id: int) -> Tuple[Response, int]:
    """
    Update a profile. Owner or admin; only admins may change roles.

    Allowed fields: name, email, avatar_url, bio, roles (admin only)

    Returns:
        200: Updated user.
        400: Validation error or no valid fields.
        403: Not the owner / not an admin.
        404: User not found.
        409: Email already in use.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    data: Dict[str, Any] = json_body()

    with get_db() as conn:
        with conn.cursor() as cur:
            if not users_repo.find_user_by_id(cur, user_id):
                return api_response.not_found("User not found")

            err, code = require_owner_or_roles(user, user_id, ["admin"])
            if err:
                return err, code

            is_admin = has_any_role(user, ["admin"])
            if "roles" in data and not is_admin:
                return api_response.forbidden("Only admins can change roles")

            fields, errors = validate_profile_payload(data)
            if errors:
                return api_response.validation_error(errors)
            if not fields:
                return api_response.bad_request("No valid fields provided")

            if "email" in fields and users_repo.email_exists(cur, fields["email"], exclude_user_id=user_id):
                return api_response.conflict("Email already exists")

            updated = users_repo.update_user(cur, user_id, fields)
            conn.commit()

    if "roles" in fields:
        logging.info(f"[Users] Admin {user['user_id']} set roles of user {user_id} to {fields['roles']}")

    return api_response.success(users_repo.user_to_dict(updated), 200, "User updated successfully")


# --- DELETE ACCOUNT ---
@users_bp.route("/<int:user_id>", methods=["DELETE"])
def delete_user(user_id: int) -> Tuple[Response, int]:
    """
    Delete a user (owner or admin), along with their events, RSVPs,
    comments, likes and notifications.
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            profile = users_repo.find_user_by_id(cur, user_id)
            if not profile:
                return api_response.not_found("User not found")

            err, code = require_owner_or_roles(user, user_id, ["admin"])
            if err:
                return err, code

            users_repo.delete_user_cascade(cur, user_id)
            conn.commit()

    logging.info(f"[Users] User {user['user_id']} deleted user {user_id}")
    return api_response.success(users_repo.user_to_dict(profile), 200, "User deleted successfully")
