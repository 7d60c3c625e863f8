"""
Shared authentication helpers.
Provides token creation, verification, and role/ownership enforcement.
"""

import os
import logging
import jwt
from datetime import datetime, timedelta, timezone
from typing import Tuple, Optional, Any, Dict, Iterable
from flask import request, Response
from dotenv import load_dotenv

from eventhub.common import api_response
from eventhub.database.db_connection import get_db
from eventhub.users_service import repository as users_repo

# Load .env only once here
load_dotenv()

# Load secrets & configs
ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET")
REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET")
if not ACCESS_TOKEN_SECRET or not REFRESH_TOKEN_SECRET:
    raise RuntimeError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be set. Set them in .env")

ACCESS_TOKEN_EXPIRES_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES", 15))
REFRESH_TOKEN_EXPIRES_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRES_DAYS", 7))

JWT_ALGORITHM = "HS256"
REFRESH_COOKIE_NAME = "refreshToken"

User = Dict[str, Any]
GuardResult = Tuple[Optional[Response], Optional[int]]


# --- JWT CREATION ---
def _encode(user_id: int, roles: Iterable[str], token_type: str, secret: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        # PyJWT requires a string subject
        "sub": str(user_id),
        "roles": list(roles),
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: int, roles: Iterable[str]) -> str:
    """
    Generates a short-lived access token.

    Args:
        user_id (int): The unique ID of the user.
        roles (list): The user's roles (attendee, organizer, admin).

    Returns:
        str: Encoded JWT string.
    """
    return _encode(user_id, roles, "access", ACCESS_TOKEN_SECRET,
                   timedelta(minutes=ACCESS_TOKEN_EXPIRES_MINUTES))


def create_refresh_token(user_id: int, roles: Iterable[str]) -> str:
    """
    Generates a long-lived refresh token, signed with its own secret.
    """
    return _encode(user_id, roles, "refresh", REFRESH_TOKEN_SECRET,
                   timedelta(days=REFRESH_TOKEN_EXPIRES_DAYS))


# --- JWT VALIDATION ---
def _decode(token: str, secret: str, token_type: str) -> Dict[str, Any]:
    payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], options={"require": ["exp", "sub"]})
    if payload.get("type") != token_type:
        raise jwt.InvalidTokenError(f"expected a {token_type} token")
    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify signature and expiry of an access token.

    Raises:
        jwt.ExpiredSignatureError: token expired.
        jwt.InvalidTokenError: any other verification failure.
    """
    return _decode(token, ACCESS_TOKEN_SECRET, "access")


def decode_refresh_token(token: str) -> Dict[str, Any]:
    return _decode(token, REFRESH_TOKEN_SECRET, "refresh")


def subject_id(payload: Dict[str, Any]) -> Optional[int]:
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


def load_user(user_id: Optional[int]) -> Optional[User]:
    """
    Re-fetch the user so roles and existence are current, not whatever the
    token claimed at issue time.
    """
    if user_id is None:
        return None
    with get_db() as conn:
        with conn.cursor() as cur:
            row = users_repo.find_user_by_id(cur, user_id)
    return dict(row) if row else None


def bearer_token() -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


# --- ROLE / OWNERSHIP CHECKS ---
def has_any_role(user: Optional[User], roles: Iterable[str]) -> bool:
    if not user:
        return False
    return bool(set(user.get("roles") or []) & set(roles))


def require_role(user: Optional[User], roles: Iterable[str]) -> GuardResult:
    """
    Pass when the user holds at least one of ``roles``.

    Returns:
        tuple: (None, None) on success, else (error_response, status_code).
    """
    roles = list(roles)
    if not user:
        return api_response.unauthorized("Authentication required")
    if not has_any_role(user, roles):
        return api_response.forbidden(f"Access denied. Required role: {' or '.join(roles)}")
    return None, None


def require_owner_or_roles(user: Optional[User], owner_id: Optional[int], roles: Iterable[str] = ()) -> GuardResult:
    """
    Pass when the user owns the resource or holds one of ``roles``.

    The owner id must come from a lookup that already ran (and already
    answered 404 for a missing resource).

    Returns:
        tuple: (None, None) on success, else (error_response, status_code).
    """
    roles = list(roles)
    if not user:
        return api_response.unauthorized("Authentication required")

    is_owner = owner_id is not None and str(owner_id) == str(user["user_id"])
    if is_owner or has_any_role(user, roles):
        return None, None

    suffix = f" or have one of these roles: {', '.join(roles)}" if roles else ""
    return api_response.forbidden(f"Access denied. You must be the owner{suffix}")


def require_event_access(user: Optional[User], event: Dict[str, Any]) -> GuardResult:
    """
    Public events are open to everyone; private ones only to their organizer
    and admins.
    """
    if not event["is_private"]:
        return None, None
    if not user:
        return api_response.unauthorized("Event is private")
    return require_owner_or_roles(user, event["organizer_id"], ["admin"])


def verify_token_from_request(required_roles: Optional[list] = None) -> Tuple[Optional[User], Optional[Response], Optional[int]]:
    """
    Authenticate the request from its bearer token.

    Args:
        required_roles (list, optional): List of allowed roles.

    Returns:
        tuple: (user, error_response, status_code)
               If successful, error_response and status_code are None.
               If failed, user is None.
    """
    token = bearer_token()
    if not token:
        return (None, *api_response.unauthorized("No token provided"))

    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        return (None, *api_response.unauthorized("Token expired"))
    except jwt.InvalidTokenError as e:
        logging.warning(f"[Auth] Token verification failed: {e}")
        return (None, *api_response.unauthorized("Invalid or expired token"))

    user = load_user(subject_id(payload))
    if not user:
        return (None, *api_response.unauthorized("User not found"))

    if required_roles:
        err, code = require_role(user, required_roles)
        if err:
            return None, err, code

    return user, None, None


def get_optional_user() -> Optional[User]:
    """
    Resolve the caller on public routes. Missing or invalid tokens mean
    anonymous rather than an error.
    """
    token = bearer_token()
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError:
        return None
    return load_user(subject_id(payload))


# --- REFRESH COOKIE ---
def set_refresh_cookie(response: Response, token: str) -> Response:
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        token,
        max_age=REFRESH_TOKEN_EXPIRES_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=True,
        samesite="Strict",
    )
    return response


def clear_refresh_cookie(response: Response) -> Response:
    response.delete_cookie(REFRESH_COOKIE_NAME, httponly=True, secure=True, samesite="Strict")
    return response
