"""
Authentication service route handlers.

Provides routes for:
- User registration
- Login (access token + refresh cookie)
- Access token refresh
- Logout (refresh token revocation)
- Current user profile (/me)

JWT logic lives in `auth_service.utils`, hashing in `auth_service.credentials`.
"""

import logging
from typing import Tuple, Dict, Any

import jwt
import psycopg2.errors
from flask import Blueprint, request, Response

from eventhub.auth_service import credentials
from eventhub.auth_service.utils import (
    REFRESH_COOKIE_NAME,
    clear_refresh_cookie,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    set_refresh_cookie,
    subject_id,
    verify_token_from_request,
)
from eventhub.common import api_response
from eventhub.common.utils import json_body
from eventhub.database.db_connection import get_db
from eventhub.users_service import repository as users_repo

auth_bp = Blueprint("auth", __name__)

PASSWORD_MIN_LENGTH = 8


# --- REGISTER ---
@auth_bp.route("/register", methods=["POST"])
def register() -> Tuple[Response, int]:
    """
    Register a new user in the system.

    Expects a JSON body with:
    - name (str)
    - email (str): Unique email address.
    - password (str): Minimum 8 characters.

    Returns:
        201: The created user (roles default to ["attendee"]).
        400: Missing or invalid fields.
        409: Email already registered.
    """
    data: Dict[str, Any] = json_body()
    if not all(isinstance(data.get(k), (str, type(None))) for k in ("name", "email", "password")):
        return api_response.bad_request("name, email and password must be strings")

    name: str = (data.get("name") or "").strip()
    email: str = users_repo.normalize_email(data.get("email"))
    password: str = data.get("password") or ""

    # Validate input
    if not name or not email or not password:
        return api_response.bad_request("All fields are required")
    if "@" not in email:
        return api_response.bad_request("Invalid email address")
    if len(password) < PASSWORD_MIN_LENGTH:
        return api_response.bad_request(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")

    pw_hash = credentials.hash_password(password)

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                if users_repo.email_exists(cur, email):
                    return api_response.conflict("User already exists")
                user = users_repo.insert_user(cur, email, pw_hash, name)
                conn.commit()
    except psycopg2.errors.UniqueViolation:
        # Lost a race with a concurrent registration
        return api_response.conflict("User already exists")

    logging.info(f"[Auth] Registered user {user['user_id']}")
    return api_response.success(users_repo.user_to_dict(user), 201, "User registered successfully")


# --- LOGIN ---
@auth_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Authenticate a user and issue tokens.

    Expects a JSON body with:
    - email (str)
    - password (str)

    Returns:
        200: { user, access_token } and the refresh token as an httpOnly cookie.
        400: Missing credentials.
        401: Invalid credentials (wrong password or email).
    """
    data: Dict[str, Any] = json_body()
    if not all(isinstance(data.get(k), (str, type(None))) for k in ("email", "password")):
        return api_response.bad_request("email and password must be strings")

    email: str = users_repo.normalize_email(data.get("email"))
    password: str = data.get("password") or ""

    if not email or not password:
        return api_response.bad_request("Email and password required")

    with get_db() as conn:
        with conn.cursor() as cur:
            user = users_repo.find_user_credentials(cur, email)

            # Same message for unknown email and wrong password
            if not user or not credentials.verify_password(user["password_hash"], password):
                return api_response.unauthorized("Invalid credentials")

            access_token = create_access_token(user["user_id"], user["roles"])
            refresh_token = create_refresh_token(user["user_id"], user["roles"])

            # Only the latest refresh token is honoured
            users_repo.set_refresh_token_hash(
                cur, user["user_id"], credentials.hash_refresh_token(refresh_token)
            )
            conn.commit()

    response, code = api_response.success(
        {"user": users_repo.user_to_dict(user), "access_token": access_token},
        200,
        "Login successful",
    )
    set_refresh_cookie(response, refresh_token)
    return response, code


# --- REFRESH ---
@auth_bp.route("/refresh", methods=["POST"])
def refresh() -> Tuple[Response, int]:
    """
    Exchange the refresh cookie for a new access token.

    Returns:
        200: { access_token }
        401: Missing, invalid, expired, superseded or revoked refresh token.
    """
    refresh_token = request.cookies.get(REFRESH_COOKIE_NAME)
    if not refresh_token:
        return api_response.unauthorized("Refresh token is required")

    try:
        payload = decode_refresh_token(refresh_token)
    except jwt.ExpiredSignatureError:
        return api_response.unauthorized("Refresh token expired")
    except jwt.InvalidTokenError:
        return api_response.unauthorized("Invalid or expired token")

    user_id = subject_id(payload)

    with get_db() as conn:
        with conn.cursor() as cur:
            user = users_repo.find_user_by_id(cur, user_id) if user_id is not None else None
            if not user:
                return api_response.unauthorized("User not found")
            token_hash = users_repo.get_refresh_token_hash(cur, user_id)

    if not credentials.verify_refresh_token(token_hash, refresh_token):
        logging.warning(f"[Auth] Rejected superseded refresh token for user {user_id}")
        return api_response.from_exception(api_response.InvalidToken())

    access_token = create_access_token(user["user_id"], user["roles"])
    return api_response.success({"access_token": access_token}, 200, "Token refreshed")


# --- LOGOUT ---
@auth_bp.route("/logout", methods=["POST"])
def logout() -> Tuple[Response, int]:
    """
    Revoke the caller's refresh token and clear the cookie.

    Requires Authorization header: Bearer <token>
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    with get_db() as conn:
        with conn.cursor() as cur:
            users_repo.set_refresh_token_hash(cur, user["user_id"], None)
            conn.commit()

    response, code = api_response.success(None, 200, "Logged out successfully")
    clear_refresh_cookie(response)
    return response, code


# --- GET CURRENT USER ---
@auth_bp.route("/me", methods=["GET"])
def get_current_user() -> Tuple[Response, int]:
    """
    Retrieve the current user's profile.

    Requires Authorization header: Bearer <token>
    """
    user, err, code = verify_token_from_request()
    if err:
        return err, code

    return api_response.success(users_repo.user_to_dict(user), 200, "User retrieved successfully")
