"""
Response envelope helpers and the API error taxonomy.

Every JSON response has the shape:
    { "success": bool, "message": str, "data"?: any, "errors"?: list }

Handlers return ``success(...)`` / ``error(...)`` tuples directly. Helpers that
run deeper than a handler raise an ``ApiError`` subclass instead; the gateway
turns those into the same envelope.
"""

import logging
from typing import Any, List, Optional, Tuple

from flask import jsonify, Response


class ApiError(Exception):
    """Base class for errors that map to an HTTP status and envelope."""

    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, errors: Any = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class BadRequest(ApiError):
    status_code = 400
    default_message = "Bad Request"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidToken(Unauthorized):
    """A well-formed token that is no longer the current one for its user."""

    default_message = "Invalid refresh token"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Conflict"


class InternalError(ApiError):
    status_code = 500
    default_message = "Internal Server Error"


def _as_list(errors: Any) -> Optional[List[Any]]:
    if errors is None:
        return None
    return errors if isinstance(errors, list) else [errors]


def success(data: Any = None, status_code: int = 200, message: str = "Success") -> Tuple[Response, int]:
    """
    Build a success envelope.

    Args:
        data: JSON-serialisable payload.
        status_code (int): HTTP status, 200 or 201.
        message (str): Human readable summary.

    Returns:
        tuple: (Response, status_code)
    """
    return jsonify({"success": True, "message": message, "data": data}), status_code


def error(message: str = "Internal Server Error", status_code: int = 500, errors: Any = None) -> Tuple[Response, int]:
    """
    Build an error envelope and log it.

    Args:
        message (str): Human readable error.
        status_code (int): HTTP status.
        errors: Optional detail, wrapped into a list.

    Returns:
        tuple: (Response, status_code)
    """
    logging.error(f"[API] {status_code} {message} errors={errors}")

    body = {"success": False, "message": message}
    detail = _as_list(errors)
    if detail is not None:
        body["errors"] = detail
    return jsonify(body), status_code


def from_exception(exc: ApiError) -> Tuple[Response, int]:
    return error(exc.message, exc.status_code, exc.errors)


def bad_request(message: str = "Bad Request", errors: Any = None) -> Tuple[Response, int]:
    return error(message, 400, errors)


def validation_error(errors: Any) -> Tuple[Response, int]:
    return error("Validation Error", 400, errors)


def unauthorized(message: str = "Unauthorized", errors: Any = None) -> Tuple[Response, int]:
    return error(message, 401, errors)


def forbidden(message: str = "Forbidden", errors: Any = None) -> Tuple[Response, int]:
    return error(message, 403, errors)


def not_found(message: str = "Resource not found", errors: Any = None) -> Tuple[Response, int]:
    return error(message, 404, errors)


def conflict(message: str = "Conflict", errors: Any = None) -> Tuple[Response, int]:
    return error(message, 409, errors)
