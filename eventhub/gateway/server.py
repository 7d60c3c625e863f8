"""
API gateway: combines the auth, events, RSVP, comments, users and
notifications blueprints under /api and installs the global error handlers.
This is the local entrypoint for development.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

import jwt
import psycopg2.errors
from flask import Flask, jsonify, request
from flask_cors import CORS
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from eventhub.common import api_response
from eventhub.common.api_response import ApiError, InternalError

load_dotenv()

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if APP_ENV == "production" else "DEBUG").upper()
LOG_DIR = os.getenv("LOG_DIR")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

LOG_FORMAT = "[%(levelname)s] %(asctime)s - %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Constraint name -> field reported in "<Field> already exists"
UNIQUE_FIELDS = {
    "users_email_key": "Email",
    "rsvps_event_user_key": "RSVP",
    "comment_likes_pkey": "Like",
}


def configure_logging() -> None:
    """
    Console logging during API requests; rotating error/combined files when
    LOG_DIR is set.
    """
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    if not LOG_DIR:
        return

    root = logging.getLogger()
    if any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        return

    os.makedirs(LOG_DIR, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    for filename, level in (("error.log", logging.ERROR), ("combined.log", logging.NOTSET)):
        handler = RotatingFileHandler(
            os.path.join(LOG_DIR, filename), maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)


def unique_violation_message(exc: psycopg2.errors.UniqueViolation) -> str:
    constraint = getattr(getattr(exc, "diag", None), "constraint_name", None) or ""
    field = UNIQUE_FIELDS.get(constraint)
    if not field:
        # users_email_key -> Email
        parts = constraint.split("_")
        field = parts[1].capitalize() if len(parts) > 2 else "Resource"
    return f"{field} already exists"


def register_error_handlers(app: Flask) -> None:
    """
    Map every exception that escapes a handler onto the response envelope.
    """

    @app.errorhandler(ApiError)
    def handle_api_error(e: ApiError):
        return api_response.from_exception(e)

    @app.errorhandler(jwt.ExpiredSignatureError)
    def handle_expired_token(e):
        return api_response.unauthorized("Token expired")

    @app.errorhandler(jwt.InvalidTokenError)
    def handle_invalid_token(e):
        return api_response.unauthorized("Invalid token")

    @app.errorhandler(psycopg2.errors.UniqueViolation)
    def handle_unique_violation(e):
        return api_response.conflict(unique_violation_message(e))

    @app.errorhandler(psycopg2.errors.InvalidTextRepresentation)
    @app.errorhandler(psycopg2.DataError)
    def handle_data_error(e):
        return api_response.bad_request("Invalid value format")

    @app.errorhandler(psycopg2.errors.CheckViolation)
    @app.errorhandler(psycopg2.errors.NotNullViolation)
    @app.errorhandler(psycopg2.errors.ForeignKeyViolation)
    def handle_integrity_error(e):
        constraint = getattr(getattr(e, "diag", None), "constraint_name", None)
        return api_response.bad_request("Validation Error", {"constraint": constraint} if constraint else None)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        if e.code == 404:
            return api_response.not_found("Invalid route")
        return api_response.error(e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logging.exception(f"[Gateway] Unhandled error on {request.method} {request.path}")
        message = None if APP_ENV == "production" else str(e) or None
        return api_response.from_exception(InternalError(message))


def create_app() -> Flask:
    """
    Application factory for creating the Flask app.

    Returns:
        Flask: The configured Flask application.
    """
    configure_logging()

    app = Flask(__name__)
    app.url_map.strict_slashes = False

    CORS(app, resources={
        r"/api/*": {
            "origins": CORS_ORIGINS,
            "methods": ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "expose_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True,
        }
    })

    # --- REGISTER BLUEPRINTS ---
    from eventhub.auth_service.routes import auth_bp
    from eventhub.events_service.routes import events_bp
    from eventhub.rsvp_service.routes import rsvp_bp
    from eventhub.comments_service.routes import comments_bp
    from eventhub.users_service.routes import users_bp
    from eventhub.notifications_service.routes import notifications_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(rsvp_bp, url_prefix="/api/events")
    app.register_blueprint(comments_bp, url_prefix="/api/events")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")

    logging.info("All blueprints registered successfully.")

    register_error_handlers(app)

    # Method, path and status only; bodies and headers carry credentials
    @app.before_request
    def log_request():
        logging.debug(f"[Gateway] --> {request.method} {request.path}")

    @app.after_request
    def log_response(response):
        logging.info(f"[Gateway] {request.method} {request.path} {response.status_code}")
        return response

    # --- HEALTH CHECK ---
    @app.route("/api/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"success": True, "message": "OK", "data": {"status": "ok", "env": APP_ENV}}), 200

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("PORT", 3001))
    app.run(host="0.0.0.0", port=port, debug=APP_ENV != "production")
