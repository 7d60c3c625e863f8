"""
PostgreSQL connection helper.
Provides get_db() for use by services.

Configuration (environment / .env):
- DATABASE_URL (required)
- DB_CONNECT_TIMEOUT: seconds to wait for the server, default 5
- DB_STATEMENT_TIMEOUT_MS: per-statement limit, 0 (the default) disables it
- DB_APPLICATION_NAME: shown in pg_stat_activity, default "eventhub"
"""

import os
import logging
from typing import Any, Dict

import psycopg2
from psycopg2.extras import DictCursor
from dotenv import load_dotenv

# Load .env variables from the project root
load_dotenv()

# Get the database URL from environment variable
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Please set the environment variable.")

DB_CONNECT_TIMEOUT = int(os.getenv("DB_CONNECT_TIMEOUT", "5"))
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "0"))
DB_APPLICATION_NAME = os.getenv("DB_APPLICATION_NAME", "eventhub")


def connect_kwargs() -> Dict[str, Any]:
    """
    Keyword arguments passed to psycopg2.connect() besides the DSN.

    Sessions always run in UTC so timestamptz columns come back aware and
    comparable with the service's own clock.
    """
    options = "-c timezone=UTC"
    if DB_STATEMENT_TIMEOUT_MS > 0:
        options += f" -c statement_timeout={DB_STATEMENT_TIMEOUT_MS}"
    return {
        "connect_timeout": DB_CONNECT_TIMEOUT,
        "application_name": DB_APPLICATION_NAME,
        "options": options,
    }


def get_db():
    """
    Returns a new psycopg2 connection with dictionary-based row access.

    One connection is opened per request; there is no pooling.

    Usage:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(...)

    Leaving the ``with conn`` block commits (or rolls back on error) the
    transaction but does not close the connection.

    Raises:
        psycopg2.OperationalError: The server could not be reached.
    """
    try:
        conn = psycopg2.connect(DATABASE_URL, **connect_kwargs())
    except psycopg2.OperationalError as e:
        logging.error(f"[Database] Could not connect ({DB_APPLICATION_NAME}, timeout {DB_CONNECT_TIMEOUT}s): {e}")
        raise

    # Rows behave like dictionaries (e.g., row["user_id"])
    conn.cursor_factory = DictCursor
    return conn
