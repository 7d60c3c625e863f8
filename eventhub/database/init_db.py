"""
Database bootstrap script.

Applies schema.sql (idempotent, every statement uses IF NOT EXISTS) and then
checks that the critical tables exist.

Usage:
    python -m eventhub.database.init_db
"""

import sys
from pathlib import Path

from eventhub.database.db_connection import get_db

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

CRITICAL_TABLES = ['users', 'events', 'rsvps', 'comments', 'comment_likes', 'notifications']


def apply_schema(conn) -> None:
    """
    Execute the schema DDL in a single transaction.
    """
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")
    with conn.cursor() as cur:
        cur.execute(ddl)
    conn.commit()


def missing_tables(conn) -> list:
    """
    Return the names of critical tables that do not exist yet.
    """
    missing = []
    with conn.cursor() as cur:
        for t in CRITICAL_TABLES:
            cur.execute("SELECT to_regclass(%s);", (t,))
            if not cur.fetchone()[0]:
                missing.append(t)
    return missing


def main() -> int:
    print("--- Initialising EventHub database ---")

    conn = get_db()
    try:
        apply_schema(conn)
        print(f"Applied {SCHEMA_PATH.name}")

        missing = missing_tables(conn)
        for t in CRITICAL_TABLES:
            print(f" - {t}: {'MISSING' if t in missing else 'Found'}")

        if missing:
            print("\nDatabase init FAILED: one or more critical tables are missing.")
            return 1
    finally:
        conn.close()

    print("\nDatabase init complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
