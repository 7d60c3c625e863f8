"""
RSVP persistence and the attendee counter recomputation.

Every write here is followed by refresh_rsvp_counts() on the same cursor, so
the event's attendees_count / maybes_count always reflect a fresh aggregate
of the rsvps table.
"""

from typing import Dict, Optional, Tuple

VALID_RSVP_STATUSES = ("attending", "maybe", "cancelled")


def get_event_rsvp_counts(cur, event_id: int) -> Dict[str, int]:
    """
    Group the event's RSVPs by status.

    Returns:
        dict: {"attending": int, "maybe": int, "cancelled": int}
    """
    cur.execute(
        "SELECT status, COUNT(*) AS count FROM rsvps WHERE event_id = %s GROUP BY status;",
        (event_id,),
    )
    counts = {status: 0 for status in VALID_RSVP_STATUSES}
    for row in cur.fetchall():
        counts[row["status"]] = row["count"]
    return counts


def refresh_rsvp_counts(cur, event_id: int) -> Dict[str, int]:
    """
    Recompute the denormalised counters on the event from scratch.

    Concurrent writers may interleave, but since each call re-aggregates the
    whole table the last one to run leaves correct counts behind.
    """
    counts = get_event_rsvp_counts(cur, event_id)
    cur.execute(
        """
        UPDATE events
        SET attendees_count = %s, maybes_count = %s
        WHERE event_id = %s;
        """,
        (counts["attending"], counts["maybe"], event_id),
    )
    return counts


def find_rsvp(cur, event_id: int, user_id: int):
    cur.execute(
        "SELECT * FROM rsvps WHERE event_id = %s AND user_id = %s;",
        (event_id, user_id),
    )
    return cur.fetchone()


def find_rsvp_by_id(cur, rsvp_id: int):
    cur.execute("SELECT * FROM rsvps WHERE rsvp_id = %s;", (rsvp_id,))
    return cur.fetchone()


def get_rsvp_owner(cur, rsvp_id: int, event_id: Optional[int] = None) -> Optional[int]:
    """
    User behind the RSVP, or None if it does not exist (or belongs to
    another event when ``event_id`` is given).
    """
    row = find_rsvp_by_id(cur, rsvp_id)
    if not row or (event_id is not None and row["event_id"] != event_id):
        return None
    return row["user_id"]


def upsert_rsvp(cur, event_id: int, user_id: int, status: str) -> Tuple[dict, bool]:
    """
    Create the caller's RSVP or update its status.

    The (event_id, user_id) unique constraint makes a second call an update,
    never a duplicate row.

    Returns:
        tuple: (rsvp row as dict, created flag)
    """
    cur.execute(
        """
        INSERT INTO rsvps (event_id, user_id, status)
        VALUES (%s, %s, %s)
        ON CONFLICT (event_id, user_id)
        DO UPDATE SET status = EXCLUDED.status, updated_at = CURRENT_TIMESTAMP
        RETURNING *, (xmax = 0) AS created;
        """,
        (event_id, user_id, status),
    )
    rsvp = dict(cur.fetchone())
    created = bool(rsvp.pop("created"))

    refresh_rsvp_counts(cur, event_id)
    return rsvp, created


def delete_rsvp(cur, event_id: int, user_id: int):
    """
    Remove the user's RSVP for the event.

    Returns:
        The deleted row, or None if there was nothing to delete.
    """
    cur.execute(
        "DELETE FROM rsvps WHERE event_id = %s AND user_id = %s RETURNING *;",
        (event_id, user_id),
    )
    deleted = cur.fetchone()
    if deleted:
        refresh_rsvp_counts(cur, event_id)
    return deleted


def delete_rsvp_by_id(cur, rsvp_id: int):
    cur.execute("DELETE FROM rsvps WHERE rsvp_id = %s RETURNING *;", (rsvp_id,))
    deleted = cur.fetchone()
    if deleted:
        refresh_rsvp_counts(cur, deleted["event_id"])
    return deleted


def list_event_rsvps(cur, event_id: int) -> list:
    cur.execute(
        """
        SELECT r.rsvp_id, r.event_id, r.user_id, r.status, r.created_at, r.updated_at,
               u.name AS user_name, u.avatar_url AS user_avatar_url
        FROM rsvps r
        JOIN users u ON r.user_id = u.user_id
        WHERE r.event_id = %s
        ORDER BY r.created_at ASC;
        """,
        (event_id,),
    )
    return cur.fetchall()
