"""
Event persistence, status derivation and search.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eventhub.common.utils import row_to_dict, utcnow

SORTABLE_FIELDS = {"start_at": "e.start_at", "title": "e.title", "created_at": "e.created_at"}

EVENT_COLUMNS = [
    "title", "description", "start_at", "end_at", "location", "is_online",
    "online_url", "capacity", "is_private", "tags", "cover_image", "status",
]

SELECT_EVENT = """
    SELECT e.*, u.name AS organizer_name, u.email AS organizer_email
    FROM events e
    LEFT JOIN users u ON e.organizer_id = u.user_id
"""


def derive_status(start_at: datetime, end_at: datetime, current: Optional[str] = None,
                  now: Optional[datetime] = None) -> str:
    """
    Status of an event window relative to now.

    A cancelled event stays cancelled. Otherwise: inside the window is
    "ongoing", past the end is "completed", anything else "upcoming".
    """
    if current == "cancelled":
        return current
    now = now or utcnow()
    if start_at <= now <= end_at:
        return "ongoing"
    if end_at < now:
        return "completed"
    return "upcoming"


def is_full(event: Dict[str, Any]) -> bool:
    return (event.get("attendees_count") or 0) >= event["capacity"]


def get_event_owner(cur, event_id: int) -> Optional[int]:
    cur.execute("SELECT organizer_id FROM events WHERE event_id = %s;", (event_id,))
    row = cur.fetchone()
    return row["organizer_id"] if row else None


def find_event(cur, event_id: int):
    cur.execute(SELECT_EVENT + " WHERE e.event_id = %s;", (event_id,))
    return cur.fetchone()


def insert_event(cur, organizer_id: int, fields: Dict[str, Any]):
    """
    Insert an event. ``fields`` must hold at least the required columns;
    status is derived from the window before the write.
    """
    values = dict(fields)
    values["status"] = derive_status(values["start_at"], values["end_at"], values.get("status"))

    columns = [c for c in EVENT_COLUMNS if c in values]
    placeholders = ", ".join(["%s"] * (len(columns) + 1))
    cur.execute(
        f"""
        INSERT INTO events ({', '.join(columns)}, organizer_id)
        VALUES ({placeholders})
        RETURNING event_id;
        """,
        [values[c] for c in columns] + [organizer_id],
    )
    event_id = cur.fetchone()["event_id"]
    return find_event(cur, event_id)


def update_event(cur, event_id: int, current: Dict[str, Any], changes: Dict[str, Any]):
    """
    Apply a partial update on top of ``current`` (the stored row) and
    re-derive the status from the resulting window.
    """
    merged = {**dict(current), **changes}
    changes = dict(changes)
    changes["status"] = derive_status(merged["start_at"], merged["end_at"], merged.get("status"))

    sets = []
    values: List[Any] = []
    for column in EVENT_COLUMNS:
        if column in changes:
            sets.append(f"{column} = %s")
            values.append(changes[column])
    sets.append("updated_at = CURRENT_TIMESTAMP")
    values.append(event_id)

    cur.execute(f"UPDATE events SET {', '.join(sets)} WHERE event_id = %s;", values)
    return find_event(cur, event_id)


def delete_event(cur, event_id: int) -> bool:
    # rsvps, comments and likes go with the event through ON DELETE CASCADE
    cur.execute("DELETE FROM events WHERE event_id = %s;", (event_id,))
    return cur.rowcount > 0


def list_audience(cur, event_id: int, exclude_user_id: Optional[int] = None) -> List[int]:
    """
    Users who said they are attending or might attend.
    """
    cur.execute(
        "SELECT user_id FROM rsvps WHERE event_id = %s AND status IN ('attending', 'maybe');",
        (event_id,),
    )
    return [r["user_id"] for r in cur.fetchall() if r["user_id"] != exclude_user_id]


def search_events(
    cur,
    viewer: Optional[Dict[str, Any]] = None,
    q: Optional[str] = None,
    tags: Sequence[str] = (),
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    sort: str = "start_at",
    limit: int = 10,
    offset: int = 0,
) -> Tuple[list, int]:
    """
    Filtered, paginated event listing.

    Visibility:
    - anonymous: public events only
    - authenticated: public events + the viewer's own private events
    - admin: everything

    Returns:
        tuple: (rows, total matching rows)
    """
    conditions = []
    params: List[Any] = []

    if viewer is None:
        conditions.append("e.is_private = FALSE")
    elif "admin" not in (viewer.get("roles") or []):
        conditions.append("(e.is_private = FALSE OR e.organizer_id = %s)")
        params.append(viewer["user_id"])

    if q:
        conditions.append("(e.title ILIKE %s OR e.description ILIKE %s OR e.location ILIKE %s)")
        pattern = f"%{q}%"
        params.extend([pattern, pattern, pattern])
    if tags:
        conditions.append("e.tags && %s::TEXT[]")
        params.append(list(tags))
    if start_from:
        conditions.append("e.start_at >= %s")
        params.append(start_from)
    if start_to:
        conditions.append("e.start_at <= %s")
        params.append(start_to)

    where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
    order_by = SORTABLE_FIELDS.get(sort, "e.start_at")

    cur.execute(f"SELECT COUNT(*) AS total FROM events e{where};", params)
    total = cur.fetchone()["total"]

    cur.execute(
        f"{SELECT_EVENT}{where} ORDER BY {order_by} ASC, e.event_id ASC LIMIT %s OFFSET %s;",
        params + [limit, offset],
    )
    return cur.fetchall(), total


def event_to_dict(row, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """
    Serialise an event row with its computed fields: a status re-derived from
    the current time, and ``is_full``.
    """
    if row is None:
        return None
    raw = dict(row)
    status = derive_status(raw["start_at"], raw["end_at"], raw.get("status"), now=now)
    event = row_to_dict(raw)
    event["status"] = status
    event["is_full"] = is_full(raw)
    return event
