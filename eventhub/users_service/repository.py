"""
User persistence: lookups, profile updates, listing and cascading deletion.

All functions take an open psycopg2 cursor; the caller owns the transaction.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from eventhub.common.utils import row_to_dict
from eventhub.rsvp_service import repository as rsvp_repo

VALID_ROLES = ("attendee", "organizer", "admin")
SORTABLE_FIELDS = {"name": "name", "email": "email", "created_at": "created_at"}
UPDATABLE_FIELDS = ("name", "email", "avatar_url", "bio")
BIO_MAX_LENGTH = 280

# Never includes password_hash or refresh_token_hash
PUBLIC_COLUMNS = "user_id, email, name, avatar_url, bio, roles, created_at, updated_at"


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def valid_roles(roles: Any) -> bool:
    """
    A role set is valid when it is a non-empty list drawn from VALID_ROLES.
    """
    return (
        isinstance(roles, list)
        and len(roles) > 0
        and all(isinstance(r, str) and r in VALID_ROLES for r in roles)
    )


def find_user_by_id(cur, user_id: int):
    cur.execute(f"SELECT {PUBLIC_COLUMNS} FROM users WHERE user_id = %s;", (user_id,))
    return cur.fetchone()


def find_user_credentials(cur, email: str):
    """
    Fetch a user together with the password hash, for login only.
    """
    cur.execute(
        f"SELECT {PUBLIC_COLUMNS}, password_hash FROM users WHERE email = %s;",
        (normalize_email(email),),
    )
    return cur.fetchone()


def email_exists(cur, email: str, exclude_user_id: Optional[int] = None) -> bool:
    sql = "SELECT 1 FROM users WHERE email = %s"
    params: List[Any] = [normalize_email(email)]
    if exclude_user_id is not None:
        sql += " AND user_id <> %s"
        params.append(exclude_user_id)
    cur.execute(sql + ";", params)
    return cur.fetchone() is not None


def insert_user(cur, email: str, password_hash: str, name: str):
    """
    Create a user with the default role set. Raises UniqueViolation on a
    duplicate email.
    """
    cur.execute(
        f"""
        INSERT INTO users (email, password_hash, name)
        VALUES (%s, %s, %s)
        RETURNING {PUBLIC_COLUMNS};
        """,
        (normalize_email(email), password_hash, name.strip()),
    )
    return cur.fetchone()


def get_refresh_token_hash(cur, user_id: int) -> Optional[str]:
    cur.execute("SELECT refresh_token_hash FROM users WHERE user_id = %s;", (user_id,))
    row = cur.fetchone()
    return row["refresh_token_hash"] if row else None


def set_refresh_token_hash(cur, user_id: int, token_hash: Optional[str]) -> None:
    """
    Store (or with None, revoke) the hash of the user's current refresh token.
    """
    cur.execute(
        "UPDATE users SET refresh_token_hash = %s WHERE user_id = %s;",
        (token_hash, user_id),
    )


def update_user(cur, user_id: int, fields: Dict[str, Any]):
    """
    Apply a partial update. Keys must come from UPDATABLE_FIELDS or be "roles".

    Returns:
        The updated public row, or None if the user does not exist.
    """
    sets = []
    values: List[Any] = []
    for key, value in fields.items():
        if key not in UPDATABLE_FIELDS and key != "roles":
            continue
        sets.append(f"{key} = %s")
        values.append(normalize_email(value) if key == "email" else value)

    if not sets:
        return find_user_by_id(cur, user_id)

    sets.append("updated_at = CURRENT_TIMESTAMP")
    values.append(user_id)
    cur.execute(
        f"UPDATE users SET {', '.join(sets)} WHERE user_id = %s RETURNING {PUBLIC_COLUMNS};",
        values,
    )
    return cur.fetchone()


def list_users(
    cur,
    q: Optional[str] = None,
    role: Optional[str] = None,
    sort: str = "name",
    limit: int = 10,
    offset: int = 0,
) -> Tuple[list, int]:
    """
    Search users by name/email and role.

    Returns:
        tuple: (rows, total matching rows)
    """
    conditions = []
    params: List[Any] = []

    if q:
        conditions.append("(name ILIKE %s OR email ILIKE %s)")
        pattern = f"%{q}%"
        params.extend([pattern, pattern])
    if role:
        conditions.append("%s = ANY(roles)")
        params.append(role)

    where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
    order_by = SORTABLE_FIELDS.get(sort, "name")

    cur.execute(f"SELECT COUNT(*) AS total FROM users{where};", params)
    total = cur.fetchone()["total"]

    cur.execute(
        f"SELECT {PUBLIC_COLUMNS} FROM users{where} ORDER BY {order_by} ASC, user_id ASC LIMIT %s OFFSET %s;",
        params + [limit, offset],
    )
    return cur.fetchall(), total


def delete_user_cascade(cur, user_id: int) -> bool:
    """
    Delete a user and everything that hangs off them.

    Order: the user's RSVPs (then recount the affected events), likes,
    comments (replies to those comments go with them), notifications,
    organised events, and finally the user row.

    Returns:
        bool: False when the user did not exist.
    """
    cur.execute("DELETE FROM rsvps WHERE user_id = %s RETURNING event_id;", (user_id,))
    affected_events = sorted({row["event_id"] for row in cur.fetchall()})

    cur.execute(
        "DELETE FROM comment_likes WHERE user_id = %s RETURNING comment_id;",
        (user_id,),
    )
    liked_comments = sorted({row["comment_id"] for row in cur.fetchall()})

    cur.execute(
        """
        DELETE FROM comments
        WHERE user_id = %s
           OR parent_comment_id IN (SELECT comment_id FROM comments WHERE user_id = %s);
        """,
        (user_id, user_id),
    )
    cur.execute("DELETE FROM notifications WHERE user_id = %s;", (user_id,))
    cur.execute("DELETE FROM events WHERE organizer_id = %s RETURNING event_id;", (user_id,))
    deleted_events = {row["event_id"] for row in cur.fetchall()}

    cur.execute("DELETE FROM users WHERE user_id = %s;", (user_id,))
    deleted = cur.rowcount > 0

    for event_id in affected_events:
        if event_id not in deleted_events:
            rsvp_repo.refresh_rsvp_counts(cur, event_id)

    if liked_comments:
        cur.execute(
            """
            UPDATE comments c
            SET likes = (SELECT COUNT(*) FROM comment_likes l WHERE l.comment_id = c.comment_id)
            WHERE c.comment_id = ANY(%s);
            """,
            (liked_comments,),
        )

    return deleted


def user_to_dict(row, include_roles: bool = True, include_timestamps: bool = True) -> Optional[Dict[str, Any]]:
    """
    Serialise a user row, hiding roles and timestamps when asked.
    """
    exclude: Sequence[str] = ("password_hash", "refresh_token_hash")
    if not include_roles:
        exclude = tuple(exclude) + ("roles",)
    if not include_timestamps:
        exclude = tuple(exclude) + ("created_at", "updated_at")
    return row_to_dict(row, exclude=exclude)
