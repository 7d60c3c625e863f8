"""
Notification persistence.
"""

from math import ceil
from typing import Any, Dict, Iterable, List, Optional

from eventhub.common.utils import rows_to_dicts

NOTIFICATION_TYPES = (
    "event_updated",
    "event_cancelled",
    "new_comment",
    "comment_reply",
    "rsvp_update",
)
DEFAULT_PAGE_SIZE = 20


def create_notification(
    cur,
    user_id: int,
    type: str,
    title: str,
    message: str,
    related_event_id: Optional[int] = None,
    related_comment_id: Optional[int] = None,
    related_user_id: Optional[int] = None,
):
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")

    cur.execute(
        """
        INSERT INTO notifications
            (user_id, type, title, message, related_event_id, related_comment_id, related_user_id)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING *;
        """,
        (user_id, type, title, message, related_event_id, related_comment_id, related_user_id),
    )
    return cur.fetchone()


def notify_many(cur, user_ids: Iterable[int], type: str, title: str, message: str, **related) -> int:
    """
    Send the same notification to several users (each at most once).

    Returns:
        int: number of notifications created.
    """
    sent = 0
    for user_id in dict.fromkeys(user_ids):
        create_notification(cur, user_id, type, title, message, **related)
        sent += 1
    return sent


def get_notification_owner(cur, notification_id: int) -> Optional[int]:
    cur.execute("SELECT user_id FROM notifications WHERE notification_id = %s;", (notification_id,))
    row = cur.fetchone()
    return row["user_id"] if row else None


def get_unread_count(cur, user_id: int) -> int:
    cur.execute(
        "SELECT COUNT(*) AS total FROM notifications WHERE user_id = %s AND is_read = FALSE;",
        (user_id,),
    )
    return cur.fetchone()["total"]


def list_notifications(cur, user_id: int, page: int = 1, limit: int = DEFAULT_PAGE_SIZE,
                       unread_only: bool = False) -> Dict[str, Any]:
    """
    Page through a user's notifications, newest first, with the related
    event title and related user name joined in.
    """
    where = "n.user_id = %s"
    if unread_only:
        where += " AND n.is_read = FALSE"

    cur.execute(f"SELECT COUNT(*) AS total FROM notifications n WHERE {where};", (user_id,))
    total = cur.fetchone()["total"]

    cur.execute(
        f"""
        SELECT n.*, e.title AS related_event_title,
               u.name AS related_user_name, u.avatar_url AS related_user_avatar_url
        FROM notifications n
        LEFT JOIN events e ON n.related_event_id = e.event_id
        LEFT JOIN users u ON n.related_user_id = u.user_id
        WHERE {where}
        ORDER BY n.created_at DESC, n.notification_id DESC
        LIMIT %s OFFSET %s;
        """,
        (user_id, limit, (page - 1) * limit),
    )

    return {
        "notifications": rows_to_dicts(cur.fetchall()),
        "total": total,
        "page": page,
        "total_pages": ceil(total / limit) if limit else 0,
        "has_more": page * limit < total,
    }


def mark_as_read(cur, user_id: int, notification_ids: Optional[List[int]] = None) -> int:
    """
    Mark notifications read. Only rows owned by ``user_id`` are touched;
    with no ids, every unread notification of the user is marked.

    Returns:
        int: rows updated.
    """
    sql = """
        UPDATE notifications
        SET is_read = TRUE, updated_at = CURRENT_TIMESTAMP
        WHERE user_id = %s AND is_read = FALSE
    """
    params: List[Any] = [user_id]
    if notification_ids is not None:
        sql += " AND notification_id = ANY(%s)"
        params.append(list(notification_ids))
    cur.execute(sql + ";", params)
    return cur.rowcount


def mark_one_as_read(cur, notification_id: int):
    cur.execute(
        """
        UPDATE notifications
        SET is_read = TRUE, updated_at = CURRENT_TIMESTAMP
        WHERE notification_id = %s
        RETURNING *;
        """,
        (notification_id,),
    )
    return cur.fetchone()


def delete_notification(cur, notification_id: int) -> bool:
    cur.execute("DELETE FROM notifications WHERE notification_id = %s;", (notification_id,))
    return cur.rowcount > 0
