"""
Comment persistence: two-level threads and per-user likes.
"""

from math import ceil
from typing import Any, Dict, List, Optional

import psycopg2.errors

from eventhub.common.api_response import BadRequest, Conflict
from eventhub.common.utils import rows_to_dicts, row_to_dict

CONTENT_MAX_LENGTH = 2000
DEFAULT_PAGE_SIZE = 20

SELECT_COMMENT = """
    SELECT c.*, u.name AS user_name, u.avatar_url AS user_avatar_url,
           ARRAY(
               SELECT l.user_id FROM comment_likes l
               WHERE l.comment_id = c.comment_id
               ORDER BY l.created_at
           ) AS liked_by
    FROM comments c
    JOIN users u ON c.user_id = u.user_id
"""


def find_comment(cur, comment_id: int):
    cur.execute(SELECT_COMMENT + " WHERE c.comment_id = %s;", (comment_id,))
    return cur.fetchone()


def get_comment_owner(cur, comment_id: int, event_id: Optional[int] = None) -> Optional[int]:
    """
    Author of the comment, or None if it does not exist (or is not on
    ``event_id`` when one is given).
    """
    sql = "SELECT user_id FROM comments WHERE comment_id = %s"
    params: List[Any] = [comment_id]
    if event_id is not None:
        sql += " AND event_id = %s"
        params.append(event_id)
    cur.execute(sql + ";", params)
    row = cur.fetchone()
    return row["user_id"] if row else None


def insert_comment(cur, event_id: int, user_id: int, content: str,
                   parent_comment_id: Optional[int] = None):
    cur.execute(
        """
        INSERT INTO comments (event_id, user_id, parent_comment_id, content)
        VALUES (%s, %s, %s, %s)
        RETURNING comment_id;
        """,
        (event_id, user_id, parent_comment_id, content),
    )
    return find_comment(cur, cur.fetchone()["comment_id"])


def update_comment_content(cur, comment_id: int, content: str):
    cur.execute(
        """
        UPDATE comments
        SET content = %s, edited = TRUE, updated_at = CURRENT_TIMESTAMP
        WHERE comment_id = %s;
        """,
        (content, comment_id),
    )
    return find_comment(cur, comment_id)


def delete_comment(cur, comment_id: int) -> int:
    """
    Delete a comment and its direct replies.

    Returns:
        int: number of comment rows removed (0 if it did not exist).
    """
    cur.execute("DELETE FROM comments WHERE parent_comment_id = %s;", (comment_id,))
    replies = cur.rowcount
    cur.execute("DELETE FROM comments WHERE comment_id = %s;", (comment_id,))
    if cur.rowcount == 0:
        return 0
    return replies + cur.rowcount


# --- LIKES ---

def has_liked(cur, comment_id: int, user_id: int) -> bool:
    cur.execute(
        "SELECT 1 FROM comment_likes WHERE comment_id = %s AND user_id = %s;",
        (comment_id, user_id),
    )
    return cur.fetchone() is not None


def _recount_likes(cur, comment_id: int) -> None:
    cur.execute(
        """
        UPDATE comments
        SET likes = (SELECT COUNT(*) FROM comment_likes WHERE comment_id = %s)
        WHERE comment_id = %s;
        """,
        (comment_id, comment_id),
    )


def add_like(cur, comment_id: int, user_id: int):
    """
    Record a like. A second like by the same user is rejected.

    Raises:
        Conflict: the user already liked this comment.
    """
    try:
        cur.execute(
            "INSERT INTO comment_likes (comment_id, user_id) VALUES (%s, %s);",
            (comment_id, user_id),
        )
    except psycopg2.errors.UniqueViolation as e:
        raise Conflict("You have already liked this comment") from e
    _recount_likes(cur, comment_id)
    return find_comment(cur, comment_id)


def remove_like(cur, comment_id: int, user_id: int):
    """
    Withdraw a like.

    Raises:
        BadRequest: the user has not liked this comment.
    """
    cur.execute(
        "DELETE FROM comment_likes WHERE comment_id = %s AND user_id = %s;",
        (comment_id, user_id),
    )
    if cur.rowcount == 0:
        raise BadRequest("You have not liked this comment")
    _recount_likes(cur, comment_id)
    return find_comment(cur, comment_id)


def toggle_like(cur, comment_id: int, user_id: int):
    """
    Like or unlike depending on current membership.

    Returns:
        tuple: (comment row, liked flag after the call)
    """
    if has_liked(cur, comment_id, user_id):
        return remove_like(cur, comment_id, user_id), False
    return add_like(cur, comment_id, user_id), True


# --- THREADS ---

def get_event_comments(cur, event_id: int, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    """
    Page through top-level comments, newest first, each with its direct
    replies oldest first. Replies to replies are not expanded.
    """
    offset = (page - 1) * limit

    cur.execute(
        "SELECT COUNT(*) AS total FROM comments WHERE event_id = %s AND parent_comment_id IS NULL;",
        (event_id,),
    )
    total = cur.fetchone()["total"]

    cur.execute(
        SELECT_COMMENT
        + """
        WHERE c.event_id = %s AND c.parent_comment_id IS NULL
        ORDER BY c.created_at DESC, c.comment_id DESC
        LIMIT %s OFFSET %s;
        """,
        (event_id, limit, offset),
    )
    comments = rows_to_dicts(cur.fetchall())

    replies_by_parent: Dict[int, List[Dict[str, Any]]] = {c["comment_id"]: [] for c in comments}
    if replies_by_parent:
        cur.execute(
            SELECT_COMMENT
            + """
            WHERE c.parent_comment_id = ANY(%s)
            ORDER BY c.created_at ASC, c.comment_id ASC;
            """,
            (list(replies_by_parent),),
        )
        for reply in rows_to_dicts(cur.fetchall()):
            replies_by_parent[reply["parent_comment_id"]].append(reply)

    for comment in comments:
        comment["replies"] = replies_by_parent[comment["comment_id"]]

    return {
        "comments": comments,
        "total": total,
        "page": page,
        "total_pages": ceil(total / limit) if limit else 0,
        "has_more": page * limit < total,
    }


def comment_to_dict(row) -> Optional[Dict[str, Any]]:
    return row_to_dict(row)
