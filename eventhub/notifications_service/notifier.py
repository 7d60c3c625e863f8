"""
Notification fan-out for domain actions. Called by handlers inside the same
transaction as the action itself; the actor is never notified.
"""

import logging
from typing import Any, Dict

from eventhub.events_service import repository as events_repo
from eventhub.notifications_service import repository as notifications_repo


def event_updated(cur, event: Dict[str, Any], actor_id: int) -> int:
    audience = events_repo.list_audience(cur, event["event_id"], exclude_user_id=actor_id)
    sent = notifications_repo.notify_many(
        cur,
        audience,
        "event_updated",
        "Event updated",
        f"\"{event['title']}\" has been updated.",
        related_event_id=event["event_id"],
        related_user_id=actor_id,
    )
    logging.debug(f"[Notifications] event_updated event={event['event_id']} sent={sent}")
    return sent


def event_cancelled(cur, event: Dict[str, Any], actor_id: int) -> int:
    audience = events_repo.list_audience(cur, event["event_id"], exclude_user_id=actor_id)
    sent = notifications_repo.notify_many(
        cur,
        audience,
        "event_cancelled",
        "Event cancelled",
        f"\"{event['title']}\" has been cancelled.",
        related_event_id=event["event_id"],
        related_user_id=actor_id,
    )
    logging.debug(f"[Notifications] event_cancelled event={event['event_id']} sent={sent}")
    return sent


def new_comment(cur, event: Dict[str, Any], comment: Dict[str, Any]) -> bool:
    if event["organizer_id"] == comment["user_id"]:
        return False
    notifications_repo.create_notification(
        cur,
        event["organizer_id"],
        "new_comment",
        "New comment",
        f"{comment['user_name']} commented on \"{event['title']}\".",
        related_event_id=event["event_id"],
        related_comment_id=comment["comment_id"],
        related_user_id=comment["user_id"],
    )
    return True


def comment_reply(cur, event: Dict[str, Any], parent: Dict[str, Any], reply: Dict[str, Any]) -> bool:
    if parent["user_id"] == reply["user_id"]:
        return False
    notifications_repo.create_notification(
        cur,
        parent["user_id"],
        "comment_reply",
        "New reply",
        f"{reply['user_name']} replied to your comment on \"{event['title']}\".",
        related_event_id=event["event_id"],
        related_comment_id=reply["comment_id"],
        related_user_id=reply["user_id"],
    )
    return True


def rsvp_update(cur, event: Dict[str, Any], user: Dict[str, Any], status: str) -> bool:
    if event["organizer_id"] == user["user_id"]:
        return False
    notifications_repo.create_notification(
        cur,
        event["organizer_id"],
        "rsvp_update",
        "RSVP update",
        f"{user['name']} RSVPed \"{status}\" to \"{event['title']}\".",
        related_event_id=event["event_id"],
        related_user_id=user["user_id"],
    )
    return True
