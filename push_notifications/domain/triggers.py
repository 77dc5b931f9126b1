"""Trigger rules: document changes -> notification events.

Mental model refresher:
- Domain modules decide *who* hears about a change and *what* they read.
- They receive plain document snapshots (dicts) and return
  `NotificationEvent`s; they never read the store or talk to the provider.
- An empty list means "nothing to notify", never an error.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from ..types import NotificationEvent, UserId

logger = logging.getLogger(__name__)

TASK_COLLECTION = "serviceRequests"
ANNOUNCEMENT_COLLECTION = "announcements"

COMMENT_PREVIEW_LIMIT = 100

Snapshot = Mapping[str, Any]


def task_created_notifications(task_id: str, task: Snapshot) -> list[NotificationEvent]:
    """Notify everyone assigned to a freshly created task."""
    assigned = _user_list(task.get("assignedUsers"))
    if not assigned:
        logger.info("task_created_no_assignees task_id=%s", task_id)
        return []

    return [
        NotificationEvent.for_recipients(
            assigned,
            title=f"New task: {_text(task.get('title'))}",
            body=(
                f"A new task has been assigned to you. Type: {_text(task.get('type'))}, "
                f"priority: {_text(task.get('priority'))}. Tap for details."
            ),
            data=_task_data(task_id),
            context="new task",
        )
    ]


def task_updated_notifications(
    task_id: str,
    before: Snapshot,
    after: Snapshot,
) -> list[NotificationEvent]:
    """Evaluate every update rule and return the events that fired."""
    events: list[NotificationEvent] = []
    for rule in (_new_assignees, _new_comment, _arrival, _new_response):
        event = rule(task_id, before, after)
        if event is not None:
            events.append(event)
    return events


def announcement_created_notifications(
    announcement_id: str,
    announcement: Snapshot,
) -> list[NotificationEvent]:
    assigned = _user_list(announcement.get("assignedUsers"))
    if not assigned:
        logger.info("announcement_no_assignees announcement_id=%s", announcement_id)
        return []

    if announcement.get("imageUrl"):
        logger.info(
            "announcement_image_ignored announcement_id=%s image_url=%s",
            announcement_id,
            announcement.get("imageUrl"),
        )

    return [
        NotificationEvent.for_recipients(
            assigned,
            title=_text(announcement.get("head")),
            body=_text(announcement.get("body")),
            data={"type": "announcement", "id": announcement_id},
            context="new announcement",
        )
    ]


def notifications_for_change(change: Mapping[str, Any]) -> list[NotificationEvent]:
    """Route one parsed change record to its trigger rule."""
    collection = change["collection"]
    kind = change["change"]
    document_id = change["document_id"]
    after = change["after"]

    if collection == TASK_COLLECTION and kind == "created":
        return task_created_notifications(document_id, after)
    if collection == TASK_COLLECTION and kind == "updated":
        return task_updated_notifications(document_id, change["before"], after)
    if collection == ANNOUNCEMENT_COLLECTION and kind == "created":
        return announcement_created_notifications(document_id, after)

    logger.info(
        "change_ignored collection=%s change=%s document_id=%s", collection, kind, document_id
    )
    return []


def _new_assignees(task_id: str, before: Snapshot, after: Snapshot) -> NotificationEvent | None:
    previous = set(_user_list(before.get("assignedUsers")))
    added = [user for user in _user_list(after.get("assignedUsers")) if user not in previous]
    if not added:
        return None

    return NotificationEvent.for_recipients(
        added,
        title=f"You have been assigned: {_text(after.get('title'))}",
        body=(
            f"You were added to an existing task. Type: {_text(after.get('type'))}. "
            "Tap to follow up."
        ),
        data=_task_data(task_id),
        context="new assignees",
    )


def _new_comment(task_id: str, before: Snapshot, after: Snapshot) -> NotificationEvent | None:
    before_comments = _dict_list(before.get("comments"))
    after_comments = _dict_list(after.get("comments"))
    if len(after_comments) <= len(before_comments):
        return None

    comment = after_comments[-1]
    if comment.get("isStatusChange") is True:
        logger.info("task_comment_status_change task_id=%s", task_id)
        return None

    author = comment.get("userId")
    recipients = [user for user in _user_list(after.get("assignedUsers")) if user != author]
    if not recipients:
        logger.info("task_comment_no_recipients task_id=%s", task_id)
        return None

    content = _text(comment.get("content") or comment.get("text"))
    return NotificationEvent.for_recipients(
        recipients,
        title=f"New comment on: {_text(after.get('title'))}",
        body=f"{_text(comment.get('userName'))}: {_preview(content)}",
        data=_task_data(task_id),
        context="new comment",
    )


def _arrival(task_id: str, before: Snapshot, after: Snapshot) -> NotificationEvent | None:
    if before.get("onLocation") is True or after.get("onLocation") is not True:
        return None

    creator = after.get("creatorId")
    if not creator:
        logger.info("task_arrival_no_creator task_id=%s", task_id)
        return None

    return NotificationEvent.for_recipients(
        [creator],
        title=f"Technician on location: {_text(after.get('title'))}",
        body="A technician has arrived on location for this task.",
        data=_task_data(task_id),
        context="arrival",
    )


def _new_response(task_id: str, before: Snapshot, after: Snapshot) -> NotificationEvent | None:
    previous = {
        (entry.get("userId"), entry.get("response"))
        for entry in _dict_list(before.get("userResponses"))
    }
    fresh = [
        entry
        for entry in _dict_list(after.get("userResponses"))
        if (entry.get("userId"), entry.get("response")) not in previous
    ]
    if not fresh:
        return None

    creator = after.get("creatorId")
    if not creator:
        logger.info("task_response_no_creator task_id=%s", task_id)
        return None

    # Only the latest entry is announced; one update normally carries one response.
    entry = fresh[-1]
    return NotificationEvent.for_recipients(
        [creator],
        title=f"Task update: {_text(after.get('title'))}",
        body=_response_body(entry),
        data=_task_data(task_id),
        context="new response",
    )


def _response_body(entry: Snapshot) -> str:
    name = _text(entry.get("userName")) or "A technician"
    kind = _text(entry.get("response"))
    if kind == "accepted":
        return f"{name} accepted the task and is working on it."
    if kind == "completed":
        return f"{name} completed their part of the task."
    return f"{name} responded to the task: {kind or 'unknown'}."


def _task_data(task_id: str) -> dict[str, str]:
    return {"type": "serviceRequest", "id": task_id}


def _preview(content: str) -> str:
    if len(content) > COMMENT_PREVIEW_LIMIT:
        return content[: COMMENT_PREVIEW_LIMIT - 3] + "..."
    return content


def _user_list(value: Any) -> list[UserId]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return []
    return [item for item in value if isinstance(item, str) and item]


def _dict_list(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""
