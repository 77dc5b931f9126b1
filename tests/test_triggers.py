from __future__ import annotations

import unittest
from typing import Any

from push_notifications.domain.triggers import (
    announcement_created_notifications,
    notifications_for_change,
    task_created_notifications,
    task_updated_notifications,
)


def make_task(**overrides: Any) -> dict[str, Any]:
    base: dict[str, Any] = {
        "title": "Replace router",
        "type": "installation",
        "priority": "high",
        "status": "open",
        "creatorId": "creator-1",
        "assignedUsers": ["A", "B", "C"],
        "comments": [],
        "userResponses": [],
        "onLocation": False,
    }
    return base | overrides


def comment(user_id: str, content: str, **extra: Any) -> dict[str, Any]:
    return {"id": "c1", "userId": user_id, "userName": f"name-{user_id}", "content": content} | extra


class TaskCreatedTests(unittest.TestCase):
    def test_notifies_assigned_users_with_task_details(self) -> None:
        events = task_created_notifications("task-1", make_task())

        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertEqual(event.recipient_ids, ("A", "B", "C"))
        self.assertIn("Replace router", event.title)
        self.assertIn("installation", event.body)
        self.assertIn("high", event.body)
        self.assertEqual(dict(event.data), {"type": "serviceRequest", "id": "task-1"})

    def test_no_assignees_means_no_events(self) -> None:
        self.assertEqual(task_created_notifications("task-1", make_task(assignedUsers=[])), [])
        self.assertEqual(task_created_notifications("task-1", make_task(assignedUsers=None)), [])


class TaskUpdatedTests(unittest.TestCase):
    def test_new_assignees_only_get_notified(self) -> None:
        before = make_task(assignedUsers=["A", "B"])
        after = make_task(assignedUsers=["A", "B", "C", "D"])

        events = task_updated_notifications("task-1", before, after)

        self.assertEqual([event.context for event in events], ["new assignees"])
        self.assertEqual(events[0].recipient_ids, ("C", "D"))

    def test_comment_author_is_excluded(self) -> None:
        before = make_task()
        after = make_task(comments=[comment("A", "On my way")])

        events = task_updated_notifications("task-1", before, after)

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].recipient_ids, ("B", "C"))
        self.assertEqual(events[0].body, "name-A: On my way")

    def test_status_change_comment_is_silent(self) -> None:
        after = make_task(comments=[comment("A", "accepted", isStatusChange=True)])

        self.assertEqual(task_updated_notifications("task-1", make_task(), after), [])

    def test_long_comment_is_truncated(self) -> None:
        after = make_task(comments=[comment("A", "x" * 150)])

        event = task_updated_notifications("task-1", make_task(), after)[0]

        preview = event.body.removeprefix("name-A: ")
        self.assertEqual(len(preview), 100)
        self.assertTrue(preview.endswith("..."))

    def test_comment_text_field_is_accepted(self) -> None:
        after = make_task(comments=[{"userId": "B", "userName": "Bilal", "text": "Done"}])

        event = task_updated_notifications("task-1", make_task(), after)[0]

        self.assertEqual(event.body, "Bilal: Done")
        self.assertEqual(event.recipient_ids, ("A", "C"))

    def test_arrival_notifies_creator_once(self) -> None:
        before = make_task(onLocation=False)
        after = make_task(onLocation=True)

        events = task_updated_notifications("task-1", before, after)
        repeat = task_updated_notifications("task-1", after, after)

        self.assertEqual([event.recipient_ids for event in events], [("creator-1",)])
        self.assertEqual(repeat, [])

    def test_response_body_depends_on_kind(self) -> None:
        cases = {
            "accepted": "accepted the task",
            "completed": "completed their part",
            "rejected": "responded to the task: rejected",
        }
        for kind, expected in cases.items():
            with self.subTest(kind=kind):
                after = make_task(
                    userResponses=[{"userId": "A", "userName": "Amal", "response": kind}]
                )

                events = task_updated_notifications("task-1", make_task(), after)

                self.assertEqual(len(events), 1)
                self.assertEqual(events[0].recipient_ids, ("creator-1",))
                self.assertIn(expected, events[0].body)

    def test_changed_response_counts_as_new_entry(self) -> None:
        before = make_task(userResponses=[{"userId": "A", "userName": "Amal", "response": "accepted"}])
        after = make_task(userResponses=[{"userId": "A", "userName": "Amal", "response": "completed"}])

        events = task_updated_notifications("task-1", before, after)

        self.assertEqual(len(events), 1)
        self.assertIn("completed", events[0].body)

    def test_unrelated_update_fires_nothing(self) -> None:
        self.assertEqual(
            task_updated_notifications("task-1", make_task(), make_task(status="closed")), []
        )


class AnnouncementTests(unittest.TestCase):
    def test_announcement_uses_head_and_body(self) -> None:
        events = announcement_created_notifications(
            "ann-1",
            {"head": "Holiday", "body": "Office closed", "assignedUsers": ["A", "A", "B"]},
        )

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].recipient_ids, ("A", "B"))
        self.assertEqual(events[0].title, "Holiday")
        self.assertEqual(dict(events[0].data), {"type": "announcement", "id": "ann-1"})


class RoutingTests(unittest.TestCase):
    def test_routes_change_to_matching_rule(self) -> None:
        change = {
            "event_id": "evt-1",
            "collection": "serviceRequests",
            "change": "updated",
            "document_id": "task-1",
            "before": make_task(),
            "after": make_task(comments=[comment("A", "hi")]),
        }

        events = notifications_for_change(change)

        self.assertEqual(events[0].recipient_ids, ("B", "C"))

    def test_announcement_updates_are_ignored(self) -> None:
        change = {
            "event_id": "evt-2",
            "collection": "announcements",
            "change": "updated",
            "document_id": "ann-1",
            "before": {},
            "after": {"assignedUsers": ["A"]},
        }

        self.assertEqual(notifications_for_change(change), [])


if __name__ == "__main__":
    unittest.main()
