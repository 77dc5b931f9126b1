from __future__ import annotations

import unittest
from typing import Any

from push_notifications.adapters.memory_store import InMemoryUserStore
from push_notifications.domain.messages import build_messages
from push_notifications.domain.recipients import resolve_recipients
from push_notifications.domain.tokens import is_push_token, parse_token_registry
from push_notifications.types import (
    DeliveryOptions,
    MessageStub,
    NotificationEvent,
    RegistryShapeError,
    UserRecord,
)

TOK1 = "ExponentPushToken[tok1]"
TOK2 = "ExponentPushToken[tok2]"
TOK3 = "ExpoPushToken[tok3]"
TOK4 = "ExponentPushToken[tok4]"

RESOLVER_LOGGER = "push_notifications.domain.recipients"


class FailingLookupStore(InMemoryUserStore):
    def __init__(self, users: dict[str, Any], *, failing_id: str) -> None:
        super().__init__(users)
        self.failing_id = failing_id

    async def get_user(self, user_id: str) -> UserRecord | None:
        if user_id == self.failing_id:
            raise RuntimeError("document store unavailable")
        return await super().get_user(user_id)


class TokenFormatTests(unittest.TestCase):
    def test_is_push_token_accepts_provider_formats(self) -> None:
        self.assertTrue(is_push_token("ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]"))
        self.assertTrue(is_push_token("ExpoPushToken[abc]"))
        self.assertTrue(is_push_token("F5741A13-BCDA-434B-A316-5DC0E6FFA94F"))

    def test_is_push_token_rejects_malformed_values(self) -> None:
        self.assertFalse(is_push_token("ExponentPushToken[]"))
        self.assertFalse(is_push_token("not-a-token"))
        self.assertFalse(is_push_token(""))
        self.assertFalse(is_push_token(None))
        self.assertFalse(is_push_token(42))


class TokenRegistryTests(unittest.TestCase):
    def test_parse_token_registry_preserves_order(self) -> None:
        registry = parse_token_registry({"scopeA": [TOK1, TOK2], "scopeB": [TOK3]})

        self.assertEqual(
            list(registry), [("scopeA", (TOK1, TOK2)), ("scopeB", (TOK3,))]
        )
        self.assertEqual(len(registry), 2)

    def test_parse_token_registry_rejects_bad_shapes(self) -> None:
        for raw in (None, ["flat", "list"], "text", {"scopeA": "tok"}, {"scopeA": [1, 2]}):
            with self.subTest(raw=raw):
                with self.assertRaises(RegistryShapeError):
                    parse_token_registry(raw)


class ResolveRecipientsTests(unittest.IsolatedAsyncioTestCase):
    async def test_groups_tokens_by_scope_and_maps_tokens_to_user(self) -> None:
        store = InMemoryUserStore(
            {"U1": {"tokens": {"scopeA": [TOK1, TOK2], "scopeB": [TOK3]}}}
        )

        resolved = await resolve_recipients(["U1"], store)

        self.assertEqual(
            resolved.messages_by_scope,
            {
                "scopeA": [MessageStub(TOK1, "scopeA"), MessageStub(TOK2, "scopeA")],
                "scopeB": [MessageStub(TOK3, "scopeB")],
            },
        )
        self.assertEqual(resolved.token_to_user, {TOK1: "U1", TOK2: "U1", TOK3: "U1"})

    async def test_malformed_tokens_are_skipped_with_warning(self) -> None:
        store = InMemoryUserStore(
            {"U1": {"tokens": {"scopeA": ["garbage", TOK1, "ExponentPushToken[]"]}}}
        )

        with self.assertLogs(RESOLVER_LOGGER, level="WARNING") as logs:
            resolved = await resolve_recipients(["U1"], store)

        tokens = [stub.token for stub in resolved.messages_by_scope["scopeA"]]
        self.assertEqual(tokens, [TOK1])
        self.assertNotIn("garbage", resolved.token_to_user)
        self.assertEqual(
            sum("push_token_invalid" in line for line in logs.output), 2
        )

    async def test_bad_users_do_not_abort_resolution(self) -> None:
        store = InMemoryUserStore(
            {
                "U1": {"tokens": ["flat-legacy-list"]},
                "U2": {"name": "no registry"},
                "U3": {"tokens": {"scopeA": [TOK4]}},
            }
        )

        with self.assertLogs(RESOLVER_LOGGER, level="WARNING") as logs:
            resolved = await resolve_recipients(["U1", "U2", "ghost", "U3"], store)

        self.assertEqual(resolved.messages_by_scope, {"scopeA": [MessageStub(TOK4, "scopeA")]})
        self.assertEqual(resolved.token_to_user, {TOK4: "U3"})
        output = "\n".join(logs.output)
        self.assertIn("push_registry_invalid user_id=U1", output)
        self.assertIn("push_registry_invalid user_id=U2", output)
        self.assertIn("push_recipient_not_found user_ref=ghost", output)

    async def test_document_id_and_uid_resolve_to_one_user(self) -> None:
        store = InMemoryUserStore(
            {"doc-1": {"uid": "auth-1", "tokens": {"scopeA": [TOK1]}}}
        )

        resolved = await resolve_recipients(["doc-1", "auth-1", "doc-1"], store)

        self.assertEqual(resolved.messages_by_scope, {"scopeA": [MessageStub(TOK1, "scopeA")]})
        self.assertEqual(resolved.token_to_user, {TOK1: "doc-1"})

    async def test_lookup_failure_skips_only_that_identifier(self) -> None:
        store = FailingLookupStore(
            {
                "U1": {"tokens": {"scopeA": [TOK1]}},
                "U2": {"tokens": {"scopeA": [TOK2]}},
            },
            failing_id="U1",
        )

        with self.assertLogs(RESOLVER_LOGGER, level="WARNING") as logs:
            resolved = await resolve_recipients(["U1", "U2"], store)

        self.assertEqual(resolved.token_to_user, {TOK2: "U2"})
        self.assertIn("push_recipient_lookup_failed user_ref=U1", "\n".join(logs.output))

    async def test_uid_match_survives_failed_id_lookup(self) -> None:
        store = FailingLookupStore(
            {"doc-1": {"uid": "auth-1", "tokens": {"scopeA": [TOK1]}}},
            failing_id="auth-1",
        )

        with self.assertLogs(RESOLVER_LOGGER, level="WARNING") as logs:
            resolved = await resolve_recipients(["auth-1"], store)

        self.assertEqual(resolved.token_to_user, {TOK1: "doc-1"})
        self.assertIn(
            "push_recipient_lookup_failed user_ref=auth-1 lookup=id", "\n".join(logs.output)
        )

    async def test_same_token_under_two_users_is_queued_once(self) -> None:
        store = InMemoryUserStore(
            {
                "U1": {"tokens": {"scopeA": [TOK1]}},
                "U2": {"tokens": {"scopeA": [TOK1, TOK2]}},
            }
        )

        resolved = await resolve_recipients(["U1", "U2"], store)

        tokens = [stub.token for stub in resolved.messages_by_scope["scopeA"]]
        self.assertEqual(tokens, [TOK1, TOK2])
        self.assertEqual(resolved.token_to_user, {TOK1: "U1", TOK2: "U2"})


class BuildMessagesTests(unittest.TestCase):
    def test_build_messages_attaches_content_and_defaults(self) -> None:
        event = NotificationEvent.for_recipients(
            ["U1"], title="New task", body="Tap for details", data={"id": "task-1"}
        )
        stubs = {
            "scopeA": [MessageStub(TOK1, "scopeA"), MessageStub(TOK2, "scopeA")],
            "scopeB": [MessageStub(TOK3, "scopeB")],
        }

        messages = build_messages(stubs, event)

        self.assertEqual(list(messages), ["scopeA", "scopeB"])
        self.assertEqual([m.token for m in messages["scopeA"]], [TOK1, TOK2])
        first = messages["scopeA"][0]
        self.assertEqual(first.title, "New task")
        self.assertEqual(first.body, "Tap for details")
        self.assertEqual(dict(first.data), {"id": "task-1"})
        self.assertEqual(first.sound, "default")
        self.assertEqual(messages["scopeB"][0].scope, "scopeB")

    def test_build_messages_uses_given_delivery_options(self) -> None:
        event = NotificationEvent.for_recipients(["U1"], title="t", body="b")
        options = DeliveryOptions(sound=None, priority="high", channel_id="default")

        messages = build_messages({"scopeA": [MessageStub(TOK1, "scopeA")]}, event, options=options)

        message = messages["scopeA"][0]
        self.assertIsNone(message.sound)
        self.assertEqual(message.priority, "high")
        self.assertEqual(message.channel_id, "default")


if __name__ == "__main__":
    unittest.main()
