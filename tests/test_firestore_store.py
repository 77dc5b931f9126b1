from __future__ import annotations

import unittest
from unittest import mock

from google.api_core.exceptions import NotFound
from google.cloud import firestore

from push_notifications.adapters.firestore_store import FirestoreUserStore, build_removal_update


def make_snapshot(doc_id: str, data: dict | None, *, exists: bool = True) -> mock.MagicMock:
    snapshot = mock.MagicMock()
    snapshot.id = doc_id
    snapshot.exists = exists
    snapshot.to_dict.return_value = data
    return snapshot


def make_client() -> tuple[mock.MagicMock, mock.MagicMock]:
    client = mock.MagicMock()
    document = client.collection.return_value.document.return_value
    document.get = mock.AsyncMock()
    document.update = mock.AsyncMock()
    return client, document


class BuildRemovalUpdateTests(unittest.TestCase):
    def test_maps_scopes_to_array_remove_field_paths(self) -> None:
        update = build_removal_update(
            {"scopeA": ["tok1", "tok2"], "scopeB": [], "scopeC": ["tok3"]}
        )

        self.assertEqual(
            update,
            {
                "tokens.scopeA": firestore.ArrayRemove(["tok1", "tok2"]),
                "tokens.scopeC": firestore.ArrayRemove(["tok3"]),
            },
        )

    def test_scopes_with_punctuation_are_quoted(self) -> None:
        update = build_removal_update({"field-app": ["tok1"]}, registry_field="pushTokens")

        self.assertEqual(list(update), ["pushTokens.`field-app`"])


class FirestoreUserStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_get_user_returns_record_or_none(self) -> None:
        client, document = make_client()
        document.get.side_effect = [
            make_snapshot("U1", {"tokens": {"scopeA": ["tok1"]}}),
            make_snapshot("U2", None, exists=False),
        ]
        store = FirestoreUserStore(client)

        found = await store.get_user("U1")
        missing = await store.get_user("U2")

        self.assertEqual(found.id, "U1")
        self.assertEqual(found.data, {"tokens": {"scopeA": ["tok1"]}})
        self.assertIsNone(missing)
        client.collection.assert_called_with("users")

    async def test_find_users_by_uid_queries_uid_field(self) -> None:
        client = mock.MagicMock()
        query = client.collection.return_value.where.return_value
        query.get = mock.AsyncMock(return_value=[make_snapshot("doc-7", {"uid": "auth-7"})])
        store = FirestoreUserStore(client, collection="members", uid_field="authUid")

        users = await store.find_users_by_uid("auth-7")

        self.assertEqual([user.id for user in users], ["doc-7"])
        client.collection.assert_called_with("members")
        field_filter = client.collection.return_value.where.call_args.kwargs["filter"]
        self.assertEqual(field_filter.field_path, "authUid")
        self.assertEqual(field_filter.value, "auth-7")

    async def test_remove_tokens_issues_single_update(self) -> None:
        client, document = make_client()
        store = FirestoreUserStore(client)

        await store.remove_tokens("U1", {"scopeA": ["tok2"], "scopeB": ["tok3"]})

        document.update.assert_awaited_once_with(
            {
                "tokens.scopeA": firestore.ArrayRemove(["tok2"]),
                "tokens.scopeB": firestore.ArrayRemove(["tok3"]),
            }
        )

    async def test_remove_tokens_skips_empty_removals(self) -> None:
        client, document = make_client()
        store = FirestoreUserStore(client)

        await store.remove_tokens("U1", {"scopeA": []})

        document.update.assert_not_awaited()

    async def test_remove_tokens_for_missing_user_is_a_no_op(self) -> None:
        client, document = make_client()
        document.update.side_effect = NotFound("no document")
        store = FirestoreUserStore(client)

        with self.assertLogs("push_notifications.adapters.firestore_store", level="INFO") as logs:
            await store.remove_tokens("ghost", {"scopeA": ["tok1"]})

        self.assertIn("push_prune_user_missing user_id=ghost", "\n".join(logs.output))


if __name__ == "__main__":
    unittest.main()
