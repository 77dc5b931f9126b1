"""Firestore-backed user store.

Mental model refresher:
- This module is transport glue to the document store itself.
- Reads return plain `UserRecord`s; registry validation happens in the
  domain layer, not here.
- Token removal is a single `update` per user built only from
  `ArrayRemove` operations on `tokens.<scope>` field paths.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Sequence

from ..types import Scope, Token, UserId, UserRecord

logger = logging.getLogger(__name__)


class FirestoreUserStore:
    def __init__(
        self,
        client: Any,
        *,
        collection: str = "users",
        uid_field: str = "uid",
        registry_field: str = "tokens",
    ) -> None:
        self.client = client
        self.collection = collection
        self.uid_field = uid_field
        self.registry_field = registry_field

    @classmethod
    def from_env(cls, *, registry_field: str = "tokens") -> FirestoreUserStore:
        """Build a store on the default Firebase app's async Firestore client."""
        firebase_admin, firestore_async = _import_firebase_admin()
        if not firebase_admin._apps:
            firebase_admin.initialize_app()
        return cls(
            firestore_async.client(),
            collection=os.getenv("FIRESTORE_USERS_COLLECTION", "users"),
            uid_field=os.getenv("FIRESTORE_UID_FIELD", "uid"),
            registry_field=registry_field,
        )

    async def get_user(self, user_id: UserId) -> UserRecord | None:
        snapshot = await self.client.collection(self.collection).document(user_id).get()
        if not snapshot.exists:
            return None
        return UserRecord(id=snapshot.id, data=snapshot.to_dict() or {})

    async def find_users_by_uid(self, uid: str) -> list[UserRecord]:
        firestore = _import_firestore()
        query = self.client.collection(self.collection).where(
            filter=firestore.FieldFilter(self.uid_field, "==", uid)
        )
        snapshots = await query.get()
        return [
            UserRecord(id=snapshot.id, data=snapshot.to_dict() or {})
            for snapshot in snapshots
            if snapshot.exists
        ]

    async def remove_tokens(
        self, user_id: UserId, removals: Mapping[Scope, Sequence[Token]]
    ) -> None:
        update = build_removal_update(removals, registry_field=self.registry_field)
        if not update:
            return

        not_found = _import_not_found()
        try:
            await self.client.collection(self.collection).document(user_id).update(update)
        except not_found:
            logger.info("push_prune_user_missing user_id=%s", user_id)


def build_removal_update(
    removals: Mapping[Scope, Sequence[Token]],
    *,
    registry_field: str = "tokens",
) -> dict[str, Any]:
    """Map `tokens.<scope>` field paths to `ArrayRemove` transforms."""
    firestore = _import_firestore()
    from google.cloud.firestore_v1.field_path import FieldPath

    update: dict[str, Any] = {}
    for scope, tokens in removals.items():
        if not tokens:
            continue
        field_path = FieldPath(registry_field, scope).to_api_repr()
        update[field_path] = firestore.ArrayRemove(list(tokens))
    return update


def _import_firebase_admin() -> tuple[Any, Any]:
    try:
        import firebase_admin
        from firebase_admin import firestore_async
    except Exception as exc:
        raise RuntimeError(
            "Firestore support requires `firebase-admin`. Install with: pip install firebase-admin"
        ) from exc
    return firebase_admin, firestore_async


def _import_firestore() -> Any:
    try:
        from google.cloud import firestore
    except Exception as exc:
        raise RuntimeError(
            "Firestore support requires `google-cloud-firestore`. "
            "Install with: pip install google-cloud-firestore"
        ) from exc
    return firestore


def _import_not_found() -> type[Exception]:
    from google.api_core.exceptions import NotFound

    return NotFound
