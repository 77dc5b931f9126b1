"""In-memory user store for local runs and tests.

Mirrors the Firestore adapter's semantics: `remove_tokens` is an
element-wise removal per `tokens.<scope>` list, a missing user or token is a
no-op, and the registry map itself is never replaced.
"""

from __future__ import annotations

import copy
from typing import Any, Mapping, Sequence

from ..types import Scope, Token, UserId, UserRecord


class InMemoryUserStore:
    def __init__(
        self,
        users: Mapping[UserId, Mapping[str, Any]] | None = None,
        *,
        uid_field: str = "uid",
        registry_field: str = "tokens",
    ) -> None:
        self.users: dict[UserId, dict[str, Any]] = {
            user_id: copy.deepcopy(dict(data)) for user_id, data in (users or {}).items()
        }
        self.uid_field = uid_field
        self.registry_field = registry_field
        self.updates: list[tuple[UserId, dict[Scope, list[Token]]]] = []

    async def get_user(self, user_id: UserId) -> UserRecord | None:
        data = self.users.get(user_id)
        if data is None:
            return None
        return UserRecord(id=user_id, data=copy.deepcopy(data))

    async def find_users_by_uid(self, uid: str) -> list[UserRecord]:
        return [
            UserRecord(id=user_id, data=copy.deepcopy(data))
            for user_id, data in self.users.items()
            if data.get(self.uid_field) == uid
        ]

    async def remove_tokens(
        self, user_id: UserId, removals: Mapping[Scope, Sequence[Token]]
    ) -> None:
        self.updates.append(
            (user_id, {scope: list(tokens) for scope, tokens in removals.items()})
        )
        data = self.users.get(user_id)
        if data is None:
            return
        registry = data.get(self.registry_field)
        if not isinstance(registry, dict):
            return
        for scope, tokens in removals.items():
            current = registry.get(scope)
            if isinstance(current, list):
                registry[scope] = [token for token in current if token not in tokens]
