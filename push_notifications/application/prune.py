"""Token pruning: scoped element removal from the shared registry.

Mental model refresher:
- Each user gets exactly one store write holding every flagged token,
  grouped by scope (`tokens.<scope>` array-remove).
- Writes never replace the registry map, so concurrent token registration
  and concurrent pruning cannot clobber each other.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Mapping

from ..types import PruneSet, Scope, Token, UserId, UserStore

logger = logging.getLogger(__name__)


@dataclass
class PruneResult:
    removed: dict[UserId, dict[Scope, list[Token]]] = field(default_factory=dict)
    failed: dict[UserId, str] = field(default_factory=dict)

    @property
    def removed_count(self) -> int:
        return sum(
            len(tokens) for scopes in self.removed.values() for tokens in scopes.values()
        )


def group_by_scope(
    tokens: list[Token],
    token_to_scope: Mapping[Token, Scope],
    *,
    user_id: UserId,
) -> dict[Scope, list[Token]]:
    removals: dict[Scope, list[Token]] = {}
    for token in tokens:
        scope = token_to_scope.get(token)
        if scope is None:
            logger.warning("push_prune_unknown_scope user_id=%s token=%r", user_id, token)
            continue
        bucket = removals.setdefault(scope, [])
        if token not in bucket:
            bucket.append(token)
    return removals


async def prune_tokens(
    prune_set: PruneSet,
    token_to_scope: Mapping[Token, Scope],
    store: UserStore,
) -> PruneResult:
    """Remove flagged tokens, one atomic write per user, users in parallel."""
    plans = {
        user_id: group_by_scope(tokens, token_to_scope, user_id=user_id)
        for user_id, tokens in prune_set.items()
    }
    plans = {user_id: removals for user_id, removals in plans.items() if removals}

    user_ids = list(plans)
    outcomes = await asyncio.gather(
        *(store.remove_tokens(user_id, plans[user_id]) for user_id in user_ids),
        return_exceptions=True,
    )

    result = PruneResult()
    for user_id, outcome in zip(user_ids, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            result.failed[user_id] = str(outcome)
            logger.warning("push_prune_failed user_id=%s error=%s", user_id, outcome)
            continue
        result.removed[user_id] = plans[user_id]
        logger.info(
            "push_tokens_pruned user_id=%s scopes=%s",
            user_id,
            {scope: len(tokens) for scope, tokens in plans[user_id].items()},
        )
    return result
