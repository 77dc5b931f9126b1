"""Recipient resolution: user identifiers -> scope-grouped message stubs.

Mental model refresher:
- Callers pass whatever identifiers the task/announcement documents carry.
  These are usually user document ids, but older documents hold the auth
  `uid` instead, so both lookups run for every identifier.
- One bad user (missing document, malformed registry, bad token) is logged
  and skipped; it never aborts resolution for the others.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from ..types import (
    MessagesByScope,
    MessageStub,
    RegistryShapeError,
    Token,
    UserId,
    UserRecord,
    UserStore,
)
from .tokens import is_push_token, parse_token_registry

logger = logging.getLogger(__name__)


@dataclass
class ResolvedRecipients:
    messages_by_scope: MessagesByScope = field(default_factory=dict)
    token_to_user: dict[Token, UserId] = field(default_factory=dict)

    @property
    def message_count(self) -> int:
        return sum(len(stubs) for stubs in self.messages_by_scope.values())


async def resolve_recipients(
    user_ids: Sequence[UserId],
    store: UserStore,
    *,
    registry_field: str = "tokens",
) -> ResolvedRecipients:
    """Resolve user identifiers into per-scope message stubs."""
    identifiers = list(dict.fromkeys(item for item in user_ids if item))
    lookups = await asyncio.gather(
        *(_lookup_user(identifier, store) for identifier in identifiers)
    )

    users: dict[UserId, UserRecord] = {}
    for identifier, records in zip(identifiers, lookups):
        if not records:
            logger.warning("push_recipient_not_found user_ref=%s", identifier)
            continue
        for record in records:
            users.setdefault(record.id, record)

    resolved = ResolvedRecipients()
    for record in users.values():
        _collect_user_tokens(record, registry_field, resolved)
    return resolved


async def _lookup_user(identifier: str, store: UserStore) -> list[UserRecord]:
    by_id, by_uid = await asyncio.gather(
        store.get_user(identifier),
        store.find_users_by_uid(identifier),
        return_exceptions=True,
    )

    records: list[UserRecord] = []
    for lookup, outcome in (("id", by_id), ("uid", by_uid)):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning(
                "push_recipient_lookup_failed user_ref=%s lookup=%s error=%s",
                identifier,
                lookup,
                outcome,
            )
        elif isinstance(outcome, list):
            records.extend(outcome)
        elif outcome is not None:
            records.append(outcome)
    return records


def _collect_user_tokens(
    record: UserRecord,
    registry_field: str,
    resolved: ResolvedRecipients,
) -> None:
    try:
        registry = parse_token_registry(record.data.get(registry_field))
    except RegistryShapeError as exc:
        logger.warning("push_registry_invalid user_id=%s error=%s", record.id, exc)
        return

    if not registry:
        logger.info("push_registry_empty user_id=%s", record.id)
        return

    for scope, tokens in registry:
        for token in tokens:
            if not is_push_token(token):
                logger.warning(
                    "push_token_invalid user_id=%s scope=%s token=%r", record.id, scope, token
                )
                continue
            if token in resolved.token_to_user:
                logger.debug(
                    "push_token_duplicate user_id=%s scope=%s owner=%s",
                    record.id,
                    scope,
                    resolved.token_to_user[token],
                )
                continue
            resolved.messages_by_scope.setdefault(scope, []).append(
                MessageStub(token=token, scope=scope)
            )
            resolved.token_to_user[token] = record.id
