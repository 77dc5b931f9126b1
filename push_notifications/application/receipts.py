"""Receipt auditing: ticket ids -> provider receipts -> prune set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from ..config import DispatchSettings
from ..types import GetReceiptsFn, PruneSet, Scope, Token, UserId
from .dispatch import DispatchResult, chunked

logger = logging.getLogger(__name__)


@dataclass
class AuditResult:
    prune_set: PruneSet = field(default_factory=dict)
    checked: int = 0
    permanent_failures: int = 0
    transient_failures: int = 0
    missing: int = 0
    failed_queries: int = 0


async def audit_receipts(
    dispatch: DispatchResult,
    token_to_user: Mapping[Token, UserId],
    get_receipts: GetReceiptsFn,
    *,
    settings: DispatchSettings = DispatchSettings(),
) -> AuditResult:
    """Fetch receipts for every successful ticket and collect dead tokens.

    Tickets are queried per scope, since each scope is its own credential
    namespace. Receipt queries are not retried: a chunk whose query fails is
    logged and never audited.
    """
    audit = AuditResult()

    for token in dispatch.rejected_tokens:
        _flag_token(token, token_to_user, audit, source="ticket")

    for scope, scope_ticket_ids in _tickets_by_scope(dispatch).items():
        for ticket_ids in chunked(scope_ticket_ids, settings.receipt_chunk_size):
            await _audit_chunk(scope, ticket_ids, dispatch, token_to_user, get_receipts, audit)

    return audit


def _tickets_by_scope(dispatch: DispatchResult) -> dict[Scope, list[str]]:
    grouped: dict[Scope, list[str]] = {}
    for ticket_id in dispatch.ticket_ids:
        token = dispatch.ticket_to_token.get(ticket_id)
        scope = dispatch.token_to_scope.get(token) if token is not None else None
        if scope is None:
            logger.warning("push_receipt_unknown_ticket ticket_id=%s", ticket_id)
            continue
        grouped.setdefault(scope, []).append(ticket_id)
    return grouped


async def _audit_chunk(
    scope: Scope,
    ticket_ids: Sequence[str],
    dispatch: DispatchResult,
    token_to_user: Mapping[Token, UserId],
    get_receipts: GetReceiptsFn,
    audit: AuditResult,
) -> None:
    try:
        receipts = await get_receipts(ticket_ids, scope)
    except Exception as exc:
        audit.failed_queries += 1
        logger.warning(
            "push_receipt_query_failed scope=%s tickets=%d error=%s",
            scope,
            len(ticket_ids),
            exc,
        )
        return

    for ticket_id in ticket_ids:
        receipt = receipts.get(ticket_id)
        if receipt is None:
            audit.missing += 1
            logger.info("push_receipt_missing ticket_id=%s", ticket_id)
            continue

        audit.checked += 1
        if receipt.status == "ok":
            continue

        if not receipt.is_permanent_failure:
            audit.transient_failures += 1
            logger.warning(
                "push_receipt_error ticket_id=%s error_kind=%s message=%s",
                ticket_id,
                receipt.error_kind,
                receipt.message,
            )
            continue

        audit.permanent_failures += 1
        _flag_token(dispatch.ticket_to_token[ticket_id], token_to_user, audit, source="receipt")


def _flag_token(
    token: Token,
    token_to_user: Mapping[Token, UserId],
    audit: AuditResult,
    *,
    source: str,
) -> None:
    user_id = token_to_user.get(token)
    if user_id is None:
        logger.warning("push_prune_unknown_token source=%s token=%r", source, token)
        return

    tokens = audit.prune_set.setdefault(user_id, [])
    if token not in tokens:
        tokens.append(token)
