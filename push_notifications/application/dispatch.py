"""Batch dispatch: chunking, bounded retry with backoff, ticket correlation.

Mental model refresher:
- Each scope is sent on its own; a provider call never mixes scopes.
- Each chunk gets `max_send_attempts` tries. Provider exceptions are turned
  into `SendFailed` values right here, so nothing above this module has to
  catch provider errors.
- A chunk that exhausts its attempts is dropped and logged; it does not stop
  other chunks or scopes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from ..config import DispatchSettings
from ..types import (
    PERMANENT_ERROR_KINDS,
    PushMessage,
    PushMessagesByScope,
    PushTicket,
    Scope,
    SendBatchFn,
    SendFailed,
    SendResult,
    SendSucceeded,
    SleepFn,
    Token,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkOutcome:
    scope: Scope
    size: int
    attempts: int
    result: SendResult

    @property
    def delivered(self) -> bool:
        return isinstance(self.result, SendSucceeded)


@dataclass
class DispatchResult:
    ticket_ids: list[str] = field(default_factory=list)
    ticket_to_token: dict[str, Token] = field(default_factory=dict)
    token_to_scope: dict[Token, Scope] = field(default_factory=dict)
    rejected_tokens: list[Token] = field(default_factory=list)
    chunks: list[ChunkOutcome] = field(default_factory=list)

    @property
    def dropped_chunks(self) -> int:
        return sum(1 for chunk in self.chunks if not chunk.delivered)

    @property
    def sent_messages(self) -> int:
        return sum(chunk.size for chunk in self.chunks if chunk.delivered)

    def merge(self, other: DispatchResult) -> None:
        self.ticket_ids.extend(other.ticket_ids)
        self.ticket_to_token.update(other.ticket_to_token)
        self.token_to_scope.update(other.token_to_scope)
        self.rejected_tokens.extend(other.rejected_tokens)
        self.chunks.extend(other.chunks)


def chunked(items: Sequence[object], size: int) -> list[list[object]]:
    if size <= 0:
        raise ValueError("chunk size must be > 0")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


async def dispatch_messages(
    messages_by_scope: PushMessagesByScope,
    send_batch: SendBatchFn,
    *,
    settings: DispatchSettings = DispatchSettings(),
    sleep: SleepFn = asyncio.sleep,
) -> DispatchResult:
    """Send every scope's messages and collect ticket correlations."""
    scopes = [(scope, messages) for scope, messages in messages_by_scope.items() if messages]

    if settings.concurrent_scopes:
        partials = await asyncio.gather(
            *(
                _dispatch_scope(scope, messages, send_batch, settings, sleep)
                for scope, messages in scopes
            )
        )
    else:
        partials = []
        for scope, messages in scopes:
            partials.append(await _dispatch_scope(scope, messages, send_batch, settings, sleep))

    result = DispatchResult()
    for partial in partials:
        result.merge(partial)
    return result


async def _dispatch_scope(
    scope: Scope,
    messages: Sequence[PushMessage],
    send_batch: SendBatchFn,
    settings: DispatchSettings,
    sleep: SleepFn,
) -> DispatchResult:
    result = DispatchResult()
    for chunk in chunked(messages, settings.send_chunk_size):
        outcome = await send_chunk_with_retry(
            scope, chunk, send_batch, settings=settings, sleep=sleep
        )
        result.chunks.append(outcome)

        if isinstance(outcome.result, SendFailed):
            logger.warning(
                "push_chunk_dropped scope=%s size=%d attempts=%d error=%s",
                scope,
                outcome.size,
                outcome.attempts,
                outcome.result.error,
            )
            continue

        _record_tickets(scope, chunk, outcome.result.tickets, result)
    return result


async def send_chunk_with_retry(
    scope: Scope,
    chunk: Sequence[PushMessage],
    send_batch: SendBatchFn,
    *,
    settings: DispatchSettings = DispatchSettings(),
    sleep: SleepFn = asyncio.sleep,
) -> ChunkOutcome:
    """Try one chunk up to `max_send_attempts` times.

    Backoff only sits between failed attempts: 1s, 2s, 4s... with the default
    base delay. The last attempt is never followed by a delay.
    """
    result: SendResult = SendFailed(error="not attempted")
    attempt = 0
    for attempt in range(1, settings.max_send_attempts + 1):
        result = await _attempt_send(chunk, send_batch)
        if isinstance(result, SendSucceeded):
            break

        logger.info(
            "push_send_attempt_failed scope=%s attempt=%d/%d error=%s",
            scope,
            attempt,
            settings.max_send_attempts,
            result.error,
        )
        if attempt < settings.max_send_attempts:
            await sleep(settings.backoff_delay(attempt))

    return ChunkOutcome(scope=scope, size=len(chunk), attempts=attempt, result=result)


async def _attempt_send(chunk: Sequence[PushMessage], send_batch: SendBatchFn) -> SendResult:
    try:
        tickets = tuple(await send_batch(chunk))
    except Exception as exc:
        return SendFailed(error=str(exc) or type(exc).__name__)

    if len(tickets) != len(chunk):
        return SendFailed(
            error=f"provider returned {len(tickets)} tickets for {len(chunk)} messages"
        )
    return SendSucceeded(tickets=tickets)


def _record_tickets(
    scope: Scope,
    chunk: Sequence[PushMessage],
    tickets: Sequence[PushTicket],
    result: DispatchResult,
) -> None:
    # Tickets come back in the same order as the messages they answer.
    for message, ticket in zip(chunk, tickets):
        if ticket.status == "ok" and ticket.ticket_id:
            result.ticket_ids.append(ticket.ticket_id)
            result.ticket_to_token[ticket.ticket_id] = message.token
            result.token_to_scope[message.token] = scope
        elif ticket.error_kind in PERMANENT_ERROR_KINDS:
            result.rejected_tokens.append(message.token)
            result.token_to_scope[message.token] = scope
            logger.info(
                "push_ticket_rejected scope=%s error_kind=%s", scope, ticket.error_kind
            )
        else:
            logger.warning(
                "push_ticket_error scope=%s error_kind=%s message=%s",
                scope,
                ticket.error_kind,
                ticket.message,
            )
