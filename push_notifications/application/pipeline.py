"""Application orchestration for one notification event.

Mental model refresher:
- Application layer coordinates the use-case across domain modules.
- For one event it:
  1) resolves recipients into scope-grouped stubs
  2) builds push messages
  3) dispatches them in chunks with retry
  4) waits for receipts, then audits them
  5) prunes permanently dead tokens
- With `defer_audit`, steps 4-5 run in a background task so the caller is
  released right after dispatch.
- Callers only ever get a `PipelineResult`; nothing raises out of here.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Coroutine, Iterable, TypeVar

from ..config import DispatchSettings
from ..domain.messages import build_messages
from ..domain.recipients import ResolvedRecipients, resolve_recipients
from ..types import GetReceiptsFn, NotificationEvent, SendBatchFn, SleepFn, UserStore
from .dispatch import DispatchResult, dispatch_messages
from .prune import PruneResult, prune_tokens
from .receipts import AuditResult, audit_receipts

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class NotificationContext:
    """Collaborators for one pipeline invocation.

    `background_tasks` holds a strong reference to every task started through
    this context until it finishes; the event loop itself only keeps weak ones.
    """

    store: UserStore
    send_batch: SendBatchFn
    get_receipts: GetReceiptsFn
    settings: DispatchSettings = field(default_factory=DispatchSettings)
    sleep: SleepFn = asyncio.sleep
    defer_audit: bool = False
    background_tasks: set[asyncio.Task[Any]] = field(
        default_factory=set, compare=False, repr=False
    )

    def spawn(self, coro: Coroutine[Any, Any, T], *, name: str) -> asyncio.Task[T]:
        task = asyncio.create_task(coro, name=name)
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)
        return task


@dataclass
class PipelineResult:
    context: str
    recipients: int = 0
    messages: int = 0
    dispatch: DispatchResult | None = None
    audit: AuditResult | None = None
    prune: PruneResult | None = None
    error: str | None = None
    # Set when the audit was deferred; `audit` and `prune` fill in once it ends.
    audit_task: asyncio.Task[None] | None = field(default=None, compare=False, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.error is None


async def run_notification_pipeline(
    event: NotificationEvent,
    context: NotificationContext,
) -> PipelineResult:
    """Run the full pipeline for one event. Never raises."""
    result = PipelineResult(context=event.context, recipients=len(event.recipient_ids))
    if not event.recipient_ids:
        logger.info("push_pipeline_no_recipients context=%s", event.context)
        return result

    try:
        await _run(event, context, result)
    except Exception as exc:
        _record_failure(result, exc)
    return result


async def _run(
    event: NotificationEvent,
    context: NotificationContext,
    result: PipelineResult,
) -> None:
    settings = context.settings
    resolved = await resolve_recipients(
        event.recipient_ids,
        context.store,
        registry_field=settings.registry_field,
    )
    result.messages = resolved.message_count
    if not resolved.message_count:
        logger.info("push_pipeline_no_tokens context=%s", event.context)
        return

    logger.info(
        "push_pipeline_sending context=%s messages=%d scopes=%d",
        event.context,
        resolved.message_count,
        len(resolved.messages_by_scope),
    )
    messages = build_messages(resolved.messages_by_scope, event, options=settings.delivery)
    dispatch = await dispatch_messages(
        messages, context.send_batch, settings=settings, sleep=context.sleep
    )
    result.dispatch = dispatch

    if not dispatch.ticket_ids and not dispatch.rejected_tokens:
        logger.info(
            "push_pipeline_nothing_to_audit context=%s dropped_chunks=%d",
            event.context,
            dispatch.dropped_chunks,
        )
        return

    if context.defer_audit:
        result.audit_task = context.spawn(
            _deferred_audit(event, context, resolved, dispatch, result),
            name=f"push-audit:{event.context}",
        )
        logger.info(
            "push_pipeline_audit_deferred context=%s sent=%d delay=%.1f",
            event.context,
            dispatch.sent_messages,
            settings.receipt_delay_seconds,
        )
        return

    await _audit_and_prune(event, context, resolved, dispatch, result)


async def _audit_and_prune(
    event: NotificationEvent,
    context: NotificationContext,
    resolved: ResolvedRecipients,
    dispatch: DispatchResult,
    result: PipelineResult,
) -> None:
    settings = context.settings
    if dispatch.ticket_ids and settings.receipt_delay_seconds > 0:
        await context.sleep(settings.receipt_delay_seconds)

    audit = await audit_receipts(
        dispatch, resolved.token_to_user, context.get_receipts, settings=settings
    )
    result.audit = audit
    if audit.prune_set:
        result.prune = await prune_tokens(audit.prune_set, dispatch.token_to_scope, context.store)

    logger.info(
        "push_pipeline_done context=%s sent=%d dropped_chunks=%d pruned=%d",
        event.context,
        dispatch.sent_messages,
        dispatch.dropped_chunks,
        result.prune.removed_count if result.prune else 0,
    )


async def _deferred_audit(
    event: NotificationEvent,
    context: NotificationContext,
    resolved: ResolvedRecipients,
    dispatch: DispatchResult,
    result: PipelineResult,
) -> None:
    try:
        await _audit_and_prune(event, context, resolved, dispatch, result)
    except Exception as exc:
        _record_failure(result, exc)


def _record_failure(result: PipelineResult, exc: Exception) -> None:
    result.error = str(exc) or type(exc).__name__
    logger.error("push_pipeline_failed context=%s", result.context, exc_info=exc)


def schedule_notification(
    event: NotificationEvent,
    context: NotificationContext,
) -> asyncio.Task[PipelineResult]:
    """Start the pipeline in the background and hand back its task.

    The context keeps the task alive until it finishes, so the caller may
    await it or drop it; the business write that triggered the event never
    waits on it.
    """
    return context.spawn(
        run_notification_pipeline(event, context),
        name=f"push-notification:{event.context}",
    )


async def notify_all(
    events: Iterable[NotificationEvent],
    context: NotificationContext,
) -> list[PipelineResult]:
    """Run independent pipelines for several events concurrently."""
    tasks = [schedule_notification(event, context) for event in events]
    if not tasks:
        return []
    return list(await asyncio.gather(*tasks))
