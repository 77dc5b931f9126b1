"""Consumer-handler adapter functions.

Mental model refresher:
- This is the controller-like entrypoint for change-record processing.
- Kafka code calls this after polling a record.
- Flow:
  record -> parse adapter -> trigger rules -> pipeline per event -> commit
- Notifications are fire-and-forget for the business data: once a record
  parses, it is committed whatever the delivery outcome was. Only records
  that cannot be parsed are rejected.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Sequence

from ..application.pipeline import PipelineResult
from ..domain.triggers import notifications_for_change
from ..types import EventDict, NotificationEvent
from .payload import parse_change_payload

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]
CommitFn = Callable[[Record], None]
RejectFn = Callable[[Record, str], None]
NotifyFn = Callable[[Sequence[NotificationEvent]], Awaitable[Sequence[PipelineResult]]]


async def handle_message(
    record: Record,
    *,
    notify: NotifyFn,
    commit: CommitFn,
    reject: RejectFn | None = None,
) -> dict[str, Any]:
    """Handle one incoming change record and decide commit/no-commit."""
    try:
        payload = _get_record_payload(record)
        change = parse_change_payload(payload)
    except Exception as exc:
        error = f"parse_failed: {exc}"
        if reject is not None:
            reject(record, error)
        return {
            "status": "parse_failed",
            "record_meta": _record_meta(record),
            "change": None,
            "results": [],
            "should_commit": False,
            "error": error,
        }

    events = notifications_for_change(change)
    results = list(await notify(events)) if events else []
    failed = [item for item in results if not item.succeeded]
    if failed:
        logger.warning(
            "change_notifications_incomplete event_id=%s failed=%d",
            change["event_id"],
            len(failed),
        )

    commit(record)
    return {
        "status": "notified_and_committed" if events else "nothing_to_notify",
        "record_meta": _record_meta(record),
        "change": change,
        "results": results,
        "should_commit": True,
        "error": None,
    }


async def handle_batch(
    records: Sequence[Record],
    *,
    notify: NotifyFn,
    commit: CommitFn,
    reject: RejectFn | None = None,
) -> list[dict[str, Any]]:
    """Handle a batch of records sequentially using `handle_message`."""
    results: list[dict[str, Any]] = []
    for record in records:
        result = await handle_message(record, notify=notify, commit=commit, reject=reject)
        results.append(result)
    return results


def _get_record_payload(record: Record) -> EventDict:
    payload = record.get("value")
    if not isinstance(payload, dict):
        raise ValueError("record.value must be a dict payload")
    return payload


def _record_meta(record: Record) -> dict[str, Any]:
    return {
        "topic": record.get("topic"),
        "partition": record.get("partition"),
        "offset": record.get("offset"),
    }
