"""Payload adapter functions.

Mental model refresher:
- This is an adapter/edge module.
- It translates transport-shaped data (a document-change record) into the
  internal change dictionary used by the trigger rules.
- It validates shape and required fields, but it does not decide who gets
  notified.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..domain.triggers import ANNOUNCEMENT_COLLECTION, TASK_COLLECTION
from ..types import Event, EventDict

KNOWN_COLLECTIONS = frozenset({TASK_COLLECTION, ANNOUNCEMENT_COLLECTION})
KNOWN_CHANGES = frozenset({"created", "updated"})


def parse_change_payload(payload: Event) -> EventDict:
    """Normalize a change record into a plain change dictionary.

    This is the first handoff from transport data to internal data.
    """
    collection = _as_required_str(payload.get("collection"), "collection")
    if collection not in KNOWN_COLLECTIONS:
        raise ValueError(f"Unsupported collection: {collection}")

    change = _as_required_str(payload.get("change"), "change")
    if change not in KNOWN_CHANGES:
        raise ValueError(f"Unsupported change type: {change}")

    after = _as_snapshot(payload.get("after"), "after")
    before = payload.get("before")
    if change == "updated":
        before = _as_snapshot(before, "before")
    elif before is not None:
        before = _as_snapshot(before, "before")

    return {
        "event_id": _as_required_str(payload.get("event_id"), "event_id"),
        "collection": collection,
        "change": change,
        "document_id": _as_required_str(payload.get("document_id"), "document_id"),
        "before": before,
        "after": after,
    }


def _as_required_str(value: Any, field_name: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValueError(f"Missing required field: {field_name}")
    return text


def _as_snapshot(value: Any, field_name: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Field {field_name} must be a document object")
    return dict(value)
