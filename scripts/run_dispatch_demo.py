#!/usr/bin/env python3
"""Run the change-record -> push pipeline locally without Kafka, Expo or Firestore.

Uses an in-memory user store and console senders. One device is reported as
no longer registered so the pruning step has something to do.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Sequence

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from push_notifications.adapters.consumer_handler import handle_batch  # noqa: E402
from push_notifications.adapters.fake_senders import (  # noqa: E402
    get_receipts_via_console,
    send_batch_via_console,
)
from push_notifications.adapters.memory_store import InMemoryUserStore  # noqa: E402
from push_notifications.application.pipeline import NotificationContext, notify_all  # noqa: E402
from push_notifications.config import DispatchSettings  # noqa: E402
from push_notifications.types import NotificationEvent, PushReceipt  # noqa: E402

DEAD_TOKEN = "ExponentPushToken[dead-device]"


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    records = load_records(args.records_file)
    return asyncio.run(run(records))


async def run(records: list[dict[str, Any]]) -> int:
    store = InMemoryUserStore(sample_users())
    dead_tickets: set[str] = set()

    async def send_batch(messages: Sequence[Any]) -> list[Any]:
        tickets = await send_batch_via_console(messages)
        for message, ticket in zip(messages, tickets):
            if message.token == DEAD_TOKEN and ticket.ticket_id:
                dead_tickets.add(ticket.ticket_id)
        return tickets

    async def get_receipts(ticket_ids: Sequence[str], scope: str) -> dict[str, PushReceipt]:
        receipts = await get_receipts_via_console(ticket_ids, scope)
        for ticket_id in dead_tickets.intersection(ticket_ids):
            receipts[ticket_id] = PushReceipt(
                status="error",
                error_kind="DeviceNotRegistered",
                message="device no longer registered",
            )
        return receipts

    context = NotificationContext(
        store=store,
        send_batch=send_batch,
        get_receipts=get_receipts,
        settings=DispatchSettings(retry_base_delay_seconds=0.0, receipt_delay_seconds=0.0),
    )

    async def notify(events: Sequence[NotificationEvent]) -> list[Any]:
        return await notify_all(events, context)

    committed: list[int] = []
    rejected: list[tuple[int, str]] = []
    results = await handle_batch(
        records,
        notify=notify,
        commit=lambda record: committed.append(int(record.get("offset", -1))),
        reject=lambda record, reason: rejected.append((int(record.get("offset", -1)), reason)),
    )

    print("")
    print("[BATCH SUMMARY]")
    for result in results:
        meta = result["record_meta"]
        print(
            f"offset={meta['offset']} status={result['status']} "
            f"pipelines={len(result['results'])} error={result['error']}"
        )

    print("")
    print("[OFFSETS]")
    print(f"committed={committed}")
    print(f"rejected={rejected}")

    print("")
    print("[REGISTRY]")
    for user_id, data in store.users.items():
        print(f"{user_id} tokens={data.get('tokens')}")
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Execute trigger rules and the dispatch pipeline with sample records."
    )
    parser.add_argument(
        "--records-file",
        type=Path,
        default=None,
        help="Optional JSON file holding a list of Kafka-like records.",
    )
    return parser.parse_args()


def load_records(records_file: Path | None) -> list[dict[str, Any]]:
    if records_file is None:
        return sample_records()
    with records_file.open("r", encoding="utf-8") as file_handle:
        return json.load(file_handle)


def sample_users() -> dict[str, dict[str, Any]]:
    return {
        "user-a": {
            "uid": "auth-a",
            "name": "Amal",
            "tokens": {
                "field-app": ["ExponentPushToken[aaa-phone]", DEAD_TOKEN],
                "admin-app": ["ExponentPushToken[aaa-tablet]"],
            },
        },
        "user-b": {
            "uid": "auth-b",
            "name": "Bilal",
            "tokens": {"field-app": ["ExponentPushToken[bbb-phone]", "not-a-token"]},
        },
        "user-c": {"uid": "auth-c", "name": "Chadi", "tokens": ["legacy-shape"]},
    }


def sample_records() -> list[dict[str, Any]]:
    task = {
        "title": "Replace router",
        "type": "installation",
        "priority": "high",
        "creatorId": "user-c",
        "assignedUsers": ["user-a", "auth-b"],
        "comments": [],
    }
    return [
        {
            "topic": "documents.changed",
            "partition": 0,
            "offset": 100,
            "value": {
                "event_id": "evt-100",
                "collection": "serviceRequests",
                "change": "created",
                "document_id": "task-1",
                "before": None,
                "after": task,
            },
        },
        {
            "topic": "documents.changed",
            "partition": 0,
            "offset": 101,
            "value": {
                "event_id": "evt-101",
                "collection": "serviceRequests",
                "change": "updated",
                "document_id": "task-1",
                "before": task,
                "after": task
                | {
                    "comments": [
                        {"userId": "user-a", "userName": "Amal", "content": "On my way."}
                    ]
                },
            },
        },
        {
            "topic": "documents.changed",
            "partition": 0,
            "offset": 102,
            "value": {"collection": "serviceRequests", "change": "created"},
        },
    ]


if __name__ == "__main__":
    sys.exit(main())
