#!/usr/bin/env python3
"""Publish one document-change record to Kafka for local testing."""

from __future__ import annotations

import argparse
import sys
import uuid
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from push_notifications.adapters.kafka_runtime import publish_document_change_event  # noqa: E402
from push_notifications.config import load_env_file  # noqa: E402


def main() -> int:
    load_env_file(REPO_ROOT / ".env")
    args = parse_args()
    payload = build_payload(args)
    metadata = publish_document_change_event(payload, topic=args.topic)

    print("[PUBLISHED]")
    print(f"topic={metadata['topic']}")
    print(f"partition={metadata['partition']}")
    print(f"offset={metadata['offset']}")
    print(f"event_id={payload['event_id']}")
    print(f"collection={payload['collection']} change={payload['change']}")
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Publish one task or announcement creation record for Kafka testing."
    )
    parser.add_argument(
        "--assign",
        action="append",
        required=True,
        help="User id to assign. Repeat for several users.",
    )
    parser.add_argument(
        "--announcement",
        action="store_true",
        help="Publish an announcement instead of a task.",
    )
    parser.add_argument(
        "--title",
        default="Local test",
        help="Task title or announcement head.",
    )
    parser.add_argument(
        "--document-id",
        default=None,
        help="Optional document id. Default: generated UUID suffix.",
    )
    parser.add_argument(
        "--topic",
        default=None,
        help="Override Kafka topic (defaults to KAFKA_TOPIC_DOCUMENT_CHANGES).",
    )
    return parser.parse_args()


def build_payload(args: argparse.Namespace) -> dict[str, object]:
    document_id = args.document_id or uuid.uuid4().hex[:12]
    if args.announcement:
        collection = "announcements"
        after: dict[str, object] = {
            "head": args.title,
            "body": "Local test announcement.",
            "assignedUsers": list(args.assign),
        }
    else:
        collection = "serviceRequests"
        after = {
            "title": args.title,
            "type": "maintenance",
            "priority": "normal",
            "assignedUsers": list(args.assign),
        }

    return {
        "event_id": f"evt-{uuid.uuid4()}",
        "collection": collection,
        "change": "created",
        "document_id": document_id,
        "before": None,
        "after": after,
    }


if __name__ == "__main__":
    sys.exit(main())
