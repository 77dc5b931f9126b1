#!/usr/bin/env python3
"""Run the Kafka push-notification worker.

This worker consumes document-change records (task and announcement
creates/updates), sends pushes through Expo and prunes dead tokens in
Firestore.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from push_notifications.adapters.kafka_runtime import run_push_worker_forever  # noqa: E402
from push_notifications.config import load_env_file  # noqa: E402


def main() -> int:
    args = parse_args()
    load_env_file(args.env_file)
    logging.basicConfig(
        level=args.log_level or os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    return run_push_worker_forever()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run Kafka consumer loop for push notifications."
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=REPO_ROOT / ".env",
        help="Env file to load before reading configuration. Existing variables win.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL (e.g. DEBUG to see per-record commits).",
    )
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(main())
