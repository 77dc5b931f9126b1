"""Adapter layer: change-record mapping, provider and store implementations."""

from .consumer_handler import handle_batch, handle_message
from .expo_push import get_receipts_via_expo_from_env, send_batch_via_expo_from_env
from .fake_senders import get_receipts_via_console, send_batch_via_console
from .firestore_store import FirestoreUserStore
from .kafka_runtime import publish_document_change_event, run_push_worker_forever
from .memory_store import InMemoryUserStore
from .payload import parse_change_payload

__all__ = [
    "FirestoreUserStore",
    "InMemoryUserStore",
    "get_receipts_via_console",
    "get_receipts_via_expo_from_env",
    "handle_batch",
    "handle_message",
    "parse_change_payload",
    "publish_document_change_event",
    "run_push_worker_forever",
    "send_batch_via_console",
    "send_batch_via_expo_from_env",
]
