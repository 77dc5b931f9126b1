"""Push notification dispatch and device-token lifecycle engine.

Module layout by abstraction layer:
- adapters: change-record mapping, Expo/Firestore/Kafka glue, local fakes
- domain: token rules, recipient resolution, message content, trigger rules
- application: batch dispatch, receipt audit, pruning, orchestration
"""

from .adapters.consumer_handler import handle_batch, handle_message
from .adapters.expo_push import get_receipts_via_expo_from_env, send_batch_via_expo_from_env
from .adapters.fake_senders import get_receipts_via_console, send_batch_via_console
from .adapters.memory_store import InMemoryUserStore
from .adapters.payload import parse_change_payload
from .application.pipeline import (
    NotificationContext,
    PipelineResult,
    notify_all,
    run_notification_pipeline,
    schedule_notification,
)
from .config import DispatchSettings
from .domain.triggers import (
    announcement_created_notifications,
    notifications_for_change,
    task_created_notifications,
    task_updated_notifications,
)
from .types import NotificationEvent, PushMessage, PushReceipt, PushTicket

__all__ = [
    "DispatchSettings",
    "InMemoryUserStore",
    "NotificationContext",
    "NotificationEvent",
    "PipelineResult",
    "PushMessage",
    "PushReceipt",
    "PushTicket",
    "announcement_created_notifications",
    "get_receipts_via_console",
    "get_receipts_via_expo_from_env",
    "handle_batch",
    "handle_message",
    "notifications_for_change",
    "notify_all",
    "parse_change_payload",
    "run_notification_pipeline",
    "schedule_notification",
    "send_batch_via_console",
    "send_batch_via_expo_from_env",
    "task_created_notifications",
    "task_updated_notifications",
]
