"""Application layer: dispatch, receipt audit, pruning and orchestration."""

from .dispatch import ChunkOutcome, DispatchResult, dispatch_messages, send_chunk_with_retry
from .pipeline import (
    NotificationContext,
    PipelineResult,
    notify_all,
    run_notification_pipeline,
    schedule_notification,
)
from .prune import PruneResult, prune_tokens
from .receipts import AuditResult, audit_receipts

__all__ = [
    "AuditResult",
    "ChunkOutcome",
    "DispatchResult",
    "NotificationContext",
    "PipelineResult",
    "PruneResult",
    "audit_receipts",
    "dispatch_messages",
    "notify_all",
    "prune_tokens",
    "run_notification_pipeline",
    "schedule_notification",
    "send_chunk_with_retry",
]
