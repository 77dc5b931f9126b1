"""Domain layer: token rules, recipient resolution, message content, triggers."""

from .messages import build_messages
from .recipients import ResolvedRecipients, resolve_recipients
from .tokens import TokenRegistry, is_push_token, parse_token_registry
from .triggers import (
    announcement_created_notifications,
    notifications_for_change,
    task_created_notifications,
    task_updated_notifications,
)

__all__ = [
    "ResolvedRecipients",
    "TokenRegistry",
    "announcement_created_notifications",
    "build_messages",
    "is_push_token",
    "notifications_for_change",
    "parse_token_registry",
    "resolve_recipients",
    "task_created_notifications",
    "task_updated_notifications",
]
