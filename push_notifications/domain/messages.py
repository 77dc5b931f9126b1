"""Message building: stubs + event content -> send-ready push messages."""

from __future__ import annotations

from ..types import (
    DeliveryOptions,
    MessagesByScope,
    NotificationEvent,
    PushMessage,
    PushMessagesByScope,
)


def build_messages(
    messages_by_scope: MessagesByScope,
    event: NotificationEvent,
    *,
    options: DeliveryOptions = DeliveryOptions(),
) -> PushMessagesByScope:
    """Attach title/body/data and delivery defaults to every stub.

    Scope buckets and their order are preserved as-is.
    """
    data = dict(event.data)
    return {
        scope: [
            PushMessage(
                token=stub.token,
                scope=scope,
                title=event.title,
                body=event.body,
                data=data,
                sound=options.sound,
                priority=options.priority,
                channel_id=options.channel_id,
            )
            for stub in stubs
        ]
        for scope, stubs in messages_by_scope.items()
    }
