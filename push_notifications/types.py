"""Shared types for the push notification package."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Mapping, Protocol, Sequence

UserId = str
Token = str
Scope = str

Event = Mapping[str, Any]
EventDict = dict[str, Any]

TicketStatus = Literal["ok", "error"]

PERMANENT_ERROR_KINDS = frozenset({"DeviceNotRegistered"})


@dataclass(frozen=True)
class NotificationEvent:
    recipient_ids: tuple[UserId, ...]
    title: str
    body: str
    data: Mapping[str, Any] = field(default_factory=dict)
    context: str = "notification"

    @classmethod
    def for_recipients(
        cls,
        recipient_ids: Sequence[UserId],
        *,
        title: str,
        body: str,
        data: Mapping[str, Any] | None = None,
        context: str = "notification",
    ) -> NotificationEvent:
        """Build an event, dropping blank and repeated recipient ids."""
        unique = tuple(dict.fromkeys(item for item in recipient_ids if item))
        return cls(
            recipient_ids=unique,
            title=title,
            body=body,
            data=dict(data or {}),
            context=context,
        )


@dataclass(frozen=True)
class MessageStub:
    token: Token
    scope: Scope


@dataclass(frozen=True)
class DeliveryOptions:
    sound: str | None = "default"
    priority: str | None = None
    channel_id: str | None = None


@dataclass(frozen=True)
class PushMessage:
    token: Token
    scope: Scope
    title: str
    body: str
    data: Mapping[str, Any] = field(default_factory=dict)
    sound: str | None = "default"
    priority: str | None = None
    channel_id: str | None = None


@dataclass(frozen=True)
class PushTicket:
    status: TicketStatus
    ticket_id: str | None = None
    error_kind: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class PushReceipt:
    status: TicketStatus
    error_kind: str | None = None
    message: str | None = None

    @property
    def is_permanent_failure(self) -> bool:
        return self.status == "error" and self.error_kind in PERMANENT_ERROR_KINDS


@dataclass(frozen=True)
class UserRecord:
    """One user document as read from the store."""

    id: UserId
    data: Mapping[str, Any]


@dataclass(frozen=True)
class SendSucceeded:
    tickets: tuple[PushTicket, ...]


@dataclass(frozen=True)
class SendFailed:
    error: str


SendResult = SendSucceeded | SendFailed

SendBatchFn = Callable[[Sequence[PushMessage]], Awaitable[Sequence[PushTicket]]]
GetReceiptsFn = Callable[[Sequence[str], Scope], Awaitable[Mapping[str, PushReceipt]]]
SleepFn = Callable[[float], Awaitable[None]]

MessagesByScope = dict[Scope, list[MessageStub]]
PushMessagesByScope = dict[Scope, list[PushMessage]]
PruneSet = dict[UserId, list[Token]]


class UserStore(Protocol):
    """Document-store operations the engine depends on."""

    async def get_user(self, user_id: UserId) -> UserRecord | None: ...

    async def find_users_by_uid(self, uid: str) -> list[UserRecord]: ...

    async def remove_tokens(
        self, user_id: UserId, removals: Mapping[Scope, Sequence[Token]]
    ) -> None: ...


class RegistryShapeError(ValueError):
    """Raised when a stored token registry is not a scope -> token-list mapping."""


class PushProviderError(RuntimeError):
    """Raised by provider adapters when a request fails or returns garbage."""
