"""Expo push-service adapters.

Mental model refresher:
- This module is an outbound adapter.
- It integrates with the Expo push API using environment-variable config.
- Pipeline code only sees the two callables `send_batch` / `get_receipts`.
- Every failure surfaces as `PushProviderError`; retry decisions are made by
  the dispatcher, not here.
"""

from __future__ import annotations

import os
import re
from typing import Any, Mapping, Sequence

import httpx

from ..types import PushMessage, PushProviderError, PushReceipt, PushTicket

SEND_PATH = "/--/api/v2/push/send"
RECEIPTS_PATH = "/--/api/v2/push/getReceipts"


async def send_batch_via_expo_from_env(
    messages: Sequence[PushMessage],
    *,
    client: httpx.AsyncClient | None = None,
) -> list[PushTicket]:
    """Send one chunk of same-scope messages and return one ticket per message."""
    if not messages:
        return []
    scopes = {message.scope for message in messages}
    if len(scopes) != 1:
        raise PushProviderError(f"one batch must hold a single scope, got {sorted(scopes)}")

    body = await _post_json(
        SEND_PATH,
        [_message_payload(message) for message in messages],
        access_token=_access_token_for_scope(messages[0].scope),
        client=client,
    )
    entries = body.get("data")
    if not isinstance(entries, list):
        raise PushProviderError("Expo push response is missing a data list")
    if len(entries) != len(messages):
        raise PushProviderError(
            f"Expo returned {len(entries)} tickets for {len(messages)} messages"
        )
    return [_parse_ticket(entry) for entry in entries]


async def get_receipts_via_expo_from_env(
    ticket_ids: Sequence[str],
    scope: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> dict[str, PushReceipt]:
    """Fetch receipts for the given ticket ids, keyed by ticket id.

    All ids must come from messages of `scope`; the query is authorized with
    that scope's access token.
    """
    if not ticket_ids:
        return {}

    body = await _post_json(
        RECEIPTS_PATH,
        {"ids": list(ticket_ids)},
        access_token=_access_token_for_scope(scope),
        client=client,
    )
    entries = body.get("data")
    if not isinstance(entries, Mapping):
        raise PushProviderError("Expo receipt response is missing a data object")
    return {
        str(ticket_id): _parse_receipt(entry)
        for ticket_id, entry in entries.items()
        if isinstance(entry, Mapping)
    }


async def _post_json(
    path: str,
    payload: Any,
    *,
    access_token: str | None,
    client: httpx.AsyncClient | None,
) -> Mapping[str, Any]:
    base_url = os.getenv("EXPO_API_BASE_URL", "https://exp.host").rstrip("/")
    timeout_seconds = float(os.getenv("EXPO_TIMEOUT_SECONDS", "10"))

    headers = {
        "Accept": "application/json",
        "Accept-Encoding": "gzip, deflate",
        "Content-Type": "application/json",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout_seconds) as owned_client:
                response = await owned_client.post(
                    f"{base_url}{path}", json=payload, headers=headers
                )
        else:
            response = await client.post(
                f"{base_url}{path}", json=payload, headers=headers, timeout=timeout_seconds
            )
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPStatusError as exc:
        details = exc.response.text
        raise PushProviderError(
            f"Expo request failed HTTP {exc.response.status_code}: {details[:300]}"
        ) from exc
    except httpx.HTTPError as exc:
        raise PushProviderError(f"Expo request failed: {exc}") from exc
    except ValueError as exc:
        raise PushProviderError(f"Expo response is not JSON: {exc}") from exc

    if not isinstance(body, Mapping):
        raise PushProviderError("Expo response must be a JSON object")
    errors = body.get("errors")
    if errors and body.get("data") is None:
        raise PushProviderError(f"Expo request rejected: {_error_summary(errors)}")
    return body


def _message_payload(message: PushMessage) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "to": message.token,
        "title": message.title,
        "body": message.body,
        "data": dict(message.data),
    }
    if message.sound:
        payload["sound"] = message.sound
    if message.priority:
        payload["priority"] = message.priority
    if message.channel_id:
        payload["channelId"] = message.channel_id
    return payload


def _parse_ticket(entry: Any) -> PushTicket:
    if not isinstance(entry, Mapping):
        return PushTicket(status="error", message="malformed ticket")
    if entry.get("status") == "ok":
        ticket_id = entry.get("id")
        return PushTicket(status="ok", ticket_id=str(ticket_id) if ticket_id else None)
    return PushTicket(
        status="error",
        error_kind=_error_kind(entry),
        message=_as_optional_str(entry.get("message")),
    )


def _parse_receipt(entry: Mapping[str, Any]) -> PushReceipt:
    if entry.get("status") == "ok":
        return PushReceipt(status="ok")
    return PushReceipt(
        status="error",
        error_kind=_error_kind(entry),
        message=_as_optional_str(entry.get("message")),
    )


def _error_kind(entry: Mapping[str, Any]) -> str | None:
    details = entry.get("details")
    if isinstance(details, Mapping):
        return _as_optional_str(details.get("error"))
    return None


def _error_summary(errors: Any) -> str:
    if isinstance(errors, list):
        parts = []
        for item in errors:
            if isinstance(item, Mapping):
                parts.append(f"{item.get('code', 'UNKNOWN')}: {item.get('message', '')}")
            else:
                parts.append(str(item))
        return "; ".join(parts)[:300]
    return str(errors)[:300]


def _access_token_for_scope(scope: str | None) -> str | None:
    if scope:
        scoped = os.getenv(f"EXPO_ACCESS_TOKEN_{_env_suffix(scope)}")
        if scoped and scoped.strip():
            return scoped.strip()
    fallback = os.getenv("EXPO_ACCESS_TOKEN")
    return fallback.strip() if fallback and fallback.strip() else None


def _env_suffix(scope: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", scope).strip("_").upper()


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
