"""Fake provider adapters for local smoke tests.

Mental model refresher:
- This is outbound adapter code.
- In production, `expo_push` talks to the push service; here the same
  callable shapes just print what would be sent.
- Pipeline code calls these through injected functions and does not know
  which implementation is underneath.
"""

from __future__ import annotations

import uuid
from typing import Sequence

from ..types import PushMessage, PushReceipt, PushTicket


async def send_batch_via_console(messages: Sequence[PushMessage]) -> list[PushTicket]:
    tickets: list[PushTicket] = []
    for message in messages:
        ticket_id = f"console-{uuid.uuid4().hex[:12]}"
        print("[PUSH]")
        print(f"scope={message.scope} to={message.token}")
        print(f"title={message.title}")
        print(f"body={message.body}")
        print(f"data={dict(message.data)} ticket_id={ticket_id}")
        tickets.append(PushTicket(status="ok", ticket_id=ticket_id))
    return tickets


async def get_receipts_via_console(
    ticket_ids: Sequence[str], scope: str | None = None
) -> dict[str, PushReceipt]:
    print(f"[RECEIPTS] scope={scope} tickets={len(ticket_ids)}")
    return {ticket_id: PushReceipt(status="ok") for ticket_id in ticket_ids}
