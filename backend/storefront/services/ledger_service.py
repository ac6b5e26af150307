# Overview: Append-only order event ledger written inside the workflow's unit of work.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import OrderEvent
from ..time_utils import utcnow
"""
Order Ledger Invariants (authoritative)

- Append-only audit log for order/payment/inventory lifecycle events.
- No domain/business logic in the ledger itself.
- Events are flushed in the same DB transaction as the change they record;
  an aborted unit of work leaves no events behind.
"""


def append_order_event(
    *,
    order_id: int,
    event_type: str,
    actor: str | None = None,
    payment_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[str] = None,
    session=None,
) -> OrderEvent:
    session = session or db.session
    ev = OrderEvent(
        order_id=order_id,
        payment_id=payment_id,
        event_type=event_type,
        actor=actor,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=payload,
    )
    session.add(ev)
    session.flush()
    return ev


def list_order_events(order_id: int, *, session=None) -> list[OrderEvent]:
    session = session or db.session
    return session.query(OrderEvent).filter_by(order_id=order_id).order_by(OrderEvent.id).all()
