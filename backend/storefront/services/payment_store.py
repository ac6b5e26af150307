# Overview: Durable payment records and their allowed status transitions.

from __future__ import annotations

from ..extensions import db
from ..models import Payment
from ..models.orders import (
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update


# pending -> completed -> refunded; pending -> cancelled.
# cancelled -> refunded when the gateway captures an intent after its order
# was cancelled. failed is never persisted: a failed creation aborts the
# whole order.
PAYMENT_TRANSITIONS = {
    PAYMENT_STATUS_PENDING: {PAYMENT_STATUS_COMPLETED, PAYMENT_STATUS_CANCELLED},
    PAYMENT_STATUS_COMPLETED: {PAYMENT_STATUS_REFUNDED},
    PAYMENT_STATUS_REFUNDED: set(),
    PAYMENT_STATUS_CANCELLED: {PAYMENT_STATUS_REFUNDED},
    PAYMENT_STATUS_FAILED: set(),
}


class PaymentStateError(Exception):
    """Raised for a payment status change the state machine does not allow."""


def create_payment(
    *,
    order_id: int,
    method: str,
    status: str,
    amount_cents: int,
    gateway_transaction_id: str | None = None,
    session=None,
) -> Payment:
    session = session or db.session
    if status not in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_COMPLETED):
        raise PaymentStateError(f"Cannot record a new payment with status {status}")
    payment = Payment(
        order_id=order_id,
        method=method,
        status=status,
        amount_cents=amount_cents,
        gateway_transaction_id=gateway_transaction_id,
        paid_at=utcnow(),
    )
    session.add(payment)
    session.flush()
    return payment


def get_payment_for_order(order_id: int, *, lock: bool = False, session=None) -> Payment | None:
    session = session or db.session
    query = session.query(Payment).filter_by(order_id=order_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_payment_by_transaction_id(transaction_id: str, *, lock: bool = False, session=None) -> Payment | None:
    session = session or db.session
    query = session.query(Payment).filter_by(gateway_transaction_id=transaction_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def payments_by_order_id(order_ids: list[int], *, session=None) -> dict[int, Payment]:
    session = session or db.session
    if not order_ids:
        return {}
    rows = session.query(Payment).filter(Payment.order_id.in_(order_ids)).all()
    return {p.order_id: p for p in rows}


def can_transition(current: str, new_status: str) -> bool:
    return new_status in PAYMENT_TRANSITIONS.get(current, set())


def transition(payment: Payment, new_status: str, *, refund_id: str | None = None, session=None) -> Payment:
    """Move a payment to new_status. No commit."""
    session = session or db.session
    if not can_transition(payment.status, new_status):
        raise PaymentStateError(f"Payment cannot move from {payment.status} to {new_status}")

    payment.status = new_status
    if new_status == PAYMENT_STATUS_REFUNDED:
        payment.refund_id = refund_id
        payment.refunded_at = utcnow()
    session.flush()
    return payment
