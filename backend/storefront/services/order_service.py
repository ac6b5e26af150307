# Overview: Order workflow; create, cancel and admin status changes as single units of work.

"""
Order Workflow

WHY: Checkout touches stock, money and the cart. Each customer-facing
operation must either fully happen or leave no trace, while the card
gateway sits outside our database.

DESIGN:
- Input is validated before any unit of work opens
- One unit_of_work() per operation: order, payment, stock movements, events
  and the cart change commit together or not at all
- The gateway is called from inside the unit of work, after every local
  write that can still fail, with a bounded timeout. If the transaction
  aborts after a successful card charge, the charge is voided
- Notifications are emitted only after commit and never affect the result
- No automatic retries: a retried create could charge twice
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Customer, Order, Payment
from ..models.orders import (
    CANCELLABLE_ORDER_STATUSES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_SEQUENCE,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_REFUNDED,
)
from ..time_utils import cents_to_amount
from ..validation import ValidationError, validate_create_order, validate_order_status
from . import (
    address_service,
    cart_service,
    catalog_service,
    inventory_service,
    order_store,
    payment_store,
)
from .concurrency import unit_of_work
from .inventory_service import InsufficientStockError, InventoryError, StockItem
from .ledger_service import append_order_event
from .notification_service import (
    NOTIFY_ORDER_CANCELLATION,
    NOTIFY_ORDER_CONFIRMATION,
    NOTIFY_ORDER_STATUS_UPDATE,
    get_dispatcher,
)
from .order_store import LineSnapshot, OptionSnapshot, OrderFilter
from .payment_gateways import PaymentContext, RefundResult
from .payment_service import get_payment_service


# Error codes
EMPTY_CART = "EmptyCart"
ADDRESS_NOT_FOUND = "AddressNotFound"
PRODUCT_UNAVAILABLE = "ProductUnavailable"
INSUFFICIENT_STOCK = "InsufficientStock"
PAYMENT_FAILED = "PaymentFailed"
ORDER_NOT_FOUND = "OrderNotFound"
CANNOT_CANCEL = "CannotCancel"
PAYMENT_INFO_MISSING = "PaymentInfoMissing"
REFUND_FAILED = "RefundFailed"
INVALID_STATUS = "InvalidStatus"

_NOT_FOUND_CODES = {ADDRESS_NOT_FOUND, ORDER_NOT_FOUND, PAYMENT_INFO_MISSING}


class OrderError(Exception):
    """Raised for order workflow errors. `code` is one of the constants above."""
    def __init__(self, code: str, message: str, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    @property
    def http_status(self) -> int:
        return 404 if self.code in _NOT_FOUND_CODES else 400


@dataclass
class OrderResult:
    order: Order
    payment: Payment
    client_secret: str | None = None


@dataclass
class CancelResult:
    order: Order
    payment: Payment
    refund_info: RefundResult | None = None


@dataclass
class StatusUpdateResult:
    order: Order
    payment: Payment | None


def can_cancel(order: Order) -> bool:
    return order.status in CANCELLABLE_ORDER_STATUSES


# =============================================================================
# Helpers
# =============================================================================

def _snapshot_cart(items: list[cart_service.CartItem], session) -> tuple[list[LineSnapshot], list[StockItem]]:
    """Resolve live catalog rows, price each line and pre-check stock."""
    snapshots: list[LineSnapshot] = []
    stock_items: list[StockItem] = []

    for item in items:
        product = catalog_service.get_product(item.product_id, session=session)
        if product is None or product.is_deleted:
            label = product.name if product is not None else f"#{item.product_id}"
            raise OrderError(
                PRODUCT_UNAVAILABLE,
                f"Product {label} is no longer available",
                details={"product_id": item.product_id},
            )

        options = []
        for option_id in item.option_ids:
            option = catalog_service.get_option_value(option_id, session=session)
            if option is None or option.deleted_at is not None:
                raise OrderError(
                    PRODUCT_UNAVAILABLE,
                    f"Selected option for {product.name} is no longer available",
                    details={"product_id": product.id, "option_value_id": option_id},
                )
            options.append(option)

        available = inventory_service.effective_stock(product, options)
        if item.quantity > available:
            raise OrderError(
                INSUFFICIENT_STOCK,
                f"Insufficient stock for one or more products. {product.name} has only {available} in stock",
                details={"product_id": product.id, "requested": item.quantity, "available": available},
            )

        snapshots.append(LineSnapshot(
            product_id=product.id,
            product_name=product.name,
            image=product.image or "",
            unit_price_cents=catalog_service.unit_price_cents(product, options),
            quantity=item.quantity,
            options=tuple(
                OptionSnapshot(
                    option_value_id=opt.id,
                    option_type_name=catalog_service.option_type_name(opt, session=session),
                    value=opt.value,
                    price_cents=opt.price_cents,
                )
                for opt in options
            ),
        ))
        stock_items.append(StockItem(
            product_id=product.id,
            quantity=item.quantity,
            option_ids=tuple(opt.id for opt in options),
        ))

    return snapshots, stock_items


def _order_items(order: Order) -> list[StockItem]:
    """Stock items exactly as they were reserved, rebuilt from the line snapshots."""
    return [
        StockItem(
            product_id=line.product_id,
            quantity=line.quantity,
            option_ids=tuple(opt.option_value_id for opt in line.options),
        )
        for line in order.lines
    ]


def _notify(kind: str, order_id: int, **extra) -> None:
    """Post-commit, fire-and-forget. Never raises into the caller."""
    try:
        order = db.session.get(Order, order_id)
        customer = db.session.get(Customer, order.customer_id) if order else None
        if order is None or customer is None:
            return
        context = {
            "order_id": order.id,
            "customer_name": customer.name,
            "total_amount": cents_to_amount(order.total_amount_cents),
            "status": order.status,
            **extra,
        }
        get_dispatcher().emit(kind, customer.email, context)
    except Exception:
        current_app.logger.exception("Failed to emit %s notification for order %s", kind, order_id)


def _checkout_key(customer_id: int, idempotency_key: str | None) -> str:
    """Gateway key for one checkout attempt. A caller key makes re-sends share it."""
    return f"checkout-{customer_id}-{idempotency_key or uuid.uuid4().hex}"


def _refund_line(refund: RefundResult | None) -> str:
    if refund is None:
        return ""
    if refund.status == "manual_refund_required":
        return f"A refund of {cents_to_amount(refund.amount_cents)} will be handed back in person."
    return f"A refund of {cents_to_amount(refund.amount_cents)} has been issued to your card."


# =============================================================================
# Create
# =============================================================================

def create_order(customer_id: int, address_id, payment_method, idempotency_key=None) -> OrderResult:
    """
    Turn the customer's cart into a pending order, reserve its stock and open
    a payment, atomically.

    Raises ValidationError for bad input and OrderError for business failures.
    On any failure no order, payment or stock change is persisted and the
    cart is left as it was.

    idempotency_key is optional. When a client re-sends a checkout with the
    same key, the gateway sees the same Idempotency-Key and does not open a
    second charge. Without one, every attempt gets a fresh key.
    """
    fields = validate_create_order({
        "address_id": address_id,
        "payment_method": payment_method,
        "idempotency_key": idempotency_key,
    })
    method = fields["payment_method"]
    checkout_key = _checkout_key(customer_id, fields["idempotency_key"])

    payments = get_payment_service()
    if not payments.is_available(method):
        available = ", ".join(payments.available_methods())
        raise ValidationError(
            f"Payment method '{method}' is not available. Available methods: {available}",
            fields={"payment_method": "not available"},
        )

    charge = None
    try:
        with unit_of_work() as session:
            items = cart_service.get_cart(customer_id, session=session)
            if not items:
                raise OrderError(EMPTY_CART, "Cart is empty")

            address = address_service.get_address(fields["address_id"], customer_id, session=session)
            if address is None:
                raise OrderError(ADDRESS_NOT_FOUND, "Address not found")

            snapshots, stock_items = _snapshot_cart(items, session)
            total_cents = sum(s.subtotal_cents for s in snapshots)

            order = order_store.create_order(
                customer_id=customer_id,
                address=address.full(),
                lines=snapshots,
                total_amount_cents=total_cents,
                session=session,
            )

            # Authoritative check under row locks; the pre-check above was unlocked
            try:
                inventory_service.reserve(order.id, stock_items, session=session)
            except InsufficientStockError as exc:
                raise OrderError(
                    INSUFFICIENT_STOCK,
                    f"Insufficient stock for one or more products. {exc}",
                    details={
                        "product_id": exc.product_id,
                        "requested": exc.requested,
                        "available": exc.available,
                    },
                ) from exc
            except InventoryError as exc:
                raise OrderError(PRODUCT_UNAVAILABLE, str(exc)) from exc

            append_order_event(
                order_id=order.id,
                event_type="order.created",
                actor=f"customer:{customer_id}",
                payload=json.dumps({"total_amount_cents": total_cents, "lines": len(snapshots)}),
                session=session,
            )

            charge = payments.create_payment(
                method,
                total_cents,
                PaymentContext(order_id=order.id, customer_id=customer_id, idempotency_key=checkout_key),
            )
            if not charge.success:
                raise OrderError(
                    PAYMENT_FAILED,
                    f"Payment failed: {charge.error or 'unknown error'}",
                )

            payment = payment_store.create_payment(
                order_id=order.id,
                method=method,
                status=charge.status,
                amount_cents=total_cents,
                gateway_transaction_id=charge.transaction_id,
                session=session,
            )
            append_order_event(
                order_id=order.id,
                payment_id=payment.id,
                event_type="payment.created",
                actor=f"customer:{customer_id}",
                note=f"{method}:{payment.status}",
                session=session,
            )

            cart_service.clear_cart(customer_id, session=session)
            order_id = order.id
    except Exception:
        if charge is not None and charge.success and charge.transaction_id:
            current_app.logger.error(
                "Order creation aborted after %s charge %s; voiding", method, charge.transaction_id
            )
            payments.void_payment(method, charge.transaction_id)
        raise

    current_app.logger.info("Order %s created for customer %s (%s)", order_id, customer_id, method)
    _notify(NOTIFY_ORDER_CONFIRMATION, order_id)
    return OrderResult(order=order, payment=payment, client_secret=charge.client_secret)


# =============================================================================
# Cancel
# =============================================================================

def _cancel(order_id: int, *, customer_id: int | None, actor: str) -> CancelResult:
    payments = get_payment_service()
    refund: RefundResult | None = None
    open_intent: str | None = None

    try:
        with unit_of_work() as session:
            order = order_store.get_order(order_id, customer_id=customer_id, lock=True, session=session)
            if order is None:
                raise OrderError(ORDER_NOT_FOUND, "Order not found")

            if not can_cancel(order):
                raise OrderError(
                    CANNOT_CANCEL,
                    f"Order cannot be cancelled. Current status: {order.status}",
                    details={"status": order.status},
                )

            payment = payment_store.get_payment_for_order(order.id, lock=True, session=session)
            if payment is None:
                raise OrderError(PAYMENT_INFO_MISSING, "Payment information not found")

            # Local writes first; the gateway refund is the last step that can fail
            try:
                inventory_service.release(order.id, _order_items(order), session=session)
            except InventoryError as exc:
                raise OrderError(CANNOT_CANCEL, str(exc)) from exc
            order_store.set_status(order, ORDER_STATUS_CANCELLED, session=session)
            append_order_event(
                order_id=order.id,
                payment_id=payment.id,
                event_type="order.cancelled",
                actor=actor,
                session=session,
            )

            if payment.status == PAYMENT_STATUS_COMPLETED:
                if payment.gateway_transaction_id:
                    refund = payments.process_refund(
                        payment.method,
                        payment.gateway_transaction_id,
                        payment.amount_cents,
                        PaymentContext(
                            order_id=order.id,
                            customer_id=order.customer_id,
                            idempotency_key=f"order-{order.id}-refund",
                        ),
                    )
                    if not refund.success:
                        raise OrderError(
                            REFUND_FAILED,
                            f"Refund failed: {refund.error or 'unknown error'}",
                        )
                else:
                    # Settled outside any gateway (cash collected)
                    refund = RefundResult(
                        success=True,
                        amount_cents=payment.amount_cents,
                        status="manual_refund_required",
                    )
                payment_store.transition(
                    payment, PAYMENT_STATUS_REFUNDED, refund_id=refund.refund_id, session=session
                )
                append_order_event(
                    order_id=order.id,
                    payment_id=payment.id,
                    event_type="payment.refunded",
                    actor=actor,
                    note=refund.status,
                    payload=json.dumps(refund.to_dict()),
                    session=session,
                )
            elif payment.status == PAYMENT_STATUS_PENDING:
                payment_store.transition(payment, PAYMENT_STATUS_CANCELLED, session=session)
                append_order_event(
                    order_id=order.id,
                    payment_id=payment.id,
                    event_type="payment.cancelled",
                    actor=actor,
                    session=session,
                )
                open_intent = payment.gateway_transaction_id
    except Exception:
        if refund is not None and refund.success and refund.refund_id:
            current_app.logger.critical(
                "Refund %s issued for order %s but cancellation was rolled back",
                refund.refund_id,
                order_id,
            )
        raise

    current_app.logger.info("Order %s cancelled by %s", order_id, actor)
    if open_intent:
        # A capture that still slips through is refunded by confirm_card_payment
        payments.void_payment(payment.method, open_intent)
    _notify(NOTIFY_ORDER_CANCELLATION, order_id, refund_line=_refund_line(refund))
    return CancelResult(order=order, payment=payment, refund_info=refund)


def cancel_order(customer_id: int, order_id: int) -> CancelResult:
    """Customer cancellation of their own Pending or Processing order."""
    return _cancel(order_id, customer_id=customer_id, actor=f"customer:{customer_id}")


def admin_cancel_order(order_id: int) -> CancelResult:
    """Same rules as a customer cancel, for any customer's order."""
    return _cancel(order_id, customer_id=None, actor="admin")


# =============================================================================
# Admin status
# =============================================================================

def admin_update_status(order_id: int, new_status) -> StatusUpdateResult:
    """
    Move an order forward through pending -> processing -> shipped -> completed.

    Steps may be skipped; moving backwards, to the same status, or out of
    cancelled/completed is rejected. A target of cancelled runs the full
    cancellation (stock release and refund). Reaching completed marks a
    pending payment as completed.
    """
    try:
        new_status = validate_order_status(new_status)
    except ValidationError as exc:
        raise OrderError(INVALID_STATUS, str(exc)) from exc

    if new_status == ORDER_STATUS_CANCELLED:
        result = admin_cancel_order(order_id)
        return StatusUpdateResult(order=result.order, payment=result.payment)

    with unit_of_work() as session:
        order = order_store.get_order(order_id, lock=True, session=session)
        if order is None:
            raise OrderError(ORDER_NOT_FOUND, "Order not found")

        current = order.status
        if current in (ORDER_STATUS_CANCELLED, ORDER_STATUS_COMPLETED):
            raise OrderError(INVALID_STATUS, f"Cannot update status of {current} order")
        if ORDER_STATUS_SEQUENCE.index(new_status) <= ORDER_STATUS_SEQUENCE.index(current):
            raise OrderError(
                INVALID_STATUS,
                f"Cannot move order from {current} to {new_status}",
                details={"current": current, "requested": new_status},
            )

        payment = payment_store.get_payment_for_order(order.id, lock=True, session=session)
        if new_status == ORDER_STATUS_COMPLETED:
            if payment is None:
                raise OrderError(PAYMENT_INFO_MISSING, "Payment information not found")
            if payment.status == PAYMENT_STATUS_PENDING:
                payment_store.transition(payment, PAYMENT_STATUS_COMPLETED, session=session)
            elif payment.status != PAYMENT_STATUS_COMPLETED:
                raise OrderError(
                    INVALID_STATUS,
                    f"Cannot complete order with {payment.status} payment",
                )

        order_store.set_status(order, new_status, session=session)
        append_order_event(
            order_id=order.id,
            payment_id=payment.id if payment else None,
            event_type="order.status_changed",
            actor="admin",
            note=f"{current}->{new_status}",
            session=session,
        )

    current_app.logger.info("Order %s moved from %s to %s", order_id, current, new_status)
    _notify(NOTIFY_ORDER_STATUS_UPDATE, order_id)
    return StatusUpdateResult(order=order, payment=payment)


# =============================================================================
# Card webhook
# =============================================================================

def _refund_late_capture(payment: Payment, session) -> RefundResult:
    """Send back money captured on an intent whose order was already cancelled."""
    order = order_store.get_order(payment.order_id, session=session)
    refund = get_payment_service().process_refund(
        payment.method,
        payment.gateway_transaction_id,
        payment.amount_cents,
        PaymentContext(
            order_id=payment.order_id,
            customer_id=order.customer_id if order else None,
            idempotency_key=f"order-{payment.order_id}-late-capture-refund",
        ),
    )
    if not refund.success:
        raise OrderError(REFUND_FAILED, f"Refund failed: {refund.error or 'unknown error'}")

    payment_store.transition(payment, PAYMENT_STATUS_REFUNDED, refund_id=refund.refund_id, session=session)
    append_order_event(
        order_id=payment.order_id,
        payment_id=payment.id,
        event_type="payment.refunded",
        actor="gateway",
        note=f"late_capture:{refund.status}",
        payload=json.dumps(refund.to_dict()),
        session=session,
    )
    return refund


def confirm_card_payment(transaction_id: str) -> Payment:
    """
    Record the gateway's report that a card intent succeeded.

    A pending payment becomes completed. A payment whose order was cancelled
    before the customer paid is refunded, so no money is kept without an
    order; a failed refund raises RefundFailed and the gateway re-delivers
    the event. Replays for completed or refunded payments change nothing.
    """
    refund: RefundResult | None = None
    try:
        with unit_of_work() as session:
            payment = payment_store.get_payment_by_transaction_id(transaction_id, lock=True, session=session)
            if payment is None:
                raise OrderError(PAYMENT_INFO_MISSING, "Payment information not found")

            if payment.status in (PAYMENT_STATUS_COMPLETED, PAYMENT_STATUS_REFUNDED):
                return payment

            if payment.status == PAYMENT_STATUS_CANCELLED:
                refund = _refund_late_capture(payment, session)
            elif payment.status != PAYMENT_STATUS_PENDING:
                raise OrderError(INVALID_STATUS, f"Payment is {payment.status}")
            else:
                order = order_store.get_order(payment.order_id, lock=True, session=session)
                if order is None or order.status == ORDER_STATUS_CANCELLED:
                    raise OrderError(INVALID_STATUS, "Order is cancelled")

                payment_store.transition(payment, PAYMENT_STATUS_COMPLETED, session=session)
                append_order_event(
                    order_id=payment.order_id,
                    payment_id=payment.id,
                    event_type="payment.completed",
                    actor="gateway",
                    note=transaction_id,
                    session=session,
                )
    except Exception:
        if refund is not None and refund.success and refund.refund_id:
            current_app.logger.critical(
                "Refund %s issued for late capture %s but was not recorded",
                refund.refund_id,
                transaction_id,
            )
        raise

    if refund is not None:
        current_app.logger.warning(
            "Card payment %s captured after order %s was cancelled; refunded (%s)",
            transaction_id,
            payment.order_id,
            refund.refund_id,
        )
    else:
        current_app.logger.info("Card payment %s confirmed", transaction_id)
    return payment


# =============================================================================
# Reads
# =============================================================================

def get_order(customer_id: int, order_id: int) -> tuple[Order, Payment | None]:
    order = order_store.get_order(order_id, customer_id=customer_id)
    if order is None:
        raise OrderError(ORDER_NOT_FOUND, "Order not found")
    return order, payment_store.get_payment_for_order(order.id)


def list_orders(customer_id: int, *, status: str | None = None, page: int = 1,
                limit: int = order_store.DEFAULT_PAGE_SIZE) -> tuple[list[tuple[Order, Payment | None]], dict]:
    if status is not None:
        status = validate_order_status(status)
    orders, pagination = order_store.list_orders(
        OrderFilter(customer_id=customer_id, status=status), page=page, limit=limit
    )
    payments = payment_store.payments_by_order_id([o.id for o in orders])
    return [(o, payments.get(o.id)) for o in orders], pagination


def admin_get_order(order_id: int) -> tuple[Order, Payment | None]:
    order = order_store.get_order(order_id)
    if order is None:
        raise OrderError(ORDER_NOT_FOUND, "Order not found")
    return order, payment_store.get_payment_for_order(order.id)


def admin_list_orders(flt: OrderFilter, *, page: int = 1, limit: int = order_store.DEFAULT_PAGE_SIZE,
                      sort_by: str = "placed_at", sort_order: str = "desc"):
    """Filtered, sorted page of all orders plus statistics over the whole filter."""
    orders, pagination = order_store.list_orders(
        flt, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
    )
    payments = payment_store.payments_by_order_id([o.id for o in orders])
    stats = order_store.order_stats(flt)
    return [(o, payments.get(o.id)) for o in orders], pagination, stats
