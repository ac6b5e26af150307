"""
Tests for admin order management: status transitions, admin cancellation,
card webhook confirmation, listing and statistics.
"""

import pytest

from storefront.models import Address, Order, OrderEvent, Payment, Product
from storefront.services import cart_service, order_service
from storefront.services.order_service import OrderError
from storefront.services.order_store import OrderFilter


pytestmark = pytest.mark.orders


@pytest.fixture
def cash_order(customer, address, cart):
    return order_service.create_order(customer.id, address.id, "cash").order


def test_forward_transitions_may_skip_steps(cash_order):
    result = order_service.admin_update_status(cash_order.id, "shipped")

    assert result.order.status == "shipped"


def test_backward_and_same_status_rejected(cash_order):
    order_service.admin_update_status(cash_order.id, "shipped")

    for status in ("shipped", "processing", "pending"):
        with pytest.raises(OrderError) as exc_info:
            order_service.admin_update_status(cash_order.id, status)
        assert exc_info.value.code == "InvalidStatus"


def test_unknown_status_rejected(cash_order):
    with pytest.raises(OrderError) as exc_info:
        order_service.admin_update_status(cash_order.id, "lost")

    assert exc_info.value.code == "InvalidStatus"
    assert exc_info.value.http_status == 400


def test_completing_order_completes_pending_payment(cash_order, card_api):
    result = order_service.admin_update_status(cash_order.id, "completed")

    assert result.order.status == "completed"
    assert result.payment.status == "completed"
    assert card_api.requests == []


def test_completed_and_cancelled_are_terminal(db_session, customer, address, widget):
    orders = []
    for _ in range(2):
        cart_service.add_item(customer.id, widget.id, 1)
        db_session.commit()
        orders.append(order_service.create_order(customer.id, address.id, "cash").order)
    first, second = orders

    order_service.admin_update_status(first.id, "completed")
    order_service.admin_cancel_order(second.id)

    for order_id in (first.id, second.id):
        with pytest.raises(OrderError) as exc_info:
            order_service.admin_update_status(order_id, "shipped")
        assert exc_info.value.code == "InvalidStatus"


def test_status_cancelled_runs_full_cancellation(db_session, cash_order, widget):
    result = order_service.admin_update_status(cash_order.id, "cancelled")

    assert result.order.status == "cancelled"
    assert result.payment.status == "cancelled"
    db_session.expire_all()
    assert db_session.get(Product, widget.id).stock == 10


def test_admin_cancel_same_rules_as_customer(cash_order):
    order_service.admin_update_status(cash_order.id, "shipped")

    with pytest.raises(OrderError) as exc_info:
        order_service.admin_cancel_order(cash_order.id)

    assert exc_info.value.code == "CannotCancel"


def test_admin_update_unknown_order(db_session):
    with pytest.raises(OrderError) as exc_info:
        order_service.admin_update_status(999, "shipped")

    assert exc_info.value.code == "OrderNotFound"


def test_card_webhook_confirmation_then_refund_on_cancel(db_session, customer, address, cart, card_api):
    result = order_service.create_order(customer.id, address.id, "card")
    assert result.payment.status == "pending"

    payment = order_service.confirm_card_payment(result.payment.gateway_transaction_id)
    assert payment.status == "completed"

    # Confirmation is idempotent
    assert order_service.confirm_card_payment(result.payment.gateway_transaction_id).status == "completed"

    cancel = order_service.cancel_order(customer.id, result.order.id)
    assert cancel.payment.status == "refunded"
    assert len(card_api.calls("/v1/refunds")) == 1


def test_capture_after_cancellation_is_refunded(db_session, customer, address, cart, card_api):
    result = order_service.create_order(customer.id, address.id, "card")
    transaction_id = result.payment.gateway_transaction_id
    order_service.cancel_order(customer.id, result.order.id)

    payment = order_service.confirm_card_payment(transaction_id)

    assert payment.status == "refunded"
    assert payment.refund_id is not None
    [refund] = card_api.calls("/v1/refunds")
    assert refund["form"]["payment_intent"] == transaction_id
    assert refund["form"]["amount"] == "3598"
    assert refund["headers"]["idempotency-key"] == f"order-{result.order.id}-late-capture-refund"

    events = [e.note for e in db_session.query(OrderEvent).filter_by(
        order_id=result.order.id, event_type="payment.refunded")]
    assert events == ["late_capture:succeeded"]

    # Re-delivered webhook changes nothing
    assert order_service.confirm_card_payment(transaction_id).status == "refunded"
    assert len(card_api.calls("/v1/refunds")) == 1
    assert db_session.get(Order, result.order.id).status == "cancelled"


def test_capture_after_cancellation_refund_failure(db_session, customer, address, cart, card_api):
    result = order_service.create_order(customer.id, address.id, "card")
    order_service.cancel_order(customer.id, result.order.id)
    card_api.refund_error = "Gateway unavailable"

    with pytest.raises(OrderError) as exc_info:
        order_service.confirm_card_payment(result.payment.gateway_transaction_id)

    assert exc_info.value.code == "RefundFailed"
    db_session.expire_all()
    assert db_session.get(Payment, result.payment.id).status == "cancelled"


def test_webhook_unknown_transaction(db_session):
    with pytest.raises(OrderError) as exc_info:
        order_service.confirm_card_payment("pi_missing")

    assert exc_info.value.code == "PaymentInfoMissing"


def test_admin_list_filters_and_stats(db_session, customer, other_customer, address, widget):
    cart_service.add_item(customer.id, widget.id, 1)
    db_session.commit()
    small = order_service.create_order(customer.id, address.id, "cash").order

    other_address = Address(customer_id=other_customer.id, street="1 Navy Rd", city="Arlington",
                            state="VA", zip_code="22202")
    db_session.add(other_address)
    cart_service.add_item(other_customer.id, widget.id, 3)
    db_session.commit()
    large = order_service.create_order(other_customer.id, other_address.id, "cash").order
    order_service.admin_update_status(large.id, "shipped")

    rows, pagination, stats = order_service.admin_list_orders(OrderFilter())
    assert pagination["total"] == 2
    assert stats["total_orders"] == 2
    assert stats["total_revenue_cents"] == 1549 * 4
    assert stats["avg_order_value_cents"] == 1549 * 2
    assert stats["status_breakdown"]["pending"] == 1
    assert stats["status_breakdown"]["shipped"] == 1

    rows, _, _ = order_service.admin_list_orders(OrderFilter(status="shipped"))
    assert [order.id for order, _ in rows] == [large.id]

    rows, _, _ = order_service.admin_list_orders(OrderFilter(min_amount_cents=2000))
    assert [order.id for order, _ in rows] == [large.id]

    rows, _, _ = order_service.admin_list_orders(OrderFilter(search="Analytical"))
    assert [order.id for order, _ in rows] == [small.id]

    rows, _, _ = order_service.admin_list_orders(OrderFilter(), sort_by="total_amount", sort_order="asc")
    assert [order.id for order, _ in rows] == [small.id, large.id]


def test_admin_get_order_includes_payment(cash_order):
    order, payment = order_service.admin_get_order(cash_order.id)

    assert order.id == cash_order.id
    assert payment.order_id == cash_order.id
    assert order.to_dict(payment=payment)["payment"]["status"] == "pending"


def test_can_cancel(db_session, cash_order):
    assert order_service.can_cancel(cash_order) is True

    order_service.admin_update_status(cash_order.id, "shipped")
    db_session.expire_all()
    assert order_service.can_cancel(db_session.get(Order, cash_order.id)) is False
