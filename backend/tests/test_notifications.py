"""
Tests for customer notifications.

Notifications are emitted only after commit and can never fail the order
workflow.
"""

import pytest

from storefront.services import notification_service, order_service
from storefront.services.notification_service import (
    NOTIFY_ORDER_CANCELLATION,
    NOTIFY_ORDER_CONFIRMATION,
    NOTIFY_ORDER_STATUS_UPDATE,
    NotificationDispatcher,
    get_dispatcher,
    render,
)
from storefront.services.order_service import OrderError


pytestmark = pytest.mark.orders


def test_render_confirmation():
    message = render(NOTIFY_ORDER_CONFIRMATION, "ada@example.com", {
        "order_id": 7,
        "customer_name": "Ada",
        "total_amount": "35.98",
        "status": "pending",
    })

    assert message.to == "ada@example.com"
    assert message.subject == "Order #7 confirmed"
    assert "Total: 35.98" in message.body


def test_confirmation_sent_after_create(customer, address, cart, mailer):
    order = order_service.create_order(customer.id, address.id, "cash").order
    get_dispatcher().drain()

    [message] = mailer.messages
    assert message.kind == NOTIFY_ORDER_CONFIRMATION
    assert message.to == "ada@example.com"
    assert f"#{order.id}" in message.subject
    assert "35.98" in message.body


def test_cancellation_and_status_update_sent(customer, address, cart, mailer, card_api):
    card_api.intent_status = "succeeded"
    order = order_service.create_order(customer.id, address.id, "card").order
    order_service.admin_update_status(order.id, "processing")
    order_service.cancel_order(customer.id, order.id)
    get_dispatcher().drain()

    kinds = [m.kind for m in mailer.messages]
    assert kinds == [NOTIFY_ORDER_CONFIRMATION, NOTIFY_ORDER_STATUS_UPDATE, NOTIFY_ORDER_CANCELLATION]
    assert "refund of 35.98" in mailer.messages[-1].body


def test_no_notification_when_workflow_fails(customer, address, mailer):
    with pytest.raises(OrderError):
        order_service.create_order(customer.id, address.id, "cash")
    get_dispatcher().drain()

    assert mailer.messages == []


def test_delivery_failure_does_not_fail_order(customer, address, cart, mailer):
    mailer.fail = True

    result = order_service.create_order(customer.id, address.id, "cash")
    get_dispatcher().drain()

    assert result.order.status == "pending"
    assert mailer.messages == []


def test_dispatcher_failure_does_not_fail_order(monkeypatch, customer, address, cart):
    def broken_dispatcher():
        raise RuntimeError("queue unavailable")

    monkeypatch.setattr(order_service, "get_dispatcher", broken_dispatcher)

    result = order_service.create_order(customer.id, address.id, "cash")

    assert result.order.total_amount_cents == 3598


def test_full_queue_drops_instead_of_blocking():
    class BlockingMailer:
        def send(self, message):
            raise AssertionError("worker should not have been reached")

    dispatcher = NotificationDispatcher(BlockingMailer(), maxsize=1)
    # Hold the worker off so the queue stays full
    dispatcher._ensure_worker = lambda: None

    context = {"order_id": 1, "status": "pending", "total_amount": "1.00"}
    assert dispatcher.emit(NOTIFY_ORDER_CONFIRMATION, "a@example.com", context) is True
    assert dispatcher.emit(NOTIFY_ORDER_CONFIRMATION, "b@example.com", context) is False
    assert dispatcher.queued() == 1


def test_disabled_dispatcher_emits_nothing():
    dispatcher = NotificationDispatcher(notification_service.LogMailer(), enabled=False)

    assert dispatcher.emit(NOTIFY_ORDER_CONFIRMATION, "a@example.com", {"order_id": 1}) is False
    assert dispatcher.queued() == 0
