"""
Tests for payment gateway variants and the payment service.
"""

import hashlib
import hmac
import time

import httpx
import pytest

from storefront.services.payment_gateways import (
    CardGateway,
    CashGateway,
    PaymentContext,
)
from storefront.services.payment_service import PaymentService


pytestmark = pytest.mark.payments


def _card_gateway(card_api, **overrides):
    options = {
        "base_url": "https://cards.test",
        "secret_key": "sk_test",
        "webhook_secret": "whsec_test",
        "timeout_seconds": 1.0,
        "transport": httpx.MockTransport(card_api.handler),
    }
    options.update(overrides)
    return CardGateway(**options)


def _sign(payload: bytes, secret: str, timestamp: int) -> str:
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def test_cash_payment_is_pending_without_transaction():
    result = CashGateway().create_payment(3598, PaymentContext(order_id=1))

    assert result.success is True
    assert result.status == "pending"
    assert result.transaction_id is None


def test_cash_refund_requires_manual_handling():
    refund = CashGateway().process_refund("", 3598, PaymentContext(order_id=1))

    assert refund.success is True
    assert refund.status == "manual_refund_required"
    assert refund.amount_cents == 3598


def test_card_payment_creates_intent_with_idempotency_key(card_api):
    gateway = _card_gateway(card_api)
    context = PaymentContext(order_id=42, customer_id=7, idempotency_key="checkout-7-abc123")
    result = gateway.create_payment(3598, context)

    assert result.success is True
    assert result.status == "pending"
    assert result.transaction_id == "pi_test_1"
    assert result.client_secret == "pi_test_1_secret"

    call = card_api.calls("/v1/payment_intents")[0]
    assert call["form"]["amount"] == "3598"
    assert call["form"]["metadata[order_id]"] == "42"
    assert call["headers"]["idempotency-key"] == "checkout-7-abc123"
    assert call["headers"]["authorization"] == "Bearer sk_test"


def test_card_payment_without_key_sends_no_idempotency_header(card_api):
    _card_gateway(card_api).create_payment(100, PaymentContext(order_id=42))

    assert "idempotency-key" not in card_api.calls("/v1/payment_intents")[0]["headers"]


def test_card_payment_succeeded_intent_is_completed(card_api):
    card_api.intent_status = "succeeded"
    result = _card_gateway(card_api).create_payment(100, PaymentContext(order_id=1))

    assert result.success is True
    assert result.status == "completed"


def test_card_decline_reports_gateway_message(card_api):
    card_api.payment_error = "Your card was declined."
    result = _card_gateway(card_api).create_payment(100, PaymentContext(order_id=1))

    assert result.success is False
    assert result.status == "failed"
    assert result.error == "Your card was declined."


def test_card_timeout_is_a_failure(card_api):
    card_api.payment_timeout = True
    result = _card_gateway(card_api).create_payment(100, PaymentContext(order_id=1))

    assert result.success is False
    assert "timed out" in result.error


def test_card_refund(card_api):
    context = PaymentContext(order_id=9, idempotency_key="order-9-refund")
    refund = _card_gateway(card_api).process_refund("pi_abc", 3598, context)

    assert refund.success is True
    assert refund.refund_id.startswith("re_test_")
    call = card_api.calls("/v1/refunds")[0]
    assert call["form"]["payment_intent"] == "pi_abc"
    assert call["headers"]["idempotency-key"] == "order-9-refund"


def test_card_refund_failed_status(card_api):
    card_api.refund_status = "failed"
    refund = _card_gateway(card_api).process_refund("pi_abc", 3598, PaymentContext(order_id=9))

    assert refund.success is False
    assert refund.status == "failed"


def test_card_void(card_api):
    assert _card_gateway(card_api).void_payment("pi_abc") is True
    assert card_api.voided == ["pi_abc"]


def test_card_unavailable_without_secret_key(card_api):
    assert _card_gateway(card_api, secret_key=None).is_available() is False


def test_webhook_signature_verification(card_api):
    gateway = _card_gateway(card_api)
    payload = b'{"type": "payment_intent.succeeded"}'
    now = int(time.time())

    assert gateway.verify_webhook_signature(payload, _sign(payload, "whsec_test", now)) is True
    assert gateway.verify_webhook_signature(payload, _sign(payload, "wrong", now)) is False
    assert gateway.verify_webhook_signature(payload + b" ", _sign(payload, "whsec_test", now)) is False
    assert gateway.verify_webhook_signature(payload, None) is False

    stale = _sign(payload, "whsec_test", now - 3600)
    assert gateway.verify_webhook_signature(payload, stale) is False


def test_service_reports_unknown_method_as_failure(app, card_api):
    service = PaymentService({"cash": CashGateway(), "card": _card_gateway(card_api)})

    assert service.is_available("cash") is True
    assert service.is_available("bitcoin") is False

    result = service.create_payment("bitcoin", 100, PaymentContext(order_id=1))
    assert result.success is False
    assert "Unsupported payment method" in result.error


def test_service_available_methods_skips_unconfigured(app, card_api):
    service = PaymentService({"cash": CashGateway(), "card": _card_gateway(card_api, secret_key="")})

    assert service.available_methods() == ["cash"]
    assert {d["name"]: d["is_configured"] for d in service.method_details()} == {
        "cash": True,
        "card": False,
    }
