# Overview: Payment gateway variants (cash, card) behind one contract.

"""
Payment Gateway Variants

Each payment method is one PaymentGateway subclass. Adding a method means
adding a subclass and registering it in payment_service, never branching on
method strings inside the order workflow.

CONTRACT:
- is_available(): static configuration check, no I/O
- create_payment(): never raises for gateway problems; returns
  PaymentResult(success=False, error=...) instead
- process_refund(): same, returns RefundResult
- void_payment(): best-effort cancellation of a charge that was created for a
  transaction that later rolled back

Amounts are integer cents.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from ..models.orders import (
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_CASH,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PENDING,
)


@dataclass(frozen=True)
class PaymentContext:
    order_id: int
    customer_id: int | None = None
    # Sent as the gateway Idempotency-Key; unique per logical operation
    idempotency_key: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    """Result of a payment creation attempt."""

    success: bool
    status: str
    transaction_id: str | None = None
    client_secret: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    amount_cents: int
    status: str
    refund_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "refund_id": self.refund_id,
            "amount_cents": self.amount_cents,
            "status": self.status,
        }


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    method: str = ""

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def create_payment(self, amount_cents: int, context: PaymentContext) -> PaymentResult:
        ...

    @abstractmethod
    def process_refund(self, transaction_id: str, amount_cents: int, context: PaymentContext) -> RefundResult:
        ...

    def void_payment(self, transaction_id: str) -> bool:
        return True

    def details(self) -> dict:
        return {
            "name": self.method,
            "is_configured": self.is_available(),
        }


class CashGateway(PaymentGateway):
    """
    Cash on delivery.

    Always succeeds synchronously with status=pending; the money is collected
    physically later, outside this system.
    """

    method = PAYMENT_METHOD_CASH

    def is_available(self) -> bool:
        return True

    def create_payment(self, amount_cents: int, context: PaymentContext) -> PaymentResult:
        return PaymentResult(success=True, status=PAYMENT_STATUS_PENDING)

    def process_refund(self, transaction_id: str, amount_cents: int, context: PaymentContext) -> RefundResult:
        # Cash refunds are handed back in person
        return RefundResult(success=True, amount_cents=amount_cents, status="manual_refund_required")


class CardGateway(PaymentGateway):
    """
    Card payments through a remote payment-intent API (Stripe-compatible).

    Every call carries a bounded timeout; expiry is reported exactly like any
    other gateway failure. The Idempotency-Key header comes from the caller's
    PaymentContext: one key per checkout attempt or per refund of a committed
    order. Order ids are not keys on their own because a rolled-back checkout
    can hand the same id to the next order.
    """

    method = PAYMENT_METHOD_CARD

    # Accepted clock skew for webhook signatures, in seconds
    WEBHOOK_TOLERANCE_SECONDS = 300

    def __init__(
        self,
        *,
        base_url: str,
        secret_key: str | None,
        webhook_secret: str | None = None,
        timeout_seconds: float = 10.0,
        currency: str = "usd",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.timeout_seconds = timeout_seconds
        self.currency = currency
        self._transport = transport
        self._client: httpx.Client | None = None

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
                headers={"Authorization": f"Bearer {self.secret_key}"},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def is_available(self) -> bool:
        return bool(self.secret_key)

    def _post(self, path: str, data: dict, idempotency_key: str | None = None) -> dict:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        response = self._http().post(path, data=data, headers=headers)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _describe_failure(exc: Exception, action: str) -> str:
        if isinstance(exc, httpx.TimeoutException):
            return f"Payment gateway timed out during {action}"
        if isinstance(exc, httpx.HTTPStatusError):
            try:
                message = exc.response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            return message or f"Payment gateway rejected {action} (HTTP {exc.response.status_code})"
        if isinstance(exc, httpx.HTTPError):
            return f"Payment gateway unavailable during {action}"
        return f"Invalid payment gateway response during {action}"

    def create_payment(self, amount_cents: int, context: PaymentContext) -> PaymentResult:
        data = {
            "amount": str(amount_cents),
            "currency": self.currency,
            "payment_method_types[]": "card",
            "metadata[order_id]": str(context.order_id),
            "metadata[customer_id]": str(context.customer_id or ""),
        }
        try:
            body = self._post(
                "/v1/payment_intents",
                data,
                idempotency_key=context.idempotency_key,
            )
            transaction_id = body["id"]
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            return PaymentResult(
                success=False,
                status=PAYMENT_STATUS_FAILED,
                error=self._describe_failure(exc, "payment creation"),
            )

        intent_status = body.get("status")
        if intent_status == "canceled":
            return PaymentResult(
                success=False,
                status=PAYMENT_STATUS_FAILED,
                transaction_id=transaction_id,
                error="Payment was canceled by the gateway",
            )

        return PaymentResult(
            success=True,
            status=PAYMENT_STATUS_COMPLETED if intent_status == "succeeded" else PAYMENT_STATUS_PENDING,
            transaction_id=transaction_id,
            client_secret=body.get("client_secret"),
        )

    def process_refund(self, transaction_id: str, amount_cents: int, context: PaymentContext) -> RefundResult:
        data = {
            "payment_intent": transaction_id,
            "amount": str(amount_cents),
            "reason": "requested_by_customer",
            "metadata[order_id]": str(context.order_id),
        }
        try:
            body = self._post(
                "/v1/refunds",
                data,
                idempotency_key=context.idempotency_key,
            )
        except (httpx.HTTPError, ValueError) as exc:
            return RefundResult(
                success=False,
                amount_cents=amount_cents,
                status=PAYMENT_STATUS_FAILED,
                error=self._describe_failure(exc, "refund"),
            )

        refund_status = body.get("status") or PAYMENT_STATUS_FAILED
        if refund_status in ("failed", "canceled"):
            return RefundResult(
                success=False,
                amount_cents=amount_cents,
                status=refund_status,
                refund_id=body.get("id"),
                error=body.get("failure_reason") or "Refund was declined by the gateway",
            )
        return RefundResult(
            success=True,
            amount_cents=amount_cents,
            status=refund_status,
            refund_id=body.get("id"),
        )

    def void_payment(self, transaction_id: str) -> bool:
        try:
            self._post(f"/v1/payment_intents/{transaction_id}/cancel", {})
        except (httpx.HTTPError, ValueError):
            return False
        return True

    def verify_webhook_signature(self, payload: bytes, signature_header: str | None, *, now: float | None = None) -> bool:
        """
        Check a "t=<unix>,v1=<hex hmac>" signature header.

        The signed message is "<t>.<raw body>" under HMAC-SHA256 with the
        webhook secret.
        """
        if not self.webhook_secret or not signature_header:
            return False

        parts = {}
        for item in signature_header.split(","):
            key, _, value = item.strip().partition("=")
            if key and value:
                parts.setdefault(key, []).append(value)

        try:
            timestamp = int(parts["t"][0])
        except (KeyError, ValueError):
            return False

        current = time.time() if now is None else now
        if abs(current - timestamp) > self.WEBHOOK_TOLERANCE_SECONDS:
            return False

        signed = f"{timestamp}.".encode() + payload
        expected = hmac.new(self.webhook_secret.encode(), signed, hashlib.sha256).hexdigest()
        return any(hmac.compare_digest(expected, candidate) for candidate in parts.get("v1", []))
