# Overview: Service-layer payment dispatch; selects a gateway variant per payment method.

"""
Payment Service

WHY: The order workflow talks to one uniform contract (create / refund /
void) regardless of which payment method the customer picked.

DESIGN:
- One gateway instance per enabled method, built once per app from config
- Unknown methods and unexpected gateway exceptions come back as failed
  results; nothing here raises into the order workflow
- No retries: a failed payment or refund is reported once and the caller
  aborts its unit of work
"""

from __future__ import annotations

from flask import current_app

from ..models.orders import (
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_CASH,
    PAYMENT_STATUS_FAILED,
)
from .payment_gateways import (
    CardGateway,
    CashGateway,
    PaymentContext,
    PaymentGateway,
    PaymentResult,
    RefundResult,
)


class PaymentError(Exception):
    """Raised for payment method lookup errors."""


class PaymentService:
    def __init__(self, gateways: dict[str, PaymentGateway]):
        self._gateways = {name.lower(): gw for name, gw in gateways.items()}

    @classmethod
    def from_config(cls, config) -> "PaymentService":
        enabled = config.get("PAYMENT_METHODS") or [PAYMENT_METHOD_CASH, PAYMENT_METHOD_CARD]
        gateways: dict[str, PaymentGateway] = {}
        if PAYMENT_METHOD_CASH in enabled:
            gateways[PAYMENT_METHOD_CASH] = CashGateway()
        if PAYMENT_METHOD_CARD in enabled:
            gateways[PAYMENT_METHOD_CARD] = CardGateway(
                base_url=config["CARD_GATEWAY_URL"],
                secret_key=config.get("CARD_GATEWAY_SECRET_KEY"),
                webhook_secret=config.get("CARD_GATEWAY_WEBHOOK_SECRET"),
                timeout_seconds=config.get("CARD_GATEWAY_TIMEOUT_SECONDS", 10.0),
                currency=config.get("CARD_GATEWAY_CURRENCY", "usd"),
                transport=config.get("CARD_GATEWAY_TRANSPORT"),
            )
        return cls(gateways)

    # -------------------------------------------------------------------------
    # Method lookup
    # -------------------------------------------------------------------------

    def supported_methods(self) -> list[str]:
        return list(self._gateways)

    def is_supported(self, method: str | None) -> bool:
        return bool(method) and method.lower() in self._gateways

    def gateway_for(self, method: str) -> PaymentGateway:
        gateway = self._gateways.get((method or "").lower())
        if gateway is None:
            raise PaymentError(
                f"Unsupported payment method: {method}. "
                f"Supported methods: {', '.join(self.supported_methods())}"
            )
        return gateway

    def is_available(self, method: str | None) -> bool:
        """Supported and configured. Static check, no I/O."""
        if not self.is_supported(method):
            return False
        return self.gateway_for(method).is_available()

    def available_methods(self) -> list[str]:
        return [m for m in self.supported_methods() if self.is_available(m)]

    def method_details(self) -> list[dict]:
        return [gw.details() for gw in self._gateways.values()]

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def create_payment(self, method: str, amount_cents: int, context: PaymentContext) -> PaymentResult:
        try:
            gateway = self.gateway_for(method)
            if not gateway.is_available():
                raise PaymentError(f"Payment method {method} is not configured")
            result = gateway.create_payment(amount_cents, context)
        except PaymentError as exc:
            return PaymentResult(success=False, status=PAYMENT_STATUS_FAILED, error=str(exc))
        except Exception:
            current_app.logger.exception("Payment creation error (%s)", method)
            return PaymentResult(success=False, status=PAYMENT_STATUS_FAILED, error="Payment creation failed")

        if not result.success:
            current_app.logger.warning(
                "Payment creation failed for order %s (%s): %s", context.order_id, method, result.error
            )
        return result

    def process_refund(self, method: str, transaction_id: str, amount_cents: int,
                       context: PaymentContext) -> RefundResult:
        try:
            result = self.gateway_for(method).process_refund(transaction_id, amount_cents, context)
        except PaymentError as exc:
            return RefundResult(success=False, amount_cents=amount_cents, status=PAYMENT_STATUS_FAILED, error=str(exc))
        except Exception:
            current_app.logger.exception("Refund processing error (%s)", method)
            return RefundResult(
                success=False,
                amount_cents=amount_cents,
                status=PAYMENT_STATUS_FAILED,
                error="Refund processing failed",
            )

        if not result.success:
            current_app.logger.warning(
                "Refund failed for order %s (%s): %s", context.order_id, method, result.error
            )
        return result

    def void_payment(self, method: str, transaction_id: str) -> bool:
        try:
            voided = self.gateway_for(method).void_payment(transaction_id)
        except Exception:
            current_app.logger.exception("Payment void error (%s) for %s", method, transaction_id)
            return False
        if not voided:
            current_app.logger.warning("Could not void %s payment %s", method, transaction_id)
        return voided


def init_app(app) -> PaymentService:
    service = PaymentService.from_config(app.config)
    app.extensions["payment_service"] = service
    return service


def get_payment_service() -> PaymentService:
    return current_app.extensions["payment_service"]
