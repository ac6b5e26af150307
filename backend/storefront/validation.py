from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .models.orders import VALID_ORDER_STATUSES, VALID_PAYMENT_METHODS


# Gateways cap Idempotency-Key at 255; leave room for the customer prefix
MAX_IDEMPOTENCY_KEY_LENGTH = 200


class ValidationError(ValueError):
    """400-level input problem, with per-field messages."""

    code = "ValidationFailed"

    def __init__(self, message: str = "Invalid request", fields: dict[str, str] | None = None):
        super().__init__(message)
        self.fields = fields or {}


def coerce_int(value: Any) -> int | None:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            return None
        try:
            return int(stripped)
        except ValueError:
            return None
    return None


def parse_id(value: Any, field: str) -> int:
    """Validate a record identifier (positive integer)."""
    if value is None or value == "":
        raise ValidationError(fields={field: f"{field} is required"})
    parsed = coerce_int(value)
    if parsed is None or parsed <= 0:
        raise ValidationError(fields={field: f"Invalid {field}"})
    return parsed


def validate_create_order(data: dict) -> dict:
    """
    Validate the create-order payload before any side effect.

    Returns {"address_id": int, "payment_method": str, "idempotency_key": str | None}.
    """
    errors: dict[str, str] = {}
    address_id = None
    payment_method = data.get("payment_method")

    try:
        address_id = parse_id(data.get("address_id"), "address_id")
    except ValidationError as exc:
        errors.update(exc.fields)

    if not payment_method:
        errors["payment_method"] = "Payment method is required"
    elif not isinstance(payment_method, str) or payment_method.lower() not in VALID_PAYMENT_METHODS:
        errors["payment_method"] = (
            f"Payment method must be one of: {', '.join(VALID_PAYMENT_METHODS)}"
        )

    idempotency_key = data.get("idempotency_key")
    if idempotency_key is not None:
        if not isinstance(idempotency_key, str) or not idempotency_key.strip():
            errors["idempotency_key"] = "Idempotency key must be a non-empty string"
        elif len(idempotency_key.strip()) > MAX_IDEMPOTENCY_KEY_LENGTH:
            errors["idempotency_key"] = (
                f"Idempotency key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters"
            )
        else:
            idempotency_key = idempotency_key.strip()

    if errors:
        raise ValidationError(", ".join(errors.values()), fields=errors)

    return {
        "address_id": address_id,
        "payment_method": payment_method.lower(),
        "idempotency_key": idempotency_key,
    }


def validate_order_status(value: Any) -> str:
    if not isinstance(value, str) or value.lower() not in VALID_ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status. Valid statuses: {', '.join(VALID_ORDER_STATUSES)}",
            fields={"status": "invalid"},
        )
    return value.lower()


def parse_pagination(args, *, default_limit: int = 10) -> tuple[int, int]:
    page = coerce_int(args.get("page", 1))
    limit = coerce_int(args.get("limit", default_limit))
    fields = {}
    if page is None or page < 1:
        fields["page"] = "page must be a positive integer"
    if limit is None or limit < 1:
        fields["limit"] = "limit must be a positive integer"
    if fields:
        raise ValidationError("Invalid pagination", fields=fields)
    return page, limit


def parse_amount_cents(value: Any, field: str) -> int | None:
    """Parse a decimal money string ("10.5") into integer cents."""
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(fields={field: f"{field} must be a decimal amount"})
    if not amount.is_finite() or amount < 0:
        raise ValidationError(fields={field: f"{field} must be a non-negative amount"})
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_datetime_arg(value: Any, field: str) -> datetime | None:
    """
    Query-string date filter ("2026-10-01", "2026-10-01T09:00Z", "...+02:00").

    Naive values are taken as UTC; aware values are converted. Returns a naive
    UTC datetime comparable with stored columns.
    """
    if value is None or value == "":
        return None
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(fields={field: f"{field} must be an ISO-8601 datetime"})
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
