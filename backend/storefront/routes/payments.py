# Overview: Flask API routes for payment methods and card gateway callbacks.

# backend/storefront/routes/payments.py
"""
Payment API Routes

DESIGN:
- Clients ask which methods are usable before checkout
- The card gateway reports asynchronous success through a signed webhook;
  a verified payment_intent.succeeded moves the payment pending -> completed,
  or refunds it when the order was cancelled before the customer paid

SECURITY:
- Webhook requests must carry a valid "t=...,v1=..." signature over the raw
  body; anything else is rejected before the body is parsed
"""

import json

from flask import Blueprint, request, jsonify, current_app

from ..models.orders import PAYMENT_METHOD_CARD
from ..services import order_service
from ..services.order_service import OrderError
from ..services.payment_service import PaymentError, get_payment_service
from .orders import error_response


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")

SIGNATURE_HEADER = "Stripe-Signature"
EVENT_PAYMENT_SUCCEEDED = "payment_intent.succeeded"


@payments_bp.get("/methods")
def list_payment_methods_route():
    service = get_payment_service()
    return jsonify({
        "available": service.available_methods(),
        "methods": service.method_details(),
    }), 200


@payments_bp.post("/card/webhook")
def card_webhook_route():
    """
    Card gateway webhook.

    Returns:
        200: Event processed or ignored
        400: Bad signature or malformed event
        404: Card payments disabled, or unknown payment
    """
    try:
        gateway = get_payment_service().gateway_for(PAYMENT_METHOD_CARD)
    except PaymentError as e:
        return jsonify({"error": str(e)}), 404

    payload = request.get_data()
    if not gateway.verify_webhook_signature(payload, request.headers.get(SIGNATURE_HEADER)):
        current_app.logger.warning("Rejected card webhook with invalid signature")
        return jsonify({"error": "Invalid signature"}), 400

    try:
        event = json.loads(payload)
        event_type = event["type"]
        intent = event.get("data", {}).get("object", {})
    except (ValueError, KeyError, TypeError, AttributeError):
        return jsonify({"error": "Malformed event"}), 400

    if event_type != EVENT_PAYMENT_SUCCEEDED:
        return jsonify({"received": True, "ignored": True}), 200

    transaction_id = intent.get("id") if isinstance(intent, dict) else None
    if not transaction_id:
        return jsonify({"error": "Malformed event"}), 400

    try:
        payment = order_service.confirm_card_payment(transaction_id)
        return jsonify({"received": True, "payment": payment.to_dict()}), 200

    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process card webhook")
        return jsonify({"error": "Internal server error"}), 500
