# Overview: Flask API routes for customer orders; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""
Customer Order API Routes

DESIGN:
- Checkout turns the customer's cart into an order (POST /api/orders)
- Customers can only see and cancel their own orders
- Business failures return {"error", "code", "details"}; the code is stable
  for clients, the message is for people
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_customer
from ..services import order_service
from ..services.concurrency import CONCURRENCY_ERRORS
from ..services.order_service import OrderError
from ..validation import ValidationError, parse_pagination


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

IDEMPOTENCY_HEADER = "Idempotency-Key"


def error_response(exc):
    """JSON body and status for a workflow or validation error."""
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "code": exc.code, "details": exc.fields}), 400
    return jsonify({"error": str(exc), "code": exc.code, "details": exc.details}), exc.http_status


def conflict_response():
    return jsonify({
        "error": "Order was modified concurrently, please retry",
        "code": "Conflict",
    }), 409


def serialize_cancel(result) -> dict:
    return {
        "message": "Order cancelled successfully",
        "order": result.order.to_dict(payment=result.payment),
        "refund_info": result.refund_info.to_dict() if result.refund_info else None,
    }


# =============================================================================
# CHECKOUT
# =============================================================================

@orders_bp.post("")
@require_customer
def create_order_route():
    """
    Create an order from the customer's cart.

    Request body:
    {
        "address_id": 12,
        "payment_method": "card"   (cash | card)
    }

    Optional "Idempotency-Key" header: re-sending a checkout with the same
    key never opens a second card charge.

    Returns:
        201: Order created (client_secret is set for card payments)
        400: Validation or business failure (see "code")
        404: Address not found
        409: Concurrent modification
        500: Server error
    """
    try:
        data = request.get_json(silent=True) or {}
        result = order_service.create_order(
            g.customer_id,
            data.get("address_id"),
            data.get("payment_method"),
            idempotency_key=request.headers.get(IDEMPOTENCY_HEADER),
        )

        body = {
            "message": "Order created successfully",
            "order": result.order.to_dict(payment=result.payment),
        }
        if result.client_secret:
            body["client_secret"] = result.client_secret
        return jsonify(body), 201

    except (ValidationError, OrderError) as e:
        return error_response(e)
    except CONCURRENCY_ERRORS:
        current_app.logger.warning("Concurrent modification while creating order")
        return conflict_response()
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# READS
# =============================================================================

@orders_bp.get("")
@require_customer
def list_orders_route():
    """
    List the customer's orders, newest first.

    Query params: status, page (default 1), limit (default 10, max 100)
    """
    try:
        page, limit = parse_pagination(request.args)
        rows, pagination = order_service.list_orders(
            g.customer_id,
            status=request.args.get("status") or None,
            page=page,
            limit=limit,
        )
        return jsonify({
            "orders": [order.to_dict(payment=payment) for order, payment in rows],
            "pagination": pagination,
        }), 200

    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_customer
def get_order_route(order_id: int):
    try:
        order, payment = order_service.get_order(g.customer_id, order_id)
        return jsonify({"order": order.to_dict(payment=payment)}), 200

    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CANCELLATION
# =============================================================================

@orders_bp.post("/<int:order_id>/cancel")
@require_customer
def cancel_order_route(order_id: int):
    """
    Cancel a pending or processing order.

    Releases reserved stock; a completed card payment is refunded first.

    Returns:
        200: {order, refund_info}
        400: CannotCancel / RefundFailed
        404: OrderNotFound / PaymentInfoMissing
    """
    try:
        result = order_service.cancel_order(g.customer_id, order_id)
        return jsonify(serialize_cancel(result)), 200

    except OrderError as e:
        return error_response(e)
    except CONCURRENCY_ERRORS:
        current_app.logger.warning("Concurrent modification while cancelling order %s", order_id)
        return conflict_response()
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
