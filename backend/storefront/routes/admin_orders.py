# Overview: Flask API routes for admin order management; parses input and returns JSON responses.

# backend/storefront/routes/admin_orders.py
"""
Admin Order API Routes

DESIGN:
- Listing supports filters (status, customer, date range, amount range,
  address search), sorting and pagination, plus statistics over the filter
- Status changes are forward-only; "cancelled" runs the full cancellation
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_admin
from ..services import order_service
from ..services.concurrency import CONCURRENCY_ERRORS
from ..services.order_service import OrderError
from ..services.order_store import OrderFilter, SORTABLE_FIELDS
from ..validation import (
    ValidationError,
    coerce_int,
    parse_amount_cents,
    parse_datetime_arg,
    parse_pagination,
    validate_order_status,
)
from .orders import conflict_response, error_response, serialize_cancel


admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin/orders")


def _parse_filter(args) -> OrderFilter:
    status = args.get("status") or None
    if status is not None:
        status = validate_order_status(status)

    customer_id = None
    if args.get("customer_id"):
        customer_id = coerce_int(args.get("customer_id"))
        if customer_id is None or customer_id <= 0:
            raise ValidationError(fields={"customer_id": "Invalid customer_id"})

    start = parse_datetime_arg(args.get("start_date"), "start_date")
    end = parse_datetime_arg(args.get("end_date"), "end_date")
    if start and end and start > end:
        raise ValidationError(fields={"start_date": "start_date must be before end_date"})

    min_amount = parse_amount_cents(args.get("min_amount"), "min_amount")
    max_amount = parse_amount_cents(args.get("max_amount"), "max_amount")
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise ValidationError(fields={"min_amount": "min_amount must not exceed max_amount"})

    return OrderFilter(
        customer_id=customer_id,
        status=status,
        start=start,
        end=end,
        min_amount_cents=min_amount,
        max_amount_cents=max_amount,
        search=(args.get("search") or "").strip() or None,
    )


@admin_orders_bp.get("")
@require_admin
def admin_list_orders_route():
    """
    List all orders.

    Query params:
        status, customer_id, start_date, end_date (ISO-8601),
        min_amount, max_amount (decimal), search (address substring),
        sort_by (placed_at | total_amount | status | created_at),
        sort_order (asc | desc), page, limit
    """
    try:
        flt = _parse_filter(request.args)
        page, limit = parse_pagination(request.args)

        sort_by = request.args.get("sort_by", "placed_at")
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(fields={"sort_by": f"sort_by must be one of: {', '.join(SORTABLE_FIELDS)}"})
        sort_order = request.args.get("sort_order", "desc").lower()
        if sort_order not in ("asc", "desc"):
            raise ValidationError(fields={"sort_order": "sort_order must be asc or desc"})

        rows, pagination, stats = order_service.admin_list_orders(
            flt, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
        )
        return jsonify({
            "orders": [order.to_dict(payment=payment) for order, payment in rows],
            "pagination": pagination,
            "stats": stats,
        }), 200

    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders (admin)")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.get("/<int:order_id>")
@require_admin
def admin_get_order_route(order_id: int):
    try:
        order, payment = order_service.admin_get_order(order_id)
        return jsonify({"order": order.to_dict(payment=payment)}), 200

    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order (admin)")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.patch("/<int:order_id>/status")
@require_admin
def admin_update_status_route(order_id: int):
    """
    Move an order to a new status.

    Request body: {"status": "shipped"}
    """
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("status"):
            return jsonify({"error": "status required", "code": "ValidationFailed"}), 400

        result = order_service.admin_update_status(order_id, data.get("status"))
        return jsonify({
            "message": "Order status updated successfully",
            "order": result.order.to_dict(payment=result.payment),
        }), 200

    except OrderError as e:
        return error_response(e)
    except CONCURRENCY_ERRORS:
        current_app.logger.warning("Concurrent modification while updating order %s", order_id)
        return conflict_response()
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/<int:order_id>/cancel")
@require_admin
def admin_cancel_order_route(order_id: int):
    try:
        result = order_service.admin_cancel_order(order_id)
        return jsonify(serialize_cancel(result)), 200

    except OrderError as e:
        return error_response(e)
    except CONCURRENCY_ERRORS:
        current_app.logger.warning("Concurrent modification while cancelling order %s", order_id)
        return conflict_response()
    except Exception:
        current_app.logger.exception("Failed to cancel order (admin)")
        return jsonify({"error": "Internal server error"}), 500
