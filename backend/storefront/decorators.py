# Overview: Identity decorators for API routes (identity is asserted by the upstream auth proxy).

from functools import wraps
from flask import request, jsonify, g

from .validation import coerce_int


CUSTOMER_HEADER = "X-Customer-Id"
ROLE_HEADER = "X-Role"
ADMIN_ROLE = "admin"


def require_customer(f):
    """
    Require an authenticated customer.

    Sets g.customer_id from the X-Customer-Id header. Returns 401 if the
    header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        customer_id = coerce_int(request.headers.get(CUSTOMER_HEADER))
        if customer_id is None or customer_id <= 0:
            return jsonify({"error": "Authentication required"}), 401

        g.customer_id = customer_id
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the admin role (X-Role: admin)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        role = (request.headers.get(ROLE_HEADER) or "").strip().lower()
        if not role:
            return jsonify({"error": "Authentication required"}), 401
        if role != ADMIN_ROLE:
            return jsonify({"error": "Admin access required"}), 403

        g.role = role
        return f(*args, **kwargs)

    return decorated_function
