from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, cents_to_amount


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

# Forward progression; cancelled sits outside it
ORDER_STATUS_SEQUENCE = [
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_COMPLETED,
]

VALID_ORDER_STATUSES = ORDER_STATUS_SEQUENCE + [ORDER_STATUS_CANCELLED]
CANCELLABLE_ORDER_STATUSES = {ORDER_STATUS_PENDING, ORDER_STATUS_PROCESSING}
TERMINAL_ORDER_STATUSES = {ORDER_STATUS_COMPLETED, ORDER_STATUS_CANCELLED}


# =============================================================================
# PAYMENT STATUS / METHOD (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_COMPLETED = "completed"
PAYMENT_STATUS_REFUNDED = "refunded"
PAYMENT_STATUS_CANCELLED = "cancelled"
PAYMENT_STATUS_FAILED = "failed"

VALID_PAYMENT_STATUSES = [
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_REFUNDED,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_FAILED,
]

PAYMENT_METHOD_CASH = "cash"
PAYMENT_METHOD_CARD = "card"

VALID_PAYMENT_METHODS = [PAYMENT_METHOD_CASH, PAYMENT_METHOD_CARD]


class Order(db.Model):
    """
    Customer order.

    Lines, total and address are snapshots captured at creation time and are
    never edited afterwards. Only `status` mutates. Orders are never deleted.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total_amount_cents >= 0", name="ck_orders_total_non_negative"),
        db.Index("ix_orders_customer_placed", "customer_id", "placed_at"),
        db.Index("ix_orders_status_placed", "status", "placed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    placed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    # Sum of line subtotals; no tax or shipping is applied at this layer
    total_amount_cents = db.Column(db.Integer, nullable=False)

    # Denormalized "street, city, state zip"
    address = db.Column(db.String(512), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def can_cancel(self) -> bool:
        return self.status in CANCELLABLE_ORDER_STATUSES

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} total_cents={self.total_amount_cents}>"

    def to_dict(self, payment: "Payment | None" = None) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "placed_at": to_utc_z(self.placed_at),
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "total_amount": cents_to_amount(self.total_amount_cents),
            "products": [line.to_dict() for line in self.lines],
            "address": self.address,
            "can_cancel": self.can_cancel,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if payment is not None:
            data["payment"] = payment.to_dict()
        return data


class OrderLine(db.Model):
    """Snapshot of a cart line at order time (not a live product reference)."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity_positive"),
        db.UniqueConstraint("order_id", "position", name="uq_order_lines_order_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    # Kept for stock release; name/price/image below are what the customer saw
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    image = db.Column(db.String(512), nullable=False, default="")

    # Base price + sum of selected option increments, at order time
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    options = db.relationship(
        "OrderLineOption",
        backref="line",
        lazy=True,
        order_by="OrderLineOption.id",
        cascade="all, delete-orphan",
    )

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.product_name,
            "unit_price_cents": self.unit_price_cents,
            "price": cents_to_amount(self.unit_price_cents),
            "quantity": self.quantity,
            "image": self.image,
            "selected_options": [opt.to_dict() for opt in self.options] or None,
            "subtotal_cents": self.subtotal_cents,
            "subtotal": cents_to_amount(self.subtotal_cents),
        }


class OrderLineOption(db.Model):
    """Snapshot of a selected variant option on an order line."""
    __tablename__ = "order_line_options"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=False, index=True)
    option_value_id = db.Column(db.Integer, db.ForeignKey("option_values.id"), nullable=False)
    option_type_name = db.Column(db.String(120), nullable=False)
    value = db.Column(db.String(120), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "option_value_id": self.option_value_id,
            "option_type_name": self.option_type_name,
            "value": self.value,
            "price_cents": self.price_cents,
            "price": cents_to_amount(self.price_cents),
        }


class Payment(db.Model):
    """
    Payment record, one per order.

    amount_cents always equals the order total and never changes.
    Status transitions are enforced by services.payment_store.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_payments_order"),
        db.CheckConstraint("amount_cents >= 0", name="ck_payments_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    method = db.Column(db.String(16), nullable=False)

    # Gateway-side identifier (card payment intent); null for cash
    gateway_transaction_id = db.Column(db.String(128), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)

    refund_id = db.Column(db.String(128), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("payment", uselist=False, lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "method": self.method,
            "gateway_transaction_id": self.gateway_transaction_id,
            "status": self.status,
            "amount_cents": self.amount_cents,
            "amount": cents_to_amount(self.amount_cents),
            "paid_at": to_utc_z(self.paid_at),
            "refund_id": self.refund_id,
            "refunded_at": to_utc_z(self.refunded_at),
        }
