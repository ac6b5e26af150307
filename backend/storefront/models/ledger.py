from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_RESERVE = "RESERVE"
MOVEMENT_RELEASE = "RELEASE"


class StockMovement(db.Model):
    """
    Append-only journal of stock counter changes made by the inventory ledger.

    One row per counter touched (product or option value) per order.
    quantity_delta is negative for reservations, positive for releases.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint(
            "(product_id IS NOT NULL) <> (option_value_id IS NOT NULL)",
            name="ck_stock_movements_single_target",
        ),
        db.Index("ix_stock_movements_order_type", "order_id", "movement_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    movement_type = db.Column(db.String(16), nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    option_value_id = db.Column(db.Integer, db.ForeignKey("option_values.id"), nullable=True, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "movement_type": self.movement_type,
            "product_id": self.product_id,
            "option_value_id": self.option_value_id,
            "quantity_delta": self.quantity_delta,
            "stock_after": self.stock_after,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class OrderEvent(db.Model):
    """
    Append-only audit trail of order and payment lifecycle events.

    Written inside the same DB transaction as the change it records, so an
    aborted workflow leaves no events behind.
    """
    __tablename__ = "order_events"
    __table_args__ = (
        db.Index("ix_order_events_order_occurred", "order_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    event_type = db.Column(db.String(64), nullable=False)
    actor = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "payment_id": self.payment_id,
            "event_type": self.event_type,
            "actor": self.actor,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
