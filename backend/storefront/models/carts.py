from __future__ import annotations

from ..extensions import db


cart_line_options = db.Table(
    "cart_line_options",
    db.Column("cart_line_id", db.Integer, db.ForeignKey("cart_lines.id", ondelete="CASCADE"), primary_key=True),
    db.Column("option_value_id", db.Integer, db.ForeignKey("option_values.id"), primary_key=True),
)


class Cart(db.Model):
    """One pending cart per customer. Cleared (not archived) when an order is placed."""
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "CartLine",
        backref="cart",
        lazy=True,
        order_by="CartLine.id",
        cascade="all, delete-orphan",
    )


class CartLine(db.Model):
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_cart_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    options = db.relationship("OptionValue", secondary=cart_line_options, lazy=True, order_by="OptionValue.id")
