from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, cents_to_amount


class Product(db.Model):
    """
    Catalog product as seen by the order workflow.

    Catalog CRUD lives outside this service; orders only read price/name/image
    and move the stock counter through the inventory ledger.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_deleted_at", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    # Base price in cents; selected options add their own increments
    price_cents = db.Column(db.Integer, nullable=False)

    # Mutated only by services.inventory_service
    stock = db.Column(db.Integer, nullable=False, default=0)

    image = db.Column(db.String(512), nullable=False, default="")
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "price": cents_to_amount(self.price_cents),
            "stock": self.stock,
            "image": self.image,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class OptionType(db.Model):
    """Variant dimension, e.g. "Size" or "Color"."""
    __tablename__ = "option_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class OptionValue(db.Model):
    """
    A selectable variant value with its own price increment and stock.

    Effective stock of a cart line is min(product.stock, each option's stock).
    """
    __tablename__ = "option_values"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_option_values_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    option_type_id = db.Column(db.Integer, db.ForeignKey("option_types.id"), nullable=False, index=True)
    value = db.Column(db.String(120), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    option_type = db.relationship("OptionType", backref=db.backref("values", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "option_type_id": self.option_type_id,
            "value": self.value,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "deleted_at": to_utc_z(self.deleted_at),
        }
