from __future__ import annotations

from ..extensions import db


class Customer(db.Model):
    """Customer identity as provided by the auth/profile service."""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}


class Address(db.Model):
    """Shipping address owned by a customer."""
    __tablename__ = "addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    street = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(120), nullable=False)
    zip_code = db.Column(db.String(32), nullable=False)

    customer = db.relationship("Customer", backref=db.backref("addresses", lazy=True))

    def full(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip_code}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }
