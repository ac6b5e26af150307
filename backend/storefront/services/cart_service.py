# Overview: CartSnapshot collaborator; read-then-clear view of a customer's cart.

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import Cart, CartLine, OptionValue


@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int
    option_ids: tuple[int, ...] = field(default_factory=tuple)


def _get_cart_row(customer_id: int, session) -> Cart | None:
    return session.query(Cart).filter_by(customer_id=customer_id).first()


def get_cart(customer_id: int, *, session=None) -> list[CartItem]:
    """Snapshot of the cart lines in insertion order. Empty list if no cart."""
    session = session or db.session
    cart = _get_cart_row(customer_id, session)
    if cart is None:
        return []
    return [
        CartItem(
            product_id=line.product_id,
            quantity=line.quantity,
            option_ids=tuple(opt.id for opt in line.options),
        )
        for line in cart.lines
    ]


def clear_cart(customer_id: int, *, session=None) -> None:
    """Remove every line. Runs inside the caller's unit of work; no commit."""
    session = session or db.session
    cart = _get_cart_row(customer_id, session)
    if cart is None:
        return
    cart.lines.clear()
    session.flush()


def add_item(customer_id: int, product_id: int, quantity: int, option_ids=(), *, session=None) -> Cart:
    """
    Append a line to the customer's cart, creating the cart if needed.

    Used by the seed command and tests; cart management endpoints belong to
    the cart service.
    """
    session = session or db.session
    cart = _get_cart_row(customer_id, session)
    if cart is None:
        cart = Cart(customer_id=customer_id)
        session.add(cart)
        session.flush()

    line = CartLine(cart_id=cart.id, product_id=product_id, quantity=quantity)
    if option_ids:
        line.options = session.query(OptionValue).filter(OptionValue.id.in_(list(option_ids))).all()
    cart.lines.append(line)
    session.flush()
    return cart
