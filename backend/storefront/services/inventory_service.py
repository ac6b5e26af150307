# Overview: Inventory ledger; atomic stock reservation and release for orders.

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import Product, OptionValue, StockMovement
from ..models.ledger import MOVEMENT_RESERVE, MOVEMENT_RELEASE
from ..time_utils import utcnow
from .concurrency import lock_for_update
"""
Inventory Ledger Invariants (authoritative)

- Product.stock and OptionValue.stock are the only stock counters, and this
  module is the only writer.
- Counters are never negative at any observable time (DB CHECK constraints
  back this up).
- Effective stock of a line = min(product stock, each selected option's stock).
- reserve() is all-or-nothing across the whole item list: every item is checked
  against the locked counters before any counter is decremented.
- release() is the exact inverse of a reservation and may run once per order.
- Neither function commits. Both run inside the caller's unit of work so the
  check and the write share one isolation boundary.
- Rows are locked in ascending id order (products, then option values) so two
  concurrent orders over the same SKUs cannot deadlock each other.
"""


class InventoryError(Exception):
    """Raised for inventory ledger errors."""


class InsufficientStockError(InventoryError):
    def __init__(self, product_id: int, requested: int, available: int, product_name: str | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.product_name = product_name
        label = product_name or f"Product {product_id}"
        super().__init__(f"{label} has only {available} in stock")


@dataclass(frozen=True)
class StockItem:
    """One reservation request: a product, its selected options and a quantity."""
    product_id: int
    quantity: int
    option_ids: tuple[int, ...] = field(default_factory=tuple)


def effective_stock(product: Product, options: list[OptionValue]) -> int:
    """Minimum of base stock and every selected option's stock."""
    stock = product.stock
    for option in options:
        stock = min(stock, option.stock)
    return stock


def _lock_counters(session, items: list[StockItem]) -> tuple[dict[int, Product], dict[int, OptionValue]]:
    product_ids = sorted({item.product_id for item in items})
    option_ids = sorted({oid for item in items for oid in item.option_ids})

    products: dict[int, Product] = {}
    if product_ids:
        rows = lock_for_update(
            session.query(Product).filter(Product.id.in_(product_ids)).order_by(Product.id)
        ).all()
        products = {p.id: p for p in rows}

    options: dict[int, OptionValue] = {}
    if option_ids:
        rows = lock_for_update(
            session.query(OptionValue).filter(OptionValue.id.in_(option_ids)).order_by(OptionValue.id)
        ).all()
        options = {o.id: o for o in rows}

    missing_products = set(product_ids) - set(products)
    if missing_products:
        raise InventoryError(f"Product {min(missing_products)} not found")
    missing_options = set(option_ids) - set(options)
    if missing_options:
        raise InventoryError(f"Option value {min(missing_options)} not found")

    return products, options


def _record_movement(session, *, order_id: int, movement_type: str, quantity_delta: int,
                     stock_after: int, product_id=None, option_value_id=None, occurred_at=None) -> StockMovement:
    movement = StockMovement(
        order_id=order_id,
        movement_type=movement_type,
        product_id=product_id,
        option_value_id=option_value_id,
        quantity_delta=quantity_delta,
        stock_after=stock_after,
        occurred_at=occurred_at or utcnow(),
    )
    session.add(movement)
    return movement


def reserve(order_id: int, items: list[StockItem], *, session=None) -> list[StockMovement]:
    """
    Atomically decrement stock for every item.

    Raises InsufficientStockError naming the first item whose effective stock
    (after earlier items in the same request are accounted for) is below the
    requested quantity. Nothing is decremented in that case.
    """
    session = session or db.session
    if not items:
        raise InventoryError("Nothing to reserve")
    for item in items:
        if item.quantity <= 0:
            raise InventoryError("Reservation quantity must be positive")

    products, options = _lock_counters(session, items)

    # Check pass: work on copies of the locked counters
    remaining_products = {pid: p.stock for pid, p in products.items()}
    remaining_options = {oid: o.stock for oid, o in options.items()}
    for item in items:
        available = remaining_products[item.product_id]
        for oid in item.option_ids:
            available = min(available, remaining_options[oid])
        if item.quantity > available:
            raise InsufficientStockError(
                item.product_id,
                requested=item.quantity,
                available=available,
                product_name=products[item.product_id].name,
            )
        remaining_products[item.product_id] -= item.quantity
        for oid in item.option_ids:
            remaining_options[oid] -= item.quantity

    # Write pass
    now = utcnow()
    movements = []
    for pid in sorted(remaining_products):
        product = products[pid]
        delta = remaining_products[pid] - product.stock
        product.stock = remaining_products[pid]
        movements.append(_record_movement(
            session, order_id=order_id, movement_type=MOVEMENT_RESERVE,
            product_id=pid, quantity_delta=delta, stock_after=product.stock, occurred_at=now,
        ))
    for oid in sorted(remaining_options):
        option = options[oid]
        delta = remaining_options[oid] - option.stock
        option.stock = remaining_options[oid]
        movements.append(_record_movement(
            session, order_id=order_id, movement_type=MOVEMENT_RESERVE,
            option_value_id=oid, quantity_delta=delta, stock_after=option.stock, occurred_at=now,
        ))

    session.flush()
    return movements


def release(order_id: int, items: list[StockItem], *, session=None) -> list[StockMovement]:
    """
    Increment the same counters a reservation decremented.

    Guarded against double release: an order whose stock was already released
    raises InventoryError, as does an order with no recorded reservation.
    """
    session = session or db.session

    already_released = session.query(StockMovement.id).filter_by(
        order_id=order_id, movement_type=MOVEMENT_RELEASE
    ).first()
    if already_released is not None:
        raise InventoryError(f"Stock for order {order_id} was already released")

    reserved = session.query(StockMovement.id).filter_by(
        order_id=order_id, movement_type=MOVEMENT_RESERVE
    ).first()
    if reserved is None:
        raise InventoryError(f"No stock reservation recorded for order {order_id}")

    if not items:
        return []

    products, options = _lock_counters(session, items)

    product_deltas: dict[int, int] = {}
    option_deltas: dict[int, int] = {}
    for item in items:
        product_deltas[item.product_id] = product_deltas.get(item.product_id, 0) + item.quantity
        for oid in item.option_ids:
            option_deltas[oid] = option_deltas.get(oid, 0) + item.quantity

    now = utcnow()
    movements = []
    for pid in sorted(product_deltas):
        product = products[pid]
        product.stock = product.stock + product_deltas[pid]
        movements.append(_record_movement(
            session, order_id=order_id, movement_type=MOVEMENT_RELEASE,
            product_id=pid, quantity_delta=product_deltas[pid], stock_after=product.stock, occurred_at=now,
        ))
    for oid in sorted(option_deltas):
        option = options[oid]
        option.stock = option.stock + option_deltas[oid]
        movements.append(_record_movement(
            session, order_id=order_id, movement_type=MOVEMENT_RELEASE,
            option_value_id=oid, quantity_delta=option_deltas[oid], stock_after=option.stock, occurred_at=now,
        ))

    session.flush()
    return movements


def get_effective_stock(product_id: int, option_ids=(), *, session=None) -> int:
    """Unlocked read of a line's effective stock (for display and CLI)."""
    session = session or db.session
    product = session.get(Product, product_id)
    if product is None:
        raise InventoryError(f"Product {product_id} not found")
    options = []
    for oid in option_ids:
        option = session.get(OptionValue, oid)
        if option is None:
            raise InventoryError(f"Option value {oid} not found")
        options.append(option)
    return effective_stock(product, options)


def stock_movements(order_id: int, *, session=None) -> list[StockMovement]:
    session = session or db.session
    return session.query(StockMovement).filter_by(order_id=order_id).order_by(StockMovement.id).all()
