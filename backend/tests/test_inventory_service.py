"""
Tests for the inventory ledger.

Reservations are all-or-nothing over the whole item list, releases are the
exact inverse and may happen once per order.
"""

import pytest

from storefront.models import Order, Product, StockMovement
from storefront.models.ledger import MOVEMENT_RELEASE, MOVEMENT_RESERVE
from storefront.services import inventory_service
from storefront.services.concurrency import unit_of_work
from storefront.services.inventory_service import (
    InsufficientStockError,
    InventoryError,
    StockItem,
)
from storefront.time_utils import utcnow


pytestmark = pytest.mark.inventory


@pytest.fixture
def order(db_session, customer):
    """Bare pending order row to hang stock movements on."""
    order = Order(
        customer_id=customer.id,
        placed_at=utcnow(),
        status="pending",
        total_amount_cents=0,
        address="x",
    )
    db_session.add(order)
    db_session.commit()
    return order


@pytest.fixture
def gadget(db_session):
    product = Product(name="Gadget", price_cents=999, stock=3)
    db_session.add(product)
    db_session.commit()
    return product


def test_effective_stock_is_minimum_of_product_and_options(widget, size_large):
    assert inventory_service.effective_stock(widget, []) == 10
    assert inventory_service.effective_stock(widget, [size_large]) == 5
    assert inventory_service.get_effective_stock(widget.id, (size_large.id,)) == 5


def test_reserve_decrements_product_and_option_counters(db_session, order, widget, size_large):
    with unit_of_work() as session:
        inventory_service.reserve(
            order.id, [StockItem(widget.id, 2, (size_large.id,))], session=session
        )

    assert db_session.get(Product, widget.id).stock == 8
    assert size_large.stock == 3

    movements = inventory_service.stock_movements(order.id)
    assert {(m.product_id, m.option_value_id, m.quantity_delta) for m in movements} == {
        (widget.id, None, -2),
        (None, size_large.id, -2),
    }
    assert all(m.movement_type == MOVEMENT_RESERVE for m in movements)


def test_reserve_is_all_or_nothing(db_session, order, widget, gadget):
    items = [StockItem(widget.id, 2), StockItem(gadget.id, 4)]

    with pytest.raises(InsufficientStockError) as exc_info:
        with unit_of_work() as session:
            inventory_service.reserve(order.id, items, session=session)

    assert exc_info.value.product_id == gadget.id
    assert exc_info.value.available == 3
    assert "Gadget has only 3 in stock" in str(exc_info.value)

    db_session.expire_all()
    assert db_session.get(Product, widget.id).stock == 10
    assert db_session.get(Product, gadget.id).stock == 3
    assert db_session.query(StockMovement).count() == 0


def test_reserve_accounts_for_earlier_lines_of_same_product(db_session, order, widget, size_large):
    # 8 units fit the product's 10, but the option only has 5
    items = [StockItem(widget.id, 4, (size_large.id,)), StockItem(widget.id, 4, (size_large.id,))]

    with pytest.raises(InsufficientStockError) as exc_info:
        with unit_of_work() as session:
            inventory_service.reserve(order.id, items, session=session)

    assert exc_info.value.available == 1

    db_session.expire_all()
    assert db_session.get(Product, widget.id).stock == 10


def test_reserve_rejects_empty_and_non_positive_requests(order, widget):
    with pytest.raises(InventoryError):
        inventory_service.reserve(order.id, [])
    with pytest.raises(InventoryError):
        inventory_service.reserve(order.id, [StockItem(widget.id, 0)])


def test_reserve_unknown_product(order):
    with pytest.raises(InventoryError, match="not found"):
        inventory_service.reserve(order.id, [StockItem(9999, 1)])


def test_release_restores_counters_exactly(db_session, order, widget, size_large, gadget):
    items = [StockItem(widget.id, 2, (size_large.id,)), StockItem(gadget.id, 1)]
    with unit_of_work() as session:
        inventory_service.reserve(order.id, items, session=session)
    with unit_of_work() as session:
        inventory_service.release(order.id, items, session=session)

    db_session.expire_all()
    assert db_session.get(Product, widget.id).stock == 10
    assert db_session.get(Product, gadget.id).stock == 3
    assert size_large.stock == 5

    releases = [m for m in inventory_service.stock_movements(order.id) if m.movement_type == MOVEMENT_RELEASE]
    assert sum(m.quantity_delta for m in releases) == 2 + 2 + 1


def test_double_release_is_rejected(db_session, order, widget):
    items = [StockItem(widget.id, 3)]
    with unit_of_work() as session:
        inventory_service.reserve(order.id, items, session=session)
    with unit_of_work() as session:
        inventory_service.release(order.id, items, session=session)

    with pytest.raises(InventoryError, match="already released"):
        with unit_of_work() as session:
            inventory_service.release(order.id, items, session=session)

    db_session.expire_all()
    assert db_session.get(Product, widget.id).stock == 10


def test_release_without_reservation_is_rejected(order, widget):
    with pytest.raises(InventoryError, match="No stock reservation"):
        inventory_service.release(order.id, [StockItem(widget.id, 1)])
