"""
Concurrent checkout against a file-backed SQLite database.

Each worker thread runs create_order in its own app context and connection,
so reservations really race for the database write lock.
"""

import threading

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Address, Customer, Order, Payment, Product
from storefront.services import cart_service, order_service
from storefront.services.order_service import OrderError


pytestmark = pytest.mark.inventory


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'checkout.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30, "check_same_thread": False}},
        'PAYMENT_METHODS': ['cash'],
        'NOTIFICATIONS_ENABLED': False,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _seed(app, *, stock, buyers):
    """One product with `stock` units and `buyers` customers each holding 1 in their cart."""
    with app.app_context():
        product = Product(name="Last Widget", price_cents=1549, stock=stock)
        db.session.add(product)
        db.session.flush()

        shoppers = []
        for n in range(buyers):
            customer = Customer(name=f"Buyer {n}", email=f"buyer{n}@example.com")
            db.session.add(customer)
            db.session.flush()
            address = Address(customer_id=customer.id, street=f"{n} Race St", city="Springfield",
                              state="IL", zip_code="62701")
            db.session.add(address)
            db.session.flush()
            cart_service.add_item(customer.id, product.id, 1)
            shoppers.append((customer.id, address.id))

        db.session.commit()
        return product.id, shoppers


def _checkout_all(app, shoppers):
    outcomes = []
    lock = threading.Lock()
    start = threading.Barrier(len(shoppers))

    def worker(customer_id, address_id):
        with app.app_context():
            try:
                start.wait()
                order_service.create_order(customer_id, address_id, "cash")
                outcome = "ok"
            except OrderError as exc:
                outcome = exc.code
            except Exception as exc:
                outcome = type(exc).__name__
            finally:
                db.session.remove()
            with lock:
                outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=shopper) for shopper in shoppers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    return outcomes


@pytest.mark.parametrize("stock, buyers", [(1, 4), (3, 6)])
def test_concurrent_checkouts_never_oversell(file_app, stock, buyers):
    product_id, shoppers = _seed(file_app, stock=stock, buyers=buyers)

    outcomes = _checkout_all(file_app, shoppers)

    assert len(outcomes) == buyers
    assert outcomes.count("ok") == stock
    assert outcomes.count("InsufficientStock") == buyers - stock

    with file_app.app_context():
        assert db.session.get(Product, product_id).stock == 0
        assert db.session.query(Order).count() == stock
        assert db.session.query(Payment).count() == stock

        cart_sizes = sorted(len(cart_service.get_cart(customer_id)) for customer_id, _ in shoppers)
        assert cart_sizes == [0] * stock + [1] * (buyers - stock)
