"""
Pytest fixtures for storefront order tests.

Provides test database setup, a scripted card gateway (httpx.MockTransport),
a recording mailer, catalog/customer/cart fixtures and a test client.
"""

import itertools
from urllib.parse import parse_qsl

import httpx
import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Address, Customer, OptionType, OptionValue, Product
from storefront.services import cart_service
from storefront.services.notification_service import get_dispatcher


class FakeCardApi:
    """
    Scripted payment-intent API behind httpx.MockTransport.

    Tests flip the attributes below to make the next call succeed, fail, or
    time out; every request is recorded.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.requests = []
        self.voided = []
        self.intent_status = "requires_payment_method"
        self.payment_error = None
        self.payment_timeout = False
        self.refund_status = "succeeded"
        self.refund_error = None
        self.refund_timeout = False
        self.void_error = None
        self._ids = itertools.count(1)

    def calls(self, path):
        return [r for r in self.requests if r["path"] == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        path = request.url.path
        self.requests.append({
            "path": path,
            "form": form,
            "headers": dict(request.headers),
        })

        if path == "/v1/payment_intents":
            if self.payment_timeout:
                raise httpx.ReadTimeout("timed out", request=request)
            if self.payment_error:
                return httpx.Response(402, json={"error": {"message": self.payment_error}})
            intent_id = f"pi_test_{next(self._ids)}"
            return httpx.Response(200, json={
                "id": intent_id,
                "status": self.intent_status,
                "client_secret": f"{intent_id}_secret",
            })

        if path == "/v1/refunds":
            if self.refund_timeout:
                raise httpx.ReadTimeout("timed out", request=request)
            if self.refund_error:
                return httpx.Response(400, json={"error": {"message": self.refund_error}})
            return httpx.Response(200, json={
                "id": f"re_test_{next(self._ids)}",
                "status": self.refund_status,
            })

        if path.startswith("/v1/payment_intents/") and path.endswith("/cancel"):
            intent_id = path.split("/")[3]
            if self.void_error:
                return httpx.Response(400, json={"error": {"message": self.void_error}})
            self.voided.append(intent_id)
            return httpx.Response(200, json={"id": intent_id, "status": "canceled"})

        return httpx.Response(404, json={"error": {"message": "Unknown endpoint"}})


class RecordingMailer:
    def __init__(self, fail=False):
        self.messages = []
        self.fail = fail

    def send(self, message):
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.messages.append(message)


WEBHOOK_SECRET = "whsec_test"


@pytest.fixture(scope='session')
def fake_card_api():
    return FakeCardApi()


@pytest.fixture(scope='session')
def app(fake_card_api):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'PAYMENT_METHODS': ['cash', 'card'],
        'CARD_GATEWAY_URL': 'https://cards.test',
        'CARD_GATEWAY_SECRET_KEY': 'sk_test',
        'CARD_GATEWAY_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'CARD_GATEWAY_TIMEOUT_SECONDS': 2.0,
        'CARD_GATEWAY_TRANSPORT': httpx.MockTransport(fake_card_api.handler),
        'NOTIFICATIONS_ENABLED': True,
        'MAIL_BACKEND': 'log',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def card_api(fake_card_api):
    fake_card_api.reset()
    return fake_card_api


@pytest.fixture(scope='function')
def mailer(db_session):
    """Swap the dispatcher's mailer for one that records messages."""
    dispatcher = get_dispatcher()
    original = dispatcher.mailer
    recording = RecordingMailer()
    dispatcher.mailer = recording
    yield recording
    dispatcher.drain()
    dispatcher.mailer = original


@pytest.fixture(scope='function')
def widget(db_session):
    """Product priced 15.49 with 10 in stock."""
    product = Product(name="Widget", price_cents=1549, stock=10, image="widget.png")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def size_large(db_session):
    """Size option "Large" adding 2.50, with 5 in stock."""
    size = OptionType(name="Size")
    db_session.add(size)
    db_session.flush()
    large = OptionValue(option_type_id=size.id, value="Large", price_cents=250, stock=5)
    db_session.add(large)
    db_session.commit()
    return large


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Ada Lovelace", email="ada@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def other_customer(db_session):
    customer = Customer(name="Grace Hopper", email="grace@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def address(db_session, customer):
    address = Address(
        customer_id=customer.id,
        street="12 Analytical Way",
        city="London",
        state="LDN",
        zip_code="N1 9GU",
    )
    db_session.add(address)
    db_session.commit()
    return address


@pytest.fixture(scope='function')
def cart(db_session, customer, widget, size_large):
    """Cart holding 2 x Widget (Large): 2 * (15.49 + 2.50) = 35.98."""
    cart_service.add_item(customer.id, widget.id, 2, option_ids=(size_large.id,))
    db_session.commit()
    return cart_service.get_cart(customer.id)


@pytest.fixture(scope='function')
def customer_headers(customer):
    return {"X-Customer-Id": str(customer.id)}


@pytest.fixture(scope='function')
def admin_headers():
    return {"X-Role": "admin"}
