"""
Pytest fixtures for the marketplace backend tests.

Provides an in-memory database, a fake payment provider behind
httpx.MockTransport, user/product/address factories and webhook helpers.
"""

import itertools
import json
from urllib.parse import parse_qsl

import httpx
import pytest

from marketplace import create_app
from marketplace.extensions import db
from marketplace.models import Address, Product, ShippingExclusion, ShippingZone, User
from marketplace.models.auth import ROLE_ADMIN, ROLE_GUEST, ROLE_USER
from marketplace.services import auth_service, token_service
from marketplace.services.payment_service import PaymentClient, signature_header

PRIVATE_PEM, PUBLIC_PEM = token_service.generate_key_pair()
WEBHOOK_SECRET = "whsec_test_secret"
PROVIDER_URL = "https://provider.test/v1"
PASSWORD = "Password123"


class FakeProvider:
    """
    In-process stand-in for the payment provider's HTTP API.

    Intents are keyed by Idempotency-Key, so a repeated create returns the
    original intent the way the real provider does.
    """

    def __init__(self):
        self.requests = []
        self.intents = {}
        self.tax_inclusive = 0
        self.tax_exclusive = 0
        self.errors = {}
        self.lose_next_intent_response = False
        self._ids = itertools.count(1)

    def calls(self, suffix):
        return [r for r in self.requests if r["path"].endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode("utf-8")))
        path = request.url.path
        self.requests.append({
            "method": request.method,
            "path": path,
            "headers": dict(request.headers),
            "form": form,
        })

        for suffix, error in self.errors.items():
            if path.endswith(suffix):
                if isinstance(error, Exception):
                    raise error
                return httpx.Response(error, json={"error": {"message": "provider failure"}})

        if path.endswith("/tax/calculations"):
            return httpx.Response(200, json={
                "id": f"taxcalc_{next(self._ids)}",
                "tax_amount_inclusive": self.tax_inclusive,
                "tax_amount_exclusive": self.tax_exclusive,
            })

        if path.endswith("/cancel"):
            intent_id = path.split("/")[-2]
            return httpx.Response(200, json={
                "id": intent_id,
                "status": "canceled",
                "amount": 0,
                "currency": "usd",
            })

        if path.endswith("/payment_intents"):
            key = request.headers.get("Idempotency-Key")
            if key not in self.intents:
                intent_id = f"pi_{next(self._ids)}"
                self.intents[key] = {
                    "id": intent_id,
                    "client_secret": f"{intent_id}_secret_abc",
                    "status": "requires_payment_method",
                    "amount": int(form["amount"]),
                    "currency": form["currency"],
                }
            if self.lose_next_intent_response:
                self.lose_next_intent_response = False
                raise httpx.ReadTimeout("response lost", request=request)
            return httpx.Response(200, json=self.intents[key])

        return httpx.Response(404, json={"error": {"message": f"unknown path {path}"}})


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'ENVIRONMENT': 'testing',
        'LOG_LEVEL': 'debug',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'HMAC_SECRET': 'test-hmac-secret',
        'JWT_PRIVATE_KEY': PRIVATE_PEM,
        'JWT_PUBLIC_KEY': PUBLIC_PEM,
        'JWT_EXPIRY': 900,
        'BCRYPT_ROUNDS': 4,
        'STRIPE_BASE_URL': PROVIDER_URL,
        'STRIPE_SECRET_KEY': 'sk_test_123',
        'STRIPE_WEBHOOK_SIGNING_SECRET': WEBHOOK_SECRET,
        'MAIL_SERVER': None,
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

        db.session.rollback()


@pytest.fixture(autouse=True)
def provider(app):
    """Route every provider call of this test to a fresh FakeProvider."""
    fake = FakeProvider()
    previous = app.extensions["payment_client"]
    app.extensions["payment_client"] = PaymentClient.from_config(
        app.config, transport=httpx.MockTransport(fake.handler)
    )
    yield fake
    app.extensions["payment_client"].close()
    app.extensions["payment_client"] = previous


@pytest.fixture
def outbox(monkeypatch):
    """Capture outgoing email as (to, subject, body) tuples."""
    sent = []
    from marketplace.services import email_service
    monkeypatch.setattr(email_service, "send_email", lambda to, subject, body: sent.append((to, subject, body)))
    return sent


# =============================================================================
# FACTORIES
# =============================================================================


def make_user(email="buyer@example.com", role=ROLE_USER, password=PASSWORD):
    if role == ROLE_GUEST:
        user = User(role=ROLE_GUEST)
    else:
        user = User(email=email, password_hash=auth_service.hash_password(password), role=role)
    db.session.add(user)
    db.session.commit()
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {token_service.issue_access_token(user)}"}


def make_product(name="Widget", price=1500, inventory=10, tax_code=None):
    product = Product(name=name, price=price, inventory=inventory, tax_code=tax_code, thumbnail=f"/img/{name}.png")
    db.session.add(product)
    db.session.commit()
    return product


def make_zone(country="US", state=None, postal_code=None):
    zone = ShippingZone(country=country, state=state, postal_code=postal_code)
    db.session.add(zone)
    db.session.commit()
    return zone


def make_exclusion(country, postal_code):
    exclusion = ShippingExclusion(country=country, postal_code=postal_code)
    db.session.add(exclusion)
    db.session.commit()
    return exclusion


def make_address(user, **overrides):
    fields = {
        "country": "US",
        "line1": "1 Main St",
        "city": "Austin",
        "state": "TX",
        "postal_code": "78701",
    }
    fields.update(overrides)
    address = Address(user_id=user.id, **fields)
    db.session.add(address)
    db.session.commit()
    return address


def webhook_payload(event_id, event_type, obj):
    return json.dumps({
        "id": event_id,
        "type": event_type,
        "data": {"object": obj},
    }).encode("utf-8")


def signed_headers(payload, secret=WEBHOOK_SECRET, timestamp=None):
    return {
        "Stripe-Signature": signature_header(payload, secret, timestamp),
        "Content-Type": "application/json",
    }


@pytest.fixture
def user(db_session):
    return make_user()


@pytest.fixture
def admin(db_session):
    return make_user(email="admin@example.com", role=ROLE_ADMIN)


@pytest.fixture
def guest(db_session):
    return make_user(role=ROLE_GUEST)


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def us_zone(db_session):
    return make_zone("US")
