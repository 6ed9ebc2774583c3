import hashlib
import hmac
import json
import os
import time
from decimal import Decimal
from urllib.parse import parse_qsl

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["MAILTRAP_TOKEN"] = ""
os.environ["PAYMENT_CURRENCY"] = "gbp"
os.environ["STRIPE_MAX_NETWORK_RETRIES"] = "0"

import httpx
import pytest
from fastapi.testclient import TestClient

from config.database import Database
from common.email import Mailer
from common.security import hash_password
from main import create_app
from modules.catalog.models import Product
from modules.payment.gateways.stripe import StripeGateway
from modules.user.models import User, UserRole

WEBHOOK_SECRET = "whsec_test"
STRIPE_BASE = "https://api.stripe.test"
PASSWORD = "password123"


class FakeStripeAPI:
    """In-memory stand-in for the Stripe REST endpoints the gateway calls."""

    def __init__(self):
        self.intents = {}
        self.refunds = []
        self.fail_next = False

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.fail_next:
            self.fail_next = False
            return httpx.Response(402, json={"error": {"message": "Your card was declined."}})

        path = request.url.path
        if request.method == "POST" and path == "/v1/payment_intents":
            form = dict(parse_qsl(request.content.decode()))
            intent_id = f"pi_test_{len(self.intents) + 1}"
            intent = {
                "id": intent_id,
                "object": "payment_intent",
                "status": "requires_payment_method",
                "amount": int(form["amount"]),
                "currency": form["currency"],
                "client_secret": f"{intent_id}_secret_abc",
                "metadata": {
                    key[len("metadata["):-1]: value
                    for key, value in form.items() if key.startswith("metadata[")
                },
            }
            self.intents[intent_id] = intent
            return httpx.Response(200, json=intent)

        if request.method == "GET" and path.startswith("/v1/payment_intents/"):
            intent = self.intents.get(path.rsplit("/", 1)[-1])
            if not intent:
                return httpx.Response(404, json={"error": {"message": "No such payment_intent"}})
            return httpx.Response(200, json=intent)

        if request.method == "POST" and path == "/v1/refunds":
            form = dict(parse_qsl(request.content.decode()))
            refund = {"id": f"re_test_{len(self.refunds) + 1}", "status": "succeeded",
                      "payment_intent": form["payment_intent"]}
            self.refunds.append(refund)
            return httpx.Response(200, json=refund)

        return httpx.Response(404, json={"error": {"message": "Unknown endpoint"}})

    def set_status(self, intent_id: str, status: str):
        self.intents[intent_id]["status"] = status


class MailOutbox:
    """Records messages posted to the Mailtrap send API."""

    def __init__(self):
        self.messages = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.messages.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True})

    def subjects_for(self, email: str):
        return [m["subject"] for m in self.messages if m["to"][0]["email"] == email]


# ==========================================
# Infrastructure fixtures
# ==========================================

@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def stripe_api():
    return FakeStripeAPI()


@pytest.fixture
def gateway(stripe_api):
    client = httpx.Client(base_url=STRIPE_BASE, transport=httpx.MockTransport(stripe_api.handle))
    return StripeGateway(
        secret_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
        api_base=STRIPE_BASE,
        tolerance=300,
        client=client,
        max_network_retries=0,
    )


@pytest.fixture
def outbox():
    return MailOutbox()


@pytest.fixture
def mailer(outbox):
    client = httpx.Client(transport=httpx.MockTransport(outbox.handle))
    return Mailer(token="mt_test", api_url="https://mail.test/api/send", client=client)


@pytest.fixture
def app(database, gateway, mailer):
    return create_app(database=database, gateway=gateway, mailer=mailer, scheduler_enabled=False)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def session(database):
    db = database.session()
    yield db
    db.close()


# ==========================================
# Data fixtures
# ==========================================

def register_and_login(client, email, full_name="Test User"):
    client.post("/auth/register", json={"email": email, "password": PASSWORD, "fullName": full_name})
    resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['accessToken']}"}


@pytest.fixture
def user_headers(client):
    return register_and_login(client, "ada@example.com", "Ada Obi")


@pytest.fixture
def other_headers(client):
    return register_and_login(client, "bola@example.com", "Bola Ade")


@pytest.fixture
def admin_headers(client, database):
    db = database.session()
    db.add(User(
        email="admin@example.com",
        full_name="Kitchen Admin",
        password_hash=hash_password(PASSWORD),
        role=UserRole.ADMIN.value,
    ))
    db.commit()
    db.close()
    resp = client.post("/auth/login", json={"email": "admin@example.com", "password": PASSWORD})
    return {"Authorization": f"Bearer {resp.json()['accessToken']}"}


@pytest.fixture
def products(database):
    db = database.session()
    items = {
        "jollof": Product(name="Jollof Rice", category="mains", price=Decimal("12.50")),
        "suya": Product(name="Suya Skewers", category="starters", price=Decimal("7.50")),
        "zobo": Product(name="Zobo", category="drinks", price=Decimal("2.50"), is_available=False),
    }
    db.add_all(items.values())
    db.commit()
    ids = {key: p.id for key, p in items.items()}
    db.close()
    return ids


ADDRESS = {
    "label": "Home",
    "street": "12 Brixton Road",
    "city": "London",
    "state": "Greater London",
    "zipCode": "SW9 6BU",
}


@pytest.fixture
def address(client, user_headers):
    resp = client.post("/addresses", json=dict(ADDRESS, isDefault=True), headers=user_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def place_order(client, user_headers, address, products):
    """Fill the cart and place an order; returns the order JSON."""

    def _place(lines=None, headers=None):
        headers = headers or user_headers
        for key, quantity in (lines or [("jollof", 2), ("suya", 1)]):
            resp = client.post("/cart/add", json={"productId": products[key], "quantity": quantity}, headers=headers)
            assert resp.status_code == 200, resp.text
        resp = client.post("/orders/create", json={}, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _place


# ==========================================
# Webhook helpers
# ==========================================

def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    """Stripe-Signature header value for a payload, as Stripe would send it."""
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def signed_webhook(client, event: dict, secret: str = WEBHOOK_SECRET, timestamp: int = None):
    payload = json.dumps(event).encode()
    ts = int(time.time()) if timestamp is None else timestamp
    header = sign_payload(payload, secret, ts)
    return client.post(
        "/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": header, "Content-Type": "application/json"},
    )


def intent_event(event_type: str, intent_id: str, amount: int, event_id: str = "evt_1"):
    return {
        "id": event_id,
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent", "amount": amount,
                            "amount_received": amount if event_type.endswith("succeeded") else 0}},
    }
