"""
Shared fixtures: in-memory database, fake gateway / mailer, a fully wired
orchestrator, and TestClients (anonymous shopper and logged-in admin).
"""

import os

# Must be set before any project import reads config.settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_merchant_secret"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin-pass"
os.environ["BREVO_API_KEY"] = ""
os.environ["MERCHANT_MAILBOX"] = "orders@mimasa.test"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["CART_CONFIG_TTL_SECONDS"] = "0"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from config.database import Base, get_db, enable_sqlite_savepoints
from common.security import hmac_sha256_hex
from modules.catalog.models import Product
from modules.cart.service import cart_service
from modules.checkout.service import CheckoutOrchestrator, get_checkout_orchestrator
from modules.notification.invoice import InvoiceGenerator
from modules.notification.service import OrderNotifier
from modules.order.reconciliation import ReconciliationService
from modules.order.service import OrderCommitter
from modules.payment.gateways import (
    BaseGateway, GatewayOrderResult, GatewayPaymentStatus,
)
from modules.payment.routes import get_verifier
from modules.payment.verification import PaymentVerificationService
from modules.pricing.models import CartConfig, SHIPPING_FEE_KEY, FREE_SHIPPING_KEY
from modules.pricing.service import CartConfigProvider

MERCHANT_SECRET = "test_merchant_secret"
SESSION = "session-aaaaaaaaaaaaaaaaaaaaaaaa"

VALID_FORM = {
    "name": "Asha Kulkarni",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address": "12 MG Road\nPune",
    "pin_code": "411001",
}


# ==========================================
# Fakes
# ==========================================

class FakeGateway(BaseGateway):
    name = "fake"
    label = "Fake"
    key_id = "rzp_test_key"

    def __init__(self):
        self.fail = False
        self.created = []
        self.payments = {}
        self.lookups = 0

    def create_order(self, req):
        if self.fail:
            return GatewayOrderResult(success=False, error_message="gateway down")
        order_id = f"order_{len(self.created) + 1:06d}"
        self.created.append((order_id, req))
        return GatewayOrderResult(success=True, gateway_order_id=order_id, amount_minor=req.amount_minor, currency=req.currency)

    def fetch_payment(self, payment_id):
        self.lookups += 1
        return self.payments.get(payment_id) or GatewayPaymentStatus(success=False, error_message="not found")

    def pay(self, order_id, payment_id, status="captured"):
        amount = next((req.amount_minor for oid, req in self.created if oid == order_id), None)
        self.payments[payment_id] = GatewayPaymentStatus(
            success=True, status=status, gateway_order_id=order_id, amount_minor=amount,
        )


class FakeMailer:

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, message):
        if self.fail:
            return False
        self.sent.append(message)
        return True


# ==========================================
# Database
# ==========================================

@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_product(db):
    def _make(name="Butter Chicken Gravy", price="120.00", category="gravy", is_active=True):
        product = Product(
            name=name, description=f"{name} description", price=Decimal(price),
            category=category, weight="250g", stock_quantity=10, is_active=is_active,
        )
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def set_config(db):
    def _set(fee=None, threshold=None):
        for name, value in [(SHIPPING_FEE_KEY, fee), (FREE_SHIPPING_KEY, threshold)]:
            if value is None:
                continue
            row = db.query(CartConfig).filter(CartConfig.name == name).first()
            if row:
                row.value = str(value)
            else:
                db.add(CartConfig(name=name, value=str(value)))
        db.commit()
    return _set


@pytest.fixture
def fill_cart(db):
    def _fill(*entries, session_id=SESSION):
        for product, quantity in entries:
            cart_service.add_item(db, session_id, product.id, quantity)
        db.commit()
    return _fill


# ==========================================
# Checkout wiring
# ==========================================

@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def verifier(gateway):
    return PaymentVerificationService(gateway, secret=MERCHANT_SECRET)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def notifier(mailer):
    return OrderNotifier(mailer, InvoiceGenerator(store_name="Mimasa Foods"), merchant_mailbox="orders@mimasa.test")


@pytest.fixture
def committer(notifier):
    return OrderCommitter(notifier=notifier, max_attempts=3, prefix="MIM")


@pytest.fixture
def reconciliation():
    return ReconciliationService(max_attempts=3)


@pytest.fixture
def make_orchestrator(gateway, verifier, reconciliation):
    def _make(committer):
        return CheckoutOrchestrator(
            gateway=gateway,
            verifier=verifier,
            committer=committer,
            config_provider=CartConfigProvider(ttl_seconds=0),
            reconciliation=reconciliation,
            payment_timeout_minutes=30,
        )
    return _make


@pytest.fixture
def orchestrator(make_orchestrator, committer):
    return make_orchestrator(committer)


@pytest.fixture
def sign():
    def _sign(order_id, payment_id, secret=MERCHANT_SECRET):
        return hmac_sha256_hex(secret, f"{order_id}|{payment_id}")
    return _sign


# ==========================================
# HTTP clients
# ==========================================

@pytest.fixture
def client(session_factory, orchestrator, verifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_checkout_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_verifier] = lambda: verifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client):
    resp = client.post("/admin/login", json={"username": "admin", "password": "admin-pass"})
    assert resp.status_code == 200
    return client
