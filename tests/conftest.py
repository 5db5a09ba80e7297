"""
Shared pytest fixtures for all test modules.

Uses an in-memory SQLite database (StaticPool) so every test
function gets a clean, isolated database with nothing written to disk.
Gateways are real adapter instances pointed at fake hosts; tests patch
their network methods or hand them an httpx.MockTransport.
"""
import base64
import hashlib
import hmac
import json
import pytest
from datetime import datetime
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from typing import Optional

from app.config import GatewayConfig
from app.database import Base, get_db
from app.dependencies import get_gateway
from app.gateways.cashfree import CashfreeGateway
from app.gateways.razorpay import RazorpayGateway
from app.gateways.registry import build_gateway
from app import models


RAZORPAY_SECRET = "rzp_test_secret"
RAZORPAY_WEBHOOK_SECRET = "rzp_webhook_secret"
CASHFREE_SECRET = "cf_test_secret"
SIMULATION_SECRET = "sim_test_secret"

DONOR = "donor_001"
OTHER_DONOR = "donor_002"


# ---------------------------------------------------------------------------
# In-memory database engine shared across all fixtures in a test session.
# StaticPool forces all SQLAlchemy connections to reuse the same underlying
# sqlite3 connection, which is required for in-memory SQLite.
# ---------------------------------------------------------------------------
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=TEST_ENGINE)


@pytest.fixture(autouse=True)
def reset_db():
    """Drop and recreate all tables before each test for full isolation."""
    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db(reset_db):
    """Yield a SQLAlchemy session backed by the in-memory test database."""
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def razorpay_gateway():
    return RazorpayGateway(GatewayConfig(
        provider="razorpay",
        key_id="rzp_test_key",
        key_secret=RAZORPAY_SECRET,
        webhook_secret=RAZORPAY_WEBHOOK_SECRET,
        base_url="https://api.razorpay.test",
        timeout_seconds=2.0,
    ))


@pytest.fixture
def cashfree_gateway():
    return CashfreeGateway(GatewayConfig(
        provider="cashfree",
        key_id="cf_app_id",
        key_secret=CASHFREE_SECRET,
        webhook_secret=CASHFREE_SECRET,
        base_url="https://sandbox.cashfree.test",
        timeout_seconds=2.0,
        api_version="2023-08-01",
    ))


@pytest.fixture
def simulated_gateway():
    return build_gateway(
        GatewayConfig(
            provider="razorpay",
            key_id=None,
            key_secret=None,
            webhook_secret=None,
            base_url="https://api.razorpay.test",
        ),
        simulation_webhook_secret=SIMULATION_SECRET,
    )


@pytest.fixture
def gateway(razorpay_gateway):
    """Gateway served by the API client; override in a test class to switch."""
    return razorpay_gateway


@pytest.fixture
def client(db, gateway):
    """
    FastAPI TestClient with the DB and gateway dependencies overridden.
    The TestClient is NOT used as a context manager so the lifespan hook
    (which creates tables in the on-disk DB) is skipped.
    """
    from app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app, headers={"X-Donor-Id": DONOR})
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Plain helpers, not fixtures, so any test file can import and call them directly.
# ---------------------------------------------------------------------------
def make_donation(
    db,
    record_id: str,
    gateway_order_id: Optional[str] = None,
    owner_id: str = DONOR,
    amount: Decimal = Decimal("500.00"),
    gateway: str = "razorpay",
    simulated: bool = False,
    state: str = models.PENDING,
    receipt_id: Optional[str] = None,
    attempted_at: Optional[datetime] = None,
) -> models.Donation:
    record = models.Donation(
        id=record_id,
        owner_id=owner_id,
        amount=amount,
        currency="INR",
        state=state,
        gateway=gateway,
        simulated=simulated,
        gateway_order_id=gateway_order_id or f"order_{record_id}",
        receipt_id=receipt_id,
        attempted_at=attempted_at or models.utcnow(),
        completed_at=None if state == models.PENDING else models.utcnow(),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def razorpay_signature(order_id: str, payment_id: str, secret: str = RAZORPAY_SECRET) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def signed_webhook(body: dict, secret: str, header: str = "X-Razorpay-Signature"):
    """Raw body plus headers signed the Razorpay way (hex HMAC of the body)."""
    raw = json.dumps(body).encode()
    signature = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return raw, {header: signature, "Content-Type": "application/json"}


def cashfree_webhook(body: dict, secret: str = CASHFREE_SECRET, timestamp: str = "1705312425000"):
    raw = json.dumps(body).encode()
    digest = hmac.new(secret.encode(), timestamp.encode() + raw, hashlib.sha256).digest()
    return raw, {
        "x-webhook-signature": base64.b64encode(digest).decode(),
        "x-webhook-timestamp": timestamp,
        "Content-Type": "application/json",
    }
