"""Pytest configuration for back-office integration tests

WHAT: Shared fixtures for service and HTTP endpoint tests
WHY: Consistent environment, isolated in-memory database per test, and a
     fake WooCommerce client so no test touches the network
REFERENCES:
    - backoffice/main.py: FastAPI application
    - backoffice/database.py: Database configuration
    - backoffice/services/order_sync_service.py: Sync orchestrator
"""

import os
from decimal import Decimal
from typing import Generator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before any backoffice import
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
# Must be URL-safe base64-encoded 32-byte string (backoffice.security validates at import time)
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """Create in-memory test database engine shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from backoffice.database import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    """Create test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def write_counter(test_db_engine):
    """Count INSERT/UPDATE/DELETE statements sent to the database."""
    counter = {"writes": 0, "statements": []}

    def _before_execute(conn, cursor, statement, parameters, context, executemany):
        verb = statement.lstrip().split(" ", 1)[0].upper()
        if verb in ("INSERT", "UPDATE", "DELETE"):
            counter["writes"] += 1
            counter["statements"].append(statement)

    event.listen(test_db_engine, "before_cursor_execute", _before_execute)
    yield counter
    event.remove(test_db_engine, "before_cursor_execute", _before_execute)


# ============================================================================
# Domain Fixtures
# ============================================================================

@pytest.fixture
def actor():
    from backoffice.services.activity_logger import Actor
    return Actor(uid="user-1", display_name="Test User", email="tester@example.com")


@pytest.fixture
def credentials():
    from backoffice.services.platform_credentials import PlatformCredentials
    return PlatformCredentials(
        store_url="https://shop.example.com",
        consumer_key="ck_test",
        consumer_secret="cs_test",
    )


@pytest.fixture
def make_product(test_db_session):
    """Factory for catalog products."""
    from backoffice.models import Product

    def _make(name, barcode=None, price="10.00", **kwargs):
        product = Product(name=name, barcode=barcode, price=Decimal(price), **kwargs)
        test_db_session.add(product)
        test_db_session.commit()
        return product

    return _make


@pytest.fixture
def make_woo_order():
    """Factory for WooCommerce order payloads as returned by /orders."""

    def _make(
        order_id=1001,
        status="processing",
        line_items=None,
        email="jane@example.com",
        first_name="Jane",
        last_name="Doe",
        total="25.00",
        shipping=None,
        **overrides,
    ):
        payload = {
            "id": order_id,
            "number": str(order_id),
            "status": status,
            "date_created": "2026-10-01T12:00:00",
            "date_created_gmt": "2026-10-01T10:00:00",
            "billing": {
                "first_name": first_name,
                "last_name": last_name,
                "company": "",
                "address_1": "Main Street 1",
                "address_2": "",
                "city": "Springfield",
                "state": "",
                "postcode": "12345",
                "country": "US",
                "email": email,
                "phone": "555-0100",
            },
            "shipping": shipping if shipping is not None else {
                "first_name": "",
                "last_name": "",
                "company": "",
                "address_1": "",
                "address_2": "",
                "city": "",
                "state": "",
                "postcode": "",
                "country": "",
            },
            "line_items": line_items if line_items is not None else [
                {
                    "id": 1,
                    "product_id": 501,
                    "name": "Blue Mug",
                    "sku": "MUG-BLUE",
                    "quantity": 2,
                    "price": 10.0,
                    "total": "20.00",
                },
            ],
            "shipping_total": "5.00",
            "total_tax": "0.00",
            "total": total,
            "customer_note": "",
            "payment_method": "cod",
        }
        payload.update(overrides)
        return payload

    return _make


class _FakeWooClient:
    """Stands in for WooCommerceClient in orchestrator and push-back tests."""

    def __init__(self, orders=None, error=None):
        self.orders = orders or []
        self.error = error
        self.fetch_calls = 0
        self.status_updates = []

    async def get_all_orders(self, per_page=100, max_pages=1):
        self.fetch_calls += 1
        if self.error is not None:
            raise self.error
        return list(self.orders)

    async def update_order_status(self, order_id, status):
        if self.error is not None:
            raise self.error
        self.status_updates.append((order_id, status))
        return {"id": order_id, "status": status}


@pytest.fixture
def fake_woo_client():
    """Factory for the fake WooCommerce client."""
    return _FakeWooClient


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session):
    """Create FastAPI test application bound to the test session."""
    from backoffice.database import get_db
    from backoffice.main import create_app

    test_app = create_app()

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    return test_app


@pytest.fixture
def client(app):
    """Authenticated TestClient (JWT in the access_token cookie)."""
    from fastapi.testclient import TestClient
    from jose import jwt
    from backoffice.security import ALGORITHM, JWT_SECRET

    token = jwt.encode({"sub": "user-1", "name": "Test User"}, JWT_SECRET, algorithm=ALGORITHM)
    test_client = TestClient(app)
    test_client.cookies.set("access_token", token)
    return test_client
