"""Test configuration and fixtures."""

import os
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Settings are read at import time by core.logging and core.tracing
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DISABLE_TRACING", "true")

from core.settings import Settings  # noqa: E402
from db.models import Base, ProxyServer  # noqa: E402
from main import app  # noqa: E402
from payments.order_store import OrderStore  # noqa: E402
from proxies.registry import ServerRegistry  # noqa: E402


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Setup test environment variables before each test."""
    # Store original env vars
    original_env = dict(os.environ)

    # Set test environment variables
    os.environ.update(
        {
            "DATABASE_URL": "sqlite:///:memory:",  # Use in-memory for faster tests
            "APP_NAME": "Test Proxy Client",
            "ENVIRONMENT": "test",
            "DISABLE_TRACING": "true",
            "DEBUG": "true",
        }
    )

    yield

    # Restore original env vars
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_settings():
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        APP_NAME="Test Proxy Client",
        SITE_URL="https://shop.example.com",
        CALLBACK_URL="https://shop.example.com/api/v1/paypal/callback",
        RETURN_URL="https://shop.example.com/thank-you",
        CART_URL="https://shop.example.com/cart",
        CHECKOUT_URL="https://shop.example.com/checkout",
        AUTO_SELECT_SERVER=False,
        DEBUG=True,
        ENVIRONMENT="test",
    )


@pytest.fixture
def test_db_engine():
    """Create a test database engine and setup tables."""
    # Use StaticPool and check_same_thread=False for SQLite testing
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
    """Create test database session using the shared engine."""
    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_db_engine,
    )
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def registry(test_db_session):
    return ServerRegistry(test_db_session)


@pytest.fixture
def balancing_registry(test_db_session):
    """Registry that leaves a missing pin alone and balances by capacity."""
    return ServerRegistry(test_db_session, auto_select=False)


@pytest.fixture
def order_store(test_db_session):
    return OrderStore(test_db_session)


@pytest.fixture
def make_server(test_db_session):
    """Insert a proxy server row directly, bypassing registry validation."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "name": f"Proxy {n}",
            "url": f"https://proxy{n}.example.com/",
            "api_key": f"key_{n}",
            "api_secret": f"secret_{n}",
            "capacity_limit": 1000,
            "current_usage": Decimal("0"),
            "is_active": True,
            "is_selected": False,
            "priority": 0,
        }
        fields.update(overrides)
        server = ProxyServer(**fields)
        test_db_session.add(server)
        test_db_session.commit()
        test_db_session.refresh(server)
        return server

    return _make


@pytest.fixture
def make_order(order_store):
    def _make(total="50.00", **overrides):
        fields = {
            "order_key": "wc_order_abc123",
            "currency": "USD",
            "customer_email": "buyer@example.com",
            "customer_first_name": "Ada",
            "customer_last_name": "Lovelace",
            "items": [
                {"product_id": 7, "name": "Widget", "quantity": 1, "price": total}
            ],
        }
        fields.update(overrides)
        return order_store.create(**fields)

    return _make


def _proxy_response(payload=None, status_code=200):
    """Build a fake ``requests`` response for the proxy transport."""
    response = MagicMock()
    response.status_code = status_code
    response.reason = "OK" if status_code == 200 else "Error"
    response.json.return_value = (
        payload if payload is not None else {"success": True}
    )
    return response


@pytest.fixture
def proxy_response():
    return _proxy_response


@pytest.fixture
def mock_proxy():
    """Patch the outbound proxy transport; yields the ``requests.get`` mock."""
    with patch("proxies.client.requests.get") as mock_get:
        mock_get.return_value = _proxy_response()
        yield mock_get


@pytest.fixture
def client(mock_settings, test_db_engine):
    """Test client with proper database setup."""
    from db.session import get_db, reset_engines, store_db_in_request_state
    from fastapi import Request

    # Reset engines to ensure clean state
    reset_engines()

    # Create a session factory bound to the test engine
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_db_engine,
    )

    def override_get_db(request: Request):
        db = TestingSessionLocal()
        store_db_in_request_state(request, db)
        try:
            yield db
        finally:
            db.close()

    # Override dependencies
    app.dependency_overrides[get_db] = override_get_db

    with patch("core.dependencies._settings", mock_settings):
        with TestClient(app, follow_redirects=False) as test_client:
            yield test_client

    app.dependency_overrides.clear()
    reset_engines()
