"""
Simple smoke tests to verify basic functionality.
"""

from decimal import Decimal

from db.models import Order, OrderStatus, ProxyServer


def test_app_startup(client):
    """Test that the application starts up properly."""
    response = client.get("/healthz")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["app_name"] == "Test Proxy Client"
    assert data["database"] == "SQLite"
    assert data["environment"] == "test"


def test_health_alias(client):
    assert client.get("/health").json()["status"] == "ok"


def test_root_lists_endpoints(client):
    data = client.get("/").json()
    assert data["name"] == "PayPal Proxy Client"
    assert "servers" in data["endpoints"]


def test_openapi_available(client):
    """Test that OpenAPI documentation is available."""
    response = client.get("/docs")
    assert response.status_code == 200


def test_database_connection(test_db_session):
    """Test that database connection works."""
    server = ProxyServer(
        name="Smoke", url="https://smoke.example.com", api_key="k", api_secret="s"
    )
    test_db_session.add(server)
    test_db_session.commit()

    retrieved = test_db_session.query(ProxyServer).filter_by(name="Smoke").first()
    assert retrieved is not None
    assert retrieved.capacity_limit == 1000
    assert retrieved.current_usage == Decimal("0")
    assert retrieved.usage_ratio == 0.0
    assert retrieved.has_headroom is True


def test_order_notes_roundtrip(test_db_session):
    order = Order(order_key="k", total=Decimal("1.00"), status=OrderStatus.created)
    order.add_note("first")
    test_db_session.add(order)
    test_db_session.commit()

    test_db_session.expire_all()
    stored = test_db_session.get(Order, order.id)
    assert [n["note"] for n in stored.notes] == ["first"]
    assert OrderStatus.completed.is_terminal
    assert not OrderStatus.registered.is_terminal
