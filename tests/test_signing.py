"""Tests for request signing and callback verification."""

import hashlib
import hmac
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest

from db.models import ProxyServer
from proxies.signing import (
    ProxyRoute,
    SignedRequestBuilder,
    compute_hash,
    format_amount,
)

FIXED_TS = 1_700_000_000


@pytest.fixture
def server():
    return ProxyServer(
        id=3,
        name="Proxy",
        url="https://proxy.example.com/",
        api_key="pk_live",
        api_secret="shh",
    )


@pytest.fixture
def builder():
    return SignedRequestBuilder("/wppps/v1", clock=lambda: FIXED_TS)


def expected(secret, message):
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def test_register_hash_covers_timestamp_fields_and_key(builder, server):
    request = builder.build_signed_request(
        server,
        ProxyRoute.REGISTER_ORDER,
        {"order_data": "e30="},
        hash_fields=[42, "50.00"],
    )

    assert request.params["hash"] == expected("shh", f"{FIXED_TS}4250.00pk_live")
    assert request.params["timestamp"] == FIXED_TS
    assert request.params["api_key"] == "pk_live"
    assert request.params["rest_route"] == "/wppps/v1/register-order"
    assert request.params["order_data"] == "e30="
    assert request.url == "https://proxy.example.com/"


def test_routes_share_namespace(builder, server):
    for route, suffix in [
        (ProxyRoute.VERIFY_PAYMENT, "verify-payment"),
        (ProxyRoute.PAYPAL_BUTTONS, "paypal-buttons"),
    ]:
        request = builder.build_signed_request(server, route, {})
        assert request.params["rest_route"] == f"/wppps/v1/{suffix}"


def test_hash_is_lowercase_hex(builder, server):
    request = builder.build_signed_request(server, ProxyRoute.VERIFY_PAYMENT, {})
    digest = request.params["hash"]

    assert len(digest) == 64
    assert digest == digest.lower()
    int(digest, 16)


def test_full_url_encodes_params(builder, server):
    request = builder.build_signed_request(
        server,
        ProxyRoute.PAYPAL_BUTTONS,
        {"amount": "10.00", "currency": "EUR"},
        hash_fields=["10.00", "EUR"],
    )
    query = parse_qs(urlparse(request.full_url).query)

    assert query["rest_route"] == ["/wppps/v1/paypal-buttons"]
    assert query["amount"] == ["10.00"]
    assert query["hash"] == [request.params["hash"]]


def test_full_url_appends_to_existing_query(server):
    server.url = "https://proxy.example.com/index.php?lang=en"
    request = SignedRequestBuilder(clock=lambda: FIXED_TS).build_signed_request(
        server, ProxyRoute.VERIFY_PAYMENT, {}
    )

    assert request.full_url.startswith("https://proxy.example.com/index.php?lang=en&")


def test_payload_cannot_drop_signature_fields(builder, server):
    request = builder.build_signed_request(
        server, ProxyRoute.REGISTER_ORDER, {"order_data": "x"}, hash_fields=["x"]
    )
    for key in ("rest_route", "api_key", "timestamp", "hash"):
        assert key in request.params


@pytest.mark.parametrize(
    "amount,rendered",
    [(Decimal("50"), "50.00"), ("19.9", "19.90"), (7, "7.00"), (Decimal("0.005"), "0.00")],
)
def test_format_amount(amount, rendered):
    assert format_amount(amount) == rendered


def test_verify_inbound_signature_accepts_valid_hash(builder, server):
    good = compute_hash("shh", "42completedpk_live")

    assert builder.verify_inbound_signature(server, [42, "completed"], good) is True
    assert builder.verify_inbound_signature(server, [42, "completed"], good.upper()) is True


def test_verify_inbound_signature_rejects_tampering(builder, server):
    good = compute_hash("shh", "42completedpk_live")

    assert builder.verify_inbound_signature(server, [42, "cancelled"], good) is False
    assert builder.verify_inbound_signature(server, [43, "completed"], good) is False


@pytest.mark.parametrize("received", ["", None, "zz", "ünïcode"])
def test_verify_inbound_signature_never_raises(builder, server, received):
    assert builder.verify_inbound_signature(server, [1, "completed"], received) is False


def test_verify_inbound_signature_without_secret(builder, server):
    server.api_secret = ""
    assert builder.verify_inbound_signature(server, [1, "completed"], "abc") is False
