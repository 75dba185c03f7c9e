"""Tests for the HTTP transport to proxy servers."""

from unittest.mock import patch

import pytest
import requests

from core.errors import TransportError
from proxies.client import ProxyClient
from proxies.signing import ProxyRoute, SignedRequest


@pytest.fixture
def signed():
    return SignedRequest(
        url="https://proxy.example.com/",
        route=ProxyRoute.REGISTER_ORDER,
        params={"rest_route": "/wppps/v1/register-order", "hash": "abc"},
    )


def test_send_returns_decoded_body(signed, mock_proxy, proxy_response):
    mock_proxy.return_value = proxy_response({"success": True, "order_id": "X1"})

    data = ProxyClient(timeout=12.5, user_agent="PayPal Proxy Client/2.0").send(signed)

    assert data == {"success": True, "order_id": "X1"}
    args, kwargs = mock_proxy.call_args
    assert args[0] == "https://proxy.example.com/"
    assert kwargs["params"] == signed.params
    assert kwargs["timeout"] == 12.5
    assert kwargs["headers"]["User-Agent"] == "PayPal Proxy Client/2.0"


def test_body_without_success_flag_is_accepted(signed, mock_proxy, proxy_response):
    mock_proxy.return_value = proxy_response({"status": "ok"})

    assert ProxyClient().send(signed) == {"status": "ok"}


def test_explicit_failure_uses_proxy_message(signed, mock_proxy, proxy_response):
    mock_proxy.return_value = proxy_response(
        {"success": False, "message": "Invalid API key"}
    )

    with pytest.raises(TransportError) as exc:
        ProxyClient().send(signed)

    assert exc.value.message == "Invalid API key"
    assert exc.value.route == "register-order"
    assert exc.value.status_code == 502


def test_explicit_failure_without_message(signed, mock_proxy, proxy_response):
    mock_proxy.return_value = proxy_response({"success": False})

    with pytest.raises(TransportError, match="Unknown API error"):
        ProxyClient().send(signed)


def test_non_200_status(signed, mock_proxy, proxy_response):
    mock_proxy.return_value = proxy_response({"success": True}, status_code=500)

    with pytest.raises(TransportError, match="API Error: 500"):
        ProxyClient().send(signed)


def test_invalid_json(signed, mock_proxy, proxy_response):
    response = proxy_response()
    response.json.side_effect = ValueError("no json")
    mock_proxy.return_value = response

    with pytest.raises(TransportError, match="Invalid JSON"):
        ProxyClient().send(signed)


def test_non_object_body(signed, mock_proxy, proxy_response):
    mock_proxy.return_value = proxy_response(["not", "a", "dict"])

    with pytest.raises(TransportError, match="Unexpected response shape"):
        ProxyClient().send(signed)


def test_timeout_is_not_retried(signed):
    with patch(
        "proxies.client.requests.get", side_effect=requests.Timeout("slow")
    ) as mock_get:
        with pytest.raises(TransportError, match="timed out"):
            ProxyClient().send(signed)

    assert mock_get.call_count == 1


def test_connection_error(signed):
    with patch(
        "proxies.client.requests.get",
        side_effect=requests.ConnectionError("refused"),
    ):
        with pytest.raises(TransportError, match="Proxy request failed"):
            ProxyClient().send(signed)
