"""
Signed requests to and from proxy servers.

Outbound requests carry ``api_key``, a unix ``timestamp`` and
``hash = HMAC-SHA256(api_secret, timestamp + fields... + api_key)`` as a hex
digest. The field order per route is part of the wire contract with the
proxy's verifier and must not change.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable
from urllib.parse import urlencode

from db.models import ProxyServer


class ProxyRoute(str, Enum):
    REGISTER_ORDER = "register-order"
    VERIFY_PAYMENT = "verify-payment"
    PAYPAL_BUTTONS = "paypal-buttons"


def format_amount(amount: Any) -> str:
    """Render a money amount the way it is signed and sent: two decimals."""
    return f"{Decimal(str(amount)).quantize(Decimal('0.01'))}"


def compute_hash(secret: str, message: str) -> str:
    return hmac.new(
        secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()


@dataclass
class SignedRequest:
    """Outbound request descriptor: where to send it and with which params."""

    url: str
    route: ProxyRoute
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def full_url(self) -> str:
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode(self.params)}"


class SignedRequestBuilder:
    def __init__(
        self,
        route_namespace: str = "/wppps/v1",
        clock: Callable[[], float] = time.time,
    ):
        self.route_namespace = route_namespace.rstrip("/")
        self.clock = clock

    def build_signed_request(
        self,
        server: ProxyServer,
        route: ProxyRoute,
        payload: dict[str, Any],
        hash_fields: Iterable[Any] = (),
    ) -> SignedRequest:
        timestamp = int(self.clock())
        message = (
            str(timestamp)
            + "".join(str(value) for value in hash_fields)
            + server.api_key
        )
        params = {
            "rest_route": f"{self.route_namespace}/{route.value}",
            "api_key": server.api_key,
            "timestamp": timestamp,
            "hash": compute_hash(server.api_secret, message),
        }
        params.update(payload)
        return SignedRequest(url=server.url, route=route, params=params)

    def verify_inbound_signature(
        self, server: ProxyServer, fields: Iterable[Any], received_hash: str
    ) -> bool:
        """Check a callback hash over ``fields... + api_key``; never raises."""
        if not received_hash or not server.api_secret:
            return False
        message = "".join(str(value) for value in fields) + server.api_key
        expected = compute_hash(server.api_secret, message)
        return hmac.compare_digest(
            expected.encode("ascii"), str(received_hash).lower().encode("utf-8")
        )
