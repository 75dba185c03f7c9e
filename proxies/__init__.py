"""
Proxy server routing: registry, order binding, request signing and transport.
"""

from .binding import OrderServerBinding
from .client import ProxyClient
from .registry import ServerRegistry
from .signing import ProxyRoute, SignedRequest, SignedRequestBuilder

__all__ = [
    "OrderServerBinding",
    "ProxyClient",
    "ProxyRoute",
    "ServerRegistry",
    "SignedRequest",
    "SignedRequestBuilder",
]
