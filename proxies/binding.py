"""
Order-to-server binding.

The server chosen when an order is registered is stored on the order record
(``orders.proxy_server_id``) so every later step of that order talks to the
same proxy. The binding never cascades: deleting a server leaves the stale
id behind and ``resolve_server`` falls back to the registry.
"""

from typing import Optional

import structlog

from core.errors import NotFoundError, RegistryExhaustedError
from core.logging import BusinessEvents
from db.models import Order, ProxyServer
from payments.order_store import OrderStore
from proxies.registry import ServerRegistry

log = structlog.get_logger(__name__)


class OrderServerBinding:
    def __init__(self, orders: OrderStore, registry: ServerRegistry):
        self.orders = orders
        self.registry = registry

    def bind(self, order_id: int, server_id: int) -> None:
        """Record ``server_id`` on the order. Repeating the call is harmless."""
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.proxy_server_id == server_id:
            return
        self.orders.set_server_id(order, server_id)

    def claim(self, order: Order, server_id: int) -> bool:
        """Bind a freshly routed server unless another request bound it first.

        Returns False when the claim was lost; ``order`` then carries the
        winning binding.
        """
        claimed = self.orders.claim_server(order, server_id)
        if not claimed:
            log.info(
                BusinessEvents.BINDING_CLAIM_LOST,
                order_id=order.id,
                routed_server_id=server_id,
                bound_server_id=order.proxy_server_id,
            )
        return claimed

    def resolve(self, order_id: int) -> Optional[int]:
        order = self.orders.get(order_id)
        if order is None:
            return None
        return order.proxy_server_id

    def resolve_server(
        self, order_id: int, preferred_id: Optional[int] = None
    ) -> ProxyServer:
        """Find the server to use for a follow-up step of an order.

        Tries, in order: ``preferred_id`` when it names an existing server,
        the order's binding, then the routing policy, which starts with the
        pinned server.
        Switching servers mid-order is accepted degraded behavior.
        """
        if preferred_id:
            server = self.registry.get_by_id(preferred_id)
            if server is not None:
                return server

        bound_id = self.resolve(order_id)
        if bound_id:
            server = self.registry.get_by_id(bound_id)
            if server is not None:
                return server

        # Routing returns the pin first, healing it when auto-select is on
        server = self.registry.select_for_routing()
        if server is None:
            raise RegistryExhaustedError("No proxy server is configured")

        log.warning(
            BusinessEvents.BINDING_FALLBACK,
            order_id=order_id,
            bound_server_id=bound_id,
            preferred_server_id=preferred_id,
            server_id=server.id,
        )
        return server
