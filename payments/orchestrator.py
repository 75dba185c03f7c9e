"""
Payment Flow Orchestrator

Drives one order through the proxy lifecycle:

    created -> registered -> verified -> completed
                  (failed / cancelled from any non-terminal state)

Registration picks the server and records usage; every later step reuses
the order's bound server through ``OrderServerBinding.resolve_server``.
An order reaches ``completed`` either from the signed proxy callback or from
the browser through ``complete_order`` after verification.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlencode

import structlog

from core.errors import (
    InvalidTransitionError,
    NotFoundError,
    RegistryExhaustedError,
    SignatureMismatchError,
    ValidationError,
)
from core.logging import BusinessEvents
from core.metrics import orders_registered, signature_rejections
from core.settings import Settings
from db.models import Order, OrderStatus, ProxyServer
from payments.order_store import OrderStore
from proxies.binding import OrderServerBinding
from proxies.client import ProxyClient
from proxies.registry import ServerRegistry
from proxies.signing import (
    ProxyRoute,
    SignedRequest,
    SignedRequestBuilder,
    format_amount,
)

log = structlog.get_logger(__name__)

CALLBACK_OUTCOMES = {
    "completed": OrderStatus.completed,
    "cancelled": OrderStatus.cancelled,
}


@dataclass
class RegistrationResult:
    order_id: int
    server_id: int
    usage_recorded: bool
    response: dict[str, Any] = field(default_factory=dict)


@dataclass
class VerificationResult:
    order_id: int
    server_id: int
    paypal_order_id: str
    response: dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionResult:
    order_id: int
    server_id: Optional[int]
    transaction_id: Optional[str]
    status: OrderStatus


@dataclass
class CallbackResult:
    order_id: int
    server_id: int
    status: OrderStatus


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


class PaymentFlowOrchestrator:
    def __init__(
        self,
        registry: ServerRegistry,
        binding: OrderServerBinding,
        signer: SignedRequestBuilder,
        client: ProxyClient,
        orders: OrderStore,
        settings: Settings,
    ):
        self.registry = registry
        self.binding = binding
        self.signer = signer
        self.client = client
        self.orders = orders
        self.settings = settings

    @classmethod
    def from_session(cls, db, settings: Settings) -> "PaymentFlowOrchestrator":
        """Wire the collaborators for one unit of work."""
        registry = ServerRegistry.from_settings(db, settings)
        orders = OrderStore(db)
        return cls(
            registry=registry,
            binding=OrderServerBinding(orders, registry),
            signer=SignedRequestBuilder(settings.PROXY_ROUTE_NAMESPACE),
            client=ProxyClient(
                timeout=settings.PROXY_REQUEST_TIMEOUT,
                user_agent=f"PayPal Proxy Client/{settings.CLIENT_VERSION}",
            ),
            orders=orders,
            settings=settings,
        )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _require_open(self, order: Optional[Order]) -> Order:
        if order is None:
            raise ValidationError("Invalid order")
        if order.status.is_terminal:
            raise InvalidTransitionError(
                f"Order {order.id} is already {order.status.value}"
            )
        return order

    def _server_for_registration(self, order: Order) -> tuple[ProxyServer, bool]:
        """Return the server and whether it was freshly routed."""
        if order.proxy_server_id:
            bound = self.registry.get_by_id(order.proxy_server_id)
            if bound is not None:
                return bound, False

        server = self.registry.select_for_routing()
        if server is None:
            raise RegistryExhaustedError("No proxy server is configured")
        return server, True

    def order_items(self, order: Order) -> list[dict[str, Any]]:
        """Line items in the shape the proxy expects."""
        items = []
        for item in order.items:
            item_data = {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "price": format_amount(item.price),
                "line_total": format_amount(item.line_total),
                "sku": item.sku or "",
            }
            mapped_id = self.orders.get_product_mapping(item.product_id)
            if mapped_id:
                item_data["mapped_product_id"] = mapped_id
            items.append(item_data)
        return items

    def order_data(self, order: Order, server: ProxyServer) -> dict[str, Any]:
        return {
            "order_id": order.id,
            "order_key": order.order_key,
            "order_total": format_amount(order.total),
            "currency": order.currency,
            "customer_email": order.customer_email,
            "customer_name": order.customer_name,
            "items": self.order_items(order),
            "site_url": self.settings.SITE_URL,
            "server_id": server.id,
        }

    # ------------------------------------------------------------------
    # lifecycle steps
    # ------------------------------------------------------------------

    def register_order(self, order: Optional[Order]) -> RegistrationResult:
        """Send the order to a proxy server.

        The first registration routes, claims the binding and records the
        order total as usage exactly once. A retry reuses the live binding and
        records nothing, and so does a concurrent registration that loses the
        claim. Transport failures propagate as ``TransportError`` and leave
        the order in its current state.
        """
        order = self._require_open(order)
        server, freshly_routed = self._server_for_registration(order)

        usage_recorded = False
        if freshly_routed:
            if self.binding.claim(order, server.id):
                usage_recorded = self.registry.record_usage(server.id, order.total)
            else:
                # A concurrent registration bound the order first; follow it
                server = self.binding.resolve_server(order.id)

        total = format_amount(order.total)
        encoded = _b64(json.dumps(self.order_data(order, server)))
        request = self.signer.build_signed_request(
            server,
            ProxyRoute.REGISTER_ORDER,
            {"order_data": encoded},
            hash_fields=[order.id, total],
        )
        response = self.client.send(request)

        if order.status == OrderStatus.created:
            self.orders.transition(
                order,
                OrderStatus.registered,
                note=f"Order registered with PayPal proxy (Server ID: {server.id})",
            )

        orders_registered.labels(server_id=str(server.id)).inc()
        log.info(
            BusinessEvents.ORDER_REGISTERED,
            order_id=order.id,
            server_id=server.id,
            amount=total,
            usage_recorded=usage_recorded,
        )
        return RegistrationResult(
            order_id=order.id,
            server_id=server.id,
            usage_recorded=usage_recorded,
            response=response,
        )

    def build_widget_request(self, order: Optional[Order]) -> SignedRequest:
        """Signed request for the PayPal buttons widget on the order's server."""
        order = self._require_open(order)
        server = self.binding.resolve_server(order.id)

        amount = format_amount(order.total)
        return self.signer.build_signed_request(
            server,
            ProxyRoute.PAYPAL_BUTTONS,
            {
                "amount": amount,
                "currency": order.currency,
                "callback_url": _b64(self.settings.CALLBACK_URL),
                "site_url": _b64(self.settings.SITE_URL),
                "server_id": server.id,
            },
            hash_fields=[amount, order.currency],
        )

    def build_widget_url(self, order: Optional[Order]) -> str:
        return self.build_widget_request(order).full_url

    def verify_payment(
        self, paypal_order_id: str, order: Optional[Order]
    ) -> VerificationResult:
        """Ask the order's proxy to confirm the PayPal payment. No usage recorded."""
        if not paypal_order_id:
            raise ValidationError("Invalid payment data")
        order = self._require_open(order)
        server = self.binding.resolve_server(order.id)

        request = self.signer.build_signed_request(
            server,
            ProxyRoute.VERIFY_PAYMENT,
            {
                "paypal_order_id": paypal_order_id,
                "order_id": order.id,
                "order_total": format_amount(order.total),
                "currency": order.currency,
                "server_id": server.id,
            },
            hash_fields=[paypal_order_id, order.id],
        )
        response = self.client.send(request)

        self.orders.transition(
            order,
            OrderStatus.verified,
            note=(
                f"PayPal payment verified. PayPal Order ID: {paypal_order_id}, "
                f"Server ID: {server.id}"
            ),
            paypal_order_id=paypal_order_id,
            transaction_id=response.get("transaction_id") or order.transaction_id,
        )
        log.info(
            BusinessEvents.PAYMENT_VERIFIED,
            order_id=order.id,
            server_id=server.id,
            paypal_order_id=paypal_order_id,
        )
        return VerificationResult(
            order_id=order.id,
            server_id=server.id,
            paypal_order_id=paypal_order_id,
            response=response,
        )

    def complete_order(
        self,
        order: Optional[Order],
        paypal_order_id: str,
        transaction_id: str = "",
        server_id: Optional[int] = None,
    ) -> CompletionResult:
        """Finish a verified order from the browser once PayPal captured it.

        Only the PayPal order id stored by ``verify_payment`` is accepted.
        Moves ``verified -> completed``, stores the transaction and server
        ids and notes them. Repeating the call for an order already completed
        with the same PayPal order id changes nothing. No usage recorded.
        """
        if order is None or not paypal_order_id:
            raise ValidationError("Invalid order data")

        if (
            order.status == OrderStatus.completed
            and order.paypal_order_id == paypal_order_id
        ):
            return CompletionResult(
                order_id=order.id,
                server_id=order.proxy_server_id,
                transaction_id=order.transaction_id,
                status=order.status,
            )
        if order.status != OrderStatus.verified:
            raise InvalidTransitionError(
                f"Order {order.id} is {order.status.value}, not verified"
            )
        if order.paypal_order_id != paypal_order_id:
            raise ValidationError(
                "PayPal order id does not match the verified payment"
            )

        server = self.binding.resolve_server(order.id, preferred_id=server_id)
        transaction_id = transaction_id or order.transaction_id or ""

        self.orders.transition(
            order,
            OrderStatus.completed,
            note=(
                f"PayPal payment completed. PayPal Order ID: {paypal_order_id}, "
                f"Transaction ID: {transaction_id}, Server ID: {server.id}"
            ),
            transaction_id=transaction_id or None,
            proxy_server_id=server.id,
        )
        log.info(
            BusinessEvents.PAYMENT_COMPLETED,
            order_id=order.id,
            server_id=server.id,
            paypal_order_id=paypal_order_id,
            transaction_id=transaction_id,
        )
        return CompletionResult(
            order_id=order.id,
            server_id=server.id,
            transaction_id=order.transaction_id,
            status=order.status,
        )

    def redirect_url(self, status: OrderStatus, order_id: int) -> str:
        """Storefront page the customer lands on after a payment outcome."""
        if status == OrderStatus.completed:
            target = self.settings.RETURN_URL
        elif status == OrderStatus.cancelled:
            target = self.settings.CART_URL
        else:
            target = self.settings.CHECKOUT_URL
        separator = "&" if "?" in target else "?"
        return f"{target}{separator}{urlencode({'order_id': order_id})}"

    def handle_callback(
        self,
        order_id: Optional[int],
        status: str,
        received_hash: str,
        server_id: Optional[int] = None,
    ) -> CallbackResult:
        """Apply a proxy callback once its hash checks out.

        The hash covers ``order_id + status + api_key`` and is checked before
        the order is loaded, so an unsigned caller gets 403 whether or not
        the order exists. On mismatch nothing is written. ``completed`` marks
        the order paid, ``cancelled`` cancels it, any other status fails it.
        """
        if not order_id:
            raise ValidationError("Missing order_id")
        status = status or ""

        server = self.binding.resolve_server(order_id, preferred_id=server_id)
        if not self.signer.verify_inbound_signature(
            server, [order_id, status], received_hash
        ):
            signature_rejections.inc()
            log.warning(
                BusinessEvents.SIGNATURE_MISMATCH,
                order_id=order_id,
                status=status,
                server_id=server.id,
            )
            raise SignatureMismatchError("Invalid security hash")

        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")

        target = CALLBACK_OUTCOMES.get(status, OrderStatus.failed)
        if order.status.is_terminal:
            if order.status == target:
                return CallbackResult(order_id=order.id, server_id=server.id, status=target)
            raise InvalidTransitionError(
                f"Order {order.id} is already {order.status.value}"
            )

        if target == OrderStatus.completed:
            note = f"Payment completed via PayPal proxy callback (Server ID: {server.id})"
        elif target == OrderStatus.cancelled:
            note = "Payment cancelled by customer"
        else:
            note = f"Payment failed (status: {status or 'empty'})"

        self.orders.transition(order, target, note=note, proxy_server_id=server.id)
        log.info(
            BusinessEvents.CALLBACK_ACCEPTED,
            order_id=order.id,
            server_id=server.id,
            status=target.value,
        )
        return CallbackResult(order_id=order.id, server_id=server.id, status=target)
