"""
Order and payment routes

Local order entry points plus the three proxy-facing lifecycle steps:
register, widget URL and verify, plus the browser-side completion once
PayPal has captured a verified payment.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from api.deps import get_orchestrator, get_order_store
from api.schemas import (
    CompleteRequest,
    CompletionOut,
    OrderCreate,
    OrderOut,
    RegistrationOut,
    VerificationOut,
    VerifyRequest,
    WidgetUrlOut,
)
from payments.order_store import OrderStore
from payments.orchestrator import PaymentFlowOrchestrator

log = structlog.get_logger(__name__)

router = APIRouter()


def _load_order(orders: OrderStore, order_id: int):
    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    data: OrderCreate, request: Request, orders: OrderStore = Depends(get_order_store)
):
    order = orders.create(
        order_key=data.order_key,
        currency=data.currency,
        customer_email=data.customer_email,
        customer_first_name=data.customer_first_name,
        customer_last_name=data.customer_last_name,
        items=[item.model_dump() for item in data.items],
    )
    request.state.order_id = order.id
    return order


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, orders: OrderStore = Depends(get_order_store)):
    return _load_order(orders, order_id)


@router.post("/{order_id}/register", response_model=RegistrationOut)
def register_order(
    order_id: int,
    request: Request,
    orchestrator: PaymentFlowOrchestrator = Depends(get_orchestrator),
):
    """
    Send the order to a proxy server.

    The first call picks a server, binds it to the order and records the
    order total as that server's usage. Retrying after a failure reuses the
    same server.
    """
    order = _load_order(orchestrator.orders, order_id)
    request.state.order_id = order_id
    result = orchestrator.register_order(order)
    return RegistrationOut(
        order_id=result.order_id,
        server_id=result.server_id,
        usage_recorded=result.usage_recorded,
        status=order.status,
        response=result.response,
    )


@router.get("/{order_id}/widget-url", response_model=WidgetUrlOut)
def widget_url(
    order_id: int, orchestrator: PaymentFlowOrchestrator = Depends(get_orchestrator)
):
    """Signed URL of the PayPal buttons iframe for this order."""
    order = _load_order(orchestrator.orders, order_id)
    signed = orchestrator.build_widget_request(order)
    return WidgetUrlOut(
        order_id=order_id, server_id=signed.params["server_id"], url=signed.full_url
    )


@router.post("/{order_id}/verify", response_model=VerificationOut)
def verify_payment(
    order_id: int,
    data: VerifyRequest,
    request: Request,
    orchestrator: PaymentFlowOrchestrator = Depends(get_orchestrator),
):
    order = _load_order(orchestrator.orders, order_id)
    request.state.order_id = order_id
    result = orchestrator.verify_payment(data.paypal_order_id, order)
    return VerificationOut(
        order_id=result.order_id,
        server_id=result.server_id,
        paypal_order_id=result.paypal_order_id,
        status=order.status,
        response=result.response,
    )


@router.post("/{order_id}/complete", response_model=CompletionOut)
def complete_order(
    order_id: int,
    data: CompleteRequest,
    request: Request,
    orchestrator: PaymentFlowOrchestrator = Depends(get_orchestrator),
):
    """
    Mark a verified order paid from the checkout page.

    The body carries the PayPal order id stored at verification, the
    capture's transaction id and, optionally, the server that handled it.
    """
    order = _load_order(orchestrator.orders, order_id)
    request.state.order_id = order_id
    result = orchestrator.complete_order(
        order,
        data.paypal_order_id,
        transaction_id=data.transaction_id,
        server_id=data.server_id,
    )
    request.state.server_id = result.server_id
    return CompletionOut(
        order_id=result.order_id,
        server_id=result.server_id,
        transaction_id=result.transaction_id,
        status=result.status,
        redirect=orchestrator.redirect_url(result.status, result.order_id),
    )
