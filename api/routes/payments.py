"""
PayPal proxy callback route

The proxy redirects the customer's browser here once PayPal settles. The
query carries ``order_id``, ``status``, ``hash`` and optionally the
``server_id`` that handled the payment. A valid callback updates the order
and sends the customer to the thank-you, cart or checkout page.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from api.deps import get_orchestrator
from payments.orchestrator import PaymentFlowOrchestrator

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/callback")
def paypal_callback(
    request: Request,
    order_id: Optional[int] = None,
    status: str = "",
    hash: str = "",
    server_id: Optional[int] = None,
    orchestrator: PaymentFlowOrchestrator = Depends(get_orchestrator),
):
    request.state.order_id = order_id
    result = orchestrator.handle_callback(
        order_id, status, hash, server_id=server_id
    )
    request.state.server_id = result.server_id

    return RedirectResponse(
        orchestrator.redirect_url(result.status, result.order_id), status_code=303
    )

