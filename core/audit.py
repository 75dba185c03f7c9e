"""
Audit Middleware Module

This module provides middleware for recording every successful admin or
payment action in the audit_logs table. Routes put ``order_id`` and
``server_id`` on ``request.state`` so the entry can be linked back.
"""

from collections.abc import Callable
from typing import Optional

import structlog
from fastapi import Request, Response
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from db import models
from db.models import AuditAction

log = structlog.get_logger(__name__)

AUDITED_METHODS = {"POST", "PUT", "DELETE"}


def determine_action(request: Request) -> Optional[AuditAction]:
    """Determine the audit action based on the request path."""
    path = request.url.path.rstrip("/")
    if "/paypal/callback" in path:
        return AuditAction.callback_received
    if "/product-mappings" in path:
        return AuditAction.mapping_changed
    if "/servers" in path:
        if path.endswith("/select") or path.endswith("/selection"):
            return AuditAction.server_selected
        if path.endswith("/reset-usage"):
            return AuditAction.usage_reset
        return AuditAction.server_changed
    if "/orders" in path:
        if path.endswith("/register"):
            return AuditAction.order_registered
        if path.endswith("/verify"):
            return AuditAction.payment_verified
        if path.endswith("/complete"):
            return AuditAction.payment_completed
        if path.endswith("/orders"):
            return AuditAction.order_created
    return None


def is_audited(request: Request) -> bool:
    if not request.url.path.startswith("/api"):
        return False
    if request.method in AUDITED_METHODS:
        return True
    # The callback is a browser redirect, so it arrives as GET
    return request.url.path.rstrip("/").endswith("/paypal/callback")


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware to audit state-changing /api requests with 2xx/3xx responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if not is_audited(request) or not 200 <= response.status_code < 400:
            return response

        action = determine_action(request)
        if action is None:
            return response

        # grab the route's session if it exists, else skip audit
        db: Session | None = getattr(request.state, "db", None)
        if not db:
            return response

        try:
            db.add(
                models.AuditLog(
                    order_id=getattr(request.state, "order_id", None),
                    server_id=getattr(request.state, "server_id", None),
                    action=action,
                    payload={
                        "method": request.method,
                        "path": str(request.url.path),
                        "status": response.status_code,
                    },
                )
            )
            db.commit()
        except Exception as e:
            db.rollback()
            log.error("audit.session_failed", path=request.url.path, error=str(e))

        return response
