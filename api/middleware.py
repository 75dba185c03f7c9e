import os
import structlog
from fastapi import Request

from core.logging import BusinessEvents

# Query parameters that must never reach the logs verbatim
SENSITIVE_PARAMS = {"hash", "api_key", "api_secret"}


def _safe_query(request: Request) -> dict:
    return {
        key: ("***" if key in SENSITIVE_PARAMS else value)
        for key, value in request.query_params.items()
    }


async def log_api_entry(request: Request, call_next):
    """Middleware to log API entries with request details"""
    # Get a fresh logger each time to ensure test configurations are respected
    log = structlog.get_logger(__name__)

    # Optionally omit query params in demo mode
    demo_mode = os.getenv("DEMO_MODE", "").lower() in {"1", "true", "yes"}
    log.info(
        BusinessEvents.API_ENTRY,
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
        path_params=dict(request.path_params),
        query_params=None if demo_mode else _safe_query(request),
    )
    response = await call_next(request)
    return response
