"""
Prometheus metrics instrumentation for the PayPal proxy client.

Exposes request metrics at /metrics plus counters for the routing and
reconciliation steps, labelled by proxy server id.
"""

from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_client import Counter, Gauge, Histogram
from fastapi import Request, status
from fastapi.responses import JSONResponse
import os

orders_registered = Counter(
    "proxyclient_orders_registered_total",
    "Orders successfully registered with a proxy server",
    ["server_id"],
)

usage_recorded = Counter(
    "proxyclient_usage_recorded_total",
    "Usage amount accumulated per proxy server",
    ["server_id"],
)

server_usage_ratio = Gauge(
    "proxyclient_server_usage_ratio",
    "current_usage / capacity_limit as of the last usage change",
    ["server_id"],
)

signature_rejections = Counter(
    "proxyclient_signature_rejections_total",
    "Inbound callbacks rejected because of a hash mismatch",
)

proxy_request_failures = Counter(
    "proxyclient_proxy_request_failures_total",
    "Outbound proxy requests that failed",
    ["route"],
)

proxy_request_latency = Histogram(
    "proxyclient_proxy_request_latency_seconds",
    "Round trip time of outbound proxy requests",
    ["route"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def init_metrics(app):
    """
    Initialize Prometheus metrics instrumentation for the FastAPI app.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator instance
    """
    inst = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
    )
    inst.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    return inst


def add_metrics_auth_middleware(app):
    """
    Add middleware to protect the /metrics endpoint in production.
    For production use, set METRICS_AUTH_TOKEN environment variable.
    """

    @app.middleware("http")
    async def metrics_auth_middleware(request: Request, call_next):
        if request.url.path == "/metrics":
            if os.getenv("ENVIRONMENT", "development") in {"development", "test"}:
                return await call_next(request)

            auth_header = request.headers.get("X-Metrics-Auth")
            expected_token = os.getenv("METRICS_AUTH_TOKEN")

            if expected_token and auth_header == expected_token:
                return await call_next(request)

            # Allow internal network access (VPN/private networks)
            client_ip = request.client.host if request.client else None
            if client_ip and (
                client_ip.startswith("10.")
                or client_ip.startswith("192.168.")
                or client_ip.startswith("172.")
            ):
                return await call_next(request)

            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Metrics endpoint access denied"},
            )

        return await call_next(request)
