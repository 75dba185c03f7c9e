"""
PayPal Proxy Client - Main Application Entry Point

This module initializes the FastAPI application and sets up the core routing.
The service routes storefront orders to one of several PayPal proxy servers,
signs every outbound request and applies the signed callbacks the proxies
send back.
"""

import structlog
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api import routes
from api.middleware import log_api_entry
from core.audit import AuditMiddleware
from core.dependencies import clear_settings, get_settings, init_settings
from core.errors import ProxyClientError
from core.logging import configure_logging
from core.metrics import add_metrics_auth_middleware, init_metrics
from core.settings import Settings
from core.tracing import init_tracer
from db.session import get_session_context, init_db
from proxies.registry import ServerRegistry

log = structlog.get_logger(__name__)


def bootstrap_registry(settings: Settings) -> None:
    """Seed the registry from legacy options and make sure a server is pinned."""
    with get_session_context(settings) as db:
        registry = ServerRegistry.from_settings(db, settings)
        registry.seed_default(settings)
        if settings.AUTO_SELECT_SERVER:
            registry.ensure_selection()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events."""
    # Startup
    init_settings()
    settings = get_settings()

    # Initialize OpenTelemetry tracing
    init_tracer(settings.OTEL_SERVICE_NAME)

    init_db(settings)
    bootstrap_registry(settings)

    yield
    # Shutdown
    clear_settings()


app = FastAPI(
    title="PayPal Proxy Client",
    description="""
    ## Multi-server PayPal proxy client

    Routes each order to one of several PayPal proxy servers and keeps every
    later step of that order on the same server.

    ### Key Features:
    - **Server registry**: capacity-aware routing with an optional manual pin
    - **Order binding**: register, widget and verify calls reuse the order's server
    - **Signed requests**: HMAC-SHA256 over timestamp and payload fields
    - **Callbacks**: constant-time hash check before any order update
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Initialize FastAPI instrumentation
FastAPIInstrumentor.instrument_app(app)

# Initialize Prometheus metrics
init_metrics(app)

# Add metrics authentication middleware (for production)
add_metrics_auth_middleware(app)

# Add logging middleware first
app.middleware("http")(log_api_entry)

# Add audit middleware
app.add_middleware(AuditMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.exception_handler(ProxyClientError)
async def proxy_client_error_handler(request: Request, exc: ProxyClientError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message or exc.__class__.__name__},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
    )


@app.get("/")
async def root():
    """Root endpoint providing API information."""
    return {
        "name": "PayPal Proxy Client",
        "version": "1.0.0",
        "description": "Routes orders across PayPal proxy servers with signed requests",
        "api_documentation": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_spec": "/openapi.json",
        },
        "endpoints": {
            "servers": "/api/v1/servers/ - Proxy server registry",
            "orders": "/api/v1/orders/ - Orders and payment steps",
            "callback": "/api/v1/paypal/callback - Proxy callback",
            "product_mappings": "/api/v1/product-mappings/ - Product id mapping",
            "health": "/health - Health check endpoint",
            "metrics": "/metrics - Prometheus metrics (requires auth)",
        },
        "payment_workflow": {
            "1": "POST /api/v1/orders/ - Create an order",
            "2": "POST /api/v1/orders/{id}/register - Register with a proxy",
            "3": "GET /api/v1/orders/{id}/widget-url - PayPal buttons URL",
            "4": "POST /api/v1/orders/{id}/verify - Verify the payment",
        },
    }


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint alias."""
    return await health_check(settings)


@app.get("/healthz")
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint to verify API status."""
    db_type = (
        "PostgreSQL" if settings.DATABASE_URL.startswith("postgresql") else "SQLite"
    )
    return {
        "status": "ok",
        "app_name": settings.APP_NAME,
        "database": db_type,
        "environment": settings.ENVIRONMENT,
    }


# Include routers under a single versioned prefix
API_PREFIX = "/api/v1"

app.include_router(routes.router, prefix=API_PREFIX)


def main():
    configure_logging()
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
