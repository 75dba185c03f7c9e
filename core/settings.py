import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Load .env file automatically
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600

    # Legacy single-server configuration, used to seed an empty registry
    LEGACY_PROXY_URL: str = ""
    LEGACY_API_KEY: str = ""
    LEGACY_API_SECRET: str = ""

    # Proxy routing
    PROXY_ROUTE_NAMESPACE: str = "/wppps/v1"
    PROXY_REQUEST_TIMEOUT: float = 30.0
    DEFAULT_CAPACITY_LIMIT: int = 1000
    # Pin a server whenever none is pinned, at startup and before each routing
    # decision. Off means an unpinned registry balances by capacity.
    AUTO_SELECT_SERVER: bool = True

    # Storefront URLs handed to the proxy and used for callback redirects
    SITE_URL: str = "http://localhost:8000"
    CALLBACK_URL: str = "http://localhost:8000/api/v1/paypal/callback"
    RETURN_URL: str = "http://localhost:8000/checkout/order-received"
    CART_URL: str = "http://localhost:8000/cart"
    CHECKOUT_URL: str = "http://localhost:8000/checkout"

    # App settings
    APP_NAME: str = "PayPal Proxy Client"
    CLIENT_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "test", "production"] = "development"

    # Observability (Optional)
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4317"
    OTEL_SERVICE_NAME: str = "paypal-proxy-client"

    # Metrics (Optional)
    METRICS_ENABLED: bool = True

    model_config = ConfigDict(env_file=".env", case_sensitive=True)

    def __init__(self, **kwargs):
        # Check for DATABASE_URL before calling parent constructor
        if not os.getenv("DATABASE_URL") and "DATABASE_URL" not in kwargs:
            raise RuntimeError(
                "DATABASE_URL not set; create .env or export the variable"
            )
        super().__init__(**kwargs)

    @property
    def has_legacy_server(self) -> bool:
        """Whether the flat legacy options describe a usable server."""
        return bool(self.LEGACY_PROXY_URL and self.LEGACY_API_KEY)
