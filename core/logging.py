import logging
import sys
import structlog
import os
from opentelemetry.instrumentation.logging import LoggingInstrumentor


def get_log_level():
    """Get log level from environment or default to INFO"""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_log_renderer():
    """Get log renderer based on environment"""
    env = os.getenv("ENVIRONMENT", "development")
    # JSON lines for tests and production, pretty output locally
    if env in ["test", "production"]:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True, sort_keys=False)


def redact_secrets(logger, method_name, event_dict):
    """Never let an API secret reach a log line."""
    for key in ("api_secret", "secret"):
        if key in event_dict:
            event_dict[key] = "***"
    return event_dict


def configure_logging():
    """Set up structlog + OTEL context injection."""
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.ExceptionPrettyPrinter(),
        redact_secrets,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            get_log_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    env = os.getenv("ENVIRONMENT", "development")
    if env == "test":
        # In test mode, write to stdout for easier capture
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(get_log_level())

    # Silence Uvicorn noise but keep access logs routed through structlog
    logging.getLogger("uvicorn.error").handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()

    # Initialize OpenTelemetry logging instrumentation AFTER configuring logging
    LoggingInstrumentor().instrument(set_logging_format=False)


# Business Event Log Names
class BusinessEvents:
    """Standard names for business event logs"""

    API_ENTRY = "api.request"
    SERVER_SELECTED = "proxy.server_selected"
    SERVER_PINNED = "proxy.server_pinned"
    SERVER_UNPINNED = "proxy.server_unpinned"
    SELECTION_HEALED = "proxy.selection_healed"
    SERVER_SEEDED = "proxy.server_seeded"
    SERVER_DELETED = "proxy.server_deleted"
    USAGE_RECORDED = "proxy.usage_recorded"
    USAGE_RESET = "proxy.usage_reset"
    BINDING_FALLBACK = "binding.fallback"
    BINDING_CLAIM_LOST = "binding.claim_lost"
    PROXY_REQUEST = "proxy.request"
    PROXY_REQUEST_FAILED = "proxy.request_failed"
    ORDER_REGISTERED = "order.registered"
    PAYMENT_VERIFIED = "payment.verified"
    PAYMENT_COMPLETED = "payment.completed"
    CALLBACK_ACCEPTED = "callback.accepted"
    SIGNATURE_MISMATCH = "callback.signature_mismatch"


# Configure logging when module is imported
configure_logging()
