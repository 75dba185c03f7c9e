"""
Error taxonomy for the proxy client.

Every error carries the HTTP status the API layer answers with; the mapping
is applied by the exception handler registered in ``main.py``.
"""


class ProxyClientError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFoundError(ProxyClientError):
    """A server or order does not exist."""

    status_code = 404


class ValidationError(ProxyClientError):
    """Required fields are missing or malformed."""

    status_code = 422


class TransportError(ProxyClientError):
    """The proxy could not be reached or reported a failure.

    Raised for network errors, timeouts, non-200 responses, unparsable bodies
    and explicit ``"success": false`` replies. Safe to retry.
    """

    status_code = 502

    def __init__(self, message: str = "", route: str | None = None):
        super().__init__(message)
        self.route = route


class SignatureMismatchError(ProxyClientError):
    """An inbound callback hash did not match."""

    status_code = 403


class RegistryExhaustedError(ProxyClientError):
    """No proxy server is configured at all."""

    status_code = 503


class LastServerError(ProxyClientError):
    """The only remaining server cannot be deleted."""

    status_code = 409


class InvalidTransitionError(ProxyClientError):
    """The order is not in a state that allows the requested step."""

    status_code = 409
