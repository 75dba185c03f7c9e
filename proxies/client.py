"""
HTTP transport to proxy servers.

One GET per signed request, bounded by ``PROXY_REQUEST_TIMEOUT``. Failures
are never retried here; they surface as ``TransportError`` and the caller
decides whether to try again.
"""

import time
from typing import Any

import requests
import structlog

from core.errors import TransportError
from core.logging import BusinessEvents
from core.metrics import proxy_request_failures, proxy_request_latency
from core.tracing import get_tracer
from proxies.signing import SignedRequest

log = structlog.get_logger(__name__)


class ProxyClient:
    def __init__(self, timeout: float = 30.0, user_agent: str = "PayPal Proxy Client/1.0.0"):
        self.timeout = timeout
        self.user_agent = user_agent

    def _fail(self, request: SignedRequest, message: str, **extra) -> TransportError:
        proxy_request_failures.labels(route=request.route.value).inc()
        log.error(
            BusinessEvents.PROXY_REQUEST_FAILED,
            route=request.route.value,
            url=request.url,
            error=message,
            **extra,
        )
        return TransportError(message, route=request.route.value)

    def send(self, request: SignedRequest) -> dict[str, Any]:
        """Send the request and return the decoded JSON body."""
        log.info(BusinessEvents.PROXY_REQUEST, route=request.route.value, url=request.url)
        started = time.perf_counter()

        with get_tracer().start_as_current_span(f"proxy.{request.route.value}"):
            try:
                response = requests.get(
                    request.url,
                    params=request.params,
                    timeout=self.timeout,
                    headers={"User-Agent": self.user_agent},
                )
            except requests.Timeout as e:
                raise self._fail(request, f"Proxy request timed out: {e}") from e
            except requests.RequestException as e:
                raise self._fail(request, f"Proxy request failed: {e}") from e
            finally:
                proxy_request_latency.labels(route=request.route.value).observe(
                    time.perf_counter() - started
                )

        if response.status_code != 200:
            raise self._fail(
                request,
                f"API Error: {response.status_code} {response.reason or ''}".strip(),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise self._fail(request, "Invalid JSON response from API") from e

        if not isinstance(data, dict):
            raise self._fail(request, "Unexpected response shape from API")

        if data.get("success") is False:
            raise self._fail(request, data.get("message") or "Unknown API error")

        return data
