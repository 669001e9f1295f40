"""HTTP middleware: request correlation, access logging and Prometheus metrics."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

import structlog
from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from chatgate.utils.tracing import accept_request_id, generate_trace_id

from .logging import get_logger

REQUEST_ID_HEADER = "X-Request-ID"

_correlation_id: ContextVar[str | None] = ContextVar("chatgate_correlation_id", default=None)

HTTP_LABELS = ["service", "method", "route", "status_code"]

HTTP_REQUESTS = Counter(
    "chatgate_http_requests_total",
    "HTTP requests handled by the gateway.",
    HTTP_LABELS,
)

HTTP_LATENCY = Histogram(
    "chatgate_http_request_latency_seconds",
    "Wall time from request receipt to response headers.",
    HTTP_LABELS,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 1.5, 2.5, 5.0, 10.0, 30.0),
)

HTTP_IN_FLIGHT = Gauge(
    "chatgate_http_requests_in_flight",
    "Requests currently being processed.",
    ["service"],
)


def get_correlation_id() -> str | None:
    """Correlation id of the request being handled, if any."""

    return _correlation_id.get()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a correlation id to each request and records its outcome.

    A well-formed inbound ``X-Request-ID`` is reused so that ids issued by a
    widget or proxy survive into the gateway's logs; anything else is
    replaced. Requests slower than ``slow_request_ms`` are logged as warnings.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        service_name: str,
        slow_request_ms: int = 5000,
    ) -> None:
        super().__init__(app)
        self._service = service_name
        self._slow_request_ms = slow_request_ms
        self._logger = get_logger(service_name, component="http")

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = accept_request_id(request.headers.get(REQUEST_ID_HEADER)) or generate_trace_id()
        token = _correlation_id.set(correlation_id)
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
        in_flight = HTTP_IN_FLIGHT.labels(self._service)
        in_flight.inc()
        started = time.perf_counter()

        self._logger.debug("http.request.started", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        except Exception:
            self._observe(request, 500, started, failed=True)
            raise
        else:
            response.headers[REQUEST_ID_HEADER] = correlation_id
            self._observe(request, response.status_code, started)
            return response
        finally:
            in_flight.dec()
            structlog.contextvars.unbind_contextvars("correlation_id")
            _correlation_id.reset(token)

    def _observe(self, request: Request, status_code: int, started: float, *, failed: bool = False) -> None:
        elapsed = time.perf_counter() - started
        labels = (self._service, request.method, _route_template(request), str(status_code))
        HTTP_REQUESTS.labels(*labels).inc()
        HTTP_LATENCY.labels(*labels).observe(elapsed)

        fields = {
            "method": request.method,
            "route": labels[2],
            "status_code": status_code,
            "duration_ms": round(elapsed * 1000, 2),
        }
        if failed:
            self._logger.exception("http.request.error", **fields)
        elif fields["duration_ms"] > self._slow_request_ms:
            self._logger.warning("http.request.slow", **fields)
        else:
            self._logger.info("http.request.completed", **fields)


def metrics_response() -> Response:
    """Prometheus exposition of every metric registered in this process."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def _route_template(request: Request) -> str:
    # Templated paths keep label cardinality bounded.
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path
