"""FastAPI application factory for the chat gateway."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatgate.core.errors import CoreError, InternalError, RateLimitedError, ValidationError
from chatgate.core.logging import configure_logging
from chatgate.core.middleware import (
    RequestContextMiddleware,
    get_correlation_id,
    metrics_response,
)
from chatgate.core.telemetry import configure_tracing, instrument_fastapi_app, shutdown_tracing

from .dependencies import get_request_gate, get_settings
from .routers import chat, greeting, health, messages
from .routers.chat import rate_limit_headers

logger = logging.getLogger(__name__)

SERVICE_NAME = "chatgate"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    gate = get_request_gate()
    gate.start()
    try:
        yield
    finally:
        gate.stop()
        shutdown_tracing()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()
    configure_logging()
    configure_tracing(SERVICE_NAME, settings.telemetry, service_version=settings.app_version)

    app = FastAPI(
        title="Chatgate",
        version=settings.app_version,
        lifespan=lifespan,
    )

    instrument_fastapi_app(app, settings.telemetry)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Window",
            "Retry-After",
            "X-Total-Time-Ms",
            "X-DB-Time-Ms",
            "X-Generation-Time-Ms",
            "X-TTFT-Ms",
            "X-Request-ID",
        ],
    )
    app.add_middleware(RequestContextMiddleware, service_name=SERVICE_NAME)
    register_exception_handlers(app)

    app.include_router(chat.router)
    app.include_router(greeting.router)
    app.include_router(messages.router)
    app.include_router(health.router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return metrics_response()

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Map errors to stable JSON payloads carrying the request id."""

    @app.exception_handler(CoreError)
    async def handle_core_error(request: Request, exc: CoreError) -> JSONResponse:
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitedError):
            headers.update(rate_limit_headers(exc.admission))
        if exc.status_code >= 500:
            logger.error(
                "request failed",
                extra={"code": exc.code, "path": request.url.path},
            )
        return _error_response(exc, headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = [
            {"field": ".".join(str(part) for part in error["loc"][1:]), "message": error["msg"]}
            for error in exc.errors()
        ]
        return _error_response(ValidationError("Invalid request", details={"errors": problems}))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error", extra={"path": request.url.path})
        return _error_response(InternalError())


def _error_response(exc: CoreError, headers: dict[str, str] | None = None) -> JSONResponse:
    payload = exc.to_dict()
    payload["requestId"] = get_correlation_id()
    return JSONResponse(payload, status_code=exc.status_code, headers=headers or None)
