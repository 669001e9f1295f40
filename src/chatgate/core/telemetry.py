"""OpenTelemetry wiring for the gateway process.

Tracing is optional: without an OTLP endpoint the process keeps the no-op
tracer provider and only the FastAPI instrumentation is attached.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

from chatgate.core.config import TelemetrySettings

logger = logging.getLogger(__name__)

_ENDPOINT_ENV_VARS = ("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", "OTEL_EXPORTER_OTLP_ENDPOINT")

_TRACER_PROVIDER: TracerProvider | None = None
_HTTPX_INSTRUMENTED = False


def configure_tracing(
    service_name: str,
    telemetry: TelemetrySettings,
    *,
    service_version: str | None = None,
) -> bool:
    """Install an OTLP-exporting tracer provider; return whether tracing is on.

    Completion backend calls go through the OpenAI SDK, which is built on
    httpx, so instrumenting httpx yields one span per backend round trip.
    """

    global _TRACER_PROVIDER
    if _TRACER_PROVIDER is not None:
        return True

    endpoint = resolve_exporter_endpoint(telemetry)
    if endpoint is None:
        logger.warning(
            "distributed tracing disabled; no OTLP endpoint configured",
            extra={"service_name": service_name},
        )
        return False

    attributes = {"service.name": service_name}
    if service_version:
        attributes["service.version"] = service_version
    provider = TracerProvider(
        resource=Resource.create(attributes),
        sampler=ParentBased(TraceIdRatioBased(telemetry.sample_ratio)),
    )

    try:
        exporter = OTLPSpanExporter(
            endpoint=endpoint,
            headers=parse_exporter_headers(telemetry.exporter_headers),
        )
    except Exception:  # pragma: no cover - exporter misconfiguration
        logger.exception("failed to create OTLP span exporter; tracing disabled")
        return False

    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _instrument_httpx()
    _TRACER_PROVIDER = provider
    logger.info(
        "tracing initialised",
        extra={
            "service_name": service_name,
            "endpoint": endpoint,
            "sample_ratio": telemetry.sample_ratio,
        },
    )
    return True


def shutdown_tracing() -> None:
    """Flush pending spans; called when the application stops."""

    global _TRACER_PROVIDER
    if _TRACER_PROVIDER is None:
        return
    _TRACER_PROVIDER.shutdown()
    _TRACER_PROVIDER = None


def is_tracing_enabled() -> bool:
    return _TRACER_PROVIDER is not None


def resolve_exporter_endpoint(telemetry: TelemetrySettings) -> str | None:
    """Settings win; the standard OTEL_* variables are honoured as fallback."""

    if telemetry.exporter_endpoint:
        return telemetry.exporter_endpoint
    for name in _ENDPOINT_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return None


def instrument_fastapi_app(app: FastAPI, telemetry: TelemetrySettings) -> None:
    """Attach request spans to ``app``, skipping health and scrape endpoints."""

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=_TRACER_PROVIDER,
        excluded_urls=telemetry.excluded_urls,
    )


def _instrument_httpx() -> None:
    global _HTTPX_INSTRUMENTED
    if _HTTPX_INSTRUMENTED:
        return
    HTTPXClientInstrumentor().instrument()
    _HTTPX_INSTRUMENTED = True


def parse_exporter_headers(header_value: str | None) -> dict[str, str] | None:
    """Parse ``key=value,key2=value2``; segments without ``=`` are dropped."""

    headers: dict[str, str] = {}
    for segment in (header_value or "").split(","):
        key, separator, value = segment.partition("=")
        if not separator:
            if segment.strip():
                logger.warning("ignoring malformed OTLP header segment", extra={"segment": segment})
            continue
        headers[key.strip()] = value.strip()
    return headers or None
