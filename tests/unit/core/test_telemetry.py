from __future__ import annotations

import logging
from typing import Any

import pytest
from fastapi import FastAPI

from chatgate.core import telemetry
from chatgate.core.config import TelemetrySettings
from chatgate.core.telemetry import (
    configure_tracing,
    is_tracing_enabled,
    parse_exporter_headers,
    resolve_exporter_endpoint,
)

pytestmark = pytest.mark.unit


class RecordingExporter:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs


@pytest.fixture()
def fresh_tracing(monkeypatch):
    monkeypatch.setattr(telemetry, "_TRACER_PROVIDER", None)
    monkeypatch.setattr(telemetry, "_HTTPX_INSTRUMENTED", True)
    monkeypatch.setattr(telemetry.trace, "set_tracer_provider", lambda provider: None)
    for name in ("OTEL_EXPORTER_OTLP_ENDPOINT", "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    exporters: list[RecordingExporter] = []

    def _exporter(**kwargs: Any) -> RecordingExporter:
        exporter = RecordingExporter(**kwargs)
        exporters.append(exporter)
        return exporter

    monkeypatch.setattr(telemetry, "OTLPSpanExporter", _exporter)
    monkeypatch.setattr(telemetry, "BatchSpanProcessor", lambda exporter: _NullProcessor())
    return exporters


class _NullProcessor:
    def on_start(self, span, parent_context=None) -> None:
        pass

    def on_end(self, span) -> None:
        pass

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True


def test_tracing_stays_off_without_endpoint(fresh_tracing, caplog):
    caplog.set_level(logging.WARNING)

    assert configure_tracing("chatgate", TelemetrySettings(exporter_endpoint=None)) is False

    assert not is_tracing_enabled()
    assert fresh_tracing == []
    assert any("distributed tracing disabled" in r.message for r in caplog.records)


def test_tracing_exports_to_configured_endpoint(fresh_tracing):
    settings = TelemetrySettings(
        exporter_endpoint="http://collector:4318/v1/traces",
        exporter_headers="authorization=Bearer token",
        sample_ratio=0.25,
    )

    assert configure_tracing("chatgate", settings, service_version="1.2.3") is True

    assert is_tracing_enabled()
    assert fresh_tracing[0].kwargs == {
        "endpoint": "http://collector:4318/v1/traces",
        "headers": {"authorization": "Bearer token"},
    }
    provider = telemetry._TRACER_PROVIDER
    assert provider.resource.attributes["service.version"] == "1.2.3"

    telemetry.shutdown_tracing()
    assert not is_tracing_enabled()


def test_standard_otel_variable_is_used_as_fallback(monkeypatch):
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", raising=False)
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://fallback:4318")

    assert resolve_exporter_endpoint(TelemetrySettings(exporter_endpoint=None)) == "http://fallback:4318"
    assert (
        resolve_exporter_endpoint(TelemetrySettings(exporter_endpoint="http://explicit:4318"))
        == "http://explicit:4318"
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("authorization=Bearer token,invalid,env=prod", {"authorization": "Bearer token", "env": "prod"}),
        ("api-key=a=b", {"api-key": "a=b"}),
        (None, None),
        (" , ", None),
    ],
)
def test_parse_exporter_headers(raw, expected):
    assert parse_exporter_headers(raw) == expected


def test_fastapi_app_is_instrumented_without_exporter():
    app = FastAPI()
    telemetry.instrument_fastapi_app(app, TelemetrySettings())

    assert getattr(app, "_is_instrumented_by_opentelemetry", False)
