from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chatgate.core.middleware import RequestContextMiddleware, get_correlation_id, metrics_response

pytestmark = pytest.mark.unit


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware, service_name="test-service")

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"status": "ok", "correlation": get_correlation_id() or ""}

    @app.get("/metrics")
    async def metrics():
        return metrics_response()

    return app


def test_request_context_middleware_injects_correlation_id():
    client = TestClient(_app())
    response = client.get("/ping")

    assert response.status_code == 200
    assert "X-Request-ID" in response.headers
    assert response.json()["correlation"] == response.headers["X-Request-ID"]


def test_request_context_middleware_reuses_inbound_request_id():
    client = TestClient(_app())
    response = client.get("/ping", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert response.json()["correlation"] == "req-123"


def test_http_metrics_are_exposed():
    client = TestClient(_app())
    client.get("/ping")

    body = client.get("/metrics").text
    assert "chatgate_http_requests_total" in body
    assert 'service="test-service"' in body


@pytest.mark.parametrize("inbound", ["bad id with spaces", "x" * 65, "inject\\nline"])
def test_malformed_inbound_request_id_is_replaced(inbound: str):
    client = TestClient(_app())
    response = client.get("/ping", headers={"X-Request-ID": inbound})

    issued = response.headers["X-Request-ID"]
    assert issued != inbound
    assert len(issued) == 32
    assert response.json()["correlation"] == issued


def test_slow_requests_are_logged_as_warnings(capsys):
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware, service_name="slow-service", slow_request_ms=-1)

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"status": "ok"}

    TestClient(app).get("/ping")

    assert '"event": "http.request.slow"' in capsys.readouterr().out
