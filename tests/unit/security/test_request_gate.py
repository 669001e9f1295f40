from __future__ import annotations

import threading

import pytest
from starlette.requests import Request

from chatgate.security.ratelimit import RequestGate, client_key_from_request

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/chat",
        "headers": [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_eleventh_request_inside_window_is_denied() -> None:
    clock = FakeClock()
    gate = RequestGate(window_seconds=30, max_requests=10, clock=clock)

    decisions = []
    for _ in range(11):
        decisions.append(gate.admit("203.0.113.7"))
        clock.advance(1)

    assert all(decision.allowed for decision in decisions[:10])
    assert [decision.remaining for decision in decisions[:3]] == [9, 8, 7]
    denied = decisions[10]
    assert not denied.allowed
    assert denied.remaining == 0
    assert denied.limit == 10
    assert denied.retry_after_seconds == 20


def test_denials_do_not_extend_the_window() -> None:
    clock = FakeClock()
    gate = RequestGate(window_seconds=30, max_requests=2, clock=clock)

    gate.admit("client")
    gate.admit("client")
    for _ in range(5):
        assert not gate.admit("client").allowed

    clock.advance(31)
    fresh = gate.admit("client")
    assert fresh.allowed
    assert fresh.remaining == 1


def test_retry_after_is_at_least_one_second() -> None:
    clock = FakeClock()
    gate = RequestGate(window_seconds=30, max_requests=1, clock=clock)

    gate.admit("client")
    clock.advance(29.9)

    assert gate.admit("client").retry_after_seconds == 1


def test_clients_are_counted_independently() -> None:
    gate = RequestGate(window_seconds=30, max_requests=1, clock=FakeClock())

    assert gate.admit("a").allowed
    assert gate.admit("b").allowed
    assert not gate.admit("a").allowed


def test_sweep_drops_idle_clients() -> None:
    clock = FakeClock()
    gate = RequestGate(window_seconds=30, max_requests=5, clock=clock)
    gate.admit("idle")
    clock.advance(45)
    gate.admit("recent")

    assert gate.sweep() == 0

    clock.advance(20)
    assert gate.sweep() == 1
    assert gate.stats() == {
        "activeClients": 1,
        "config": {"windowSeconds": 30.0, "maxRequests": 5},
    }


def test_sweeper_thread_starts_and_stops() -> None:
    gate = RequestGate(sweep_interval_seconds=0.01)
    gate.start()
    gate.stop(timeout=1)

    assert gate._sweeper is None


@pytest.mark.parametrize(
    ("window", "limit"),
    [(0, 10), (30, 0)],
)
def test_invalid_configuration_is_rejected(window: float, limit: int) -> None:
    with pytest.raises(ValueError):
        RequestGate(window_seconds=window, max_requests=limit)


def test_client_key_prefers_forwarded_for() -> None:
    request = _request({"X-Forwarded-For": "198.51.100.4, 10.0.0.1", "X-Real-IP": "10.0.0.2"})
    assert client_key_from_request(request) == "198.51.100.4"


def test_client_key_falls_back_to_real_ip_then_peer() -> None:
    assert client_key_from_request(_request({"X-Real-IP": "10.0.0.2"})) == "10.0.0.2"
    assert client_key_from_request(_request()) == "10.0.0.9"
    assert client_key_from_request(_request(client=None)) == "unknown"


def test_concurrent_admits_never_exceed_limit() -> None:
    gate = RequestGate(window_seconds=30, max_requests=10, clock=FakeClock())
    start = threading.Barrier(50)
    decisions = []

    def worker() -> None:
        start.wait()
        decisions.append(gate.admit("k"))

    threads = [threading.Thread(target=worker) for _ in range(50)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(decisions) == 50
    assert sum(decision.allowed for decision in decisions) == 10
    assert sorted(d.remaining for d in decisions if d.allowed) == list(range(10))
