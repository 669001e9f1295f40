"""In-process fixed-window admission control keyed by client address.

State lives in this process only: it resets on restart and is not shared
between replicas.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from prometheus_client import Counter, Gauge

from chatgate.core.config import RateLimitSettings
from chatgate.core.domain import Admission
from chatgate.core.logging import get_logger

RATE_LIMIT_DENIALS = Counter(
    "chatgate_rate_limit_denials_total",
    "Chat turns rejected by the request gate.",
)

RATE_LIMIT_ACTIVE_CLIENTS = Gauge(
    "chatgate_rate_limit_active_clients",
    "Client keys currently tracked by the request gate.",
)

logger = get_logger(__name__, component="rate_limiter")


@dataclass(slots=True)
class _Window:
    count: int
    started_at: float


class RequestGate:
    """Counts turns per client key inside a fixed window.

    ``admit`` is safe to call from concurrent worker threads: the read and
    the increment of a key's counter happen under one lock, as does the
    periodic sweep of idle keys.
    """

    def __init__(
        self,
        *,
        window_seconds: float = 30.0,
        max_requests: int = 10,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self._window = float(window_seconds)
        self._max_requests = max_requests
        self._sweep_interval = float(sweep_interval_seconds)
        self._clock = clock
        self._entries: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    @classmethod
    def from_settings(cls, settings: RateLimitSettings) -> RequestGate:
        return cls(
            window_seconds=settings.window_seconds,
            max_requests=settings.max_requests,
            sweep_interval_seconds=settings.sweep_interval_seconds,
        )

    @property
    def limit(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window

    def admit(self, client_key: str) -> Admission:
        """Count one turn for ``client_key`` and decide whether it may proceed."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(client_key)
            if entry is None or now - entry.started_at > self._window:
                self._entries[client_key] = _Window(count=1, started_at=now)
                return self._admission(True, self._max_requests - 1)

            if entry.count >= self._max_requests:
                elapsed = now - entry.started_at
                retry_after = max(1, math.ceil(self._window - elapsed))
                denied = self._admission(False, 0, retry_after)
                count = entry.count
            else:
                entry.count += 1
                return self._admission(True, self._max_requests - entry.count)

        RATE_LIMIT_DENIALS.inc()
        logger.warning(
            "rate_limit.exceeded",
            client=_mask(client_key),
            count=count,
            retry_after_seconds=denied.retry_after_seconds,
        )
        return denied

    def sweep(self) -> int:
        """Drop keys whose window started more than two windows ago."""

        now = self._clock()
        horizon = self._window * 2
        with self._lock:
            stale = [key for key, entry in self._entries.items() if now - entry.started_at > horizon]
            for key in stale:
                del self._entries[key]
            active = len(self._entries)
        RATE_LIMIT_ACTIVE_CLIENTS.set(active)
        if stale:
            logger.debug("rate_limit.sweep", removed=len(stale), active=active)
        return len(stale)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            active = len(self._entries)
        return {
            "activeClients": active,
            "config": {
                "windowSeconds": self._window,
                "maxRequests": self._max_requests,
            },
        }

    def start(self) -> None:
        """Run ``sweep`` on a daemon thread every sweep interval."""

        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._run_sweeper, name="request-gate-sweeper", daemon=True
        )
        self._sweeper.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=timeout)
            self._sweeper = None

    def _run_sweeper(self) -> None:
        while not self._stop.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - keep the sweeper alive
                logger.exception("rate_limit.sweep_failed")

    def _admission(
        self, allowed: bool, remaining: int, retry_after: int | None = None
    ) -> Admission:
        return Admission(
            allowed=allowed,
            remaining=remaining,
            limit=self._max_requests,
            window_seconds=self._window,
            retry_after_seconds=retry_after,
        )


def client_key_from_request(request: Request) -> str:
    """Best-effort client address, honouring common reverse-proxy headers."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _mask(client_key: str) -> str:
    return client_key[:10] + "..." if len(client_key) > 10 else client_key
