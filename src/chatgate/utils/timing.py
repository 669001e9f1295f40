"""Millisecond timers for per-step pipeline instrumentation."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from chatgate.core.domain import StepTiming


def elapsed_ms(started: float) -> int:
    """Whole milliseconds since ``started`` (a ``time.perf_counter`` reading)."""

    return int(round((time.perf_counter() - started) * 1000))


class StepTimer:
    """Records the latency of each named step of a turn.

    Steps flagged as datastore work also accumulate into ``db_ms`` so the
    headline database time can be reported next to the per-step list.
    """

    def __init__(self) -> None:
        self._started = time.perf_counter()
        self._steps: list[StepTiming] = []
        self.db_ms = 0

    @contextmanager
    def step(self, name: str, *, db: bool = False) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, elapsed_ms(started), db=db)

    def record(self, name: str, latency_ms: int, *, db: bool = False) -> None:
        self._steps.append(StepTiming(step=name, latency_ms=latency_ms))
        if db:
            self.db_ms += latency_ms

    @property
    def steps(self) -> list[StepTiming]:
        return list(self._steps)

    @property
    def last_step(self) -> str | None:
        return self._steps[-1].step if self._steps else None

    def total_ms(self) -> int:
        return elapsed_ms(self._started)
