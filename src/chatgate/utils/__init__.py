"""Utility helpers shared across the gateway."""

from .timing import StepTimer, elapsed_ms
from .tracing import accept_request_id, generate_trace_id, get_current_trace_ids

__all__ = [
    "accept_request_id",
    "generate_trace_id",
    "get_current_trace_ids",
    "StepTimer",
    "elapsed_ms",
]
