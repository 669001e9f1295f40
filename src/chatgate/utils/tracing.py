"""Correlation and trace identifiers shared by logging and the HTTP layer."""

from __future__ import annotations

import re
from typing import TypedDict
from uuid import uuid4

from opentelemetry.trace import format_span_id, format_trace_id, get_current_span

MAX_REQUEST_ID_LENGTH = 64

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]+$")


class TraceContext(TypedDict, total=False):
    trace_id: str
    span_id: str


def get_current_trace_ids() -> TraceContext:
    """Ids of the active span, or an empty mapping outside any recorded span."""

    span_context = get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {
        "trace_id": format_trace_id(span_context.trace_id),
        "span_id": format_span_id(span_context.span_id),
    }


def generate_trace_id() -> str:
    """Correlation id for a request: the active trace id, else a random hex id."""

    return get_current_trace_ids().get("trace_id") or uuid4().hex


def accept_request_id(value: str | None) -> str | None:
    """Return a caller-supplied request id when it is safe to echo and log."""

    if not value:
        return None
    value = value.strip()
    if len(value) > MAX_REQUEST_ID_LENGTH or not _REQUEST_ID_PATTERN.match(value):
        return None
    return value
