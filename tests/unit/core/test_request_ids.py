from __future__ import annotations

import pytest

from chatgate.utils.tracing import MAX_REQUEST_ID_LENGTH, accept_request_id, generate_trace_id

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "value",
    ["req-123", "widget:4f2a.9", " padded-id ", "a" * MAX_REQUEST_ID_LENGTH],
)
def test_well_formed_request_ids_are_kept(value):
    assert accept_request_id(value) == value.strip()


@pytest.mark.parametrize(
    "value",
    [None, "", "   ", "has space", "semi;colon", "a" * (MAX_REQUEST_ID_LENGTH + 1), "line\nbreak"],
)
def test_unsafe_request_ids_are_rejected(value):
    assert accept_request_id(value) is None


def test_generated_ids_outside_a_span_are_random_hex():
    first, second = generate_trace_id(), generate_trace_id()

    assert first != second
    assert len(first) == 32
    int(first, 16)
