"""Chat turn endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from chatgate.core.domain import Admission, TurnMetrics
from chatgate.security.ratelimit import client_key_from_request

from .. import schemas
from ..dependencies import OrchestratorDep

router = APIRouter(tags=["chat"])


def rate_limit_headers(admission: Admission) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(admission.limit),
        "X-RateLimit-Remaining": str(admission.remaining),
        "X-RateLimit-Window": f"{admission.window_seconds:g}",
    }
    if not admission.allowed and admission.retry_after_seconds is not None:
        headers["Retry-After"] = str(admission.retry_after_seconds)
    return headers


def timing_headers(metrics: TurnMetrics) -> dict[str, str]:
    return {
        "X-Total-Time-Ms": str(metrics.total_ms),
        "X-DB-Time-Ms": str(metrics.db_ms),
        "X-Generation-Time-Ms": str(metrics.generation_ms),
        "X-TTFT-Ms": str(metrics.ttft_ms),
    }


@router.post(
    "/chat",
    response_model=schemas.ChatResponse,
    response_model_exclude_none=True,
)
def chat(
    payload: schemas.ChatRequest,
    request: Request,
    response: Response,
    orchestrator: OrchestratorDep,
) -> schemas.ChatResponse:
    """Run one chat turn; risk-blocked turns still answer 200 with ``blocked``."""

    result = orchestrator.handle_turn(payload.to_turn(), client_key_from_request(request))
    response.headers.update(rate_limit_headers(result.admission))
    response.headers.update(timing_headers(result.metrics))
    return schemas.ChatResponse.from_result(result)
