"""Aggregate readiness report."""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from ..dependencies import HealthServiceDep

router = APIRouter(tags=["health"])


@router.get("/health")
def health(service: HealthServiceDep) -> JSONResponse:
    healthy, report = service.check()
    return JSONResponse(
        report,
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
