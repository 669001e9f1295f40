"""Persona greeting lookup for chat widgets."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from .. import schemas
from ..dependencies import GreetingServiceDep
from ..services import default_greeting

router = APIRouter(tags=["greeting"])


@router.get("/greeting", response_model=schemas.GreetingResponse)
def get_greeting(
    service: GreetingServiceDep,
    tenant_slug: Annotated[str, Query(alias="tenantSlug", min_length=1, max_length=100)],
    persona_key: Annotated[str | None, Query(alias="personaKey", max_length=50)] = None,
) -> schemas.GreetingResponse:
    persona = service.persona_for(tenant_slug, persona_key or None)
    return schemas.GreetingResponse(
        greeting=persona.greeting or default_greeting(persona.name),
        ai_name=persona.name,
    )
