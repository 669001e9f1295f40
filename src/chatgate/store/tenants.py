"""Tenant and persona resolution."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from chatgate.core.db.models import AssistantConfig, Companion, Tenant
from chatgate.core.domain import GenerationParams, PersonaConfig, TenantConfig, TenantType
from chatgate.core.errors import NotFoundError, PersistenceError
from chatgate.core.logging import get_logger
from chatgate.security.risk import tenant_type_for_slug

DEFAULT_AI_NAME = "AI Assistant"

logger = get_logger(__name__, component="tenants")


class TenantResolver:
    """Maps a tenant slug to its configuration and default persona."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def resolve(self, slug: str) -> TenantConfig:
        """Load the tenant and its assistant configuration in one round trip."""

        statement = (
            select(Tenant, AssistantConfig)
            .join(AssistantConfig, AssistantConfig.tenant_id == Tenant.id, isouter=True)
            .where(Tenant.slug == slug)
        )
        try:
            with Session(self._engine) as session:
                row = session.exec(statement).first()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load tenant", operation="tenant.resolve") from exc

        if row is None:
            logger.warning("tenant.not_found", slug=slug)
            raise NotFoundError("Customer not found", details={"tenantSlug": slug})

        tenant, config = row
        return TenantConfig(
            id=tenant.id,
            slug=tenant.slug,
            name=tenant.name,
            tenant_type=_tenant_type(tenant),
            persona=_default_persona(config),
        )


class PersonaSelector:
    """Overlays a named companion onto a tenant's default persona."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def select(self, tenant: TenantConfig, persona_key: str | None = None) -> PersonaConfig:
        """Return the effective persona for the turn.

        An unknown key is not an error: clients may hold stale references,
        so the tenant default is used and a warning is logged.
        """

        if not persona_key:
            return tenant.persona

        companion = self._load_companion(tenant.id, persona_key)
        if companion is None:
            logger.warning(
                "persona.fallback_default",
                tenant_slug=tenant.slug,
                persona_key=persona_key,
            )
            return tenant.persona

        return overlay_persona(tenant.persona, companion)

    def _load_companion(self, tenant_id: UUID, persona_key: str) -> Companion | None:
        statement = select(Companion).where(
            Companion.tenant_id == tenant_id,
            Companion.companion_key == persona_key,
        )
        try:
            with Session(self._engine) as session:
                return session.exec(statement).first()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                "Failed to load companion", operation="persona.select"
            ) from exc


def overlay_persona(base: PersonaConfig, companion: Companion) -> PersonaConfig:
    """Companion fields win where set; knowledge base stays tenant level."""

    return PersonaConfig(
        name=companion.name or base.name,
        greeting=companion.greeting or base.greeting,
        system_prompt=companion.system_prompt or base.system_prompt,
        knowledge_base=base.knowledge_base,
        personality=companion.personality or base.personality,
        language=companion.language or base.language,
        params=base.params.overlay(
            GenerationParams(
                model=companion.model,
                temperature=companion.temperature,
                max_tokens=companion.max_tokens,
            )
        ),
        persona_key=companion.companion_key,
    )


def _default_persona(config: AssistantConfig | None) -> PersonaConfig:
    if config is None:
        return PersonaConfig(name=DEFAULT_AI_NAME)
    return PersonaConfig(
        name=config.ai_name or DEFAULT_AI_NAME,
        greeting=config.greeting,
        system_prompt=config.system_prompt,
        knowledge_base=config.knowledge_base,
        language=config.language,
        params=GenerationParams(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        ),
    )


def _tenant_type(tenant: Tenant) -> TenantType:
    if tenant.tenant_type:
        try:
            return TenantType(tenant.tenant_type)
        except ValueError:
            logger.warning(
                "tenant.unknown_type", slug=tenant.slug, tenant_type=tenant.tenant_type
            )
    return tenant_type_for_slug(tenant.slug)
