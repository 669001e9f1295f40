"""Dependency wiring for the chat API."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy.engine import Engine

from chatgate.core.config import AppSettings
from chatgate.core.db.session import create_engine_from_settings, init_db
from chatgate.core.errors import ConfigurationError
from chatgate.llm.client import build_llm_client
from chatgate.llm.generation import GenerationClient, GenerationStats
from chatgate.security.ratelimit import RequestGate
from chatgate.security.risk import RiskClassifier
from chatgate.store.sessions import SessionStore
from chatgate.store.tenants import PersonaSelector, TenantResolver
from chatgate.store.transcript import TranscriptStore

from .services import GreetingService, HealthService, PipelineOrchestrator

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> AppSettings:
    """Return cached ``AppSettings`` instance."""

    return AppSettings.load()


@lru_cache
def get_engine() -> Engine:
    """Create (or reuse) the SQLModel engine."""

    engine = create_engine_from_settings(get_settings())
    init_db(engine)
    return engine


@lru_cache
def get_llm_client() -> Any | None:
    """Return the completion SDK client, or ``None`` when no credential is set."""

    try:
        return build_llm_client(get_settings())
    except ConfigurationError as exc:
        logger.warning("completion backend unavailable: %s", exc.message)
        return None


@lru_cache
def get_request_gate() -> RequestGate:
    return RequestGate.from_settings(get_settings().rate_limit)


@lru_cache
def get_generation_stats() -> GenerationStats:
    return GenerationStats()


SettingsDep = Annotated[AppSettings, Depends(get_settings)]
EngineDep = Annotated[Engine, Depends(get_engine)]
LLMClientDep = Annotated[Any, Depends(get_llm_client)]
RequestGateDep = Annotated[RequestGate, Depends(get_request_gate)]
GenerationStatsDep = Annotated[GenerationStats, Depends(get_generation_stats)]


def get_optional_generation_client(
    client: LLMClientDep,
    settings: SettingsDep,
    stats: GenerationStatsDep,
) -> GenerationClient | None:
    if client is None:
        return None
    return GenerationClient(
        client,
        settings.llm,
        model=settings.llm_credentials()["model"],
        stats=stats,
    )


OptionalGenerationClientDep = Annotated[
    GenerationClient | None, Depends(get_optional_generation_client)
]


def get_generation_client(generator: OptionalGenerationClientDep) -> GenerationClient:
    if generator is None:
        raise ConfigurationError("Completion backend is not configured")
    return generator


def get_risk_classifier(client: LLMClientDep, settings: SettingsDep) -> RiskClassifier:
    if client is None:
        raise ConfigurationError("Completion backend is not configured")
    return RiskClassifier(client, settings.risk, model=settings.llm_credentials()["model"])


def get_tenant_resolver(engine: EngineDep) -> TenantResolver:
    return TenantResolver(engine)


def get_persona_selector(engine: EngineDep) -> PersonaSelector:
    return PersonaSelector(engine)


def get_session_store(engine: EngineDep) -> SessionStore:
    return SessionStore(engine)


def get_transcript_store(engine: EngineDep) -> TranscriptStore:
    return TranscriptStore(engine)


TenantResolverDep = Annotated[TenantResolver, Depends(get_tenant_resolver)]
PersonaSelectorDep = Annotated[PersonaSelector, Depends(get_persona_selector)]
SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
TranscriptStoreDep = Annotated[TranscriptStore, Depends(get_transcript_store)]


def get_orchestrator(
    gate: RequestGateDep,
    resolver: TenantResolverDep,
    selector: PersonaSelectorDep,
    sessions: SessionStoreDep,
    transcript: TranscriptStoreDep,
    classifier: Annotated[RiskClassifier, Depends(get_risk_classifier)],
    generator: Annotated[GenerationClient, Depends(get_generation_client)],
    settings: SettingsDep,
) -> PipelineOrchestrator:
    """Assemble the turn pipeline for one request."""

    return PipelineOrchestrator(
        gate=gate,
        resolver=resolver,
        selector=selector,
        sessions=sessions,
        classifier=classifier,
        generator=generator,
        transcript=transcript,
        settings=settings.chat,
    )


def get_greeting_service(
    resolver: TenantResolverDep,
    selector: PersonaSelectorDep,
) -> GreetingService:
    return GreetingService(resolver, selector)


def get_health_service(
    engine: EngineDep,
    generator: OptionalGenerationClientDep,
    gate: RequestGateDep,
    settings: SettingsDep,
) -> HealthService:
    return HealthService(engine, generator, gate, version=settings.app_version)


OrchestratorDep = Annotated[PipelineOrchestrator, Depends(get_orchestrator)]
GreetingServiceDep = Annotated[GreetingService, Depends(get_greeting_service)]
HealthServiceDep = Annotated[HealthService, Depends(get_health_service)]
