"""Use-case services behind the chat API."""

from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from chatgate.core.config import ChatSettings
from chatgate.core.domain import (
    ChatTurn,
    FlagUpdate,
    HistoryTurn,
    PersonaConfig,
    RiskAssessment,
    Role,
    SenderType,
    SessionLookup,
    TenantConfig,
    TurnMetrics,
    TurnResult,
    TurnState,
)
from chatgate.core.errors import CoreError, InternalError, RateLimitedError, ValidationError
from chatgate.core.logging import get_logger
from chatgate.llm.generation import GenerationClient
from chatgate.llm.prompts import build_system_prompt, deflection_for
from chatgate.security.ratelimit import RequestGate
from chatgate.security.risk import RiskClassifier
from chatgate.store.sessions import SessionStore
from chatgate.store.tenants import PersonaSelector, TenantResolver
from chatgate.store.transcript import TranscriptStore
from chatgate.utils.timing import StepTimer, elapsed_ms

PROCESS_STARTED_AT = time.monotonic()

DB_LATENCY_TARGET_MS = 50
AI_LATENCY_TARGET_MS = 1000
TTFT_TARGET_MS = 500

logger = get_logger(__name__, component="chat_engine")


class PipelineOrchestrator:
    """Runs one chat turn from admission to the persisted assistant reply.

    Steps, in order: gate, resolve tenant, select persona, get or create the
    session, classify risk, load history, save the user message, generate,
    save the assistant message. A suspicious verdict ends the turn with a
    deflection before anything is written to the transcript.
    """

    def __init__(
        self,
        *,
        gate: RequestGate,
        resolver: TenantResolver,
        selector: PersonaSelector,
        sessions: SessionStore,
        classifier: RiskClassifier,
        generator: GenerationClient,
        transcript: TranscriptStore,
        settings: ChatSettings,
    ) -> None:
        self._gate = gate
        self._resolver = resolver
        self._selector = selector
        self._sessions = sessions
        self._classifier = classifier
        self._generator = generator
        self._transcript = transcript
        self._settings = settings

    def handle_turn(self, turn: ChatTurn, client_key: str) -> TurnResult:
        timer = StepTimer()
        self._validate(turn)

        with timer.step("rateLimit"):
            admission = self._gate.admit(client_key)
        if not admission.allowed:
            logger.warning(
                "turn.rate_limited",
                state=TurnState.BLOCKED.value,
                retry_after_seconds=admission.retry_after_seconds,
            )
            raise RateLimitedError(admission)

        log = logger.bind(tenant_slug=turn.tenant_slug, persona_key=turn.persona_key)
        log.info(
            "turn.started",
            prompt_length=len(turn.prompt),
            has_history=bool(turn.history),
            has_session_id=bool(turn.session_id),
        )

        state = TurnState.GATED
        try:
            with timer.step("getTenant", db=True):
                tenant = self._resolver.resolve(turn.tenant_slug)
            state = TurnState.RESOLVED

            with timer.step("getConfig", db=True):
                persona = self._selector.select(tenant, turn.persona_key)

            with timer.step("getSession", db=True):
                lookup = self._sessions.get_or_create(
                    turn.session_id,
                    tenant.id,
                    {"companion": turn.persona_key, "ai_name": persona.name},
                )
            state = TurnState.SESSIONED
            session_id = lookup.session.id
            log = log.bind(session_id=session_id[:8])
            log.info("turn.session_ready", is_new=lookup.is_new)

            with timer.step("securityJudge"):
                verdict = self._classifier.classify(turn.prompt, tenant.tenant_type)
            classification_ms = timer.steps[-1].latency_ms
            state = TurnState.CLASSIFIED

            if verdict.suspicious:
                self._flag_suspicious(session_id, verdict, timer)
                log.warning(
                    "turn.blocked",
                    state=TurnState.BLOCKED.value,
                    risk_level=verdict.risk_level,
                    reason=verdict.reason,
                    stage=verdict.stage,
                )
                return TurnResult(
                    response=deflection_for(tenant.tenant_type),
                    session_id=session_id,
                    admission=admission,
                    metrics=self._metrics(timer, classification_ms=classification_ms),
                    blocked=True,
                    risk_level=verdict.risk_level,
                    persona_name=persona.name,
                )

            if verdict.elevated:
                log.info("turn.elevated_risk", risk_level=verdict.risk_level, reason=verdict.reason)
                with timer.step("updateSession", db=True):
                    result = self._sessions.update_flags(
                        session_id, FlagUpdate(risk_level=verdict.risk_level)
                    )
                if not result.ok:
                    log.warning("turn.flag_update_failed", error=result.error)

            history = self._history(turn, lookup, timer)

            with timer.step("saveUserMessage", db=True):
                self._transcript.append(session_id, Role.USER, turn.prompt, SenderType.USER)

            generation = self._generator.generate(
                build_system_prompt(persona), history, turn.prompt, persona.params
            )
            timer.record("generate", generation.total_ms)
            state = TurnState.GENERATED

            with timer.step("saveAssistantMessage", db=True):
                self._transcript.append(
                    session_id, Role.ASSISTANT, generation.text, SenderType.ASSISTANT
                )
            state = TurnState.PERSISTED

            metrics = self._metrics(
                timer,
                classification_ms=classification_ms,
                generation_ms=generation.total_ms,
                ttft_ms=generation.ttft_ms,
            )
            log.info(
                "turn.completed",
                state=TurnState.DONE.value,
                total_ms=metrics.total_ms,
                db_ms=metrics.db_ms,
                ttft_ms=metrics.ttft_ms,
                risk_level=verdict.risk_level,
                response_length=len(generation.text),
            )
            return TurnResult(
                response=generation.text,
                session_id=session_id,
                admission=admission,
                metrics=metrics,
                risk_level=verdict.risk_level,
                persona_name=persona.name,
            )
        except CoreError as exc:
            log.warning(
                "turn.failed",
                state=TurnState.FAILED.value,
                reached=state.value,
                last_step=timer.last_step,
                code=exc.code,
                total_ms=timer.total_ms(),
            )
            raise
        except Exception as exc:
            log.exception(
                "turn.failed",
                state=TurnState.FAILED.value,
                reached=state.value,
                last_step=timer.last_step,
                total_ms=timer.total_ms(),
            )
            raise InternalError() from exc

    def _validate(self, turn: ChatTurn) -> None:
        if not turn.tenant_slug or not turn.tenant_slug.strip():
            raise ValidationError("tenantSlug is required")
        if not turn.prompt or not turn.prompt.strip():
            raise ValidationError("prompt is required")
        if len(turn.prompt) > self._settings.max_prompt_chars:
            raise ValidationError(
                f"prompt must be at most {self._settings.max_prompt_chars} characters"
            )

    def _flag_suspicious(self, session_id: str, verdict: RiskAssessment, timer: StepTimer) -> None:
        update = FlagUpdate(
            suspicious=True,
            risk_level=verdict.risk_level,
            metadata_patch={
                "suspicious_reason": verdict.reason,
                "blocked_at": datetime.now(tz=UTC).isoformat(),
            },
        )
        with timer.step("updateSession", db=True):
            result = self._sessions.update_flags(session_id, update)
        if not result.ok:
            logger.warning("turn.flag_update_failed", session_id=session_id[:8], error=result.error)

    def _history(
        self, turn: ChatTurn, lookup: SessionLookup, timer: StepTimer
    ) -> Sequence[HistoryTurn]:
        """Client history, when sent, replaces stored history entirely."""

        if turn.history:
            logger.debug("turn.client_history", count=len(turn.history))
            return list(turn.history)
        if lookup.is_new:
            return []
        with timer.step("loadHistory", db=True):
            records = self._transcript.list_messages(
                lookup.session.id, limit=self._settings.history_limit or None
            )
        return [record.as_history() for record in records]

    @staticmethod
    def _metrics(
        timer: StepTimer,
        *,
        classification_ms: int,
        generation_ms: int = 0,
        ttft_ms: int = 0,
    ) -> TurnMetrics:
        return TurnMetrics(
            total_ms=timer.total_ms(),
            db_ms=timer.db_ms,
            generation_ms=generation_ms,
            ttft_ms=ttft_ms,
            classification_ms=classification_ms,
            steps=timer.steps,
        )


class GreetingService:
    """Opening line and display name for a tenant's (optionally named) persona."""

    def __init__(self, resolver: TenantResolver, selector: PersonaSelector) -> None:
        self._resolver = resolver
        self._selector = selector

    def persona_for(self, tenant_slug: str, persona_key: str | None = None) -> PersonaConfig:
        tenant: TenantConfig = self._resolver.resolve(tenant_slug)
        return self._selector.select(tenant, persona_key)


def default_greeting(ai_name: str) -> str:
    return f"Hello! I'm {ai_name}. How can I help you today?"


class HealthService:
    """Aggregates datastore and completion backend readiness."""

    def __init__(
        self,
        engine: Engine,
        generator: GenerationClient | None,
        gate: RequestGate,
        *,
        version: str,
    ) -> None:
        self._engine = engine
        self._generator = generator
        self._gate = gate
        self._version = version

    def check(self) -> tuple[bool, dict[str, Any]]:
        started = time.perf_counter()
        database = self._check_database()
        backend = self._check_backend()
        healthy = database["status"] == "healthy" and backend["status"] == "healthy"
        meets_targets = bool(database.get("meetsTarget")) and bool(backend.get("meetsTarget"))

        if not healthy:
            recommendation = "Fix critical issues before proceeding"
        elif not meets_targets:
            recommendation = "Some components are slow; monitor closely"
        else:
            recommendation = "All systems go"

        report: dict[str, Any] = {
            "ok": healthy,
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "version": self._version,
            "components": {"database": database, "generation": backend},
            "targets": {
                "dbLatency": f"< {DB_LATENCY_TARGET_MS}ms",
                "aiLatency": f"< {AI_LATENCY_TARGET_MS}ms",
                "ttft": f"< {TTFT_TARGET_MS}ms",
            },
            "runtime": {
                "generation": self._generator.runtime_stats() if self._generator else None,
                "rateLimit": self._gate.stats(),
                "uptimeSeconds": round(time.monotonic() - PROCESS_STARTED_AT, 1),
            },
            "summary": {
                "allHealthy": healthy,
                "allMeetTargets": meets_targets,
                "recommendation": recommendation,
            },
            "totalLatencyMs": elapsed_ms(started),
        }
        logger.info("health.checked", ok=healthy, meets_targets=meets_targets)
        return healthy, report

    def _check_database(self) -> dict[str, Any]:
        started = time.perf_counter()
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("health.database_unreachable", error=str(exc))
            return {"status": "unhealthy", "error": str(exc), "latencyMs": elapsed_ms(started)}

        latency = elapsed_ms(started)
        return {
            "status": "healthy",
            "latencyMs": latency,
            "database": self._engine.url.database,
            "meetsTarget": latency < DB_LATENCY_TARGET_MS,
        }

    def _check_backend(self) -> dict[str, Any]:
        if self._generator is None:
            return {"status": "unhealthy", "error": "completion backend not configured"}

        ping = self._generator.ping()
        component: dict[str, Any] = {
            "status": "healthy" if ping["ok"] else "unhealthy",
            "latencyMs": ping["latencyMs"],
            "model": ping.get("model"),
            "meetsTarget": ping["ok"] and ping["latencyMs"] < AI_LATENCY_TARGET_MS,
        }
        if not ping["ok"]:
            component["error"] = ping.get("error")
        return component
