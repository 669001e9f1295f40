"""Domain data structures shared across the turn pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class Role(str, Enum):
    """Conversation role of a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"


class SenderType(str, Enum):
    """Who actually produced a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"
    HUMAN_OPERATOR = "human-operator"


class TenantType(str, Enum):
    """Coarse tenant category used to tune risk judgement and deflections."""

    ELDERCARE = "eldercare"
    RESTAURANT = "restaurant"
    AUTO_SHOP = "auto-shop"
    GENERAL = "general"


class TurnState(str, Enum):
    """States a single chat turn moves through."""

    GATED = "gated"
    RESOLVED = "resolved"
    SESSIONED = "sessioned"
    CLASSIFIED = "classified"
    GENERATED = "generated"
    PERSISTED = "persisted"
    DONE = "done"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class GenerationParams:
    """Sampling parameters; ``None`` means "use the backend default"."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None

    def overlay(self, other: GenerationParams) -> GenerationParams:
        """Return params where every non-null field of ``other`` wins."""

        return GenerationParams(
            model=other.model if other.model is not None else self.model,
            temperature=other.temperature if other.temperature is not None else self.temperature,
            max_tokens=other.max_tokens if other.max_tokens is not None else self.max_tokens,
        )


@dataclass(slots=True, frozen=True)
class PersonaConfig:
    """Effective assistant configuration for a turn."""

    name: str
    greeting: str | None = None
    system_prompt: str | None = None
    knowledge_base: str | None = None
    personality: str | None = None
    language: str | None = None
    params: GenerationParams = field(default_factory=GenerationParams)
    persona_key: str | None = None


@dataclass(slots=True, frozen=True)
class TenantConfig:
    """A tenant joined with its default persona."""

    id: UUID
    slug: str
    name: str
    tenant_type: TenantType
    persona: PersonaConfig


@dataclass(slots=True)
class SessionRecord:
    """Conversation session with its advisory risk flags."""

    id: str
    tenant_id: UUID
    metadata: Mapping[str, Any] = field(default_factory=dict)
    suspicious: bool = False
    risk_level: int = 0
    needs_human: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class SessionLookup:
    session: SessionRecord
    is_new: bool


@dataclass(slots=True, frozen=True)
class FlagUpdate:
    """Partial session update; ``None`` fields leave the stored value untouched."""

    suspicious: bool | None = None
    risk_level: int | None = None
    needs_human: bool | None = None
    metadata_patch: Mapping[str, Any] | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.suspicious is None
            and self.risk_level is None
            and self.needs_human is None
            and not self.metadata_patch
        )


@dataclass(slots=True, frozen=True)
class FlagUpdateResult:
    """Outcome of a best-effort flag update; never raised as an error."""

    ok: bool
    error: str | None = None


@dataclass(slots=True, frozen=True)
class HistoryTurn:
    """One prior exchange entry fed back to the model."""

    role: Role
    content: str
    sender_type: SenderType | None = None


@dataclass(slots=True, frozen=True)
class AppendedMessage:
    id: UUID
    created_at: datetime


@dataclass(slots=True, frozen=True)
class MessageRecord:
    """Persisted transcript entry."""

    id: UUID
    session_id: str
    role: Role
    content: str
    sender_type: SenderType
    created_at: datetime

    def as_history(self) -> HistoryTurn:
        return HistoryTurn(role=self.role, content=self.content, sender_type=self.sender_type)


class VerdictKind(str, Enum):
    SAFE = "safe"
    SUSPICIOUS = "suspicious"
    INCONCLUSIVE = "inconclusive"


@dataclass(slots=True, frozen=True)
class RiskAssessment:
    """Per-turn risk verdict. Only its effect on the session is persisted."""

    kind: VerdictKind
    risk_level: int
    reason: str
    analysis_ms: int = 0
    stage: str = "semantic"
    elevated: bool = False
    fail_open: bool = False

    @property
    def suspicious(self) -> bool:
        return self.kind is VerdictKind.SUSPICIOUS


@dataclass(slots=True, frozen=True)
class TokenEstimate:
    """Character-length based token estimate; not billing grade."""

    input: int
    output: int
    total: int
    estimated_cost: float


@dataclass(slots=True, frozen=True)
class GenerationResult:
    text: str
    ttft_ms: int
    total_ms: int
    tokens: TokenEstimate
    model: str


@dataclass(slots=True, frozen=True)
class Admission:
    """Decision of the request gate for one client key."""

    allowed: bool
    remaining: int
    limit: int
    window_seconds: float
    retry_after_seconds: int | None = None


@dataclass(slots=True, frozen=True)
class ChatTurn:
    """Validated inbound chat request."""

    tenant_slug: str
    prompt: str
    session_id: str | None = None
    persona_key: str | None = None
    history: Sequence[HistoryTurn] | None = None


@dataclass(slots=True, frozen=True)
class StepTiming:
    step: str
    latency_ms: int


@dataclass(slots=True, frozen=True)
class TurnMetrics:
    total_ms: int
    db_ms: int
    generation_ms: int
    ttft_ms: int
    classification_ms: int
    steps: Sequence[StepTiming] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class TurnResult:
    """Final outcome of a turn, generated or deflected."""

    response: str
    session_id: str
    admission: Admission
    metrics: TurnMetrics
    blocked: bool = False
    risk_level: int | None = None
    persona_name: str | None = None
