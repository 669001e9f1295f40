"""Request/response models for the public chat API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chatgate.core.domain import (
    ChatTurn,
    HistoryTurn,
    MessageRecord,
    Role,
    SenderType,
    TurnResult,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HistoryItem(CamelModel):
    role: Role
    content: str
    sender_type: SenderType | None = None

    def to_domain(self) -> HistoryTurn:
        return HistoryTurn(role=self.role, content=self.content, sender_type=self.sender_type)


class ChatRequest(CamelModel):
    tenant_slug: str = Field(min_length=1, max_length=100)
    prompt: str = Field(min_length=1)
    session_id: str | None = Field(default=None, max_length=64)
    persona_key: str | None = Field(default=None, max_length=50)
    history: list[HistoryItem] | None = None

    @field_validator("tenant_slug")
    @classmethod
    def _strip_slug(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        """Reject whitespace-only prompts; the text itself is stored as sent."""

        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("session_id", "persona_key")
    @classmethod
    def _blank_as_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    def to_turn(self) -> ChatTurn:
        return ChatTurn(
            tenant_slug=self.tenant_slug,
            prompt=self.prompt,
            session_id=self.session_id,
            persona_key=self.persona_key,
            history=[item.to_domain() for item in self.history] if self.history else None,
        )


class StepMetric(CamelModel):
    step: str
    latency_ms: int


class ChatMetrics(CamelModel):
    total_time_ms: int
    db_time_ms: int
    generation_time_ms: int
    time_to_first_token_ms: int
    classification_time_ms: int
    steps: list[StepMetric] = Field(default_factory=list)


class ChatResponse(CamelModel):
    response: str
    session_id: str
    blocked: bool = False
    risk_level: int | None = None
    metrics: ChatMetrics

    @classmethod
    def from_result(cls, result: TurnResult) -> ChatResponse:
        metrics = result.metrics
        return cls(
            response=result.response,
            session_id=result.session_id,
            blocked=result.blocked,
            risk_level=result.risk_level if result.blocked else None,
            metrics=ChatMetrics(
                total_time_ms=metrics.total_ms,
                db_time_ms=metrics.db_ms,
                generation_time_ms=metrics.generation_ms,
                time_to_first_token_ms=metrics.ttft_ms,
                classification_time_ms=metrics.classification_ms,
                steps=[
                    StepMetric(step=step.step, latency_ms=step.latency_ms)
                    for step in metrics.steps
                ],
            ),
        )


class GreetingResponse(CamelModel):
    greeting: str
    ai_name: str


class MessageItem(CamelModel):
    id: UUID
    role: Role
    content: str
    sender_type: SenderType
    created_at: datetime

    @classmethod
    def from_record(cls, record: MessageRecord) -> MessageItem:
        return cls(
            id=record.id,
            role=record.role,
            content=record.content,
            sender_type=record.sender_type,
            created_at=record.created_at,
        )


class MessagesResponse(CamelModel):
    messages: list[MessageItem]
