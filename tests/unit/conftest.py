from __future__ import annotations

import json
from collections.abc import Callable, Generator, Iterable, Iterator
from types import SimpleNamespace
from typing import Any
from uuid import UUID

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from chatgate.core.db.models import AssistantConfig, Companion, Tenant
from chatgate.core.db.session import init_db

JudgeReply = str | Callable[[list[dict[str, str]]], str]


def judge_json(level: int, reason: str = "stub verdict") -> str:
    return json.dumps({"riskLevel": level, "isSuspicious": level >= 7, "reason": reason})


class StubCompletions:
    """Mimics ``client.chat.completions`` of the OpenAI SDK."""

    def __init__(
        self,
        *,
        stream_parts: Iterable[str | None] = ("Hello", " there", "!"),
        judge_reply: JudgeReply = judge_json(1),
        stream_error: Exception | None = None,
        judge_error: Exception | None = None,
    ) -> None:
        self.stream_parts = list(stream_parts)
        self.judge_reply = judge_reply
        self.stream_error = stream_error
        self.judge_error = judge_error
        self.calls: list[dict[str, Any]] = []

    @property
    def stream_calls(self) -> list[dict[str, Any]]:
        return [call for call in self.calls if call.get("stream")]

    @property
    def judge_calls(self) -> list[dict[str, Any]]:
        return [call for call in self.calls if not call.get("stream")]

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if kwargs.get("stream"):
            if self.stream_error is not None:
                raise self.stream_error
            return self._chunks()

        if self.judge_error is not None:
            raise self.judge_error
        reply = self.judge_reply
        content = reply(kwargs["messages"]) if callable(reply) else reply
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
        )

    def _chunks(self) -> Iterator[Any]:
        yield SimpleNamespace(choices=[])
        for part in self.stream_parts:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=part))])


class StubLLMClient:
    def __init__(self, completions: StubCompletions | None = None) -> None:
        self.completions = completions or StubCompletions()
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture()
def llm_client() -> Callable[..., StubLLMClient]:
    """Factory building stub SDK clients: ``llm_client(judge_reply=..., stream_parts=...)``."""

    def _build(**kwargs: Any) -> StubLLMClient:
        return StubLLMClient(StubCompletions(**kwargs))

    return _build


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def seed_tenant(engine: Engine) -> Callable[..., UUID]:
    """Insert a tenant with its assistant config and optional companions."""

    def _seed(
        slug: str = "acme-support",
        *,
        name: str = "Acme Support",
        tenant_type: str | None = None,
        companions: Iterable[dict[str, Any]] = (),
        with_config: bool = True,
        **config: Any,
    ) -> UUID:
        with Session(engine) as session:
            tenant = Tenant(slug=slug, name=name, tenant_type=tenant_type)
            session.add(tenant)
            session.flush()
            if with_config:
                values = {
                    "ai_name": "Ava",
                    "greeting": "Hi, I'm Ava!",
                    "system_prompt": "You are Ava, the Acme support assistant.",
                    "knowledge_base": "Support hours: 9-17 on weekdays.",
                }
                values.update(config)
                session.add(AssistantConfig(tenant_id=tenant.id, **values))
            for companion in companions:
                session.add(Companion(tenant_id=tenant.id, **companion))
            session.commit()
            return tenant.id

    return _seed
