from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID

import pytest
from sqlmodel import Session

from chatgate.core.db.models import ChatMessage
from chatgate.core.domain import FlagUpdate, Role, SenderType, TenantType
from chatgate.core.errors import NotFoundError, ValidationError
from chatgate.store.sessions import SessionStore
from chatgate.store.tenants import PersonaSelector, TenantResolver
from chatgate.store.transcript import TranscriptStore

pytestmark = pytest.mark.unit


def test_resolve_returns_default_persona(engine, seed_tenant) -> None:
    tenant_id = seed_tenant(language="en", temperature=0.3)

    first = TenantResolver(engine).resolve("acme-support")
    second = TenantResolver(engine).resolve("acme-support")

    assert first == second
    assert first.id == tenant_id
    assert first.tenant_type is TenantType.GENERAL
    assert first.persona.name == "Ava"
    assert first.persona.greeting == "Hi, I'm Ava!"
    assert first.persona.language == "en"
    assert first.persona.params.temperature == 0.3
    assert first.persona.persona_key is None


def test_resolve_unknown_slug_raises_not_found(engine) -> None:
    with pytest.raises(NotFoundError) as excinfo:
        TenantResolver(engine).resolve("nobody")

    assert excinfo.value.message == "Customer not found"
    assert excinfo.value.details == {"tenantSlug": "nobody"}


def test_resolve_without_config_uses_generic_persona(engine, seed_tenant) -> None:
    seed_tenant("bella-italia", with_config=False)

    tenant = TenantResolver(engine).resolve("bella-italia")

    assert tenant.persona.name == "AI Assistant"
    assert tenant.persona.system_prompt is None
    assert tenant.tenant_type is TenantType.RESTAURANT


def test_stored_tenant_type_wins_over_slug(engine, seed_tenant) -> None:
    seed_tenant("bella-italia", tenant_type="eldercare")

    assert TenantResolver(engine).resolve("bella-italia").tenant_type is TenantType.ELDERCARE


def test_companion_overlays_tenant_persona(engine, seed_tenant) -> None:
    seed_tenant(
        companions=[
            {
                "companion_key": "rose",
                "name": "Rose",
                "greeting": "Hello dear",
                "personality": "Gentle.",
                "max_tokens": 120,
            }
        ],
    )
    tenant = TenantResolver(engine).resolve("acme-support")

    persona = PersonaSelector(engine).select(tenant, "rose")

    assert persona.name == "Rose"
    assert persona.greeting == "Hello dear"
    assert persona.personality == "Gentle."
    assert persona.system_prompt == "You are Ava, the Acme support assistant."
    assert persona.knowledge_base == "Support hours: 9-17 on weekdays."
    assert persona.params.max_tokens == 120
    assert persona.persona_key == "rose"


def test_unknown_persona_key_falls_back_to_default(engine, seed_tenant) -> None:
    seed_tenant()
    tenant = TenantResolver(engine).resolve("acme-support")

    assert PersonaSelector(engine).select(tenant, "ghost") == tenant.persona
    assert PersonaSelector(engine).select(tenant, None) == tenant.persona


def test_get_or_create_honours_client_session_id(engine, seed_tenant) -> None:
    tenant_id = seed_tenant()
    store = SessionStore(engine)

    created = store.get_or_create("client-session-1", tenant_id, {"ai_name": "Ava"})
    again = store.get_or_create("client-session-1", tenant_id)

    assert created.is_new
    assert created.session.id == "client-session-1"
    assert created.session.metadata == {"ai_name": "Ava"}
    assert not again.is_new
    assert again.session.id == "client-session-1"


def test_get_or_create_generates_id_when_missing(engine, seed_tenant) -> None:
    lookup = SessionStore(engine).get_or_create(None, seed_tenant())

    assert lookup.is_new
    assert len(lookup.session.id) == 32
    assert lookup.session.risk_level == 0
    assert not lookup.session.suspicious


def test_session_cannot_cross_tenants(engine, seed_tenant) -> None:
    first = seed_tenant("acme-support")
    second = seed_tenant("other-support")
    store = SessionStore(engine)
    store.get_or_create("shared", first)

    with pytest.raises(ValidationError):
        store.get_or_create("shared", second)


def test_over_long_session_id_is_rejected(engine, seed_tenant) -> None:
    with pytest.raises(ValidationError):
        SessionStore(engine).get_or_create("x" * 65, seed_tenant())


def test_update_flags_coalesces_and_merges_metadata(engine, seed_tenant) -> None:
    tenant_id = seed_tenant()
    store = SessionStore(engine)
    store.get_or_create("s-1", tenant_id, {"ai_name": "Ava"})

    assert store.update_flags("s-1", FlagUpdate(suspicious=True, risk_level=14)).ok
    assert store.update_flags("s-1", FlagUpdate(metadata_patch={"companion": "rose"})).ok

    record = store.get("s-1")
    assert record is not None
    assert record.suspicious
    assert record.risk_level == 10
    assert not record.needs_human
    assert record.metadata == {"ai_name": "Ava", "companion": "rose"}


def test_update_flags_on_missing_session_is_soft_failure(engine) -> None:
    result = SessionStore(engine).update_flags("missing", FlagUpdate(risk_level=5))

    assert not result.ok
    assert result.error == "session not found"


def test_empty_flag_update_is_a_no_op(engine) -> None:
    assert SessionStore(engine).update_flags("missing", FlagUpdate()).ok


def test_transcript_keeps_insertion_order(engine, seed_tenant) -> None:
    SessionStore(engine).get_or_create("s-1", seed_tenant())
    transcript = TranscriptStore(engine)

    transcript.append("s-1", Role.USER, "one", SenderType.USER)
    transcript.append("s-1", Role.ASSISTANT, "two", SenderType.ASSISTANT)
    transcript.append("s-1", Role.ASSISTANT, "three", SenderType.HUMAN_OPERATOR)
    transcript.append("s-1", Role.USER, "four", SenderType.USER)

    everything = transcript.list_messages("s-1")
    recent = transcript.list_messages("s-1", limit=2)

    assert [message.content for message in everything] == ["one", "two", "three", "four"]
    assert [message.content for message in recent] == ["three", "four"]
    assert everything[2].sender_type is SenderType.HUMAN_OPERATOR
    assert everything[2].as_history().role is Role.ASSISTANT


def test_transcript_of_unknown_session_is_empty(engine) -> None:
    assert TranscriptStore(engine).list_messages("nope") == []


def test_transcript_orders_equal_timestamps_by_id(engine, seed_tenant) -> None:
    SessionStore(engine).get_or_create("s-tie", seed_tenant())
    stamp = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    with Session(engine) as db:
        for number, content in ((3, "c"), (1, "a"), (2, "b")):
            db.add(
                ChatMessage(
                    id=UUID(int=number),
                    session_id="s-tie",
                    role=Role.USER.value,
                    content=content,
                    sender_type=SenderType.USER.value,
                    created_at=stamp,
                )
            )
        db.commit()
    transcript = TranscriptStore(engine)

    assert [m.content for m in transcript.list_messages("s-tie")] == ["a", "b", "c"]
    assert [m.content for m in transcript.list_messages("s-tie", limit=2)] == ["b", "c"]
