"""SQLModel declarative models for tenants, personas, sessions and transcripts."""

from datetime import UTC, datetime
from typing import Any, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlmodel import Field, Relationship, SQLModel

from chatgate.core.domain import SenderType


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def created_at_field() -> Any:
    return Field(
        default_factory=_utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        ),
    )


def updated_at_field() -> Any:
    return Field(
        default_factory=_utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        ),
    )


def deleted_at_field() -> Any:
    return Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class UUIDPrimaryKey(SQLModel, table=False):
    """Mixin providing a UUID primary key."""

    id: UUID = Field(default_factory=uuid4, primary_key=True, nullable=False)


class Tenant(UUIDPrimaryKey, table=True):
    """Customer organisation owning one conversational configuration."""

    __tablename__ = "tenants"

    created_at: datetime = created_at_field()
    updated_at: datetime = updated_at_field()

    slug: str = Field(sa_column=Column(String(length=100), nullable=False, unique=True))
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    tenant_type: str | None = Field(
        default=None,
        sa_column=Column(String(length=32), nullable=True),
    )

    assistant_config: Optional["AssistantConfig"] = Relationship(
        back_populates="tenant",
        sa_relationship_kwargs={"uselist": False, "cascade": "all,delete-orphan"},
    )
    companions: List["Companion"] = Relationship(
        back_populates="tenant",
        sa_relationship_kwargs={"cascade": "all,delete"},
    )
    sessions: List["ChatSession"] = Relationship(
        back_populates="tenant",
        sa_relationship_kwargs={"cascade": "all,delete"},
    )


class AssistantConfig(UUIDPrimaryKey, table=True):
    """Default persona of a tenant."""

    __tablename__ = "assistant_configs"

    created_at: datetime = created_at_field()
    updated_at: datetime = updated_at_field()

    tenant_id: UUID = Field(foreign_key="tenants.id", nullable=False, unique=True)
    ai_name: str = Field(
        sa_column=Column(String(length=100), nullable=False, default="AI Assistant")
    )
    greeting: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    system_prompt: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    knowledge_base: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    language: str | None = Field(default=None, sa_column=Column(String(length=16), nullable=True))
    model: str | None = Field(default=None, sa_column=Column(String(length=120), nullable=True))
    temperature: float | None = Field(default=None, nullable=True)
    max_tokens: int | None = Field(default=None, nullable=True)

    tenant: Tenant | None = Relationship(back_populates="assistant_config")


class Companion(UUIDPrimaryKey, table=True):
    """Named assistant variant overlaying the tenant default."""

    __tablename__ = "companions"

    created_at: datetime = created_at_field()
    updated_at: datetime = updated_at_field()

    tenant_id: UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    companion_key: str = Field(sa_column=Column(String(length=50), nullable=False))
    name: str = Field(sa_column=Column(String(length=100), nullable=False))
    emoji: str | None = Field(default=None, sa_column=Column(String(length=10), nullable=True))
    greeting: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    system_prompt: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    personality: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    language: str | None = Field(default=None, sa_column=Column(String(length=16), nullable=True))
    model: str | None = Field(default=None, sa_column=Column(String(length=120), nullable=True))
    temperature: float | None = Field(default=None, nullable=True)
    max_tokens: int | None = Field(default=None, nullable=True)
    is_default: bool = Field(default=False, nullable=False)

    tenant: Tenant | None = Relationship(back_populates="companions")

    __table_args__ = (
        UniqueConstraint("tenant_id", "companion_key", name="uq_companion_tenant_key"),
    )


class ChatSession(SQLModel, table=True):
    """One ongoing conversation tied to a tenant."""

    __tablename__ = "chat_sessions"

    id: str = Field(sa_column=Column(String(length=64), primary_key=True, nullable=False))
    created_at: datetime = created_at_field()
    updated_at: datetime = updated_at_field()
    deleted_at: datetime | None = deleted_at_field()

    tenant_id: UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    metadata_json: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column("metadata", JSON, nullable=True),
    )
    suspicious: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    risk_level: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, default=0),
    )
    needs_human: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )

    tenant: Tenant | None = Relationship(back_populates="sessions")
    messages: List["ChatMessage"] = Relationship(
        back_populates="session",
        sa_relationship_kwargs={"cascade": "all,delete"},
    )


class ChatMessage(UUIDPrimaryKey, table=True):
    """Immutable transcript entry."""

    __tablename__ = "chat_messages"

    created_at: datetime = created_at_field()

    session_id: str = Field(foreign_key="chat_sessions.id", nullable=False, index=True)
    role: str = Field(sa_column=Column(String(length=16), nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    sender_type: str = Field(
        sa_column=Column(
            String(length=32), nullable=False, default=SenderType.USER.value
        )
    )

    session: ChatSession | None = Relationship(back_populates="messages")


metadata = SQLModel.metadata
