"""Conversation sessions and their advisory risk flags."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from prometheus_client import Counter
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from chatgate.core.db.models import ChatSession
from chatgate.core.domain import FlagUpdate, FlagUpdateResult, SessionLookup, SessionRecord
from chatgate.core.errors import PersistenceError, ValidationError
from chatgate.core.logging import get_logger

MAX_SESSION_ID_LENGTH = 64

FLAG_UPDATE_FAILURES = Counter(
    "chatgate_session_flag_update_failures_total",
    "Best-effort session flag updates that could not be persisted.",
)

logger = get_logger(__name__, component="sessions")


def generate_session_id() -> str:
    return uuid4().hex


class SessionStore:
    """Creates, retrieves and flags conversation sessions.

    Every call opens its own database session and commits before returning,
    so concurrent turns never share ORM state.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, session_id: str) -> SessionRecord | None:
        try:
            with Session(self._engine) as db:
                row = db.get(ChatSession, session_id)
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load session", operation="session.get") from exc

    def get_or_create(
        self,
        session_id: str | None,
        tenant_id: UUID,
        initial_metadata: Mapping[str, Any] | None = None,
    ) -> SessionLookup:
        """Return the session for ``session_id``, creating it when absent.

        A caller-supplied id that does not exist yet becomes the id of the new
        session, so client-generated ids survive retries and reconnects.
        """

        if session_id is not None and len(session_id) > MAX_SESSION_ID_LENGTH:
            raise ValidationError(
                f"sessionId must be at most {MAX_SESSION_ID_LENGTH} characters"
            )

        try:
            with Session(self._engine) as db:
                if session_id:
                    existing = db.get(ChatSession, session_id)
                    if existing is not None:
                        return SessionLookup(_owned_by(existing, tenant_id), is_new=False)

                row = ChatSession(
                    id=session_id or generate_session_id(),
                    tenant_id=tenant_id,
                    metadata_json=dict(initial_metadata or {}),
                )
                db.add(row)
                try:
                    db.commit()
                except IntegrityError:
                    # Another turn created the same id first; use its row.
                    db.rollback()
                    winner = db.get(ChatSession, row.id)
                    if winner is None:
                        raise
                    return SessionLookup(_owned_by(winner, tenant_id), is_new=False)

                db.refresh(row)
                logger.info("session.created", session_id=row.id[:8])
                return SessionLookup(_to_record(row), is_new=True)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                "Failed to get or create session", operation="session.get_or_create"
            ) from exc

    def update_flags(self, session_id: str, update: FlagUpdate) -> FlagUpdateResult:
        """Apply a partial flag update; failures are reported, never raised."""

        if update.is_empty:
            return FlagUpdateResult(ok=True)

        try:
            with Session(self._engine) as db:
                row = db.get(ChatSession, session_id)
                if row is None:
                    return self._soft_failure(session_id, "session not found")

                if update.suspicious is not None:
                    row.suspicious = update.suspicious
                if update.risk_level is not None:
                    row.risk_level = max(0, min(10, update.risk_level))
                if update.needs_human is not None:
                    row.needs_human = update.needs_human
                if update.metadata_patch:
                    row.metadata_json = {**(row.metadata_json or {}), **update.metadata_patch}
                row.updated_at = datetime.now(tz=UTC)

                db.add(row)
                db.commit()
        except SQLAlchemyError as exc:
            return self._soft_failure(session_id, str(exc))

        return FlagUpdateResult(ok=True)

    @staticmethod
    def _soft_failure(session_id: str, error: str) -> FlagUpdateResult:
        FLAG_UPDATE_FAILURES.inc()
        logger.warning("session.flag_update_failed", session_id=session_id[:8], error=error)
        return FlagUpdateResult(ok=False, error=error)


def _owned_by(row: ChatSession, tenant_id: UUID) -> SessionRecord:
    if row.tenant_id != tenant_id:
        raise ValidationError("sessionId belongs to a different tenant")
    return _to_record(row)


def _to_record(row: ChatSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        metadata=dict(row.metadata_json or {}),
        suspicious=bool(row.suspicious),
        risk_level=int(row.risk_level or 0),
        needs_human=bool(row.needs_human),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
