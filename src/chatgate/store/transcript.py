"""Append-only conversation transcript."""

from __future__ import annotations

from sqlalchemy import desc
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from chatgate.core.db.models import ChatMessage
from chatgate.core.domain import AppendedMessage, MessageRecord, Role, SenderType
from chatgate.core.errors import PersistenceError


class TranscriptStore:
    """Writes and reads the messages of a session, ordered by creation time."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def append(
        self,
        session_id: str,
        role: Role,
        content: str,
        sender_type: SenderType,
    ) -> AppendedMessage:
        """Persist one message immediately and return its identity."""

        message = ChatMessage(
            session_id=session_id,
            role=Role(role).value,
            content=content,
            sender_type=SenderType(sender_type).value,
        )
        try:
            with Session(self._engine) as db:
                db.add(message)
                db.commit()
                db.refresh(message)
                return AppendedMessage(id=message.id, created_at=message.created_at)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                "Failed to save message", operation="transcript.append"
            ) from exc

    def list_messages(self, session_id: str, *, limit: int | None = None) -> list[MessageRecord]:
        """Messages of ``session_id`` oldest first; ``limit`` keeps the most recent.

        Rows sharing a timestamp are ordered by id so listings are stable.
        """

        statement = select(ChatMessage).where(ChatMessage.session_id == session_id)
        if limit:
            statement = statement.order_by(
                desc(col(ChatMessage.created_at)), desc(col(ChatMessage.id))
            ).limit(limit)
        else:
            statement = statement.order_by(col(ChatMessage.created_at), col(ChatMessage.id))

        try:
            with Session(self._engine) as db:
                rows = list(db.exec(statement).all())
        except SQLAlchemyError as exc:
            raise PersistenceError(
                "Failed to load messages", operation="transcript.list"
            ) from exc

        if limit:
            rows.reverse()
        return [_to_record(row) for row in rows]


def _to_record(row: ChatMessage) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        session_id=row.session_id,
        role=Role(row.role),
        content=row.content,
        sender_type=SenderType(row.sender_type),
        created_at=row.created_at,
    )
