"""Transcript listing."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from .. import schemas
from ..dependencies import TranscriptStoreDep

router = APIRouter(tags=["messages"])


@router.get("/messages", response_model=schemas.MessagesResponse)
def list_messages(
    transcript: TranscriptStoreDep,
    session_id: Annotated[str, Query(alias="sessionId", min_length=1, max_length=64)],
) -> schemas.MessagesResponse:
    """Messages of a session oldest first; unknown sessions yield an empty list."""

    records = transcript.list_messages(session_id)
    return schemas.MessagesResponse(
        messages=[schemas.MessageItem.from_record(record) for record in records]
    )
