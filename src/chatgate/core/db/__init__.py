"""Database models and helpers for the chat gateway."""

from . import models, session
from .models import (
    AssistantConfig,
    ChatMessage,
    ChatSession,
    Companion,
    Tenant,
    metadata,
)
from .session import create_engine_for_url, create_engine_from_settings, init_db, session_scope

__all__ = [
    "models",
    "session",
    "Tenant",
    "AssistantConfig",
    "Companion",
    "ChatSession",
    "ChatMessage",
    "metadata",
    "create_engine_for_url",
    "create_engine_from_settings",
    "init_db",
    "session_scope",
]
