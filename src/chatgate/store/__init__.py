"""Datastore-backed components of the turn pipeline."""

from .sessions import SessionStore
from .tenants import PersonaSelector, TenantResolver
from .transcript import TranscriptStore

__all__ = ["PersonaSelector", "SessionStore", "TenantResolver", "TranscriptStore"]
