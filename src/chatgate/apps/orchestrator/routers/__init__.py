"""HTTP routers for the chat API."""

from . import chat, greeting, health, messages

__all__ = ["chat", "greeting", "health", "messages"]
