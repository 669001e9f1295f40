"""HTTP surface of the chat gateway."""

from .app import create_app

__all__ = ["create_app"]
