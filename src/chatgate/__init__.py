"""Multi-tenant chat gateway routing turns to tenant personas behind a risk gate."""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
