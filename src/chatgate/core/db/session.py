"""Database engine and session helpers built on SQLModel."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from chatgate.core.config import AppSettings

EngineCacheKey = tuple[str, bool]
_ENGINE_CACHE: dict[EngineCacheKey, Engine] = {}


def create_engine_from_settings(settings: AppSettings, *, echo: bool = False) -> Engine:
    """Create (or reuse) a SQLModel engine based on ``AppSettings``.

    Postgres connections carry explicit connect and statement timeouts so a
    stalled datastore surfaces as an error instead of a hung turn.
    """

    dsn = settings.database_dsn
    cache_key: EngineCacheKey = (dsn, echo)
    if cache_key not in _ENGINE_CACHE:
        _ENGINE_CACHE[cache_key] = create_engine_for_url(dsn, settings=settings, echo=echo)
    return _ENGINE_CACHE[cache_key]


def create_engine_for_url(
    url: str,
    *,
    settings: AppSettings | None = None,
    echo: bool = False,
) -> Engine:
    """Build an engine for ``url``; in-memory SQLite shares one connection across threads."""

    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    pg = (settings or AppSettings.load()).postgres
    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=pg.pool_size,
        pool_timeout=pg.pool_timeout_seconds,
        connect_args={
            "connect_timeout": pg.connect_timeout_seconds,
            "options": f"-c statement_timeout={pg.statement_timeout_ms}",
        },
    )


def init_db(engine: Engine) -> None:
    """Create all tables for the metadata on the provided engine."""

    from . import models  # noqa: F401  Ensures models are imported before metadata usage.

    SQLModel.metadata.create_all(engine)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    with Session(engine) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
