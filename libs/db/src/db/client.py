"""SQLAlchemy engine/session helpers for the workspace.

Usage
-----
from db.client import session_scope

with session_scope(database_url=url) as s:
    s.execute(...)

One engine is kept per database URL for the life of the process. When no URL
is passed, ``DATABASE_URL`` from the environment is used.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models.ledger import Base

_LOCK = threading.Lock()
_ENGINES: dict[str, tuple[Engine, sessionmaker[Session]]] = {}


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def _bind(url: str) -> tuple[Engine, sessionmaker[Session]]:
    with _LOCK:
        bound = _ENGINES.get(url)
        if bound is None:
            engine = create_engine(url, pool_pre_ping=True)
            bound = (engine, sessionmaker(bind=engine, expire_on_commit=False, class_=Session))
            _ENGINES[url] = bound
        return bound


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the shared engine for ``database_url``, creating it on first use."""
    return _bind(_database_url(database_url))[0]


def get_session(*, database_url: str | None = None) -> Session:
    return _bind(_database_url(database_url))[1]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_schema(*, database_url: str | None = None) -> None:
    """Create any missing tables for the registered models."""
    Base.metadata.create_all(bind=get_engine(database_url=database_url))


def dispose_engines() -> None:
    """Dispose and forget every cached engine."""

    with _LOCK:
        bound = list(_ENGINES.values())
        _ENGINES.clear()
    for engine, _ in bound:
        engine.dispose()


__all__ = [
    "create_schema",
    "dispose_engines",
    "get_engine",
    "get_session",
    "session_scope",
]
