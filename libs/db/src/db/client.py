"""SQLAlchemy engine/session helpers for the banking store.

Usage
-----
from db.client import session_scope

with session_scope() as s:
    s.execute(...)

The engine is created lazily from ``DATABASE_URL`` (or an explicit override)
and shared for the lifetime of the process. Tests that bootstrap a fresh
database per case call :func:`dispose_engine` between runs.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_SESSION_MAKER: sessionmaker[Session] | None = None
_DB_URL: str | None = None


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot open the banking store")
    return url


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the shared engine, creating it on first use."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    url = _database_url(database_url)
    if _ENGINE is None:
        engine = create_engine(url, pool_pre_ping=True)
        _SESSION_MAKER = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
        _ENGINE = engine
        _DB_URL = url
        return engine
    # One engine per process; a second URL means two stores are being mixed.
    if _DB_URL is not None and url != _DB_URL:
        raise RuntimeError(
            "get_engine() already bound to a different DATABASE_URL; "
            "call dispose_engine() before switching stores"
        )
    return _ENGINE


def dispose_engine() -> None:
    """Drop the shared engine so the next call can bind a different URL."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _SESSION_MAKER = None
    _DB_URL = None


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new session bound to the shared engine."""

    get_engine(database_url=database_url)
    assert _SESSION_MAKER is not None  # bound by get_engine
    return _SESSION_MAKER()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Commit on success, roll back on any exception, always close."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session",
    "session_scope",
]
