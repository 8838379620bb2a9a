"""Engine and session helpers for the ledger database.

Usage
-----
from db.client import session_scope

with session_scope(database_url="sqlite:///cashflow.db") as s:
    s.add(...)

One engine is shared per process and bound to the first URL it sees
(``database_url`` argument, else ``DATABASE_URL``). Asking for a different URL
afterwards is an error until :func:`dispose_engine` runs. SQLite connections
enforce foreign keys so ``ON DELETE CASCADE`` matches Postgres.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


@dataclass(frozen=True, slots=True)
class _Bound:
    url: str
    engine: Engine
    sessions: sessionmaker[Session]


_bound: _Bound | None = None


def _sqlite_foreign_keys(dbapi_conn, _record) -> None:  # pragma: no cover - driver hook
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def _bind(url: str) -> _Bound:
    engine = create_engine(url, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _sqlite_foreign_keys)
    return _Bound(
        url=url,
        engine=engine,
        sessions=sessionmaker(bind=engine, expire_on_commit=False, class_=Session),
    )


def _current(database_url: str | None) -> _Bound:
    global _bound
    requested = database_url or os.getenv("DATABASE_URL")
    if _bound is None:
        if not requested:
            raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
        _bound = _bind(requested)
    elif requested and requested != _bound.url:
        raise RuntimeError(
            "database engine already bound to a different URL; "
            "call dispose_engine() before switching databases"
        )
    return _bound


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the shared engine, creating it on first use."""

    return _current(database_url).engine


def dispose_engine() -> None:
    """Close pooled connections and unbind the shared engine."""

    global _bound
    if _bound is not None:
        _bound.engine.dispose()
    _bound = None


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new session on the shared engine; the caller closes it."""

    return _current(database_url).sessions()


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
