"""DB helpers for tests: bootstrap a temporary SQLite DB and seed transactions."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from db import Base
from db.client import get_engine, session_scope

from cashflow.store import add_transaction, ensure_user_record


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)
    Base.metadata.create_all(bind=engine)

    # Make it the default for any code paths that read from the environment
    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def seed_transactions(
    *, database_url: str, external_id: str, transactions: Iterable[Mapping[str, Any]]
) -> list[int]:
    """Create the user if needed and insert ``transactions``; return their ids."""

    with session_scope(database_url=database_url) as session:
        ensure_user_record(session, external_id)
        return [add_transaction(session, external_id, tx).id for tx in transactions]
