"""Pytest configuration for test isolation.

Puts the workspace ``packages/`` and ``libs/db/src`` directories on
``sys.path`` so ``cashflow`` and ``db`` import without installation, and keeps
every test hermetic:

- the shared SQLAlchemy engine is disposed after each test, so a test's
  SQLite file never leaks into the next one;
- the process-wide insight cache is reset;
- ``CASHFLOW_*``/``DATABASE_URL``/``OPENAI_API_KEY`` from the developer's
  shell cannot change results.
"""

from __future__ import annotations

import datetime as dt
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
# Ensure local sources precede any installed copies on sys.path.
_PATHS = (_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT)
sys.path[:0] = [str(p) for p in _PATHS if str(p) not in sys.path]

from cashflow import cache as cache_mod  # noqa: E402
from db.client import dispose_engine  # noqa: E402
from tests.helpers.db import bootstrap_sqlite_db  # noqa: E402

_ENV_VARS = (
    "CASHFLOW_MODEL",
    "CASHFLOW_INSIGHT_TTL_HOURS",
    "CASHFLOW_LOG_LEVEL",
    "DATABASE_URL",
    "OPENAI_API_KEY",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cache_mod, "_default_cache", None)
    yield
    dispose_engine()


@pytest.fixture
def today() -> dt.date:
    return dt.date(2024, 6, 30)


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "cashflow.sqlite3")


class FakeClock:
    """Settable clock for cache expiry tests."""

    def __init__(self, start: dt.datetime) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + dt.timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2024, 6, 30, 12, 0, tzinfo=dt.UTC))
