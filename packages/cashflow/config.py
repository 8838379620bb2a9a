"""Runtime settings read from the environment.

Entrypoints load a local ``.env`` with ``python-dotenv`` before calling
:func:`load_settings`; library code receives the resulting :class:`Settings`
(or explicit arguments) and never reads the environment on import.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_MODEL = "gpt-5-mini"
DEFAULT_INSIGHT_TTL_HOURS = 24.0


@dataclass(frozen=True, slots=True)
class Settings:
    model: str = DEFAULT_MODEL
    insight_ttl: timedelta = timedelta(hours=DEFAULT_INSIGHT_TTL_HOURS)
    database_url: str | None = None
    log_level: str | None = None
    openai_api_key: str | None = None


def _ttl_from_env(raw: str | None) -> timedelta:
    if raw is None or not raw.strip():
        return timedelta(hours=DEFAULT_INSIGHT_TTL_HOURS)
    try:
        hours = float(raw)
    except ValueError as e:
        raise ValueError(f"CASHFLOW_INSIGHT_TTL_HOURS must be a number, got {raw!r}") from e
    if hours <= 0:
        raise ValueError("CASHFLOW_INSIGHT_TTL_HOURS must be positive")
    return timedelta(hours=hours)


def load_settings() -> Settings:
    """Build :class:`Settings` from ``CASHFLOW_*``, ``DATABASE_URL`` and ``OPENAI_API_KEY``."""

    model = (os.getenv("CASHFLOW_MODEL") or "").strip() or DEFAULT_MODEL
    return Settings(
        model=model,
        insight_ttl=_ttl_from_env(os.getenv("CASHFLOW_INSIGHT_TTL_HOURS")),
        database_url=os.getenv("DATABASE_URL") or None,
        log_level=os.getenv("CASHFLOW_LOG_LEVEL") or None,
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
    )


__all__ = ["DEFAULT_MODEL", "Settings", "load_settings"]
