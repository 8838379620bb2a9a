"""Logging setup for ``cashflow``.

Entrypoints call :func:`configure_logging` once; library modules only ask for
``get_logger("cashflow.<module>")`` and never attach handlers themselves.
Messages use a compact ``event:key=value`` form, e.g.
``insights:cache_hit user_key=local``.
"""

from __future__ import annotations

import logging
import sys
from typing import IO

from .config import load_settings

ROOT_LOGGER = "cashflow"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s %(message)s"

# HTTP client chatter from the OpenAI SDK drowns out our own events at INFO.
_NOISY_LOGGERS = ("httpx", "openai")

_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Map ``level`` (or ``CASHFLOW_LOG_LEVEL`` when ``None``) to a numeric level.

    Unknown names fall back to ``INFO``.
    """

    if level is None:
        level = load_settings().log_level
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Attach one ``StreamHandler`` to the ``cashflow`` logger.

    Repeated calls return the existing handler unchanged. ``stream`` defaults
    to ``sys.stderr`` so command output on stdout stays machine-readable.
    """

    global _handler
    if _handler is not None:
        return _handler

    pkg = logging.getLogger(ROOT_LOGGER)
    for h in [h for h in pkg.handlers if isinstance(h, logging.NullHandler)]:
        pkg.removeHandler(h)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    pkg.addHandler(handler)
    pkg.setLevel(resolved)
    pkg.propagate = False

    for name in _NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        if noisy.level == logging.NOTSET:
            noisy.setLevel(max(resolved, logging.WARNING))

    _handler = handler
    return handler


def reset_logging() -> None:
    """Detach the handler installed by :func:`configure_logging`."""

    global _handler
    pkg = logging.getLogger(ROOT_LOGGER)
    if _handler is not None:
        pkg.removeHandler(_handler)
        _handler = None
    pkg.setLevel(logging.NOTSET)
    pkg.propagate = True


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``; silent until logging is configured."""

    pkg = logging.getLogger(ROOT_LOGGER)
    if _handler is None and not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "reset_logging", "resolve_level"]
