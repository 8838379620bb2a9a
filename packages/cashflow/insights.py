"""Insight and chat flows backed by the OpenAI Responses API.

Public API:
    - :func:`generate_insights`
    - :func:`refresh_insights`
    - :func:`ask_advisor`

The aggregation, prompt and interpretation steps are pure and live in their
own modules; this one owns the cache lookup, the upstream call and its retry
policy. No side effects occur at import time (no client creation, no
environment reads).
"""

from __future__ import annotations

import datetime as dt
import random
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from openai import OpenAI
from openai.types.responses import ResponseTextConfigParam

from . import prompting
from .aggregate import aggregate, build_chat_context
from .cache import InsightCache, get_insight_cache
from .config import load_settings
from .interpret import clean_markdown, interpret, no_data_insight, unavailable_insight
from .logging_setup import get_logger
from .models import InsightResult, TransactionLike, coerce_transactions

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_logger = get_logger("cashflow.insights")


class NoFinancialDataError(ValueError):
    """Raised when a forced refresh is requested for a user with no transactions."""


# ---- Internal helpers --------------------------------------------------------


def _create_client() -> OpenAI:
    settings = load_settings()
    if not settings.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY is not set; cannot reach the insight service")
    return OpenAI(api_key=settings.openai_api_key)


def _resolve_model(model: str | None) -> str:
    return model or load_settings().model


def _extract_response_text(resp: Any) -> str:
    """Return the reply text from a Responses SDK result, or ``""``.

    Prefers ``resp.output_text`` and falls back to
    ``resp.output[0].content[0].text``.
    """

    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text:
        return text
    try:
        first = resp.output[0] if getattr(resp, "output", None) else None
        content = getattr(first, "content", None)
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                return txt_obj
            maybe_val = getattr(txt_obj, "value", None)
            if isinstance(maybe_val, str):
                return maybe_val
    except (AttributeError, IndexError, TypeError):
        pass
    return ""


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    delay = base + random.uniform(-jitter, jitter)
    time.sleep(max(0.0, delay))


def _request_text(
    client: Any,
    *,
    op: str,
    model: str,
    instructions: str,
    input_text: str,
    text_config: ResponseTextConfigParam | None = None,
) -> str:
    """Call ``client.responses.create`` with retries; return the reply text.

    Terminal failures are raised as ``RuntimeError`` chained to the cause.
    """

    kwargs: dict[str, Any] = {"model": model, "instructions": instructions, "input": input_text}
    if text_config is not None:
        kwargs["text"] = text_config

    attempt = 1
    while True:
        t0 = time.perf_counter()
        try:
            resp = client.responses.create(**kwargs)
            reply = _extract_response_text(resp)
            _logger.info(
                "%s:call_done model=%s chars=%d latency_ms=%.2f",
                op,
                model,
                len(reply),
                (time.perf_counter() - t0) * 1000.0,
            )
            return reply
        except Exception as e:  # noqa: BLE001
            dt_ms = (time.perf_counter() - t0) * 1000.0
            if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                _logger.error(
                    "%s:call_failed_terminal attempts=%d latency_ms=%.2f error=%s",
                    op,
                    attempt,
                    dt_ms,
                    e.__class__.__name__,
                )
                raise RuntimeError(f"{op} failed after {attempt} attempt(s): {e}") from e
            _logger.warning(
                "%s:call_retry attempt=%d latency_ms=%.2f error=%s",
                op,
                attempt,
                dt_ms,
                e.__class__.__name__,
            )
            _sleep_backoff(attempt)
            attempt += 1


# ---- Public API --------------------------------------------------------------


def generate_insights(
    transactions: Iterable[TransactionLike],
    *,
    user_key: str,
    cache: InsightCache | None = None,
    client: Any | None = None,
    now: dt.date | dt.datetime | None = None,
    rules: prompting.FormattingRules = prompting.DEFAULT_FORMATTING_RULES,
    model: str | None = None,
) -> InsightResult:
    """Return the insight for ``user_key``, from cache or freshly generated.

    - A fresh cache entry is returned with ``cached=True``.
    - No transactions yields :func:`no_data_insight`; nothing is sent
      upstream and nothing is cached.
    - Otherwise the summary is sent to the service and the interpreted reply
      (including a parse-degraded one) is cached.
    - When the call fails terminally the result is :func:`unavailable_insight`
      with ``degraded=True`` and ``error`` set; it is not cached.

    Invalid transaction records raise ``pydantic.ValidationError``.
    """

    store = cache if cache is not None else get_insight_cache()
    hit = store.get(user_key)
    if hit is not None:
        _logger.info("insights:cache_hit user_key=%s", user_key)
        return hit

    items = coerce_transactions(transactions)
    summary = aggregate(items, now=now if now is not None else dt.datetime.now(dt.UTC))
    if summary is None:
        _logger.info("insights:no_data user_key=%s", user_key)
        return InsightResult(insight=no_data_insight())

    _logger.info(
        "insights:generate user_key=%s entries=%d", user_key, summary.total_entries
    )
    llm = client if client is not None else _create_client()
    try:
        reply = _request_text(
            llm,
            op="insights",
            model=_resolve_model(model),
            instructions=prompting.build_system_instructions(rules),
            input_text=prompting.build_insight_prompt(summary, rules),
            text_config=prompting.build_text_config(),
        )
    except RuntimeError as e:
        return InsightResult(insight=unavailable_insight(), degraded=True, error=str(e))

    result = interpret(reply, summary)
    store.put(user_key, result)
    if result.degraded:
        _logger.warning("insights:degraded_cached user_key=%s", user_key)
    return result


def refresh_insights(
    transactions: Iterable[TransactionLike],
    *,
    user_key: str,
    cache: InsightCache | None = None,
    client: Any | None = None,
    now: dt.date | dt.datetime | None = None,
    rules: prompting.FormattingRules = prompting.DEFAULT_FORMATTING_RULES,
    model: str | None = None,
) -> InsightResult:
    """Drop the cached insight for ``user_key`` and generate a new one.

    Raises :class:`NoFinancialDataError` when there are no transactions.
    """

    store = cache if cache is not None else get_insight_cache()
    store.clear(user_key)
    items = coerce_transactions(transactions)
    if not items:
        raise NoFinancialDataError(
            "No financial data found. Add some transactions to get insights."
        )
    return generate_insights(
        items, user_key=user_key, cache=store, client=client, now=now, rules=rules, model=model
    )


def ask_advisor(
    message: str,
    transactions: Iterable[TransactionLike],
    *,
    history: Sequence[Mapping[str, Any]] = (),
    client: Any | None = None,
    rules: prompting.FormattingRules = prompting.DEFAULT_FORMATTING_RULES,
    model: str | None = None,
) -> str:
    """Answer one chat message in the context of the user's transactions.

    ``transactions`` should be newest first; the ten most recent are quoted.
    Raises ``ValueError`` for a blank message and ``RuntimeError`` when the
    service fails or returns nothing.
    """

    if not isinstance(message, str) or not message.strip():
        raise ValueError("message must be a non-empty string")

    context = build_chat_context(transactions)
    prompt = prompting.build_chat_prompt(message, context, history, rules)
    llm = client if client is not None else _create_client()
    reply = _request_text(
        llm,
        op="chat",
        model=_resolve_model(model),
        instructions=prompting.build_system_instructions(rules),
        input_text=prompt,
    )
    cleaned = clean_markdown(reply)
    if not cleaned:
        raise RuntimeError("chat returned an empty reply")
    return cleaned


__all__ = ["NoFinancialDataError", "ask_advisor", "generate_insights", "refresh_insights"]
