"""Interpretation of text-generation replies into complete insights.

The service is asked for a single JSON object but does not always comply:
replies arrive wrapped in Markdown fences, prefixed with prose, truncated, or
missing fields. :func:`interpret` turns any string into a complete
:class:`~cashflow.models.StructuredInsight` and never raises.

Field handling is table-driven: :data:`FIELD_SPECS` maps each wire field to a
default and a coercer. A coercer either returns the normalized value or
raises ``ValueError``/``TypeError``; in that case, or when the field is
absent, the default is used and the field is reported in
``InsightResult.missing_fields``.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .logging_setup import get_logger
from .models import FinancialSummary, InsightResult, StructuredInsight

_logger = get_logger("cashflow.interpret")

ANALYSIS_PENDING = "Analysis in progress"
DEFAULT_HEALTH_SCORE = 75
DEFAULT_SMART_TIPS: tuple[str, ...] = (
    "Review your spending patterns",
    "Set up a budget",
    "Track your expenses regularly",
)
DEFAULT_PRIORITY_ACTIONS: tuple[str, ...] = (
    "Review recent transactions",
    "Set financial goals",
)

SMART_TIPS_RANGE = (3, 5)
PRIORITY_ACTIONS_RANGE = (2, 3)


# ---------------------------------------------------------------------------
# Coercers
# ---------------------------------------------------------------------------


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if not isinstance(value, int | float | str):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    raw = value.replace(",", "").replace("₹", "").strip() if isinstance(value, str) else value
    try:
        num = float(raw)
    except OverflowError as e:
        # JSON integers are unbounded; float() cannot hold the huge ones.
        raise ValueError("number is out of range") from e
    if not math.isfinite(num):
        raise ValueError("number must be finite")
    return num


def _as_score(value: Any) -> int:
    return max(0, min(100, round(_as_number(value))))


def _as_text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("expected a non-empty string")
    return value.strip()


def _string_list(minimum: int, maximum: int, filler: tuple[str, ...]) -> Callable[[Any], list[str]]:
    def _coerce(value: Any) -> list[str]:
        if not isinstance(value, list):
            raise TypeError("expected a list of strings")
        items = [s.strip() for s in value if isinstance(s, str) and s.strip()]
        if not items:
            raise ValueError("list has no usable strings")
        # Short lists are topped up from the generic defaults rather than discarded.
        for extra in filler:
            if len(items) >= minimum:
                break
            if extra not in items:
                items.append(extra)
        return items[:maximum]

    return _coerce


def _as_spending_categories(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        raise TypeError("expected a list of category objects")
    out: list[dict[str, Any]] = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        name = item.get("category")
        if not isinstance(name, str) or not name.strip():
            continue
        try:
            amount = _as_number(item.get("amount", 0))
            percentage = _as_number(item.get("percentage", 0))
        except (TypeError, ValueError):
            continue
        out.append({"category": name.strip(), "amount": amount, "percentage": percentage})
    return out


def _as_method_totals(value: Any) -> dict[str, float]:
    if not isinstance(value, Mapping):
        raise TypeError("expected an object with upi/cash totals")
    return {
        "upi": _as_number(value.get("upi", 0)),
        "cash": _as_number(value.get("cash", 0)),
    }


# ---------------------------------------------------------------------------
# Field-spec table
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    default: Callable[[], Any]
    coerce: Callable[[Any], Any]


def _const(value: Any) -> Callable[[], Any]:
    return lambda: value


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("healthScore", _const(DEFAULT_HEALTH_SCORE), _as_score),
    FieldSpec("totalIncome", _const(0.0), _as_number),
    FieldSpec("totalExpense", _const(0.0), _as_number),
    FieldSpec("netBalance", _const(0.0), _as_number),
    FieldSpec("savingsRate", _const(0.0), _as_number),
    FieldSpec("spendingAnalysis", _const(ANALYSIS_PENDING), _as_text),
    FieldSpec("savingsInsights", _const(ANALYSIS_PENDING), _as_text),
    FieldSpec("budgetRecommendations", _const(ANALYSIS_PENDING), _as_text),
    FieldSpec(
        "smartTips",
        lambda: list(DEFAULT_SMART_TIPS),
        _string_list(*SMART_TIPS_RANGE, DEFAULT_SMART_TIPS),
    ),
    FieldSpec("trendAnalysis", _const(ANALYSIS_PENDING), _as_text),
    FieldSpec("riskAssessment", _const(ANALYSIS_PENDING), _as_text),
    FieldSpec(
        "priorityActions",
        lambda: list(DEFAULT_PRIORITY_ACTIONS),
        _string_list(*PRIORITY_ACTIONS_RANGE, DEFAULT_PRIORITY_ACTIONS),
    ),
    FieldSpec("topSpendingCategories", list, _as_spending_categories),
    FieldSpec("paymentMethodBreakdown", lambda: {"upi": 0.0, "cash": 0.0}, _as_method_totals),
)


def apply_field_specs(raw: Mapping[str, Any]) -> tuple[dict[str, Any], tuple[str, ...]]:
    """Return ``(values, missing)`` with every field coerced or defaulted."""

    values: dict[str, Any] = {}
    missing: list[str] = []
    for spec in FIELD_SPECS:
        if spec.name in raw and raw[spec.name] is not None:
            try:
                values[spec.name] = spec.coerce(raw[spec.name])
                continue
            except (TypeError, ValueError):
                pass
        values[spec.name] = spec.default()
        missing.append(spec.name)
    return values, tuple(missing)


def default_insight() -> StructuredInsight:
    """Return an insight built entirely from the field-spec defaults."""

    values, _ = apply_field_specs({})
    return StructuredInsight.model_validate(values)


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*")
_DECODER = json.JSONDecoder()


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers (```` ```json ````, ```` ``` ````)."""

    return _FENCE_RE.sub("", text).strip()


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first top-level JSON object embedded in ``text``.

    Each ``{`` is tried in turn with ``raw_decode`` so braces inside string
    literals and leading prose do not confuse the match.
    """

    pos = text.find("{")
    while pos != -1:
        try:
            obj, _end = _DECODER.raw_decode(text, pos)
        except json.JSONDecodeError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(obj, dict):
            return obj
        pos = text.find("{", pos + 1)
    return None


def _check_echoed_totals(insight: StructuredInsight, summary: FinancialSummary | None) -> None:
    if summary is None:
        return
    expected = {
        "totalIncome": float(summary.total_income),
        "totalExpense": float(summary.total_expense),
        "netBalance": float(summary.net_balance),
    }
    actual = {
        "totalIncome": insight.total_income,
        "totalExpense": insight.total_expense,
        "netBalance": insight.net_balance,
    }
    drift = [k for k in expected if not math.isclose(expected[k], actual[k], abs_tol=0.5)]
    if drift:
        _logger.warning("interpret:totals_mismatch fields=%s", ",".join(drift))


def interpret(raw_text: str | None, summary: FinancialSummary | None = None) -> InsightResult:
    """Turn a raw service reply into a complete :class:`InsightResult`.

    - Strips code fences, finds the first JSON object and coerces each field
      through :data:`FIELD_SPECS`.
    - Fields absent or of the wrong shape get their documented defaults and
      are listed in ``missing_fields``; the result is not degraded.
    - An empty, non-JSON or otherwise unusable reply yields
      :func:`parse_failure_insight` with ``degraded=True`` and the reply kept in
      ``raw_text``.
    - When ``summary`` is given, echoed totals that disagree with it are
      logged.

    Never raises.
    """

    text = raw_text if isinstance(raw_text, str) else ""
    try:
        obj = extract_json_object(strip_code_fences(text))
        if obj is None:
            _logger.warning("interpret:unparsable_reply chars=%d", len(text))
            return _fallback(text, "reply did not contain a JSON object")
        values, missing = apply_field_specs(obj)
        insight = StructuredInsight.model_validate(values)
    except Exception as e:  # noqa: BLE001 - the contract is to never raise
        _logger.warning("interpret:parse_failed error=%s", e.__class__.__name__, exc_info=True)
        return _fallback(text, f"failed to interpret reply: {e}")

    if missing:
        _logger.info("interpret:defaults_applied fields=%s", ",".join(missing))
    _check_echoed_totals(insight, summary)
    return InsightResult(insight=insight, missing_fields=missing)


def _fallback(text: str, reason: str) -> InsightResult:
    return InsightResult(
        insight=parse_failure_insight(),
        degraded=True,
        raw_text=text,
        missing_fields=tuple(spec.name for spec in FIELD_SPECS),
        error=reason,
    )


# ---------------------------------------------------------------------------
# Canned insights
# ---------------------------------------------------------------------------


def no_data_insight() -> StructuredInsight:
    """Onboarding insight shown before the user has any transactions."""

    values, _ = apply_field_specs({})
    values.update(
        {
            "healthScore": 50,
            "spendingAnalysis": (
                "No financial data available yet. Start tracking your income and expenses "
                "to get personalized insights."
            ),
            "savingsInsights": (
                "Begin by adding your first transaction to understand your financial patterns."
            ),
            "budgetRecommendations": (
                "Create your first budget by adding income and expense entries."
            ),
            "smartTips": [
                "Add your first income entry to start tracking",
                "Record your daily expenses to understand spending patterns",
                "Set up categories for better organization",
                "Review your finances regularly",
            ],
            "trendAnalysis": "No trends available yet. Add more data to see patterns.",
            "riskAssessment": "Continue building your financial data for better analysis.",
            "priorityActions": [
                "Add your first transaction",
                "Set up expense categories",
                "Track your income sources",
            ],
        }
    )
    return StructuredInsight.model_validate(values)


def parse_failure_insight() -> StructuredInsight:
    """Fallback shown when a reply arrived but held no usable JSON object."""

    values, _ = apply_field_specs({})
    values.update(
        {
            "spendingAnalysis": (
                "Unable to parse detailed analysis for your Indian Rupee transactions"
            ),
            "savingsInsights": "Analysis available in raw format for your ₹ transactions",
            "budgetRecommendations": "Please review your financial data in Indian Rupees",
            "smartTips": [
                "Review your spending patterns in ₹",
                "Set up a budget in Indian Rupees",
                "Track your expenses regularly",
            ],
            "trendAnalysis": "Analysis in progress for your INR transactions",
            "riskAssessment": "Continue monitoring your finances in Indian Rupees",
            "priorityActions": ["Review recent ₹ transactions", "Set financial goals in INR"],
        }
    )
    return StructuredInsight.model_validate(values)


def unavailable_insight() -> StructuredInsight:
    """Fallback shown when the text-generation service could not be reached."""

    values, _ = apply_field_specs({})
    values.update(
        {
            "healthScore": 70,
            "spendingAnalysis": "Unable to analyze your Indian Rupee transactions at this time",
            "savingsInsights": "Please try again later for your ₹ savings analysis",
            "budgetRecommendations": "Consider setting up a budget in Indian Rupees",
            "smartTips": [
                "Track your expenses in ₹",
                "Set financial goals in INR",
                "Review spending regularly",
            ],
            "trendAnalysis": "Analysis temporarily unavailable for your INR transactions",
            "riskAssessment": "Continue monitoring your finances in Indian Rupees",
            "priorityActions": ["Keep tracking expenses in ₹", "Set up emergency fund in INR"],
        }
    )
    return StructuredInsight.model_validate(values)


# ---------------------------------------------------------------------------
# Chat replies
# ---------------------------------------------------------------------------

_MARKDOWN_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"`(.*?)`"), r"\1"),
    (re.compile(r"~~(.*?)~~"), r"\1"),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"^[-*+]\s+", re.MULTILINE), "• "),
    (re.compile(r"^\d+\.\s+", re.MULTILINE), "• "),
    (re.compile(r"^>\s+", re.MULTILINE), ""),
    (re.compile(r"^[-*_]{3,}$", re.MULTILINE), ""),
    (re.compile(r"\n\s*\n\s*\n"), "\n\n"),
)


def clean_markdown(text: str | None) -> str:
    """Strip Markdown decoration from a chat reply, keeping bullets as ``•``."""

    if not text:
        return ""
    out = text
    for pattern, repl in _MARKDOWN_RULES:
        out = pattern.sub(repl, out)
    return out.strip()


__all__ = [
    "ANALYSIS_PENDING",
    "DEFAULT_HEALTH_SCORE",
    "DEFAULT_PRIORITY_ACTIONS",
    "DEFAULT_SMART_TIPS",
    "FIELD_SPECS",
    "FieldSpec",
    "apply_field_specs",
    "clean_markdown",
    "default_insight",
    "extract_json_object",
    "interpret",
    "no_data_insight",
    "parse_failure_insight",
    "strip_code_fences",
    "unavailable_insight",
]
