"""Prompt construction and summary serialization for insight generation.

This module builds:
- A deterministic JSON serialization of a :class:`FinancialSummary` with
  camelCase keys, decimals as JSON numbers and dates as ISO strings.
- The system instructions and user content for the insight request, with the
  summary JSON delimited by ``BEGIN_FINANCIAL_DATA_JSON`` /
  ``END_FINANCIAL_DATA_JSON`` markers so the service can quote exact figures.
- The chat variant of the prompt, which embeds the chat context and a running
  transcript.
- The ``text`` configuration for the OpenAI Responses API (JSON object mode).

Everything here is pure string construction: no I/O and no retries.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from openai.types.responses import ResponseTextConfigParam

from .models import FinancialSummary

BEGIN_DATA = "BEGIN_FINANCIAL_DATA_JSON"
END_DATA = "END_FINANCIAL_DATA_JSON"

# Wire names of every StructuredInsight field, in the order the reply is shown.
INSIGHT_FIELD_ORDER: tuple[str, ...] = (
    "healthScore",
    "totalIncome",
    "totalExpense",
    "netBalance",
    "savingsRate",
    "spendingAnalysis",
    "savingsInsights",
    "budgetRecommendations",
    "smartTips",
    "trendAnalysis",
    "riskAssessment",
    "priorityActions",
    "topSpendingCategories",
    "paymentMethodBreakdown",
)


@dataclass(frozen=True, slots=True)
class FormattingRules:
    """Fixed formatting contract embedded in every insight prompt."""

    currency_label: str = "Indian Rupees (₹)"
    currency_symbol: str = "₹"
    required_fields: tuple[str, ...] = INSIGHT_FIELD_ORDER
    forbid_markdown: bool = True
    tone: str = "concise, actionable"


DEFAULT_FORMATTING_RULES = FormattingRules()

_PLACEHOLDER_RE = re.compile(r"\{\{[A-Z_]+\}\}")


def _fill(template: str, replacements: Mapping[str, str]) -> str:
    # One pass: substituted values are never rescanned for placeholders.
    return _PLACEHOLDER_RE.sub(lambda m: replacements.get(m.group(0), m.group(0)), template)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        # Integral amounts stay integers so prompts read "1000", not "1000.0".
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(payload: Any, *, indent: int | None = 2) -> str:
    """Serialize ``payload`` with the package's Decimal/date conventions."""

    return json.dumps(payload, indent=indent, ensure_ascii=False, default=_json_default)


def summary_to_payload(summary: FinancialSummary) -> dict[str, Any]:
    """Return the summary as a JSON-ready mapping with camelCase keys."""

    currency = summary.currency
    return {
        "summary": {
            "totalIncome": summary.total_income,
            "totalExpense": summary.total_expense,
            "netBalance": summary.net_balance,
            "savingsRate": summary.savings_rate.quantize(Decimal("0.01")),
            "totalEntries": summary.total_entries,
            "averageIncome": summary.average_income.quantize(Decimal("0.01")),
            "averageExpense": summary.average_expense.quantize(Decimal("0.01")),
            "currency": currency.code,
            "currencySymbol": currency.symbol,
        },
        "categoryBreakdown": {
            name: {"income": t.income, "expense": t.expense, "count": t.count}
            for name, t in summary.category_breakdown.items()
        },
        "paymentMethodBreakdown": dict(summary.payment_method_breakdown),
        "monthlyTrends": {
            key: {"income": m.income, "expense": m.expense}
            for key, m in summary.monthly_trends.items()
        },
        "currency": {"code": currency.code, "symbol": currency.symbol, "name": currency.name},
        "recentActivity": {
            "entries": [
                tx.model_dump(mode="python", by_alias=True)
                for tx in summary.recent_activity.transactions
            ],
            "count": summary.recent_activity.count,
            "period": summary.recent_activity.period,
        },
        "topCategories": [
            {"category": c.category, "amount": c.amount} for c in summary.top_categories
        ],
        "dataPeriod": {
            "startDate": summary.data_period.start_date,
            "endDate": summary.data_period.end_date,
            "totalDays": summary.data_period.total_days,
        },
    }


def serialize_summary_to_json(summary: FinancialSummary) -> str:
    """Serialize ``summary`` to indented JSON with a fixed key order."""

    return to_json(summary_to_payload(summary))


# ---------------------------------------------------------------------------
# Insight prompt
# ---------------------------------------------------------------------------

_EXAMPLE_REPLY: dict[str, Any] = {
    "healthScore": 85,
    "totalIncome": 40622,
    "totalExpense": 11500,
    "netBalance": 29122,
    "savingsRate": 72,
    "spendingAnalysis": "Your spending analysis shows...",
    "savingsInsights": "Based on your savings pattern...",
    "budgetRecommendations": "To optimize your budget...",
    "smartTips": [
        "Tip 1: Specific actionable advice",
        "Tip 2: Another specific tip",
        "Tip 3: Third actionable tip",
    ],
    "trendAnalysis": "Your financial trends indicate...",
    "riskAssessment": "Current financial risks include...",
    "priorityActions": ["Action 1: Immediate priority", "Action 2: Second priority"],
    "topSpendingCategories": [
        {"category": "Shopping", "amount": 11000, "percentage": 96},
        {"category": "Bills", "amount": 450, "percentage": 4},
    ],
    "paymentMethodBreakdown": {"upi": 51450, "cash": 672},
}

_FIELD_GUIDELINES: dict[str, str] = {
    "healthScore": "Integer 0-100 based on income vs expenses, savings rate and stability",
    "totalIncome": "Total income amount (take it from the data)",
    "totalExpense": "Total expense amount (take it from the data)",
    "netBalance": "Income minus expenses (can be negative)",
    "savingsRate": "Percentage of income saved: (income - expense) / income * 100",
    "spendingAnalysis": "Spending patterns across categories and payment methods",
    "savingsInsights": "Savings behaviour and opportunities",
    "budgetRecommendations": "Specific, actionable budget improvements",
    "smartTips": "3-5 practical tips specific to this user's data; no generic advice",
    "trendAnalysis": "Compare recent and earlier periods when the data allows",
    "riskAssessment": "Potential financial risks or concerns",
    "priorityActions": "2-3 most important actions to take",
    "topSpendingCategories": "Top 3-5 spending categories with amounts and percentages",
    "paymentMethodBreakdown": "Object with upi and cash totals",
}

_INSIGHT_TEMPLATE = """\
Analyze the personal finance data below for an Indian user. All amounts are in \
{{CURRENCY_LABEL}}, NOT US Dollars.

FINANCIAL DATA:
{{BEGIN}}
{{FINANCIAL_DATA_JSON}}
{{END}}

Respond with ONLY a single valid JSON object. Do not include any text before or \
after the JSON. Use exactly this shape:

{{EXAMPLE_JSON}}

Guidelines:
{{GUIDELINES}}

Currency notes:
- Refer to amounts with the {{CURRENCY_SYMBOL}} symbol or as "rupees".
- Consider Indian financial context (UPI, cash usage, Indian banking practices).
{{MARKDOWN_RULE}}
Keep every text field {{TONE}}. Be specific to the data provided; if the data is \
limited, say so and advise based on what is available.
"""


def build_system_instructions(rules: FormattingRules = DEFAULT_FORMATTING_RULES) -> str:
    """Return the advisor persona shared by insight and chat prompts."""

    return (
        "You are a professional financial advisor analyzing personal finance data for an "
        f"Indian user. All amounts are in {rules.currency_label}. Give {rules.tone} advice "
        "grounded in the user's actual figures."
    )


def build_insight_prompt(
    summary: FinancialSummary,
    rules: FormattingRules = DEFAULT_FORMATTING_RULES,
) -> str:
    """Build the user content for an insight request.

    The summary is embedded as machine-readable JSON between delimiter lines;
    the requested reply shape lists exactly ``rules.required_fields``.
    """

    example = {k: _EXAMPLE_REPLY[k] for k in rules.required_fields if k in _EXAMPLE_REPLY}
    guidelines = "\n".join(
        f"- {k}: {_FIELD_GUIDELINES[k]}" for k in rules.required_fields if k in _FIELD_GUIDELINES
    )
    markdown_rule = (
        "- Do not use markdown formatting (no **bold**, *italic*, headings or bullets) "
        "inside any text field; plain text only.\n"
        if rules.forbid_markdown
        else ""
    )
    replacements = {
        "{{CURRENCY_LABEL}}": rules.currency_label,
        "{{CURRENCY_SYMBOL}}": rules.currency_symbol,
        "{{BEGIN}}": BEGIN_DATA,
        "{{END}}": END_DATA,
        "{{EXAMPLE_JSON}}": to_json(example),
        "{{GUIDELINES}}": guidelines,
        "{{MARKDOWN_RULE}}": markdown_rule,
        "{{TONE}}": rules.tone,
        "{{FINANCIAL_DATA_JSON}}": serialize_summary_to_json(summary),
    }
    return _fill(_INSIGHT_TEMPLATE, replacements)


def build_text_config() -> ResponseTextConfigParam:
    """Return the Responses API ``text`` parameter requesting a JSON object."""

    return {"format": {"type": "json_object"}}


# ---------------------------------------------------------------------------
# Chat prompt
# ---------------------------------------------------------------------------

_CHAT_TEMPLATE = """\
You are a professional financial advisor and AI assistant for an Indian user. \
All amounts in the financial data are in {{CURRENCY_LABEL}}.

Guidelines:
- Always refer to amounts with {{CURRENCY_SYMBOL}} or as "rupees".
- Give practical advice for the Indian financial context (UPI, Indian banking).
- Keep responses short: at most 2-3 sentences with the single most useful advice.
- Use the financial data when the user has some; otherwise give general guidance \
and encourage them to start tracking.
{{MARKDOWN_RULE}}
FINANCIAL CONTEXT:
{{BEGIN}}
{{CONTEXT_JSON}}
{{END}}

CONVERSATION HISTORY:
{{HISTORY}}

USER MESSAGE: {{MESSAGE}}

Reply in plain text, 2-3 sentences at most.
"""


def _speaker(turn: Mapping[str, Any]) -> str:
    role = str(turn.get("role") or turn.get("type") or "").strip().lower()
    return "User" if role == "user" else "Assistant"


def render_transcript(history: Sequence[Mapping[str, Any]]) -> str:
    """Render ``history`` as ``User: ...`` / ``Assistant: ...`` lines."""

    return "\n".join(f"{_speaker(turn)}: {turn.get('content', '')}" for turn in history)


def build_chat_prompt(
    message: str,
    context: Mapping[str, Any],
    history: Sequence[Mapping[str, Any]] = (),
    rules: FormattingRules = DEFAULT_FORMATTING_RULES,
) -> str:
    """Build the single-text prompt for one chat turn.

    ``history`` items carry ``role`` (or ``type``) of ``"user"`` /
    ``"assistant"`` and ``content``; the service sees them as a transcript.
    """

    markdown_rule = (
        "- Do not use markdown formatting; plain text only.\n" if rules.forbid_markdown else ""
    )
    replacements = {
        "{{CURRENCY_LABEL}}": rules.currency_label,
        "{{CURRENCY_SYMBOL}}": rules.currency_symbol,
        "{{MARKDOWN_RULE}}": markdown_rule,
        "{{BEGIN}}": BEGIN_DATA,
        "{{END}}": END_DATA,
        "{{CONTEXT_JSON}}": to_json(dict(context)),
        "{{HISTORY}}": render_transcript(history) or "(none)",
        "{{MESSAGE}}": message.strip(),
    }
    return _fill(_CHAT_TEMPLATE, replacements)


__all__ = [
    "BEGIN_DATA",
    "DEFAULT_FORMATTING_RULES",
    "END_DATA",
    "FormattingRules",
    "INSIGHT_FIELD_ORDER",
    "build_chat_prompt",
    "build_insight_prompt",
    "build_system_instructions",
    "build_text_config",
    "render_transcript",
    "serialize_summary_to_json",
    "summary_to_payload",
    "to_json",
]
