from __future__ import annotations

import datetime as dt
import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from cashflow.aggregate import aggregate, build_chat_context
from cashflow.prompting import (
    BEGIN_DATA,
    DEFAULT_FORMATTING_RULES,
    END_DATA,
    INSIGHT_FIELD_ORDER,
    FormattingRules,
    build_chat_prompt,
    build_insight_prompt,
    build_system_instructions,
    build_text_config,
    render_transcript,
    serialize_summary_to_json,
)

BEGIN = BEGIN_DATA + "\n"
END = "\n" + END_DATA


def _embedded_json(prompt: str) -> dict:
    b = prompt.find(BEGIN)
    e = prompt.rfind(END)
    assert b != -1 and e > b, "prompt missing delimited data block"
    return json.loads(prompt[b + len(BEGIN) : e])


def _summary(today, description: str = "lunch"):
    summary = aggregate(
        [
            {
                "type": "income",
                "amount": 1000,
                "category": "Salary",
                "paymentMethod": "upi",
                "date": dt.date(2024, 6, 1),
            },
            {
                "type": "expense",
                "amount": "400.50",
                "category": "Food",
                "date": dt.date(2024, 6, 10),
                "description": description,
            },
        ],
        now=today,
    )
    assert summary is not None
    return summary


def test_serialized_summary_uses_camel_case_numbers_and_iso_dates(today):
    payload = json.loads(serialize_summary_to_json(_summary(today)))

    assert payload["summary"]["totalIncome"] == 1000
    assert payload["summary"]["totalExpense"] == 400.5
    assert payload["summary"]["netBalance"] == 599.5
    assert payload["summary"]["savingsRate"] == 59.95
    assert payload["summary"]["currency"] == "INR"
    assert payload["paymentMethodBreakdown"] == {"upi": 1000, "cash": 400.5}
    assert payload["topCategories"] == [{"category": "Food", "amount": 400.5}]
    assert payload["dataPeriod"] == {
        "startDate": "2024-06-01",
        "endDate": "2024-06-10",
        "totalDays": 9,
    }
    entry = payload["recentActivity"]["entries"][1]
    assert entry["paymentMethod"] == "cash"
    assert entry["date"] == "2024-06-10"


def test_serialization_is_deterministic(today):
    assert serialize_summary_to_json(_summary(today)) == serialize_summary_to_json(_summary(today))


def test_insight_prompt_embeds_summary_and_reply_shape(today):
    summary = _summary(today)
    prompt = build_insight_prompt(summary)

    assert _embedded_json(prompt) == json.loads(serialize_summary_to_json(summary))
    for name in INSIGHT_FIELD_ORDER:
        assert f'"{name}"' in prompt
    assert "Indian Rupees (₹)" in prompt
    assert "markdown" in prompt.lower()
    assert "{{" not in prompt


def test_placeholder_text_in_data_is_left_alone(today):
    prompt = build_insight_prompt(_summary(today, description="see {{END}} and {{TONE}}"))
    data = _embedded_json(prompt)
    descriptions = [e["description"] for e in data["recentActivity"]["entries"]]
    assert "see {{END}} and {{TONE}}" in descriptions


def test_required_fields_limit_the_requested_shape(today):
    rules = FormattingRules(required_fields=("healthScore", "smartTips"), forbid_markdown=False)
    prompt = build_insight_prompt(_summary(today), rules)
    assert '"healthScore"' in prompt
    assert '"smartTips"' in prompt
    assert '"riskAssessment"' not in prompt
    assert "Do not use markdown" not in prompt


def test_system_instructions_mention_currency_and_tone():
    text = build_system_instructions(DEFAULT_FORMATTING_RULES)
    assert "Indian Rupees (₹)" in text
    assert "concise, actionable" in text


def test_text_config_requests_json_object():
    assert build_text_config() == {"format": {"type": "json_object"}}


def test_chat_prompt_includes_context_history_and_message(today):
    ctx = build_chat_context(
        [{"type": "expense", "amount": 250, "category": "Food", "date": today}]
    )
    history = [
        {"role": "user", "content": "How am I doing?"},
        {"type": "assistant", "content": "You spent ₹250 on food."},
    ]
    prompt = build_chat_prompt("  Can I save more?  ", ctx, history)

    assert _embedded_json(prompt)["summary"]["totalExpense"] == 250
    assert "User: How am I doing?\nAssistant: You spent ₹250 on food." in prompt
    assert "USER MESSAGE: Can I save more?" in prompt
    assert "2-3 sentences" in prompt


def test_chat_prompt_without_history_or_data():
    prompt = build_chat_prompt("hi", build_chat_context([]))
    assert "CONVERSATION HISTORY:\n(none)" in prompt
    assert _embedded_json(prompt)["hasData"] is False


def test_render_transcript_defaults_unknown_roles_to_assistant():
    assert render_transcript([{"role": "system", "content": "x"}]) == "Assistant: x"


def test_largest_ledger_amounts_still_serialize(today):
    top = Decimal("9999999999999999.99")
    summary = aggregate(
        [
            {"type": "income", "amount": top, "category": "Salary", "date": today},
            {"type": "income", "amount": top, "category": "Bonus", "date": today},
            {"type": "expense", "amount": Decimal("0.01"), "category": "Food", "date": today},
        ],
        now=today,
    )
    data = json.loads(serialize_summary_to_json(summary))
    assert data["summary"]["totalEntries"] == 3
    assert data["summary"]["averageIncome"] == pytest.approx(1e16)
    assert data["summary"]["savingsRate"] == pytest.approx(100)


@pytest.mark.parametrize("amount", [Decimal("1e30"), "12345678901234567890", "10.001"])
def test_amounts_beyond_ledger_precision_are_rejected(today, amount):
    with pytest.raises(ValidationError):
        aggregate(
            [{"type": "income", "amount": amount, "category": "Salary", "date": today}], now=today
        )
