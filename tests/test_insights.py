from __future__ import annotations

import datetime as dt
from typing import Any

import pytest

import cashflow.insights as insights_mod
from cashflow.cache import InsightCache
from cashflow.insights import (
    NoFinancialDataError,
    ask_advisor,
    generate_insights,
    refresh_insights,
)
from cashflow.prompting import BEGIN_DATA
from tests.helpers.openai_stub import OpenAIStub, StatusError

GOOD_REPLY = {
    "healthScore": 88,
    "totalIncome": 1000,
    "totalExpense": 400,
    "netBalance": 600,
    "savingsRate": 60,
    "spendingAnalysis": "Food dominates spending.",
    "savingsInsights": "Strong savings.",
    "budgetRecommendations": "Keep food under ₹400.",
    "smartTips": ["a", "b", "c"],
    "trendAnalysis": "Flat.",
    "riskAssessment": "Low.",
    "priorityActions": ["x", "y"],
    "topSpendingCategories": [{"category": "Food", "amount": 400, "percentage": 100}],
    "paymentMethodBreakdown": {"upi": 1000, "cash": 400},
}


@pytest.fixture
def transactions(today) -> list[dict[str, Any]]:
    return [
        {
            "type": "income",
            "amount": 1000,
            "category": "Salary",
            "paymentMethod": "upi",
            "date": today - dt.timedelta(days=5),
        },
        {"type": "expense", "amount": 400, "category": "Food", "date": today},
    ]


@pytest.fixture
def cache(clock) -> InsightCache:
    return InsightCache(clock=clock)


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(insights_mod, "_sleep_backoff", lambda attempt: None)


def test_generates_then_serves_from_cache(transactions, cache, today):
    stub = OpenAIStub([GOOD_REPLY])
    first = generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert first.degraded is False
    assert first.cached is False
    assert first.insight.health_score == 88
    assert len(stub.calls) == 1

    second = generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert second.cached is True
    assert second.insight == first.insight
    assert len(stub.calls) == 1


def test_request_shape(transactions, cache, today):
    stub = OpenAIStub([GOOD_REPLY])
    generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    call = stub.calls[0]
    assert call["model"] == "gpt-5-mini"
    assert call["text"] == {"format": {"type": "json_object"}}
    assert "Indian Rupees" in call["instructions"]
    assert BEGIN_DATA in call["input"]
    assert '"totalIncome": 1000' in call["input"]


def test_model_comes_from_environment(transactions, cache, today, monkeypatch):
    monkeypatch.setenv("CASHFLOW_MODEL", "gpt-test")
    stub = OpenAIStub([GOOD_REPLY])
    generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert stub.calls[0]["model"] == "gpt-test"


def test_no_data_skips_upstream_and_cache(cache, today):
    stub = OpenAIStub([GOOD_REPLY])
    result = generate_insights([], user_key="u1", cache=cache, client=stub, now=today)
    assert result.insight.health_score == 50
    assert result.degraded is False
    assert stub.calls == []
    assert len(cache) == 0


def test_parse_degraded_result_is_cached(transactions, cache, today):
    stub = OpenAIStub(["Sorry, I can't produce JSON today."])
    first = generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert first.degraded is True
    assert first.raw_text == "Sorry, I can't produce JSON today."
    assert first.insight.health_score == 75

    second = generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert second.cached is True
    assert second.degraded is True
    assert len(stub.calls) == 1


def test_upstream_failure_returns_unavailable_and_is_not_cached(transactions, cache, today):
    stub = OpenAIStub([StatusError(503)])
    result = generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert result.degraded is True
    assert result.insight.health_score == 70
    assert result.error and "503" in result.error
    assert len(stub.calls) == 3
    assert len(cache) == 0


def test_rate_limit_is_retried(transactions, cache, today):
    stub = OpenAIStub([StatusError(429), GOOD_REPLY])
    result = generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert result.degraded is False
    assert len(stub.calls) == 2


def test_client_errors_are_not_retried(transactions, cache, today):
    stub = OpenAIStub([StatusError(400), GOOD_REPLY])
    result = generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert result.insight.health_score == 70
    assert len(stub.calls) == 1


def test_refresh_bypasses_cache(transactions, cache, today):
    stub = OpenAIStub([GOOD_REPLY, {**GOOD_REPLY, "healthScore": 10}])
    generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    refreshed = refresh_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    assert refreshed.cached is False
    assert refreshed.insight.health_score == 10
    assert len(stub.calls) == 2


def test_refresh_without_data_raises_and_clears(transactions, cache, today):
    stub = OpenAIStub([GOOD_REPLY])
    generate_insights(transactions, user_key="u1", cache=cache, client=stub, now=today)
    with pytest.raises(NoFinancialDataError):
        refresh_insights([], user_key="u1", cache=cache, client=stub, now=today)
    assert cache.get("u1") is None


def test_missing_api_key_is_a_runtime_error(transactions, cache, today):
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        generate_insights(transactions, user_key="u1", cache=cache, now=today)


def test_default_client_is_built_from_settings(transactions, cache, today, monkeypatch):
    stub = OpenAIStub([GOOD_REPLY])
    seen: dict[str, Any] = {}

    def _factory(**kwargs):
        seen.update(kwargs)
        return stub

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(insights_mod, "OpenAI", _factory)
    result = generate_insights(transactions, user_key="u1", cache=cache, now=today)
    assert result.insight.health_score == 88
    assert seen == {"api_key": "sk-test"}


def test_ask_advisor_cleans_reply_and_sends_history(transactions):
    stub = OpenAIStub(["**Save more**: move ₹200 to savings."])
    history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
    answer = ask_advisor("How can I save?", transactions, history=history, client=stub)

    assert answer == "Save more: move ₹200 to savings."
    call = stub.calls[0]
    assert "User: hi\nAssistant: hello" in call["input"]
    assert "USER MESSAGE: How can I save?" in call["input"]
    assert "text" not in call


def test_ask_advisor_rejects_blank_message(transactions):
    stub = OpenAIStub(["unused"])
    with pytest.raises(ValueError):
        ask_advisor("   ", transactions, client=stub)
    assert stub.calls == []


@pytest.mark.parametrize("reply", [StatusError(401), ""])
def test_ask_advisor_failures_raise_runtime_error(transactions, reply):
    stub = OpenAIStub([reply])
    with pytest.raises(RuntimeError):
        ask_advisor("Any tips?", transactions, client=stub)
