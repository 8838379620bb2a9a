from __future__ import annotations

import datetime as dt
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest
from db.client import session_scope
from db.models.ledger import CfUser
from sqlalchemy import select

import cashflow.insights as insights_mod
from cashflow.cache import InsightCache
from cashflow.ingest.csv_import import load_transactions_from_csv
from cashflow.insights import generate_insights, refresh_insights
from cashflow.prompting import BEGIN_DATA, END_DATA
from cashflow.store import (
    add_transaction,
    ensure_user_record,
    list_transactions,
    refresh_financial_summary,
)
from tests.helpers.openai_stub import OpenAIStub

CSV_BODY = """\
type,amount,category,date,payment_method,description
income,"₹50,000",Salary,01/06/2024,upi,June salary
expense,1200.50,Food,2024-06-03,cash,Lunch
expense,"₹3,000",Bills,2024-06-05,upi,Electricity
expense,800,food,2024-06-20,,Dinner
income,2000,Other,2023-11-15,cash,Old refund
"""


def _reply(health: int) -> dict[str, Any]:
    return {
        "healthScore": health,
        "totalIncome": 52000,
        "totalExpense": 5000.5,
        "netBalance": 46999.5,
        "savingsRate": 90.4,
        "spendingAnalysis": "Bills lead spending.",
        "savingsInsights": "Savings are strong.",
        "budgetRecommendations": "Cap food at ₹2,000.",
        "smartTips": ["Automate savings", "Track UPI spends", "Review bills"],
        "trendAnalysis": "June carries all activity.",
        "riskAssessment": "Low.",
        "priorityActions": ["Build an emergency fund", "Start a SIP"],
        "topSpendingCategories": [{"category": "Bills", "amount": 3000, "percentage": 60}],
        "paymentMethodBreakdown": {"upi": 53000, "cash": 4000.5},
    }


def _data_block(prompt: str) -> dict[str, Any]:
    start = prompt.index(BEGIN_DATA) + len(BEGIN_DATA)
    end = prompt.index(END_DATA)
    return json.loads(prompt[start:end])


def test_e2e_csv_to_cached_insights(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, sqlite_url, clock
):
    # -------------------------
    # Input CSV -> database
    # -------------------------
    csv_path = tmp_path / "ledger.csv"
    csv_path.write_text(CSV_BODY, encoding="utf-8")
    parsed = load_transactions_from_csv(csv_path)
    assert len(parsed) == 5

    with session_scope(database_url=sqlite_url) as session:
        ensure_user_record(session, "user_e2e", {"email": "e2e@example.com"})
        for tx in parsed:
            add_transaction(session, "user_e2e", tx)
        totals = refresh_financial_summary(session, "user_e2e")
    assert totals["net_balance"] == Decimal("46999.50")

    with session_scope(database_url=sqlite_url) as session:
        stored = [s.transaction for s in list_transactions(session, "user_e2e")]
        row = session.execute(select(CfUser).where(CfUser.external_id == "user_e2e")).scalar_one()
        assert row.total_income == Decimal("52000.00")
    assert [t.date for t in stored][:2] == [dt.date(2024, 6, 20), dt.date(2024, 6, 5)]
    assert stored[0].payment_method == "cash"

    # -------------------------
    # Stub the OpenAI client used inside insights.py
    # -------------------------
    calls: list[dict[str, Any]] = []
    stub = OpenAIStub([_reply(84), _reply(79)], calls)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(insights_mod, "OpenAI", lambda **_: stub)
    cache = InsightCache(clock=clock)
    today = dt.date(2024, 6, 30)

    first = generate_insights(stored, user_key="user_e2e", cache=cache, now=today)
    second = generate_insights(stored, user_key="user_e2e", cache=cache, now=today)

    assert first.insight.health_score == 84
    assert second.cached is True
    assert len(calls) == 1

    data = _data_block(calls[0]["input"])
    assert data["summary"]["totalIncome"] == 52000
    assert data["summary"]["totalExpense"] == 5000.5
    assert data["paymentMethodBreakdown"] == {"cash": 4000.5, "upi": 53000}
    assert data["topCategories"] == [
        {"category": "Bills", "amount": 3000},
        {"category": "Food", "amount": 1200.5},
        {"category": "food", "amount": 800},
    ]
    # The November entry falls outside the six-month trend window.
    assert list(data["monthlyTrends"]) == ["2024-06"]
    assert data["recentActivity"]["count"] == 4
    assert data["dataPeriod"]["startDate"] == "2023-11-15"

    # -------------------------
    # Expiry and forced refresh
    # -------------------------
    clock.advance(hours=24)
    assert cache.get("user_e2e") is None

    refreshed = refresh_insights(stored, user_key="user_e2e", cache=cache, now=today)
    assert refreshed.insight.health_score == 79
    assert refreshed.cached is False
    assert len(calls) == 2
