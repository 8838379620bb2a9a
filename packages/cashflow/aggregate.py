"""Deterministic aggregation of transaction lists into financial summaries.

Public API:
    - :func:`aggregate`: full :class:`~cashflow.models.FinancialSummary` used
      for insight generation, or ``None`` when there is no data.
    - :func:`build_chat_context`: the lighter context embedded in chat
      prompts.

Both functions are pure. "Now" is always passed in by the caller so results
are reproducible; time windows use fixed day counts rather than calendar
month arithmetic.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from .models import (
    CategoryAmount,
    CategoryTotals,
    DataPeriod,
    FinancialSummary,
    MonthlyTotals,
    RecentActivity,
    Transaction,
    TransactionLike,
    coerce_transactions,
)

MONTHLY_TREND_WINDOW = dt.timedelta(days=183)
RECENT_ACTIVITY_WINDOW = dt.timedelta(days=30)
TOP_CATEGORY_LIMIT = 5

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _as_date(now: dt.date | dt.datetime) -> dt.date:
    if isinstance(now, dt.datetime):
        return now.date()
    return now


def month_key(day: dt.date) -> str:
    """Return the ``YYYY-MM`` bucket key for ``day``."""

    return f"{day.year:04d}-{day.month:02d}"


def aggregate(
    transactions: Iterable[TransactionLike],
    *,
    now: dt.date | dt.datetime,
) -> FinancialSummary | None:
    """Reduce ``transactions`` into a :class:`FinancialSummary`.

    Returns ``None`` for an empty input so callers can present a "no data"
    insight instead of asking the text-generation service about nothing.
    Input order is not assumed for the data period; it is preserved for
    ``recent_activity`` and for tie-breaking in ``top_categories``.
    """

    items = coerce_transactions(transactions)
    if not items:
        return None

    today = _as_date(now)
    monthly_cutoff = today - MONTHLY_TREND_WINDOW
    recent_cutoff = today - RECENT_ACTIVITY_WINDOW

    total_income = _ZERO
    total_expense = _ZERO
    n_income = 0
    n_expense = 0
    # category -> [income, expense, count]
    buckets: dict[str, list[Any]] = {}
    # Insertion order is the first expense seen per category (tie-break order).
    expense_by_category: dict[str, Decimal] = {}
    by_method: dict[str, Decimal] = {}
    # "YYYY-MM" -> [income, expense]
    months: dict[str, list[Decimal]] = {}
    recent: list[Transaction] = []
    start_date = end_date = items[0].date

    for tx in items:
        amount = tx.amount
        if tx.type == "income":
            total_income += amount
            n_income += 1
        else:
            total_expense += amount
            n_expense += 1
            expense_by_category[tx.category] = (
                expense_by_category.get(tx.category, _ZERO) + amount
            )

        bucket = buckets.setdefault(tx.category, [_ZERO, _ZERO, 0])
        bucket[0 if tx.type == "income" else 1] += amount
        bucket[2] += 1

        by_method[tx.payment_method] = by_method.get(tx.payment_method, _ZERO) + amount

        if tx.date >= monthly_cutoff:
            month = months.setdefault(month_key(tx.date), [_ZERO, _ZERO])
            month[0 if tx.type == "income" else 1] += amount

        if tx.date >= recent_cutoff:
            recent.append(tx)

        if tx.date < start_date:
            start_date = tx.date
        if tx.date > end_date:
            end_date = tx.date

    net_balance = total_income - total_expense
    savings_rate = net_balance / total_income * _HUNDRED if total_income > 0 else _ZERO

    # sorted() is stable, so equal amounts keep first-encountered order.
    ranked = sorted(expense_by_category.items(), key=lambda kv: kv[1], reverse=True)
    top_categories = tuple(
        CategoryAmount(category=name, amount=amount)
        for name, amount in ranked[:TOP_CATEGORY_LIMIT]
    )

    return FinancialSummary(
        total_income=total_income,
        total_expense=total_expense,
        net_balance=net_balance,
        savings_rate=savings_rate,
        total_entries=len(items),
        average_income=total_income / max(1, n_income),
        average_expense=total_expense / max(1, n_expense),
        category_breakdown={
            name: CategoryTotals(income=b[0], expense=b[1], count=b[2])
            for name, b in buckets.items()
        },
        payment_method_breakdown=by_method,
        top_categories=top_categories,
        monthly_trends={
            key: MonthlyTotals(income=m[0], expense=m[1]) for key, m in months.items()
        },
        recent_activity=RecentActivity(transactions=tuple(recent), count=len(recent)),
        data_period=DataPeriod(
            start_date=start_date,
            end_date=end_date,
            total_days=(end_date - start_date).days,
        ),
    )


def build_chat_context(
    transactions: Iterable[TransactionLike],
    *,
    recent_limit: int = 10,
) -> dict[str, Any]:
    """Return the financial context embedded in chat prompts.

    Unlike :func:`aggregate` this has no time windows: it carries overall
    totals, the per-category breakdown, per-method sums, and the first
    ``recent_limit`` transactions as supplied (callers pass newest first).
    """

    items = coerce_transactions(transactions)
    if not items:
        return {
            "hasData": False,
            "message": (
                "No financial data available yet. The user hasn't added any income "
                "or expense entries."
            ),
        }

    total_income = sum((t.amount for t in items if t.type == "income"), _ZERO)
    total_expense = sum((t.amount for t in items if t.type == "expense"), _ZERO)
    net_balance = total_income - total_expense
    savings_rate = (
        (net_balance / total_income * _HUNDRED).quantize(Decimal("0.1"))
        if total_income > 0
        else _ZERO
    )

    categories: dict[str, dict[str, Any]] = {}
    methods: dict[str, Decimal] = {}
    for tx in items:
        bucket = categories.setdefault(
            tx.category, {"income": _ZERO, "expense": _ZERO, "count": 0}
        )
        bucket[tx.type] += tx.amount
        bucket["count"] += 1
        methods[tx.payment_method] = methods.get(tx.payment_method, _ZERO) + tx.amount

    recent_entries = [
        {
            "type": tx.type,
            "amount": tx.amount,
            "category": tx.category,
            "description": tx.description,
            "date": tx.date,
            "paymentMethod": tx.payment_method,
        }
        for tx in items[: max(0, recent_limit)]
    ]

    return {
        "hasData": True,
        "summary": {
            "totalIncome": total_income,
            "totalExpense": total_expense,
            "netBalance": net_balance,
            "savingsRate": savings_rate,
        },
        "categoryBreakdown": categories,
        "recentEntries": recent_entries,
        "paymentMethods": methods,
        "totalEntries": len(items),
    }


__all__ = [
    "MONTHLY_TREND_WINDOW",
    "RECENT_ACTIVITY_WINDOW",
    "TOP_CATEGORY_LIMIT",
    "aggregate",
    "build_chat_context",
    "month_key",
]
