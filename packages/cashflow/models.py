"""Data models and type aliases for ``cashflow``.

Three families live here:

- :class:`Transaction`, the validated read-only input record. Amounts are
  ``Decimal``, never negative, and fit the ledger's ``Numeric(18, 2)``
  column; a missing payment method means ``cash``.
- The frozen dataclasses that make up a :class:`FinancialSummary`, produced
  fresh by :func:`cashflow.aggregate.aggregate` and never persisted.
- :class:`StructuredInsight`, the complete insight record consumers receive,
  plus :class:`InsightResult` which wraps it with diagnostics (degraded flag,
  raw reply, cache provenance).
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

type TransactionType = Literal["income", "expense"]
type PaymentMethod = Literal["cash", "upi"]

TRANSACTION_TYPES: tuple[str, ...] = ("income", "expense")
PAYMENT_METHODS: tuple[str, ...] = ("cash", "upi")
DEFAULT_PAYMENT_METHOD: str = "cash"

# Same bounds as the ledger column, Numeric(18, 2).
AMOUNT_MAX_DIGITS = 18
AMOUNT_DECIMAL_PLACES = 2


class Transaction(BaseModel):
    """A single income or expense record.

    Accepts both the snake_case field names and the camelCase wire name
    ``paymentMethod`` so records coming from JSON APIs validate unchanged.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    type: TransactionType
    amount: Decimal = Field(
        ge=0, max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )
    category: str = Field(min_length=1)
    payment_method: PaymentMethod = Field(DEFAULT_PAYMENT_METHOD, alias="paymentMethod")
    date: dt.date
    description: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_from_float(cls, v: Any) -> Any:
        # str() keeps 0.1 as Decimal("0.1") instead of its binary expansion.
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator("payment_method", mode="before")
    @classmethod
    def _default_payment_method(cls, v: Any) -> Any:
        if v is None:
            return DEFAULT_PAYMENT_METHOD
        if isinstance(v, str):
            s = v.strip().lower()
            return s or DEFAULT_PAYMENT_METHOD
        return v

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> Any:
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return dt.datetime.fromisoformat(v.strip().replace("Z", "+00:00")).date()
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _description_or_empty(cls, v: Any) -> Any:
        return "" if v is None else v


type TransactionLike = Transaction | Mapping[str, Any]
"""Either a validated :class:`Transaction` or a raw mapping to validate."""


def coerce_transactions(items: Iterable[TransactionLike]) -> list[Transaction]:
    """Validate raw mappings into :class:`Transaction` objects, preserving order."""

    out: list[Transaction] = []
    for item in items:
        if isinstance(item, Transaction):
            out.append(item)
        elif isinstance(item, Mapping):
            out.append(Transaction.model_validate(item))
        else:
            raise TypeError(
                f"expected a Transaction or a mapping, got {type(item).__name__}"
            )
    return out


# ---------------------------------------------------------------------------
# Financial summary (derived, ephemeral)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategoryTotals:
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    count: int = 0


@dataclass(frozen=True, slots=True)
class CategoryAmount:
    category: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class MonthlyTotals:
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")


@dataclass(frozen=True, slots=True)
class RecentActivity:
    transactions: tuple[Transaction, ...]
    count: int
    period: str = "30 days"


@dataclass(frozen=True, slots=True)
class DataPeriod:
    start_date: dt.date
    end_date: dt.date
    total_days: int


@dataclass(frozen=True, slots=True)
class CurrencyInfo:
    code: str = "INR"
    symbol: str = "₹"
    name: str = "Indian Rupees"


INR = CurrencyInfo()


@dataclass(frozen=True, slots=True)
class FinancialSummary:
    """Aggregated view of one user's transaction history.

    Attributes
    ----------
    savings_rate:
        ``net_balance / total_income * 100`` when there is income, else ``0``.
    category_breakdown:
        ``category -> CategoryTotals`` in first-encountered order.
    payment_method_breakdown:
        ``method -> amount`` summed over income *and* expense records.
    top_categories:
        At most five expense categories, largest first.
    monthly_trends:
        ``"YYYY-MM" -> MonthlyTotals`` restricted to the trailing 183 days.
    """

    total_income: Decimal
    total_expense: Decimal
    net_balance: Decimal
    savings_rate: Decimal
    total_entries: int
    average_income: Decimal
    average_expense: Decimal
    category_breakdown: Mapping[str, CategoryTotals]
    payment_method_breakdown: Mapping[str, Decimal]
    top_categories: tuple[CategoryAmount, ...]
    monthly_trends: Mapping[str, MonthlyTotals]
    recent_activity: RecentActivity
    data_period: DataPeriod
    currency: CurrencyInfo = INR


# ---------------------------------------------------------------------------
# Structured insight (derived, cached)
# ---------------------------------------------------------------------------


class SpendingCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    amount: float = 0.0
    percentage: float = 0.0


class PaymentMethodTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    upi: float = 0.0
    cash: float = 0.0


class StructuredInsight(BaseModel):
    """The complete insight record handed to consumers.

    Field names are snake_case in Python and camelCase on the wire
    (``healthScore``, ``smartTips``...). Instances are always fully
    populated; :mod:`cashflow.interpret` fills documented defaults for
    anything the text-generation service omitted.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    health_score: int = Field(alias="healthScore", ge=0, le=100)
    total_income: float = Field(alias="totalIncome")
    total_expense: float = Field(alias="totalExpense")
    net_balance: float = Field(alias="netBalance")
    savings_rate: float = Field(alias="savingsRate")
    spending_analysis: str = Field(alias="spendingAnalysis")
    savings_insights: str = Field(alias="savingsInsights")
    budget_recommendations: str = Field(alias="budgetRecommendations")
    smart_tips: tuple[str, ...] = Field(alias="smartTips")
    trend_analysis: str = Field(alias="trendAnalysis")
    risk_assessment: str = Field(alias="riskAssessment")
    priority_actions: tuple[str, ...] = Field(alias="priorityActions")
    top_spending_categories: tuple[SpendingCategory, ...] = Field(alias="topSpendingCategories")
    payment_method_breakdown: PaymentMethodTotals = Field(alias="paymentMethodBreakdown")

    def to_wire(self) -> dict[str, Any]:
        """Return a JSON-ready mapping keyed by the camelCase wire names."""

        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True, slots=True)
class InsightResult:
    """A :class:`StructuredInsight` plus how it was obtained.

    ``degraded`` is set whenever defaults replaced the service's reply (an
    unparsable reply or a failed upstream call). ``raw_text`` keeps the reply
    for diagnostics only; it never feeds a structured field.
    """

    insight: StructuredInsight
    degraded: bool = False
    raw_text: str | None = None
    missing_fields: tuple[str, ...] = ()
    error: str | None = None
    cached: bool = False
    generated_at: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.UTC))


# ---------------------------------------------------------------------------
# Store-facing handles
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UserHandle:
    """Resolved user identity passed into the core instead of provider tokens."""

    id: int
    external_id: str
    email: str | None = None
    full_name: str | None = None

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.email:
            return self.email.split("@")[0]
        return self.external_id


@dataclass(frozen=True, slots=True)
class StoredTransaction:
    """A persisted transaction together with its database identifier."""

    id: int
    transaction: Transaction
    created_at: dt.datetime | None = None


__all__ = [
    "CategoryAmount",
    "CategoryTotals",
    "CurrencyInfo",
    "DataPeriod",
    "FinancialSummary",
    "INR",
    "InsightResult",
    "MonthlyTotals",
    "PAYMENT_METHODS",
    "PaymentMethod",
    "PaymentMethodTotals",
    "RecentActivity",
    "SpendingCategory",
    "StoredTransaction",
    "StructuredInsight",
    "TRANSACTION_TYPES",
    "Transaction",
    "TransactionLike",
    "TransactionType",
    "UserHandle",
    "coerce_transactions",
]
