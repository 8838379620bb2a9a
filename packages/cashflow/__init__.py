"""Public interface for the ``cashflow`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .aggregate import aggregate, build_chat_context
from .cache import InsightCache, get_insight_cache
from .insights import NoFinancialDataError, ask_advisor, generate_insights, refresh_insights
from .interpret import (
    clean_markdown,
    interpret,
    no_data_insight,
    parse_failure_insight,
    unavailable_insight,
)
from .models import (
    FinancialSummary,
    InsightResult,
    StructuredInsight,
    Transaction,
)
from .prompting import (
    DEFAULT_FORMATTING_RULES,
    FormattingRules,
    build_insight_prompt,
    serialize_summary_to_json,
)

__all__ = [
    # Core
    "aggregate",
    "build_chat_context",
    "build_insight_prompt",
    "serialize_summary_to_json",
    "interpret",
    "clean_markdown",
    "no_data_insight",
    "parse_failure_insight",
    "unavailable_insight",
    "InsightCache",
    "get_insight_cache",
    # Service
    "generate_insights",
    "refresh_insights",
    "ask_advisor",
    "NoFinancialDataError",
    # Models / types
    "DEFAULT_FORMATTING_RULES",
    "FinancialSummary",
    "FormattingRules",
    "InsightResult",
    "StructuredInsight",
    "Transaction",
]
