"""Budget allocation package."""

from envelope_finance.budget.aggregates import (
    debts_by_direction,
    outstanding_total,
    percent_used,
    savings_recommendation,
    spending_breakdown,
    total_savings,
)
from envelope_finance.budget.engine import (
    filter_by_period,
    summarize,
    summarize_period,
)
from envelope_finance.budget.memo import PeriodSummaryMemo

__all__ = [
    "PeriodSummaryMemo",
    "debts_by_direction",
    "filter_by_period",
    "outstanding_total",
    "percent_used",
    "savings_recommendation",
    "spending_breakdown",
    "summarize",
    "summarize_period",
    "total_savings",
]
