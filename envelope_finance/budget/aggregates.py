"""
Aggregate helpers for debts, savings and the dashboard widgets.

None of these are period-scoped: debts and savings are always shown in
full, and the chart/progress helpers work on an already computed summary.
"""

from decimal import Decimal
from typing import Iterable

from envelope_finance.models.ledger import (
    CATEGORIES,
    SPENDING_CATEGORIES,
    BudgetBucket,
    BudgetSummary,
    CategoryId,
    ChartSlice,
    Debt,
    DebtDirection,
    SavingsDeposit,
)


def debts_by_direction(debts: Iterable[Debt], direction: DebtDirection) -> list[Debt]:
    """Entries of one direction, in their original order."""
    return [d for d in debts if d.direction is direction]


def outstanding_total(debts: Iterable[Debt], direction: DebtDirection) -> Decimal:
    """Sum of amounts not yet settled for one direction."""
    return sum(
        (d.amount for d in debts if d.direction is direction and not d.is_paid),
        Decimal("0"),
    )


def total_savings(savings: Iterable[SavingsDeposit]) -> Decimal:
    """All-time savings, regardless of the selected period."""
    return sum((s.amount for s in savings), Decimal("0"))


def savings_recommendation(summary: BudgetSummary) -> Decimal:
    """How much should move to savings this period: the SAVING envelope limit."""
    return summary.budgets[CategoryId.SAVING].limit


def percent_used(bucket: BudgetBucket) -> Decimal:
    """
    Share of the envelope already spent, as a percentage.

    Not clamped: overspent envelopes report more than 100. An envelope
    with no limit reports 0.
    """
    if bucket.limit <= 0:
        return Decimal("0")
    return bucket.used / bucket.limit * 100


def spending_breakdown(summary: BudgetSummary) -> list[ChartSlice]:
    """Chart slices per envelope, leaving out envelopes with no spending."""
    slices = []
    for category_id in SPENDING_CATEGORIES:
        used = summary.budgets[category_id].used
        if used > 0:
            category = CATEGORIES[category_id]
            slices.append(ChartSlice(
                category=category_id,
                label=category.short_label,
                value=used,
                color=category.color,
            ))
    return slices
