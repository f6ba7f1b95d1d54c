"""
Budget Allocation Engine

Envelope budgeting over one period of transactions:

- Every income transaction replenishes ALL four spending envelopes at
  once, each by its fixed share of the amount (40/30/20/10).
- Every expense draws down the one envelope named by its category.
  Expenses with an unknown category still count toward total expense but
  touch no envelope.

The engine is a pure fold. Decimal arithmetic keeps it exact, so the
result does not depend on transaction order and repeated calls with the
same input give identical output.
"""

from decimal import Decimal
from typing import Iterable

from envelope_finance.models.ledger import (
    CATEGORIES,
    SPENDING_CATEGORIES,
    BudgetBucket,
    BudgetSummary,
    Period,
    Transaction,
    TransactionDirection,
    spending_category,
)
from envelope_finance.validation import parse_amount


ZERO = Decimal("0")


def filter_by_period(
    transactions: Iterable[Transaction],
    period: Period,
) -> list[Transaction]:
    """
    Keep the transactions dated inside the period's calendar month.

    Input order is preserved. The result is a new list on every call.
    """
    return [t for t in transactions if period.contains(t.occurs_on)]


def summarize(transactions: Iterable[Transaction]) -> BudgetSummary:
    """
    Compute income/expense totals and envelope state for a transaction set.

    The caller decides the scope; use summarize_period() to filter first.

    Raises:
        InvalidAmount: if a record carries a non-positive or non-finite amount
    """
    total_income = ZERO
    total_expense = ZERO
    limits = {category_id: ZERO for category_id in SPENDING_CATEGORIES}
    used = {category_id: ZERO for category_id in SPENDING_CATEGORIES}

    for txn in transactions:
        amount = parse_amount(txn.amount)

        if txn.direction is TransactionDirection.INCOME:
            total_income += amount
            for category_id in SPENDING_CATEGORIES:
                limits[category_id] += amount * CATEGORIES[category_id].pct
        else:
            total_expense += amount
            category_id = spending_category(txn.category)
            if category_id is not None:
                used[category_id] += amount

    budgets = {
        category_id: BudgetBucket(
            limit=limits[category_id],
            used=used[category_id],
            remaining=limits[category_id] - used[category_id],
        )
        for category_id in SPENDING_CATEGORIES
    }

    return BudgetSummary(
        total_income=total_income,
        total_expense=total_expense,
        balance=total_income - total_expense,
        budgets=budgets,
    )


def summarize_period(
    transactions: Iterable[Transaction],
    period: Period,
) -> BudgetSummary:
    """Filter to the period, then summarize."""
    return summarize(filter_by_period(transactions, period))
