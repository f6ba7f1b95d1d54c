"""Single-entry memo for the period filter and summary."""

import threading
from typing import Optional, Sequence

from envelope_finance.budget.engine import filter_by_period, summarize
from envelope_finance.models.ledger import BudgetSummary, Period, Transaction


class PeriodSummaryMemo:
    """
    Remembers the last (transactions, period) pair and its results.

    Transactions are compared by identity: snapshots hand out a new
    immutable tuple on every change, so identity is the change signal.
    Anything else recomputes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Optional[Sequence[Transaction]] = None
        self._period: Optional[Period] = None
        self._filtered: list[Transaction] = []
        self._summary: Optional[BudgetSummary] = None
        self.computations = 0

    def get(
        self,
        transactions: Sequence[Transaction],
        period: Period,
    ) -> tuple[list[Transaction], BudgetSummary]:
        """Return (filtered_transactions, summary) for the inputs."""
        with self._lock:
            if (
                self._summary is not None
                and self._records is transactions
                and self._period == period
            ):
                return list(self._filtered), self._summary

            filtered = filter_by_period(transactions, period)
            summary = summarize(filtered)

            self._records = transactions
            self._period = period
            self._filtered = filtered
            self._summary = summary
            self.computations += 1
            return list(filtered), summary

    def clear(self) -> None:
        with self._lock:
            self._records = None
            self._period = None
            self._filtered = []
            self._summary = None
