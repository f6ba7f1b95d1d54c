"""
Reactive Dashboard State

FinanceDashboard holds the latest snapshot of each collection for the
signed-in account, plus the selected period, and derives everything the
UI shows from them:

    snapshots (transactions, debts, savings) + period  ->  DashboardView

Subscriptions follow the session: they are opened when a session starts
and cancelled when it ends. The transaction summary is recomputed only
when the transaction snapshot or the period changes.

A PermissionDenied from any read or write is sticky. While it is set,
view() raises instead of computing anything; refresh() clears it once
the access rules have been fixed.
"""

import threading
from decimal import Decimal
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from envelope_finance.budget import (
    PeriodSummaryMemo,
    debts_by_direction,
    outstanding_total,
    savings_recommendation,
    spending_breakdown,
    total_savings,
)
from envelope_finance.config import AppSettings, get_settings
from envelope_finance.identity import Session, SessionManager, ensure_active
from envelope_finance.models.ledger import (
    BudgetSummary,
    ChartSlice,
    Debt,
    DebtDirection,
    Period,
    RecordKind,
    SavingsDeposit,
    Snapshot,
    Transaction,
)
from envelope_finance.services.storage import (
    LedgerStorageInterface,
    PermissionDenied,
    StorageError,
    Subscription,
)
from envelope_finance.validation import InvalidEntry


logger = structlog.get_logger(__name__)


class DashboardView(BaseModel):
    """Everything the presentation layer renders for one period."""
    model_config = ConfigDict(frozen=True)

    period: Period
    loading: bool
    transactions: list[Transaction]
    summary: BudgetSummary
    chart: list[ChartSlice]
    debts: list[Debt]
    payables: list[Debt]
    receivables: list[Debt]
    outstanding_payable: Decimal
    outstanding_receivable: Decimal
    savings: list[SavingsDeposit]
    total_savings: Decimal
    savings_recommendation: Decimal
    sync_error: Optional[str] = None


class FinanceDashboard:
    """Snapshot store and view derivation for the signed-in account."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        sessions: SessionManager,
        period: Optional[Period] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().app
        self._lock = threading.RLock()
        self._session: Optional[Session] = None
        self._subscriptions: list[Subscription] = []
        self._snapshots: dict[RecordKind, Snapshot] = {}
        self._period = period or Period.current()
        self._memo = PeriodSummaryMemo()
        self._permission_error: Optional[PermissionDenied] = None
        self._sync_error: Optional[StorageError] = None
        self._unsubscribe = sessions.on_change(self._on_session_change)

    # ==================== State ====================

    @property
    def period(self) -> Period:
        with self._lock:
            return self._period

    @property
    def permission_denied(self) -> bool:
        with self._lock:
            return self._permission_error is not None

    @property
    def loading(self) -> bool:
        """True until every collection has delivered its first snapshot."""
        with self._lock:
            return any(kind not in self._snapshots for kind in RecordKind)

    @property
    def memo(self) -> PeriodSummaryMemo:
        return self._memo

    def select_period(self, month: int, year: int) -> Period:
        """Switch the active month. year must be one of the supported years."""
        if year not in self._settings.supported_years_list:
            raise InvalidEntry(f"Unsupported year: {year}", field="year")
        try:
            period = Period(month=month, year=year)
        except ValidationError:
            raise InvalidEntry(f"Invalid month: {month}", field="month")
        with self._lock:
            self._period = period
        return period

    # ==================== Session wiring ====================

    def _on_session_change(self, session: Optional[Session]) -> None:
        self._stop()
        if session is not None:
            self._start(session)

    def _start(self, session: Session) -> None:
        with self._lock:
            self._session = session
        subscriptions = [
            self._storage.subscribe(session, kind, self._on_snapshot, self.handle_error)
            for kind in RecordKind
        ]
        with self._lock:
            self._subscriptions = subscriptions
        logger.info("dashboard_subscribed", account_id=session.account_id)

    def _stop(self) -> None:
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
            session, self._session = self._session, None
            self._snapshots.clear()
            self._sync_error = None
        for subscription in subscriptions:
            subscription.cancel()
        self._memo.clear()
        if session is not None:
            logger.info("dashboard_unsubscribed", account_id=session.account_id)

    def refresh(self) -> None:
        """Drop all state, clear a permission failure and resubscribe."""
        with self._lock:
            session = self._session
            self._permission_error = None
        self._stop()
        if session is not None and session.is_active:
            self._start(session)

    def close(self) -> None:
        self._unsubscribe()
        self._stop()

    # ==================== Provider callbacks ====================

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        with self._lock:
            if self._session is None or snapshot.account_id != self._session.account_id:
                return
            self._snapshots[snapshot.kind] = snapshot
            self._sync_error = None
        logger.debug(
            "snapshot_received",
            kind=snapshot.kind.value,
            sequence=snapshot.sequence,
            count=len(snapshot.records),
        )

    def handle_error(self, error: Exception) -> None:
        """Record a provider failure from a subscription or a write flow."""
        with self._lock:
            if isinstance(error, PermissionDenied):
                self._permission_error = error
            else:
                self._sync_error = error
        if isinstance(error, PermissionDenied):
            logger.error("permission_denied", error=str(error))
        else:
            logger.warning("sync_failed", error=str(error))

    # ==================== Derivation ====================

    def view(self) -> DashboardView:
        """
        Derive the current view.

        Raises:
            PermissionDenied: while a permission failure is pending
            NotSignedIn: when no session is active
        """
        with self._lock:
            if self._permission_error is not None:
                raise self._permission_error
            ensure_active(self._session)
            snapshots = dict(self._snapshots)
            period = self._period
            sync_error = str(self._sync_error) if self._sync_error else None

        def records(kind: RecordKind) -> tuple:
            snapshot = snapshots.get(kind)
            return snapshot.records if snapshot is not None else ()

        transactions, summary = self._memo.get(records(RecordKind.TRANSACTIONS), period)
        debts = list(records(RecordKind.DEBTS))
        savings = list(records(RecordKind.SAVINGS))

        return DashboardView(
            period=period,
            loading=any(kind not in snapshots for kind in RecordKind),
            transactions=transactions,
            summary=summary,
            chart=spending_breakdown(summary),
            debts=debts,
            payables=debts_by_direction(debts, DebtDirection.PAYABLE),
            receivables=debts_by_direction(debts, DebtDirection.RECEIVABLE),
            outstanding_payable=outstanding_total(debts, DebtDirection.PAYABLE),
            outstanding_receivable=outstanding_total(debts, DebtDirection.RECEIVABLE),
            savings=savings,
            total_savings=total_savings(savings),
            savings_recommendation=savings_recommendation(summary),
            sync_error=sync_error,
        )
