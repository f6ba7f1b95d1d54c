"""
Main Orchestrator for Envelope Finance

This module ties the components together and defines the end-to-end
flows behind every button in the UI:
1. Identity (sign in → session → dashboard subscribes; sign out → cancel)
2. Ledger writes (raw input → validate → persist → audit)

The orchestrator enforces the boundaries:
- Nothing reaches storage without passing validation
- Provider errors are reported to the dashboard and re-raised unchanged
- Every change is audited
"""

from datetime import date
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from envelope_finance.audit import AuditLogger
from envelope_finance.config import get_settings
from envelope_finance.dashboard import FinanceDashboard
from envelope_finance.identity import Session, SessionManager
from envelope_finance.models.ledger import (
    CategoryId,
    Debt,
    DebtDirection,
    RecordKind,
    SavingsDeposit,
    Transaction,
    TransactionDirection,
)
from envelope_finance.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    PermissionDenied,
    StorageError,
)
from envelope_finance.validation import EntryValidator, InvalidEntry


logger = structlog.get_logger(__name__)

ErrorListener = Callable[[Exception], None]


class IdentityFlow:
    """Sign-in and sign-out, with an audit trail."""

    def __init__(
        self,
        sessions: SessionManager,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._sessions = sessions
        self._audit_logger = audit_logger

    async def sign_in_anonymously(self) -> Session:
        session = self._sessions.sign_in_anonymously()
        if self._audit_logger:
            await self._audit_logger.log_session_started(session.account_id, session.method.value)
        return session

    async def sign_in_with_token(self, token: str) -> Session:
        session = self._sessions.sign_in_with_token(token)
        if self._audit_logger:
            await self._audit_logger.log_session_started(session.account_id, session.method.value)
        return session

    async def sign_out(self) -> None:
        session = self._sessions.current
        self._sessions.sign_out()
        if session is not None and self._audit_logger:
            await self._audit_logger.log_session_ended(session.account_id)


class LedgerFlow:
    """
    Orchestrates every write to the ledger.

    Flow:
    1. Require an active session
    2. Validate the raw input (InvalidEntry / InvalidAmount stop here)
    3. Persist through the storage provider
    4. Audit the change

    Provider failures are audited, handed to the error listener (the
    dashboard) and re-raised as-is. Create methods return the stored
    record together with any soft validation warnings.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        sessions: SessionManager,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        error_listener: Optional[ErrorListener] = None,
    ):
        self._storage = storage
        self._sessions = sessions
        self._validator = validator or EntryValidator()
        self._audit_logger = audit_logger
        self._error_listener = error_listener

    # ==================== Transactions ====================

    async def add_transaction(
        self,
        amount: Any,
        direction: Union[TransactionDirection, str],
        occurs_on: date,
        category: Union[CategoryId, str, None] = None,
        description: str = "",
        method: str = "",
    ) -> tuple[Transaction, list[str]]:
        session = self._sessions.require()
        entry, warnings = await self._validate(
            "transaction",
            session,
            lambda: self._validator.transaction(
                amount=amount,
                direction=direction,
                occurs_on=occurs_on,
                category=category,
                description=description,
                method=method,
            ),
        )
        transaction = await self._call(
            session,
            "create transaction",
            lambda: self._storage.create_transaction(session, entry),
        )
        if self._audit_logger:
            await self._audit_logger.log_record_created(
                entity_type="transaction",
                entity_id=transaction.id,
                account_id=session.account_id,
                amount=str(transaction.amount),
                details={
                    "direction": transaction.direction.value,
                    "category": transaction.category,
                },
            )
        return transaction, warnings

    async def delete_transaction(self, transaction_id: str) -> bool:
        return await self._delete(RecordKind.TRANSACTIONS, "transaction", transaction_id)

    # ==================== Debts ====================

    async def add_debt(
        self,
        counterparty_name: str,
        amount: Any,
        direction: Union[DebtDirection, str],
        incurred_on: date,
        description: str = "",
    ) -> tuple[Debt, list[str]]:
        session = self._sessions.require()
        entry, warnings = await self._validate(
            "debt",
            session,
            lambda: self._validator.debt(
                counterparty_name=counterparty_name,
                amount=amount,
                direction=direction,
                incurred_on=incurred_on,
                description=description,
            ),
        )
        debt = await self._call(
            session,
            "create debt",
            lambda: self._storage.create_debt(session, entry),
        )
        if self._audit_logger:
            await self._audit_logger.log_record_created(
                entity_type="debt",
                entity_id=debt.id,
                account_id=session.account_id,
                amount=str(debt.amount),
                details={"direction": debt.direction.value},
            )
        return debt, warnings

    async def toggle_debt_status(self, debt_id: str, current_status: bool) -> Debt:
        """Flip the paid flag: the stored value becomes `not current_status`."""
        session = self._sessions.require()
        debt = await self._call(
            session,
            "update debt",
            lambda: self._storage.set_debt_paid(session, debt_id, not current_status),
        )
        if self._audit_logger:
            await self._audit_logger.log_debt_status_updated(
                debt_id=debt.id,
                account_id=session.account_id,
                is_paid=debt.is_paid,
            )
        return debt

    async def delete_debt(self, debt_id: str) -> bool:
        return await self._delete(RecordKind.DEBTS, "debt", debt_id)

    # ==================== Savings ====================

    async def add_saving(
        self,
        amount: Any,
        location: str,
        occurs_on: date,
        note: str = "",
    ) -> tuple[SavingsDeposit, list[str]]:
        session = self._sessions.require()
        entry, warnings = await self._validate(
            "saving",
            session,
            lambda: self._validator.saving(
                amount=amount,
                location=location,
                occurs_on=occurs_on,
                note=note,
            ),
        )
        saving = await self._call(
            session,
            "create saving",
            lambda: self._storage.create_saving(session, entry),
        )
        if self._audit_logger:
            await self._audit_logger.log_record_created(
                entity_type="saving",
                entity_id=saving.id,
                account_id=session.account_id,
                amount=str(saving.amount),
                details={"location": saving.location},
            )
        return saving, warnings

    async def delete_saving(self, saving_id: str) -> bool:
        return await self._delete(RecordKind.SAVINGS, "saving", saving_id)

    # ==================== Helpers ====================

    async def _validate(self, entity_type: str, session: Session, build: Callable):
        try:
            return build()
        except InvalidEntry as e:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    entity_type=entity_type,
                    account_id=session.account_id,
                    error_message=str(e),
                )
            raise

    async def _delete(self, kind: RecordKind, entity_type: str, record_id: str) -> bool:
        session = self._sessions.require()
        deleted = await self._call(
            session,
            f"delete {entity_type}",
            lambda: self._storage.delete_record(session, kind, record_id),
        )
        if deleted and self._audit_logger:
            await self._audit_logger.log_record_deleted(entity_type, record_id, session.account_id)
        return deleted

    async def _call(
        self,
        session: Session,
        action: str,
        operation: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            return await operation()
        except StorageError as e:
            if self._audit_logger:
                if isinstance(e, PermissionDenied):
                    await self._audit_logger.log_permission_denied(
                        session.account_id, action, str(e)
                    )
                else:
                    await self._audit_logger.log_sync_failed(
                        session.account_id, action, str(e)
                    )
            if self._error_listener:
                self._error_listener(e)
            raise


def create_app_components(
    backend: Optional[str] = None,
) -> tuple[SessionManager, IdentityFlow, LedgerFlow, FinanceDashboard]:
    """
    Factory function to create all application components.

    Args:
        backend: "google_sheets" or "memory". Defaults to the configured
                 storage_backend. If Google Sheets is not configured the
                 in-memory backend is used instead.

    Returns:
        (sessions, identity_flow, ledger_flow, dashboard)
    """
    app_settings = get_settings().app
    backend = backend or app_settings.storage_backend

    ledger_storage = None
    audit_storage = None

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(
                sheets_client,
                poll_seconds=app_settings.snapshot_poll_seconds,
            )
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue offline
            logger.warning("storage_not_configured", error=str(e))

    if ledger_storage is None:
        ledger_storage = InMemoryLedgerStorage()
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    sessions = SessionManager()
    dashboard = FinanceDashboard(ledger_storage, sessions, settings=app_settings)

    identity_flow = IdentityFlow(sessions, audit_logger=audit_logger)
    ledger_flow = LedgerFlow(
        ledger_storage,
        sessions,
        validator=EntryValidator(app_settings),
        audit_logger=audit_logger,
        error_listener=dashboard.handle_error,
    )

    return sessions, identity_flow, ledger_flow, dashboard
