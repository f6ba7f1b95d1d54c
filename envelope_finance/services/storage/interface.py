"""
Abstract Storage Interface

The persistence/sync provider is defined as an abstract interface so that:
1. The hosted backend (Google Sheets today) can be swapped
2. Tests and offline runs use in-memory storage
3. Business logic never sees provider-specific exceptions

Every call takes the caller's Session explicitly and is scoped to that
session's account. Provider errors are translated once, at this boundary:
a refused request becomes PermissionDenied, anything else SyncFailure.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from envelope_finance.identity import Session
from envelope_finance.models.audit import AuditEvent
from envelope_finance.models.ledger import (
    Debt,
    DebtInput,
    RecordKind,
    SavingsDeposit,
    SavingsInput,
    Snapshot,
    Transaction,
    TransactionInput,
)
from envelope_finance.services.storage.subscription import Subscription


SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[["StorageError"], None]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class PermissionDenied(StorageError):
    """The provider refused the request for this session. Needs out-of-band fixing."""
    pass


class SyncFailure(StorageError):
    """Any other provider failure. Recoverable; the user may retry."""
    pass


class ConnectionError(SyncFailure):
    """Could not connect to storage backend."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


def sort_records(kind: RecordKind, records: Iterable[Any]) -> list:
    """
    Provider ordering for snapshots and listings.

    Transactions and savings: newest date first. Debts: newest creation
    time first. created_at breaks ties so the order is stable.
    """
    if kind is RecordKind.DEBTS:
        key = lambda r: r.created_at or _EPOCH
    else:
        key = lambda r: (r.occurs_on, r.created_at or _EPOCH)
    return sorted(records, key=key, reverse=True)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for per-account ledger storage.

    Any storage implementation (Google Sheets, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_records(self, session: Session, kind: RecordKind) -> list:
        """
        Get every record of one kind for the session's account.

        Returns:
            Records in provider order (see sort_records)

        Raises:
            PermissionDenied: if the provider refuses the read
            SyncFailure: on any other provider error
        """
        pass

    @abstractmethod
    async def create_transaction(
        self,
        session: Session,
        data: TransactionInput,
    ) -> Transaction:
        """
        Store a new transaction. The provider assigns id and created_at.

        Raises:
            PermissionDenied, SyncFailure
        """
        pass

    @abstractmethod
    async def create_debt(self, session: Session, data: DebtInput) -> Debt:
        """Store a new, unpaid debt or receivable."""
        pass

    @abstractmethod
    async def create_saving(
        self,
        session: Session,
        data: SavingsInput,
    ) -> SavingsDeposit:
        """Store a new savings deposit."""
        pass

    @abstractmethod
    async def set_debt_paid(
        self,
        session: Session,
        debt_id: str,
        is_paid: bool,
    ) -> Debt:
        """
        Update the paid flag of a debt.

        Returns:
            The debt as stored after the update

        Raises:
            NotFoundError: if the debt doesn't exist for this account
        """
        pass

    @abstractmethod
    async def delete_record(
        self,
        session: Session,
        kind: RecordKind,
        record_id: str,
    ) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if deleted, False if there was nothing to delete
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        session: Session,
        kind: RecordKind,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Watch one collection of the session's account.

        The current snapshot is delivered as soon as it is available, then
        again after every change. Read failures go to on_error.

        Returns:
            A Subscription; cancel() stops delivery.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
        account_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events, optionally for one account.

        Returns:
            List of recent events (newest first)
        """
        pass
