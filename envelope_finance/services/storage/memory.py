"""
In-Memory Ledger Storage

Used for offline runs and tests. Behaves like the hosted backend from the
caller's point of view: per-account scoping, provider ordering, snapshot
push on every write, and the same error types.

Two hooks make failure paths reproducible:
- denied_accounts: any account listed here gets PermissionDenied
- fail_next_write(): the next write raises SyncFailure
"""

import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from uuid import uuid4

import structlog

from envelope_finance.identity import Session, ensure_active
from envelope_finance.models.audit import AuditEvent
from envelope_finance.models.ledger import (
    Debt,
    DebtInput,
    RecordKind,
    SavingsDeposit,
    SavingsInput,
    Transaction,
    TransactionInput,
)
from envelope_finance.services.storage.interface import (
    AuditStorageInterface,
    ErrorCallback,
    LedgerStorageInterface,
    NotFoundError,
    PermissionDenied,
    SnapshotCallback,
    SyncFailure,
    sort_records,
)
from envelope_finance.services.storage.subscription import Subscription


logger = structlog.get_logger(__name__)

_Key = tuple[str, RecordKind]


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Thread-safe dict-backed ledger storage."""

    def __init__(self, denied_accounts: Optional[Iterable[str]] = None):
        self._lock = threading.RLock()
        self._records: dict[_Key, dict[str, Any]] = defaultdict(dict)
        self._subscriptions: dict[_Key, list[Subscription]] = defaultdict(list)
        self._revisions: dict[_Key, int] = defaultdict(int)
        self._pending_failure: Optional[str] = None
        self.denied_accounts: set[str] = set(denied_accounts or ())

    def fail_next_write(self, reason: str = "simulated provider outage") -> None:
        self._pending_failure = reason

    def subscriber_count(self, account_id: str, kind: RecordKind) -> int:
        with self._lock:
            return len(self._subscriptions[(account_id, kind)])

    # ==================== Helpers ====================

    def _authorize(self, session: Optional[Session], action: str) -> str:
        account_id = ensure_active(session).account_id
        if account_id in self.denied_accounts:
            raise PermissionDenied(f"Missing or insufficient permissions to {action}")
        return account_id

    def _consume_failure(self, action: str) -> None:
        with self._lock:
            reason, self._pending_failure = self._pending_failure, None
        if reason is not None:
            raise SyncFailure(f"Failed to {action}: {reason}")

    def _ordered(self, key: _Key) -> list:
        return sort_records(key[1], self._records[key].values())

    def _publish(self, key: _Key) -> None:
        with self._lock:
            records = self._ordered(key)
            revision = self._revisions[key]
            subscribers = list(self._subscriptions[key])
        # A callback may write again before this loop finishes; the
        # revision lets each subscription drop the older list.
        for subscription in subscribers:
            subscription.deliver(records, revision)

    def _store(self, account_id: str, kind: RecordKind, record: Any) -> Any:
        key = (account_id, kind)
        with self._lock:
            self._records[key][record.id] = record
            self._revisions[key] += 1
        logger.debug("record_stored", kind=kind.value, record_id=record.id)
        self._publish(key)
        return record

    @staticmethod
    def _new_fields() -> dict:
        return {"id": uuid4().hex, "created_at": datetime.now(timezone.utc)}

    # ==================== Reads ====================

    async def list_records(self, session: Session, kind: RecordKind) -> list:
        account_id = self._authorize(session, f"read {kind.value}")
        with self._lock:
            return self._ordered((account_id, kind))

    # ==================== Writes ====================

    async def create_transaction(
        self,
        session: Session,
        data: TransactionInput,
    ) -> Transaction:
        account_id = self._authorize(session, "create transaction")
        self._consume_failure("create transaction")
        record = Transaction(**self._new_fields(), **data.model_dump(mode="json"))
        return self._store(account_id, RecordKind.TRANSACTIONS, record)

    async def create_debt(self, session: Session, data: DebtInput) -> Debt:
        account_id = self._authorize(session, "create debt")
        self._consume_failure("create debt")
        record = Debt(**self._new_fields(), **data.model_dump(mode="json"), is_paid=False)
        return self._store(account_id, RecordKind.DEBTS, record)

    async def create_saving(
        self,
        session: Session,
        data: SavingsInput,
    ) -> SavingsDeposit:
        account_id = self._authorize(session, "create saving")
        self._consume_failure("create saving")
        record = SavingsDeposit(**self._new_fields(), **data.model_dump(mode="json"))
        return self._store(account_id, RecordKind.SAVINGS, record)

    async def set_debt_paid(
        self,
        session: Session,
        debt_id: str,
        is_paid: bool,
    ) -> Debt:
        account_id = self._authorize(session, "update debt")
        self._consume_failure("update debt")
        key = (account_id, RecordKind.DEBTS)
        with self._lock:
            current = self._records[key].get(debt_id)
            if current is None:
                raise NotFoundError(f"Debt {debt_id} not found")
            updated = current.model_copy(update={"is_paid": is_paid})
        return self._store(account_id, RecordKind.DEBTS, updated)

    async def delete_record(
        self,
        session: Session,
        kind: RecordKind,
        record_id: str,
    ) -> bool:
        account_id = self._authorize(session, f"delete from {kind.value}")
        self._consume_failure(f"delete from {kind.value}")
        key = (account_id, kind)
        with self._lock:
            removed = self._records[key].pop(record_id, None)
            if removed is None:
                return False
            self._revisions[key] += 1
        self._publish(key)
        return True

    # ==================== Subscriptions ====================

    def subscribe(
        self,
        session: Session,
        kind: RecordKind,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        account_id = ensure_active(session).account_id
        key = (account_id, kind)

        def release() -> None:
            with self._lock:
                if subscription in self._subscriptions[key]:
                    self._subscriptions[key].remove(subscription)

        subscription = Subscription(kind, account_id, on_snapshot, on_error, on_cancel=release)

        if account_id in self.denied_accounts:
            subscription.fail(
                PermissionDenied(f"Missing or insufficient permissions to read {kind.value}")
            )
            return subscription

        with self._lock:
            self._subscriptions[key].append(subscription)
            records = self._ordered(key)
            revision = self._revisions[key]
        subscription.deliver(records, revision)
        return subscription


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self.events.append(event)
        return True

    async def get_recent_events(
        self,
        limit: int = 100,
        account_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        with self._lock:
            events = [
                e for e in self.events
                if account_id is None or e.account_id == account_id
            ]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
