"""
Google Sheets Storage Implementation

The hosted backend is a single spreadsheet with one worksheet per record
kind (Transactions, Debts, Savings) plus an append-only AuditLog sheet.
Every ledger row carries the owning account_id in its second column, and
all reads filter on it, so one spreadsheet can hold many accounts.

TRADEOFFS:
- Sheets has no push notifications, so subscriptions poll the worksheet
  and deliver a snapshot only when the rows actually changed
- No transactions; each write is a single append/update/delete call
- Filtering and ordering happen in Python

A 403 from the Sheets API becomes PermissionDenied and is never retried.
Everything else becomes SyncFailure and write paths retry it with
exponential backoff.
"""

import json
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from envelope_finance.config import GoogleSheetsSettings, get_settings
from envelope_finance.identity import Session, ensure_active
from envelope_finance.models.audit import AuditEvent, AuditEventType, AuditSeverity
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
    ConnectionError,
    ErrorCallback,
    LedgerStorageInterface,
    NotFoundError,
    PermissionDenied,
    SnapshotCallback,
    StorageError,
    SyncFailure,
    sort_records,
)
from envelope_finance.services.storage.subscription import Subscription


logger = structlog.get_logger(__name__)


TRANSACTION_COLUMNS = [
    "id",
    "account_id",
    "amount",
    "direction",
    "category",
    "occurs_on",
    "description",
    "method",
    "created_at",
]

DEBT_COLUMNS = [
    "id",
    "account_id",
    "counterparty_name",
    "amount",
    "direction",
    "incurred_on",
    "description",
    "is_paid",
    "created_at",
]

SAVINGS_COLUMNS = [
    "id",
    "account_id",
    "amount",
    "location",
    "occurs_on",
    "note",
    "created_at",
]

COLUMNS = {
    RecordKind.TRANSACTIONS: TRANSACTION_COLUMNS,
    RecordKind.DEBTS: DEBT_COLUMNS,
    RecordKind.SAVINGS: SAVINGS_COLUMNS,
}

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "account_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# 1-based column of Debt.is_paid in the Debts sheet
IS_PAID_COLUMN = DEBT_COLUMNS.index("is_paid") + 1

write_retry = retry(
    retry=retry_if_exception_type(SyncFailure),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _status_code(exc: Exception) -> Optional[int]:
    code = getattr(exc, "code", None)
    if code is None:
        response = getattr(exc, "response", None)
        code = getattr(response, "status_code", None)
    return code


def translate_error(exc: Exception, action: str) -> StorageError:
    """Map a gspread/transport exception onto the storage error types."""
    if isinstance(exc, StorageError):
        return exc
    if isinstance(exc, gspread.exceptions.APIError) and _status_code(exc) == 403:
        return PermissionDenied(f"Missing or insufficient permissions to {action}: {exc}")
    return SyncFailure(f"Failed to {action}: {exc}")


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _optional_datetime(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily creates missing worksheets.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        self._lock = threading.Lock()

    @retry(
        retry=retry_if_exception_type(ConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        with self._lock:
            try:
                return spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
                sheet.append_row(columns)
                logger.info("worksheet_created", title=title)
                return sheet

    def get_worksheet(self, kind: RecordKind) -> gspread.Worksheet:
        """Get or create the worksheet holding one record kind."""
        titles = {
            RecordKind.TRANSACTIONS: self._settings.transactions_sheet_name,
            RecordKind.DEBTS: self._settings.debts_sheet_name,
            RecordKind.SAVINGS: self._settings.savings_sheet_name,
        }
        return self._get_or_create(titles[kind], COLUMNS[kind], rows=1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


# =============================================================================
# Row mapping
# =============================================================================

def record_to_row(kind: RecordKind, account_id: str, record: Any) -> list:
    """Convert a stored record to a spreadsheet row."""
    created_at = record.created_at.isoformat() if record.created_at else ""
    if kind is RecordKind.TRANSACTIONS:
        return [
            record.id,
            account_id,
            str(record.amount),
            record.direction.value,
            record.category,
            record.occurs_on.isoformat(),
            record.description,
            record.method,
            created_at,
        ]
    if kind is RecordKind.DEBTS:
        return [
            record.id,
            account_id,
            record.counterparty_name,
            str(record.amount),
            record.direction.value,
            record.incurred_on.isoformat(),
            record.description,
            "TRUE" if record.is_paid else "FALSE",
            created_at,
        ]
    return [
        record.id,
        account_id,
        str(record.amount),
        record.location,
        record.occurs_on.isoformat(),
        record.note,
        created_at,
    ]


def row_to_record(kind: RecordKind, row: list) -> Any:
    """Convert a spreadsheet row back to a stored record."""
    get = lambda index: _safe_get(row, index)
    if kind is RecordKind.TRANSACTIONS:
        return Transaction(
            id=get(0),
            amount=Decimal(get(2)),
            direction=get(3),
            category=get(4),
            occurs_on=date.fromisoformat(get(5)),
            description=get(6),
            method=get(7),
            created_at=_optional_datetime(get(8)),
        )
    if kind is RecordKind.DEBTS:
        return Debt(
            id=get(0),
            counterparty_name=get(2),
            amount=Decimal(get(3)),
            direction=get(4),
            incurred_on=date.fromisoformat(get(5)),
            description=get(6),
            is_paid=get(7).upper() == "TRUE",
            created_at=_optional_datetime(get(8)),
        )
    return SavingsDeposit(
        id=get(0),
        amount=Decimal(get(2)),
        location=get(3),
        occurs_on=date.fromisoformat(get(4)),
        note=get(5),
        created_at=_optional_datetime(get(6)),
    )


# =============================================================================
# Polling
# =============================================================================

class SheetPoller:
    """
    Background thread that re-reads one account's rows of one worksheet.

    A snapshot is delivered on the first read and afterwards only when
    the rows differ from the previous read. PermissionDenied ends polling;
    other failures are reported and polling continues.
    """

    def __init__(self, fetch: Callable[[], list], interval: float, name: str):
        self._fetch = fetch
        self._interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._subscription: Optional[Subscription] = None
        self._fingerprint: Optional[tuple] = None

    def start(self, subscription: Subscription) -> None:
        self._subscription = subscription
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def poll_once(self) -> bool:
        """Run a single read. Returns False when polling should end."""
        try:
            records = self._fetch()
        except PermissionDenied as e:
            self._subscription.fail(e)
            return False
        except StorageError as e:
            self._subscription.fail(e)
            return True

        fingerprint = tuple(record.model_dump_json() for record in records)
        if fingerprint != self._fingerprint:
            self._fingerprint = fingerprint
            self._subscription.deliver(records)
        return True

    def _run(self) -> None:
        while not self._stop.is_set():
            if not self.poll_once():
                break
            self._stop.wait(self._interval)


# =============================================================================
# Ledger storage
# =============================================================================

class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One record per row; the account_id column scopes every read and write.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        poll_seconds: Optional[float] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._poll_seconds = (
            poll_seconds
            if poll_seconds is not None
            else get_settings().app.snapshot_poll_seconds
        )

    def _read(self, account_id: str, kind: RecordKind) -> list:
        try:
            rows = self._client.get_worksheet(kind).get_all_values()[1:]
        except Exception as e:
            raise translate_error(e, f"read {kind.value}")

        records = []
        for row in rows:
            if not row or not row[0] or _safe_get(row, 1) != account_id:
                continue
            try:
                records.append(row_to_record(kind, row))
            except Exception as e:
                logger.warning(
                    "malformed_row_skipped",
                    kind=kind.value,
                    record_id=row[0],
                    error=str(e),
                )
        return sort_records(kind, records)

    def _find_row(self, sheet: gspread.Worksheet, account_id: str, record_id: str) -> Optional[tuple[int, list]]:
        all_rows = sheet.get_all_values()
        # Row 1 is the header
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == record_id and _safe_get(row, 1) == account_id:
                return idx, row
        return None

    def _confirm_row(
        self,
        sheet: gspread.Worksheet,
        idx: int,
        account_id: str,
        record_id: str,
    ) -> None:
        """
        Re-read one row right before changing it. Other accounts share the
        worksheet, so a concurrent delete can shift rows after _find_row.
        A moved row raises SyncFailure and the retry looks it up again.
        """
        row = sheet.row_values(idx)
        if not row or row[0] != record_id or _safe_get(row, 1) != account_id:
            logger.warning("row_moved", row=idx, record_id=record_id)
            raise SyncFailure(f"Row for {record_id} moved before it could be changed")

    def _append(self, account_id: str, kind: RecordKind, record: Any) -> Any:
        try:
            sheet = self._client.get_worksheet(kind)
            sheet.append_row(record_to_row(kind, account_id, record), value_input_option="RAW")
        except Exception as e:
            raise translate_error(e, f"create {kind.value}")
        logger.info("record_appended", kind=kind.value, record_id=record.id)
        return record

    @staticmethod
    def _new_fields() -> dict:
        return {"id": uuid4().hex, "created_at": datetime.now(timezone.utc)}

    async def list_records(self, session: Session, kind: RecordKind) -> list:
        return self._read(ensure_active(session).account_id, kind)

    @write_retry
    async def create_transaction(
        self,
        session: Session,
        data: TransactionInput,
    ) -> Transaction:
        account_id = ensure_active(session).account_id
        record = Transaction(**self._new_fields(), **data.model_dump(mode="json"))
        return self._append(account_id, RecordKind.TRANSACTIONS, record)

    @write_retry
    async def create_debt(self, session: Session, data: DebtInput) -> Debt:
        account_id = ensure_active(session).account_id
        record = Debt(**self._new_fields(), **data.model_dump(mode="json"), is_paid=False)
        return self._append(account_id, RecordKind.DEBTS, record)

    @write_retry
    async def create_saving(
        self,
        session: Session,
        data: SavingsInput,
    ) -> SavingsDeposit:
        account_id = ensure_active(session).account_id
        record = SavingsDeposit(**self._new_fields(), **data.model_dump(mode="json"))
        return self._append(account_id, RecordKind.SAVINGS, record)

    @write_retry
    async def set_debt_paid(
        self,
        session: Session,
        debt_id: str,
        is_paid: bool,
    ) -> Debt:
        account_id = ensure_active(session).account_id
        try:
            sheet = self._client.get_worksheet(RecordKind.DEBTS)
            found = self._find_row(sheet, account_id, debt_id)
            if found is None:
                raise NotFoundError(f"Debt {debt_id} not found")
            idx, row = found
            self._confirm_row(sheet, idx, account_id, debt_id)
            sheet.update_cell(idx, IS_PAID_COLUMN, "TRUE" if is_paid else "FALSE")
        except NotFoundError:
            raise
        except Exception as e:
            raise translate_error(e, "update debt")

        debt = row_to_record(RecordKind.DEBTS, row)
        return debt.model_copy(update={"is_paid": is_paid})

    @write_retry
    async def delete_record(
        self,
        session: Session,
        kind: RecordKind,
        record_id: str,
    ) -> bool:
        account_id = ensure_active(session).account_id
        try:
            sheet = self._client.get_worksheet(kind)
            found = self._find_row(sheet, account_id, record_id)
            if found is None:
                return False
            self._confirm_row(sheet, found[0], account_id, record_id)
            sheet.delete_rows(found[0])
        except Exception as e:
            raise translate_error(e, f"delete from {kind.value}")
        logger.info("record_deleted", kind=kind.value, record_id=record_id)
        return True

    def subscribe(
        self,
        session: Session,
        kind: RecordKind,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        account_id = ensure_active(session).account_id
        poller = SheetPoller(
            fetch=lambda: self._read(account_id, kind),
            interval=self._poll_seconds,
            name=f"sheets-poll-{kind.value}",
        )
        subscription = Subscription(
            kind,
            account_id,
            on_snapshot,
            on_error,
            on_cancel=poller.stop,
        )
        poller.start(subscription)
        return subscription


# =============================================================================
# Audit storage
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        get = lambda index: _safe_get(row, index)
        return AuditEvent(
            event_id=UUID(get(0)),
            timestamp=datetime.fromisoformat(get(1)),
            event_type=AuditEventType(get(2)),
            severity=AuditSeverity(get(3)),
            entity_type=get(4) or None,
            entity_id=get(5) or None,
            account_id=get(6) or None,
            description=get(7),
            details=json.loads(get(8)) if get(8) else {},
            error_message=get(9) or None,
            is_user_action=get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, never raised."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            logger.warning(
                "audit_write_failed",
                event_type=event.event_type.value,
                error=str(e),
            )
            return False

    async def get_recent_events(
        self,
        limit: int = 100,
        account_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise translate_error(e, "read audit log")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            if account_id is not None and _safe_get(row, 6) != account_id:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
