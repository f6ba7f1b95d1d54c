"""
Tests for the Google Sheets backend.

gspread is never contacted: the client is a MagicMock handing out
in-memory worksheets.
"""

import threading
import time
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import gspread
import pytest
from tenacity import wait_none

from envelope_finance.models.audit import AuditEventBuilder
from envelope_finance.models.ledger import (
    DebtDirection,
    DebtInput,
    RecordKind,
    SavingsInput,
    TransactionInput,
)
from envelope_finance.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    NotFoundError,
    PermissionDenied,
    SyncFailure,
)
from envelope_finance.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    COLUMNS,
    record_to_row,
    row_to_record,
    translate_error,
)

from helpers import make_debt, make_saving, make_transaction


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage code."""

    def __init__(self, header):
        self.rows = [list(header)]
        self.append_calls = 0

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.append_calls += 1
        self.rows.append([str(v) for v in row])

    def row_values(self, row):
        if 1 <= row <= len(self.rows):
            return list(self.rows[row - 1])
        return []

    def update_cell(self, row, col, value):
        self.rows[row - 1][col - 1] = value

    def delete_rows(self, index):
        del self.rows[index - 1]


def api_error(status: int) -> gspread.exceptions.APIError:
    response = MagicMock()
    response.status_code = status
    response.text = "error"
    response.json.return_value = {
        "error": {"code": status, "message": "error", "status": "PERMISSION_DENIED"}
    }
    return gspread.exceptions.APIError(response)


@pytest.fixture
def sheets():
    return {kind: FakeWorksheet(COLUMNS[kind]) for kind in RecordKind}


@pytest.fixture
def client(sheets):
    client = MagicMock()
    client.get_worksheet.side_effect = lambda kind: sheets[kind]
    client.get_audit_sheet.return_value = FakeWorksheet(AUDIT_COLUMNS)
    return client


@pytest.fixture
def ledger(client):
    return GoogleSheetsLedgerStorage(client, poll_seconds=0.05)


def expense_input(amount="50000", day=date(2026, 10, 5)):
    return TransactionInput(amount=Decimal(amount), direction="out", category="OPS", occurs_on=day)


class TestRowMapping:
    """Records survive a trip through a spreadsheet row."""

    @pytest.mark.parametrize("kind, record", [
        (RecordKind.TRANSACTIONS, make_transaction("1500.50", category="SOCIAL")),
        (RecordKind.DEBTS, make_debt(200000, DebtDirection.RECEIVABLE, is_paid=True)),
        (RecordKind.SAVINGS, make_saving(75000)),
    ])
    def test_row_mapping(self, kind, record):
        row = record_to_row(kind, "acct", record)
        assert row[1] == "acct"
        assert len(row) == len(COLUMNS[kind])
        assert row_to_record(kind, [str(v) for v in row]) == record

    def test_missing_trailing_columns(self):
        row = ["t1", "acct", "100", "in", "INCOME", "2026-10-01"]
        tx = row_to_record(RecordKind.TRANSACTIONS, row)
        assert tx.description == ""
        assert tx.created_at is None


class TestErrorTranslation:
    """Provider errors are mapped once at the boundary."""

    def test_forbidden_is_permission_denied(self):
        assert isinstance(translate_error(api_error(403), "read"), PermissionDenied)

    def test_other_api_errors_are_sync_failures(self):
        assert isinstance(translate_error(api_error(500), "read"), SyncFailure)
        assert isinstance(translate_error(RuntimeError("socket closed"), "read"), SyncFailure)

    def test_storage_errors_pass_through(self):
        error = NotFoundError("gone")
        assert translate_error(error, "read") is error


class TestGoogleSheetsLedgerStorage:
    """CRUD against fake worksheets."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        tx = await ledger.create_transaction(session, expense_input())

        assert sheets[RecordKind.TRANSACTIONS].rows[1][0] == tx.id
        assert sheets[RecordKind.TRANSACTIONS].rows[1][1] == session.account_id
        assert await ledger.list_records(session, RecordKind.TRANSACTIONS) == [tx]

    @pytest.mark.asyncio
    async def test_list_is_scoped_and_skips_malformed_rows(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        sheet = sheets[RecordKind.SAVINGS]
        sheet.rows.append(["s1", session.account_id, "100", "Bank", "2026-01-01", "", ""])
        sheet.rows.append(["s2", "someone-else", "100", "Bank", "2026-01-01", "", ""])
        sheet.rows.append(["s3", session.account_id, "not-a-number", "Bank", "2026-01-01", "", ""])
        sheet.rows.append(["s4", session.account_id, "5", "Wallet", "2026-03-01", "", ""])

        savings = await ledger.list_records(session, RecordKind.SAVINGS)

        assert [s.id for s in savings] == ["s4", "s1"]

    @pytest.mark.asyncio
    async def test_set_debt_paid(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        debt = await ledger.create_debt(
            session,
            DebtInput(
                counterparty_name="Sari",
                amount=Decimal("1000"),
                direction="payable",
                incurred_on=date(2026, 10, 1),
            ),
        )

        updated = await ledger.set_debt_paid(session, debt.id, True)

        assert updated.is_paid is True
        assert sheets[RecordKind.DEBTS].rows[1][7] == "TRUE"

    @pytest.mark.asyncio
    async def test_set_debt_paid_other_account_not_found(self, ledger, sessions, sheets):
        sheets[RecordKind.DEBTS].rows.append(
            ["d1", "someone-else", "X", "10", "payable", "2026-10-01", "", "FALSE", ""]
        )
        session = sessions.sign_in_anonymously()
        with pytest.raises(NotFoundError):
            await ledger.set_debt_paid(session, "d1", True)

    @pytest.mark.asyncio
    async def test_delete(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        saving = await ledger.create_saving(
            session,
            SavingsInput(amount=Decimal("10"), location="Bank", occurs_on=date(2026, 10, 1)),
        )

        assert await ledger.delete_record(session, RecordKind.SAVINGS, saving.id) is True
        assert await ledger.delete_record(session, RecordKind.SAVINGS, saving.id) is False
        assert len(sheets[RecordKind.SAVINGS].rows) == 1

    @pytest.mark.asyncio
    async def test_permission_denied_is_not_retried(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        sheet = sheets[RecordKind.TRANSACTIONS]
        sheet.append_row = MagicMock(side_effect=api_error(403))

        with pytest.raises(PermissionDenied):
            await ledger.create_transaction(session, expense_input())
        assert sheet.append_row.call_count == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        sheet = sheets[RecordKind.TRANSACTIONS]
        sheet.append_row = MagicMock(side_effect=[api_error(503), api_error(503), None])

        create = GoogleSheetsLedgerStorage.create_transaction.retry_with(wait=wait_none())
        await create(ledger, session, expense_input())

        assert sheet.append_row.call_count == 3

    @pytest.mark.asyncio
    async def test_transient_failure_gives_up(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        sheet = sheets[RecordKind.TRANSACTIONS]
        sheet.append_row = MagicMock(side_effect=api_error(500))

        create = GoogleSheetsLedgerStorage.create_transaction.retry_with(wait=wait_none())
        with pytest.raises(SyncFailure):
            await create(ledger, session, expense_input())
        assert sheet.append_row.call_count == 3

    @pytest.mark.asyncio
    async def test_delete_rechecks_row_shifted_by_concurrent_delete(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        sheet = sheets[RecordKind.SAVINGS]
        other_first = ["s0", "someone-else", "5", "Bank", "2026-01-01", "", ""]
        ours = ["s1", session.account_id, "10", "Bank", "2026-01-02", "", ""]
        other_last = ["s2", "someone-else", "7", "Bank", "2026-01-03", "", ""]
        sheet.rows.extend([other_first, ours, other_last])

        read_all = sheet.get_all_values

        def read_then_other_client_deletes():
            rows = read_all()
            if other_first in sheet.rows:
                sheet.rows.remove(other_first)
            return rows

        sheet.get_all_values = read_then_other_client_deletes

        delete = GoogleSheetsLedgerStorage.delete_record.retry_with(wait=wait_none())
        assert await delete(ledger, session, RecordKind.SAVINGS, "s1") is True

        assert sheet.rows[1:] == [other_last]

    @pytest.mark.asyncio
    async def test_update_refuses_row_that_moved(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        sheet = sheets[RecordKind.DEBTS]
        sheet.rows.append(["d1", session.account_id, "Budi", "10", "payable", "2026-10-01", "", "FALSE", ""])
        sheet.row_values = MagicMock(return_value=["d9", "someone-else"])

        update = GoogleSheetsLedgerStorage.set_debt_paid.retry_with(wait=wait_none())
        with pytest.raises(SyncFailure):
            await update(ledger, session, "d1", True)

        assert sheet.row_values.call_count == 3
        assert sheet.rows[1][7] == "FALSE"
        assert sheet.append_row.call_count == 3


def wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


class TestPollingSubscription:
    """Subscriptions poll the worksheet on a background thread."""

    def test_delivers_initial_and_changed_snapshots(self, ledger, sessions, sheets):
        session = sessions.sign_in_anonymously()
        snapshots = []
        lock = threading.Lock()

        def on_snapshot(snapshot):
            with lock:
                snapshots.append(snapshot)

        subscription = ledger.subscribe(session, RecordKind.SAVINGS, on_snapshot)
        try:
            assert wait_for(lambda: len(snapshots) == 1)
            assert snapshots[0].records == ()

            time.sleep(0.2)
            assert len(snapshots) == 1

            sheets[RecordKind.SAVINGS].rows.append(
                ["s1", session.account_id, "100", "Bank", "2026-01-01", "", ""]
            )
            assert wait_for(lambda: len(snapshots) == 2)
            assert snapshots[1].sequence == 2
            assert snapshots[1].records[0].id == "s1"
        finally:
            subscription.cancel()

        sheets[RecordKind.SAVINGS].rows.append(
            ["s2", session.account_id, "100", "Bank", "2026-01-02", "", ""]
        )
        time.sleep(0.2)
        assert len(snapshots) == 2

    def test_permission_denied_reported_and_polling_stops(self, ledger, client, sessions):
        session = sessions.sign_in_anonymously()
        client.get_worksheet.side_effect = api_error(403)
        errors = []

        subscription = ledger.subscribe(session, RecordKind.DEBTS, lambda s: None, errors.append)
        try:
            assert wait_for(lambda: len(errors) == 1)
            time.sleep(0.2)
            assert len(errors) == 1
            assert isinstance(errors[0], PermissionDenied)
        finally:
            subscription.cancel()


class TestGoogleSheetsAuditStorage:
    """Append-only audit sheet."""

    @pytest.mark.asyncio
    async def test_append_and_read_back(self, client):
        audit = GoogleSheetsAuditStorage(client)
        first = AuditEventBuilder.record_created("transaction", "t1", "acct", "100")
        other = AuditEventBuilder.record_deleted("debt", "d1", "other")

        assert await audit.append_event(first) is True
        assert await audit.append_event(other) is True

        events = await audit.get_recent_events(account_id="acct")
        assert [e.event_id for e in events] == [first.event_id]
        assert events[0].details == {"amount": "100"}

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self, client):
        client.get_audit_sheet.side_effect = api_error(500)
        audit = GoogleSheetsAuditStorage(client)

        assert await audit.append_event(AuditEventBuilder.session_ended("acct")) is False
