"""Integration tests for the write flows, using in-memory storage."""

from datetime import date
from decimal import Decimal

import pytest

from envelope_finance.audit import AuditLogger
from envelope_finance.dashboard import FinanceDashboard
from envelope_finance.identity import NotSignedIn
from envelope_finance.models.audit import AuditEventType
from envelope_finance.models.ledger import CategoryId, Period, RecordKind
from envelope_finance.orchestrator import IdentityFlow, LedgerFlow, create_app_components
from envelope_finance.services.storage import (
    InMemoryLedgerStorage,
    NotFoundError,
    PermissionDenied,
    SyncFailure,
)
from envelope_finance.validation import EntryValidator, InvalidAmount, InvalidEntry


@pytest.fixture
def dashboard(storage, sessions, app_settings):
    dashboard = FinanceDashboard(storage, sessions, period=Period(month=9, year=2026), settings=app_settings)
    yield dashboard
    dashboard.close()


@pytest.fixture
def flow(storage, sessions, audit_storage, dashboard, app_settings):
    return LedgerFlow(
        storage,
        sessions,
        validator=EntryValidator(app_settings),
        audit_logger=AuditLogger(audit_storage),
        error_listener=dashboard.handle_error,
    )


def event_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


class TestLedgerFlow:
    """Validate → persist → audit."""

    @pytest.mark.asyncio
    async def test_add_transaction(self, flow, sessions, dashboard, audit_storage):
        sessions.sign_in_anonymously()

        tx, warnings = await flow.add_transaction(
            amount="1,000,000",
            direction="in",
            occurs_on=date(2026, 10, 1),
            category="LIVING",
        )

        assert tx.category == CategoryId.INCOME.value
        assert warnings == []
        assert dashboard.view().summary.budgets[CategoryId.SAVING].limit == Decimal("200000")
        assert event_types(audit_storage) == [AuditEventType.TRANSACTION_CREATED]

    @pytest.mark.asyncio
    async def test_invalid_amount_never_reaches_storage(self, flow, sessions, storage, audit_storage):
        session = sessions.sign_in_anonymously()

        with pytest.raises(InvalidAmount):
            await flow.add_transaction(amount="0", direction="out", occurs_on=date(2026, 10, 1), category="OPS")

        assert await storage.list_records(session, RecordKind.TRANSACTIONS) == []
        assert event_types(audit_storage) == [AuditEventType.VALIDATION_FAILED]

    @pytest.mark.asyncio
    async def test_requires_session(self, flow):
        with pytest.raises(NotSignedIn):
            await flow.add_saving(amount=1, location="Bank", occurs_on=date(2026, 10, 1))

    @pytest.mark.asyncio
    async def test_debt_toggle_and_delete(self, flow, sessions, dashboard, audit_storage):
        sessions.sign_in_anonymously()
        debt, _ = await flow.add_debt(
            counterparty_name="Budi",
            amount=200_000,
            direction="payable",
            incurred_on=date(2026, 10, 1),
        )
        assert dashboard.view().outstanding_payable == Decimal("200000")

        toggled = await flow.toggle_debt_status(debt.id, debt.is_paid)
        assert toggled.is_paid is True
        assert dashboard.view().outstanding_payable == 0

        toggled_back = await flow.toggle_debt_status(debt.id, toggled.is_paid)
        assert toggled_back.is_paid is False

        assert await flow.delete_debt(debt.id) is True
        assert dashboard.view().debts == []
        assert event_types(audit_storage) == [
            AuditEventType.DEBT_CREATED,
            AuditEventType.DEBT_STATUS_UPDATED,
            AuditEventType.DEBT_STATUS_UPDATED,
            AuditEventType.DEBT_DELETED,
        ]

    @pytest.mark.asyncio
    async def test_savings_and_transaction_deletes(self, flow, sessions, dashboard):
        sessions.sign_in_anonymously()
        saving, _ = await flow.add_saving(amount="250000", location="Bank Jago", occurs_on=date(2026, 10, 2))
        tx, _ = await flow.add_transaction(
            amount=40_000,
            direction="out",
            occurs_on=date(2026, 10, 3),
            category=CategoryId.SOCIAL,
            method="QRIS",
        )
        assert dashboard.view().total_savings == Decimal("250000")

        assert await flow.delete_saving(saving.id) is True
        assert await flow.delete_transaction(tx.id) is True
        assert await flow.delete_transaction(tx.id) is False

        view = dashboard.view()
        assert view.total_savings == 0
        assert view.transactions == []

    @pytest.mark.asyncio
    async def test_missing_debt_propagates(self, flow, sessions):
        sessions.sign_in_anonymously()
        with pytest.raises(NotFoundError):
            await flow.toggle_debt_status("missing", False)

    @pytest.mark.asyncio
    async def test_sync_failure_propagates_and_is_reported(self, flow, sessions, storage, dashboard, audit_storage):
        sessions.sign_in_anonymously()
        storage.fail_next_write("connection reset")

        with pytest.raises(SyncFailure):
            await flow.add_saving(amount=10, location="Bank", occurs_on=date(2026, 10, 1))

        view = dashboard.view()
        assert "connection reset" in view.sync_error
        assert view.total_savings == 0
        assert event_types(audit_storage) == [AuditEventType.SYNC_FAILED]

    @pytest.mark.asyncio
    async def test_permission_denied_on_write_is_sticky(self, flow, sessions, storage, dashboard):
        session = sessions.sign_in_anonymously()
        storage.denied_accounts.add(session.account_id)

        with pytest.raises(PermissionDenied):
            await flow.add_debt(
                counterparty_name="Budi",
                amount=1,
                direction="receivable",
                incurred_on=date(2026, 10, 1),
            )

        assert dashboard.permission_denied
        with pytest.raises(PermissionDenied):
            dashboard.view()

    @pytest.mark.asyncio
    async def test_invalid_entry_reports_field(self, flow, sessions):
        sessions.sign_in_anonymously()
        with pytest.raises(InvalidEntry) as exc_info:
            await flow.add_debt(counterparty_name="", amount=5, direction="payable", incurred_on=date(2026, 10, 1))
        assert exc_info.value.field == "counterparty_name"


class TestIdentityFlow:
    """Sign-in and sign-out are audited."""

    @pytest.mark.asyncio
    async def test_sign_in_and_out(self, sessions, audit_storage):
        flow = IdentityFlow(sessions, audit_logger=AuditLogger(audit_storage))

        session = await flow.sign_in_with_token("token")
        await flow.sign_out()

        assert not session.is_active
        assert event_types(audit_storage) == [
            AuditEventType.SESSION_STARTED,
            AuditEventType.SESSION_ENDED,
        ]


class TestCreateAppComponents:
    """The factory wires everything together."""

    @pytest.mark.asyncio
    async def test_memory_backend(self, monkeypatch):
        monkeypatch.setenv("IDENTITY_ANONYMOUS_ACCOUNT_ID", "factory-acct")
        sessions, identity_flow, ledger_flow, dashboard = create_app_components(backend="memory")
        try:
            session = await identity_flow.sign_in_anonymously()
            assert session.account_id == "factory-acct"

            await ledger_flow.add_transaction(amount=100, direction="in", occurs_on=date.today())
            assert dashboard.view().summary.total_income == Decimal("100")
        finally:
            dashboard.close()

    def test_unconfigured_sheets_falls_back_to_memory(self, monkeypatch, tmp_path):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        monkeypatch.chdir(tmp_path)
        _, _, ledger_flow, dashboard = create_app_components(backend="google_sheets")
        try:
            assert isinstance(ledger_flow._storage, InMemoryLedgerStorage)
        finally:
            dashboard.close()
