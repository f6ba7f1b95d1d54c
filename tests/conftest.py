"""Shared fixtures. No test touches the network or a real spreadsheet."""

import pytest

from envelope_finance.config import AppSettings, IdentitySettings
from envelope_finance.identity import SessionManager
from envelope_finance.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


@pytest.fixture
def app_settings():
    return AppSettings(storage_backend="memory", supported_years="2024,2025,2026,2027,2028")


@pytest.fixture
def sessions():
    return SessionManager(IdentitySettings(anonymous_account_id="acct-1"))


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()
