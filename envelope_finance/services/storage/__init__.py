"""
Storage Services Package

Provides the abstract ledger/audit interfaces and their implementations:
Google Sheets as the hosted backend, and an in-memory backend for offline
runs and tests.
"""

from envelope_finance.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    PermissionDenied,
    StorageError,
    SyncFailure,
    sort_records,
)
from envelope_finance.services.storage.subscription import Subscription
from envelope_finance.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from envelope_finance.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "Subscription",
    "sort_records",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "PermissionDenied",
    "StorageError",
    "SyncFailure",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
