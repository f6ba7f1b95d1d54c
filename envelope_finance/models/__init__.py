"""
Data Models Package

This package contains all Pydantic models used in Envelope Finance.
All data flowing through the system must conform to these schemas.
"""

from envelope_finance.models.ledger import (
    CATEGORIES,
    SPENDING_CATEGORIES,
    BudgetBucket,
    BudgetSummary,
    Category,
    CategoryId,
    ChartSlice,
    Debt,
    DebtDirection,
    DebtInput,
    Period,
    RecordKind,
    SavingsDeposit,
    SavingsInput,
    Snapshot,
    Transaction,
    TransactionDirection,
    TransactionInput,
    spending_category,
)
from envelope_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CATEGORIES",
    "SPENDING_CATEGORIES",
    "BudgetBucket",
    "BudgetSummary",
    "Category",
    "CategoryId",
    "ChartSlice",
    "Debt",
    "DebtDirection",
    "DebtInput",
    "Period",
    "RecordKind",
    "SavingsDeposit",
    "SavingsInput",
    "Snapshot",
    "Transaction",
    "TransactionDirection",
    "TransactionInput",
    "spending_category",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
