"""
Core Data Models for Envelope Finance

These models define the schemas for all data flowing through the system:
1. Static budget categories (the envelopes)
2. Stored records (transactions, debts, savings deposits)
3. Inputs accepted by create operations
4. Derived values (period, budget summary, snapshots)

Amounts are Decimal throughout. Allocation percentages are exact decimals,
so envelope limits add up to exactly the income they were derived from.
"""

import calendar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class CategoryId(str, Enum):
    """
    Budget categories.

    The four spending categories partition income; INCOME only marks
    income records and receives no allocation.
    """
    LIVING = "LIVING"
    OPS = "OPS"
    SAVING = "SAVING"
    SOCIAL = "SOCIAL"
    INCOME = "INCOME"


class TransactionDirection(str, Enum):
    """Whether money came in or went out."""
    INCOME = "in"
    EXPENSE = "out"


class DebtDirection(str, Enum):
    """Whether the owner owes money or is owed money."""
    PAYABLE = "payable"
    RECEIVABLE = "receivable"


class RecordKind(str, Enum):
    """Collections kept per account by the persistence provider."""
    TRANSACTIONS = "transactions"
    DEBTS = "debts"
    SAVINGS = "savings"


# =============================================================================
# CATEGORIES - static, never persisted
# =============================================================================

class Category(BaseModel):
    """A budget envelope and the share of income it receives."""
    model_config = ConfigDict(frozen=True)

    id: CategoryId
    label: str
    short_label: str
    color: str = Field(..., pattern="^#[0-9A-Fa-f]{6}$")
    pct: Decimal = Field(..., ge=0, le=1)


CATEGORIES: dict[CategoryId, Category] = {
    CategoryId.LIVING: Category(
        id=CategoryId.LIVING,
        label="Living Costs (40%)",
        short_label="Living",
        color="#10B981",
        pct=Decimal("0.4"),
    ),
    CategoryId.OPS: Category(
        id=CategoryId.OPS,
        label="Operations & Study (30%)",
        short_label="Ops/Study",
        color="#3B82F6",
        pct=Decimal("0.3"),
    ),
    CategoryId.SAVING: Category(
        id=CategoryId.SAVING,
        label="Savings (20%)",
        short_label="Savings",
        color="#8B5CF6",
        pct=Decimal("0.2"),
    ),
    CategoryId.SOCIAL: Category(
        id=CategoryId.SOCIAL,
        label="Social & Leisure (10%)",
        short_label="Social",
        color="#F59E0B",
        pct=Decimal("0.1"),
    ),
    CategoryId.INCOME: Category(
        id=CategoryId.INCOME,
        label="Income",
        short_label="Income",
        color="#FFFFFF",
        pct=Decimal("0"),
    ),
}

# Envelope order is also the display order
SPENDING_CATEGORIES: tuple[CategoryId, ...] = (
    CategoryId.LIVING,
    CategoryId.OPS,
    CategoryId.SAVING,
    CategoryId.SOCIAL,
)


def spending_category(value: Optional[str]) -> Optional[CategoryId]:
    """Resolve a stored category string to a spending envelope, or None."""
    for category_id in SPENDING_CATEGORIES:
        if value == category_id.value:
            return category_id
    return None


# =============================================================================
# STORED RECORDS
# =============================================================================

def _force_income_category(data: Any) -> Any:
    if isinstance(data, dict):
        direction = data.get("direction")
        if direction in (TransactionDirection.INCOME, TransactionDirection.INCOME.value):
            data = {**data, "category": CategoryId.INCOME.value}
    return data


class Transaction(BaseModel):
    """
    A stored income or expense record.

    Income records always carry the INCOME pseudo-category. Expense records
    must name a category; unknown category strings are kept as-is so
    records written by older clients still load.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, description="Amount, always positive")
    direction: TransactionDirection
    category: str = Field(default="")
    occurs_on: date = Field(..., description="Calendar date of the transaction")
    description: str = Field(default="", max_length=500)
    method: str = Field(default="", max_length=50, description="Payment method, e.g. Cash or QRIS")
    created_at: Optional[datetime] = Field(
        default=None,
        description="Assigned by the persistence provider"
    )

    @model_validator(mode="before")
    @classmethod
    def force_income_category(cls, data: Any) -> Any:
        return _force_income_category(data)

    @model_validator(mode="after")
    def require_expense_category(self) -> "Transaction":
        if self.direction is TransactionDirection.EXPENSE and not self.category:
            raise ValueError("Expense transactions require a category")
        return self

    @property
    def is_income(self) -> bool:
        return self.direction is TransactionDirection.INCOME


class Debt(BaseModel):
    """A payable or receivable; only is_paid ever changes."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    counterparty_name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    direction: DebtDirection
    incurred_on: date
    description: str = Field(default="", max_length=500)
    is_paid: bool = False
    created_at: Optional[datetime] = None


class SavingsDeposit(BaseModel):
    """Money moved into a savings location."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    location: str = Field(..., min_length=1, max_length=200, description="Where the money is kept")
    occurs_on: date
    note: str = Field(default="", max_length=500)
    created_at: Optional[datetime] = None


# =============================================================================
# INPUTS - what create operations accept (no id, no server timestamp)
# =============================================================================

class TransactionInput(BaseModel):
    """A new transaction as entered by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., gt=0)
    direction: TransactionDirection
    category: Optional[CategoryId] = None
    occurs_on: date
    description: str = Field(default="", max_length=500)
    method: str = Field(default="", max_length=50)

    @model_validator(mode="before")
    @classmethod
    def force_income_category(cls, data: Any) -> Any:
        return _force_income_category(data)

    @model_validator(mode="after")
    def require_spending_category(self) -> "TransactionInput":
        if (
            self.direction is TransactionDirection.EXPENSE
            and self.category not in SPENDING_CATEGORIES
        ):
            raise ValueError("Expenses must be assigned to a spending category")
        return self


class DebtInput(BaseModel):
    """A new debt or receivable."""
    model_config = ConfigDict(str_strip_whitespace=True)

    counterparty_name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    direction: DebtDirection
    incurred_on: date
    description: str = Field(default="", max_length=500)


class SavingsInput(BaseModel):
    """A new savings deposit."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., gt=0)
    location: str = Field(..., min_length=1, max_length=200)
    occurs_on: date
    note: str = Field(default="", max_length=500)


# =============================================================================
# DERIVED VALUES
# =============================================================================

class Period(BaseModel):
    """A calendar month. month is 0-based (0 = January)."""
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=0, le=11)
    year: int = Field(..., ge=1, le=9999)

    @classmethod
    def containing(cls, day: date) -> "Period":
        return cls(month=day.month - 1, year=day.year)

    @classmethod
    def current(cls) -> "Period":
        return cls.containing(date.today())

    def contains(self, day: date) -> bool:
        return day.month == self.month + 1 and day.year == self.year

    @property
    def label(self) -> str:
        return f"{calendar.month_name[self.month + 1]} {self.year}"


class BudgetBucket(BaseModel):
    """Spending allowance of one envelope. remaining goes negative on overspend."""
    model_config = ConfigDict(frozen=True)

    limit: Decimal = Decimal("0")
    used: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")

    @model_validator(mode="after")
    def check_remaining(self) -> "BudgetBucket":
        if self.remaining != self.limit - self.used:
            raise ValueError("remaining must equal limit - used")
        return self

    @property
    def is_over_budget(self) -> bool:
        return self.remaining < 0


class BudgetSummary(BaseModel):
    """Totals and envelope state for one period."""
    model_config = ConfigDict(frozen=True)

    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    budgets: dict[CategoryId, BudgetBucket] = Field(
        default_factory=lambda: {cid: BudgetBucket() for cid in SPENDING_CATEGORIES}
    )

    @model_validator(mode="after")
    def check_balance(self) -> "BudgetSummary":
        if self.balance != self.total_income - self.total_expense:
            raise ValueError("balance must equal total_income - total_expense")
        return self


class ChartSlice(BaseModel):
    """One wedge of the spending composition chart."""
    model_config = ConfigDict(frozen=True)

    category: CategoryId
    label: str
    value: Decimal
    color: str


class Snapshot(BaseModel):
    """
    Complete, provider-ordered contents of one collection at a point in time.

    sequence starts at 1 for the first delivery of a subscription.
    """
    model_config = ConfigDict(frozen=True)

    kind: RecordKind
    account_id: str
    records: tuple[Any, ...] = ()
    sequence: int = Field(..., ge=1)
    taken_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
