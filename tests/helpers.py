"""Record factories shared by the test modules."""

from datetime import date
from decimal import Decimal
from typing import Optional

from envelope_finance.models.ledger import (
    Debt,
    DebtDirection,
    SavingsDeposit,
    Transaction,
    TransactionDirection,
)


def make_transaction(
    amount,
    direction: TransactionDirection = TransactionDirection.EXPENSE,
    category: Optional[str] = "LIVING",
    occurs_on: date = date(2026, 10, 5),
    tx_id: str = "tx",
) -> Transaction:
    return Transaction(
        id=tx_id,
        amount=Decimal(str(amount)),
        direction=direction,
        category=category or "",
        occurs_on=occurs_on,
    )


def income(amount, occurs_on: date = date(2026, 10, 1), tx_id: str = "in") -> Transaction:
    return make_transaction(amount, TransactionDirection.INCOME, None, occurs_on, tx_id)


def make_debt(amount, direction=DebtDirection.PAYABLE, is_paid=False, debt_id="d") -> Debt:
    return Debt(
        id=debt_id,
        counterparty_name="Budi",
        amount=Decimal(str(amount)),
        direction=direction,
        incurred_on=date(2026, 10, 1),
        is_paid=is_paid,
    )


def make_saving(amount, occurs_on=date(2026, 10, 1), saving_id="s") -> SavingsDeposit:
    return SavingsDeposit(
        id=saving_id,
        amount=Decimal(str(amount)),
        location="Bank Jago",
        occurs_on=occurs_on,
    )


