"""
Entry Validation

Raw form input is turned into typed input models here, before anything
reaches the persistence provider.

Two kinds of findings:
- ERRORS reject the entry (InvalidAmount, InvalidEntry). Nothing is saved.
- WARNINGS are returned alongside the parsed entry (far-future date,
  unusually large amount) so the user can double-check.

Validation never silently fixes a value. A malformed amount is an error,
not a zero.
"""

import math
import re
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from pydantic import ValidationError

from envelope_finance.config import AppSettings, get_settings
from envelope_finance.models.ledger import (
    CategoryId,
    DebtDirection,
    DebtInput,
    SavingsInput,
    TransactionDirection,
    TransactionInput,
)


class InvalidEntry(Exception):
    """User input that cannot be saved."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


# 1.500.000 or 1.500.000,50 (the displayed form)
_DOT_GROUPED = re.compile(r"\d{1,3}(\.\d{3})+(,\d{1,2})?")
# 1,500,000 or 1,500,000.50
_COMMA_GROUPED = re.compile(r"\d{1,3}(,\d{3})+(\.\d+)?")
# 1,5 or 12,50
_DECIMAL_COMMA = re.compile(r"\d+,\d{1,2}")


class InvalidAmount(InvalidEntry):
    """Amount is missing, non-numeric, non-finite or not positive."""

    def __init__(self, message: str):
        super().__init__(message, field="amount")


def _normalize_number(raw: str) -> str:
    text = raw.strip().replace("_", "").replace(" ", "")
    if not text:
        raise InvalidAmount("Amount is required")
    if _DOT_GROUPED.fullmatch(text):
        return text.replace(".", "").replace(",", ".")
    if _COMMA_GROUPED.fullmatch(text):
        return text.replace(",", "")
    if _DECIMAL_COMMA.fullmatch(text):
        return text.replace(",", ".")
    if "," in text:
        raise InvalidAmount(f"Ambiguous separators in amount: {raw!r}")
    return text


def parse_amount(raw: Any) -> Decimal:
    """
    Parse a user-supplied amount into a positive, finite Decimal.

    Accepts Decimal, int, float and numeric strings. Strings may group
    thousands with spaces, underscores, dots ("1.500.000", as amounts are
    displayed) or commas ("1,500,000"). A comma followed by one or two
    digits is a decimal comma ("1,5"). Any other comma is ambiguous and
    rejected.

    Raises:
        InvalidAmount: for anything else, including zero and negatives
    """
    if raw is None or isinstance(raw, bool):
        raise InvalidAmount("Amount is required")

    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        if not math.isfinite(raw):
            raise InvalidAmount(f"Amount must be a finite number, got {raw!r}")
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        text = _normalize_number(raw)
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise InvalidAmount(f"Amount is not a number: {raw!r}")
    else:
        raise InvalidAmount(f"Amount is not a number: {raw!r}")

    if not value.is_finite():
        raise InvalidAmount(f"Amount must be a finite number, got {raw!r}")
    if value <= 0:
        raise InvalidAmount("Amount must be greater than zero")
    return value


def _first_error(exc: ValidationError) -> tuple[str, Optional[str]]:
    error = exc.errors()[0]
    loc = error.get("loc") or ()
    field = str(loc[0]) if loc else None
    return error.get("msg", str(exc)), field


class EntryValidator:
    """Builds validated input models from raw form values."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def transaction(
        self,
        amount: Any,
        direction: Union[TransactionDirection, str],
        occurs_on: date,
        category: Union[CategoryId, str, None] = None,
        description: str = "",
        method: str = "",
    ) -> tuple[TransactionInput, list[str]]:
        """
        Validate a new transaction.

        Income entries always land in the INCOME pseudo-category, whatever
        category was selected. Expenses need one of the spending envelopes.

        Returns:
            (transaction_input, warnings)
        """
        value = parse_amount(amount)
        direction = self._enum(TransactionDirection, direction, "direction")

        if direction is TransactionDirection.EXPENSE:
            category = self._enum(CategoryId, category, "category")

        entry = self._build(
            TransactionInput,
            amount=value,
            direction=direction,
            category=category if direction is TransactionDirection.EXPENSE else None,
            occurs_on=occurs_on,
            description=description or "",
            method=method or "",
        )
        return entry, self._warnings(value, occurs_on)

    def debt(
        self,
        counterparty_name: str,
        amount: Any,
        direction: Union[DebtDirection, str],
        incurred_on: date,
        description: str = "",
    ) -> tuple[DebtInput, list[str]]:
        """Validate a new debt or receivable."""
        value = parse_amount(amount)
        if not (counterparty_name or "").strip():
            raise InvalidEntry("Counterparty name is required", field="counterparty_name")

        entry = self._build(
            DebtInput,
            counterparty_name=counterparty_name,
            amount=value,
            direction=self._enum(DebtDirection, direction, "direction"),
            incurred_on=incurred_on,
            description=description or "",
        )
        return entry, self._warnings(value, incurred_on)

    def saving(
        self,
        amount: Any,
        location: str,
        occurs_on: date,
        note: str = "",
    ) -> tuple[SavingsInput, list[str]]:
        """Validate a new savings deposit."""
        value = parse_amount(amount)
        if not (location or "").strip():
            raise InvalidEntry("Savings location is required", field="location")

        entry = self._build(
            SavingsInput,
            amount=value,
            location=location,
            occurs_on=occurs_on,
            note=note or "",
        )
        return entry, self._warnings(value, occurs_on)

    def _warnings(self, amount: Decimal, day: date) -> list[str]:
        warnings = []

        max_amount = self._settings.max_entry_amount
        if amount > max_amount:
            warnings.append(f"Amount {amount:,} is unusually high, please double-check it")

        latest = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
        if day > latest:
            warnings.append(f"Date {day.isoformat()} is in the future")

        return warnings

    @staticmethod
    def _enum(enum_cls, value, field: str):
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            raise InvalidEntry(f"Invalid {field}: {value!r}", field=field)

    @staticmethod
    def _build(model_cls, **values):
        try:
            return model_cls(**values)
        except ValidationError as e:
            message, field = _first_error(e)
            raise InvalidEntry(message, field=field) from e
