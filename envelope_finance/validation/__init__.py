"""Input validation package."""

from envelope_finance.validation.validator import (
    EntryValidator,
    InvalidAmount,
    InvalidEntry,
    parse_amount,
)

__all__ = ["EntryValidator", "InvalidAmount", "InvalidEntry", "parse_amount"]
