"""
Money helpers.

Amounts travel through the API as ``Decimal`` with two fractional digits and
are stored as integer minor units (cents).
"""

from decimal import Decimal, InvalidOperation
from typing import Union

from slotbank.config import MAX_AMOUNT, MINOR_UNITS
from slotbank.errors import InvalidAmountError

AmountLike = Union[Decimal, int, float, str]

CENT = Decimal("0.01")


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert a caller-supplied value to a two-place ``Decimal``.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")`` and
    not its binary expansion.

    Raises:
        InvalidAmountError: If the value is not a finite number with at most
            two fractional digits.
    """
    if isinstance(value, bool):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Invalid amount: {value!r}") from None

    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount exceeds maximum of {MAX_AMOUNT}: {value}")
    if amount != amount.quantize(CENT):
        raise InvalidAmountError(f"Amount has more than two decimal places: {value}")
    return amount.quantize(CENT)


def parse_amount(value: AmountLike) -> Decimal:
    """Validate a transaction amount, which must be strictly positive."""
    amount = to_decimal(value)
    if amount <= 0:
        raise InvalidAmountError(f"Amount must be greater than zero: {value}")
    return amount


def parse_balance(value: AmountLike) -> Decimal:
    """Validate a balance, which may be zero but never negative."""
    balance = to_decimal(value)
    if balance < 0:
        raise InvalidAmountError(f"Balance cannot be negative: {value}")
    return balance


def to_minor(amount: Decimal) -> int:
    """Decimal units to integer cents."""
    return int(amount * MINOR_UNITS)


def from_minor(cents: int) -> Decimal:
    """Integer cents to a two-place Decimal."""
    return (Decimal(int(cents)) / MINOR_UNITS).quantize(CENT)
