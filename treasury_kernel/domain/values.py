"""
Values -- monetary amount parsing for command boundaries.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are Decimal, never float.
    - Amounts carry at most two decimal places (the organization's currency
      minor unit); extra precision is rejected rather than rounded away.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TypeVar

from treasury_kernel.exceptions import ValidationError

CENT = Decimal("0.01")

E = TypeVar("E", bound=Enum)


def parse_amount(value: Decimal | int | str | None, field: str = "amount") -> Decimal:
    """Parse a strictly positive monetary amount.

    Raises:
        ValidationError: value is missing, a float, not a finite number,
            not positive, too large to hold in cents, or has more than
            two decimal places.
    """
    if value is None:
        raise ValidationError(field, "is required")
    if isinstance(value, float) or isinstance(value, bool):
        raise ValidationError(field, f"must be Decimal, int or str, got {type(value).__name__}")
    try:
        amount = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except InvalidOperation:
        raise ValidationError(field, f"{value!r} is not a number") from None

    if not amount.is_finite():
        raise ValidationError(field, f"{value!r} is not a finite number")
    if amount <= 0:
        raise ValidationError(field, f"must be positive, got {amount}")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(field, f"{amount} is too large") from None
    if amount != quantized:
        raise ValidationError(field, f"{amount} has more than two decimal places")
    return quantized


def parse_enum(enum_cls: type[E], value: E | str, field: str) -> E:
    """Coerce ``value`` to ``enum_cls``; names and values match in any case.

    Raises:
        ValidationError: ``value`` is neither a member name nor a value.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            member = enum_cls.__members__.get(value.strip().upper())
            if member is not None:
                return member
    raise ValidationError(field, f"unknown value {value!r}")


def require_text(value: str | None, field: str) -> str:
    """Return ``value`` stripped, raising ValidationError when blank."""
    if value is None or not value.strip():
        raise ValidationError(field, "must not be empty")
    return value.strip()
