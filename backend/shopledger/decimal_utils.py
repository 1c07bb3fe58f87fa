"""
Fixed-point helpers for money, quantities and unit prices.

Precision rules (applied at every computation boundary, not only at display):
- money amounts (subtotals, totals, discounts): 2 decimal places
- quantities (stock, order quantities, differences): 3 decimal places
- unit prices and conversion rates: 4 decimal places

No floats: every value is carried as ``decimal.Decimal``; float input is
converted through ``str()`` so 0.1 stays 0.1.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP

from shopledger.validation import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")

MONEY_QUANTUM = Decimal("0.01")
QUANTITY_QUANTUM = Decimal("0.001")
PRICE_QUANTUM = Decimal("0.0001")

DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value, field: str = "value", error_cls: type[ValidationError] = ValidationError) -> Decimal:
    """Convert user input to Decimal, rejecting bools, NaN and infinities."""
    if value is None:
        raise error_cls(f"{field} is required")
    if isinstance(value, bool):
        raise error_cls(f"{field} must be a number")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise error_cls(f"{field} must be a number")
    else:
        raise error_cls(f"{field} must be a number")

    if not result.is_finite():
        raise error_cls(f"{field} must be a finite number")
    return result


def round_money(value) -> Decimal:
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=DEFAULT_ROUNDING)


def round_quantity(value) -> Decimal:
    return Decimal(value).quantize(QUANTITY_QUANTUM, rounding=DEFAULT_ROUNDING)


def floor_quantity(value) -> Decimal:
    """Quantity truncated to 3dp; used for upper bounds that must not be overstated."""
    return Decimal(value).quantize(QUANTITY_QUANTUM, rounding=ROUND_DOWN)


def round_price(value) -> Decimal:
    return Decimal(value).quantize(PRICE_QUANTUM, rounding=DEFAULT_ROUNDING)


def as_decimal(value) -> Decimal:
    """Read a stored column value (Decimal, float from SQLite, or None) as Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
