# Overview: Pure money and quantity arithmetic shared by invoices, payments and the balance ledger.

"""
Money / Quantity Arithmetic

ROUNDING POLICY (single, applied everywhere):
- Money is whole currency units (PKR) stored as int.
- Every derived money value (line total, commission, payment, balance entry)
  is rounded half-up to an integer at the moment it is computed, with
  decimal.Decimal. Totals are sums of already-rounded values, so the stored
  figures and the displayed figures are the same numbers.
- Unit prices and packaging costs may carry two decimals (price per kg).
- Quantities and weights are Decimals with three decimals, never rounded to
  integers.

No I/O, no database access.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from .exceptions import ValidationError


WHOLE = Decimal("1")
PRICE_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.001")
HUNDRED = Decimal("100")


def to_decimal(value, field: str = "value") -> Decimal:
    """
    Coerce a JSON number or numeric string to Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans, NaN and infinities
    are rejected.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(field, "must be a number")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        d = Decimal(value)
    elif isinstance(value, float):
        d = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(field, "must be a number")
        try:
            d = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(field, "must be a number")
    else:
        raise ValidationError(field, "must be a number")
    if not d.is_finite():
        raise ValidationError(field, "must be a finite number")
    return d


def round_money(value) -> int:
    """Round half-up to whole currency units."""
    return int(to_decimal(value).quantize(WHOLE, rounding=ROUND_HALF_UP))


def quantize_quantity(value) -> Decimal:
    return to_decimal(value).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def quantize_price(value) -> Decimal:
    return to_decimal(value).quantize(PRICE_PLACES, rounding=ROUND_HALF_UP)


def as_number(value):
    """JSON-friendly number: int when integral, float otherwise."""
    if value is None:
        return None
    d = to_decimal(value)
    if d == d.to_integral_value():
        return int(d)
    return float(d)


# =============================================================================
# DERIVED FIGURES
# =============================================================================

def line_total(quantity, packaging_cost, net_weight, unit_price) -> int:
    """quantity x packaging_cost + net_weight x unit_price, rounded."""
    raw = to_decimal(quantity) * to_decimal(packaging_cost) + to_decimal(net_weight) * to_decimal(unit_price)
    return round_money(raw)


def subtotal(line_totals: Iterable[int]) -> int:
    return sum((int(t) for t in line_totals), 0)


def invoice_total(subtotal_amount: int, labour_transport_cost: int = 0) -> int:
    return int(subtotal_amount) + int(labour_transport_cost or 0)


def commission_amount(total: int, percentage) -> int:
    """
    Commission owed on a total.

    >>> commission_amount(5000, 2.5)
    125
    """
    pct = to_decimal(percentage, "percentage")
    if pct < 0 or pct > HUNDRED:
        raise ValidationError("percentage", "must be between 0 and 100")
    return round_money(Decimal(int(total)) * pct / HUNDRED)


def remaining_amount(total: int, paid: int) -> int:
    return int(total) - int(paid)


# =============================================================================
# INPUT PARSING
# =============================================================================

def parse_money(value, field: str, *, required: bool = True, positive: bool = False) -> int:
    """
    Parse a money input to whole currency units.

    Missing / None gives 0 unless required. Negative amounts are always
    rejected; positive=True also rejects zero.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(field, "is required")
        return 0
    amount = round_money(to_decimal(value, field))
    if amount < 0:
        raise ValidationError(field, "must not be negative")
    if positive and amount == 0:
        raise ValidationError(field, "must be greater than zero")
    return amount


def parse_price(value, field: str) -> Decimal:
    """Unit price / packaging cost: non-negative, two decimals, 0 when missing."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal("0.00")
    price = to_decimal(value, field).quantize(PRICE_PLACES, rounding=ROUND_HALF_UP)
    if price < 0:
        raise ValidationError(field, "must not be negative")
    return price


def parse_quantity(value, field: str, *, required: bool = False) -> Decimal:
    """Quantity / weight: non-negative, three decimals, 0 when missing."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(field, "is required")
        return Decimal("0.000")
    qty = to_decimal(value, field).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)
    if qty < 0:
        raise ValidationError(field, "must not be negative")
    return qty


def parse_percentage(value, field: str) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal("0")
    pct = to_decimal(value, field)
    if pct < 0 or pct > HUNDRED:
        raise ValidationError(field, "must be between 0 and 100")
    return pct
