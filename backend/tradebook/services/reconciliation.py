# Overview: Pure invoice reconciliation rules: line pricing, totals, status and stock movements.

"""
Invoice Reconciliation Engine (pure core)

WHY: Every figure an invoice carries is derived. The client sends raw
inputs (quantities, prices, percentages); this module turns them into
line totals, invoice totals, commission amounts, a payment status and
the stock movements the invoice implies. invoice_service persists the
results and applies the movements through inventory_service.

DESIGN:
- No database access and no Flask imports: every function here is a
  plain computation and is tested without an app.
- Stock movements are keyed by (item_id, bucket). An edit applies only
  diff_movements(persisted, new), so resubmitting unchanged lines moves
  nothing and replacing A with A' moves exactly A' - A.
- Free-text lines (no item_id) are priced but never move stock.

STOCK DIRECTION:
- VENDOR purchases credit the line's storage bucket (shop by default).
- CUSTOMER sales debit the shop.
- COMMISSIONER sheets never move stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from ..exceptions import InvalidDateRange, ValidationError
from ..models.invoices import (
    INVOICE_COMMISSIONER,
    INVOICE_CUSTOMER,
    INVOICE_TYPES,
    INVOICE_VENDOR,
    PRICE_FIELDS,
)
from ..money import (
    commission_amount,
    invoice_total,
    line_total,
    parse_price,
    parse_quantity,
    remaining_amount,
    subtotal,
)
from ..stock import BUCKET_SHOP, StockDelta, validate_bucket
from ..time_utils import today as utc_today


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

STATUS_UNPAID = "unpaid"
STATUS_PARTIAL = "partial"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"
STATUSES = (STATUS_UNPAID, STATUS_PARTIAL, STATUS_PAID, STATUS_OVERDUE)


MovementKey = tuple[int, str]
Movements = dict[MovementKey, StockDelta]


@dataclass(frozen=True)
class PricedLine:
    """A validated line with its server-computed total."""
    item_id: Optional[int]
    item_name: Optional[str]
    quantity: Decimal
    gross_weight: Decimal
    net_weight: Decimal
    packaging_cost: Decimal
    unit_price: Decimal
    total_price: int
    storage_type: Optional[str] = None


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: int
    total: int
    broker_commission_amount: int
    commissioner_amount: int
    amount_due: int


@dataclass(frozen=True)
class PaymentPosition:
    total_paid: int
    remaining: int
    status: str


def validate_invoice_type(invoice_type) -> str:
    value = str(invoice_type or "").upper()
    if value not in INVOICE_TYPES:
        raise ValidationError("invoice_type", f"must be one of {', '.join(INVOICE_TYPES)}")
    return value


# =============================================================================
# LINE PRICING
# =============================================================================

def _parse_item_id(value, field: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(field, "must be an integer item number")
    if isinstance(value, int):
        item_id = value
    elif isinstance(value, str) and value.strip().isdigit():
        item_id = int(value.strip())
    else:
        raise ValidationError(field, "must be an integer item number")
    if item_id <= 0:
        raise ValidationError(field, "must be positive")
    return item_id


def price_line(invoice_type: str, raw: Mapping, index: int = 0) -> PricedLine:
    """
    Validate one raw line and compute its total.

    The unit price is read from the type's price key (purchase_price,
    selling_price, sale_price) with unit_price accepted as a fallback.
    Any total_price sent by the client is ignored.
    """
    prefix = f"items[{index}]"
    if not isinstance(raw, Mapping):
        raise ValidationError(prefix, "must be an object")

    item_id = _parse_item_id(raw.get("item_id"), f"{prefix}.item_id")
    name = raw.get("item_name")
    name = str(name).strip() if name is not None else ""
    if not name and item_id is None:
        raise ValidationError(f"{prefix}.item_name", "is required")

    price_key = PRICE_FIELDS[invoice_type]
    raw_price = raw.get(price_key, raw.get("unit_price"))

    quantity = parse_quantity(raw.get("quantity"), f"{prefix}.quantity")
    gross_weight = parse_quantity(raw.get("gross_weight"), f"{prefix}.gross_weight")
    net_weight = parse_quantity(raw.get("net_weight"), f"{prefix}.net_weight")
    packaging_cost = parse_price(raw.get("packaging_cost"), f"{prefix}.packaging_cost")
    unit_price = parse_price(raw_price, f"{prefix}.{price_key}")

    storage_type = None
    if invoice_type == INVOICE_VENDOR:
        storage_type = validate_bucket(raw.get("storage_type") or BUCKET_SHOP, f"{prefix}.storage_type")

    return PricedLine(
        item_id=item_id,
        item_name=name or None,
        quantity=quantity,
        gross_weight=gross_weight,
        net_weight=net_weight,
        packaging_cost=packaging_cost,
        unit_price=unit_price,
        total_price=line_total(quantity, packaging_cost, net_weight, unit_price),
        storage_type=storage_type,
    )


def price_lines(invoice_type: str, raw_lines) -> list[PricedLine]:
    invoice_type = validate_invoice_type(invoice_type)
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("items", "at least one line item is required")
    return [price_line(invoice_type, raw, i) for i, raw in enumerate(raw_lines)]


# =============================================================================
# TOTALS
# =============================================================================

def compute_totals(
    invoice_type: str,
    lines: Iterable[PricedLine],
    *,
    labour_transport_cost: int = 0,
    broker_commission_percentage=0,
    has_broker: bool = False,
    commissioner_percentage=0,
) -> InvoiceTotals:
    """
    Derive subtotal, total and commission from priced lines.

    - subtotal = sum of line totals
    - total = subtotal + labour/transport (commissioner sheets carry none)
    - broker commission only when a broker is set
    - amount_due is what payments settle: the commissioner amount for
      commissioner sheets, the total otherwise
    """
    invoice_type = validate_invoice_type(invoice_type)
    sub = subtotal(line.total_price for line in lines)

    if invoice_type == INVOICE_COMMISSIONER:
        total = sub
    else:
        total = invoice_total(sub, labour_transport_cost)

    broker_amount = 0
    if invoice_type == INVOICE_CUSTOMER and has_broker:
        broker_amount = commission_amount(total, broker_commission_percentage or 0)

    commissioner_amount = 0
    if invoice_type == INVOICE_COMMISSIONER:
        commissioner_amount = commission_amount(total, commissioner_percentage or 0)

    amount_due = commissioner_amount if invoice_type == INVOICE_COMMISSIONER else total
    return InvoiceTotals(
        subtotal=sub,
        total=total,
        broker_commission_amount=broker_amount,
        commissioner_amount=commissioner_amount,
        amount_due=amount_due,
    )


def validate_due_date(invoice_date: date, due_date: Optional[date]) -> None:
    """A due date, when present, must be strictly after the invoice date."""
    if due_date is None:
        return
    if due_date <= invoice_date:
        raise InvalidDateRange(
            f"due_date {due_date.isoformat()} must be after invoice_date {invoice_date.isoformat()}"
        )


# =============================================================================
# STATUS
# =============================================================================

def derive_status(amount_due: int, total_paid: int, due_date: Optional[date], today: Optional[date] = None) -> str:
    """
    paid    - everything owed has been paid (never overdue afterwards)
    partial - something has been paid
    overdue - nothing paid and the due date has passed
    unpaid  - otherwise
    """
    if total_paid >= amount_due:
        return STATUS_PAID
    if total_paid > 0:
        return STATUS_PARTIAL
    today = today or utc_today()
    if due_date is not None and due_date < today:
        return STATUS_OVERDUE
    return STATUS_UNPAID


def payment_position(amount_due: int, payments: Iterable[int], due_date: Optional[date] = None, today: Optional[date] = None) -> PaymentPosition:
    """Recompute paid/remaining/status from the full payment history."""
    paid = sum((int(p) for p in payments), 0)
    return PaymentPosition(
        total_paid=paid,
        remaining=remaining_amount(amount_due, paid),
        status=derive_status(amount_due, paid, due_date, today),
    )


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================

def stock_movements(invoice_type: str, lines) -> Movements:
    """
    Net stock movement an invoice implies, per (item_id, bucket).

    Works on PricedLine and persisted InvoiceLine rows alike. Lines for the
    same item and bucket are summed.
    """
    invoice_type = validate_invoice_type(invoice_type)
    movements: Movements = {}
    if invoice_type == INVOICE_COMMISSIONER:
        return movements

    for line in lines:
        if line.item_id is None:
            continue
        amounts = StockDelta(line.quantity, line.net_weight, line.gross_weight)
        if invoice_type == INVOICE_VENDOR:
            key = (line.item_id, line.storage_type or BUCKET_SHOP)
            delta = amounts
        else:
            key = (line.item_id, BUCKET_SHOP)
            delta = -amounts
        movements[key] = movements.get(key, StockDelta()) + delta
    return {k: v for k, v in movements.items() if not v.is_zero()}


def diff_movements(original: Movements, new: Movements) -> Movements:
    """Per key new - original; keys that cancel out are dropped."""
    result: Movements = {}
    for key in set(original) | set(new):
        delta = new.get(key, StockDelta()) - original.get(key, StockDelta())
        if not delta.is_zero():
            result[key] = delta
    return result


def reverse_movements(movements: Movements) -> Movements:
    return {key: -delta for key, delta in movements.items()}
