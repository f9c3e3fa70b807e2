# Overview: Service-layer operations for invoices; persists reconciled invoices and applies their stock movements.

"""
Invoice Service

WHY: An invoice write touches three things that must agree: the invoice
row and its lines, the item stock counters, and (for customer invoices)
the broker's commission account. Each public operation here does all of
it in one transaction, or none of it.

DESIGN:
- Every derived figure comes from reconciliation.py; client-sent totals,
  commission amounts, remaining amounts and statuses are ignored.
- Create applies the invoice's full stock movement.
- Edit applies diff_movements(persisted lines, new lines). The persisted
  lines are read under the invoice row lock, so a client-sent copy of
  the "original items" is never needed and never trusted.
- Delete applies the full reversal. If stock was consumed elsewhere since
  the invoice posted, the reversal fails and the delete is rejected with
  every offending item/bucket/field.
- Payments survive an edit; an edit that would make the amount due
  smaller than what was already paid is rejected.
"""

from __future__ import annotations

from datetime import date
from typing import Mapping, Optional

from sqlalchemy import func, or_

from ..exceptions import InvalidPaymentAmount, NotFound, ValidationError
from ..extensions import db
from ..models import Broker, Commissioner, Customer, Invoice, InvoiceLine, Item, Vendor
from ..models.invoices import (
    INVOICE_COMMISSIONER,
    INVOICE_CUSTOMER,
    INVOICE_VENDOR,
    PRICE_FIELDS,
)
from ..money import as_number, parse_money, parse_percentage
from ..time_utils import parse_iso_date, today as utc_today
from .activity_service import log_activity
from .broker_service import broker_position, refresh_broker_locked
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_invoice_number
from .inventory_service import apply_deltas_locked
from .payment_service import append_invoice_payment_locked, refresh_payment_cache
from .reconciliation import (
    STATUSES,
    PricedLine,
    compute_totals,
    derive_status,
    diff_movements,
    payment_position,
    price_lines,
    reverse_movements,
    stock_movements,
    validate_due_date,
    validate_invoice_type,
)


# Party kind, model and invoice column per invoice type
PARTIES = {
    INVOICE_VENDOR: ("vendor", Vendor, "vendor_id"),
    INVOICE_CUSTOMER: ("customer", Customer, "customer_id"),
    INVOICE_COMMISSIONER: ("commissioner", Commissioner, "commissioner_id"),
}


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def _parse_date(value, field: str, *, default: Optional[date] = None) -> Optional[date]:
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(field, "must be an ISO-8601 date")
    return parsed if parsed is not None else default


def _resolve_party(invoice_type: str, payload: Mapping, current: Optional[Invoice] = None):
    """
    Return (party or None, party_name).

    The party is referenced by <kind>_id (or party_id). Without a reference
    a <kind>_name is required and the invoice carries that name only.
    """
    kind, model, column = PARTIES[invoice_type]
    id_key = f"{kind}_id"
    name_key = f"{kind}_name"

    if current is not None and id_key not in payload and "party_id" not in payload and name_key not in payload:
        return getattr(current, kind), current.party_name

    party_id = payload.get(id_key, payload.get("party_id"))
    name = payload.get(name_key)
    name = str(name).strip() if name is not None else ""

    if party_id not in (None, ""):
        try:
            party_id = int(party_id)
        except (TypeError, ValueError):
            raise ValidationError(id_key, "must be an integer")
        party = db.session.query(model).filter_by(id=party_id).first()
        if not party:
            raise NotFound(kind, party_id)
        return party, party.name

    if not name:
        raise ValidationError(name_key, "is required")
    return None, name


def _resolve_broker(payload: Mapping, current: Optional[Invoice] = None):
    """
    Return (broker or None, broker_name or None) for a customer invoice.

    broker_id links the commission to a broker account; a bare broker_name
    is matched case-insensitively against existing brokers and otherwise
    kept as free text.
    """
    if current is not None and "broker_id" not in payload and "broker_name" not in payload:
        return current.broker, current.broker_name

    broker_id = payload.get("broker_id")
    if broker_id not in (None, ""):
        try:
            broker_id = int(broker_id)
        except (TypeError, ValueError):
            raise ValidationError("broker_id", "must be an integer")
        broker = db.session.query(Broker).filter_by(id=broker_id).first()
        if not broker:
            raise NotFound("broker", broker_id)
        return broker, broker.name

    name = payload.get("broker_name")
    name = str(name).strip() if name is not None else ""
    if not name:
        return None, None
    broker = db.session.query(Broker).filter(func.lower(Broker.name) == name.lower()).first()
    if broker:
        return broker, broker.name
    return None, name


def _resolve_line_items(lines: list[PricedLine]) -> dict[int, Item]:
    ids = {line.item_id for line in lines if line.item_id is not None}
    if not ids:
        return {}
    found = {i.item_id: i for i in db.session.query(Item).filter(Item.item_id.in_(ids)).all()}
    for item_id in sorted(ids):
        if item_id not in found:
            raise NotFound("item", item_id)
    return found


def _line_to_raw(invoice_type: str, line: InvoiceLine) -> dict:
    raw = {
        "item_id": line.item_id,
        "item_name": line.item_name,
        "quantity": line.quantity,
        "gross_weight": line.gross_weight,
        "net_weight": line.net_weight,
        "packaging_cost": line.packaging_cost,
        PRICE_FIELDS[invoice_type]: line.unit_price,
    }
    if invoice_type == INVOICE_VENDOR:
        raw["storage_type"] = line.storage_type
    return raw


def _build_lines(invoice_type: str, priced: list[PricedLine]) -> list[InvoiceLine]:
    items = _resolve_line_items(priced)
    rows = []
    for position, line in enumerate(priced):
        name = line.item_name or items[line.item_id].item_name
        rows.append(InvoiceLine(
            position=position,
            item_id=line.item_id,
            item_name=name,
            quantity=line.quantity,
            gross_weight=line.gross_weight,
            net_weight=line.net_weight,
            packaging_cost=line.packaging_cost,
            unit_price=line.unit_price,
            total_price=line.total_price,
            storage_type=line.storage_type if invoice_type == INVOICE_VENDOR else None,
        ))
    return rows


def _apply_header(invoice: Invoice, invoice_type: str, payload: Mapping, priced: list[PricedLine], current: bool):
    """
    Write party, dates, costs and derived totals onto the invoice.

    With current=True (edit), fields absent from the payload keep their
    stored values.
    """
    existing = invoice if current else None

    party, party_name = _resolve_party(invoice_type, payload, existing)
    kind, _, column = PARTIES[invoice_type]
    setattr(invoice, column, party.id if party is not None else None)
    invoice.party_name = party_name

    invoice.invoice_date = _parse_date(
        payload.get("invoice_date") if "invoice_date" in payload or not current else invoice.invoice_date,
        "invoice_date",
        default=utc_today(),
    )
    if "due_date" in payload or not current:
        invoice.due_date = _parse_date(payload.get("due_date"), "due_date")
    validate_due_date(invoice.invoice_date, invoice.due_date)

    labour = 0
    if invoice_type != INVOICE_COMMISSIONER:
        if "labour_transport_cost" in payload or not current:
            labour = parse_money(payload.get("labour_transport_cost"), "labour_transport_cost", required=False)
        else:
            labour = invoice.labour_transport_cost or 0
    invoice.labour_transport_cost = labour

    broker, broker_name = (None, None)
    broker_pct = 0
    if invoice_type == INVOICE_CUSTOMER:
        broker, broker_name = _resolve_broker(payload, existing)
        if "broker_commission_percentage" in payload or not current:
            broker_pct = parse_percentage(payload.get("broker_commission_percentage"), "broker_commission_percentage")
        else:
            broker_pct = invoice.broker_commission_percentage or 0
        if broker_name is None:
            broker_pct = 0
    invoice.broker_id = broker.id if broker is not None else None
    invoice.broker_name = broker_name
    invoice.broker_commission_percentage = broker_pct

    commissioner_pct = 0
    if invoice_type == INVOICE_COMMISSIONER:
        if "commissioner_percentage" in payload or not current:
            commissioner_pct = parse_percentage(payload.get("commissioner_percentage"), "commissioner_percentage")
        else:
            commissioner_pct = invoice.commissioner_percentage or 0
        if "buyer_name" in payload or not current:
            buyer = payload.get("buyer_name")
            invoice.buyer_name = str(buyer).strip() or None if buyer is not None else None
    invoice.commissioner_percentage = commissioner_pct

    totals = compute_totals(
        invoice_type,
        priced,
        labour_transport_cost=labour,
        broker_commission_percentage=broker_pct,
        has_broker=broker_name is not None,
        commissioner_percentage=commissioner_pct,
    )
    invoice.subtotal = totals.subtotal
    invoice.total = totals.total
    invoice.broker_commission_amount = totals.broker_commission_amount
    invoice.commissioner_amount = totals.commissioner_amount
    return totals


# =============================================================================
# WRITES
# =============================================================================

def create_invoice(invoice_type: str, payload: Mapping, user=None) -> Invoice:
    """
    Generate an invoice and apply its stock movement atomically.

    payload: party reference, invoice_date, due_date?, items[],
    labour_transport_cost, broker fields (customer), commissioner fields
    (commissioner), and an optional paid_amount / payment_method recorded
    as the first payment.

    Raises:
        ValidationError, InvalidDateRange, NotFound: bad input
        InsufficientStock: a customer sale exceeds shop stock
        InvalidPaymentAmount: paid_amount larger than the amount due
    """
    invoice_type = validate_invoice_type(invoice_type)
    if not isinstance(payload, Mapping):
        raise ValidationError("payload", "must be a JSON object")

    def _op():
        priced = price_lines(invoice_type, payload.get("items"))
        invoice = Invoice(invoice_type=invoice_type)
        _apply_header(invoice, invoice_type, payload, priced, current=False)
        invoice.lines = _build_lines(invoice_type, priced)
        invoice.created_by_user_id = user.id if user is not None else None

        apply_deltas_locked(stock_movements(invoice_type, priced))

        invoice.invoice_number = next_invoice_number(invoice_type)
        db.session.add(invoice)
        db.session.flush()

        paid_amount = payload.get("paid_amount")
        if paid_amount not in (None, "", 0, "0"):
            append_invoice_payment_locked(
                invoice,
                amount=paid_amount,
                payment_date=payload.get("payment_date") or invoice.invoice_date,
                payment_method=payload.get("payment_method"),
                notes="Initial payment",
                user=user,
            )
        refresh_payment_cache(invoice)

        if invoice.broker_id is not None:
            refresh_broker_locked(invoice.broker_id)

        log_activity(user, "invoice.created", {
            "invoice_number": invoice.invoice_number,
            "invoice_type": invoice_type,
            "party_name": invoice.party_name,
            "total": invoice.total,
        })
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def update_invoice(invoice_id: int, payload: Mapping, user=None) -> Invoice:
    """
    Edit an invoice, applying only the net stock change.

    Fields absent from the payload keep their stored values; when items
    is present it replaces the whole line set.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("payload", "must be a JSON object")

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFound("invoice", invoice_id)
        invoice_type = invoice.invoice_type
        previous_broker_id = invoice.broker_id

        original = stock_movements(invoice_type, invoice.lines)
        if "items" in payload:
            raw_lines = payload.get("items")
        else:
            raw_lines = [_line_to_raw(invoice_type, line) for line in invoice.lines]
        priced = price_lines(invoice_type, raw_lines)

        totals = _apply_header(invoice, invoice_type, payload, priced, current=True)
        paid = sum(p.amount for p in invoice.payments)
        if totals.amount_due < paid:
            raise InvalidPaymentAmount(
                f"Amount due {totals.amount_due} would be less than the {paid} already paid"
            )

        apply_deltas_locked(diff_movements(original, stock_movements(invoice_type, priced)))

        invoice.lines = _build_lines(invoice_type, priced)
        db.session.flush()
        refresh_payment_cache(invoice)

        for broker_id in {previous_broker_id, invoice.broker_id} - {None}:
            refresh_broker_locked(broker_id)

        log_activity(user, "invoice.updated", {
            "invoice_number": invoice.invoice_number,
            "invoice_type": invoice_type,
            "total": invoice.total,
        })
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def delete_invoice(invoice_id: int, user=None) -> None:
    """
    Delete an invoice and reverse its stock movement.

    Raises:
        InsufficientStock: the reversal would push stock negative; nothing
            is deleted and every shortfall is reported
    """
    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFound("invoice", invoice_id)

        apply_deltas_locked(reverse_movements(stock_movements(invoice.invoice_type, invoice.lines)))

        broker_id = invoice.broker_id
        details = {
            "invoice_number": invoice.invoice_number,
            "invoice_type": invoice.invoice_type,
            "party_name": invoice.party_name,
            "total": invoice.total,
        }
        db.session.delete(invoice)
        db.session.flush()
        if broker_id is not None:
            refresh_broker_locked(broker_id)

        log_activity(user, "invoice.deleted", details)
        db.session.commit()

    return run_with_retry(_op)


def update_due_date(invoice_id: int, due_date, user=None) -> Invoice:
    """Set or clear the due date; it must stay after the invoice date."""
    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFound("invoice", invoice_id)
        parsed = _parse_date(due_date, "due_date")
        validate_due_date(invoice.invoice_date, parsed)
        invoice.due_date = parsed
        refresh_payment_cache(invoice)
        log_activity(user, "invoice.due_date_updated", {
            "invoice_number": invoice.invoice_number,
            "due_date": parsed.isoformat() if parsed else None,
        })
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def refresh_overdue_statuses(today: Optional[date] = None) -> int:
    """
    Re-derive the stored status of every invoice and broker that is not paid.

    Returns how many rows changed. Reads never depend on this (to_dict
    recomputes), it keeps the stored column honest for SQL reporting.
    """
    today = today or utc_today()

    def _op():
        changed = 0
        for invoice in db.session.query(Invoice).filter(Invoice.status != "paid").all():
            before = invoice.status
            refresh_payment_cache(invoice, today)
            if invoice.status != before:
                changed += 1
        for broker in db.session.query(Broker).all():
            status = broker_position(broker, today).status
            if status != broker.status:
                broker.status = status
                changed += 1
        db.session.commit()
        return changed

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id).first()
    if not invoice:
        raise NotFound("invoice", invoice_id)
    return invoice


def get_invoice_by_number(invoice_number: str) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(invoice_number=invoice_number).first()
    if not invoice:
        raise NotFound("invoice", invoice_number)
    return invoice


def list_invoices(
    *,
    invoice_type: Optional[str] = None,
    party_id: Optional[int] = None,
    broker_id: Optional[int] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Invoice], int]:
    """
    Filtered invoice listing, newest first.

    status is matched against the freshly derived status, not the stored
    cache, so an invoice that became overdue today is listed as overdue.
    Returns (page, total_matching).
    """
    query = db.session.query(Invoice)
    if invoice_type:
        invoice_type = validate_invoice_type(invoice_type)
        query = query.filter(Invoice.invoice_type == invoice_type)
        if party_id is not None:
            query = query.filter(getattr(Invoice, PARTIES[invoice_type][2]) == party_id)
    if broker_id is not None:
        query = query.filter(Invoice.broker_id == broker_id)
    if date_from is not None:
        query = query.filter(Invoice.invoice_date >= date_from)
    if date_to is not None:
        query = query.filter(Invoice.invoice_date <= date_to)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(
            Invoice.invoice_number.ilike(like),
            Invoice.party_name.ilike(like),
            Invoice.broker_name.ilike(like),
            Invoice.buyer_name.ilike(like),
        ))

    rows = query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()
    if status:
        if status not in STATUSES:
            raise ValidationError("status", f"must be one of {', '.join(STATUSES)}")
        today = utc_today()
        rows = [
            inv for inv in rows
            if payment_position(inv.amount_due, [p.amount for p in inv.payments], inv.due_date, today).status == status
        ]

    limit = min(max(int(limit or 100), 1), 1000)
    offset = max(int(offset or 0), 0)
    return rows[offset:offset + limit], len(rows)


def search_invoices(term: str, invoice_type: Optional[str] = None) -> list[Invoice]:
    """Invoice number, party, broker or buyer name substring search."""
    rows, _ = list_invoices(invoice_type=invoice_type, search=term, limit=1000)
    return rows


def preview_invoice(invoice_type: str, payload: Mapping) -> dict:
    """
    Price an invoice without saving it (what the generate screen shows).
    """
    invoice_type = validate_invoice_type(invoice_type)
    priced = price_lines(invoice_type, payload.get("items"))
    labour = 0
    if invoice_type != INVOICE_COMMISSIONER:
        labour = parse_money(payload.get("labour_transport_cost"), "labour_transport_cost", required=False)
    has_broker = bool(payload.get("broker_id") or payload.get("broker_name"))
    totals = compute_totals(
        invoice_type,
        priced,
        labour_transport_cost=labour,
        broker_commission_percentage=parse_percentage(payload.get("broker_commission_percentage"), "broker_commission_percentage"),
        has_broker=invoice_type == INVOICE_CUSTOMER and has_broker,
        commissioner_percentage=parse_percentage(payload.get("commissioner_percentage"), "commissioner_percentage"),
    )
    return {
        "items": [
            {
                "item_id": line.item_id,
                "item_name": line.item_name,
                "quantity": as_number(line.quantity),
                "net_weight": as_number(line.net_weight),
                "gross_weight": as_number(line.gross_weight),
                "total_price": line.total_price,
            }
            for line in priced
        ],
        "subtotal": totals.subtotal,
        "total": totals.total,
        "broker_commission_amount": totals.broker_commission_amount,
        "commissioner_amount": totals.commissioner_amount,
        "amount_due": totals.amount_due,
        "status": derive_status(totals.amount_due, 0, None),
    }
