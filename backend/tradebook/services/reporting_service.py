# Overview: Service-layer operations for reporting; dashboard payables, circulating supply and sales figures.

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..exceptions import InvalidDateRange, ValidationError
from ..extensions import db
from ..models import Broker, Invoice, InvoiceLine, Payment
from ..models.invoices import INVOICE_COMMISSIONER, INVOICE_CUSTOMER, INVOICE_VENDOR
from ..money import as_number
from ..time_utils import parse_iso_date, to_iso_date, today as utc_today
from .balance_service import total_balance
from .broker_service import broker_position
from .reconciliation import STATUS_OVERDUE, STATUS_PARTIAL, STATUS_UNPAID, payment_position


DASHBOARD_KINDS = {
    "customers": INVOICE_CUSTOMER,
    "vendors": INVOICE_VENDOR,
    "commissioners": INVOICE_COMMISSIONER,
}


def _parse_range(date_from, date_to) -> tuple[Optional[date], Optional[date]]:
    try:
        start = parse_iso_date(date_from)
        end = parse_iso_date(date_to)
    except ValueError:
        raise ValidationError("date", "must be an ISO-8601 date")
    if start and end and start > end:
        raise InvalidDateRange(f"date_from {start.isoformat()} is after date_to {end.isoformat()}")
    return start, end


def _needs_reminder(status: str, due_date: Optional[date], today: date, horizon: date) -> bool:
    if status == STATUS_OVERDUE:
        return True
    if status in (STATUS_UNPAID, STATUS_PARTIAL) and due_date is not None:
        return today <= due_date <= horizon
    return False


# =============================================================================
# DASHBOARD
# =============================================================================

def _invoice_payables(invoice_type: str, today: date, horizon: date) -> dict:
    total_paid = 0
    total_remaining = 0
    reminders = []
    invoices = db.session.query(Invoice).filter(Invoice.invoice_type == invoice_type).all()
    for invoice in invoices:
        position = payment_position(
            invoice.amount_due, [p.amount for p in invoice.payments], invoice.due_date, today
        )
        total_paid += position.total_paid
        total_remaining += position.remaining
        if _needs_reminder(position.status, invoice.due_date, today, horizon):
            reminders.append({
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "name": invoice.party_name,
                "due_date": to_iso_date(invoice.due_date),
                "remaining_amount": position.remaining,
                "status": position.status,
            })
    reminders.sort(key=lambda r: (r["due_date"] or "", r["invoice_number"]))
    return {"total_paid": total_paid, "total_remaining": total_remaining, "reminders": reminders}


def _broker_payables(today: date, horizon: date) -> dict:
    total_paid = 0
    total_remaining = 0
    reminders = []
    for broker in db.session.query(Broker).order_by(Broker.name).all():
        position = broker_position(broker, today)
        total_paid += position.total_paid
        total_remaining += position.remaining
        if _needs_reminder(position.status, broker.due_date, today, horizon):
            reminders.append({
                "id": broker.id,
                "name": broker.name,
                "due_date": to_iso_date(broker.due_date),
                "remaining_amount": position.remaining,
                "status": position.status,
            })
    reminders.sort(key=lambda r: (r["due_date"] or "", r["name"]))
    return {"total_paid": total_paid, "total_remaining": total_remaining, "reminders": reminders}


def circulating_supply() -> dict:
    """
    Cash position: balance sheet plus money received minus money paid out.

    received = payments on customer invoices and commissioner sheets
    paid out = payments on vendor invoices and to brokers
    """
    rows = (
        db.session.query(Invoice.invoice_type, func.coalesce(func.sum(Payment.amount), 0))
        .join(Payment, Payment.invoice_id == Invoice.id)
        .group_by(Invoice.invoice_type)
        .all()
    )
    paid = {invoice_type: int(amount or 0) for invoice_type, amount in rows}
    broker_paid = int(
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.broker_id.isnot(None))
        .scalar() or 0
    )
    balance = total_balance()
    received = paid.get(INVOICE_CUSTOMER, 0) + paid.get(INVOICE_COMMISSIONER, 0)
    paid_out = paid.get(INVOICE_VENDOR, 0) + broker_paid
    return {
        "total_balance": balance,
        "received": received,
        "paid_out": paid_out,
        "circulating_supply": balance + received - paid_out,
    }


def dashboard(today: Optional[date] = None, window_days: Optional[int] = None) -> dict:
    """
    Payables per party kind with due-date reminders.

    A reminder is raised for anything overdue, and for anything unpaid or
    partially paid that falls due within the next window_days days.
    """
    today = today or utc_today()
    if window_days is None:
        window_days = int(current_app.config.get("REMINDER_WINDOW_DAYS", 7))
    horizon = today + timedelta(days=window_days)

    data = {kind: _invoice_payables(invoice_type, today, horizon) for kind, invoice_type in DASHBOARD_KINDS.items()}
    data["brokers"] = _broker_payables(today, horizon)
    data.update(circulating_supply())
    data["as_of"] = today.isoformat()
    return data


# =============================================================================
# SALES REPORT
# =============================================================================

def sales_report(date_from=None, date_to=None, limit: int = 5) -> dict:
    """
    Revenue from item sales (customer subtotals) and from commissions
    (commissioner amounts) over an optional invoice date range, with the
    best and worst selling items by revenue.
    """
    start, end = _parse_range(date_from, date_to)
    limit = min(max(int(limit or 5), 1), 100)

    def _in_range(query):
        if start is not None:
            query = query.filter(Invoice.invoice_date >= start)
        if end is not None:
            query = query.filter(Invoice.invoice_date <= end)
        return query

    item_revenue = int(_in_range(
        db.session.query(func.coalesce(func.sum(Invoice.subtotal), 0))
        .filter(Invoice.invoice_type == INVOICE_CUSTOMER)
    ).scalar() or 0)
    commission_revenue = int(_in_range(
        db.session.query(func.coalesce(func.sum(Invoice.commissioner_amount), 0))
        .filter(Invoice.invoice_type == INVOICE_COMMISSIONER)
    ).scalar() or 0)

    rows = _in_range(
        db.session.query(
            InvoiceLine.item_name.label("item_name"),
            func.coalesce(func.sum(InvoiceLine.total_price), 0).label("revenue"),
            func.coalesce(func.sum(InvoiceLine.quantity), 0).label("quantity"),
            func.coalesce(func.sum(InvoiceLine.net_weight), 0).label("net_weight"),
        )
        .join(Invoice, InvoiceLine.invoice_id == Invoice.id)
        .filter(Invoice.invoice_type == INVOICE_CUSTOMER)
    ).group_by(InvoiceLine.item_name).all()

    items = [
        {
            "item_name": row.item_name,
            "revenue": int(row.revenue or 0),
            "quantity": as_number(row.quantity or 0),
            "net_weight": as_number(row.net_weight or 0),
        }
        for row in rows
    ]
    by_revenue = sorted(items, key=lambda i: (-i["revenue"], i["item_name"]))
    least = sorted(items, key=lambda i: (i["revenue"], i["item_name"]))

    return {
        "date_from": to_iso_date(start),
        "date_to": to_iso_date(end),
        "revenue_from_items": item_revenue,
        "revenue_from_commissions": commission_revenue,
        "total_sales": item_revenue + commission_revenue,
        "top_items": by_revenue[:limit],
        "least_items": least[:limit],
    }
