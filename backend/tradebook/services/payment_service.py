# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment History Tracker

WHY: Invoices are settled over time. Every payment is appended to the
invoice's history and the paid / remaining / status figures are
recomputed from that full history in the same commit.

DESIGN PRINCIPLES:
- Payments are separate rows (many-to-one with invoices or brokers)
- Partial payments are normal; overpayment is not: 0 < amount <= remaining
- Immutable history: no operation edits or deletes a payment
- The invoice row is locked before the remaining amount is read, so two
  concurrent payments cannot both pass the remaining check
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from ..exceptions import InvalidPaymentAmount, NotFound, ValidationError
from ..extensions import db
from ..models import Invoice, Payment
from ..models.invoices import INVOICE_COMMISSIONER
from ..money import round_money, to_decimal
from ..time_utils import parse_iso_date, today as utc_today
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry
from .reconciliation import payment_position, validate_due_date


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_ONLINE = "online"
METHOD_CHEQUE = "cheque"
METHOD_BANK = "bank"
METHOD_OTHER = "other"

INVOICE_PAYMENT_METHODS = (METHOD_CASH, METHOD_ONLINE, METHOD_CHEQUE)
COMMISSIONER_PAYMENT_METHODS = INVOICE_PAYMENT_METHODS + (METHOD_BANK, METHOD_OTHER)
BROKER_PAYMENT_METHODS = INVOICE_PAYMENT_METHODS


def allowed_methods(invoice: Invoice) -> tuple[str, ...]:
    if invoice.invoice_type == INVOICE_COMMISSIONER:
        return COMMISSIONER_PAYMENT_METHODS
    return INVOICE_PAYMENT_METHODS


# =============================================================================
# VALIDATION
# =============================================================================

def validate_payment_amount(amount, remaining: int) -> int:
    """
    Round to whole currency and check 0 < amount <= remaining.

    Raises:
        ValidationError: amount is not a number
        InvalidPaymentAmount: amount is zero/negative or exceeds remaining
    """
    value = round_money(to_decimal(amount, "amount"))
    if value <= 0:
        raise InvalidPaymentAmount("Payment amount must be greater than zero")
    if remaining <= 0:
        raise InvalidPaymentAmount("Nothing remains to be paid")
    if value > remaining:
        raise InvalidPaymentAmount(f"Payment amount {value} exceeds remaining amount {remaining}")
    return value


def parse_payment_method(value, allowed: tuple[str, ...]) -> str:
    method = str(value or METHOD_CASH).strip().lower()
    if method not in allowed:
        raise ValidationError("payment_method", f"must be one of {', '.join(allowed)}")
    return method


def parse_payment_date(value) -> date:
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError("payment_date", "must be an ISO-8601 date")
    return parsed or utc_today()


def clean_notes(notes) -> Optional[str]:
    if notes is None:
        return None
    notes = str(notes).strip()
    return notes or None


# =============================================================================
# CACHED POSITION
# =============================================================================

def refresh_payment_cache(invoice: Invoice, today: Optional[date] = None):
    """
    Recompute and store paid / remaining / status from the payment rows.

    Returns the PaymentPosition written.
    """
    position = payment_position(
        amount_due=invoice.amount_due,
        payments=[p.amount for p in invoice.payments],
        due_date=invoice.due_date,
        today=today,
    )
    invoice.total_paid_amount = position.total_paid
    invoice.remaining_amount = position.remaining
    invoice.status = position.status
    return position


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def append_invoice_payment_locked(
    invoice: Invoice,
    *,
    amount,
    payment_date=None,
    payment_method=None,
    notes=None,
    user=None,
) -> Payment:
    """
    Core payment logic without locking, retry or commit.

    Called by add_invoice_payment() and by invoice creation (initial
    paid_amount). The caller must hold the invoice row lock.
    """
    position = payment_position(invoice.amount_due, [p.amount for p in invoice.payments], invoice.due_date)
    value = validate_payment_amount(amount, position.remaining)
    method = parse_payment_method(payment_method, allowed_methods(invoice))

    payment = Payment(
        amount=value,
        payment_date=parse_payment_date(payment_date),
        payment_method=method,
        notes=clean_notes(notes),
        created_by_user_id=user.id if user is not None else None,
    )
    invoice.payments.append(payment)
    db.session.flush()
    refresh_payment_cache(invoice)
    return payment


def add_invoice_payment(
    invoice_id: int,
    *,
    amount,
    payment_date=None,
    payment_method=None,
    notes=None,
    due_date=None,
    user=None,
) -> Payment:
    """
    Add a payment to an invoice.

    Args:
        invoice_id: Invoice being paid
        amount: Amount paid (rounded to whole currency)
        payment_date: ISO date (defaults to today)
        payment_method: cash, online, cheque (commissioner sheets also bank, other)
        notes: Free text (optional)
        due_date: New due date recorded with the payment (optional)
        user: Acting user, for attribution

    Returns:
        Payment record

    Raises:
        NotFound: invoice does not exist
        InvalidPaymentAmount: amount <= 0 or amount > remaining
        InvalidDateRange: due_date not after the invoice date
    """
    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFound("invoice", invoice_id)

        if due_date not in (None, ""):
            try:
                parsed_due = parse_iso_date(due_date)
            except ValueError:
                raise ValidationError("due_date", "must be an ISO-8601 date")
            validate_due_date(invoice.invoice_date, parsed_due)
            invoice.due_date = parsed_due

        payment = append_invoice_payment_locked(
            invoice,
            amount=amount,
            payment_date=payment_date,
            payment_method=payment_method,
            notes=notes,
            user=user,
        )
        log_activity(user, "payment.added", {
            "invoice_number": invoice.invoice_number,
            "amount": payment.amount,
            "payment_method": payment.payment_method,
            "remaining_amount": invoice.remaining_amount,
        })
        db.session.commit()
        return payment

    return run_with_retry(_op)


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

def list_payments(invoice_id: int) -> list[Payment]:
    """All payments of an invoice, in the order they were recorded."""
    if not db.session.query(Invoice.id).filter_by(id=invoice_id).first():
        raise NotFound("invoice", invoice_id)
    return db.session.query(Payment).filter_by(invoice_id=invoice_id).order_by(Payment.id).all()


def get_payment_summary(invoice_id: int) -> dict:
    """
    Paid / remaining / status of an invoice, recomputed from its payments.
    """
    invoice = db.session.query(Invoice).filter_by(id=invoice_id).first()
    if not invoice:
        raise NotFound("invoice", invoice_id)
    position = payment_position(invoice.amount_due, [p.amount for p in invoice.payments], invoice.due_date)
    return {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "amount_due": invoice.amount_due,
        "total_paid_amount": position.total_paid,
        "remaining_amount": position.remaining,
        "status": position.status,
        "payment_count": len(invoice.payments),
    }
