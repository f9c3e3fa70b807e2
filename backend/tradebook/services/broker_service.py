# Overview: Service-layer operations for brokers; commission owed on customer invoices and its payments.

"""
Broker Commission Accounts

WHY: A broker earns a percentage on every customer invoice they bring.
The broker is paid against the running commission total, not per invoice.

INVARIANTS:
- total_commission = SUM(broker_commission_amount) over the broker's
  customer invoices, always recomputed from the invoices.
- total_remaining = total_commission - SUM(broker payments).
- A broker payment must satisfy 0 < amount <= total_remaining.
- A broker with a non-zero remaining balance cannot be deleted.
- Commission can never drop below what the broker was already paid:
  an invoice edit, move or delete that would do so is rejected.
"""

from __future__ import annotations

from datetime import date
from typing import Mapping, Optional

from sqlalchemy import func, or_

from ..exceptions import ConflictError, InvalidPaymentAmount, NotFound, ValidationError
from ..extensions import db
from ..models import Broker, Invoice, Payment
from ..models.invoices import INVOICE_CUSTOMER
from ..time_utils import parse_iso_date, to_iso_date
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry
from .party_service import clean_contact
from .payment_service import (
    BROKER_PAYMENT_METHODS,
    clean_notes,
    parse_payment_date,
    parse_payment_method,
    validate_payment_amount,
)
from .reconciliation import payment_position


def _parse_due_date(value) -> Optional[date]:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError("due_date", "must be an ISO-8601 date")


# =============================================================================
# POSITION
# =============================================================================

def commission_total(broker_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Invoice.broker_commission_amount), 0))
        .filter(Invoice.broker_id == broker_id, Invoice.invoice_type == INVOICE_CUSTOMER)
        .scalar()
    )
    return int(total or 0)


def broker_position(broker: Broker, today: Optional[date] = None):
    """PaymentPosition of a broker account, from invoices and payments."""
    return payment_position(
        amount_due=commission_total(broker.id),
        payments=[p.amount for p in broker.payments],
        due_date=broker.due_date,
        today=today,
    )


def refresh_broker_locked(broker_id: int) -> Optional[Broker]:
    """
    Recompute the cached commission total and status of a broker.

    Called inside the caller's transaction whenever a customer invoice of
    this broker is created, edited or deleted.

    Raises:
        InvalidPaymentAmount: the commission left on the broker's invoices
            would be less than the broker has already been paid
    """
    broker = lock_for_update(db.session.query(Broker).filter_by(id=broker_id)).first()
    if not broker:
        return None
    db.session.flush()
    position = broker_position(broker)
    total_commission = commission_total(broker.id)
    if total_commission < position.total_paid:
        raise InvalidPaymentAmount(
            f"Broker '{broker.name}' has been paid {position.total_paid}; "
            f"commission would drop to {total_commission}"
        )
    broker.total_commission = total_commission
    broker.status = position.status
    return broker


def broker_summary_dict(broker: Broker, today: Optional[date] = None) -> dict:
    position = broker_position(broker, today)
    data = broker.to_dict()
    data.update({
        "total_commission": position.total_paid + position.remaining,
        "total_paid": position.total_paid,
        "total_remaining": position.remaining,
        "status": position.status,
    })
    return data


# =============================================================================
# CRUD
# =============================================================================

def create_broker(payload: Mapping, user=None) -> Broker:
    def _op():
        fields = clean_contact(payload, name_field="broker_name" if "broker_name" in payload else "name")
        broker = Broker(**fields, due_date=_parse_due_date(payload.get("due_date")))
        db.session.add(broker)
        db.session.flush()
        log_activity(user, "broker.created", {"id": broker.id, "name": broker.name})
        db.session.commit()
        return broker

    return run_with_retry(_op)


def get_broker(broker_id: int) -> Broker:
    broker = db.session.query(Broker).filter_by(id=broker_id).first()
    if not broker:
        raise NotFound("broker", broker_id)
    return broker


def list_brokers(search: Optional[str] = None) -> list[Broker]:
    query = db.session.query(Broker)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(Broker.name.ilike(like), Broker.city.ilike(like), Broker.phone.ilike(like)))
    return query.order_by(Broker.name).all()


def update_broker(broker_id: int, payload: Mapping, user=None) -> Broker:
    """Update contact details; a rename is copied onto the broker's invoices."""
    def _op():
        broker = lock_for_update(db.session.query(Broker).filter_by(id=broker_id)).first()
        if not broker:
            raise NotFound("broker", broker_id)
        name_field = "broker_name" if "broker_name" in payload else "name"
        fields = clean_contact(payload, name_field=name_field, partial=True)
        for key, value in fields.items():
            setattr(broker, key, value)
        if "due_date" in payload:
            broker.due_date = _parse_due_date(payload.get("due_date"))
            fields["due_date"] = to_iso_date(broker.due_date)
        if "name" in fields:
            db.session.query(Invoice).filter(Invoice.broker_id == broker.id).update(
                {Invoice.broker_name: fields["name"]}, synchronize_session=False
            )
        broker.status = broker_position(broker).status
        log_activity(user, "broker.updated", {"id": broker.id, "changes": fields})
        db.session.commit()
        return broker

    return run_with_retry(_op)


def update_broker_due_date(broker_id: int, due_date, user=None) -> Broker:
    return update_broker(broker_id, {"due_date": due_date}, user=user)


def delete_broker(broker_id: int, user=None) -> None:
    """
    Delete a broker whose commission is fully settled.

    Customer invoices keep their broker_name and commission figures; only
    the link to the broker row is cleared. The settled payment history
    leaves with the broker.
    """
    def _op():
        broker = lock_for_update(db.session.query(Broker).filter_by(id=broker_id)).first()
        if not broker:
            raise NotFound("broker", broker_id)
        position = broker_position(broker)
        if position.remaining != 0:
            raise ConflictError(
                f"Broker '{broker.name}' still has {position.remaining} remaining and cannot be deleted"
            )
        db.session.query(Invoice).filter(Invoice.broker_id == broker.id).update(
            {Invoice.broker_id: None}, synchronize_session=False
        )
        log_activity(user, "broker.deleted", {"id": broker.id, "name": broker.name})
        db.session.delete(broker)
        db.session.commit()

    return run_with_retry(_op)


# =============================================================================
# PAYMENTS
# =============================================================================

def add_broker_payment(
    broker_id: int,
    *,
    amount,
    payment_date=None,
    payment_method=None,
    notes=None,
    due_date=None,
    user=None,
) -> Payment:
    """
    Pay a broker against their remaining commission.

    Raises:
        NotFound: broker does not exist
        InvalidPaymentAmount: amount <= 0 or amount > remaining commission
    """
    def _op():
        broker = lock_for_update(db.session.query(Broker).filter_by(id=broker_id)).first()
        if not broker:
            raise NotFound("broker", broker_id)

        if due_date not in (None, ""):
            broker.due_date = _parse_due_date(due_date)

        position = broker_position(broker)
        value = validate_payment_amount(amount, position.remaining)
        payment = Payment(
            amount=value,
            payment_date=parse_payment_date(payment_date),
            payment_method=parse_payment_method(payment_method, BROKER_PAYMENT_METHODS),
            notes=clean_notes(notes),
            created_by_user_id=user.id if user is not None else None,
        )
        broker.payments.append(payment)
        db.session.flush()

        position = broker_position(broker)
        broker.total_commission = position.total_paid + position.remaining
        broker.status = position.status
        log_activity(user, "broker.payment_added", {
            "broker_id": broker.id,
            "broker_name": broker.name,
            "amount": payment.amount,
            "remaining": position.remaining,
        })
        db.session.commit()
        return payment

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def broker_summary(broker_id: Optional[int] = None) -> list[dict] | dict:
    """Commission / paid / remaining / status for one broker or all of them."""
    if broker_id is not None:
        return broker_summary_dict(get_broker(broker_id))
    return [broker_summary_dict(b) for b in list_brokers()]


def broker_invoices(broker_id: int) -> list[Invoice]:
    get_broker(broker_id)
    return (
        db.session.query(Invoice)
        .filter(Invoice.broker_id == broker_id, Invoice.invoice_type == INVOICE_CUSTOMER)
        .order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        .all()
    )
