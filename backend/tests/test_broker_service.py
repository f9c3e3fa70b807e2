"""
Tests for broker commission accounts.
"""

import pytest

from tradebook.exceptions import ConflictError, InvalidPaymentAmount, NotFound, ValidationError
from tradebook.extensions import db
from tradebook.models import Invoice
from tradebook.services import broker_service, invoice_service
from tradebook.services.reconciliation import STATUS_PAID, STATUS_PARTIAL


def sell(parties, net_weight, percentage=2.5, broker_id=None):
    return invoice_service.create_invoice("CUSTOMER", {
        "customer_id": parties["customer"].id,
        "broker_id": broker_id or parties["broker"].id,
        "broker_commission_percentage": percentage,
        "items": [{"item_name": "Mixed produce", "net_weight": net_weight, "selling_price": 100}],
    })


def test_commission_accumulates_over_invoices(parties):
    sell(parties, 50)   # 5000 -> 125
    sell(parties, 20)   # 2000 -> 50

    summary = broker_service.broker_summary(parties["broker"].id)
    assert summary["total_commission"] == 175
    assert summary["total_paid"] == 0
    assert summary["total_remaining"] == 175
    assert [i.invoice_number for i in broker_service.broker_invoices(parties["broker"].id)] == ["CIN0002", "CIN0001"]


def test_payments_against_commission(parties, admin_user):
    sell(parties, 50)
    broker_id = parties["broker"].id

    broker_service.add_broker_payment(broker_id, amount=100, user=admin_user)
    summary = broker_service.broker_summary(broker_id)
    assert summary["total_remaining"] == 25
    assert summary["status"] == STATUS_PARTIAL

    with pytest.raises(InvalidPaymentAmount):
        broker_service.add_broker_payment(broker_id, amount=26)

    broker_service.add_broker_payment(broker_id, amount=25, payment_method="online")
    assert broker_service.broker_summary(broker_id)["status"] == STATUS_PAID
    assert broker_service.get_broker(broker_id).total_commission == 125


def test_nothing_owed_rejects_payment(parties):
    with pytest.raises(InvalidPaymentAmount):
        broker_service.add_broker_payment(parties["broker"].id, amount=10)


def test_deleting_invoice_reduces_commission(parties):
    invoice = sell(parties, 50)
    sell(parties, 20)
    invoice_service.delete_invoice(invoice.id)
    assert broker_service.get_broker(parties["broker"].id).total_commission == 50


def test_cannot_delete_broker_with_balance(parties):
    sell(parties, 50)
    with pytest.raises(ConflictError):
        broker_service.delete_broker(parties["broker"].id)


def test_delete_settled_broker_keeps_invoice_figures(parties):
    invoice = sell(parties, 50)
    broker_id = parties["broker"].id
    broker_service.add_broker_payment(broker_id, amount=125)

    broker_service.delete_broker(broker_id)

    with pytest.raises(NotFound):
        broker_service.get_broker(broker_id)
    stored = db.session.get(Invoice, invoice.id)
    assert stored.broker_id is None
    assert stored.broker_name == "Karim"
    assert stored.broker_commission_amount == 125


def test_rename_is_copied_to_invoices(parties):
    invoice = sell(parties, 10)
    broker_service.update_broker(parties["broker"].id, {"name": "Karim Bux", "phone": "0300-1234567"})
    assert invoice_service.get_invoice(invoice.id).broker_name == "Karim Bux"


def test_create_requires_name(db_session):
    with pytest.raises(ValidationError):
        broker_service.create_broker({"name": "  "})
    broker = broker_service.create_broker({"broker_name": "Saleem", "city": "Okara"})
    assert broker.name == "Saleem"


def test_due_date_update(parties):
    broker = broker_service.update_broker_due_date(parties["broker"].id, "2024-05-01")
    assert broker.due_date.isoformat() == "2024-05-01"
    with pytest.raises(ValidationError):
        broker_service.update_broker_due_date(parties["broker"].id, "not-a-date")


def test_search(parties):
    broker_service.create_broker({"name": "Saleem", "city": "Okara"})
    assert [b.name for b in broker_service.list_brokers("oka")] == ["Saleem"]
    assert len(broker_service.list_brokers()) == 2


def test_paid_commission_blocks_invoice_delete(parties):
    invoice = sell(parties, 50)
    broker_id = parties["broker"].id
    broker_service.add_broker_payment(broker_id, amount=125)

    with pytest.raises(InvalidPaymentAmount):
        invoice_service.delete_invoice(invoice.id)

    assert invoice_service.get_invoice(invoice.id).broker_commission_amount == 125
    summary = broker_service.broker_summary(broker_id)
    assert summary["total_commission"] == 125
    assert summary["total_remaining"] == 0


def test_paid_commission_blocks_lower_commission_edit(parties):
    invoice = sell(parties, 50)
    broker_id = parties["broker"].id
    broker_service.add_broker_payment(broker_id, amount=100)

    with pytest.raises(InvalidPaymentAmount):
        invoice_service.update_invoice(invoice.id, {"broker_commission_percentage": 1})

    # dropping to exactly what was paid is allowed
    invoice_service.update_invoice(invoice.id, {"broker_commission_percentage": 2})
    summary = broker_service.broker_summary(broker_id)
    assert summary["total_commission"] == 100
    assert summary["total_remaining"] == 0
    assert summary["status"] == STATUS_PAID


def test_paid_commission_blocks_moving_invoice_to_other_broker(parties):
    invoice = sell(parties, 50)
    broker_id = parties["broker"].id
    broker_service.add_broker_payment(broker_id, amount=125)
    other = broker_service.create_broker({"name": "Saleem"})

    with pytest.raises(InvalidPaymentAmount):
        invoice_service.update_invoice(invoice.id, {"broker_id": other.id})

    assert invoice_service.get_invoice(invoice.id).broker_id == broker_id
    assert broker_service.broker_summary(other.id)["total_commission"] == 0
