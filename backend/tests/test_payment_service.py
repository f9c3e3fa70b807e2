"""
Tests for the invoice payment history.

Covers:
- Partial then full payment (unpaid -> partial -> paid)
- Amount bounds: 0 < amount <= remaining
- Payment methods per invoice type
- Due date recorded with a payment
"""

import pytest

from tradebook.exceptions import InvalidDateRange, InvalidPaymentAmount, NotFound, ValidationError
from tradebook.services import invoice_service, payment_service
from tradebook.services.reconciliation import STATUS_PAID, STATUS_PARTIAL, STATUS_UNPAID


@pytest.fixture
def invoice(items, parties):
    """Vendor invoice with a total of 1000."""
    return invoice_service.create_invoice("VENDOR", {
        "vendor_id": parties["vendor"].id,
        "invoice_date": "2024-03-01",
        "items": [{"item_id": 10001, "quantity": 5, "net_weight": 10, "purchase_price": 100}],
    })


def test_partial_then_full_payment(invoice, admin_user):
    assert payment_service.get_payment_summary(invoice.id)["status"] == STATUS_UNPAID

    payment_service.add_invoice_payment(invoice.id, amount=400, user=admin_user)
    summary = payment_service.get_payment_summary(invoice.id)
    assert summary["status"] == STATUS_PARTIAL
    assert summary["total_paid_amount"] == 400
    assert summary["remaining_amount"] == 600

    payment_service.add_invoice_payment(invoice.id, amount=600, payment_method="cheque")
    summary = payment_service.get_payment_summary(invoice.id)
    assert summary["status"] == STATUS_PAID
    assert summary["remaining_amount"] == 0
    assert summary["payment_count"] == 2

    with pytest.raises(InvalidPaymentAmount):
        payment_service.add_invoice_payment(invoice.id, amount=1)


def test_stored_cache_matches_history(invoice):
    payment_service.add_invoice_payment(invoice.id, amount=250)
    stored = invoice_service.get_invoice(invoice.id)
    assert stored.total_paid_amount == 250
    assert stored.remaining_amount == 750
    assert stored.status == STATUS_PARTIAL


@pytest.mark.parametrize("amount", [0, -10, 1001])
def test_amount_bounds(invoice, amount):
    with pytest.raises(InvalidPaymentAmount):
        payment_service.add_invoice_payment(invoice.id, amount=amount)
    assert payment_service.list_payments(invoice.id) == []


def test_non_numeric_amount(invoice):
    with pytest.raises(ValidationError):
        payment_service.add_invoice_payment(invoice.id, amount="lots")


def test_amount_rounded_half_up(invoice):
    payment = payment_service.add_invoice_payment(invoice.id, amount="99.5")
    assert payment.amount == 100


def test_bank_transfer_only_for_commissioner_sheets(invoice, parties):
    with pytest.raises(ValidationError):
        payment_service.add_invoice_payment(invoice.id, amount=10, payment_method="bank")

    sheet = invoice_service.create_invoice("COMMISSIONER", {
        "commissioner_id": parties["commissioner"].id,
        "commissioner_percentage": 10,
        "items": [{"item_name": "Apples", "net_weight": 100, "sale_price": 10}],
    })
    payment = payment_service.add_invoice_payment(sheet.id, amount=100, payment_method="bank")
    assert payment.payment_method == "bank"
    assert payment_service.get_payment_summary(sheet.id)["status"] == STATUS_PAID


def test_payment_records_new_due_date(invoice):
    payment_service.add_invoice_payment(invoice.id, amount=100, due_date="2024-04-01", payment_date="2024-03-05")
    stored = invoice_service.get_invoice(invoice.id)
    assert stored.due_date.isoformat() == "2024-04-01"
    assert stored.payments[0].payment_date.isoformat() == "2024-03-05"

    with pytest.raises(InvalidDateRange):
        payment_service.add_invoice_payment(invoice.id, amount=100, due_date="2024-02-01")


def test_missing_invoice(db_session):
    with pytest.raises(NotFound):
        payment_service.add_invoice_payment(999, amount=10)
    with pytest.raises(NotFound):
        payment_service.list_payments(999)
