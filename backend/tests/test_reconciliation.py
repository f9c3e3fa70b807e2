"""
Tests for the pure invoice reconciliation rules.

Covers:
- Line pricing ignores client totals and validates inputs
- Totals and commissions per invoice type
- Status derivation (paid > partial > overdue > unpaid)
- Stock movement direction and edit diffs
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from tradebook.exceptions import InvalidDateRange, ValidationError
from tradebook.services.reconciliation import (
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_PARTIAL,
    STATUS_UNPAID,
    compute_totals,
    derive_status,
    diff_movements,
    payment_position,
    price_line,
    price_lines,
    reverse_movements,
    stock_movements,
    validate_due_date,
)
from tradebook.stock import StockDelta


TODAY = date(2024, 3, 15)


def vendor_line(item_id=10001, quantity=5, net=50, gross=55, price=100, storage="shop"):
    return {
        "item_id": item_id,
        "quantity": quantity,
        "net_weight": net,
        "gross_weight": gross,
        "purchase_price": price,
        "storage_type": storage,
    }


def customer_line(item_id=10001, quantity=2, net=20, gross=22, price=150):
    return {
        "item_id": item_id,
        "quantity": quantity,
        "net_weight": net,
        "gross_weight": gross,
        "selling_price": price,
    }


# =============================================================================
# LINE PRICING
# =============================================================================

class TestPriceLine:
    def test_client_total_is_ignored(self):
        raw = {**vendor_line(), "packaging_cost": 10, "total_price": 1}
        line = price_line("VENDOR", raw)
        # 5 x 10 + 50 x 100
        assert line.total_price == 5050

    def test_price_key_follows_invoice_type(self):
        raw = {"item_name": "Mangoes", "net_weight": 10, "sale_price": 30}
        assert price_line("COMMISSIONER", raw).total_price == 300

    def test_unit_price_fallback(self):
        raw = {"item_name": "Mangoes", "net_weight": 10, "unit_price": 30}
        assert price_line("CUSTOMER", raw).total_price == 300

    def test_free_text_line_needs_a_name(self):
        with pytest.raises(ValidationError) as exc:
            price_line("CUSTOMER", {"quantity": 1}, index=2)
        assert exc.value.field == "items[2].item_name"

    def test_vendor_storage_defaults_to_shop(self):
        raw = vendor_line()
        del raw["storage_type"]
        assert price_line("VENDOR", raw).storage_type == "shop"

    def test_vendor_storage_must_be_known(self):
        with pytest.raises(ValidationError):
            price_line("VENDOR", vendor_line(storage="garage"))

    def test_customer_lines_carry_no_storage(self):
        assert price_line("CUSTOMER", customer_line()).storage_type is None

    @pytest.mark.parametrize("bad_id", ["abc", True, -3, 0])
    def test_item_id_must_be_positive_integer(self, bad_id):
        with pytest.raises(ValidationError):
            price_line("CUSTOMER", customer_line(item_id=bad_id))

    def test_empty_invoice_rejected(self):
        with pytest.raises(ValidationError):
            price_lines("VENDOR", [])

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            price_lines("REFUND", [vendor_line()])


# =============================================================================
# TOTALS
# =============================================================================

class TestComputeTotals:
    def test_vendor_total_includes_labour(self):
        lines = price_lines("VENDOR", [vendor_line(price=10), vendor_line(item_id=10002, price=20)])
        totals = compute_totals("VENDOR", lines, labour_transport_cost=250)
        assert totals.subtotal == 500 + 1000
        assert totals.total == 1750
        assert totals.amount_due == 1750
        assert totals.broker_commission_amount == 0

    def test_customer_broker_commission_only_with_broker(self):
        lines = price_lines("CUSTOMER", [customer_line(net=50, price=100)])
        without = compute_totals("CUSTOMER", lines, broker_commission_percentage=2.5)
        with_broker = compute_totals("CUSTOMER", lines, broker_commission_percentage=2.5, has_broker=True)
        assert without.broker_commission_amount == 0
        assert with_broker.broker_commission_amount == 125
        # the customer still owes the full total
        assert with_broker.amount_due == 5000

    def test_commissioner_sheet_settles_on_commission(self):
        lines = price_lines("COMMISSIONER", [{"item_name": "Apples", "net_weight": 100, "sale_price": 40}])
        totals = compute_totals("COMMISSIONER", lines, labour_transport_cost=999, commissioner_percentage=5)
        assert totals.total == 4000
        assert totals.commissioner_amount == 200
        assert totals.amount_due == 200


class TestDueDate:
    def test_due_date_must_follow_invoice_date(self):
        with pytest.raises(InvalidDateRange):
            validate_due_date(TODAY, TODAY)
        with pytest.raises(InvalidDateRange):
            validate_due_date(TODAY, TODAY - timedelta(days=1))

    def test_missing_or_later_due_date_ok(self):
        validate_due_date(TODAY, None)
        validate_due_date(TODAY, TODAY + timedelta(days=1))


# =============================================================================
# STATUS
# =============================================================================

class TestDeriveStatus:
    def test_unpaid(self):
        assert derive_status(1000, 0, TODAY + timedelta(days=3), TODAY) == STATUS_UNPAID
        assert derive_status(1000, 0, None, TODAY) == STATUS_UNPAID

    def test_due_today_is_not_overdue(self):
        assert derive_status(1000, 0, TODAY, TODAY) == STATUS_UNPAID

    def test_overdue(self):
        assert derive_status(1000, 0, TODAY - timedelta(days=1), TODAY) == STATUS_OVERDUE

    def test_partial_wins_over_overdue(self):
        assert derive_status(1000, 400, TODAY - timedelta(days=10), TODAY) == STATUS_PARTIAL

    def test_paid_wins_over_everything(self):
        assert derive_status(1000, 1000, TODAY - timedelta(days=10), TODAY) == STATUS_PAID

    def test_zero_amount_due_is_paid(self):
        assert derive_status(0, 0, TODAY - timedelta(days=1), TODAY) == STATUS_PAID

    def test_payment_position(self):
        position = payment_position(1000, [400, 100], TODAY, TODAY)
        assert position.total_paid == 500
        assert position.remaining == 500
        assert position.status == STATUS_PARTIAL


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================

class TestStockMovements:
    def test_vendor_credits_storage_bucket(self):
        lines = price_lines("VENDOR", [vendor_line(storage="cold")])
        movements = stock_movements("VENDOR", lines)
        assert movements == {(10001, "cold"): StockDelta(5, 50, 55)}

    def test_customer_debits_shop(self):
        lines = price_lines("CUSTOMER", [customer_line()])
        movements = stock_movements("CUSTOMER", lines)
        assert movements == {(10001, "shop"): StockDelta(-2, -20, -22)}

    def test_commissioner_moves_nothing(self):
        lines = price_lines("COMMISSIONER", [{"item_id": 10001, "net_weight": 5, "sale_price": 1}])
        assert stock_movements("COMMISSIONER", lines) == {}

    def test_free_text_lines_move_nothing(self):
        lines = price_lines("VENDOR", [{"item_name": "Crates", "quantity": 10, "purchase_price": 5}])
        assert stock_movements("VENDOR", lines) == {}

    def test_same_item_lines_are_summed(self):
        lines = price_lines("VENDOR", [vendor_line(quantity=2), vendor_line(quantity=3)])
        movements = stock_movements("VENDOR", lines)
        assert movements[(10001, "shop")].quantity == Decimal("5")
        assert movements[(10001, "shop")].net_weight == Decimal("100")


class TestDiffMovements:
    def test_unchanged_lines_move_nothing(self):
        lines = price_lines("VENDOR", [vendor_line(), vendor_line(item_id=10002, storage="cold")])
        movements = stock_movements("VENDOR", lines)
        assert diff_movements(movements, movements) == {}

    def test_edit_moves_only_the_difference(self):
        before = stock_movements("VENDOR", price_lines("VENDOR", [vendor_line(quantity=5)]))
        after = stock_movements("VENDOR", price_lines("VENDOR", [vendor_line(quantity=8)]))
        diff = diff_movements(before, after)
        assert diff == {(10001, "shop"): StockDelta(3, 0, 0)}

    def test_moving_a_line_between_buckets(self):
        before = stock_movements("VENDOR", price_lines("VENDOR", [vendor_line(storage="shop")]))
        after = stock_movements("VENDOR", price_lines("VENDOR", [vendor_line(storage="cold")]))
        diff = diff_movements(before, after)
        assert diff[(10001, "shop")] == StockDelta(-5, -50, -55)
        assert diff[(10001, "cold")] == StockDelta(5, 50, 55)

    def test_removed_line_is_reversed(self):
        before = stock_movements("CUSTOMER", price_lines("CUSTOMER", [customer_line(), customer_line(item_id=10002)]))
        after = stock_movements("CUSTOMER", price_lines("CUSTOMER", [customer_line()]))
        assert diff_movements(before, after) == {(10002, "shop"): StockDelta(2, 20, 22)}

    def test_reverse(self):
        movements = {(10001, "shop"): StockDelta(1, 2, 3)}
        assert reverse_movements(movements) == {(10001, "shop"): StockDelta(-1, -2, -3)}
