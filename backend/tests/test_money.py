"""
Money and quantity arithmetic.

Pure functions: no app, no database.
"""

from decimal import Decimal

import pytest

from tradebook.exceptions import ValidationError
from tradebook.money import (
    as_number,
    commission_amount,
    invoice_total,
    line_total,
    parse_money,
    parse_percentage,
    parse_quantity,
    remaining_amount,
    round_money,
    subtotal,
    to_decimal,
)


class TestRounding:
    def test_half_up_not_bankers(self):
        assert round_money(Decimal("2.5")) == 3
        assert round_money(Decimal("3.5")) == 4
        assert round_money("0.49") == 0

    def test_floats_go_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("bad", [None, True, "abc", "", "NaN", "Infinity", [1]])
    def test_rejects_non_numbers(self, bad):
        with pytest.raises(ValidationError):
            to_decimal(bad, "amount")


class TestDerivedFigures:
    def test_line_total(self):
        # 4 crates x 25 packaging + 80.5 kg x 120 per kg = 100 + 9660
        assert line_total(4, 25, Decimal("80.5"), 120) == 9760

    def test_line_total_rounds_once(self):
        # 0.333 kg x 1.5 = 0.4995 -> 0
        assert line_total(0, 0, Decimal("0.333"), Decimal("1.5")) == 0
        # 1.5 kg x 1.67 = 2.505 -> 3
        assert line_total(0, 0, Decimal("1.5"), Decimal("1.67")) == 3

    def test_subtotal_and_total(self):
        assert subtotal([100, 250, 0]) == 350
        assert invoice_total(350, 50) == 400
        assert invoice_total(350, None) == 350

    def test_broker_commission_example(self):
        assert commission_amount(5000, 2.5) == 125

    def test_commission_rounds_half_up(self):
        # 1010 x 0.05% = 0.505
        assert commission_amount(1010, Decimal("0.05")) == 1

    @pytest.mark.parametrize("pct", [-1, 100.01, "x"])
    def test_commission_percentage_bounds(self, pct):
        with pytest.raises(ValidationError):
            commission_amount(1000, pct)

    def test_remaining(self):
        assert remaining_amount(1000, 400) == 600


class TestParsing:
    def test_parse_money_optional_defaults_to_zero(self):
        assert parse_money(None, "labour", required=False) == 0
        assert parse_money("", "labour", required=False) == 0

    def test_parse_money_required(self):
        with pytest.raises(ValidationError) as exc:
            parse_money(None, "amount")
        assert exc.value.field == "amount"

    def test_parse_money_rejects_negative_and_zero_when_positive(self):
        with pytest.raises(ValidationError):
            parse_money(-5, "amount")
        with pytest.raises(ValidationError):
            parse_money(0, "amount", positive=True)
        assert parse_money("12.5", "amount") == 13

    def test_parse_quantity_keeps_three_decimals(self):
        assert parse_quantity("12.3456", "net_weight") == Decimal("12.346")
        assert parse_quantity(None, "net_weight") == Decimal("0")
        with pytest.raises(ValidationError):
            parse_quantity(-1, "quantity")

    def test_parse_percentage(self):
        assert parse_percentage(None, "pct") == 0
        assert parse_percentage("2.5", "pct") == Decimal("2.5")
        with pytest.raises(ValidationError):
            parse_percentage(150, "pct")

    def test_as_number(self):
        assert as_number(Decimal("5.000")) == 5
        assert isinstance(as_number(Decimal("5.000")), int)
        assert as_number(Decimal("5.250")) == 5.25
        assert as_number(None) is None
