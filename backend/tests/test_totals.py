# Overview: Pytest coverage for the document totals calculator.

"""
Totals Calculator Tests

The calculator is pure, so these tests need no database.

Coverage:
- VAT on gross line value, rounded half-up once after summing
- Flat discounts subtracted after VAT
- Totals floor at zero
- Malformed lines rejected
"""

import pytest

from maroc_billing.services.errors import ValidationError
from maroc_billing.services.totals_service import (
    LineInput,
    calculate_line_total,
    calculate_totals,
    format_amount,
    percentage_of,
    round_half_up,
)


class TestCalculateTotals:
    """Document totals from line items."""

    def test_single_line_with_vat(self):
        """2 x 100.00 at 20% -> 200.00 + 40.00 = 240.00"""
        totals = calculate_totals([{"quantity": 2, "unit_price_cents": 10000, "vat_rate_bps": 2000}])

        assert totals.subtotal_cents == 20000
        assert totals.vat_amount_cents == 4000
        assert totals.discount_cents == 0
        assert totals.total_cents == 24000

    def test_two_lines_with_discount_and_zero_rate(self):
        totals = calculate_totals([
            {"quantity": 2, "unit_price_cents": 100, "vat_rate_bps": 2000, "discount_cents": 0},
            {"quantity": 1, "unit_price_cents": 50, "vat_rate_bps": 0, "discount_cents": 10},
        ])

        assert totals.subtotal_cents == 250
        assert totals.vat_amount_cents == 40
        assert totals.discount_cents == 10
        assert totals.total_cents == 280

    def test_discount_applied_after_vat_on_gross(self):
        """VAT is computed on the gross value; the discount is flat."""
        totals = calculate_totals([
            {"quantity": 1, "unit_price_cents": 10000, "vat_rate_bps": 2000, "discount_cents": 1000},
        ])

        assert totals.subtotal_cents == 10000
        assert totals.vat_amount_cents == 2000
        assert totals.discount_cents == 1000
        assert totals.total_cents == 11000

    def test_mixed_rates(self):
        totals = calculate_totals([
            LineInput(quantity=3, unit_price_cents=1000, vat_rate_bps=1000),
            LineInput(quantity=1, unit_price_cents=5000, vat_rate_bps=2000),
            LineInput(quantity=2, unit_price_cents=750, vat_rate_bps=0),
        ])

        assert totals.subtotal_cents == 3000 + 5000 + 1500
        assert totals.vat_amount_cents == 300 + 1000
        assert totals.total_cents == 9500 + 1300

    def test_vat_rounded_once_after_summing(self):
        """Three lines of 0.33 MAD at 7% would round to 0 each; summed they give 0.07."""
        lines = [{"quantity": 1, "unit_price_cents": 33, "vat_rate_bps": 700}] * 3

        totals = calculate_totals(lines)

        # 99 * 0.07 = 6.93 -> 7
        assert totals.vat_amount_cents == 7

    def test_half_centime_rounds_up(self):
        """0.25 MAD at 10% = 0.025 MAD -> 0.03 MAD"""
        totals = calculate_totals([{"quantity": 1, "unit_price_cents": 25, "vat_rate_bps": 1000}])
        assert totals.vat_amount_cents == 3

    def test_total_floors_at_zero(self):
        totals = calculate_totals([
            {"quantity": 1, "unit_price_cents": 1000, "vat_rate_bps": 0, "discount_cents": 5000},
        ])
        assert totals.total_cents == 0

    def test_empty_sequence_yields_zero_totals(self):
        totals = calculate_totals([])
        assert totals.to_dict() == {
            "subtotal_cents": 0,
            "vat_amount_cents": 0,
            "discount_cents": 0,
            "total_cents": 0,
        }

    def test_same_input_same_totals(self):
        """Recomputing never drifts."""
        lines = [
            {"quantity": 7, "unit_price_cents": 1999, "vat_rate_bps": 1400, "discount_cents": 150},
            {"quantity": 1, "unit_price_cents": 123456, "vat_rate_bps": 2000},
        ]
        assert calculate_totals(lines) == calculate_totals(lines)

    def test_accepts_row_like_objects(self):
        class Row:
            quantity = 4
            unit_price_cents = 2500
            vat_rate_bps = 2000
            discount_cents = 0

        totals = calculate_totals([Row()])
        assert totals.total_cents == 12000


class TestLineValidation:
    """Malformed lines are rejected before any arithmetic."""

    @pytest.mark.parametrize("line, field", [
        ({"quantity": 0, "unit_price_cents": 100}, "items[0].quantity"),
        ({"quantity": -2, "unit_price_cents": 100}, "items[0].quantity"),
        ({"quantity": 1.5, "unit_price_cents": 100}, "items[0].quantity"),
        ({"quantity": 1, "unit_price_cents": -1}, "items[0].unit_price_cents"),
        ({"quantity": 1, "unit_price_cents": 100, "vat_rate_bps": -2000}, "items[0].vat_rate_bps"),
        ({"quantity": 1, "unit_price_cents": 100, "discount_cents": -5}, "items[0].discount_cents"),
    ])
    def test_invalid_line_rejected(self, line, field):
        with pytest.raises(ValidationError) as exc_info:
            calculate_totals([line])
        assert exc_info.value.details["field"] == field

    def test_error_points_at_offending_line(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_totals([
                {"quantity": 1, "unit_price_cents": 100},
                {"quantity": True, "unit_price_cents": 100},
            ])
        assert exc_info.value.details["field"] == "items[1].quantity"


class TestHelpers:

    def test_line_total_subtracts_discount(self):
        assert calculate_line_total({"quantity": 3, "unit_price_cents": 1000, "discount_cents": 500}) == 2500

    def test_line_total_never_negative(self):
        assert calculate_line_total({"quantity": 1, "unit_price_cents": 100, "discount_cents": 500}) == 0

    def test_round_half_up(self):
        assert round_half_up(5, 10) == 1
        assert round_half_up(4, 10) == 0
        assert round_half_up(15, 10) == 2

    def test_percentage_of(self):
        """30% of 240.00 MAD"""
        assert percentage_of(24000, 3000) == 7200
        assert percentage_of(1001, 5000) == 501

    def test_format_amount(self):
        assert format_amount(123456) == "1 234,56 MAD"
        assert format_amount(5) == "0,05 MAD"
        assert format_amount(-250000, "EUR") == "-2 500,00 EUR"
