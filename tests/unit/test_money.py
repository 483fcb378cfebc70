"""
Unit tests for money coercion, rounding and formatting.
"""

from datetime import datetime
from decimal import Decimal

from pos_checkout.utils.money import (
    PRICE_STEP, QTY_STEP, ceil_money, clamp, limit_places, non_negative, plain, round_money, to_decimal
)
from pos_checkout.utils.formatters import (
    format_amount, format_currency, format_quantity, format_percent, format_receipt_datetime, scale_code
)


class TestToDecimal:
    """Tests for input coercion."""

    def test_passes_numbers_through(self):
        assert to_decimal(Decimal('12.50')) == Decimal('12.50')
        assert to_decimal(7) == Decimal('7')

    def test_float_goes_through_str(self):
        """0.1 must not become 0.1000000000000000055511151231257827."""
        assert to_decimal(0.1) == Decimal('0.1')

    def test_accepts_grouped_strings(self):
        assert to_decimal('1,234.50') == Decimal('1234.50')
        assert to_decimal('1,23,456.00') == Decimal('123456.00')
        assert to_decimal('  42  ') == Decimal('42')

    def test_invalid_input_becomes_default(self):
        assert to_decimal(None) == Decimal('0')
        assert to_decimal('') == Decimal('0')
        assert to_decimal('abc') == Decimal('0')
        assert to_decimal(True) == Decimal('0')
        assert to_decimal('12,5') == Decimal('0')

    def test_non_finite_becomes_default(self):
        assert to_decimal(float('nan')) == Decimal('0')
        assert to_decimal('Infinity') == Decimal('0')
        assert to_decimal(float('-inf'), default=None) is None


class TestRounding:
    """Tests for rounding helpers."""

    def test_round_money_half_up(self):
        assert round_money('2.345') == Decimal('2.35')
        assert round_money(Decimal('2.344')) == Decimal('2.34')
        assert round_money(None) == Decimal('0.00')

    def test_ceil_money(self):
        assert ceil_money('179.01') == Decimal('180')
        assert ceil_money('180') == Decimal('180')

    def test_clamp_and_non_negative(self):
        assert clamp(Decimal('120'), Decimal('0'), Decimal('100')) == Decimal('100')
        assert clamp(Decimal('-1'), Decimal('0')) == Decimal('0')
        assert non_negative('-5') == Decimal('0')
        assert non_negative('5') == Decimal('5')

    def test_limit_places_only_rounds_excess_precision(self):
        assert limit_places(Decimal('1.2345'), QTY_STEP) == Decimal('1.235')
        assert limit_places(Decimal('99.99995'), PRICE_STEP) == Decimal('100.0000')
        assert str(limit_places(Decimal('2'), QTY_STEP)) == '2'

    def test_plain_never_uses_exponent(self):
        assert plain(Decimal('0E+4')) == '0'
        assert plain(Decimal('1E+3')) == '1000'
        assert plain(Decimal('10.50')) == '10.50'


class TestFormatters:
    """Tests for receipt formatting."""

    def test_currency_glyph_and_two_decimals(self):
        assert format_currency(105) == '₹ 105.00'
        assert format_currency('1234.5') == '₹ 1,234.50'

    def test_indian_grouping(self):
        assert format_amount(123456) == '1,23,456.00'
        assert format_amount(Decimal('1234567.891')) == '12,34,567.89'

    def test_western_grouping(self):
        assert format_amount(Decimal('1234567.891'), 'western') == '1,234,567.89'
        assert format_currency(1500.75, '$', 'western') == '$ 1,500.75'

    def test_negative_and_invalid(self):
        assert format_amount(-1500) == '-1,500.00'
        assert format_amount(None) == '0.00'
        assert format_amount('garbage') == '0.00'

    def test_quantity(self):
        assert format_quantity(2) == '2'
        assert format_quantity(Decimal('2.000')) == '2'
        assert format_quantity(Decimal('1.250')) == '1.25'
        assert format_quantity('0.5') == '0.5'

    def test_percent(self):
        assert format_percent(Decimal('5.00')) == '5%'
        assert format_percent(Decimal('12.5')) == '12.5%'

    def test_receipt_datetime(self):
        assert format_receipt_datetime(datetime(2024, 3, 15, 18, 42, 7)) == '15/03/2024 18:42:07'
        assert format_receipt_datetime(None) == '-'

    def test_scale_code(self):
        assert scale_code('987654321') == '654321'
        assert scale_code('AB12') == '000012'
        assert scale_code(None) == '000000'
