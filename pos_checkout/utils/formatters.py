"""
Formatting utilities for receipts and API payloads.
Every receipt variant goes through these so numbers never diverge between layouts.
"""
import re
from decimal import Decimal
from datetime import datetime
from typing import Union, Optional

from pos_checkout.utils.money import to_decimal, round_money

DEFAULT_CURRENCY_SYMBOL = '₹'
GROUPING_INDIAN = 'indian'
GROUPING_WESTERN = 'western'


def _group_digits(integer_part: str, grouping: str) -> str:
    """Insert thousands separators into a string of digits."""
    if grouping == GROUPING_INDIAN and len(integer_part) > 3:
        # Last three digits, then groups of two (1,23,45,678)
        head, tail = integer_part[:-3], integer_part[-3:]
        reversed_head = head[::-1]
        groups = [reversed_head[i:i+2] for i in range(0, len(reversed_head), 2)]
        return ','.join(groups)[::-1] + ',' + tail

    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    return ','.join(groups)[::-1]


def format_amount(value: Union[int, float, Decimal, str, None], grouping: str = GROUPING_INDIAN) -> str:
    """
    Format an amount with exactly two decimals and grouped thousands.

    Invalid input formats as zero.

    Examples:
        format_amount(1234.5) -> "1,234.50"
        format_amount(123456) -> "1,23,456.00"
        format_amount(123456, 'western') -> "123,456.00"
    """
    num = round_money(value)
    sign = "-" if num < 0 else ""
    integer_part, decimal_part = f"{abs(num):.2f}".split(".")
    return f"{sign}{_group_digits(integer_part, grouping)}.{decimal_part}"


def format_currency(
    value: Union[int, float, Decimal, str, None],
    symbol: str = DEFAULT_CURRENCY_SYMBOL,
    grouping: str = GROUPING_INDIAN
) -> str:
    """
    Format a monetary amount with the currency glyph prefix.

    Examples:
        format_currency(105) -> "₹ 105.00"
        format_currency(1500.75, '$', 'western') -> "$ 1,500.75"
    """
    return f"{symbol} {format_amount(value, grouping)}"


def format_quantity(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format a quantity: integers without decimals, weighed goods up to three.

    Examples:
        format_quantity(2) -> "2"
        format_quantity(Decimal('1.250')) -> "1.25"
    """
    qty = to_decimal(value)
    if qty == qty.to_integral_value():
        return str(int(qty))
    text = f"{qty.quantize(Decimal('0.001')):f}"
    return text.rstrip('0').rstrip('.')


def format_percent(value: Union[int, float, Decimal, str, None]) -> str:
    """format_percent(Decimal('5.00')) -> "5%"."""
    return f"{format_quantity(value)}%"


def format_receipt_datetime(value: Optional[datetime]) -> str:
    """
    Format the sale timestamp as DD/MM/YYYY HH:MM:SS.

    Uses only the recorded timestamp, never the wall clock.
    """
    if value is None or not isinstance(value, datetime):
        return "-"
    return value.strftime("%d/%m/%Y %H:%M:%S")


def scale_code(value: Optional[str]) -> str:
    """
    Six-character item code used by label scales: the last six digits of a
    barcode or SKU, left padded with zeros. Values without digits keep their
    last six characters.

    Examples:
        scale_code('987654321') -> "654321"
        scale_code('AB12') -> "000012"
    """
    raw = value or ''
    digits = re.sub(r'\D', '', raw)
    return (digits or raw)[-6:].rjust(6, '0')
