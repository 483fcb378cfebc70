"""Decimal coercion and rounding rules shared by every money calculation."""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, ROUND_CEILING
from typing import Any, Optional

CENT = Decimal('0.01')
QTY_STEP = Decimal('0.001')
PRICE_STEP = Decimal('0.0001')
ZERO = Decimal('0')
HUNDRED = Decimal('100')

GROUPED_NUMBER_PATTERN = re.compile(r"^-?\d{1,3}(?:,\d{2,3})+(?:\.\d+)?$")


def to_decimal(value: Any, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    """
    Coerce user or collaborator input to Decimal.

    Rules:
    - Decimal and int pass through
    - float goes through str() so 0.1 stays 0.1
    - strings are stripped; thousands commas are accepted (1,234.50 or 1,23,456.00)
    - None, empty, unparsable, NaN and Infinity return ``default``

    Never raises.
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, Decimal):
        num = value
    elif isinstance(value, int):
        return Decimal(value)
    else:
        cleaned = str(value).strip()
        if not cleaned:
            return default
        if GROUPED_NUMBER_PATTERN.match(cleaned):
            cleaned = cleaned.replace(',', '')
        try:
            num = Decimal(cleaned)
        except (InvalidOperation, ValueError):
            return default

    if not num.is_finite():
        return default
    return num


def round_money(value: Any) -> Decimal:
    """Round to two decimals, half up. Only call at display/persistence boundaries."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def limit_places(value: Decimal, step: Decimal) -> Decimal:
    """
    Round half up to the places of ``step`` only when ``value`` has more.

    Line values go through this on their way into the cart so the cart bills
    exactly what the sale columns can store; 2 stays 2, 1.2345 becomes 1.235.
    """
    if value.as_tuple().exponent < step.as_tuple().exponent:
        return value.quantize(step, rounding=ROUND_HALF_UP)
    return value


def ceil_money(value: Any) -> Decimal:
    """Round up to the next whole currency unit."""
    return to_decimal(value).quantize(Decimal('1'), rounding=ROUND_CEILING)


def clamp(value: Decimal, low: Decimal, high: Optional[Decimal] = None) -> Decimal:
    if value < low:
        return low
    if high is not None and value > high:
        return high
    return value


def non_negative(value: Any) -> Decimal:
    """Coerce and floor at zero."""
    return clamp(to_decimal(value), ZERO)


def plain(value: Decimal) -> str:
    """Fixed-point text for a Decimal, so 0E+4 serializes as 0."""
    return f"{Decimal(value):f}"
