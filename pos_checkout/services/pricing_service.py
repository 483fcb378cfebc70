"""
Pricing & tax calculator.

All intermediate values are full-precision Decimals. Rounding to cents happens
only through CartTotals.rounded() (display) or when a sale is persisted.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Tuple

from pos_checkout.utils.money import HUNDRED, ZERO, clamp, round_money, to_decimal


@dataclass(frozen=True)
class LineTotals:
    """Computed amounts for one line."""
    qty: Decimal
    unit_price: Decimal
    tax_percent: Decimal
    gross: Decimal
    tax: Decimal
    mrp_gross: Decimal

    @property
    def total(self) -> Decimal:
        return self.gross + self.tax


@dataclass(frozen=True)
class CartTotals:
    """Cart level amounts. grand_total is always subtotal + tax_total."""
    lines: Tuple[LineTotals, ...]
    subtotal: Decimal
    tax_total: Decimal
    mrp_total: Decimal

    @property
    def grand_total(self) -> Decimal:
        return self.subtotal + self.tax_total

    @property
    def item_count(self) -> int:
        return len(self.lines)

    @property
    def savings(self) -> Decimal:
        return max(ZERO, self.mrp_total - self.subtotal)

    def rounded(self) -> Dict[str, Decimal]:
        return {
            'subtotal': round_money(self.subtotal),
            'tax_total': round_money(self.tax_total),
            'grand_total': round_money(self.grand_total),
            'mrp_total': round_money(self.mrp_total),
            'savings': round_money(self.savings),
        }


def line_totals(qty: Any, unit_price: Any, tax_percent: Any = 0, mrp: Any = None) -> LineTotals:
    """
    lineGross = qty x unitPrice, lineTax = lineGross x taxRate / 100.

    Non-finite or missing input is treated as zero; tax rate is clamped to 0-100.
    A line without MRP contributes its gross to the MRP total.
    """
    qty_d = to_decimal(qty)
    price_d = to_decimal(unit_price)
    rate_d = clamp(to_decimal(tax_percent), ZERO, HUNDRED)
    gross = qty_d * price_d
    tax = gross * rate_d / HUNDRED

    mrp_d = to_decimal(mrp, default=None)
    mrp_gross = qty_d * mrp_d if mrp_d is not None and mrp_d > 0 else gross

    return LineTotals(
        qty=qty_d,
        unit_price=price_d,
        tax_percent=rate_d,
        gross=gross,
        tax=tax,
        mrp_gross=mrp_gross,
    )


def calculate_totals(items: Iterable[Any]) -> CartTotals:
    """
    Compute totals for anything shaped like a line item
    (qty, unit_price, tax_percent, mrp attributes).
    """
    lines = tuple(
        line_totals(item.qty, item.unit_price, item.tax_percent, getattr(item, 'mrp', None))
        for item in items
    )
    subtotal = sum((line.gross for line in lines), ZERO)
    tax_total = sum((line.tax for line in lines), ZERO)
    mrp_total = sum((line.mrp_gross for line in lines), ZERO)
    return CartTotals(lines=lines, subtotal=subtotal, tax_total=tax_total, mrp_total=mrp_total)
