"""
Immutable sale snapshots exchanged with the persistence collaborator.

SaleSubmission is what checkout sends; FinalizedSale is what comes back and
is the only input the receipt renderer accepts for a completed transaction.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from pos_checkout.exceptions import ValidationError
from pos_checkout.services.discount_service import DiscountMode
from pos_checkout.services.payment_service import PaymentBreakdown, SPLIT_METHOD, Tender
from pos_checkout.services.pricing_service import CartTotals, calculate_totals
from pos_checkout.utils.money import (
    CENT, HUNDRED, PRICE_STEP, QTY_STEP, ZERO, limit_places, plain, to_decimal
)

PAYMENT_METHODS = tuple(t.value for t in Tender) + (SPLIT_METHOD,)
ITEM_FIELDS = ('product_id', 'variant_id', 'sku', 'name', 'qty', 'unit_price', 'tax_percent', 'mrp')


@dataclass(frozen=True)
class BilledItem:
    """A line item as billed; a copy insulated from later cart edits."""
    name: str
    qty: Decimal
    unit_price: Decimal
    tax_percent: Decimal = ZERO
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    sku: Optional[str] = None
    mrp: Optional[Decimal] = None

    @classmethod
    def from_line(cls, line: Any) -> 'BilledItem':
        return cls(
            name=line.name,
            qty=line.qty,
            unit_price=line.unit_price,
            tax_percent=line.tax_percent,
            product_id=line.product_id,
            variant_id=line.variant_id,
            sku=line.sku,
            mrp=line.mrp,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BilledItem':
        """Strict parse used at the persistence boundary."""
        if not isinstance(data, dict):
            raise ValidationError('Each item must be an object')
        unknown = set(data) - set(ITEM_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown item fields: {', '.join(sorted(unknown))}")
        if not data.get('name'):
            raise ValidationError('Item name is required')
        qty = limit_places(to_decimal(data.get('qty')), QTY_STEP)
        if qty <= 0:
            raise ValidationError(f"Quantity for {data['name']} must be greater than 0")
        price = to_decimal(data.get('unit_price'), default=None)
        if price is None or price < 0:
            raise ValidationError(f"Unit price for {data['name']} must be a non-negative number")
        tax = to_decimal(data.get('tax_percent'))
        if tax < 0 or tax > HUNDRED:
            raise ValidationError(f"Tax rate for {data['name']} must be between 0 and 100")
        mrp = to_decimal(data.get('mrp'), default=None)
        return cls(
            name=str(data['name']),
            qty=qty,
            unit_price=limit_places(price, PRICE_STEP),
            tax_percent=limit_places(tax, CENT),
            product_id=int(data['product_id']) if data.get('product_id') is not None else None,
            variant_id=int(data['variant_id']) if data.get('variant_id') is not None else None,
            sku=data.get('sku') or None,
            mrp=limit_places(mrp, CENT) if mrp is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'sku': self.sku,
            'name': self.name,
            'qty': plain(self.qty),
            'unit_price': plain(self.unit_price),
            'tax_percent': plain(self.tax_percent),
            'mrp': plain(self.mrp) if self.mrp is not None else None,
        }


@dataclass(frozen=True)
class AppliedDiscount:
    """The discount actually applied to a sale."""
    mode: DiscountMode = DiscountMode.PERCENTAGE
    percent: Decimal = ZERO
    amount: Decimal = ZERO
    loyalty_used: Decimal = ZERO

    @property
    def is_applied(self) -> bool:
        return self.amount > 0 or self.loyalty_used > 0

    def to_dict(self) -> Dict[str, str]:
        return {
            'mode': self.mode.value,
            'percent': plain(self.percent),
            'amount': plain(self.amount),
            'loyalty_used': plain(self.loyalty_used),
        }


@dataclass(frozen=True)
class SaleSubmission:
    """Finalized cart snapshot sent to the persistence collaborator."""
    items: Tuple[BilledItem, ...]
    payment_method: str
    payment_breakdown: PaymentBreakdown
    discount: AppliedDiscount
    payable: Decimal
    customer_reference: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    loyalty_awarded: int = 0
    loyalty_balance: Optional[Decimal] = None

    def validate(self) -> None:
        """Reject shapes the store cannot represent."""
        if not self.items:
            raise ValidationError('items required')
        if self.payment_method not in PAYMENT_METHODS:
            raise ValidationError(f'Unknown payment method: {self.payment_method}')
        for item in self.items:
            if item.qty <= 0:
                raise ValidationError(f'Quantity for {item.name} must be greater than 0')
            if item.unit_price < 0:
                raise ValidationError(f'Unit price for {item.name} cannot be negative')
        if self.payable < 0:
            raise ValidationError('Payable amount cannot be negative')
        if self.loyalty_awarded < 0:
            raise ValidationError('Loyalty award cannot be negative')

    @property
    def totals(self) -> CartTotals:
        return calculate_totals(self.items)


@dataclass(frozen=True)
class FinalizedSale:
    """Persisted sale. Never mutated after creation."""
    id: int
    created_at: datetime
    items: Tuple[BilledItem, ...]
    payment_method: str
    payment_breakdown: PaymentBreakdown
    discount: AppliedDiscount
    payable: Decimal
    customer_reference: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    loyalty_awarded: int = 0
    loyalty_balance: Optional[Decimal] = None

    @property
    def totals(self) -> CartTotals:
        return calculate_totals(self.items)

    def invoice_number(self, prefix: str = '') -> str:
        return f"{prefix}{self.id}"

    def to_dict(self) -> Dict[str, Any]:
        totals = self.totals.rounded()
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'items': [item.to_dict() for item in self.items],
            'payment_method': self.payment_method,
            'payment_breakdown': self.payment_breakdown.to_dict(),
            'discount': self.discount.to_dict(),
            'subtotal': str(totals['subtotal']),
            'tax_total': str(totals['tax_total']),
            'grand_total': str(totals['grand_total']),
            'payable': str(self.payable),
            'customer_reference': self.customer_reference,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'loyalty_awarded': self.loyalty_awarded,
            'loyalty_balance': plain(self.loyalty_balance) if self.loyalty_balance is not None else None,
        }
