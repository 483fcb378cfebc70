"""Payment reconciliation for split tenders (cash / card / UPI / other)."""
import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pos_checkout.exceptions import InsufficientTenderError, ValidationError
from pos_checkout.utils.money import CENT, ZERO, limit_places, non_negative, plain, round_money


class Tender(str, enum.Enum):
    """Payment methods accepted at the counter."""
    CASH = 'cash'
    CARD = 'card'
    UPI = 'upi'
    OTHER = 'other'


SPLIT_METHOD = 'split'
BREAKDOWN_FIELDS = tuple(t.value for t in Tender) + ('remarks',)


def _tender(value: Any) -> Decimal:
    # Tenders are stored in cents
    return limit_places(non_negative(value), CENT)


@dataclass(frozen=True)
class PaymentBreakdown:
    """
    Amounts tendered per method plus free-text remarks.

    Amounts are coerced to non-negative Decimals on construction through
    from_dict(); build it that way from any untrusted input.
    """
    cash: Decimal = ZERO
    card: Decimal = ZERO
    upi: Decimal = ZERO
    other: Decimal = ZERO
    remarks: str = ''

    @property
    def total_tendered(self) -> Decimal:
        return self.cash + self.card + self.upi + self.other

    def amount_for(self, tender: Tender) -> Decimal:
        return getattr(self, tender.value)

    def tenders(self) -> List[Tuple[Tender, Decimal]]:
        """Non-zero tenders in fixed method order."""
        return [(t, self.amount_for(t)) for t in Tender if self.amount_for(t) > 0]

    def to_dict(self) -> Dict[str, str]:
        data = {t.value: plain(self.amount_for(t)) for t in Tender}
        data['remarks'] = self.remarks
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], strict: bool = True) -> 'PaymentBreakdown':
        """
        Build a breakdown from a mapping.

        With strict=True unknown keys raise ValidationError instead of being
        ignored, so a mistyped field can never silently drop a tender.
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError('payment_breakdown must be an object')
        if strict:
            unknown = set(data) - set(BREAKDOWN_FIELDS)
            if unknown:
                raise ValidationError(
                    f"Unknown payment fields: {', '.join(sorted(unknown))}",
                    payload={'reason': 'invalid_payment_breakdown'}
                )
        return cls(
            cash=_tender(data.get('cash')),
            card=_tender(data.get('card')),
            upi=_tender(data.get('upi')),
            other=_tender(data.get('other')),
            remarks=str(data.get('remarks') or '').strip(),
        )


@dataclass(frozen=True)
class Reconciliation:
    """Tender vs payable. balance_due and change_due are never both non-zero."""
    payable: Decimal
    total_tendered: Decimal
    balance_due: Decimal
    change_due: Decimal

    @property
    def is_complete(self) -> bool:
        return self.total_tendered >= self.payable

    def rounded(self) -> Dict[str, Decimal]:
        return {
            'payable': round_money(self.payable),
            'total_tendered': round_money(self.total_tendered),
            'balance_due': round_money(self.balance_due),
            'change_due': round_money(self.change_due),
        }


def reconcile(payable: Any, breakdown: Optional[PaymentBreakdown] = None) -> Reconciliation:
    """
    totalTendered = sum of tenders
    balanceDue = max(0, payable - totalTendered)
    changeDue = max(0, totalTendered - payable)
    """
    breakdown = breakdown or PaymentBreakdown()
    payable_d = non_negative(payable)
    tendered = breakdown.total_tendered
    return Reconciliation(
        payable=payable_d,
        total_tendered=tendered,
        balance_due=max(ZERO, payable_d - tendered),
        change_due=max(ZERO, tendered - payable_d),
    )


def ensure_settled(reconciliation: Reconciliation) -> None:
    """Raise InsufficientTenderError with the shortfall unless tender covers payable."""
    if not reconciliation.is_complete:
        raise InsufficientTenderError(
            payable=round_money(reconciliation.payable),
            tendered=round_money(reconciliation.total_tendered),
            shortfall=round_money(reconciliation.balance_due),
        )


def primary_method(breakdown: PaymentBreakdown, default: str = Tender.CASH.value) -> str:
    """Stored payment method: the single tender used, 'split' for several."""
    used = breakdown.tenders()
    if not used:
        return default
    if len(used) > 1:
        return SPLIT_METHOD
    return used[0][0].value
