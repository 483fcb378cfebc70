"""
Checkout orchestration.

A CheckoutSession owns the cart, the discount editor, the loyalty request, the
tenders and the customer for one counter session. Totals are never stored on
it: every figure is recomputed from the current cart.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from pos_checkout.exceptions import EmptyCartError, InvalidQuantityError, ValidationError
from pos_checkout.services.cart_service import Cart
from pos_checkout.services.discount_service import (
    DiscountResult, DiscountSpec, ROUNDING_NONE, apply_discount, loyalty_award, loyalty_balance_after
)
from pos_checkout.services.payment_service import (
    PaymentBreakdown, Reconciliation, ensure_settled, primary_method, reconcile
)
from pos_checkout.services.pricing_service import CartTotals, calculate_totals
from pos_checkout.services.print_service import PrintResult, print_sale
from pos_checkout.services.sale_snapshot import (
    AppliedDiscount, BilledItem, FinalizedSale, SaleSubmission
)
from pos_checkout.utils.money import ZERO, non_negative, plain, round_money, to_decimal

logger = logging.getLogger(__name__)

PERCENT_PLACES = Decimal('0.0001')
CUSTOMER_FIELDS = ('customer_reference', 'customer_name', 'customer_phone')
SUBMISSION_FIELDS = ('items', 'payment_method', 'payment_breakdown', 'discount',
                     'loyalty_redemption', 'loyalty_available') + CUSTOMER_FIELDS


def _clean(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ''
    return text or None


def _applied_discount(result: DiscountResult) -> AppliedDiscount:
    return AppliedDiscount(
        mode=result.mode,
        percent=result.percent.quantize(PERCENT_PLACES),
        amount=round_money(result.discount_amount),
        loyalty_used=round_money(result.loyalty_used),
    )


class CheckoutSession:
    """State of one in-progress checkout."""

    def __init__(self, cart: Optional[Cart] = None, discount: Optional[DiscountSpec] = None,
                 payment: Optional[PaymentBreakdown] = None, loyalty_redemption: Any = 0,
                 loyalty_available: Any = None, customer_reference: Optional[str] = None,
                 customer_name: Optional[str] = None, customer_phone: Optional[str] = None,
                 rounding: str = ROUNDING_NONE):
        self.cart = cart or Cart()
        self.discount = discount or DiscountSpec()
        self.payment = payment or PaymentBreakdown()
        self.loyalty_redemption = non_negative(loyalty_redemption)
        self.loyalty_available = to_decimal(loyalty_available, default=None)
        self.customer_reference = _clean(customer_reference)
        self.customer_name = _clean(customer_name)
        self.customer_phone = _clean(customer_phone)
        self.rounding = rounding

    def totals(self) -> CartTotals:
        return calculate_totals(self.cart)

    def pricing(self) -> DiscountResult:
        return apply_discount(
            self.totals().grand_total,
            self.discount,
            loyalty_redemption=self.loyalty_redemption,
            loyalty_available=self.loyalty_available,
            rounding=self.rounding,
        )

    def refresh_discount(self) -> None:
        """Bring the inactive discount field up to date with the current cart."""
        self.discount.refresh(self.totals().grand_total)

    def reconciliation(self) -> Reconciliation:
        return reconcile(round_money(self.pricing().payable), self.payment)

    def set_customer(self, reference=None, name=None, phone=None, loyalty_available=None) -> None:
        self.customer_reference = _clean(reference)
        self.customer_name = _clean(name)
        self.customer_phone = _clean(phone)
        self.loyalty_available = to_decimal(loyalty_available, default=None)

    def validate(self) -> Reconciliation:
        """Empty cart, then quantities, then tender. Returns the reconciliation."""
        if self.cart.is_empty:
            raise EmptyCartError()
        for line in self.cart:
            if not line.is_billable:
                raise InvalidQuantityError(line.name, line.qty)
        reconciliation = self.reconciliation()
        ensure_settled(reconciliation)
        return reconciliation

    def build_submission(self) -> SaleSubmission:
        self.validate()
        result = self.pricing()
        awarded = loyalty_award(result.gross)
        return SaleSubmission(
            items=tuple(BilledItem.from_line(line) for line in self.cart),
            payment_method=primary_method(self.payment),
            payment_breakdown=self.payment,
            discount=_applied_discount(result),
            payable=round_money(result.payable),
            customer_reference=self.customer_reference,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            loyalty_awarded=awarded,
            loyalty_balance=loyalty_balance_after(self.loyalty_available, result.loyalty_used, awarded),
        )

    def finalize(self, repository) -> FinalizedSale:
        """
        Store the sale and reset the session.

        The session is cleared only once the repository has returned the
        stored sale; a PersistenceError leaves everything in place for retry.
        """
        submission = self.build_submission()
        sale = repository.save_sale(submission)
        self.cancel()
        logger.info(f"[CHECKOUT] Sale {sale.id} finalized")
        return sale

    def cancel(self) -> None:
        self.cart.clear()
        self.discount = DiscountSpec()
        self.payment = PaymentBreakdown()
        self.loyalty_redemption = ZERO
        self.loyalty_available = None
        self.customer_reference = None
        self.customer_name = None
        self.customer_phone = None

    def summary(self) -> Dict[str, Any]:
        """Display figures, rounded at this boundary only."""
        totals = self.totals()
        result = self.pricing()
        reconciliation = reconcile(round_money(result.payable), self.payment)
        data = {key: str(value) for key, value in totals.rounded().items()}
        data.update({
            'item_count': totals.item_count,
            'discount_amount': str(round_money(result.discount_amount)),
            'loyalty_used': str(round_money(result.loyalty_used)),
        })
        data.update({key: str(value) for key, value in reconciliation.rounded().items()})
        data['is_complete'] = reconciliation.is_complete
        return data

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cart': self.cart.to_dict(),
            'discount': self.discount.to_dict(),
            'payment': self.payment.to_dict(),
            'loyalty_redemption': plain(self.loyalty_redemption),
            'loyalty_available': plain(self.loyalty_available) if self.loyalty_available is not None else None,
            'customer_reference': self.customer_reference,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], rounding: str = ROUNDING_NONE) -> 'CheckoutSession':
        data = data or {}
        return cls(
            cart=Cart.from_dict(data.get('cart')),
            discount=DiscountSpec.from_dict(data.get('discount')),
            payment=PaymentBreakdown.from_dict(data.get('payment')),
            loyalty_redemption=data.get('loyalty_redemption'),
            loyalty_available=data.get('loyalty_available'),
            customer_reference=data.get('customer_reference'),
            customer_name=data.get('customer_name'),
            customer_phone=data.get('customer_phone'),
            rounding=rounding,
        )


def submission_from_payload(data: Any, rounding: str = ROUNDING_NONE) -> SaleSubmission:
    """
    Build a SaleSubmission from an API payload.

    Unknown keys are rejected. Totals and payable are computed here, never
    taken from the client.
    """
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    unknown = set(data) - set(SUBMISSION_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown sale fields: {', '.join(sorted(unknown))}")

    raw_items = data.get('items')
    if not isinstance(raw_items, list) or not raw_items:
        raise EmptyCartError()
    items = tuple(BilledItem.from_dict(row) for row in raw_items)

    breakdown = PaymentBreakdown.from_dict(data.get('payment_breakdown'))
    discount_data = data.get('discount') or {}
    if not isinstance(discount_data, dict):
        raise ValidationError('discount must be an object')
    spec = DiscountSpec.from_dict(discount_data)

    grand_total = calculate_totals(items).grand_total
    result = apply_discount(
        grand_total,
        spec,
        loyalty_redemption=data.get('loyalty_redemption'),
        loyalty_available=data.get('loyalty_available'),
        rounding=rounding,
    )
    payable = round_money(result.payable)
    ensure_settled(reconcile(payable, breakdown))

    awarded = loyalty_award(grand_total)
    method = primary_method(breakdown)
    claimed = _clean(data.get('payment_method'))
    if claimed is not None and claimed != method:
        raise ValidationError(
            f"payment_method {claimed} does not match the tenders ({method})",
            payload={'reason': 'payment_method_mismatch'}
        )

    return SaleSubmission(
        items=items,
        payment_method=method,
        payment_breakdown=breakdown,
        discount=_applied_discount(result),
        payable=payable,
        customer_reference=_clean(data.get('customer_reference')),
        customer_name=_clean(data.get('customer_name')),
        customer_phone=_clean(data.get('customer_phone')),
        loyalty_awarded=awarded,
        loyalty_balance=loyalty_balance_after(data.get('loyalty_available'), result.loyalty_used, awarded),
    )


@dataclass(frozen=True)
class CheckoutOutcome:
    sale: FinalizedSale
    print_result: Optional[PrintResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sale': self.sale.to_dict(),
            'print': self.print_result.to_dict() if self.print_result else None,
        }


def complete_checkout(session: CheckoutSession, repository, settings_provider,
                      dispatcher=None, template: Optional[str] = None) -> CheckoutOutcome:
    """Finalize, then print from the stored sale. Printing never undoes the sale."""
    sale = session.finalize(repository)
    print_result = None
    if dispatcher is not None:
        print_result = print_sale(sale, settings_provider.get(), dispatcher, template)
    return CheckoutOutcome(sale=sale, print_result=print_result)
