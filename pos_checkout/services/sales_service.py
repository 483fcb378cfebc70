"""
Sale persistence.

Stores a SaleSubmission in one transaction and hands back the FinalizedSale
read from the stored record, so receipts never depend on live cart state.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from pos_checkout.exceptions import NotFoundError, PersistenceError
from pos_checkout.models import Sale, SaleLine, SalePayment
from pos_checkout.services.discount_service import DiscountMode
from pos_checkout.services.payment_service import PaymentBreakdown, Tender
from pos_checkout.services.sale_snapshot import (
    AppliedDiscount, BilledItem, FinalizedSale, SaleSubmission
)
from pos_checkout.utils.money import ZERO, round_money

logger = logging.getLogger(__name__)


class SaleRepository:
    """SQLAlchemy-backed sale store bound to one session."""

    def __init__(self, session, clock=None):
        self.session = session
        self.clock = clock or datetime.now

    def save_sale(self, submission: SaleSubmission) -> FinalizedSale:
        """
        Persist a sale.

        Raises ValidationError for shapes the store cannot represent and
        PersistenceError when the database refuses the write. Nothing is kept
        on failure.
        """
        submission.validate()
        totals = submission.totals.rounded()

        try:
            sale = Sale(
                created_at=self.clock().replace(microsecond=0),
                payment_method=submission.payment_method,
                subtotal=totals['subtotal'],
                tax_total=totals['tax_total'],
                grand_total=totals['grand_total'],
                discount_mode=submission.discount.mode.value,
                discount_percent=submission.discount.percent,
                discount_amount=submission.discount.amount,
                loyalty_used=round_money(submission.discount.loyalty_used),
                loyalty_awarded=submission.loyalty_awarded,
                loyalty_balance=submission.loyalty_balance,
                payable=round_money(submission.payable),
                remarks=submission.payment_breakdown.remarks or None,
                customer_reference=submission.customer_reference,
                customer_name=submission.customer_name,
                customer_phone=submission.customer_phone,
            )
            for position, item in enumerate(submission.items, start=1):
                sale.lines.append(SaleLine(
                    position=position,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    sku=item.sku,
                    name=item.name,
                    qty=item.qty,
                    unit_price=item.unit_price,
                    tax_percent=item.tax_percent,
                    mrp=item.mrp,
                ))
            for tender, amount in submission.payment_breakdown.tenders():
                sale.payments.append(SalePayment(
                    payment_method=tender.value,
                    amount=round_money(amount),
                ))

            self.session.add(sale)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"[CHECKOUT] Failed to store sale: {e}")
            raise PersistenceError() from e

        logger.info(
            f"[CHECKOUT] Sale {sale.id} stored: {len(submission.items)} lines, "
            f"payable {sale.payable}, method {sale.payment_method}"
        )
        return to_finalized_sale(sale)

    def get_sale(self, sale_id: int) -> FinalizedSale:
        """Load a stored sale for reprint. Raises NotFoundError."""
        sale = self._load(sale_id)
        if sale is None:
            raise NotFoundError(f'Sale {sale_id} not found', payload={'reason': 'sale_not_found'})
        return to_finalized_sale(sale)

    def _load(self, sale_id: int) -> Optional[Sale]:
        try:
            return self.session.get(Sale, int(sale_id))
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"[CHECKOUT] Failed to load sale {sale_id}: {e}")
            raise PersistenceError('The sale could not be loaded. Please try again.') from e


def _decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO


def to_finalized_sale(sale: Sale) -> FinalizedSale:
    """Build the immutable snapshot from a stored record."""
    items = tuple(
        BilledItem(
            name=line.name,
            qty=_decimal(line.qty),
            unit_price=_decimal(line.unit_price),
            tax_percent=_decimal(line.tax_percent),
            product_id=line.product_id,
            variant_id=line.variant_id,
            sku=line.sku,
            mrp=Decimal(str(line.mrp)) if line.mrp is not None else None,
        )
        for line in sale.lines
    )

    amounts = {t.value: ZERO for t in Tender}
    for payment in sale.payments:
        amounts[payment.payment_method] = amounts.get(payment.payment_method, ZERO) + _decimal(payment.amount)
    breakdown = PaymentBreakdown(
        cash=amounts[Tender.CASH.value],
        card=amounts[Tender.CARD.value],
        upi=amounts[Tender.UPI.value],
        other=amounts[Tender.OTHER.value],
        remarks=sale.remarks or '',
    )

    discount = AppliedDiscount(
        mode=DiscountMode.parse(sale.discount_mode),
        percent=_decimal(sale.discount_percent),
        amount=_decimal(sale.discount_amount),
        loyalty_used=_decimal(sale.loyalty_used),
    )

    return FinalizedSale(
        id=sale.id,
        created_at=sale.created_at,
        items=items,
        payment_method=sale.payment_method,
        payment_breakdown=breakdown,
        discount=discount,
        payable=_decimal(sale.payable),
        customer_reference=sale.customer_reference,
        customer_name=sale.customer_name,
        customer_phone=sale.customer_phone,
        loyalty_awarded=sale.loyalty_awarded or 0,
        loyalty_balance=Decimal(str(sale.loyalty_balance)) if sale.loyalty_balance is not None else None,
    )
