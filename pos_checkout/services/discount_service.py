"""Discount engine: percentage or absolute discount, loyalty redemption and awards."""
import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from pos_checkout.utils.money import (
    HUNDRED, ZERO, ceil_money, clamp, non_negative, plain, round_money, to_decimal
)

ROUNDING_NONE = 'none'
ROUNDING_CEIL = 'ceil'


class DiscountMode(str, enum.Enum):
    """Which discount field is authoritative."""
    PERCENTAGE = 'percentage'
    ABSOLUTE = 'absolute'

    @classmethod
    def parse(cls, value: Any) -> 'DiscountMode':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.PERCENTAGE


class DiscountSpec:
    """
    Two-field discount editor.

    The field of the active mode is authoritative; the other one is a derived
    display value refreshed by refresh(gross). Switching mode keeps both
    values, it only changes which one drives the amount.
    """

    def __init__(self, mode: DiscountMode = DiscountMode.PERCENTAGE,
                 percent: Any = 0, absolute: Any = 0):
        self.mode = DiscountMode.parse(mode)
        self.percent = clamp(to_decimal(percent), ZERO, HUNDRED)
        self.absolute = non_negative(absolute)

    def __repr__(self):
        return f"<DiscountSpec(mode={self.mode.value}, percent={self.percent}, absolute={self.absolute})>"

    def set_percent(self, value: Any, gross: Any = None) -> None:
        """Edit the percentage field, which makes percentage mode active."""
        self.mode = DiscountMode.PERCENTAGE
        self.percent = clamp(to_decimal(value), ZERO, HUNDRED)
        if gross is not None:
            self.refresh(gross)

    def set_absolute(self, value: Any, gross: Any = None) -> None:
        """Edit the absolute field, which makes absolute mode active."""
        self.mode = DiscountMode.ABSOLUTE
        self.absolute = non_negative(value)
        if gross is not None:
            self.refresh(gross)

    def switch_mode(self, mode: Any, gross: Any = None) -> None:
        """
        Make the other field authoritative.

        With a gross, the inactive field is first brought up to date from the
        field the user last edited, so switching back returns that value.
        """
        if gross is not None:
            self.refresh(gross)
        self.mode = DiscountMode.parse(mode)
        if gross is not None:
            self.refresh(gross)

    def refresh(self, gross: Any) -> None:
        """Recompute the inactive field from the active one for the given gross."""
        gross_d = non_negative(gross)
        if self.mode == DiscountMode.PERCENTAGE:
            self.absolute = gross_d * self.percent / HUNDRED
        elif gross_d > 0:
            self.percent = clamp(self.absolute / gross_d * HUNDRED, ZERO, HUNDRED)
        else:
            self.percent = ZERO

    def amount(self, gross: Any) -> Decimal:
        """Discount amount for a gross, never more than the gross itself."""
        gross_d = non_negative(gross)
        if self.mode == DiscountMode.PERCENTAGE:
            value = gross_d * self.percent / HUNDRED
        else:
            value = self.absolute
        return clamp(value, ZERO, gross_d)

    @property
    def is_zero(self) -> bool:
        if self.mode == DiscountMode.PERCENTAGE:
            return self.percent == 0
        return self.absolute == 0

    def to_dict(self) -> Dict[str, str]:
        return {
            'mode': self.mode.value,
            'percent': plain(self.percent),
            'absolute': plain(self.absolute),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DiscountSpec':
        if not data:
            return cls()
        return cls(
            mode=data.get('mode', DiscountMode.PERCENTAGE),
            percent=data.get('percent', 0),
            absolute=data.get('absolute', 0),
        )


@dataclass(frozen=True)
class DiscountResult:
    """Outcome of applying a discount and loyalty redemption to a gross."""
    gross: Decimal
    mode: DiscountMode
    percent: Decimal
    discount_amount: Decimal
    loyalty_used: Decimal
    payable: Decimal


def apply_discount(
    gross: Any,
    spec: Optional[DiscountSpec] = None,
    loyalty_redemption: Any = 0,
    loyalty_available: Any = None,
    rounding: str = ROUNDING_NONE
) -> DiscountResult:
    """
    Payable = max(0, gross - discount - loyalty).

    Loyalty points redeem 1:1 against currency. The redemption is capped at the
    customer's available points (when known) and at what is left after the
    discount, so the recorded loyalty use never exceeds what was consumed.
    With rounding='ceil' the payable is rounded up to a whole currency unit
    after the discount and again after loyalty.
    """
    spec = spec or DiscountSpec()
    gross_d = non_negative(gross)
    spec.refresh(gross_d)
    discount = spec.amount(gross_d)

    after_discount = gross_d - discount
    if rounding == ROUNDING_CEIL:
        after_discount = ceil_money(after_discount)

    loyalty = non_negative(loyalty_redemption)
    if loyalty_available is not None:
        loyalty = min(loyalty, non_negative(loyalty_available))
    loyalty = min(loyalty, after_discount)

    payable = max(ZERO, after_discount - loyalty)
    if rounding == ROUNDING_CEIL:
        payable = ceil_money(payable)

    percent = spec.percent
    return DiscountResult(
        gross=gross_d,
        mode=spec.mode,
        percent=percent,
        discount_amount=discount,
        loyalty_used=loyalty,
        payable=payable,
    )


def loyalty_award(grand_total: Any) -> int:
    """Points earned by a sale: one per full 100 of grand total."""
    return int(non_negative(grand_total) // HUNDRED)


def loyalty_balance_after(available: Any, used: Any, awarded: int) -> Optional[Decimal]:
    """The customer's points once the sale is stored, or None when the balance is unknown."""
    available_d = to_decimal(available, default=None)
    if available_d is None:
        return None
    return round_money(max(ZERO, available_d - non_negative(used)) + awarded)
