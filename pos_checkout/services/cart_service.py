"""Cart Service - in-memory ordered cart for one checkout session."""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from pos_checkout.exceptions import InvalidLineError, InvalidQuantityError
from pos_checkout.utils.money import (
    CENT, HUNDRED, PRICE_STEP, QTY_STEP, ZERO, clamp, limit_places, plain, to_decimal
)

EDITABLE_FIELDS = ('qty', 'unit_price')


def make_identity(product_id: Optional[int], variant_id: Optional[int] = None) -> Optional[str]:
    """Catalog identity of a row; variants of the same product are distinct rows."""
    if product_id is None:
        return None
    return f"{product_id}:{variant_id if variant_id is not None else 'm'}"


@dataclass
class LineItem:
    """One row of the cart. Quantity and unit price stay editable after adding."""

    name: str
    qty: Decimal
    unit_price: Decimal
    tax_percent: Decimal = ZERO
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    sku: Optional[str] = None
    mrp: Optional[Decimal] = None
    line_id: str = ''

    @classmethod
    def create(cls, name, qty=1, unit_price=0, tax_percent=0, product_id=None,
               variant_id=None, sku=None, mrp=None) -> 'LineItem':
        """Build a line from raw input, coercing numbers at the boundary."""
        price = limit_places(to_decimal(unit_price), PRICE_STEP)
        if price < 0:
            raise InvalidLineError(f'Unit price for {name} cannot be negative')
        mrp_value = to_decimal(mrp, default=None)
        return cls(
            name=(name or '').strip() or 'Item',
            qty=limit_places(to_decimal(qty), QTY_STEP),
            unit_price=price,
            tax_percent=limit_places(clamp(to_decimal(tax_percent), ZERO, HUNDRED), CENT),
            product_id=int(product_id) if product_id is not None else None,
            variant_id=int(variant_id) if variant_id is not None else None,
            sku=sku or None,
            mrp=limit_places(mrp_value, CENT) if mrp_value is not None and mrp_value > 0 else None,
        )

    @property
    def identity(self) -> Optional[str]:
        return make_identity(self.product_id, self.variant_id)

    @property
    def gross(self) -> Decimal:
        return self.qty * self.unit_price

    @property
    def is_billable(self) -> bool:
        return self.qty > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'line_id': self.line_id,
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'sku': self.sku,
            'name': self.name,
            'qty': plain(self.qty),
            'unit_price': plain(self.unit_price),
            'tax_percent': plain(self.tax_percent),
            'mrp': plain(self.mrp) if self.mrp is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LineItem':
        item = cls.create(
            name=data.get('name'),
            qty=data.get('qty'),
            unit_price=data.get('unit_price'),
            tax_percent=data.get('tax_percent'),
            product_id=data.get('product_id'),
            variant_id=data.get('variant_id'),
            sku=data.get('sku'),
            mrp=data.get('mrp'),
        )
        item.line_id = data.get('line_id') or ''
        return item


@dataclass
class Cart:
    """
    Ordered collection of line items.

    Order is insertion order and survives edits. No totals are stored here;
    see pricing_service.calculate_totals.
    """

    lines: List[LineItem] = field(default_factory=list)
    next_adhoc: int = 1

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def get(self, line_id: str) -> Optional[LineItem]:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None

    def _find_identity(self, identity: Optional[str]) -> Optional[LineItem]:
        if identity is None:
            return None
        for line in self.lines:
            if line.identity == identity:
                return line
        return None

    def add_or_increment(self, item: LineItem, qty: Optional[Any] = None) -> LineItem:
        """
        Add an item or increment the quantity of the row with the same identity.

        ``qty`` defaults to the item's own quantity, or 1 when that is unset.
        Ad-hoc items (no catalog identity) always append a new row.
        """
        if qty is None:
            added = item.qty if item.qty else Decimal('1')
        else:
            added = limit_places(to_decimal(qty), QTY_STEP)
        if added <= 0:
            raise InvalidQuantityError(item.name, added)

        existing = self._find_identity(item.identity)
        if existing is not None:
            existing.qty = existing.qty + added
            return existing

        line = replace(item, qty=added)
        if line.identity is not None:
            line.line_id = line.identity
        else:
            line.line_id = f"adhoc-{self.next_adhoc}"
            self.next_adhoc += 1
        self.lines.append(line)
        return line

    def update(self, line_id: str, patch: Dict[str, Any]) -> LineItem:
        """Replace quantity and/or unit price on a row. Rejects other fields."""
        line = self.get(line_id)
        if line is None:
            raise InvalidLineError(f'Line {line_id} is not in the cart')

        unknown = set(patch) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidLineError(f"Cannot edit {', '.join(sorted(unknown))}")

        new_qty = line.qty
        new_price = line.unit_price
        if 'qty' in patch:
            new_qty = limit_places(to_decimal(patch['qty']), QTY_STEP)
            if new_qty <= 0:
                raise InvalidQuantityError(line.name, new_qty)
        if 'unit_price' in patch:
            new_price = to_decimal(patch['unit_price'], default=None)
            if new_price is None or new_price < 0:
                raise InvalidLineError(f'Unit price for {line.name} must be a non-negative number')
            new_price = limit_places(new_price, PRICE_STEP)

        line.qty = new_qty
        line.unit_price = new_price
        return line

    def remove(self, line_id: str) -> bool:
        """Remove a row. Unknown ids are ignored."""
        before = len(self.lines)
        self.lines = [line for line in self.lines if line.line_id != line_id]
        return len(self.lines) != before

    def clear(self) -> None:
        self.lines = []
        self.next_adhoc = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lines': [line.to_dict() for line in self.lines],
            'next_adhoc': self.next_adhoc,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Cart':
        if not data:
            return cls()
        return cls(
            lines=[LineItem.from_dict(row) for row in data.get('lines', [])],
            next_adhoc=int(data.get('next_adhoc', 1)),
        )
