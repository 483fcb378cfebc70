"""
Catalog lookup collaborator.

Lookups fail soft: any database error is logged and answered with an empty
result so the cashier can simply retry on the next keystroke.
"""
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, List, Optional

from sqlalchemy import func, or_, and_
from sqlalchemy.exc import SQLAlchemyError

from pos_checkout.models import Product
from pos_checkout.services.cart_service import LineItem
from pos_checkout.utils.formatters import scale_code
from pos_checkout.utils.money import ZERO, plain, to_decimal

logger = logging.getLogger(__name__)

WEIGHED_PREFIX = '#'
DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class CatalogEntry:
    """A priced, taxed product as returned by lookup."""
    product_id: int
    name: str
    unit_price: Decimal
    tax_percent: Decimal = ZERO
    sku: Optional[str] = None
    barcode: Optional[str] = None
    mrp: Optional[Decimal] = None
    variant_id: Optional[int] = None
    store_seq: Optional[int] = None

    @classmethod
    def from_product(cls, product: Product) -> 'CatalogEntry':
        return cls(
            product_id=product.id,
            name=product.name,
            unit_price=to_decimal(product.sale_price),
            tax_percent=to_decimal(product.tax_percent),
            sku=product.sku,
            barcode=product.barcode,
            mrp=to_decimal(product.mrp, default=None),
            store_seq=product.store_seq,
        )

    def to_line_item(self, qty: Any = 1) -> LineItem:
        return LineItem.create(
            name=self.name,
            qty=qty,
            unit_price=self.unit_price,
            tax_percent=self.tax_percent,
            product_id=self.product_id,
            variant_id=self.variant_id,
            sku=self.sku,
            mrp=self.mrp,
        )

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'sku': self.sku,
            'barcode': self.barcode,
            'name': self.name,
            'unit_price': plain(self.unit_price),
            'tax_percent': plain(self.tax_percent),
            'mrp': plain(self.mrp) if self.mrp is not None else None,
            'store_seq': self.store_seq,
        }


def search_products(session, query: str, limit: int = DEFAULT_LIMIT) -> List[CatalogEntry]:
    """
    Search active products.

    An exact barcode or SKU match wins on its own; otherwise name, SKU and
    barcode substrings are matched, ordered by name.
    """
    search_query = (query or '').strip()
    if not search_query:
        return []

    try:
        base = session.query(Product).filter(Product.active == True)  # noqa: E712
        lowered = search_query.lower()

        exact_match = base.filter(or_(
            and_(Product.barcode.isnot(None), func.lower(Product.barcode) == lowered),
            and_(Product.sku.isnot(None), func.lower(Product.sku) == lowered),
        )).order_by(Product.id).first()
        if exact_match:
            return [CatalogEntry.from_product(exact_match)]

        search_filter = or_(
            func.lower(Product.name).like(f'%{lowered}%'),
            and_(Product.sku.isnot(None), func.lower(Product.sku).like(f'%{lowered}%')),
            and_(Product.barcode.isnot(None), func.lower(Product.barcode).like(f'%{lowered}%')),
        )
        products = base.filter(search_filter).order_by(Product.name, Product.id).limit(limit).all()
        return [CatalogEntry.from_product(p) for p in products]
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"[CATALOG] Lookup failed for '{search_query}': {e}")
        return []


@dataclass(frozen=True)
class WeighedBarcode:
    """Scale label: '#' + 6-char store sequence + 5-digit weight in grams."""
    code: str
    store_seq: int
    qty: Decimal


def parse_weighed_barcode(raw: str) -> Optional[WeighedBarcode]:
    """
    Parse a scale barcode such as '#00004201250' (seq 42, 1.25 kg).

    Returns None for anything that is not a weighed-goods label. A missing or
    unreadable weight means one unit.
    """
    value = (raw or '').strip()
    if not value.startswith(WEIGHED_PREFIX):
        return None
    body = value[len(WEIGHED_PREFIX):]
    code = body[:6]
    digits = re.sub(r'\D', '', code)
    if not digits:
        return None

    qty = Decimal('1')
    weight_digits = re.sub(r'\D', '', body[6:11])
    if weight_digits:
        qty = Decimal(int(weight_digits)) / Decimal('1000')
    return WeighedBarcode(code=code, store_seq=int(digits), qty=qty)


def find_weighed_product(session, label: WeighedBarcode) -> Optional[CatalogEntry]:
    """Resolve a scale label by store sequence, then by the last six digits of SKU/barcode."""
    try:
        base = session.query(Product).filter(Product.active == True)  # noqa: E712
        product = base.filter(Product.store_seq == label.store_seq).order_by(Product.id).first()
        if product is None:
            target = str(label.store_seq).rjust(6, '0')
            candidates = base.filter(Product.is_repacking == True).order_by(Product.id).all()  # noqa: E712
            product = next(
                (p for p in candidates if target in (scale_code(p.sku), scale_code(p.barcode))),
                None
            )
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"[CATALOG] Scale label lookup failed for {label.code}: {e}")
        return None

    if product is None:
        logger.info(f"[CATALOG] No product for scale label {label.code}")
        return None
    return CatalogEntry.from_product(product)


class LookupToken:
    """Handle for one lookup request. Cancelled once a newer request is issued."""

    def __init__(self, seq: int):
        self.seq = seq
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def __repr__(self):
        return f"<LookupToken(seq={self.seq}, cancelled={self.cancelled})>"


class CatalogLookup:
    """
    Debounced lookup coordinator.

    Every keystroke calls issue(); only the most recent token may commit its
    results, older responses are discarded whenever they arrive.
    """

    def __init__(self, latest_seq: int = 0):
        self.latest_seq = latest_seq
        self._current: Optional[LookupToken] = None

    def issue(self) -> LookupToken:
        if self._current is not None:
            self._current.cancel()
        self.latest_seq += 1
        self._current = LookupToken(self.latest_seq)
        return self._current

    def is_current(self, token: LookupToken) -> bool:
        return not token.cancelled and token.seq == self.latest_seq

    def commit(self, token: LookupToken, results: List[CatalogEntry]) -> Optional[List[CatalogEntry]]:
        """Results for the latest token, None for a stale one."""
        if not self.is_current(token):
            logger.debug(f"[CATALOG] Discarding stale lookup {token.seq} (latest {self.latest_seq})")
            return None
        return results

    def run(self, token: LookupToken, fetch: Callable[[], List[CatalogEntry]]) -> Optional[List[CatalogEntry]]:
        """Fetch unless already superseded, then commit."""
        if not self.is_current(token):
            return None
        return self.commit(token, fetch())
