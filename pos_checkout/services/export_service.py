"""Product exports: CSV of a product page and the PLU file for label scales."""
import csv
import io
from typing import Any, Iterable, List

from pos_checkout.models import Product
from pos_checkout.utils.formatters import format_quantity, scale_code

CSV_COLUMNS = ('id', 'sku', 'name', 'mrp', 'price', 'tax_percent', 'stock', 'unit', 'is_repacking')
PLU_FIXED_FIELD = '3'


def product_page(session, page: int = 1, page_size: int = 50) -> List[Product]:
    """One page of active products ordered by name, as listed on screen."""
    page = max(1, int(page or 1))
    page_size = max(1, int(page_size or 50))
    return (session.query(Product)
            .filter(Product.active == True)  # noqa: E712
            .order_by(Product.name, Product.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all())


def _cell(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _product_row(product: Any) -> List[str]:
    get = product.get if isinstance(product, dict) else lambda key, default=None: getattr(product, key, default)
    price = get('price')
    if price is None:
        price = get('sale_price')
    return [
        _cell(get('id')),
        _cell(get('sku')),
        _cell(get('name')),
        _cell(get('mrp')),
        _cell(price),
        _cell(get('tax_percent')),
        _cell(get('stock')),
        _cell(get('unit')),
        _cell(bool(get('is_repacking'))),
    ]


def export_products_csv(products: Iterable[Any]) -> str:
    """
    CSV with a header row. Embedded quotes and commas are escaped by quoting
    the field and doubling quotes.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator='\r\n')
    writer.writerow(CSV_COLUMNS)
    for product in products:
        writer.writerow(_product_row(product))
    return buffer.getvalue()


def _is_repacking(value: Any) -> bool:
    return value is True or value == 't'


def generate_plu_content(products: Any) -> str:
    """
    PLU.txt for weighing scales, one line per repack product:
    store_seq,last6(barcode or sku),NAME,3,price
    """
    if not isinstance(products, (list, tuple)):
        return ''
    lines = []
    for product in products:
        if not product:
            continue
        get = product.get if isinstance(product, dict) else lambda key, default=None: getattr(product, key, default)
        if not _is_repacking(get('is_repacking')):
            continue
        store_seq = get('store_seq')
        raw_code = str(get('barcode') or get('sku') or '')
        name = str(get('name') or '').replace(',', '').upper()
        price = get('price')
        if price is None:
            price = get('sale_price')
        lines.append(','.join([
            str(store_seq) if store_seq is not None else '',
            scale_code(raw_code),
            name,
            PLU_FIXED_FIELD,
            format_quantity(price) if price is not None else '',
        ]))
    return '\n'.join(lines)
