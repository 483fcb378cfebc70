"""POS blueprint: catalog lookup, cart, checkout and receipts (JSON API)."""
from flask import Blueprint, request, session, jsonify, current_app, Response, send_file
from io import BytesIO
from typing import Any, Dict

from pos_checkout.database import get_session
from pos_checkout.exceptions import PosError, NotFoundError, ValidationError
from pos_checkout.models import Product
from pos_checkout.services.cart_service import LineItem
from pos_checkout.services.catalog_service import (
    CatalogEntry, CatalogLookup, find_weighed_product, parse_weighed_barcode, search_products
)
from pos_checkout.services.checkout_service import (
    CheckoutSession, complete_checkout, submission_from_payload
)
from pos_checkout.services.discount_service import DiscountMode
from pos_checkout.services.export_service import export_products_csv, generate_plu_content, product_page
from pos_checkout.services.payment_service import PaymentBreakdown
from pos_checkout.services.print_service import print_sale
from pos_checkout.services.receipt_service import render_receipt, render_receipt_pdf
from pos_checkout.services.sales_service import SaleRepository
from pos_checkout.services.settings_service import StoreSettingsProvider, defaults_from_config
from pos_checkout.blueprints.metrics import record_print, record_rejection, record_sale
from pos_checkout.utils.money import PRICE_STEP, limit_places, non_negative, to_decimal

pos_bp = Blueprint('pos', __name__, url_prefix='/pos')

CHECKOUT_SESSION_KEY = 'checkout'
LOOKUP_SEQ_KEY = 'lookup_seq'


# ============================================================================
# Helpers
# ============================================================================

def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def get_checkout() -> CheckoutSession:
    """Checkout state for this counter session."""
    return CheckoutSession.from_dict(
        session.get(CHECKOUT_SESSION_KEY),
        rounding=current_app.config.get('PAYABLE_ROUNDING', 'none')
    )


def save_checkout(checkout: CheckoutSession) -> None:
    checkout.refresh_discount()
    session[CHECKOUT_SESSION_KEY] = checkout.to_dict()
    session.modified = True


def _checkout_response(checkout: CheckoutSession, status: int = 200, **extra):
    body = {'status': 'ok', 'checkout': checkout.to_dict(), 'summary': checkout.summary()}
    body.update(extra)
    return jsonify(body), status


def _settings_provider() -> StoreSettingsProvider:
    return StoreSettingsProvider(
        get_session(),
        defaults_from_config(current_app.config),
        current_app.extensions.get('cache')
    )


def _dispatcher():
    return current_app.extensions.get('print_dispatcher')


def _entry_for_product(product_id: Any) -> CatalogEntry:
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise ValidationError('product_id must be an integer')
    product = get_session().query(Product).filter(Product.id == pid, Product.active == True).first()  # noqa: E712
    if product is None:
        raise NotFoundError(f'Product {pid} not found', payload={'reason': 'product_not_found'})
    return CatalogEntry.from_product(product)


# ============================================================================
# Catalog lookup
# ============================================================================

@pos_bp.route('/products', methods=['GET'])
def product_search():
    """
    Product lookup for the item entry box.

    The client numbers its requests with ?seq=N; a request older than the
    latest one seen in this session is answered as stale with no results.
    """
    db_session = get_session()
    query = request.args.get('q', '').strip()
    limit = request.args.get('limit', type=int) or current_app.config.get('CATALOG_LOOKUP_LIMIT', 10)
    seq = request.args.get('seq', type=int)

    lookup = CatalogLookup(latest_seq=session.get(LOOKUP_SEQ_KEY, 0))
    if seq is not None:
        if seq < lookup.latest_seq:
            return jsonify({'status': 'ok', 'stale': True, 'seq': seq, 'results': []})
        lookup.latest_seq = seq - 1
    token = lookup.issue()
    session[LOOKUP_SEQ_KEY] = token.seq

    label = parse_weighed_barcode(query)
    if label is not None:
        entry = find_weighed_product(db_session, label)
        results = [entry] if entry else []
        return jsonify({
            'status': 'ok',
            'stale': False,
            'seq': token.seq,
            'weighed_qty': str(label.qty),
            'results': [r.to_dict() for r in results],
        })

    results = lookup.run(token, lambda: search_products(db_session, query, limit)) or []
    return jsonify({
        'status': 'ok',
        'stale': False,
        'seq': token.seq,
        'results': [r.to_dict() for r in results],
    })


@pos_bp.route('/products/export.csv', methods=['GET'])
def products_export_csv():
    """CSV of the product page currently listed."""
    page = request.args.get('page', 1, type=int)
    page_size = request.args.get('page_size', type=int) or current_app.config.get('EXPORT_PAGE_SIZE', 50)
    products = product_page(get_session(), page, page_size)
    content = export_products_csv(products)
    return Response(
        content,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=products_page_{page}.csv'}
    )


@pos_bp.route('/products/plu.txt', methods=['GET'])
def products_plu():
    """PLU file for the label scales (repack products only)."""
    products = (get_session().query(Product)
                .filter(Product.active == True, Product.is_repacking == True)  # noqa: E712
                .order_by(Product.store_seq, Product.id)
                .all())
    return Response(
        generate_plu_content(products),
        mimetype='text/plain',
        headers={'Content-Disposition': 'attachment; filename=PLU.txt'}
    )


# ============================================================================
# Cart
# ============================================================================

@pos_bp.route('/cart', methods=['GET'])
def cart_view():
    return _checkout_response(get_checkout())


@pos_bp.route('/cart/items', methods=['POST'])
def cart_add():
    """
    Add a line. Accepts a catalog product ({product_id, qty}), a scale label
    ({barcode: '#...'}) or an ad-hoc item ({name, unit_price, tax_percent, qty}).
    """
    payload = _payload()
    checkout = get_checkout()
    qty = payload.get('qty')

    if payload.get('barcode'):
        label = parse_weighed_barcode(payload['barcode'])
        if label is None:
            raise ValidationError('Not a scale barcode', payload={'reason': 'invalid_barcode'})
        entry = find_weighed_product(get_session(), label)
        if entry is None:
            raise NotFoundError('Product not found', payload={'reason': 'product_not_found'})
        item = entry.to_line_item(label.qty)
        qty = label.qty
    elif payload.get('product_id') is not None:
        entry = _entry_for_product(payload['product_id'])
        item = entry.to_line_item()
        if payload.get('variant_id') is not None:
            item.variant_id = int(payload['variant_id'])
        if payload.get('unit_price') is not None:
            price = to_decimal(payload['unit_price'], default=None)
            if price is None or price < 0:
                raise ValidationError('unit_price must be a non-negative number')
            item.unit_price = limit_places(price, PRICE_STEP)
    elif payload.get('name'):
        item = LineItem.create(
            name=payload['name'],
            unit_price=payload.get('unit_price'),
            tax_percent=payload.get('tax_percent'),
            sku=payload.get('sku'),
            mrp=payload.get('mrp'),
        )
        if qty is None:
            qty = 1
    else:
        raise ValidationError('product_id, barcode or name is required')

    line = checkout.cart.add_or_increment(item, qty)
    save_checkout(checkout)
    current_app.logger.info(f"[CHECKOUT] Added {line.line_id} qty={line.qty}")
    return _checkout_response(checkout, 201, line=line.to_dict())


@pos_bp.route('/cart/items/<line_id>', methods=['PATCH'])
def cart_update(line_id):
    checkout = get_checkout()
    line = checkout.cart.update(line_id, _payload())
    save_checkout(checkout)
    return _checkout_response(checkout, line=line.to_dict())


@pos_bp.route('/cart/items/<line_id>', methods=['DELETE'])
def cart_remove(line_id):
    checkout = get_checkout()
    removed = checkout.cart.remove(line_id)
    save_checkout(checkout)
    return _checkout_response(checkout, removed=removed)


@pos_bp.route('/cart/discount', methods=['PUT'])
def cart_discount():
    """Set the discount: {mode, value} or {percent} / {absolute}, plus optional loyalty_redemption."""
    payload = _payload()
    checkout = get_checkout()
    gross = checkout.totals().grand_total

    if 'percent' in payload:
        checkout.discount.set_percent(payload['percent'], gross)
    elif 'absolute' in payload:
        checkout.discount.set_absolute(payload['absolute'], gross)
    elif 'mode' in payload:
        mode = DiscountMode.parse(payload['mode'])
        if 'value' in payload:
            if mode == DiscountMode.PERCENTAGE:
                checkout.discount.set_percent(payload['value'], gross)
            else:
                checkout.discount.set_absolute(payload['value'], gross)
        else:
            checkout.discount.switch_mode(mode, gross)

    if 'loyalty_redemption' in payload:
        checkout.loyalty_redemption = non_negative(payload['loyalty_redemption'])

    save_checkout(checkout)
    return _checkout_response(checkout)


@pos_bp.route('/cart/payment', methods=['PUT'])
def cart_payment():
    checkout = get_checkout()
    checkout.payment = PaymentBreakdown.from_dict(_payload())
    save_checkout(checkout)
    return _checkout_response(checkout)


@pos_bp.route('/cart/customer', methods=['PUT'])
def cart_customer():
    payload = _payload()
    checkout = get_checkout()
    checkout.set_customer(
        reference=payload.get('reference'),
        name=payload.get('name'),
        phone=payload.get('phone'),
        loyalty_available=payload.get('loyalty_available'),
    )
    save_checkout(checkout)
    return _checkout_response(checkout)


@pos_bp.route('/cart', methods=['DELETE'])
def cart_cancel():
    checkout = get_checkout()
    checkout.cancel()
    save_checkout(checkout)
    return _checkout_response(checkout)


# ============================================================================
# Checkout and sales
# ============================================================================

@pos_bp.route('/checkout', methods=['POST'])
def checkout_submit():
    """
    Finalize the current cart.

    Validation and persistence failures leave the cart as it was. A print
    failure comes back as a warning next to the stored sale.
    """
    payload = _payload()
    checkout = get_checkout()
    dispatcher = _dispatcher() if payload.get('print', True) else None

    try:
        outcome = complete_checkout(
            checkout,
            SaleRepository(get_session()),
            _settings_provider(),
            dispatcher,
            template=payload.get('template'),
        )
    except PosError as e:
        record_rejection(e)
        current_app.logger.warning(f"[CHECKOUT] Rejected: {e.message}")
        raise

    save_checkout(checkout)
    record_sale(outcome.sale)
    record_print(outcome.print_result)
    body = {'status': 'ok'}
    body.update(outcome.to_dict())
    return jsonify(body), 201


@pos_bp.route('/sales', methods=['POST'])
def sale_create():
    """Store a sale submitted as a complete snapshot (no server-side cart)."""
    try:
        submission = submission_from_payload(
            _payload(), rounding=current_app.config.get('PAYABLE_ROUNDING', 'none')
        )
        sale = SaleRepository(get_session()).save_sale(submission)
    except PosError as e:
        record_rejection(e)
        raise
    record_sale(sale)
    return jsonify({'status': 'ok', 'sale': sale.to_dict()}), 201


@pos_bp.route('/sales/<int:sale_id>', methods=['GET'])
def sale_detail(sale_id):
    sale = SaleRepository(get_session()).get_sale(sale_id)
    return jsonify({'status': 'ok', 'sale': sale.to_dict()})


@pos_bp.route('/sales/<int:sale_id>/receipt', methods=['GET'])
def sale_receipt(sale_id):
    """Receipt HTML, rendered with the current store settings."""
    sale = SaleRepository(get_session()).get_sale(sale_id)
    document = render_receipt(sale, _settings_provider().get(), request.args.get('template'))
    return Response(document.content, mimetype=document.media_type)


@pos_bp.route('/sales/<int:sale_id>/receipt.pdf', methods=['GET'])
def sale_receipt_pdf(sale_id):
    sale = SaleRepository(get_session()).get_sale(sale_id)
    settings = _settings_provider().get()
    document = render_receipt_pdf(sale, settings, request.args.get('template'))
    return send_file(
        BytesIO(document.content),
        mimetype=document.media_type,
        as_attachment=False,
        download_name=f"invoice_{sale.invoice_number(settings.invoice_prefix)}.pdf"
    )


@pos_bp.route('/sales/<int:sale_id>/print', methods=['POST'])
def sale_reprint(sale_id):
    """Reprint a stored sale."""
    dispatcher = _dispatcher()
    if dispatcher is None:
        raise ValidationError('Printing is not configured', payload={'reason': 'print_unavailable'})
    sale = SaleRepository(get_session()).get_sale(sale_id)
    result = print_sale(sale, _settings_provider().get(), dispatcher, _payload().get('template'))
    record_print(result)
    return jsonify({'status': 'ok', 'print': result.to_dict()})
