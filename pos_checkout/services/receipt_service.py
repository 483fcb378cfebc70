"""
Receipt rendering.

render_receipt() is a pure function of a FinalizedSale and StoreSettings: the
same inputs always give byte-identical output. Nothing here reads the clock,
the cart or the request.
"""
from dataclasses import dataclass
from functools import partial
from io import BytesIO
from typing import Any, Dict, Optional
from xml.sax.saxutils import escape

from jinja2 import Environment, PackageLoader, select_autoescape
from reportlab.lib.units import mm
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from pos_checkout.services.payment_service import reconcile
from pos_checkout.services.sale_snapshot import FinalizedSale
from pos_checkout.services.settings_service import (
    StoreSettings, TEMPLATE_DETAILED, TEMPLATE_BRANDED, TEMPLATE_COMPACT, normalize_template
)
from pos_checkout.utils.formatters import (
    format_currency, format_quantity, format_percent, format_receipt_datetime
)
from pos_checkout.utils.money import HUNDRED, round_money

MEDIA_TYPE_HTML = 'text/html'
MEDIA_TYPE_PDF = 'application/pdf'

PAGE_WIDTH = 80 * mm
PAGE_MARGIN = 2 * mm

COMPACT_FOOTER = 'THANK YOU'
DETAILED_FOOTER = 'THANK YOU VISIT AGAIN'
TAX_COMPONENTS = ('CGST', 'SGST')

PAYMENT_LABELS = {
    'cash': 'Cash',
    'card': 'Card',
    'upi': 'UPI',
    'other': 'Other',
    'split': 'Split',
}

_env = Environment(
    loader=PackageLoader('pos_checkout', 'templates/receipts'),
    autoescape=select_autoescape(['html']),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


@dataclass(frozen=True)
class ReceiptDocument:
    """Rendered receipt. Never stored; regenerate from the sale when needed."""
    template: str
    content: Any
    media_type: str = MEDIA_TYPE_HTML


def build_receipt_context(sale: FinalizedSale, settings: StoreSettings) -> Dict[str, Any]:
    """
    Figures and labels shared by every receipt layout.

    All amounts go through one formatter bound to the store's currency, so the
    three layouts can only differ in which blocks they show.
    """
    money = partial(format_currency, symbol=settings.currency_symbol, grouping=settings.currency_grouping)
    totals = sale.totals
    rounded = totals.rounded()

    # Display simplification: total tax is split into two equal halves
    # whatever the per-line rates are.
    half_tax = totals.tax_total / 2

    # Rows are tax-inclusive so that on every layout they add up to Net Amount
    items = []
    for item, line in zip(sale.items, totals.lines):
        items.append({
            'name': item.name,
            'sku': item.sku,
            'qty': format_quantity(line.qty),
            'rate': money(line.unit_price * (1 + line.tax_percent / HUNDRED)),
            'total': money(line.total),
            'tax_percent': format_percent(line.tax_percent),
        })

    reconciliation = reconcile(sale.payable, sale.payment_breakdown)
    payments = [
        {'label': PAYMENT_LABELS[tender.value], 'amount': money(amount)}
        for tender, amount in sale.payment_breakdown.tenders()
    ]

    discount = sale.discount
    discount_label = 'Discount'
    if discount.amount > 0 and discount.percent > 0:
        discount_label = f"Discount ({format_percent(round_money(discount.percent))})"

    return {
        'store': settings,
        'invoice_number': sale.invoice_number(settings.invoice_prefix),
        'timestamp': format_receipt_datetime(sale.created_at),
        'payment_method': PAYMENT_LABELS.get(sale.payment_method, sale.payment_method),
        'customer': {
            'name': sale.customer_name,
            'phone': sale.customer_phone,
            'reference': sale.customer_reference,
        } if (sale.customer_name or sale.customer_phone or sale.customer_reference) else None,
        'items': items,
        'item_count': totals.item_count,
        'subtotal': money(rounded['subtotal']),
        'tax_total': money(rounded['tax_total']),
        'tax_split': [{'label': label, 'amount': money(half_tax)} for label in TAX_COMPONENTS],
        'net_amount': money(rounded['grand_total']),
        'mrp_total': money(rounded['mrp_total']),
        'savings': money(rounded['savings']),
        'has_savings': rounded['savings'] > 0,
        'discount_applied': discount.is_applied,
        'discount_label': discount_label,
        'discount_amount': money(discount.amount) if discount.amount > 0 else None,
        'loyalty_used': money(discount.loyalty_used) if discount.loyalty_used > 0 else None,
        'loyalty_redeemed': format_quantity(discount.loyalty_used) if discount.loyalty_used > 0 else None,
        'loyalty_awarded': sale.loyalty_awarded or None,
        'loyalty_balance': format_quantity(sale.loyalty_balance) if sale.loyalty_balance is not None else None,
        'payable': money(sale.payable),
        'payments': payments,
        'payment_remarks': sale.payment_breakdown.remarks,
        'total_tendered': money(reconciliation.total_tendered),
        'change_due': money(reconciliation.change_due),
        'balance_due': money(reconciliation.balance_due) if reconciliation.balance_due > 0 else None,
        'compact_footer': COMPACT_FOOTER,
        'detailed_footer': DETAILED_FOOTER,
    }


def render_receipt(sale: FinalizedSale, settings: StoreSettings, template: Optional[str] = None) -> ReceiptDocument:
    """Render the 80 mm HTML receipt in the requested or configured layout."""
    name = normalize_template(template or settings.receipt_template)
    context = build_receipt_context(sale, settings)
    html = _env.get_template(f"{name}.html").render(**context)
    return ReceiptDocument(template=name, content=html, media_type=MEDIA_TYPE_HTML)


def _pdf_plain(value: Optional[str]) -> str:
    # Base-14 fonts have no rupee glyph
    return (value or '').replace('₹', 'Rs.')


def _pdf_text(value: Optional[str]) -> str:
    """Paragraph markup is XML; escape user text."""
    return escape(_pdf_plain(value))


def render_receipt_pdf(sale: FinalizedSale, settings: StoreSettings, template: Optional[str] = None) -> ReceiptDocument:
    """
    Render the same receipt blocks as an 80 mm PDF.

    Output is built with reportlab's invariant mode, so it carries no
    generation timestamp or random document id.
    """
    name = normalize_template(template or settings.receipt_template)
    ctx = build_receipt_context(sale, settings)
    store = ctx['store']

    buffer = BytesIO()
    items_height = 20 * mm + 8 * mm * len(ctx['items'])
    doc = SimpleDocTemplate(
        buffer,
        pagesize=(PAGE_WIDTH, 120 * mm + items_height),
        rightMargin=PAGE_MARGIN,
        leftMargin=PAGE_MARGIN,
        topMargin=PAGE_MARGIN,
        bottomMargin=PAGE_MARGIN,
        title=f"Receipt {ctx['invoice_number']}",
        invariant=1,
    )

    styles = getSampleStyleSheet()
    center = ParagraphStyle('ReceiptCenter', parent=styles['Normal'], fontSize=8, leading=10, alignment=TA_CENTER)
    title = ParagraphStyle('ReceiptTitle', parent=center, fontSize=11, leading=13, fontName='Helvetica-Bold')
    normal = ParagraphStyle('ReceiptNormal', parent=styles['Normal'], fontSize=7, leading=9)

    elements = []

    # 1. Header
    if store.store_name:
        elements.append(Paragraph(_pdf_text(store.store_name), title))
    if name in (TEMPLATE_BRANDED, TEMPLATE_DETAILED) and store.address:
        elements.append(Paragraph(_pdf_text(store.address), center))
    if name in (TEMPLATE_COMPACT, TEMPLATE_DETAILED) and store.contact_line:
        elements.append(Paragraph(_pdf_text(store.contact_line), center))
    if name == TEMPLATE_DETAILED and store.tax_identifier:
        elements.append(Paragraph(_pdf_text(f"GSTIN: {store.tax_identifier}"), center))
    elements.append(Spacer(1, 2 * mm))

    # 2. Invoice metadata
    meta = [['Invoice', ctx['invoice_number']], ['Date', ctx['timestamp']]]
    if ctx['customer'] and name != TEMPLATE_BRANDED:
        if ctx['customer']['name']:
            meta.append(['Customer', ctx['customer']['name']])
        if ctx['customer']['phone']:
            meta.append(['Phone', ctx['customer']['phone']])
    elements.append(_summary_table(meta))
    elements.append(Spacer(1, 2 * mm))

    # 3. Items
    rows = [['Item', 'Qty', 'Rate', 'Amount']]
    for item in ctx['items']:
        rows.append([
            Paragraph(_pdf_text(item['name']), normal),
            item['qty'],
            _pdf_plain(item['rate']),
            _pdf_plain(item['total']),
        ])
    items_table = Table(rows, colWidths=[30 * mm, 10 * mm, 16 * mm, 20 * mm])
    items_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 7),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LINEBELOW', (0, 0), (-1, 0), 0.5, 'black'),
        ('LINEBELOW', (0, -1), (-1, -1), 0.5, 'black'),
    ]))
    elements.append(items_table)

    # 4. Totals
    summary = []
    if name != TEMPLATE_COMPACT:
        summary.append(['Items', str(ctx['item_count'])])
    if name == TEMPLATE_DETAILED:
        summary.append(['MRP Total', ctx['mrp_total']])
        if ctx['has_savings']:
            summary.append(['You Saved', ctx['savings']])
        summary.append(['Taxable Amount', ctx['subtotal']])
        for component in ctx['tax_split']:
            summary.append([component['label'], component['amount']])
    summary.append(['Net Amount', ctx['net_amount']])
    if name != TEMPLATE_BRANDED and ctx['discount_applied']:
        if ctx['discount_amount']:
            summary.append([ctx['discount_label'], ctx['discount_amount']])
        if ctx['loyalty_used']:
            summary.append(['Loyalty', ctx['loyalty_used']])
        summary.append(['Payable', ctx['payable']])
    if name != TEMPLATE_BRANDED:
        for payment in ctx['payments']:
            summary.append([payment['label'], payment['amount']])
    if name == TEMPLATE_DETAILED:
        summary.append(['Change', ctx['change_due']])
        if ctx['balance_due']:
            summary.append(['Balance Due', ctx['balance_due']])
    if name != TEMPLATE_BRANDED:
        detailed = name == TEMPLATE_DETAILED
        if ctx['loyalty_awarded']:
            summary.append(['Loyalty Points Earned' if detailed else 'Loyalty awarded', str(ctx['loyalty_awarded'])])
        if ctx['loyalty_balance'] is not None:
            summary.append(['Loyalty Points Available' if detailed else 'Loyalty available', ctx['loyalty_balance']])
        if detailed and ctx['loyalty_redeemed']:
            summary.append(['Loyalty Points Redeemed', ctx['loyalty_redeemed']])
    elements.append(_summary_table([[label, _pdf_plain(value)] for label, value in summary]))
    elements.append(Spacer(1, 3 * mm))

    # 5. Footer
    if name == TEMPLATE_BRANDED:
        footer = store.footer_note or ''
    elif name == TEMPLATE_DETAILED:
        footer = ctx['detailed_footer']
    else:
        footer = ctx['compact_footer']
    if footer:
        elements.append(Paragraph(_pdf_text(footer), center))

    doc.build(elements)
    return ReceiptDocument(template=name, content=buffer.getvalue(), media_type=MEDIA_TYPE_PDF)


def _summary_table(rows):
    table = Table(rows, colWidths=[40 * mm, 36 * mm])
    table.setStyle(TableStyle([
        ('FONTSIZE', (0, 0), (-1, -1), 7),
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 1),
        ('TOPPADDING', (0, 0), (-1, -1), 1),
    ]))
    return table
