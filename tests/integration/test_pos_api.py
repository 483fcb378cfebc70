"""
Integration tests for the POS JSON API.
"""

import csv
import io
import os
from decimal import Decimal

from config import TestingConfig
from pos_checkout import create_app
from pos_checkout.services.print_service import PrintDispatcher, spool_dispatcher


def add_rice(client, product_id, qty=2):
    return client.post('/pos/cart/items', json={'product_id': product_id, 'qty': qty})


def checkout_rice(client, products, cash='105', **payload):
    add_rice(client, products['rice'].id)
    client.put('/pos/cart/payment', json={'cash': cash})
    return client.post('/pos/checkout', json=payload)


class TestProductLookup:
    """Tests for GET /pos/products."""

    def test_exact_barcode(self, client, products):
        response = client.get('/pos/products', query_string={'q': '8901234567890'})
        data = response.get_json()

        assert response.status_code == 200
        assert [r['sku'] for r in data['results']] == ['RICE1KG']
        assert data['stale'] is False

    def test_name_search_excludes_inactive(self, client, products):
        data = client.get('/pos/products', query_string={'q': 'i'}).get_json()
        names = [r['name'] for r in data['results']]

        assert 'Retired Item' not in names
        assert names == sorted(names)

    def test_older_request_is_stale(self, client, products):
        client.get('/pos/products', query_string={'q': 'ric', 'seq': 5})
        data = client.get('/pos/products', query_string={'q': 'ri', 'seq': 3}).get_json()

        assert data['stale'] is True
        assert data['results'] == []

    def test_newer_request_is_answered(self, client, products):
        client.get('/pos/products', query_string={'q': 'ri', 'seq': 1})
        data = client.get('/pos/products', query_string={'q': 'rice', 'seq': 2}).get_json()

        assert data['stale'] is False
        assert data['seq'] == 2
        assert data['results'][0]['sku'] == 'RICE1KG'

    def test_scale_label(self, client, products):
        data = client.get('/pos/products', query_string={'q': '#00004201250'}).get_json()

        assert data['weighed_qty'] == '1.25'
        assert data['results'][0]['sku'] == 'TOMATO'


class TestCart:
    """Tests for cart editing endpoints."""

    def test_add_and_increment(self, client, products):
        rice_id = products['rice'].id

        response = add_rice(client, rice_id)
        assert response.status_code == 201
        assert response.get_json()['line']['line_id'] == f'{rice_id}:m'

        data = add_rice(client, rice_id, qty=1).get_json()
        assert len(data['checkout']['cart']['lines']) == 1
        assert data['line']['qty'] == '3'
        assert data['summary']['grand_total'] == '157.50'

    def test_totals(self, client, products):
        data = add_rice(client, products['rice'].id).get_json()

        assert data['summary']['subtotal'] == '100.00'
        assert data['summary']['tax_total'] == '5.00'
        assert data['summary']['grand_total'] == '105.00'
        assert data['summary']['savings'] == '10.00'

    def test_scale_label_adds_weighed_quantity(self, client, products):
        data = client.post('/pos/cart/items', json={'barcode': '#00004201250'}).get_json()

        assert data['line']['qty'] == '1.25'
        assert data['summary']['grand_total'] == '50.00'

    def test_adhoc_item(self, client):
        response = client.post('/pos/cart/items', json={'name': 'Carry bag', 'unit_price': '5', 'tax_percent': '0'})

        assert response.status_code == 201
        assert response.get_json()['line']['line_id'] == 'adhoc-1'

    def test_unknown_product(self, client, products):
        response = client.post('/pos/cart/items', json={'product_id': 999})

        assert response.status_code == 404
        assert response.get_json()['reason'] == 'product_not_found'

    def test_zero_quantity_rejected(self, client, products):
        response = add_rice(client, products['rice'].id, qty=0)

        assert response.status_code == 400
        assert response.get_json()['reason'] == 'invalid_quantity'
        assert client.get('/pos/cart').get_json()['checkout']['cart']['lines'] == []

    def test_update_and_remove(self, client, products):
        line_id = f"{products['rice'].id}:m"
        add_rice(client, products['rice'].id)

        data = client.patch(f'/pos/cart/items/{line_id}', json={'qty': '1', 'unit_price': '48'}).get_json()
        assert data['summary']['subtotal'] == '48.00'

        response = client.patch(f'/pos/cart/items/{line_id}', json={'tax_percent': '0'})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'invalid_line'

        data = client.delete(f'/pos/cart/items/{line_id}').get_json()
        assert data['removed'] is True
        assert data['summary']['grand_total'] == '0.00'

    def test_discount_and_mode_switch(self, client, products):
        add_rice(client, products['rice'].id)

        data = client.put('/pos/cart/discount', json={'percent': 10}).get_json()
        assert data['summary']['discount_amount'] == '10.50'
        assert data['summary']['payable'] == '94.50'

        data = client.put('/pos/cart/discount', json={'mode': 'absolute'}).get_json()
        assert data['checkout']['discount']['mode'] == 'absolute'
        assert data['summary']['payable'] == '94.50'

        data = client.put('/pos/cart/discount', json={'mode': 'percentage'}).get_json()
        assert data['summary']['payable'] == '94.50'

    def test_discount_follows_cart_changes(self, client, products):
        client.put('/pos/cart/discount', json={'percent': 10})

        data = add_rice(client, products['rice'].id).get_json()
        assert data['summary']['discount_amount'] == '10.50'

        data = client.put('/pos/cart/discount', json={'mode': 'absolute'}).get_json()
        assert data['summary']['payable'] == '94.50'

        data = client.put('/pos/cart/discount', json={'mode': 'percentage'}).get_json()
        assert data['summary']['payable'] == '94.50'
        assert Decimal(data['checkout']['discount']['percent']) == 10

    def test_percent_discount_grows_with_cart(self, client, products):
        add_rice(client, products['rice'].id)
        client.put('/pos/cart/discount', json={'percent': 10})

        data = add_rice(client, products['rice'].id).get_json()
        assert data['summary']['discount_amount'] == '21.00'

        data = client.put('/pos/cart/discount', json={'mode': 'absolute'}).get_json()
        assert data['summary']['discount_amount'] == '21.00'
        assert data['summary']['payable'] == '189.00'

    def test_loyalty_capped_by_customer_points(self, client, products):
        add_rice(client, products['rice'].id)
        client.put('/pos/cart/customer', json={'name': 'Asha', 'loyalty_available': '5'})

        data = client.put('/pos/cart/discount', json={'loyalty_redemption': 20}).get_json()
        assert data['summary']['loyalty_used'] == '5.00'
        assert data['summary']['payable'] == '100.00'

    def test_payment_balance_and_change(self, client, products):
        add_rice(client, products['rice'].id)

        data = client.put('/pos/cart/payment', json={'cash': '50'}).get_json()
        assert data['summary']['balance_due'] == '55.00'
        assert data['summary']['is_complete'] is False

        data = client.put('/pos/cart/payment', json={'cash': '100', 'card': '10'}).get_json()
        assert data['summary']['change_due'] == '5.00'
        assert data['summary']['balance_due'] == '0.00'

    def test_unknown_payment_field(self, client):
        response = client.put('/pos/cart/payment', json={'cash': '10', 'cheque': '5'})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'invalid_payment_breakdown'

    def test_cancel(self, client, products):
        add_rice(client, products['rice'].id)
        data = client.delete('/pos/cart').get_json()
        assert data['checkout']['cart']['lines'] == []


class TestCheckout:
    """Tests for POST /pos/checkout."""

    def test_success_stores_sale_prints_and_clears(self, app, client, products, tmp_path):
        response = checkout_rice(client, products, cash='110')
        data = response.get_json()

        assert response.status_code == 201
        assert data['sale']['payable'] == '105.00'
        assert data['sale']['payment_method'] == 'cash'
        assert data['print']['ok'] is True
        assert os.path.exists(tmp_path / 'spool' / f"invoice-INV-{data['sale']['id']}.html")
        assert client.get('/pos/cart').get_json()['checkout']['cart']['lines'] == []

    def test_insufficient_tender_keeps_cart(self, client, products):
        response = checkout_rice(client, products, cash='50')
        data = response.get_json()

        assert response.status_code == 400
        assert data['reason'] == 'insufficient_tender'
        assert data['balance_due'] == '55.00'
        assert len(client.get('/pos/cart').get_json()['checkout']['cart']['lines']) == 1

    def test_empty_cart(self, client):
        response = client.post('/pos/checkout', json={})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'empty_cart'

    def test_print_failure_is_warning(self, app, client, products):
        app.extensions['print_dispatcher'] = PrintDispatcher(lambda: None)
        response = checkout_rice(client, products)
        data = response.get_json()

        assert response.status_code == 201
        assert data['print']['ok'] is False
        assert 'could not be printed' in data['print']['warning']
        assert client.get(f"/pos/sales/{data['sale']['id']}").status_code == 200

    def test_over_precise_line_is_billed_as_stored(self, client):
        client.post('/pos/cart/items', json={'name': 'Loose dal', 'unit_price': '100', 'qty': '1.2345'})
        client.put('/pos/cart/payment', json={'cash': '123.50'})
        response = client.post('/pos/checkout', json={'print': False})
        sale_id = response.get_json()['sale']['id']

        assert response.status_code == 201
        sale = client.get(f'/pos/sales/{sale_id}').get_json()['sale']
        assert sale['items'][0]['qty'] == '1.235'
        assert sale['grand_total'] == sale['payable'] == '123.50'
        assert '₹ 123.50' in client.get(f'/pos/sales/{sale_id}/receipt').get_data(as_text=True)

    def test_loyalty_points_are_awarded(self, client, products):
        client.put('/pos/cart/customer', json={'name': 'Asha', 'loyalty_available': '5'})
        data = checkout_rice(client, products, print=False).get_json()

        assert data['sale']['loyalty_awarded'] == 1
        assert Decimal(data['sale']['loyalty_balance']) == 6

    def test_print_can_be_skipped(self, client, products):
        data = checkout_rice(client, products, print=False).get_json()
        assert data['print'] is None


class TestSales:
    """Tests for stored sales, receipts and reprints."""

    def test_create_from_snapshot(self, client):
        response = client.post('/pos/sales', json={
            'items': [{'name': 'Rice', 'qty': '2', 'unit_price': '50', 'tax_percent': '5'}],
            'payment_breakdown': {'cash': '60', 'upi': '45'},
        })
        data = response.get_json()

        assert response.status_code == 201
        assert data['sale']['payment_method'] == 'split'
        assert data['sale']['grand_total'] == '105.00'

    def test_create_rejects_short_tender(self, client):
        response = client.post('/pos/sales', json={
            'items': [{'name': 'Rice', 'qty': '2', 'unit_price': '50', 'tax_percent': '5'}],
            'payment_breakdown': {'cash': '60'},
        })
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'insufficient_tender'

    def test_missing_sale(self, client):
        response = client.get('/pos/sales/999')
        assert response.status_code == 404
        assert response.get_json()['reason'] == 'sale_not_found'

    def test_receipt_html_uses_config_defaults(self, client, products):
        sale_id = checkout_rice(client, products, print=False).get_json()['sale']['id']

        response = client.get(f'/pos/sales/{sale_id}/receipt')
        html = response.get_data(as_text=True)

        assert response.status_code == 200
        assert response.mimetype == 'text/html'
        assert 'Test Mart' in html
        assert f'INV-{sale_id}' in html
        assert 'THANK YOU' in html

    def test_receipt_template_override(self, client, products):
        sale_id = checkout_rice(client, products, print=False).get_json()['sale']['id']
        html = client.get(f'/pos/sales/{sale_id}/receipt?template=detailed').get_data(as_text=True)

        assert 'GSTIN: 29ABCDE1234F1Z5' in html
        assert 'CGST' in html

    def test_reprint_reflects_current_settings(self, client, products, store_settings_row):
        sale_id = checkout_rice(client, products, print=False).get_json()['sale']['id']
        html = client.get(f'/pos/sales/{sale_id}/receipt').get_data(as_text=True)

        assert 'Fresh Mart' in html
        assert 'THANK YOU VISIT AGAIN' in html

    def test_receipt_is_identical_on_every_request(self, client, products):
        sale_id = checkout_rice(client, products, print=False).get_json()['sale']['id']
        first = client.get(f'/pos/sales/{sale_id}/receipt').get_data()
        second = client.get(f'/pos/sales/{sale_id}/receipt').get_data()
        assert first == second

    def test_receipt_pdf(self, client, products):
        sale_id = checkout_rice(client, products, print=False).get_json()['sale']['id']
        response = client.get(f'/pos/sales/{sale_id}/receipt.pdf')

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')

    def test_reprint(self, client, products, tmp_path):
        sale_id = checkout_rice(client, products, print=False).get_json()['sale']['id']
        data = client.post(f'/pos/sales/{sale_id}/print', json={'template': 'branded'}).get_json()

        assert data['print']['ok'] is True
        assert os.path.exists(tmp_path / 'spool' / f'invoice-INV-{sale_id}.html')


class TestExports:
    """Tests for product CSV and PLU downloads."""

    def test_csv(self, client, products):
        response = client.get('/pos/products/export.csv')
        rows = list(csv.reader(io.StringIO(response.get_data(as_text=True))))

        assert response.mimetype == 'text/csv'
        assert 'attachment' in response.headers['Content-Disposition']
        assert rows[0] == ['id', 'sku', 'name', 'mrp', 'price', 'tax_percent', 'stock', 'unit', 'is_repacking']
        assert [row[1] for row in rows[1:]] == ['RICE1KG', 'SOAP100', 'TOMATO']
        assert rows[3][2] == 'Tomato, Local'
        assert rows[3][8] == 'true'

    def test_csv_paging(self, client, products):
        response = client.get('/pos/products/export.csv?page=2&page_size=2')
        rows = list(csv.reader(io.StringIO(response.get_data(as_text=True))))
        assert [row[1] for row in rows[1:]] == ['TOMATO']

    def test_plu(self, client, products):
        response = client.get('/pos/products/plu.txt')
        assert response.get_data(as_text=True) == '42,000042,TOMATO LOCAL,3,40'


class TestOperations:
    """Tests for metrics and CLI commands."""

    def test_metrics(self, client, products):
        checkout_rice(client, products, print=False)
        response = client.get('/metrics')
        body = response.get_data(as_text=True)

        assert response.status_code == 200
        assert 'pos_sales_finalized_total' in body
        assert 'pos_checkout_rejections_total' in body

    def test_cli_reprint(self, app, client, products):
        sale_id = checkout_rice(client, products, print=False).get_json()['sale']['id']
        result = app.test_cli_runner().invoke(args=['reprint', str(sale_id)])

        assert result.exit_code == 0
        assert 'Receipt written to' in result.output

    def test_cli_reprint_missing_sale(self, app):
        result = app.test_cli_runner().invoke(args=['reprint', '999'])

        assert result.exit_code == 1
        assert 'Sale 999 not found' in result.output


class CsrfEnabledConfig(TestingConfig):
    WTF_CSRF_ENABLED = True


class TestCsrf:
    """Tests for the JSON API under CSRF protection."""

    def test_api_accepts_requests_without_token(self, tmp_path):
        app = create_app(CsrfEnabledConfig)
        app.extensions['print_dispatcher'] = spool_dispatcher(str(tmp_path / 'spool'))
        client = app.test_client()

        with app.app_context():
            response = client.post('/pos/cart/items', json={'name': 'Carry bag', 'unit_price': '5'})
            assert response.status_code == 201

            client.put('/pos/cart/payment', json={'cash': '5'})
            response = client.post('/pos/checkout', json={'print': False})
            assert response.status_code == 201
            assert response.get_json()['sale']['payable'] == '5.00'
