import pytest
from datetime import datetime
from decimal import Decimal

from pos_checkout import create_app
from pos_checkout.database import get_session
from pos_checkout.models import Product, StoreSettingsRecord
from pos_checkout.services.discount_service import DiscountMode
from pos_checkout.services.payment_service import PaymentBreakdown
from pos_checkout.services.print_service import spool_dispatcher
from pos_checkout.services.sale_snapshot import AppliedDiscount, BilledItem, FinalizedSale
from pos_checkout.services.settings_service import StoreSettings


@pytest.fixture(scope='function')
def app(tmp_path):
    """Application on a fresh in-memory database, printing into a temp spool."""
    app = create_app('config.TestingConfig')
    app.extensions['print_dispatcher'] = spool_dispatcher(str(tmp_path / 'spool'))
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for the current app."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def products(session):
    """A small catalog: packaged goods plus one repack item sold by weight."""
    rice = Product(
        sku='RICE1KG', barcode='8901234567890', name='Basmati Rice 1kg',
        mrp=Decimal('55.00'), sale_price=Decimal('50.00'), tax_percent=Decimal('5'),
        stock=Decimal('40'), unit='pc', store_seq=1
    )
    soap = Product(
        sku='SOAP100', barcode='8909876543210', name='Neem Soap 100g',
        mrp=Decimal('35.00'), sale_price=Decimal('30.00'), tax_percent=Decimal('18'),
        stock=Decimal('25'), unit='pc', store_seq=2
    )
    tomato = Product(
        sku='TOMATO', barcode='2000042', name='Tomato, Local',
        mrp=None, sale_price=Decimal('40.00'), tax_percent=Decimal('0'),
        stock=Decimal('12.500'), unit='kg', store_seq=42, is_repacking=True
    )
    retired = Product(
        sku='OLD1', name='Retired Item', sale_price=Decimal('10.00'),
        tax_percent=Decimal('0'), active=False
    )
    session.add_all([rice, soap, tomato, retired])
    session.commit()
    return {'rice': rice, 'soap': soap, 'tomato': tomato, 'retired': retired}


@pytest.fixture(scope='function')
def store_settings_row(session):
    record = StoreSettingsRecord(
        receipt_template='detailed',
        store_name='Fresh Mart',
        address='1 Station Road',
        footer_note='Visit again',
    )
    session.add(record)
    session.commit()
    return record


@pytest.fixture
def settings():
    """Store settings for renderer tests."""
    return StoreSettings(
        receipt_template='compact',
        store_name='Fresh Mart',
        address='1 Station Road, Pune',
        contact_line='Ph: 98765 43210',
        tax_identifier='27AAAAA0000A1Z5',
        logo_reference='https://cdn.example.com/logo.png',
        footer_note='Goods once sold will not be taken back',
        invoice_prefix='FM-',
    )


@pytest.fixture
def make_sale():
    """Factory for FinalizedSale snapshots without touching the database."""
    def _make(items=None, cash='105.00', card='0', upi='0', discount=None, payable='105.00',
              sale_id=1001, customer_name=None):
        items = items or [
            BilledItem(name='Basmati Rice 1kg', qty=Decimal('2'), unit_price=Decimal('50.00'),
                       tax_percent=Decimal('5'), product_id=1, sku='RICE1KG', mrp=Decimal('55.00')),
        ]
        return FinalizedSale(
            id=sale_id,
            created_at=datetime(2024, 3, 15, 18, 42, 7),
            items=tuple(items),
            payment_method='cash',
            payment_breakdown=PaymentBreakdown.from_dict({'cash': cash, 'card': card, 'upi': upi}),
            discount=discount or AppliedDiscount(mode=DiscountMode.PERCENTAGE),
            payable=Decimal(payable),
            customer_name=customer_name,
        )
    return _make
