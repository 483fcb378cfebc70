"""Models package - exports all SQLAlchemy models."""
from pos_checkout.models.product import Product
from pos_checkout.models.sale import Sale
from pos_checkout.models.sale_line import SaleLine
from pos_checkout.models.sale_payment import SalePayment
from pos_checkout.models.store_settings import StoreSettingsRecord

__all__ = [
    'Product',
    'Sale', 'SaleLine', 'SalePayment',
    'StoreSettingsRecord',
]
