"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, Integer, DateTime
from sqlalchemy.sql import func
from pos_checkout.database import Base, BigIntId


class Product(Base):
    """Catalog entry. Maintained by the back office; read here for lookup and export."""

    __tablename__ = 'product'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    store_seq = Column(Integer, nullable=True, index=True)  # Short code printed on scale labels
    sku = Column(String(64), nullable=True, index=True)
    barcode = Column(String(64), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    mrp = Column(Numeric(12, 2), nullable=True)
    sale_price = Column(Numeric(12, 2), nullable=False)
    tax_percent = Column(Numeric(5, 2), nullable=False, default=0)
    stock = Column(Numeric(12, 3), nullable=False, default=0)
    unit = Column(String(16), nullable=True)
    is_repacking = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"
