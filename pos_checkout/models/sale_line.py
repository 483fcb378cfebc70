"""Sale Line model."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pos_checkout.database import Base, BigIntId


class SaleLine(Base):
    """Sale line, copied from the cart row at billing time."""

    __tablename__ = 'sale_line'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # Cart order, shown on receipts
    product_id = Column(BigInteger, nullable=True)  # Ad-hoc lines have no catalog reference
    variant_id = Column(BigInteger, nullable=True)
    sku = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    qty = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(12, 4), nullable=False)
    tax_percent = Column(Numeric(5, 2), nullable=False, default=0)
    mrp = Column(Numeric(12, 2), nullable=True)

    # Relationships
    sale = relationship('Sale', back_populates='lines')

    def __repr__(self):
        return f"<SaleLine(id={self.id}, sale_id={self.sale_id}, name='{self.name}', qty={self.qty})>"
