"""Sale model."""
from sqlalchemy import Column, String, Numeric, DateTime, Text, Integer
from sqlalchemy.orm import relationship
from pos_checkout.database import Base, BigIntId


class Sale(Base):
    """Stored sale. Totals are kept rounded; line data is kept as billed."""

    __tablename__ = 'sale'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, nullable=False)
    payment_method = Column(String(16), nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False)
    tax_total = Column(Numeric(12, 2), nullable=False)
    grand_total = Column(Numeric(12, 2), nullable=False)

    discount_mode = Column(String(16), nullable=False, default='percentage')
    discount_percent = Column(Numeric(9, 4), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 4), nullable=False, default=0)
    loyalty_used = Column(Numeric(12, 2), nullable=False, default=0)
    loyalty_awarded = Column(Integer, nullable=False, default=0)
    # Customer points after this sale; null when the balance was not known
    loyalty_balance = Column(Numeric(12, 2), nullable=True)
    payable = Column(Numeric(12, 2), nullable=False)

    remarks = Column(Text, nullable=True)
    customer_reference = Column(String(64), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(32), nullable=True)

    # Relationships
    lines = relationship('SaleLine', back_populates='sale', cascade='all, delete-orphan',
                         order_by='SaleLine.position')
    payments = relationship('SalePayment', back_populates='sale', cascade='all, delete-orphan',
                            order_by='SalePayment.id')

    def __repr__(self):
        return f"<Sale(id={self.id}, payable={self.payable}, method={self.payment_method})>"
