"""Sale Payment model for split tenders."""
from sqlalchemy import Column, BigInteger, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pos_checkout.database import Base, BigIntId


class SalePayment(Base):
    """
    Sale Payment - amount tendered with one method.

    A sale paid with cash + card has two rows. Zero tenders are not stored.
    """

    __tablename__ = 'sale_payment'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)

    payment_method = Column(String(16), nullable=False)  # cash, card, upi, other
    amount = Column(Numeric(12, 2), nullable=False)

    # Relationships
    sale = relationship('Sale', back_populates='payments')

    def __repr__(self):
        return f"<SalePayment(id={self.id}, sale_id={self.sale_id}, method={self.payment_method}, amount={self.amount})>"
