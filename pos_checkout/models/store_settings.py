"""Store settings model."""
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from pos_checkout.database import Base, BigIntId


class StoreSettingsRecord(Base):
    """Single-row store identity and receipt preferences. Empty columns fall back to config."""

    __tablename__ = 'store_settings'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    receipt_template = Column(String(16), nullable=True)  # compact | branded | detailed
    store_name = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    contact_line = Column(String(255), nullable=True)
    tax_identifier = Column(String(64), nullable=True)
    logo_reference = Column(String(512), nullable=True)
    footer_note = Column(Text, nullable=True)
    invoice_prefix = Column(String(16), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<StoreSettingsRecord(id={self.id}, template={self.receipt_template})>"
