"""
Database models for the tenant invoice settings record.
"""

from sqlalchemy import Column, DateTime, Integer, String, CheckConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func


Base = declarative_base()


class TenantInvoiceSettings(Base):
    """Tenant-wide invoice counter and display format (one row per tenant)."""
    __tablename__ = 'tenant_invoice_settings'

    tenant_id = Column(String(64), primary_key=True)
    invoice_count = Column(Integer, nullable=False,
                           default=0, server_default='0')
    global_invoice_format = Column(String(100), nullable=False,
                                   default='', server_default='')
    updated_at = Column(DateTime(timezone=True), server_default=func.now(
    ), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('invoice_count >= 0',
                        name='check_invoice_count_non_negative'),
    )

    def __repr__(self):
        return f"<TenantInvoiceSettings(tenant_id='{self.tenant_id}', invoice_count={self.invoice_count})>"
