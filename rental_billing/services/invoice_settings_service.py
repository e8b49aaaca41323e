"""Tenant invoice settings store.

Holds the tenant-wide ``{invoice_count, global_invoice_format}`` record and
issues the atomic counter increment invoice creation depends on. Functions take
an ``AsyncSession`` and never commit: the increment belongs to the caller's
invoice-creation transaction, so a rolled back creation also rolls back the
increment and leaves no gap.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from rental_billing.config.settings import get_settings
from rental_billing.models.billing import InvoiceCounter
from rental_billing.models.database import TenantInvoiceSettings
from rental_billing.utils.errors import CounterAllocationError, ValidationError

logger = structlog.get_logger(__name__)

_INCREMENT_STMT = text(
    """
    INSERT INTO tenant_invoice_settings (tenant_id, invoice_count, global_invoice_format)
    VALUES (:tenant_id, 1, '')
    ON CONFLICT(tenant_id) DO UPDATE
        SET invoice_count = tenant_invoice_settings.invoice_count + 1,
            updated_at = CURRENT_TIMESTAMP
    RETURNING invoice_count, global_invoice_format
    """
)


def _to_counter(row: Optional[TenantInvoiceSettings]) -> InvoiceCounter:
    if row is None:
        return InvoiceCounter()
    return InvoiceCounter(
        invoice_count=row.invoice_count,
        global_invoice_format=row.global_invoice_format,
    )


async def get_invoice_settings(db: AsyncSession, tenant_id: str) -> InvoiceCounter:
    """Current counter and format; a tenant without a record starts at zero."""
    row = await db.get(TenantInvoiceSettings, tenant_id, populate_existing=True)
    return _to_counter(row)


async def update_invoice_settings(
    db: AsyncSession,
    tenant_id: str,
    *,
    invoice_count: Optional[int] = None,
    invoice_format: Optional[str] = None,
) -> InvoiceCounter:
    """Create or update the tenant record. Fields left as None are unchanged."""
    if invoice_count is not None and invoice_count < 0:
        raise ValidationError("invoice_count must be zero or higher", details={"invoice_count": invoice_count})
    row = await db.get(TenantInvoiceSettings, tenant_id, populate_existing=True)
    if row is None:
        row = TenantInvoiceSettings(tenant_id=tenant_id, invoice_count=0, global_invoice_format="")
        db.add(row)
    if invoice_count is not None:
        row.invoice_count = invoice_count
    if invoice_format is not None:
        row.global_invoice_format = invoice_format.strip()
    await db.flush()
    return _to_counter(row)


async def increment_invoice_count(db: AsyncSession, tenant_id: str) -> InvoiceCounter:
    """Atomically advance the tenant counter by one and return the new state.

    A single INSERT .. ON CONFLICT .. DO UPDATE .. RETURNING statement, so two
    concurrent creations can never observe the same value. Works on PostgreSQL
    and SQLite >= 3.35. Transient SQLite busy/locked errors are retried.
    """
    attempts = get_settings().COUNTER_MAX_RETRIES
    for _ in range(attempts):
        try:
            result = await db.execute(_INCREMENT_STMT, {"tenant_id": tenant_id})
        except OperationalError as exc:
            msg = str(exc).lower()
            if "busy" in msg or "locked" in msg:
                await asyncio.sleep(0.005)
                continue
            raise
        row = result.one()
        counter = InvoiceCounter(invoice_count=row[0], global_invoice_format=row[1] or "")
        logger.debug("invoice_counter.incremented", tenant_id=tenant_id, invoice_count=counter.invoice_count)
        return counter
    raise CounterAllocationError(tenant_id, attempts)


class SqlInvoiceCounterStore:
    """Invoice counter store backed by the ``tenant_invoice_settings`` table."""

    def __init__(self, db: AsyncSession, tenant_id: Optional[str] = None):
        self.db = db
        self.tenant_id = tenant_id or get_settings().DEFAULT_TENANT_ID

    async def current(self) -> InvoiceCounter:
        return await get_invoice_settings(self.db, self.tenant_id)

    async def allocate(self) -> InvoiceCounter:
        return await increment_invoice_count(self.db, self.tenant_id)


__all__ = [
    "get_invoice_settings",
    "update_invoice_settings",
    "increment_invoice_count",
    "SqlInvoiceCounterStore",
]
