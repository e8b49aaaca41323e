"""Meter baseline advancement and commission records for finalized invoices."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union

from rental_billing.models.billing import (
    ColorMode,
    CommissionRecord,
    InvoiceEntryConfig,
    LegacyEntry,
    MultiProductEntry,
    PaperSize,
    RentalMachine,
)
from rental_billing.services.billing_service import InvoiceTotal


def advance_machine_baseline(
    machine: RentalMachine,
    readings: Mapping[PaperSize, InvoiceEntryConfig],
) -> RentalMachine:
    """Return a copy of ``machine`` whose old counts are the invoiced new counts.

    Only paper sizes configured on the machine and present in ``readings`` move.
    A channel whose new count was not reported keeps its previous baseline.
    """
    updates: Dict[str, Any] = {}
    for size, entry_config in readings.items():
        config = machine.meter_config(size)
        if config is None:
            continue
        changed: Dict[str, Any] = {}
        for mode in ColorMode:
            new_count = getattr(entry_config, mode.new_count_field)
            if new_count is not None:
                changed[mode.old_count_field] = new_count
        if changed:
            updates[size.config_field] = config.model_copy(update=changed)
    if not updates:
        return machine
    return machine.model_copy(update=updates)


def build_commission_record(
    total: InvoiceTotal,
    entry: Union[LegacyEntry, MultiProductEntry],
    invoice_id: Optional[str] = None,
) -> Optional[CommissionRecord]:
    """Commission payload for ``total``, or None when nothing is owed."""
    if total.commission_amount <= 0:
        return None
    return CommissionRecord(
        user_id=entry.assigned_to.id if entry.assigned_to else None,
        rental_invoice_id=invoice_id or entry.id,
        commission_amount=total.commission_amount,
        percentage_rate=total.commission_rate,
    )


__all__ = ["advance_machine_baseline", "build_commission_record"]
