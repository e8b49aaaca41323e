"""Rental invoice finalization workflow.

Orchestrates the billing core against its collaborators:

- quotations are priced but never numbered, never advance the tenant counter,
  never emit commission and never move meter baselines;
- invoices take exactly one value from the counter store, receive the display
  number generated from it, emit a commission record when commission is owed,
  and advance every invoiced machine's baseline to the reported readings.

Totals are computed before any collaborator is touched. An invoice whose totals
fell back to zero (a missing machine, amounts beyond decimal range) raises
:class:`~rental_billing.utils.errors.ValidationError` before a number is
allocated. Collaborator errors propagate unchanged; the caller owns the
surrounding transaction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, List, Mapping, Optional, Protocol, Union

import structlog

from rental_billing.config.metrics import commission_records, invoice_numbers_issued
from rental_billing.models.billing import (
    CommissionRecord,
    InvoiceCounter,
    LegacyEntry,
    MultiProductEntry,
    RentalMachine,
    parse_rental_invoice_entry,
    product_lines,
)
from rental_billing.services.baseline_service import advance_machine_baseline, build_commission_record
from rental_billing.services.billing_service import InvoiceTotal, compute_invoice_total
from rental_billing.services.invoice_number import generate_invoice_number, next_invoice_number
from rental_billing.utils.errors import InvalidInvoiceType, ValidationError

logger = structlog.get_logger(__name__)


class InvoiceType(str, Enum):
    INVOICE = "invoice"
    QUOTATION = "quotation"


class InvoiceCounterStore(Protocol):
    async def current(self) -> InvoiceCounter: ...

    async def allocate(self) -> InvoiceCounter:
        """Atomically add one to the counter and return the new state."""
        ...


class MachineStore(Protocol):
    async def save_baseline(self, machine: RentalMachine) -> None: ...


class CommissionSink(Protocol):
    async def create_commission(self, record: CommissionRecord) -> None: ...


@dataclass
class FinalizedRentalInvoice:
    invoice_type: InvoiceType
    totals: InvoiceTotal
    invoice_number: Optional[str] = None
    sequence_value: Optional[int] = None
    commission: Optional[CommissionRecord] = None
    advanced_machines: List[RentalMachine] = field(default_factory=list)


def _coerce_invoice_type(value: Union[InvoiceType, str]) -> InvoiceType:
    try:
        return InvoiceType(value)
    except ValueError:
        raise InvalidInvoiceType(value) from None


async def preview_invoice_number(counter_store: InvoiceCounterStore, *, today: Optional[date] = None) -> str:
    """Number the next invoice would get, without touching the counter."""
    counter = await counter_store.current()
    return next_invoice_number(counter, today=today)


async def finalize_rental_invoice(
    entry: Union[LegacyEntry, MultiProductEntry, Mapping[str, Any]],
    *,
    invoice_type: Union[InvoiceType, str],
    counter_store: InvoiceCounterStore,
    machine_store: MachineStore,
    commission_sink: CommissionSink,
    invoice_id: Optional[str] = None,
    today: Optional[date] = None,
) -> FinalizedRentalInvoice:
    kind = _coerce_invoice_type(invoice_type)
    parsed = parse_rental_invoice_entry(entry)
    totals = compute_invoice_total(parsed)
    log = logger.bind(invoice_type=kind.value, invoice_id=invoice_id or parsed.id)

    if kind is InvoiceType.QUOTATION:
        log.info("rental_invoice.quotation_priced", total_amount=str(totals.total_amount))
        return FinalizedRentalInvoice(invoice_type=kind, totals=totals)

    if totals.fallback_reason is not None:
        # A zero fallback is not a bill
        log.warning("rental_invoice.rejected", reason=totals.fallback_reason)
        raise ValidationError(
            "Rental invoice totals could not be computed",
            details={"reason": totals.fallback_reason, "entry_id": parsed.id},
        )

    counter = await counter_store.allocate()
    invoice_number = generate_invoice_number(counter.invoice_count, counter.global_invoice_format, today=today)
    invoice_numbers_issued.inc()
    log = log.bind(invoice_number=invoice_number)

    commission = build_commission_record(totals, parsed, invoice_id=invoice_id)
    if commission is not None:
        await commission_sink.create_commission(commission)
        commission_records.inc()

    advanced: List[RentalMachine] = []
    for line in product_lines(parsed):
        if line.machine is None:
            continue
        machine = advance_machine_baseline(line.machine, line.readings_by_size())
        await machine_store.save_baseline(machine)
        advanced.append(machine)

    log.info(
        "rental_invoice.finalized",
        sequence_value=counter.invoice_count,
        total_amount=str(totals.total_amount),
        commission_amount=str(totals.commission_amount),
        machines_advanced=len(advanced),
    )
    return FinalizedRentalInvoice(
        invoice_type=kind,
        totals=totals,
        invoice_number=invoice_number,
        sequence_value=counter.invoice_count,
        commission=commission,
        advanced_machines=advanced,
    )


__all__ = [
    "InvoiceType",
    "InvoiceCounterStore",
    "MachineStore",
    "CommissionSink",
    "FinalizedRentalInvoice",
    "preview_invoice_number",
    "finalize_rental_invoice",
]
