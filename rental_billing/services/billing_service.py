"""Metered-usage rental billing.

Converts meter readings into the amount due for a rental invoice entry:

    copies_used  = new_count - old_count
    billable     = max(0, copies_used - free_copies)    (0 when copies_used <= 0)
    channel_cost = billable * extra_amount

    product_total = base_price + sum(channel_cost for A3/A4/A5 x BW/Color/ColorScanning)

The invoice subtotal is the sum of product totals. GST and commission are not
summed across products: the first product with a non-zero GST rate fixes the
invoice GST rate, and the first product with a non-zero commission rate (its
own, else the assigned salesperson's) fixes the invoice commission rate.

    total_amount          = subtotal * (1 + gst / 100)
    commission_amount     = total_amount * commission_rate / 100
    total_with_commission = total_amount + commission_amount

Calculation failures are absorbed: a missing entry, an unparseable payload or
a product whose machine is missing yields the all-zero :class:`InvoiceTotal`.
Negative usage (meter reset or bad data) bills nothing for that channel.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, Overflow
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from rental_billing.config.metrics import (
    OUTCOME_COMPUTED,
    OUTCOME_ZERO_FALLBACK,
    record_billing_calculation,
)
from rental_billing.models.billing import (
    ColorMode,
    InvoiceEntryConfig,
    LegacyEntry,
    MeterConfig,
    MultiProductEntry,
    PaperSize,
    ProductLine,
    RentalMachine,
    Salesperson,
    parse_rental_invoice_entry,
    product_lines,
)
from rental_billing.utils.numbers import (
    HUNDRED,
    ZERO,
    format_money,
    parse_non_negative_decimal_or_zero,
    plain_number,
    quantize_money,
)

logger = structlog.get_logger(__name__)

EntryInput = Union[LegacyEntry, MultiProductEntry, Mapping[str, Any], None]


@dataclass(frozen=True)
class InvoiceTotal:
    """Amount due for one rental invoice entry.

    Money fields are quantized to 2 places. ``subtotal``, ``gst_rate`` and
    ``product_totals`` are the intermediate values behind the totals.
    """

    total_amount: Decimal = ZERO
    commission_rate: Decimal = ZERO
    commission_amount: Decimal = ZERO
    total_with_commission: Decimal = ZERO
    subtotal: Decimal = ZERO
    gst_rate: Decimal = ZERO
    product_totals: Tuple[Decimal, ...] = field(default_factory=tuple)
    # Set when the zero result stands in for a calculation that could not run
    fallback_reason: Optional[str] = None

    @classmethod
    def zero(cls, fallback_reason: Optional[str] = None) -> "InvoiceTotal":
        return cls(
            fallback_reason=fallback_reason,
            total_amount=quantize_money(ZERO),
            commission_amount=quantize_money(ZERO),
            total_with_commission=quantize_money(ZERO),
            subtotal=quantize_money(ZERO),
        )

    @property
    def is_zero(self) -> bool:
        return self.total_with_commission == ZERO

    def as_payload(self) -> Dict[str, Any]:
        """Shape consumed by invoice views and the commission call."""
        return {
            "totalAmount": format_money(self.total_amount),
            "commissionRate": plain_number(self.commission_rate),
            "commissionAmount": format_money(self.commission_amount),
            "totalWithCommission": format_money(self.total_with_commission),
        }


def channel_cost(old_count: Any, new_count: Any, free_copies: Any, extra_amount: Any) -> Decimal:
    """Overage charge for one (paper size, colour mode) channel."""
    old = parse_non_negative_decimal_or_zero(old_count)
    new = parse_non_negative_decimal_or_zero(new_count)
    free = parse_non_negative_decimal_or_zero(free_copies)
    rate = parse_non_negative_decimal_or_zero(extra_amount)

    copies_used = new - old
    if copies_used <= 0:
        return ZERO
    billable = max(ZERO, copies_used - free)
    return billable * rate


def paper_size_cost(config: MeterConfig, readings: InvoiceEntryConfig) -> Decimal:
    total = ZERO
    for mode in ColorMode:
        total += channel_cost(
            getattr(config, mode.old_count_field),
            getattr(readings, mode.new_count_field),
            getattr(config, mode.free_copies_field),
            getattr(config, mode.extra_amount_field),
        )
    return total


def product_total(machine: RentalMachine, line: Union[ProductLine, LegacyEntry]) -> Decimal:
    """Base price plus usage for every paper size configured on both sides."""
    total = machine.base_price
    for size in PaperSize:
        config = machine.meter_config(size)
        readings = line.readings(size)
        if config is None or readings is None:
            continue
        total += paper_size_cost(config, readings)
    return total


def commission_rate_for(machine: RentalMachine, assigned_to: Optional[Salesperson]) -> Decimal:
    """Machine commission when set, else the assigned salesperson's."""
    if machine.commission > 0:
        return machine.commission
    if assigned_to is not None:
        return assigned_to.commission
    return ZERO


def _aggregate(lines: Sequence[ProductLine], assigned_to: Optional[Salesperson]) -> Tuple[List[Decimal], Decimal, Decimal]:
    totals: List[Decimal] = []
    gst_rate = ZERO
    commission_rate = ZERO
    for line in lines:
        machine = line.machine
        if machine is None:  # callers check first; kept for type narrowing
            continue
        totals.append(product_total(machine, line))
        if gst_rate == 0:
            gst_rate = machine.gst_percentage
        if commission_rate == 0:
            commission_rate = commission_rate_for(machine, assigned_to)
    return totals, gst_rate, commission_rate


def _compose(lines: Sequence[ProductLine], assigned_to: Optional[Salesperson]) -> InvoiceTotal:
    totals, gst_rate, commission_rate = _aggregate(lines, assigned_to)
    subtotal = sum(totals, ZERO)
    total_including_gst = subtotal * (1 + gst_rate / HUNDRED)
    commission_amount = total_including_gst * commission_rate / HUNDRED
    # Rates must fit the money context too, otherwise the payload cannot render them
    quantize_money(gst_rate)
    quantize_money(commission_rate)

    return InvoiceTotal(
        total_amount=quantize_money(total_including_gst),
        commission_rate=commission_rate,
        commission_amount=quantize_money(commission_amount),
        total_with_commission=quantize_money(total_including_gst + commission_amount),
        subtotal=quantize_money(subtotal),
        gst_rate=gst_rate,
        product_totals=tuple(quantize_money(t) for t in totals),
    )


def compute_invoice_total(entry: EntryInput) -> InvoiceTotal:
    """Compute the amount due and commission for a rental invoice entry.

    ``entry`` may be a parsed entry model or the raw JSON mapping. Never raises;
    anything that prevents a calculation yields :meth:`InvoiceTotal.zero`.
    """
    if entry is None:
        logger.info("rental_billing.zero_fallback", reason="missing_entry")
        record_billing_calculation(OUTCOME_ZERO_FALLBACK)
        return InvoiceTotal.zero("missing_entry")

    try:
        parsed = parse_rental_invoice_entry(entry)
    except PydanticValidationError as exc:
        logger.warning("rental_billing.zero_fallback", reason="invalid_entry", errors=exc.error_count())
        record_billing_calculation(OUTCOME_ZERO_FALLBACK)
        return InvoiceTotal.zero("invalid_entry")

    lines = product_lines(parsed)
    missing = [idx for idx, line in enumerate(lines) if line.machine is None]
    if missing:
        logger.warning(
            "rental_billing.zero_fallback",
            reason="missing_machine",
            entry_id=parsed.id,
            product_indexes=missing,
        )
        record_billing_calculation(OUTCOME_ZERO_FALLBACK)
        return InvoiceTotal.zero("missing_machine")

    try:
        result = _compose(lines, parsed.assigned_to)
    except (InvalidOperation, Overflow) as exc:
        # Values beyond the decimal context (e.g. "1e30" base price)
        logger.warning(
            "rental_billing.zero_fallback",
            reason="arithmetic_overflow",
            entry_id=parsed.id,
            error=type(exc).__name__,
        )
        record_billing_calculation(OUTCOME_ZERO_FALLBACK)
        return InvoiceTotal.zero("arithmetic_overflow")

    logger.debug(
        "rental_billing.computed",
        entry_id=parsed.id,
        entry_kind=parsed.kind,
        products=len(lines),
        subtotal=str(result.subtotal),
        gst_rate=str(result.gst_rate),
        commission_rate=str(result.commission_rate),
        total_amount=str(result.total_amount),
    )
    record_billing_calculation(OUTCOME_COMPUTED)
    return result


__all__ = [
    "InvoiceTotal",
    "channel_cost",
    "paper_size_cost",
    "product_total",
    "commission_rate_for",
    "compute_invoice_total",
]
