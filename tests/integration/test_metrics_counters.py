"""Counters move when totals are computed and invoices are numbered.

Reads samples straight from the default Prometheus registry and compares
against a baseline, since counters are process-global across the test run.
"""
from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from rental_billing.config.metrics import OUTCOME_COMPUTED, OUTCOME_ZERO_FALLBACK, render_metrics
from rental_billing.models.billing import InvoiceCounter
from rental_billing.services.billing_service import compute_invoice_total
from rental_billing.services.invoice_workflow import finalize_rental_invoice

pytestmark = [pytest.mark.integration]


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_calculation_outcomes_are_counted():
    computed = _sample("rental_billing_calculations_total", {"outcome": OUTCOME_COMPUTED})
    fallback = _sample("rental_billing_calculations_total", {"outcome": OUTCOME_ZERO_FALLBACK})

    compute_invoice_total({"machineId": {"basePrice": 100}})
    compute_invoice_total({"a4Config": {"bwNewCount": 1}})

    assert _sample("rental_billing_calculations_total", {"outcome": OUTCOME_COMPUTED}) == computed + 1
    assert _sample("rental_billing_calculations_total", {"outcome": OUTCOME_ZERO_FALLBACK}) == fallback + 1


class _Store:
    def __init__(self):
        self.counter = InvoiceCounter(invoice_count=0, global_invoice_format="INV-0001")

    async def current(self):
        return self.counter

    async def allocate(self):
        self.counter = self.counter.model_copy(update={"invoice_count": self.counter.invoice_count + 1})
        return self.counter


@pytest.mark.asyncio
async def test_issued_numbers_and_commissions_are_counted(machine_store, commission_sink, today):
    issued = _sample("invoice_numbers_issued_total")
    commissions = _sample("commission_records_total")
    entry = {"machineId": {"basePrice": 100, "commission": 10}}

    for invoice_type in ("invoice", "quotation", "invoice"):
        await finalize_rental_invoice(
            entry,
            invoice_type=invoice_type,
            counter_store=_Store(),
            machine_store=machine_store,
            commission_sink=commission_sink,
            today=today,
        )

    assert _sample("invoice_numbers_issued_total") == issued + 2
    assert _sample("commission_records_total") == commissions + 2


def test_render_metrics_exposes_counters():
    compute_invoice_total({"machineId": {"basePrice": 1}})
    payload, content_type = render_metrics()
    text = payload.decode()
    assert content_type.startswith("text/plain")
    assert "rental_billing_calculations_total" in text
    assert "invoice_numbers_issued_total" in text
