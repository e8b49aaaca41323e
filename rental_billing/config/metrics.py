"""Prometheus counters for the billing core.

Exposition is left to the embedding service; :func:`render_metrics` returns the
text format for whatever endpoint or push job it uses.
"""
from __future__ import annotations

from typing import Tuple

from prometheus_client import CONTENT_TYPE_LATEST, Counter, REGISTRY, generate_latest

invoice_numbers_issued = Counter(
    "invoice_numbers_issued",
    "Invoice numbers allocated from the tenant counter",
)
billing_calculations = Counter(
    "rental_billing_calculations",
    "Rental invoice total computations",
    ["outcome"],
)
commission_records = Counter(
    "commission_records",
    "Commission records emitted for finalized rental invoices",
)

OUTCOME_COMPUTED = "computed"
OUTCOME_ZERO_FALLBACK = "zero_fallback"


def record_billing_calculation(outcome: str) -> None:
    billing_calculations.labels(outcome=outcome).inc()


def render_metrics() -> Tuple[bytes, str]:
    """Return (payload, content type) for a Prometheus scrape."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "invoice_numbers_issued",
    "billing_calculations",
    "commission_records",
    "OUTCOME_COMPUTED",
    "OUTCOME_ZERO_FALLBACK",
    "record_billing_calculation",
    "render_metrics",
]
