"""Metered-usage rental billing core.

Invoice numbering from a tenant counter and format template, and meter-reading
based billing with GST and referral commission.
"""
from rental_billing.services.billing_service import InvoiceTotal, compute_invoice_total
from rental_billing.services.invoice_number import generate_invoice_number, next_invoice_number

__version__ = "0.1.0"

__all__ = [
    "InvoiceTotal",
    "compute_invoice_total",
    "generate_invoice_number",
    "next_invoice_number",
]
