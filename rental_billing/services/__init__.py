"""Service layer package."""

__all__ = [
    "baseline_service",
    "billing_service",
    "invoice_number",
    "invoice_settings_service",
    "invoice_workflow",
]
