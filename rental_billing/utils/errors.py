"""Centralized error codes and domain exceptions.

The calculation core never raises; these are used by the invoicing workflow
and the invoice settings store, and rendered by callers through
:func:`error_payload` into the standardized error schema.
"""
from __future__ import annotations
from typing import Any, Dict
import time

ERROR_CODES = {
    "validation": "VALIDATION_ERROR",
    "invalid_invoice_type": "INVALID_INVOICE_TYPE",
    "counter_allocation": "INVOICE_COUNTER_ALLOCATION_FAILED",
}


def error_payload(code: str, message: str, details: Any | None = None, path: str | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "status": "error",
        "error": {
            "code": code,
            "message": message,
        },
        "timestamp": time.time(),
    }
    if details is not None:
        payload["error"]["details"] = details
    if path:
        payload["path"] = path
    return payload


class DomainError(Exception):
    """Base domain error storing standardized fields."""

    def __init__(self, code: str, message: str, details: Any | None = None):  # noqa: D401
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def to_payload(self, path: str | None = None) -> Dict[str, Any]:
        return error_payload(self.code, self.message, details=self.details, path=path)


class ValidationError(DomainError):
    """Raised when a settings update or workflow request is malformed."""

    def __init__(self, message: str, details: Any | None = None):
        super().__init__(ERROR_CODES["validation"], message, details)


class InvalidInvoiceType(DomainError):
    def __init__(self, invoice_type: Any):
        super().__init__(
            ERROR_CODES["invalid_invoice_type"],
            f"Unknown invoice type {invoice_type!r}; expected 'invoice' or 'quotation'",
            details={"invoice_type": invoice_type},
        )


class CounterAllocationError(DomainError):
    def __init__(self, tenant_id: str, attempts: int):
        super().__init__(
            ERROR_CODES["counter_allocation"],
            f"Failed to allocate invoice number for tenant {tenant_id} after {attempts} attempts",
            details={"tenant_id": tenant_id, "attempts": attempts},
        )


__all__ = [
    "ERROR_CODES",
    "error_payload",
    "DomainError",
    "ValidationError",
    "InvalidInvoiceType",
    "CounterAllocationError",
]
