"""Structured logging configuration.

structlog events and plain stdlib records (SQLAlchemy, aiosqlite) go through one
root handler whose ``ProcessorFormatter`` writes a single JSON object per line
to stdout. Billing modules obtain loggers with ``structlog.get_logger(__name__)``
and pass context as keyword arguments or via ``logger.bind(...)``; bound keys
such as ``tenant_id`` and ``invoice_number`` land as top-level JSON fields.
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog

from rental_billing.config.settings import get_settings

# Applied to stdlib records before rendering so both sources share one shape
_SHARED_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def build_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(level: Optional[str] = None) -> None:
    """Configure structlog and the root handler; call once at process start."""
    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel((level or get_settings().LOG_LEVEL).upper())


__all__ = ["build_formatter", "configure_logging"]
