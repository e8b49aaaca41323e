"""Models package marker.

Exposes Base for table creation; payload models live in ``models.billing``.
"""
from .database import Base  # noqa: F401
