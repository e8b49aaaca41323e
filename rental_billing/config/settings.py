"""Application settings module.

Provides centralized configuration using environment variables with sane defaults.
Invoice numbering falls back to a 5 digit sequence when the configured format has
no digit run; override with `FALLBACK_SEQUENCE_WIDTH`.
"""
from __future__ import annotations

from functools import lru_cache
import os

from pydantic import BaseModel


class Settings(BaseModel):
    # Invoice numbering
    FALLBACK_SEQUENCE_WIDTH: int = 5
    DEFAULT_TENANT_ID: str = "default"

    # Settings store: attempts before giving up on a busy/locked database
    COUNTER_MAX_RETRIES: int = 10

    LOG_LEVEL: str = "INFO"

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment with type coercion and defaults.

        Malformed values fall back to the default instead of failing startup.
        """
        def _get_int(name: str, default: int, minimum: int = 0) -> int:
            raw = os.getenv(name)
            if raw is None:
                return default
            try:
                value = int(raw)
            except ValueError:
                return default
            return value if value >= minimum else default

        return cls(
            FALLBACK_SEQUENCE_WIDTH=_get_int("FALLBACK_SEQUENCE_WIDTH", 5, minimum=1),
            DEFAULT_TENANT_ID=os.getenv("DEFAULT_TENANT_ID", "default").strip() or "default",
            COUNTER_MAX_RETRIES=_get_int("COUNTER_MAX_RETRIES", 10, minimum=1),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance (singleton pattern)."""
    return Settings.load()


def get_fallback_sequence_width() -> int:
    return get_settings().FALLBACK_SEQUENCE_WIDTH


__all__ = ["Settings", "get_settings", "get_fallback_sequence_width"]
