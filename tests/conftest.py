"""Test configuration and fixtures.

Unit tests exercise the pure billing and numbering functions directly.
Integration tests get an in-memory SQLite database (aiosqlite driver, one
shared connection via StaticPool) with the settings table created fresh per
test, plus in-memory fakes for the machine store and commission sink.

Environment Variables:
    TESTING=true -> DatabaseConfig resolves to in-memory SQLite
"""
from __future__ import annotations

import os
from datetime import date
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("TESTING", "true")

from rental_billing.config.database import create_database_tables, create_session_factory  # noqa: E402
from rental_billing.config.settings import get_settings  # noqa: E402
from rental_billing.models.billing import CommissionRecord, RentalMachine  # noqa: E402

FIXED_TODAY = date(2025, 6, 1)


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached per process; tests that patch env need a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def today() -> date:
    return FIXED_TODAY


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_database_tables(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    factory = create_session_factory(engine)
    async with factory() as session:
        yield session
        await session.rollback()


class InMemoryMachineStore:
    def __init__(self):
        self.saved: List[RentalMachine] = []

    async def save_baseline(self, machine: RentalMachine) -> None:
        self.saved.append(machine)


class RecordingCommissionSink:
    def __init__(self):
        self.records: List[CommissionRecord] = []

    async def create_commission(self, record: CommissionRecord) -> None:
        self.records.append(record)


@pytest.fixture
def machine_store() -> InMemoryMachineStore:
    return InMemoryMachineStore()


@pytest.fixture
def commission_sink() -> RecordingCommissionSink:
    return RecordingCommissionSink()
