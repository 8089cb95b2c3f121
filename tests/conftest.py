"""Shared fixtures for Money Keeper tests."""

from typing import Optional

import pytest

from money_keeper.audit import AuditLogger
from money_keeper.models.transaction import IdGenerator
from money_keeper.registry import LedgerRegistry
from money_keeper.services.currency import CurrencyTable, RateSource, RateSourceError
from money_keeper.services.storage import InMemoryAuditStorage


class StubRateSource(RateSource):
    """Returns a fixed table, or raises, without touching the network."""

    def __init__(self, rates: Optional[dict] = None, error: Optional[Exception] = None):
        self.rates = rates
        self.error = error
        self.calls = 0
        self.closed = False

    async def fetch(self) -> dict[str, float]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.rates)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def rates() -> dict[str, float]:
    return {"RUB": 1.0, "USD": 90.0, "EUR": 100.0}


@pytest.fixture
def table(rates) -> CurrencyTable:
    return CurrencyTable(rates)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def registry(table, audit_storage) -> LedgerRegistry:
    return LedgerRegistry(
        currency_table=table,
        id_generator=IdGenerator(),
        audit_logger=AuditLogger(audit_storage),
    )


@pytest.fixture
def stub_source(rates) -> StubRateSource:
    return StubRateSource(rates=rates)


@pytest.fixture
def failing_source() -> StubRateSource:
    return StubRateSource(error=RateSourceError("feed down"))


@pytest.fixture
def source_factory():
    """Build a StubRateSource with custom rates or error."""
    return StubRateSource
