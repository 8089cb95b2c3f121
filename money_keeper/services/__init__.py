"""Services package."""

from money_keeper.services.currency import (
    CbrRateSource,
    CurrencyTable,
    RateSource,
    RateSourceError,
)
from money_keeper.services.storage import (
    AuditStorageInterface,
    FlatFileLedgerStorage,
    InMemoryAuditStorage,
    LedgerStorageInterface,
    LoadedLedger,
    SkippedRecord,
)

__all__ = [
    # Currency services
    "CbrRateSource",
    "CurrencyTable",
    "RateSource",
    "RateSourceError",
    # Storage services
    "AuditStorageInterface",
    "FlatFileLedgerStorage",
    "InMemoryAuditStorage",
    "LedgerStorageInterface",
    "LoadedLedger",
    "SkippedRecord",
]
