"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements a flat text file as the backend, but designed to be swappable.
"""

from money_keeper.services.storage.interface import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    LedgerStorageInterface,
    LoadedLedger,
    SkippedRecord,
)
from money_keeper.services.storage.flat_file import FlatFileLedgerStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Load results
    "LoadedLedger",
    "SkippedRecord",
    # Implementations
    "FlatFileLedgerStorage",
    "InMemoryAuditStorage",
]
