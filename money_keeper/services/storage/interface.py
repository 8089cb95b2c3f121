"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the flat ledger file for another format later
2. Use in-memory storage for testing
3. Keep the registry decoupled from file handling

The interface is intentionally simple: load the whole ledger,
save the whole ledger.
"""

import threading
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from money_keeper.models.audit import AuditEvent
from money_keeper.models.transaction import Transaction


class SkippedRecord(BaseModel):
    """A line the loader could not use."""

    line_number: int = Field(..., ge=1)
    line: str
    reason: str


class LoadedLedger(BaseModel):
    """
    Result of decoding a ledger.

    `sections` keeps the file order of accounts and of the
    transactions inside each account.
    """

    sections: dict[str, list[Transaction]] = Field(default_factory=dict)
    skipped: list[SkippedRecord] = Field(default_factory=list)
    file_found: bool = True

    @property
    def high_water_mark(self) -> int:
        """Largest transaction id seen, 0 if none."""
        return max(
            (t.id for transactions in self.sections.values() for t in transactions),
            default=0,
        )

    @property
    def transaction_count(self) -> int:
        return sum(len(transactions) for transactions in self.sections.values())


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger persistence.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    def load(self, reference_currency: str) -> LoadedLedger:
        """
        Read the whole ledger.

        Malformed records are reported in `skipped`, never raised.
        A missing ledger is not an error: an empty result with
        `file_found=False` is returned.

        Raises:
            PersistenceError: If the ledger exists but cannot be read
        """
        pass

    @abstractmethod
    def save(self, sections: dict[str, list[Transaction]]) -> None:
        """
        Replace the stored ledger with `sections`.

        Raises:
            PersistenceError: If the ledger cannot be written
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Returns True if stored."""
        pass

    @abstractmethod
    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        """All events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit storage kept in process memory. Used by tests and the default app."""

    def __init__(self, max_events: Optional[int] = None):
        self._events: list[AuditEvent] = []
        self._max_events = max_events
        self._lock = threading.Lock()

    def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
            if self._max_events is not None and len(self._events) > self._max_events:
                del self._events[: len(self._events) - self._max_events]
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        with self._lock:
            return [e for e in self._events if e.correlation_id == correlation_id]

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        with self._lock:
            return list(reversed(self._events[-limit:])) if limit > 0 else []

    @property
    def events(self) -> list[AuditEvent]:
        with self._lock:
            return list(self._events)

