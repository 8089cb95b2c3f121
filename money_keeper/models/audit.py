"""
Audit Models for Money Keeper

Every change to the ledger is recorded as an audit event:
account lifecycle, transaction adds/removals, loads, saves,
skipped records and rate refreshes.

DESIGN DECISION: Audit events are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_SELECTED = "account_selected"
    ACCOUNT_RENAMED = "account_renamed"
    ACCOUNT_MERGED = "account_merged"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNT_OPERATION_REFUSED = "account_operation_refused"

    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_REMOVED = "transaction_removed"

    # Persistence
    LEDGER_LOADED = "ledger_loaded"
    LEDGER_SAVED = "ledger_saved"
    RECORD_SKIPPED = "record_skipped"

    # Balances
    BALANCES_RECALCULATED = "balances_recalculated"
    BALANCE_UNRECONCILED = "balance_unreconciled"

    # Currency
    BASE_CURRENCY_CHANGED = "base_currency_changed"
    RATES_REFRESHED = "rates_refreshed"
    RATES_REFRESH_FAILED = "rates_refresh_failed"
    RATES_CACHE_LOADED = "rates_cache_loaded"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about? Account names and transaction ids
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'ledger')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one load or refresh)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_created("Savings")
        event = AuditEventBuilder.transaction_added("Savings", 12, 100.0, "USD")
    """

    @staticmethod
    def account_created(name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=name,
            description=f"Account created: {name}",
        )

    @staticmethod
    def account_selected(name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_SELECTED,
            severity=AuditSeverity.DEBUG,
            entity_type="account",
            entity_id=name,
            description=f"Active account: {name}",
        )

    @staticmethod
    def account_renamed(old_name: str, new_name: str, old_kept: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_RENAMED,
            entity_type="account",
            entity_id=new_name,
            description=f"Account renamed: {old_name} -> {new_name}",
            details={
                "old_name": old_name,
                "new_name": new_name,
                "old_account_kept": old_kept,
            },
        )

    @staticmethod
    def account_merged(target: str, source: str, moved: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_MERGED,
            entity_type="account",
            entity_id=target,
            description=f"Merged {moved} transactions from {source} into {target}",
            details={
                "source": source,
                "transactions_moved": moved,
            },
        )

    @staticmethod
    def account_deleted(name: str, transactions_dropped: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            severity=(
                AuditSeverity.WARNING if transactions_dropped else AuditSeverity.INFO
            ),
            entity_type="account",
            entity_id=name,
            description=f"Account deleted: {name}",
            details={"transactions_dropped": transactions_dropped},
        )

    @staticmethod
    def account_operation_refused(name: str, operation: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_OPERATION_REFUSED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=name,
            description=f"Refused to {operation} account {name}",
            error_message=reason,
            details={"operation": operation},
        )

    @staticmethod
    def transaction_added(
        account: str,
        transaction_id: int,
        amount: float,
        currency: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            description=f"Transaction {transaction_id} added to {account}",
            details={
                "account": account,
                "amount": amount,
                "currency": currency,
            },
        )

    @staticmethod
    def transaction_removed(account: str, transaction_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REMOVED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            description=f"Transaction {transaction_id} removed from {account}",
            details={"account": account},
        )

    @staticmethod
    def ledger_loaded(
        path: str,
        accounts: int,
        transactions: int,
        skipped: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOADED,
            severity=AuditSeverity.WARNING if skipped else AuditSeverity.INFO,
            entity_type="ledger",
            entity_id=path,
            correlation_id=correlation_id,
            description=f"Loaded {transactions} transactions in {accounts} accounts",
            details={
                "accounts": accounts,
                "transactions": transactions,
                "records_skipped": skipped,
            },
        )

    @staticmethod
    def ledger_saved(path: str, accounts: int, transactions: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_SAVED,
            entity_type="ledger",
            entity_id=path,
            description=f"Saved {transactions} transactions in {accounts} accounts",
            details={
                "accounts": accounts,
                "transactions": transactions,
            },
        )

    @staticmethod
    def record_skipped(
        line_number: int,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="record",
            entity_id=str(line_number),
            correlation_id=correlation_id,
            description=f"Skipped malformed record on line {line_number}",
            error_message=reason,
        )

    @staticmethod
    def balances_recalculated(accounts: int, unreconciled: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_RECALCULATED,
            severity=AuditSeverity.WARNING if unreconciled else AuditSeverity.INFO,
            entity_type="ledger",
            description=f"Recalculated balances of {accounts} accounts",
            details={"unreconciled": unreconciled},
        )

    @staticmethod
    def balance_unreconciled(account: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UNRECONCILED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account,
            description=f"Balance of {account} could not be recomputed",
            error_message=reason,
        )

    @staticmethod
    def base_currency_changed(old: str, new: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BASE_CURRENCY_CHANGED,
            entity_type="ledger",
            description=f"Base currency changed: {old} -> {new}",
            details={"old": old, "new": new},
        )

    @staticmethod
    def rates_refreshed(currencies: int, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_REFRESHED,
            entity_type="rates",
            correlation_id=correlation_id,
            description=f"Exchange rates refreshed ({currencies} currencies)",
            details={"currencies": currencies},
        )

    @staticmethod
    def rates_refresh_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_REFRESH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="rates",
            correlation_id=correlation_id,
            description="Exchange rate refresh failed",
            error_message=error_message,
        )

    @staticmethod
    def rates_cache_loaded(
        path: str,
        loaded: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_CACHE_LOADED,
            severity=AuditSeverity.INFO if loaded else AuditSeverity.WARNING,
            entity_type="rates",
            entity_id=path,
            correlation_id=correlation_id,
            description=(
                "Loaded cached exchange rates" if loaded
                else "No usable cached exchange rates"
            ),
            details={"loaded": loaded},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
