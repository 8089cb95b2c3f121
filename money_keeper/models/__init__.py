"""
Data Models Package

This package contains the Pydantic models of the ledger.
Every transaction and account passes through these schemas.
"""

from money_keeper.models.calendar import CalendarDate
from money_keeper.models.transaction import (
    DEFAULT_CURRENCY,
    DEFAULT_DESCRIPTION,
    MAX_TAGS,
    IdGenerator,
    Transaction,
    TransactionType,
)
from money_keeper.models.account import Account
from money_keeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from money_keeper.models.stats import (
    AccountStats,
    CategoryTotals,
    MonthTotals,
    Totals,
)

__all__ = [
    # Ledger models
    "Account",
    "CalendarDate",
    "DEFAULT_CURRENCY",
    "DEFAULT_DESCRIPTION",
    "IdGenerator",
    "MAX_TAGS",
    "Transaction",
    "TransactionType",
    # Report models
    "AccountStats",
    "CategoryTotals",
    "MonthTotals",
    "Totals",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
