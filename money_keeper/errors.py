"""
Ledger Error Taxonomy

Every failure the ledger can report is one of these classes.
Each carries an ErrorKind so callers can branch on the kind
without importing every class.

DESIGN DECISION: Errors are raised at the point of failure and
never leave an object half-updated. Callers decide whether to
re-prompt, skip, or surface the error.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kinds of ledger failures."""
    VALIDATION = "validation"
    TAG_LIMIT_EXCEEDED = "tag_limit_exceeded"
    DUPLICATE_TAG = "duplicate_tag"
    DUPLICATE_NAME = "duplicate_name"
    DUPLICATE_ID = "duplicate_id"
    NOT_FOUND = "not_found"
    INVARIANT_VIOLATION = "invariant_violation"
    UNKNOWN_CURRENCY = "unknown_currency"
    RATES_UNAVAILABLE = "rates_unavailable"
    PERSISTENCE = "persistence"


class LedgerError(Exception):
    """Base exception for ledger operations."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class LedgerValidationError(LedgerError):
    """Bad amount, category, date, tag or name."""
    kind = ErrorKind.VALIDATION


class TagLimitExceededError(LedgerValidationError):
    """Transaction already holds the maximum number of tags."""
    kind = ErrorKind.TAG_LIMIT_EXCEEDED


class DuplicateTagError(LedgerValidationError):
    """Tag is already attached to the transaction."""
    kind = ErrorKind.DUPLICATE_TAG


class DuplicateNameError(LedgerError):
    """An account with this name already exists."""
    kind = ErrorKind.DUPLICATE_NAME


class DuplicateIdError(LedgerError):
    """A transaction with this id already exists."""
    kind = ErrorKind.DUPLICATE_ID

    def __init__(self, transaction_id: int, reason: Optional[str] = None):
        self.transaction_id = transaction_id
        super().__init__(reason or f"Transaction id {transaction_id} is already in use")


class NotFoundError(LedgerError):
    """Account or transaction not found."""
    kind = ErrorKind.NOT_FOUND


class InvariantViolationError(LedgerError):
    """Operation refused because it would break a registry invariant."""
    kind = ErrorKind.INVARIANT_VIOLATION


class UnknownCurrencyError(LedgerError):
    """Currency code is not present in the rate table."""
    kind = ErrorKind.UNKNOWN_CURRENCY

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Unknown currency: {code}")


class RatesUnavailableError(LedgerError):
    """The rate table is empty."""
    kind = ErrorKind.RATES_UNAVAILABLE

    def __init__(self, reason: str = "Exchange rates are not loaded"):
        super().__init__(reason)


class PersistenceError(LedgerError):
    """Ledger file could not be read or written, or a record is malformed."""
    kind = ErrorKind.PERSISTENCE

    def __init__(self, reason: str, line_number: Optional[int] = None):
        self.line_number = line_number
        super().__init__(reason)
