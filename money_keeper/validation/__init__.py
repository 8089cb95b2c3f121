"""Ledger consistency validation package."""

from money_keeper.validation.validator import LedgerValidator, ValidationIssue, ValidationResult

__all__ = ["LedgerValidator", "ValidationIssue", "ValidationResult"]
