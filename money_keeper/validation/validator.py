"""
Ledger Consistency Validation

Runs after a load (or on demand) and reports anything that breaks
the ledger's invariants:

- Cached balance drifting from a recomputation
- The same transaction id in two places
- Transactions in a currency the rate table does not know
- A missing default account

IMPORTANT: Validation NEVER fixes anything.
Balances are only corrected by an explicit recalculation.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from money_keeper.errors import LedgerError
from money_keeper.models.account import BALANCE_TOLERANCE
from money_keeper.registry import LedgerRegistry


class ValidationIssue(BaseModel):
    """A single problem found in the ledger."""

    field: str = Field(
        ...,
        description="Where the issue is (account name, 'ledger', ...)"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'balance_drift', 'duplicate_id')"
    )
    message: str
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of a ledger consistency check."""

    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    is_valid: bool
    accounts_checked: int = Field(ge=0)
    transactions_checked: int = Field(ge=0)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


class LedgerValidator:
    """Checks a registry against its invariants."""

    def __init__(self, tolerance: float = BALANCE_TOLERANCE):
        self._tolerance = tolerance

    def _check_balances(self, registry: LedgerRegistry) -> list[ValidationIssue]:
        issues = []
        table = registry.currency_table
        for name, account in registry.accounts.items():
            try:
                expected = account.calculate_balance(table)
            except LedgerError as e:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="balance_unverifiable",
                    message=f"Balance of '{name}' cannot be recomputed: {e.reason}",
                    severity="warning",
                    suggested_fix="Refresh exchange rates",
                ))
                continue

            drift = abs(expected - account.balance)
            if drift >= self._tolerance:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="balance_drift",
                    message=(
                        f"Balance of '{name}' is {account.balance:.2f}, "
                        f"transactions add up to {expected:.2f}"
                    ),
                    severity="error",
                    suggested_fix="Recalculate balances",
                ))
        return issues

    def _check_duplicate_ids(self, registry: LedgerRegistry) -> list[ValidationIssue]:
        counts = Counter(t.id for t in registry.all_transactions())
        return [
            ValidationIssue(
                field="ledger",
                issue_type="duplicate_id",
                message=f"Transaction id {transaction_id} appears {count} times",
                severity="error",
            )
            for transaction_id, count in sorted(counts.items())
            if count > 1
        ]

    def _check_currencies(self, registry: LedgerRegistry) -> list[ValidationIssue]:
        table = registry.currency_table
        reference = registry.reference_currency
        unknown = sorted({
            t.currency for t in registry.all_transactions()
            if t.currency != reference and not table.is_supported(t.currency)
        })
        return [
            ValidationIssue(
                field="ledger",
                issue_type="unknown_currency",
                message=f"No exchange rate for {code}",
                severity="warning",
                suggested_fix="Refresh exchange rates",
            )
            for code in unknown
        ]

    def _check_default_account(self, registry: LedgerRegistry) -> list[ValidationIssue]:
        if registry.default_account_name in registry.accounts:
            return []
        return [ValidationIssue(
            field=registry.default_account_name,
            issue_type="missing_default_account",
            message=f"Default account '{registry.default_account_name}' is missing",
            severity="error",
            suggested_fix="Call ensure_default_account()",
        )]

    def validate(self, registry: LedgerRegistry) -> ValidationResult:
        issues = []
        issues.extend(self._check_default_account(registry))
        issues.extend(self._check_duplicate_ids(registry))
        issues.extend(self._check_balances(registry))
        issues.extend(self._check_currencies(registry))

        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            accounts_checked=len(registry.accounts),
            transactions_checked=len(registry.all_transactions()),
            issues=issues,
        )

    def get_summary(self, result: ValidationResult) -> str:
        """Plain-text summary of a validation result."""
        if not result.issues:
            return (
                f"All checks passed ({result.accounts_checked} accounts, "
                f"{result.transactions_checked} transactions)."
            )
        lines = []
        for issue in result.issues:
            lines.append(f"[{issue.severity}] {issue.message}")
            if issue.suggested_fix:
                lines.append(f"    -> {issue.suggested_fix}")
        return "\n".join(lines)
