"""
Tests for ledger statistics and consistency validation.
"""

import pytest

from money_keeper.errors import NotFoundError
from money_keeper.models.calendar import CalendarDate
from money_keeper.models.transaction import Transaction, TransactionType
from money_keeper.queries import LedgerStatistics
from money_keeper.registry import DEFAULT_ACCOUNT_NAME
from money_keeper.validation import LedgerValidator


@pytest.fixture
def populated(registry):
    registry.create_account("Card")
    registry.record(1000, "Salary", type=TransactionType.INCOME, date=CalendarDate.of(2024, 4, 30))
    registry.record(200, "Food", date=CalendarDate.of(2024, 5, 2))
    registry.record(50, "Food", date=CalendarDate.of(2024, 5, 20), account_name="Card")
    registry.record(10, "Bonus", type=TransactionType.INCOME,
                    date=CalendarDate.of(2024, 5, 21), currency="USD", account_name="Card")
    return registry


class TestLedgerStatistics:
    """Tests for LedgerStatistics reports."""

    def test_empty_ledger(self, registry):
        totals = LedgerStatistics(registry).total_balance()
        assert (totals.income, totals.expenses, totals.balance) == (0, 0, 0)
        assert LedgerStatistics(registry).by_category() == []

    def test_total_balance_uses_native_amounts(self, populated):
        totals = LedgerStatistics(populated).total_balance()
        assert totals.income == 1010
        assert totals.expenses == 250
        assert totals.balance == 760
        assert totals.transaction_count == 4

    def test_by_category_sorted(self, populated):
        categories = LedgerStatistics(populated).by_category()
        assert [c.category for c in categories] == ["Bonus", "Food", "Salary"]
        food = categories[1]
        assert (food.income, food.expenses, food.balance) == (0, 250, -250)

    def test_by_month(self, populated):
        months = LedgerStatistics(populated).by_month()
        assert [m.period for m in months] == ["2024-04", "2024-05"]
        assert months[0].income == 1000
        assert months[1].expenses == 250

    def test_account_stats_defaults_to_active(self, populated):
        stats = LedgerStatistics(populated).account_stats()
        assert stats.account_name == DEFAULT_ACCOUNT_NAME
        assert stats.transaction_count == 2
        assert stats.current_balance == 800
        assert (stats.first_date, stats.last_date) == ("2024-04-30", "2024-05-02")

    def test_account_stats_converted_balance(self, populated):
        stats = LedgerStatistics(populated).account_stats("Card")
        assert stats.current_balance == pytest.approx(850)

    def test_account_stats_unknown(self, populated):
        with pytest.raises(NotFoundError):
            LedgerStatistics(populated).account_stats("Nope")

    def test_transactions_by_date(self, populated):
        ordered = LedgerStatistics(populated).transactions_by_date()
        assert [t.date.day for t in ordered] == [21, 20, 2, 30]

    def test_report_serializes_balance(self, populated):
        dumped = LedgerStatistics(populated).total_balance().model_dump()
        assert dumped["balance"] == 760


class TestLedgerValidator:
    """Tests for LedgerValidator checks."""

    def test_clean_ledger(self, populated):
        result = LedgerValidator().validate(populated)
        assert result.is_valid
        assert result.issues == []
        assert result.accounts_checked == 2
        assert result.transactions_checked == 4
        assert "All checks passed" in LedgerValidator().get_summary(result)

    def test_balance_drift_is_error(self, populated):
        populated.get_account("Card").balance += 5
        result = LedgerValidator().validate(populated)
        assert not result.is_valid
        assert [i.issue_type for i in result.issues] == ["balance_drift"]
        assert result.error_count == 1

    def test_drift_within_tolerance(self, populated):
        populated.get_account("Card").balance += 0.001
        assert LedgerValidator().validate(populated).is_valid

    def test_duplicate_ids_reported(self, populated):
        existing = populated.get_account(DEFAULT_ACCOUNT_NAME).transactions[0]
        clone = Transaction.restore(
            id=existing.id, amount=1, category="X", type=TransactionType.INCOME,
            date=CalendarDate.of(2024, 1, 1), currency="RUB",
        )
        # Bypass the registry's own duplicate check
        populated.get_account("Card").add_transaction(clone, check_duplicates=False)
        result = LedgerValidator().validate(populated)
        assert "duplicate_id" in [i.issue_type for i in result.issues]
        assert not result.is_valid

    def test_missing_rate_is_warning(self, populated, table):
        table.set_rates({"RUB": 1.0, "EUR": 100.0})
        result = LedgerValidator().validate(populated)
        types = [i.issue_type for i in result.issues]
        assert "unknown_currency" in types
        assert "balance_unverifiable" in types
        assert result.is_valid
        assert result.warnings
