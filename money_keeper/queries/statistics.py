"""
Ledger Statistics

DESIGN DECISION: Reports are computed on the fly from the registry.
Nothing here is cached or persisted, so a report can never disagree
with the transactions it was computed from.
"""

from typing import Optional

from money_keeper.models.stats import AccountStats, CategoryTotals, MonthTotals, Totals
from money_keeper.models.transaction import Transaction
from money_keeper.registry import LedgerRegistry


class LedgerStatistics:
    """
    Read-only reports over a registry.

    GUARANTEES:
    - Only returns figures derived from stored transactions
    - Empty ledger gives zero totals, never an error
    """

    def __init__(self, registry: LedgerRegistry):
        self._registry = registry

    def _transactions(self) -> list[Transaction]:
        return self._registry.all_transactions()

    def total_balance(self) -> Totals:
        """Income, expenses and balance across every account."""
        totals = Totals()
        for t in self._transactions():
            totals.add(t.amount, t.is_income)
        return totals

    def by_category(self) -> list[CategoryTotals]:
        """Totals per category, sorted by category name."""
        groups: dict[str, CategoryTotals] = {}
        for t in self._transactions():
            if t.category not in groups:
                groups[t.category] = CategoryTotals(category=t.category)
            groups[t.category].add(t.amount, t.is_income)
        return [groups[name] for name in sorted(groups)]

    def by_month(self) -> list[MonthTotals]:
        """Totals per calendar month, oldest first."""
        groups: dict[tuple[int, int], MonthTotals] = {}
        for t in self._transactions():
            key = (t.date.year, t.date.month)
            if key not in groups:
                groups[key] = MonthTotals(year=key[0], month=key[1])
            groups[key].add(t.amount, t.is_income)
        return [groups[key] for key in sorted(groups)]

    def account_stats(self, name: Optional[str] = None) -> AccountStats:
        """
        Report for one account (the active one by default).

        Raises:
            NotFoundError: No account with that name
        """
        account = self._registry.get_account(name)
        stats = AccountStats(
            account_name=account.name,
            current_balance=account.balance,
        )
        for t in account.transactions:
            stats.add(t.amount, t.is_income)

        if account.transactions:
            dates = sorted(t.date for t in account.transactions)
            stats.first_date = dates[0].to_string()
            stats.last_date = dates[-1].to_string()
        return stats

    def transactions_by_date(self, newest_first: bool = True) -> list[Transaction]:
        """Every transaction in the ledger, ordered by date then id."""
        return sorted(
            self._transactions(),
            key=lambda t: (t.date, t.id),
            reverse=newest_first,
        )
