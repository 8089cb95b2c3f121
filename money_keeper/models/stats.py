"""
Statistics Result Models

Totals are sums of native amounts, the same way the reports have
always been computed. Mixed-currency ledgers get a converted view
from LedgerRegistry.total_balance_in_base_currency() instead.
"""

from typing import Optional

from pydantic import BaseModel, Field, computed_field


class Totals(BaseModel):
    """Income and expense sums for some slice of the ledger."""

    income: float = Field(default=0.0, ge=0)
    expenses: float = Field(default=0.0, ge=0)
    transaction_count: int = Field(default=0, ge=0)

    @computed_field
    @property
    def balance(self) -> float:
        return self.income - self.expenses

    def add(self, amount: float, is_income: bool) -> None:
        if is_income:
            self.income += amount
        else:
            self.expenses += amount
        self.transaction_count += 1


class CategoryTotals(Totals):
    category: str


class MonthTotals(Totals):
    year: int
    month: int = Field(ge=1, le=12)

    @computed_field
    @property
    def period(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class AccountStats(Totals):
    """Report for a single account; `current_balance` is the cached balance."""

    account_name: str
    current_balance: float
    first_date: Optional[str] = None
    last_date: Optional[str] = None
