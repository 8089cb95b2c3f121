"""
Account Model

An account owns an ordered list of transactions and caches its
balance in the reference currency.

The balance is a derived value:

    balance == sum(t.signed_amount_in_reference_currency(table) for t in transactions)

add_transaction/remove_transaction keep it up to date incrementally.
recalculate_balance() is the source of truth and must be called after
bulk loads, merges and rate refreshes.
"""

from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from money_keeper.errors import DuplicateIdError, LedgerError
from money_keeper.models.transaction import Transaction, TransactionType

if TYPE_CHECKING:
    from money_keeper.services.currency.table import CurrencyTable


BALANCE_TOLERANCE = 0.01


def validate_account_name(name: str) -> str:
    """Account names end up in `[Account:<name>]` headers."""
    name = name.strip()
    if not name:
        raise ValueError("Account name cannot be empty")
    if any(c in name for c in "[]\n\r"):
        raise ValueError("Account name cannot contain '[', ']' or line breaks")
    return name


class Account(BaseModel):
    """A named collection of transactions with a cached balance."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    balance: float = Field(default=0.0, description="Cached balance in the reference currency")
    transactions: list[Transaction] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_account_name(v)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @staticmethod
    def _contribution(transaction: Transaction, table: Optional["CurrencyTable"]) -> float:
        if table is None:
            return transaction.signed_amount
        return transaction.signed_amount_in_reference_currency(table)

    def add_transaction(
        self,
        transaction: Transaction,
        table: Optional["CurrencyTable"] = None,
        check_duplicates: bool = True,
    ) -> None:
        """
        Append a transaction and update the balance.

        Without a table the native signed amount is added; that is only
        exact when every transaction is in the reference currency.

        Raises:
            DuplicateIdError: Id already present (when check_duplicates)
            UnknownCurrencyError, RatesUnavailableError: Conversion failed;
                the account is left unchanged.
        """
        if check_duplicates and self.get_transaction(transaction.id) is not None:
            raise DuplicateIdError(transaction.id)
        contribution = self._contribution(transaction, table)
        self.transactions.append(transaction)
        self.balance += contribution

    def remove_transaction(
        self,
        transaction_id: int,
        table: Optional["CurrencyTable"] = None,
    ) -> bool:
        """
        Remove a transaction by id. Returns False if it is not here.

        The transaction is removed even when its currency can no longer
        be converted; the balance is then recomputed from what is left.

        Raises:
            UnknownCurrencyError, RatesUnavailableError: The transaction
                was removed but the remaining balance cannot be recomputed;
                the cached balance is left as it was.
        """
        for index, transaction in enumerate(self.transactions):
            if transaction.id == transaction_id:
                try:
                    contribution = self._contribution(transaction, table)
                except LedgerError:
                    contribution = None
                del self.transactions[index]
                if contribution is None:
                    self.recalculate_balance(table)
                else:
                    self.balance -= contribution
                return True
        return False

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    def filter_by_type(self, type: TransactionType) -> list[Transaction]:
        """Copies of the transactions of one type, in history order."""
        return [t.model_copy(deep=True) for t in self.transactions if t.type == type]

    # =========================================================================
    # BALANCE
    # =========================================================================

    def calculate_balance(self, table: "CurrencyTable") -> float:
        return sum(
            (t.signed_amount_in_reference_currency(table) for t in self.transactions),
            0.0,
        )

    def recalculate_balance(self, table: "CurrencyTable") -> float:
        """Recompute the balance from scratch. Returns the new balance."""
        self.balance = self.calculate_balance(table)
        return self.balance

    def validate(self, table: "CurrencyTable") -> bool:
        """True if the cached balance is within tolerance of a recomputation."""
        return abs(self.calculate_balance(table) - self.balance) < BALANCE_TOLERANCE

    def balance_in_currency(self, table: "CurrencyTable", currency: str) -> float:
        """Convert each transaction into `currency` separately, then sum."""
        total = 0.0
        for t in self.transactions:
            value = table.convert(t.amount, t.currency, currency)
            total += value if t.is_income else -value
        return total

    def income_total(self) -> float:
        return sum((t.amount for t in self.transactions if t.is_income), 0.0)

    def expense_total(self) -> float:
        return sum((t.amount for t in self.transactions if not t.is_income), 0.0)

    # =========================================================================
    # BULK MOVES
    # =========================================================================

    def move_transactions_from(self, other: "Account") -> None:
        """
        Take over all of `other`'s transactions and its balance.

        `other` is left empty with a zero balance.
        """
        if other is self:
            return
        self.transactions.extend(other.transactions)
        self.balance += other.balance
        other.transactions = []
        other.balance = 0.0

    def merge(self, other: "Account", table: "CurrencyTable") -> None:
        """Append `other`'s transactions and recompute this balance."""
        if other is self:
            return
        combined = self.transactions + other.transactions
        # Conversion may fail; compute before moving anything
        new_balance = sum(
            (t.signed_amount_in_reference_currency(table) for t in combined),
            0.0,
        )
        self.transactions = combined
        self.balance = new_balance
        other.transactions = []
        other.balance = 0.0
