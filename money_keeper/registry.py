"""
Ledger Registry

The registry owns every account, the active-account pointer, the
transaction id generator and the currency table used for balances.

GUARANTEES:
- There is always at least one account
- The default account always exists
- The active account always refers to a live account
- No lifecycle operation silently drops or duplicates a transaction
  (deleting an account drops its transactions, explicitly and audited)

All mutations, and the balance recalculation triggered by a rate
refresh, run under one re-entrant lock.
"""

import threading
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import structlog

from money_keeper.audit import AuditLogger
from money_keeper.errors import (
    DuplicateIdError,
    DuplicateNameError,
    InvariantViolationError,
    LedgerError,
    LedgerValidationError,
    NotFoundError,
    UnknownCurrencyError,
)
from money_keeper.models.account import Account, validate_account_name
from money_keeper.models.audit import AuditEventBuilder
from money_keeper.models.calendar import CalendarDate
from money_keeper.models.transaction import IdGenerator, Transaction, TransactionType
from money_keeper.services.currency.table import CurrencyTable


logger = structlog.get_logger(__name__)

DEFAULT_ACCOUNT_NAME = "General"


class LedgerRegistry:
    """
    Registry of named accounts.

    Args:
        currency_table: Rate table for conversions. A new, empty table
            in the reference currency is created if omitted.
        default_account_name: Name of the guaranteed default account
        id_generator: Transaction id source; seeded by the loader
        audit_logger: Where lifecycle events are recorded
    """

    def __init__(
        self,
        currency_table: Optional[CurrencyTable] = None,
        default_account_name: str = DEFAULT_ACCOUNT_NAME,
        id_generator: Optional[IdGenerator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        try:
            self._default_name = validate_account_name(default_account_name)
        except ValueError as e:
            raise LedgerValidationError(str(e)) from e
        self._table = currency_table or CurrencyTable()
        self._ids = id_generator or IdGenerator()
        self._audit = audit_logger or AuditLogger()
        self._lock = threading.RLock()
        self._accounts: dict[str, Account] = {}
        self._active: Optional[str] = None
        self._base_currency = self._table.reference_currency

        self.ensure_default_account()
        self._table.subscribe(self._on_rates_changed)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def accounts(self) -> Mapping[str, Account]:
        """
        Read-only snapshot of the accounts, in creation order.

        Later creates, deletes and reloads do not show up in a view
        already handed out; read the property again for the current state.
        """
        with self._lock:
            return MappingProxyType(dict(self._accounts))

    @property
    def account_names(self) -> list[str]:
        with self._lock:
            return list(self._accounts)

    @property
    def active_account(self) -> Account:
        with self._lock:
            return self._accounts[self._active]

    @property
    def active_account_name(self) -> str:
        with self._lock:
            return self._active

    @property
    def default_account_name(self) -> str:
        return self._default_name

    @property
    def currency_table(self) -> CurrencyTable:
        return self._table

    @property
    def reference_currency(self) -> str:
        return self._table.reference_currency

    @property
    def base_currency(self) -> str:
        return self._base_currency

    @property
    def id_generator(self) -> IdGenerator:
        return self._ids

    def get_account(self, name: Optional[str] = None) -> Account:
        """
        The named account, or the active one when name is None.

        Raises:
            NotFoundError: No account with that name
        """
        with self._lock:
            if name is None:
                return self._accounts[self._active]
            try:
                return self._accounts[name]
            except KeyError:
                raise NotFoundError(f"Account not found: {name}") from None

    # =========================================================================
    # ACCOUNT LIFECYCLE
    # =========================================================================

    def ensure_default_account(self) -> None:
        """Create the default account if missing; repair a dangling active pointer."""
        with self._lock:
            if self._default_name not in self._accounts:
                self._accounts[self._default_name] = Account(name=self._default_name)
                logger.info("default_account_created", name=self._default_name)
            if self._active is None or self._active not in self._accounts:
                self._active = self._default_name

    def create_account(self, name: str) -> Account:
        """
        Add an empty account.

        Raises:
            LedgerValidationError: Invalid name
            DuplicateNameError: Name already taken
        """
        try:
            name = validate_account_name(name)
        except ValueError as e:
            raise LedgerValidationError(str(e)) from e

        with self._lock:
            if name in self._accounts:
                raise DuplicateNameError(f"Account already exists: {name}")
            account = Account(name=name)
            self._accounts[name] = account

        self._audit.log(AuditEventBuilder.account_created(name))
        return account

    def select_account(self, name: str) -> Account:
        """
        Make `name` the active account.

        Raises:
            NotFoundError: No account with that name
        """
        with self._lock:
            account = self.get_account(name)
            self._active = name

        self._audit.log(AuditEventBuilder.account_selected(name))
        return account

    def delete_account(self, name: str) -> Account:
        """
        Remove an account and its transactions.

        Returns the removed account.

        Raises:
            NotFoundError: No account with that name
            InvariantViolationError: It is the last account, or the
                default account
        """
        with self._lock:
            account = self.get_account(name)
            if len(self._accounts) <= 1:
                self._refuse(name, "delete", "last account")
            if name == self._default_name:
                self._refuse(name, "delete", "default account")
            if self._active == name:
                self._active = self._default_name
            del self._accounts[name]

        self._audit.log(AuditEventBuilder.account_deleted(name, len(account.transactions)))
        return account

    def rename_account(self, old_name: str, new_name: str) -> Account:
        """
        Move an account's transactions under a new name.

        The old account is removed, except for the default account,
        which stays behind empty.

        Raises:
            NotFoundError: `old_name` does not exist
            DuplicateNameError: `new_name` already exists
            LedgerValidationError: `new_name` is invalid
        """
        try:
            new_name = validate_account_name(new_name)
        except ValueError as e:
            raise LedgerValidationError(str(e)) from e

        with self._lock:
            old = self.get_account(old_name)
            if new_name in self._accounts:
                raise DuplicateNameError(f"Account already exists: {new_name}")

            renamed = Account(name=new_name)
            renamed.move_transactions_from(old)
            self._accounts[new_name] = renamed

            keep_old = old_name == self._default_name
            if not keep_old:
                del self._accounts[old_name]
            if self._active == old_name:
                self._active = new_name

        self._audit.log(AuditEventBuilder.account_renamed(old_name, new_name, keep_old))
        return renamed

    def merge_accounts(
        self,
        target_name: str,
        source_name: str,
        delete_source: bool = False,
    ) -> Account:
        """
        Move every transaction of `source_name` into `target_name`.

        The target balance is recomputed through the currency table.
        The source stays as an empty account unless `delete_source`.

        Raises:
            NotFoundError: Either account does not exist
            InvariantViolationError: Merging an account into itself
            UnknownCurrencyError, RatesUnavailableError: The merged balance
                cannot be computed; nothing is moved
        """
        with self._lock:
            target = self.get_account(target_name)
            source = self.get_account(source_name)
            if target is source:
                self._refuse(source_name, "merge", "cannot merge an account into itself")

            moved = len(source.transactions)
            target.merge(source, self._table)

            self._audit.log(AuditEventBuilder.account_merged(target_name, source_name, moved))

            if delete_source and source_name != self._default_name:
                self.delete_account(source_name)

        return target

    def _refuse(self, name: str, operation: str, reason: str) -> None:
        self._audit.log(AuditEventBuilder.account_operation_refused(name, operation, reason))
        raise InvariantViolationError(reason)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def new_transaction(
        self,
        amount: float,
        category: str,
        type: TransactionType = TransactionType.EXPENSE,
        date: Optional[CalendarDate] = None,
        description: str = "",
        currency: Optional[str] = None,
        tags: Iterable[str] = (),
    ) -> Transaction:
        """Build a validated transaction with the next ledger id."""
        return Transaction.create(
            self._ids,
            amount=amount,
            category=category,
            type=type,
            date=date,
            description=description,
            currency=currency,
            tags=tags,
            reference_currency=self.reference_currency,
        )

    def add_transaction(
        self,
        transaction: Transaction,
        account_name: Optional[str] = None,
    ) -> Account:
        """
        Add a transaction to the named (or active) account.

        Raises:
            NotFoundError: Account does not exist
            DuplicateIdError: Id already used anywhere in the ledger
            UnknownCurrencyError, RatesUnavailableError: Foreign currency
                that the rate table cannot convert
        """
        with self._lock:
            account = self.get_account(account_name)
            if self._find(transaction.id) is not None:
                raise DuplicateIdError(transaction.id)
            account.add_transaction(transaction, self._table)
            self._ids.observe(transaction.id)

        self._audit.log(AuditEventBuilder.transaction_added(
            account.name,
            transaction.id,
            transaction.amount,
            transaction.currency,
        ))
        return account

    def record(
        self,
        amount: float,
        category: str,
        type: TransactionType = TransactionType.EXPENSE,
        date: Optional[CalendarDate] = None,
        description: str = "",
        currency: Optional[str] = None,
        tags: Iterable[str] = (),
        account_name: Optional[str] = None,
    ) -> Transaction:
        """Create a transaction and add it in one step."""
        currency = (currency or self.reference_currency).strip().upper()
        self.get_account(account_name)
        self._check_convertible(currency)
        transaction = self.new_transaction(
            amount=amount,
            category=category,
            type=type,
            date=date,
            description=description,
            currency=currency,
            tags=tags,
        )
        self.add_transaction(transaction, account_name)
        return transaction

    def remove_transaction(
        self,
        transaction_id: int,
        account_name: Optional[str] = None,
    ) -> bool:
        """
        Remove a transaction from the named (or active) account.

        Returns False when it is not there. A transaction whose currency
        has dropped out of the rate table is still removed; if the
        account balance then cannot be recomputed it is audited as
        unreconciled.
        """
        unreconciled = None
        with self._lock:
            account = self.get_account(account_name)
            try:
                removed = account.remove_transaction(transaction_id, self._table)
            except LedgerError as e:
                removed = True
                unreconciled = e.reason

        if removed:
            self._audit.log(AuditEventBuilder.transaction_removed(account.name, transaction_id))
        if unreconciled is not None:
            logger.warning("balance_unreconciled", account=account.name, reason=unreconciled)
            self._audit.log(AuditEventBuilder.balance_unreconciled(account.name, unreconciled))
        return removed

    def find_transaction(self, transaction_id: int) -> Optional[tuple[str, Transaction]]:
        """Locate a transaction anywhere in the ledger."""
        with self._lock:
            return self._find(transaction_id)

    def _find(self, transaction_id: int) -> Optional[tuple[str, Transaction]]:
        for name, account in self._accounts.items():
            transaction = account.get_transaction(transaction_id)
            if transaction is not None:
                return name, transaction
        return None

    def all_transactions(self) -> list[Transaction]:
        with self._lock:
            return [t for account in self._accounts.values() for t in account.transactions]

    def _check_convertible(self, currency: str) -> None:
        if currency == self.reference_currency:
            return
        if not self._table.is_supported(currency):
            # Surfaces RatesUnavailableError on an empty table
            self._table.rate(currency)

    # =========================================================================
    # CURRENCY
    # =========================================================================

    def set_base_currency(self, code: str) -> None:
        """
        Change the currency balances are reported in.

        Raises:
            UnknownCurrencyError: The rate table does not know `code`
        """
        code = code.strip().upper()
        if code != self.reference_currency and not self._table.is_supported(code):
            raise UnknownCurrencyError(code)
        old = self._base_currency
        self._base_currency = code
        if old != code:
            self._audit.log(AuditEventBuilder.base_currency_changed(old, code))

    def balance_in_base_currency(self, name: Optional[str] = None) -> float:
        """Balance of an account (active by default) in the base currency."""
        with self._lock:
            account = self.get_account(name)
            return account.balance_in_currency(self._table, self._base_currency)

    def total_balance_in_base_currency(self) -> float:
        with self._lock:
            return sum(
                (a.balance_in_currency(self._table, self._base_currency)
                 for a in self._accounts.values()),
                0.0,
            )

    # =========================================================================
    # CONSISTENCY
    # =========================================================================

    def recalculate_all(self) -> list[str]:
        """
        Recompute every balance from its transactions.

        Returns the names of accounts that could not be recomputed
        (missing rates); their cached balance is left as it was.
        """
        unreconciled = []
        with self._lock:
            for name, account in self._accounts.items():
                try:
                    account.recalculate_balance(self._table)
                except LedgerError as e:
                    unreconciled.append(name)
                    self._audit.log(AuditEventBuilder.balance_unreconciled(name, e.reason))
            count = len(self._accounts)

        self._audit.log(AuditEventBuilder.balances_recalculated(count, unreconciled))
        return unreconciled

    def validate_all(self) -> dict[str, bool]:
        """
        Check every cached balance against a recomputation.

        Accounts whose balance cannot be recomputed report False.
        """
        results = {}
        with self._lock:
            for name, account in self._accounts.items():
                try:
                    results[name] = account.validate(self._table)
                except LedgerError:
                    results[name] = False
        return results

    def _on_rates_changed(self) -> None:
        self.recalculate_all()

    # =========================================================================
    # BULK REPLACEMENT (loader)
    # =========================================================================

    def snapshot(self) -> dict[str, list[Transaction]]:
        """Accounts and their transactions, as the storage layer saves them."""
        with self._lock:
            return {
                name: list(account.transactions)
                for name, account in self._accounts.items()
            }

    def replace_contents(
        self,
        sections: Mapping[str, list[Transaction]],
        high_water_mark: Optional[int] = None,
    ) -> list[str]:
        """
        Replace every account with freshly loaded data.

        Resets the id generator past the highest id, makes sure the
        default account exists, and recomputes all balances.
        Returns the accounts whose balance could not be recomputed.

        Raises:
            DuplicateIdError: The same id appears twice; nothing is replaced
        """
        accounts: dict[str, Account] = {}
        seen: set[int] = set()
        for name, transactions in sections.items():
            account = Account(name=name)
            for transaction in transactions:
                if transaction.id in seen:
                    raise DuplicateIdError(transaction.id)
                seen.add(transaction.id)
                account.add_transaction(transaction, check_duplicates=False)
            accounts[name] = account
        highest = max(seen, default=0)

        if high_water_mark is not None:
            highest = max(highest, high_water_mark)

        with self._lock:
            previous_active = self._active
            self._accounts = accounts
            self._active = previous_active if previous_active in accounts else None
            self._ids.reset_after(highest)
            self.ensure_default_account()
            return self.recalculate_all()
