"""
Tests for Money Keeper models

Test strategy:
1. Unit tests for individual components (dates, transactions, accounts)
2. Integration tests for flows (with stub rate sources and tmp files)
3. No real network calls in tests
"""

import math
from datetime import date

import pytest

from money_keeper.errors import (
    DuplicateIdError,
    DuplicateTagError,
    ErrorKind,
    LedgerValidationError,
    RatesUnavailableError,
    TagLimitExceededError,
    UnknownCurrencyError,
)
from money_keeper.models.account import Account
from money_keeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from money_keeper.models.calendar import CalendarDate, days_in_month, is_leap_year
from money_keeper.models.transaction import (
    DEFAULT_DESCRIPTION,
    MAX_TAGS,
    IdGenerator,
    Transaction,
    TransactionType,
)
from money_keeper.services.currency import CurrencyTable


def make(ids, amount, category="Food", type=TransactionType.EXPENSE, currency="RUB",
         date=None, **kwargs):
    return Transaction.create(
        ids,
        amount=amount,
        category=category,
        type=type,
        currency=currency,
        date=date or CalendarDate.of(2024, 5, 1),
        **kwargs,
    )


class TestCalendarDate:
    """Tests for the CalendarDate model."""

    def test_leap_years(self):
        assert is_leap_year(2024)
        assert is_leap_year(2000)
        assert not is_leap_year(2100)
        assert not is_leap_year(2023)

    def test_days_in_february(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(2023, 2) == 28

    def test_valid_leap_day(self):
        d = CalendarDate.of(2024, 2, 29)
        assert d.to_string() == "2024-02-29"

    def test_rejects_feb_29_on_common_year(self):
        with pytest.raises(LedgerValidationError):
            CalendarDate.of(2023, 2, 29)

    def test_rejects_year_out_of_range(self):
        with pytest.raises(LedgerValidationError):
            CalendarDate.of(1999, 12, 31)
        with pytest.raises(LedgerValidationError):
            CalendarDate.of(2101, 1, 1)

    def test_rejects_month_out_of_range(self):
        with pytest.raises(LedgerValidationError):
            CalendarDate.of(2024, 13, 1)

    def test_from_string(self):
        assert CalendarDate.from_string("2024-03-05") == CalendarDate.of(2024, 3, 5)

    def test_from_string_rejects_garbage(self):
        with pytest.raises(LedgerValidationError):
            CalendarDate.from_string("05.03.2024")
        with pytest.raises(LedgerValidationError):
            CalendarDate.from_string("2024-xx-05")

    def test_record_form(self):
        d = CalendarDate.of(2024, 3, 5)
        assert d.to_record() == "2024 3 5"
        assert CalendarDate.from_record("2024 3 5") == d

    def test_ordering(self):
        earlier = CalendarDate.of(2023, 12, 31)
        later = CalendarDate.of(2024, 1, 1)
        assert earlier < later
        assert later > earlier
        assert earlier <= CalendarDate.of(2023, 12, 31)
        assert sorted([later, earlier]) == [earlier, later]

    def test_equal_dates_hash_equal(self):
        assert hash(CalendarDate.of(2024, 1, 1)) == hash(CalendarDate.of(2024, 1, 1))

    def test_setter_rejects_invalid_and_keeps_value(self):
        d = CalendarDate.of(2024, 2, 10)
        with pytest.raises(LedgerValidationError):
            d.set_day(30)
        assert d.day == 10

    def test_setter_accepts_valid(self):
        d = CalendarDate.of(2024, 1, 31)
        d.set_year(2025)
        assert d == CalendarDate.of(2025, 1, 31)

    def test_today_matches_system_date(self):
        assert CalendarDate.today().to_date() == date.today()


class TestIdGenerator:
    """Tests for transaction id generation."""

    def test_ids_increase(self):
        ids = IdGenerator()
        assert [ids.next_id() for _ in range(3)] == [1, 2, 3]

    def test_peek_does_not_consume(self):
        ids = IdGenerator()
        assert ids.peek() == 1
        assert ids.next_id() == 1

    def test_reset_after_high_water_mark(self):
        ids = IdGenerator()
        ids.reset_after(41)
        assert ids.next_id() == 42

    def test_observe_only_moves_forward(self):
        ids = IdGenerator(start=10)
        ids.observe(3)
        assert ids.peek() == 10
        ids.observe(15)
        assert ids.peek() == 16


class TestTransaction:
    """Tests for the Transaction model."""

    def test_create_assigns_next_id(self):
        ids = IdGenerator()
        first = make(ids, 100)
        second = make(ids, 50)
        assert (first.id, second.id) == (1, 2)

    def test_invalid_amount_consumes_no_id(self):
        ids = IdGenerator()
        with pytest.raises(LedgerValidationError):
            make(ids, 0)
        with pytest.raises(LedgerValidationError):
            make(ids, -5)
        assert ids.peek() == 1

    def test_rejects_non_finite_amount(self):
        with pytest.raises(LedgerValidationError):
            make(IdGenerator(), math.nan)
        with pytest.raises(LedgerValidationError):
            make(IdGenerator(), math.inf)

    def test_rejects_empty_category(self):
        with pytest.raises(LedgerValidationError):
            make(IdGenerator(), 10, category="   ")

    def test_rejects_comma_in_category(self):
        with pytest.raises(LedgerValidationError):
            make(IdGenerator(), 10, category="Food,Drinks")

    def test_currency_is_normalized(self):
        t = make(IdGenerator(), 10, currency=" usd ")
        assert t.currency == "USD"

    def test_rejects_bad_currency_code(self):
        with pytest.raises(LedgerValidationError):
            make(IdGenerator(), 10, currency="DOLLARS")

    def test_empty_description_gets_placeholder(self):
        t = make(IdGenerator(), 10, description="")
        assert t.description == DEFAULT_DESCRIPTION

    def test_description_may_contain_commas(self):
        t = make(IdGenerator(), 10, description="Bread, milk")
        assert t.description == "Bread, milk"

    def test_failed_setter_leaves_amount(self):
        t = make(IdGenerator(), 10)
        with pytest.raises(LedgerValidationError):
            t.set_amount(-1)
        assert t.amount == 10

    def test_setters(self):
        t = make(IdGenerator(), 10)
        t.set_amount(25)
        t.set_category("Rent")
        t.set_type(TransactionType.INCOME)
        t.set_date(CalendarDate.of(2024, 6, 1))
        assert (t.amount, t.category, t.is_income) == (25, "Rent", True)
        assert t.date == CalendarDate.of(2024, 6, 1)

    def test_signed_amount(self):
        ids = IdGenerator()
        assert make(ids, 10, type=TransactionType.INCOME).signed_amount == 10
        assert make(ids, 10, type=TransactionType.EXPENSE).signed_amount == -10

    def test_type_codes(self):
        assert TransactionType.INCOME.code == 0
        assert TransactionType.from_code(1) is TransactionType.EXPENSE
        with pytest.raises(LedgerValidationError):
            TransactionType.from_code(2)


class TestTransactionTags:
    """Tests for tag handling."""

    def test_add_up_to_limit(self):
        t = make(IdGenerator(), 10)
        for i in range(MAX_TAGS):
            t.add_tag(f"tag{i}")
        assert len(t.tags) == MAX_TAGS

    def test_sixth_tag_rejected(self):
        t = make(IdGenerator(), 10, tags=[f"tag{i}" for i in range(MAX_TAGS)])
        with pytest.raises(TagLimitExceededError) as exc_info:
            t.add_tag("one-more")
        assert exc_info.value.kind == ErrorKind.TAG_LIMIT_EXCEEDED
        assert len(t.tags) == MAX_TAGS

    def test_too_many_tags_at_creation(self):
        with pytest.raises(LedgerValidationError):
            make(IdGenerator(), 10, tags=[f"tag{i}" for i in range(MAX_TAGS + 1)])

    def test_duplicate_tag_rejected(self):
        t = make(IdGenerator(), 10, tags=["home"])
        with pytest.raises(DuplicateTagError):
            t.add_tag("home")

    def test_reserved_characters_rejected(self):
        t = make(IdGenerator(), 10)
        for bad in ("a;b", "a,b", "-", ""):
            with pytest.raises(LedgerValidationError):
                t.add_tag(bad)
        assert t.tags == []

    def test_has_tag(self):
        t = make(IdGenerator(), 10, tags=["home"])
        assert t.has_tag(" home ")
        assert not t.has_tag("work")

    def test_remove_tag_out_of_range_is_ignored(self):
        t = make(IdGenerator(), 10, tags=["a", "b"])
        assert t.remove_tag(5) is False
        assert t.remove_tag(0) is True
        assert t.tags == ["b"]


class TestTransactionConversion:
    """Tests for reference currency conversion."""

    def test_converts_foreign_amount(self, table):
        t = make(IdGenerator(), 100, currency="USD")
        assert t.amount_in_reference_currency(table) == 9000

    def test_reference_currency_needs_no_rates(self):
        t = make(IdGenerator(), 100)
        assert t.amount_in_reference_currency(CurrencyTable()) == 100

    def test_empty_table_fails_for_foreign_currency(self):
        t = make(IdGenerator(), 100, currency="USD")
        with pytest.raises(RatesUnavailableError):
            t.amount_in_reference_currency(CurrencyTable())

    def test_unknown_currency(self, table):
        t = make(IdGenerator(), 100, currency="JPY")
        with pytest.raises(UnknownCurrencyError):
            t.signed_amount_in_reference_currency(table)

    def test_summary(self):
        t = make(IdGenerator(), 12.5, type=TransactionType.INCOME, description="Gift")
        summary = t.summary()
        assert "2024-05-01" in summary
        assert "[+]" in summary
        assert "12.50 RUB" in summary
        assert "Gift" in summary


class TestAccount:
    """Tests for the Account model and its balance invariant."""

    def test_balance_follows_transactions(self, table):
        ids = IdGenerator()
        account = Account(name="Cash")
        account.add_transaction(make(ids, 100, type=TransactionType.INCOME), table)
        account.add_transaction(make(ids, 30), table)
        assert account.balance == 70
        assert account.validate(table)

    @pytest.mark.parametrize("steps", [
        [("add", 100, "RUB", TransactionType.INCOME), ("add", 3.3, "USD", TransactionType.EXPENSE),
         ("add", 0.7, "EUR", TransactionType.INCOME), ("remove", 1)],
        [("add", 0.1, "USD", TransactionType.EXPENSE), ("add", 0.2, "EUR", TransactionType.EXPENSE),
         ("remove", 0), ("add", 1234.56, "RUB", TransactionType.INCOME), ("remove", 0),
         ("add", 9.99, "USD", TransactionType.INCOME)],
        [("add", 7, "EUR", TransactionType.INCOME), ("remove", 0),
         ("add", 7, "EUR", TransactionType.INCOME), ("add", 0.01, "RUB", TransactionType.EXPENSE),
         ("add", 333.33, "USD", TransactionType.EXPENSE), ("remove", 2), ("remove", 0)],
    ])
    def test_balance_matches_recalculation_after_every_step(self, table, steps):
        ids = IdGenerator()
        account = Account(name="Cash")
        for step in steps:
            if step[0] == "add":
                _, amount, currency, type = step
                account.add_transaction(make(ids, amount, type=type, currency=currency), table)
            else:
                account.remove_transaction(account.transactions[step[1]].id, table)
            assert account.validate(table)
        assert account.balance == pytest.approx(account.calculate_balance(table))

    def test_foreign_transaction_converted(self, table):
        account = Account(name="Cash")
        account.add_transaction(make(IdGenerator(), 10, currency="USD"), table)
        assert account.balance == -900

    def test_duplicate_id_rejected(self, table):
        t = make(IdGenerator(), 10)
        account = Account(name="Cash")
        account.add_transaction(t, table)
        with pytest.raises(DuplicateIdError):
            account.add_transaction(t, table)
        assert len(account.transactions) == 1

    def test_failed_conversion_leaves_account_unchanged(self, table):
        account = Account(name="Cash")
        with pytest.raises(UnknownCurrencyError):
            account.add_transaction(make(IdGenerator(), 10, currency="JPY"), table)
        assert account.transactions == []
        assert account.balance == 0

    def test_remove_is_idempotent(self, table):
        t = make(IdGenerator(), 40)
        account = Account(name="Cash")
        account.add_transaction(t, table)
        assert account.remove_transaction(t.id, table) is True
        assert account.remove_transaction(t.id, table) is False
        assert account.balance == 0

    def test_remove_unconvertible_transaction(self, table):
        ids = IdGenerator()
        account = Account(name="Cash")
        keep = make(ids, 50)
        stale = make(ids, 10, currency="USD")
        account.add_transaction(keep, table)
        account.add_transaction(stale, table)

        narrowed = CurrencyTable({"RUB": 1.0, "EUR": 100.0})
        assert account.remove_transaction(stale.id, narrowed) is True
        assert [t.id for t in account.transactions] == [keep.id]
        assert account.balance == -50

    def test_remove_missing_id(self, table):
        account = Account(name="Cash")
        assert account.remove_transaction(99, table) is False

    def test_recalculate_repairs_drift(self, table):
        account = Account(name="Cash")
        account.add_transaction(make(IdGenerator(), 10), table)
        account.balance = 500
        assert not account.validate(table)
        assert account.recalculate_balance(table) == -10
        assert account.validate(table)

    def test_filter_by_type_returns_copies(self, table):
        ids = IdGenerator()
        account = Account(name="Cash")
        account.add_transaction(make(ids, 100, type=TransactionType.INCOME), table)
        account.add_transaction(make(ids, 30), table)
        incomes = account.filter_by_type(TransactionType.INCOME)
        assert [t.amount for t in incomes] == [100]
        incomes[0].set_amount(1)
        assert account.transactions[0].amount == 100

    def test_income_and_expense_totals(self, table):
        ids = IdGenerator()
        account = Account(name="Cash")
        account.add_transaction(make(ids, 100, type=TransactionType.INCOME), table)
        account.add_transaction(make(ids, 30), table)
        account.add_transaction(make(ids, 20), table)
        assert account.income_total() == 100
        assert account.expense_total() == 50

    def test_balance_in_other_currency(self, table):
        account = Account(name="Cash")
        account.add_transaction(make(IdGenerator(), 9000, type=TransactionType.INCOME), table)
        assert account.balance_in_currency(table, "USD") == pytest.approx(100)

    def test_merge_conserves_money(self, table):
        ids = IdGenerator()
        target = Account(name="Cash")
        source = Account(name="Card")
        target.add_transaction(make(ids, 100, type=TransactionType.INCOME), table)
        source.add_transaction(make(ids, 10, currency="USD"), table)
        total_before = target.balance + source.balance

        target.merge(source, table)

        assert target.balance == pytest.approx(total_before)
        assert [t.id for t in target.transactions] == [1, 2]
        assert source.transactions == []
        assert source.balance == 0

    def test_merge_failure_moves_nothing(self, table):
        ids = IdGenerator()
        target = Account(name="Cash")
        source = Account(name="Card")
        source.add_transaction(make(ids, 10, currency="JPY"))
        with pytest.raises(UnknownCurrencyError):
            target.merge(source, table)
        assert len(source.transactions) == 1
        assert target.transactions == []

    def test_rejects_bracket_in_name(self):
        with pytest.raises(ValueError):
            Account(name="Bad]name")


class TestAuditModels:
    """Tests for audit event models."""

    def test_builder_sets_type_and_entity(self):
        event = AuditEventBuilder.account_deleted("Cash", 3)
        assert event.event_type == AuditEventType.ACCOUNT_DELETED
        assert event.entity_id == "Cash"

    def test_refusal_is_warning(self):
        event = AuditEventBuilder.account_operation_refused("General", "delete", "default account")
        assert event.severity == AuditSeverity.WARNING

    def test_log_dict_is_flat_strings(self):
        event = AuditEventBuilder.transaction_added("Cash", 7, 12.5, "USD")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "transaction_added"
        assert isinstance(log_dict["event_id"], str)

    def test_skipped_records_are_warnings(self):
        event = AuditEventBuilder.record_skipped(4, "Malformed number")
        assert isinstance(event, AuditEvent)
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "Malformed number"
