"""
Transaction Model

A single monetary event: income or expense, in some currency,
on some date, with a category, a description and up to five tags.

DESIGN DECISION: Transaction ids come from an IdGenerator owned by
the ledger registry, not from a process-wide counter. Tests seed the
generator explicitly; the loader resets it from the file's
high-water mark.

CRITICAL: Every mutation is validated before it is committed.
A failed setter leaves the transaction exactly as it was, and a
failed create() does not consume an id.
"""

import threading
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from money_keeper.errors import (
    DuplicateTagError,
    LedgerValidationError,
    TagLimitExceededError,
)
from money_keeper.models.calendar import CalendarDate

if TYPE_CHECKING:
    from money_keeper.services.currency.table import CurrencyTable


MAX_TAGS = 5
DEFAULT_DESCRIPTION = "No description"
DEFAULT_CURRENCY = "RUB"

# Characters reserved by the ledger file format
_FIELD_SEPARATOR = ","
_TAG_SEPARATOR = ";"
_NO_TAGS_MARKER = "-"


class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def code(self) -> int:
        """Numeric code used by the ledger file (0=income, 1=expense)."""
        return 0 if self is TransactionType.INCOME else 1

    @classmethod
    def from_code(cls, code: int) -> "TransactionType":
        if code == 0:
            return cls.INCOME
        if code == 1:
            return cls.EXPENSE
        raise LedgerValidationError(f"Unknown transaction type code: {code}")


class IdGenerator:
    """
    Monotonically increasing transaction id source.

    Owned by the ledger registry. Thread-safe.
    """

    def __init__(self, start: int = 1):
        if start < 1:
            raise ValueError("Transaction ids start at 1")
        self._next = start
        self._lock = threading.Lock()

    def peek(self) -> int:
        """The id the next call to next_id() will return."""
        with self._lock:
            return self._next

    def next_id(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def observe(self, transaction_id: int) -> None:
        """Make sure future ids are above an id seen elsewhere."""
        with self._lock:
            if transaction_id >= self._next:
                self._next = transaction_id + 1

    def reset_after(self, high_water_mark: int) -> None:
        """Resume generation right after the largest id observed on load."""
        with self._lock:
            self._next = max(high_water_mark, 0) + 1


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    error = errors[0]
    field = ".".join(str(loc) for loc in error.get("loc", ()))
    message = error.get("msg", str(exc)).removeprefix("Value error, ")
    return f"{field}: {message}" if field else message


def _check_tag(tag: str) -> str:
    tag = tag.strip()
    if not tag:
        raise ValueError("Tag cannot be empty")
    if tag == _NO_TAGS_MARKER:
        raise ValueError(f"Tag cannot be {_NO_TAGS_MARKER!r}")
    if _FIELD_SEPARATOR in tag or _TAG_SEPARATOR in tag or "\n" in tag:
        raise ValueError("Tag cannot contain ',', ';' or line breaks")
    return tag


class Transaction(BaseModel):
    """
    A validated ledger transaction.

    Build new transactions with Transaction.create(); the loader uses
    Transaction.restore() to rebuild records with their stored ids.
    """
    model_config = ConfigDict(
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    id: int = Field(..., gt=0, description="Ledger-unique transaction id")
    amount: float = Field(
        ...,
        gt=0,
        allow_inf_nan=False,
        description="Positive amount in `currency`",
    )
    currency: str = Field(
        default=DEFAULT_CURRENCY,
        pattern=r"^[A-Z]{3}$",
        description="ISO-style currency code",
    )
    type: TransactionType = Field(
        default=TransactionType.EXPENSE,
        description="Income or expense",
    )
    category: str = Field(..., min_length=1, max_length=100)
    date: CalendarDate = Field(default_factory=CalendarDate.today)
    description: str = Field(default=DEFAULT_DESCRIPTION, max_length=500)
    tags: list[str] = Field(default_factory=list, max_length=MAX_TAGS)

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        if _FIELD_SEPARATOR in v or "\n" in v:
            raise ValueError("Category cannot contain ',' or line breaks")
        return v

    @field_validator("description")
    @classmethod
    def default_description(cls, v: str) -> str:
        if "\n" in v or "\r" in v:
            raise ValueError("Description cannot contain line breaks")
        return v or DEFAULT_DESCRIPTION

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        cleaned = [_check_tag(tag) for tag in v]
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("Tags must be unique")
        return cleaned

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def create(
        cls,
        ids: IdGenerator,
        amount: float,
        category: str,
        type: TransactionType = TransactionType.EXPENSE,
        date: Optional[CalendarDate] = None,
        description: str = "",
        currency: Optional[str] = None,
        tags: Iterable[str] = (),
        reference_currency: str = DEFAULT_CURRENCY,
    ) -> "Transaction":
        """
        Create a new transaction with the next free id.

        Raises:
            LedgerValidationError: If any field is invalid. No id is
                consumed in that case.
        """
        data = {
            "id": ids.peek(),
            "amount": amount,
            "category": category,
            "type": type,
            "description": description,
            "currency": currency or reference_currency,
            "tags": list(tags),
        }
        if date is not None:
            data["date"] = date
        transaction = cls._validated(data)
        # Reserve the id only once the record is known to be valid
        transaction.id = ids.next_id()
        return transaction

    @classmethod
    def restore(
        cls,
        id: int,
        amount: float,
        category: str,
        type: TransactionType,
        date: CalendarDate,
        currency: str,
        description: str = "",
        tags: Iterable[str] = (),
    ) -> "Transaction":
        """
        Rebuild a stored transaction with its original id.

        Loader capability: only the persistence layer should call this.
        """
        return cls._validated({
            "id": id,
            "amount": amount,
            "category": category,
            "type": type,
            "date": date,
            "currency": currency,
            "description": description,
            "tags": list(tags),
        })

    @classmethod
    def _validated(cls, data: dict) -> "Transaction":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise LedgerValidationError(_first_error(e)) from e

    # =========================================================================
    # VALIDATED SETTERS
    # =========================================================================

    def _assign(self, field: str, value) -> None:
        try:
            setattr(self, field, value)
        except ValidationError as e:
            raise LedgerValidationError(_first_error(e)) from e

    def set_amount(self, amount: float) -> None:
        self._assign("amount", amount)

    def set_category(self, category: str) -> None:
        self._assign("category", category)

    def set_date(self, date: CalendarDate) -> None:
        self._assign("date", date)

    def set_description(self, description: str) -> None:
        self._assign("description", description)

    def set_type(self, type: TransactionType) -> None:
        self._assign("type", type)

    # =========================================================================
    # TAGS
    # =========================================================================

    def add_tag(self, tag: str) -> None:
        """
        Append a tag.

        Raises:
            TagLimitExceededError: Already holding MAX_TAGS tags
            DuplicateTagError: Tag already present
            LedgerValidationError: Tag is empty or uses reserved characters
        """
        if len(self.tags) >= MAX_TAGS:
            raise TagLimitExceededError(f"A transaction can hold at most {MAX_TAGS} tags")
        try:
            tag = _check_tag(tag)
        except ValueError as e:
            raise LedgerValidationError(str(e)) from e
        if tag in self.tags:
            raise DuplicateTagError(f"Tag already present: {tag}")
        self.tags.append(tag)

    def remove_tag(self, index: int) -> bool:
        """Remove the tag at `index`. Out-of-range indexes are ignored."""
        if 0 <= index < len(self.tags):
            del self.tags[index]
            return True
        return False

    def has_tag(self, tag: str) -> bool:
        return tag.strip() in self.tags

    # =========================================================================
    # AMOUNTS
    # =========================================================================

    @property
    def signed_amount(self) -> float:
        return self.amount if self.type == TransactionType.INCOME else -self.amount

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    def amount_in_reference_currency(self, table: "CurrencyTable") -> float:
        """
        Amount converted into the table's reference currency.

        Raises:
            UnknownCurrencyError: Currency missing from the table
            RatesUnavailableError: Table is empty and a conversion is needed
        """
        return table.convert(self.amount, self.currency, table.reference_currency)

    def signed_amount_in_reference_currency(self, table: "CurrencyTable") -> float:
        value = self.amount_in_reference_currency(table)
        return value if self.is_income else -value

    def summary(self) -> str:
        sign = "[+]" if self.is_income else "[-]"
        return (
            f"{self.date.to_string()} {sign} {self.amount:.2f} {self.currency} "
            f"({self.category}) {self.description}"
        )
