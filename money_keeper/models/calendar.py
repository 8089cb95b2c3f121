"""
Calendar Date Model

A validated year/month/day triple. The ledger only accepts dates
between 2000 and 2100, so we keep our own value type instead of
datetime.date and convert at the edges.

IMPORTANT: A CalendarDate is always valid. Setters check the new
value against the other two fields and keep the old value on failure.
"""

from datetime import date
from functools import total_ordering

from pydantic import BaseModel, Field, ValidationError, model_validator

from money_keeper.errors import LedgerValidationError


MIN_YEAR = 2000
MAX_YEAR = 2100

_DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_leap_year(year: int) -> bool:
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def days_in_month(year: int, month: int) -> int:
    """Number of days in the given month, leap-year aware."""
    if month == 2 and is_leap_year(year):
        return 29
    return _DAYS_IN_MONTH[month - 1]


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    message = errors[0].get("msg", str(exc))
    return message.removeprefix("Value error, ")


@total_ordering
class CalendarDate(BaseModel):
    """
    A calendar date in the supported range.

    Ordered chronologically; equal when year, month and day all match.
    """

    year: int = Field(..., ge=MIN_YEAR, le=MAX_YEAR)
    month: int = Field(..., ge=1, le=12)
    day: int = Field(..., ge=1, le=31)

    @model_validator(mode="after")
    def check_day_in_month(self) -> "CalendarDate":
        limit = days_in_month(self.year, self.month)
        if self.day > limit:
            raise ValueError(
                f"Day {self.day} is out of range for {self.year:04d}-{self.month:02d}"
            )
        return self

    @classmethod
    def of(cls, year: int, month: int, day: int) -> "CalendarDate":
        """Build a date, raising LedgerValidationError if it is invalid."""
        try:
            return cls(year=year, month=month, day=day)
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid date: {_first_error(e)}") from e

    @classmethod
    def today(cls) -> "CalendarDate":
        return cls.from_date(date.today())

    @classmethod
    def from_date(cls, value: date) -> "CalendarDate":
        return cls.of(value.year, value.month, value.day)

    @classmethod
    def from_string(cls, text: str) -> "CalendarDate":
        """Parse a YYYY-MM-DD string."""
        parts = text.strip().split("-")
        if len(parts) != 3:
            raise LedgerValidationError(f"Invalid date format: {text!r} (expected YYYY-MM-DD)")
        try:
            year, month, day = (int(p) for p in parts)
        except ValueError as e:
            raise LedgerValidationError(f"Invalid date format: {text!r}") from e
        return cls.of(year, month, day)

    @classmethod
    def from_record(cls, text: str) -> "CalendarDate":
        """Parse the space separated form used by the ledger file."""
        parts = text.split()
        if len(parts) != 3:
            raise LedgerValidationError(f"Invalid date record: {text!r}")
        try:
            year, month, day = (int(p) for p in parts)
        except ValueError as e:
            raise LedgerValidationError(f"Invalid date record: {text!r}") from e
        return cls.of(year, month, day)

    def to_string(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    def to_record(self) -> str:
        return f"{self.year} {self.month} {self.day}"

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)

    def is_leap_year(self) -> bool:
        return is_leap_year(self.year)

    def days_in_month(self) -> int:
        return days_in_month(self.year, self.month)

    # Setters validate the whole triple before committing

    def set_year(self, year: int) -> None:
        checked = CalendarDate.of(year, self.month, self.day)
        self.year = checked.year

    def set_month(self, month: int) -> None:
        checked = CalendarDate.of(self.year, month, self.day)
        self.month = checked.month

    def set_day(self, day: int) -> None:
        checked = CalendarDate.of(self.year, self.month, day)
        self.day = checked.day

    def _key(self) -> tuple[int, int, int]:
        return (self.year, self.month, self.day)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CalendarDate):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "CalendarDate") -> bool:
        if not isinstance(other, CalendarDate):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return self.to_string()
