"""
Flat File Ledger Storage

The ledger is kept in a line-oriented text file, one section per account:

    [Account:<name>]
    <id>,<amount>,<type 0|1>,<category>,<year> <month> <day>,<currency>,<description>,<tags|->

DESIGN DECISION: Loading is forgiving. A malformed line is logged and
skipped; the rest of the file still loads. Saving is strict: the
whole file is written to a temporary file and swapped into place,
so a crash mid-save never leaves a truncated ledger.

TRADEOFFS:
- Commas are reserved: categories and tags cannot contain them.
  Descriptions may, because everything between the currency field
  and the last field is read back as the description.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import structlog

from money_keeper.errors import LedgerValidationError, PersistenceError
from money_keeper.models.account import validate_account_name
from money_keeper.models.calendar import CalendarDate
from money_keeper.models.transaction import Transaction, TransactionType
from money_keeper.services.storage.interface import (
    LedgerStorageInterface,
    LoadedLedger,
    SkippedRecord,
)


logger = structlog.get_logger(__name__)

ACCOUNT_HEADER_PREFIX = "[Account:"
ACCOUNT_HEADER_SUFFIX = "]"
FIELD_SEPARATOR = ","
TAG_SEPARATOR = ";"
NO_TAGS = "-"
ENCODING = "utf-8"
MIN_FIELDS = 6


# =============================================================================
# RECORD CODEC
# =============================================================================

def encode_header(name: str) -> str:
    return f"{ACCOUNT_HEADER_PREFIX}{name}{ACCOUNT_HEADER_SUFFIX}"


def encode_transaction(transaction: Transaction) -> str:
    """Encode one transaction as a single ledger line (no newline)."""
    tags = TAG_SEPARATOR.join(transaction.tags) if transaction.tags else NO_TAGS
    return FIELD_SEPARATOR.join([
        str(transaction.id),
        repr(float(transaction.amount)),
        str(transaction.type.code),
        transaction.category,
        transaction.date.to_record(),
        transaction.currency,
        transaction.description,
        tags,
    ])


def parse_header(line: str) -> str:
    """
    Extract the account name from a section header.

    Raises:
        PersistenceError: Header is not closed or the name is invalid
    """
    end = line.find(ACCOUNT_HEADER_SUFFIX, len(ACCOUNT_HEADER_PREFIX))
    if end == -1:
        raise PersistenceError(f"Unterminated account header: {line!r}")
    try:
        return validate_account_name(line[len(ACCOUNT_HEADER_PREFIX):end])
    except ValueError as e:
        raise PersistenceError(str(e)) from e


def decode_transaction(line: str, reference_currency: str) -> Transaction:
    """
    Decode one ledger line.

    Raises:
        PersistenceError: The line is not a valid transaction record
    """
    fields = line.split(FIELD_SEPARATOR)
    if len(fields) < MIN_FIELDS:
        raise PersistenceError(
            f"Expected at least {MIN_FIELDS} fields, got {len(fields)}"
        )

    try:
        transaction_id = int(fields[0].strip())
        amount = float(fields[1].strip())
        type_code = int(fields[2].strip())
    except ValueError as e:
        raise PersistenceError(f"Malformed number: {e}") from e

    currency = fields[5].strip() or reference_currency

    if len(fields) >= 8:
        description = FIELD_SEPARATOR.join(fields[6:-1])
        tags_field = fields[-1].strip()
    elif len(fields) == 7:
        description = fields[6]
        tags_field = NO_TAGS
    else:
        description = ""
        tags_field = NO_TAGS

    tags = [] if tags_field in ("", NO_TAGS) else tags_field.split(TAG_SEPARATOR)

    try:
        return Transaction.restore(
            id=transaction_id,
            amount=amount,
            category=fields[3],
            type=TransactionType.from_code(type_code),
            date=CalendarDate.from_record(fields[4]),
            currency=currency,
            description=description,
            tags=tags,
        )
    except LedgerValidationError as e:
        raise PersistenceError(e.reason) from e


def decode_ledger(lines, reference_currency: str) -> LoadedLedger:
    """
    Decode a whole ledger from an iterable of lines.

    Lines may be str or UTF-8 bytes; a bytes line that does not decode
    is skipped like any other malformed record.

    Never raises for bad content: every unusable line ends up in
    `skipped` with its reason.
    """
    result = LoadedLedger()
    current: Optional[str] = None
    seen_ids: set[int] = set()

    def skip(line_number: int, line: str, reason: str) -> None:
        logger.warning(
            "record_skipped",
            line_number=line_number,
            reason=reason,
        )
        result.skipped.append(SkippedRecord(line_number=line_number, line=line, reason=reason))

    for line_number, raw in enumerate(lines, start=1):
        if isinstance(raw, bytes):
            try:
                raw = raw.decode(ENCODING)
            except UnicodeDecodeError as e:
                text = raw.decode(ENCODING, errors="replace").rstrip("\r\n")
                skip(line_number, text, f"Invalid {ENCODING}: {e.reason}")
                continue
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue

        if line.startswith(ACCOUNT_HEADER_PREFIX):
            try:
                current = parse_header(line)
            except PersistenceError as e:
                # Records under a broken header have no safe home
                current = None
                skip(line_number, line, e.reason)
                continue
            result.sections.setdefault(current, [])
            continue

        if current is None:
            skip(line_number, line, "Transaction outside of an account section")
            continue

        try:
            transaction = decode_transaction(line, reference_currency)
        except PersistenceError as e:
            skip(line_number, line, e.reason)
            continue

        if transaction.id in seen_ids:
            skip(line_number, line, f"Duplicate transaction id {transaction.id}")
            continue

        seen_ids.add(transaction.id)
        result.sections[current].append(transaction)

    return result


def encode_ledger(sections: dict[str, list[Transaction]]) -> str:
    lines = []
    for name, transactions in sections.items():
        lines.append(encode_header(name))
        lines.extend(encode_transaction(t) for t in transactions)
    return "\n".join(lines) + "\n" if lines else ""


def atomic_write_text(path: Path, content: str) -> None:
    """Write `content` to `path` through a temporary file in the same directory."""
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding=ENCODING, newline="\n") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


# =============================================================================
# STORAGE
# =============================================================================

class FlatFileLedgerStorage(LedgerStorageInterface):
    """Ledger storage backed by the flat text format."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self, reference_currency: str) -> LoadedLedger:
        if not self._path.exists():
            logger.info("ledger_file_missing", path=str(self._path))
            return LoadedLedger(file_found=False)

        try:
            with self._path.open("rb") as handle:
                result = decode_ledger(handle, reference_currency)
        except OSError as e:
            raise PersistenceError(f"Cannot read ledger file {self._path}: {e}") from e

        logger.info(
            "ledger_file_loaded",
            path=str(self._path),
            accounts=len(result.sections),
            transactions=result.transaction_count,
            skipped=len(result.skipped),
        )
        return result

    def save(self, sections: dict[str, list[Transaction]]) -> None:
        try:
            atomic_write_text(self._path, encode_ledger(sections))
        except OSError as e:
            raise PersistenceError(f"Cannot write ledger file {self._path}: {e}") from e

        logger.info(
            "ledger_file_saved",
            path=str(self._path),
            accounts=len(sections),
            transactions=sum(len(t) for t in sections.values()),
        )
