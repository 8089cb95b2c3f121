"""
Currency Table

Maps currency codes to their rate against the reference currency
(1 unit of the currency = `rate` units of the reference currency).

DESIGN DECISION: The table is only ever replaced as a whole, under a
lock. A refresh running in the background can never expose a
half-written table to a reader doing a conversion.

Conversions never guess: an empty table or an unknown code is an
error, except when converting a currency into itself.
"""

import asyncio
import json
import math
import threading
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Optional, Union

import structlog

from money_keeper.errors import (
    LedgerValidationError,
    RatesUnavailableError,
    UnknownCurrencyError,
)
from money_keeper.models.transaction import DEFAULT_CURRENCY
from money_keeper.services.currency.rate_source import RateSource, RateSourceError
from money_keeper.services.storage.flat_file import atomic_write_text


logger = structlog.get_logger(__name__)

RatesListener = Callable[[], None]


class CurrencyTable:
    """
    Thread-safe exchange rate table.

    All reads and the whole-table swap go through one lock.
    """

    def __init__(
        self,
        rates: Optional[Mapping[str, float]] = None,
        reference_currency: str = DEFAULT_CURRENCY,
    ):
        self._reference = reference_currency.strip().upper()
        self._rates: dict[str, float] = {}
        self._lock = threading.RLock()
        self._listeners: list[RatesListener] = []
        if rates:
            self._rates = self._checked(rates)

    @property
    def reference_currency(self) -> str:
        return self._reference

    # =========================================================================
    # READS
    # =========================================================================

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        """
        Convert `amount` from one currency into another.

        Raises:
            RatesUnavailableError: The table is empty
            UnknownCurrencyError: Either code is not in the table
        """
        if from_currency == to_currency:
            return amount
        with self._lock:
            if not self._rates:
                raise RatesUnavailableError()
            if from_currency not in self._rates:
                raise UnknownCurrencyError(from_currency)
            if to_currency not in self._rates:
                raise UnknownCurrencyError(to_currency)
            return amount * self._rates[from_currency] / self._rates[to_currency]

    def rate(self, code: str) -> float:
        with self._lock:
            if not self._rates:
                raise RatesUnavailableError()
            try:
                return self._rates[code]
            except KeyError:
                raise UnknownCurrencyError(code) from None

    def is_supported(self, code: str) -> bool:
        with self._lock:
            return code in self._rates

    def is_empty(self) -> bool:
        with self._lock:
            return not self._rates

    def snapshot(self) -> dict[str, float]:
        """A copy of the current rates."""
        with self._lock:
            return dict(self._rates)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rates)

    # =========================================================================
    # REPLACEMENT
    # =========================================================================

    def _checked(self, rates: Mapping[str, float]) -> dict[str, float]:
        checked: dict[str, float] = {}
        for code, rate in rates.items():
            code = str(code).strip().upper()
            rate = float(rate)
            if not code:
                raise LedgerValidationError("Currency code cannot be empty")
            if not math.isfinite(rate) or rate <= 0:
                raise LedgerValidationError(f"Invalid rate for {code}: {rate}")
            checked[code] = rate
        reference_rate = checked.get(self._reference)
        if reference_rate is not None and reference_rate != 1.0:
            raise LedgerValidationError(
                f"Reference currency {self._reference} must have rate 1.0, got {reference_rate}"
            )
        return checked

    def set_rates(self, rates: Mapping[str, float]) -> None:
        """
        Replace the whole table.

        Raises:
            LedgerValidationError: A rate is not a positive number or the
                reference currency is not at 1.0. The table is unchanged.
        """
        checked = self._checked(rates)
        with self._lock:
            self._rates = checked
        self._notify()

    def subscribe(self, listener: RatesListener) -> None:
        """Call `listener` after every successful table replacement."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # =========================================================================
    # CACHE FILE
    # =========================================================================

    def save_to(self, path: Union[str, Path]) -> None:
        """Write the table as a JSON {code: rate} mapping, atomically."""
        content = json.dumps(self.snapshot(), indent=4, sort_keys=True)
        atomic_write_text(Path(path), content)

    def load_from(self, path: Union[str, Path]) -> bool:
        """
        Replace the table with the contents of a cache file.

        Returns False, leaving the table untouched, if the file is
        missing or unparseable.
        """
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            logger.info("rates_cache_missing", path=str(path))
            return False
        except (OSError, ValueError) as e:
            logger.warning("rates_cache_unreadable", path=str(path), error=str(e))
            return False

        if not isinstance(data, dict) or not data:
            logger.warning("rates_cache_unreadable", path=str(path), error="not a rate mapping")
            return False

        try:
            self.set_rates(data)
        except (LedgerValidationError, TypeError, ValueError) as e:
            logger.warning("rates_cache_unreadable", path=str(path), error=str(e))
            return False

        logger.info("rates_cache_loaded", path=str(path), currencies=len(data))
        return True

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def refresh(
        self,
        rate_source: RateSource,
        on_done: Callable[[bool], Union[None, Awaitable[None]]],
        cache_path: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Fetch fresh rates once, falling back to the cache file on failure.

        `on_done(success)` is called exactly once; `success` is True only
        when fresh rates were fetched. Subscribers run before `on_done`
        whenever the table was replaced (fresh rates or cache fallback).
        There is no retry.
        """
        success = False
        try:
            if timeout is not None:
                rates = await asyncio.wait_for(rate_source.fetch(), timeout=timeout)
            else:
                rates = await rate_source.fetch()
            self.set_rates(rates)
            success = True
        except asyncio.TimeoutError:
            logger.warning("rates_refresh_failed", error="timeout", timeout=timeout)
        except (RateSourceError, LedgerValidationError) as e:
            logger.warning("rates_refresh_failed", error=str(e))
        except Exception as e:
            # on_done must still run exactly once
            logger.error("rates_refresh_failed", error=str(e), exc_info=True)

        if success:
            logger.info("rates_refreshed", currencies=len(self))
            if cache_path is not None:
                try:
                    self.save_to(cache_path)
                except OSError as e:
                    # Fresh rates are in memory; only the cache is stale
                    logger.warning("rates_cache_write_failed", path=str(cache_path), error=str(e))
        elif cache_path is not None:
            self.load_from(cache_path)

        result = on_done(success)
        if asyncio.iscoroutine(result):
            await result
        return success
