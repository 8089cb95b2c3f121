"""
Main Orchestrator for Money Keeper

This module ties together all the components and defines the
end-to-end flows for:
1. Open (rate cache → ledger file → registry → recalculated balances)
2. Save (registry snapshot → atomic file write)
3. Rate refresh (feed → table → recalculated balances → cache file)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The registry never touches files or the network itself
- A failed refresh never leaves the table half-replaced
- Every load, save and refresh is audited under one correlation id

This is the "glue" that ensures the ledger stays consistent
even when the file or the rate feed misbehave.
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

import structlog

from money_keeper.audit import AuditLogger, configure_logging, create_correlation_id
from money_keeper.config import Settings, get_settings
from money_keeper.errors import PersistenceError, RatesUnavailableError
from money_keeper.models.audit import AuditEventBuilder
from money_keeper.queries import LedgerStatistics
from money_keeper.registry import LedgerRegistry
from money_keeper.services.currency import CbrRateSource, CurrencyTable, RateSource
from money_keeper.services.storage import (
    AuditStorageInterface,
    FlatFileLedgerStorage,
    LedgerStorageInterface,
    LoadedLedger,
)
from money_keeper.validation import LedgerValidator, ValidationResult


logger = structlog.get_logger(__name__)

RefreshCallback = Callable[[bool], Union[None, Awaitable[None]]]


class LedgerApp:
    """
    Orchestrates the ledger's life cycle.

    Flow:
    1. open() → load cached rates, then the ledger file
    2. ... registry operations ...
    3. refresh_rates() → at any time, balances follow the new table
    4. save() → write everything back

    Saving is always explicit. Nothing is written behind the user's back.
    """

    def __init__(
        self,
        registry: LedgerRegistry,
        storage: LedgerStorageInterface,
        rate_source: Optional[RateSource] = None,
        audit_logger: Optional[AuditLogger] = None,
        rates_cache_path: Optional[Union[str, Path]] = None,
        refresh_timeout: Optional[float] = None,
        validator: Optional[LedgerValidator] = None,
    ):
        self._registry = registry
        self._storage = storage
        self._rate_source = rate_source
        self._audit_logger = audit_logger or AuditLogger()
        self._rates_cache_path = Path(rates_cache_path) if rates_cache_path else None
        self._refresh_timeout = refresh_timeout
        self._validator = validator or LedgerValidator()
        self._statistics = LedgerStatistics(registry)

    @property
    def registry(self) -> LedgerRegistry:
        return self._registry

    @property
    def currency_table(self) -> CurrencyTable:
        return self._registry.currency_table

    @property
    def statistics(self) -> LedgerStatistics:
        return self._statistics

    # =========================================================================
    # LOAD / SAVE
    # =========================================================================

    def open(self) -> LoadedLedger:
        """
        Load cached rates and the ledger file into the registry.

        A missing ledger file is a fresh start (default account only).
        Malformed records are skipped and audited one by one.

        Raises:
            PersistenceError: The ledger file exists but cannot be read
        """
        correlation_id = create_correlation_id()

        if self._rates_cache_path is not None:
            cached = self.currency_table.load_from(self._rates_cache_path)
            self._audit_logger.log(AuditEventBuilder.rates_cache_loaded(
                str(self._rates_cache_path),
                cached,
                correlation_id=correlation_id,
            ))

        try:
            loaded = self._storage.load(self._registry.reference_currency)
        except PersistenceError as e:
            self._audit_logger.log(AuditEventBuilder.system_error(
                error_type="ledger_load_failed",
                error_message=e.reason,
                correlation_id=correlation_id,
            ))
            raise

        for skipped in loaded.skipped:
            self._audit_logger.log(AuditEventBuilder.record_skipped(
                skipped.line_number,
                skipped.reason,
                correlation_id=correlation_id,
            ))

        self._registry.replace_contents(loaded.sections, loaded.high_water_mark)

        self._audit_logger.log(AuditEventBuilder.ledger_loaded(
            self._describe_storage(),
            accounts=len(self._registry.accounts),
            transactions=loaded.transaction_count,
            skipped=len(loaded.skipped),
            correlation_id=correlation_id,
        ))
        return loaded

    def save(self) -> None:
        """
        Write every account back to storage.

        Raises:
            PersistenceError: The write failed; the previous file is intact
        """
        sections = self._registry.snapshot()
        try:
            self._storage.save(sections)
        except PersistenceError as e:
            self._audit_logger.log(AuditEventBuilder.system_error(
                error_type="ledger_save_failed",
                error_message=e.reason,
            ))
            raise

        self._audit_logger.log(AuditEventBuilder.ledger_saved(
            self._describe_storage(),
            accounts=len(sections),
            transactions=sum(len(t) for t in sections.values()),
        ))

    def _describe_storage(self) -> str:
        path = getattr(self._storage, "path", None)
        return str(path) if path is not None else type(self._storage).__name__

    # =========================================================================
    # RATES
    # =========================================================================

    async def refresh_rates(self, on_done: Optional[RefreshCallback] = None) -> bool:
        """
        Refresh exchange rates once.

        Balances are recomputed whenever the table changes (fresh rates
        or the cache fallback). `on_done(success)` runs exactly once.

        Raises:
            RatesUnavailableError: No rate source is configured
        """
        if self._rate_source is None:
            raise RatesUnavailableError("No rate source configured")

        correlation_id = create_correlation_id()

        async def finished(success: bool) -> None:
            if success:
                self._audit_logger.log(AuditEventBuilder.rates_refreshed(
                    len(self.currency_table),
                    correlation_id=correlation_id,
                ))
            else:
                self._audit_logger.log(AuditEventBuilder.rates_refresh_failed(
                    "Rates could not be fetched; cached rates kept",
                    correlation_id=correlation_id,
                ))
            if on_done is not None:
                result = on_done(success)
                if asyncio.iscoroutine(result):
                    await result

        return await self.currency_table.refresh(
            self._rate_source,
            finished,
            cache_path=self._rates_cache_path,
            timeout=self._refresh_timeout,
        )

    async def close(self) -> None:
        if self._rate_source is not None:
            await self._rate_source.close()

    # =========================================================================
    # CHECKS
    # =========================================================================

    def validate(self) -> ValidationResult:
        """Run the consistency checks and log a summary."""
        result = self._validator.validate(self._registry)
        if result.has_errors:
            logger.warning(
                "ledger_validation_failed",
                errors=result.error_count,
                summary=self._validator.get_summary(result),
            )
        return result


def create_ledger_app(
    settings: Optional[Settings] = None,
    rate_source: Optional[RateSource] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> LedgerApp:
    """
    Factory function to create all application components.

    Args:
        settings: Configuration; defaults to get_settings()
        rate_source: Overrides the feed built from settings
            (e.g. a stub source in tests)
        audit_storage: Where audit events are kept besides the local log

    Returns:
        A LedgerApp that has not opened its file yet
    """
    settings = settings or get_settings()
    app_settings = settings.app
    ledger_settings = settings.ledger
    rate_settings = settings.rates

    configure_logging(app_settings.effective_log_level, app_settings.log_json)

    audit_logger = AuditLogger(audit_storage)
    table = CurrencyTable(reference_currency=ledger_settings.reference_currency)
    registry = LedgerRegistry(
        currency_table=table,
        default_account_name=ledger_settings.default_account_name,
        audit_logger=audit_logger,
    )

    if rate_source is None:
        rate_source = CbrRateSource(
            url=rate_settings.url,
            timeout=rate_settings.timeout_seconds,
            reference_currency=ledger_settings.reference_currency,
        )

    logger.info(
        "ledger_app_created",
        environment=app_settings.app_environment,
        data_file=str(ledger_settings.data_file),
        reference_currency=ledger_settings.reference_currency,
    )

    return LedgerApp(
        registry=registry,
        storage=FlatFileLedgerStorage(ledger_settings.data_file),
        rate_source=rate_source,
        audit_logger=audit_logger,
        rates_cache_path=rate_settings.cache_file,
        refresh_timeout=rate_settings.timeout_seconds,
        validator=LedgerValidator(tolerance=ledger_settings.balance_tolerance),
    )


async def start_ledger_app(
    settings: Optional[Settings] = None,
    rate_source: Optional[RateSource] = None,
) -> LedgerApp:
    """Create the app, open the ledger and refresh rates if configured to."""
    settings = settings or get_settings()
    app = create_ledger_app(settings, rate_source=rate_source)
    app.open()
    if settings.rates.refresh_on_startup:
        await app.refresh_rates()
    return app
