"""
Tests for settings and audit logging.
"""

import logging

import pytest
from pydantic import ValidationError

from money_keeper.audit import AuditLogger, configure_logging, create_correlation_id
from money_keeper.config import (
    AppSettings,
    LedgerSettings,
    RateSourceSettings,
    get_settings,
    validate_all_settings,
)
from money_keeper.models.audit import AuditEventBuilder
from money_keeper.services.storage import AuditStorageInterface, InMemoryAuditStorage


class BrokenAuditStorage(AuditStorageInterface):
    def append_event(self, event):
        raise OSError("disk full")

    def get_events_by_correlation_id(self, correlation_id):
        return []

    def get_recent_events(self, limit=100):
        return []


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_defaults(self):
        ledger = LedgerSettings()
        rates = RateSourceSettings()
        assert ledger.default_account_name == "General"
        assert ledger.reference_currency == "RUB"
        assert str(ledger.data_file) == "transactions.dat"
        assert rates.timeout_seconds == 10.0
        assert rates.refresh_on_startup is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER_REFERENCE_CURRENCY", "usd")
        monkeypatch.setenv("RATES_TIMEOUT_SECONDS", "3")
        assert LedgerSettings().reference_currency == "USD"
        assert RateSourceSettings().timeout_seconds == 3.0

    def test_timeout_bounds(self, monkeypatch):
        monkeypatch.setenv("RATES_TIMEOUT_SECONDS", "600")
        with pytest.raises(ValidationError):
            RateSourceSettings()

    def test_default_account_name_rules(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DEFAULT_ACCOUNT_NAME", "[x]")
        with pytest.raises(ValidationError):
            LedgerSettings()

    def test_debug_forces_debug_level(self, monkeypatch):
        monkeypatch.setenv("DEBUG_MODE", "true")
        assert AppSettings().effective_log_level == "DEBUG"

    def test_validate_all_reports_failures(self, monkeypatch):
        assert validate_all_settings()["ledger"] is True
        monkeypatch.setenv("LEDGER_BALANCE_TOLERANCE", "-1")
        results = validate_all_settings()
        assert results["ledger"] is False
        assert "ledger_error" in results

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_stores_events(self):
        storage = InMemoryAuditStorage()
        assert AuditLogger(storage).log(AuditEventBuilder.account_created("Cash")) is True
        assert len(storage.events) == 1

    def test_without_storage(self):
        assert AuditLogger().log(AuditEventBuilder.account_created("Cash")) is True

    def test_storage_failure_does_not_raise(self):
        assert AuditLogger(BrokenAuditStorage()).log(AuditEventBuilder.account_created("Cash")) is False

    def test_events_reach_the_log(self, caplog):
        configure_logging("INFO", json_output=True)
        caplog.set_level(logging.INFO)
        AuditLogger().log(AuditEventBuilder.account_created("Cash"))
        assert "account_created" in caplog.text

    def test_correlation_ids_unique(self):
        assert create_correlation_id() != create_correlation_id()

    def test_events_by_correlation_id(self):
        storage = InMemoryAuditStorage()
        correlation_id = create_correlation_id()
        logger = AuditLogger(storage)
        logger.log(AuditEventBuilder.record_skipped(2, "bad", correlation_id=correlation_id))
        logger.log(AuditEventBuilder.account_created("Cash"))
        assert len(storage.get_events_by_correlation_id(correlation_id)) == 1
