"""
Configuration Management for Money Keeper

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which files and external services the ledger
touches, and ensures configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger file and account defaults."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_file: Path = Field(
        default=Path("transactions.dat"),
        description="Path to the flat ledger file"
    )
    default_account_name: str = Field(
        default="General",
        min_length=1,
        max_length=100,
        description="Name of the account that always exists"
    )
    reference_currency: str = Field(
        default="RUB",
        pattern=r"^[A-Z]{3}$",
        description="Currency all rates and balances are expressed in"
    )
    balance_tolerance: float = Field(
        default=0.01,
        gt=0.0,
        le=1.0,
        description="Maximum drift between cached and recomputed balances"
    )

    @field_validator('reference_currency', mode='before')
    @classmethod
    def upper_currency(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator('default_account_name')
    @classmethod
    def validate_default_account_name(cls, v: str) -> str:
        if any(c in v for c in "[]\n\r"):
            raise ValueError("Account name cannot contain '[', ']' or line breaks")
        return v.strip()


class RateSourceSettings(BaseSettings):
    """Exchange rate feed and cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="https://www.cbr-xml-daily.ru/daily_json.js",
        description="Daily rates JSON feed"
    )
    timeout_seconds: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="Upper bound on one refresh"
    )
    cache_file: Path = Field(
        default=Path("rates_cache.json"),
        description="Where the last good rate table is kept"
    )
    refresh_on_startup: bool = Field(
        default=True,
        description="Refresh rates when the application opens the ledger"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Root log level"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON (console format otherwise)"
    )

    @field_validator('log_level', mode='before')
    @classmethod
    def upper_level(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_mode else self.log_level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def rates(self) -> RateSourceSettings:
        return RateSourceSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    `<name>_error` entries for the ones that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "rates", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
