"""Configuration package."""

from money_keeper.config.settings import (
    AppSettings,
    LedgerSettings,
    RateSourceSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "LedgerSettings",
    "RateSourceSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
