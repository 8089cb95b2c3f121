"""Exchange rate services."""

from money_keeper.services.currency.rate_source import (
    CbrRateSource,
    RateSource,
    RateSourceError,
    parse_daily_feed,
)
from money_keeper.services.currency.table import CurrencyTable

__all__ = [
    "CbrRateSource",
    "CurrencyTable",
    "RateSource",
    "RateSourceError",
    "parse_daily_feed",
]
