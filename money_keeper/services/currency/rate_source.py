"""
Exchange Rate Sources

A rate source returns a fresh {code: rate_to_reference} table or raises
RateSourceError. The ledger only depends on the RateSource interface;
CbrRateSource is the default implementation for the central bank's
daily JSON feed.

The feed lists currencies with a Value quoted per Nominal units,
so the per-unit rate is Value / Nominal. The reference currency
is not part of the feed and is always injected at 1.0.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from money_keeper.models.transaction import DEFAULT_CURRENCY


logger = structlog.get_logger(__name__)

DEFAULT_RATES_URL = "https://www.cbr-xml-daily.ru/daily_json.js"


class RateSourceError(Exception):
    """Rates could not be fetched or parsed."""
    pass


class RateSource(ABC):
    """Supplies a complete exchange rate table."""

    @abstractmethod
    async def fetch(self) -> dict[str, float]:
        """
        Fetch a fresh rate table.

        Returns:
            {currency_code: rate_to_reference}, reference included at 1.0

        Raises:
            RateSourceError: On transport or parse failure
        """
        pass

    async def close(self) -> None:
        """Release any connection the source holds."""
        pass


# =============================================================================
# UPSTREAM SCHEMA
# =============================================================================

class FeedCurrency(BaseModel):
    """One currency entry of the daily feed."""

    char_code: str = Field(..., alias="CharCode", min_length=1)
    nominal: float = Field(..., alias="Nominal", gt=0)
    value: float = Field(..., alias="Value", gt=0)

    @property
    def rate(self) -> float:
        return self.value / self.nominal


class DailyRatesFeed(BaseModel):
    """The subset of the daily feed we read."""

    valute: dict[str, FeedCurrency] = Field(..., alias="Valute")


def parse_daily_feed(payload: dict, reference_currency: str = DEFAULT_CURRENCY) -> dict[str, float]:
    """
    Turn a decoded feed payload into a rate table.

    Raises:
        RateSourceError: Payload does not match the feed schema
    """
    try:
        feed = DailyRatesFeed.model_validate(payload)
    except ValidationError as e:
        raise RateSourceError(f"Unexpected rates payload: {e.error_count()} errors") from e

    rates = {entry.char_code.upper(): entry.rate for entry in feed.valute.values()}
    rates[reference_currency] = 1.0
    return rates


class CbrRateSource(RateSource):
    """
    Daily rates from the central bank JSON feed.

    Args:
        url: Feed URL
        timeout: HTTP timeout in seconds
        reference_currency: Currency the feed quotes against
    """

    def __init__(
        self,
        url: str = DEFAULT_RATES_URL,
        timeout: float = 10.0,
        reference_currency: str = DEFAULT_CURRENCY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.reference_currency = reference_currency
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self) -> dict[str, float]:
        client = self._get_client()
        try:
            response = await client.get(self.url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.warning("rates_fetch_failed", url=self.url, error=str(e))
            raise RateSourceError(f"Failed to fetch rates from {self.url}: {e}") from e
        except ValueError as e:
            raise RateSourceError(f"Rates response is not JSON: {e}") from e

        if not isinstance(payload, dict):
            raise RateSourceError("Rates response is not a JSON object")

        rates = parse_daily_feed(payload, self.reference_currency)
        logger.info("rates_fetched", url=self.url, currencies=len(rates))
        return rates
