"""
Exchange Rate Cache Service

Keeps the USD/BRL rate in the config table:
- update: fetch https://api.exchangerate-api.com/v4/latest/USD and upsert
  config[CURRENT_USD_BRL_RATE] with the BRL rate and the update time
- serve: return the stored value untouched (null until the first update)

A failed update never touches the stored row, so clients keep the last
good (possibly stale) rate.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardprices.core.config import settings
from cardprices.models.config import ConfigEntry

logger = logging.getLogger(__name__)


class ExchangeRateServiceError(Exception):
    """Base exception for exchange rate service"""
    pass


class ExchangeRateFetchError(ExchangeRateServiceError):
    """Failed to fetch exchange rate from the rate API"""
    pass


class ExchangeRateStoreError(ExchangeRateServiceError):
    """Failed to read or write the cached rate"""
    pass


@dataclass
class CachedRate:
    rate: Decimal | None
    last_updated: datetime | None


class ExchangeRateService:
    """
    Service for refreshing and serving the cached USD/BRL rate.

    Features:
    - Fetches the latest rate from exchangerate-api.com
    - Stores it as a single keyed row in the config table
    - Serves the stored row without calling the rate API
    """

    def __init__(
        self,
        db: AsyncSession,
        http_client: httpx.AsyncClient | None = None,
        api_url: str | None = None,
        currency: str | None = None,
        cache_key: str | None = None,
    ):
        self.db = db
        self.api_url = api_url or settings.exchange_rate_api_url
        self.currency = currency or settings.exchange_rate_currency
        self.cache_key = cache_key or settings.exchange_rate_cache_key
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client for API calls"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    # =========================================================================
    # Update path
    # =========================================================================

    async def fetch_rate(self) -> Decimal:
        """
        Fetch the current USD -> {currency} rate.

        Raises:
            ExchangeRateFetchError: non-OK response, transport error or
                missing rate in the payload
        """
        try:
            client = await self._get_http_client()
            response = await client.get(self.api_url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Exchange rate API HTTP error: {e}")
            raise ExchangeRateFetchError(f"Failed to fetch exchange rate: {e}") from e
        except ValueError as e:
            logger.error(f"Exchange rate API returned invalid JSON: {e}")
            raise ExchangeRateFetchError(f"Invalid exchange rate response: {e}") from e

        try:
            raw_rate = data["rates"][self.currency]
            rate = Decimal(str(raw_rate))
        except (KeyError, TypeError, InvalidOperation) as e:
            logger.error(f"Exchange rate API parse error: {e}")
            raise ExchangeRateFetchError(
                f"{self.currency} rate not found in exchange rate response"
            ) from e

        if not rate.is_finite() or rate <= 0:
            raise ExchangeRateFetchError(f"Invalid {self.currency} rate: {raw_rate}")

        return rate

    async def save_rate(self, rate: Decimal, updated_at: datetime | None = None) -> ConfigEntry:
        """Upsert the cached rate row"""
        if updated_at is None:
            updated_at = datetime.now(timezone.utc)

        try:
            entry = await self.db.merge(
                ConfigEntry(key=self.cache_key, value=rate, updated_at=updated_at)
            )
            await self.db.commit()
            return entry
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to store exchange rate: {e}")
            raise ExchangeRateStoreError(f"Failed to store exchange rate: {e}") from e

    async def update_cached_rate(self) -> Decimal:
        """
        Fetch the current rate and store it.

        Returns:
            The rate that was stored
        """
        logger.info("Updating exchange rate")
        rate = await self.fetch_rate()
        await self.save_rate(rate)
        logger.info(f"Exchange rate updated: USD/{self.currency} = {rate}")
        return rate

    # =========================================================================
    # Serve path
    # =========================================================================

    async def get_cached_rate(self) -> CachedRate:
        """Read the stored rate; both fields are None if no update ever succeeded"""
        try:
            result = await self.db.execute(
                select(ConfigEntry.value, ConfigEntry.updated_at).where(
                    ConfigEntry.key == self.cache_key
                )
            )
            row = result.one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read cached exchange rate: {e}")
            raise ExchangeRateStoreError(f"Failed to read cached exchange rate: {e}") from e

        if row is None:
            return CachedRate(rate=None, last_updated=None)
        return CachedRate(rate=row.value, last_updated=row.updated_at)
