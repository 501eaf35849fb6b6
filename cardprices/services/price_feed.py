"""
tcgcsv.com price feed client

tcgcsv.com republishes TCGplayer price data as static documents:
- /last-updated.txt                              - freshness marker (plain text)
- /tcgplayer/{categoryId}/{groupId}/prices       - {"results": [price records]}
"""

import logging

import httpx
from pydantic import ValidationError

from cardprices.core.config import settings
from cardprices.schemas.prices import PriceRecord

logger = logging.getLogger(__name__)


class PriceFeedError(Exception):
    """Base exception for the price feed client"""
    pass


class UpstreamFetchError(PriceFeedError):
    """Upstream answered with a non-OK status or could not be reached"""
    pass


class TcgCsvClient:
    """
    Thin async client over the tcgcsv.com documents.

    Requests are issued one at a time; no retry is attempted here.
    """

    def __init__(
        self,
        base_url: str | None = None,
        category_id: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.price_feed_base_url).rstrip("/")
        self.category_id = category_id if category_id is not None else settings.price_category_id
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client for API calls"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client if this instance created it"""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def prices_url(self, set_id: int) -> str:
        return f"{self.base_url}/tcgplayer/{self.category_id}/{set_id}/prices"

    async def fetch_last_updated(self) -> str:
        """
        Fetch the upstream last-updated marker.

        Raises:
            UpstreamFetchError: non-OK response or transport failure
        """
        url = f"{self.base_url}/last-updated.txt"
        client = await self._get_http_client()
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Failed to fetch last updated date: {e}") from e

        if not response.is_success:
            raise UpstreamFetchError(
                f"Failed to fetch last updated date: {response.status_code} {response.reason_phrase}"
            )
        return response.text.strip()

    async def fetch_set_prices(self, set_id: int) -> list[PriceRecord] | None:
        """
        Fetch the price document of one set.

        Returns:
            Parsed price records, or None when this set could not be fetched.
            A failed set is logged and skipped so one endpoint never aborts a run.
        """
        url = self.prices_url(set_id)
        client = await self._get_http_client()
        logger.info(f"Fetching prices from: {url}")

        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch prices from {url}: {e}")
            return None

        if not response.is_success:
            logger.error(
                f"Failed to fetch prices from {url}: {response.status_code} {response.reason_phrase}"
            )
            return None

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from {url}: {e}")
            return None

        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            logger.warning(f"No results array found for URL: {url}")
            return []

        records = []
        for item in results:
            try:
                records.append(PriceRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed price record from {url}: {e.errors()[0]['msg']}")
        return records
