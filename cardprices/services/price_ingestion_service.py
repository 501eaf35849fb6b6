"""
Price Ingestion Service

Synchronizes card prices from the tcgcsv.com feed into price_history:
1. Read the upstream last-updated marker and the stored marker
2. Optionally skip the run when both markers match (price_skip_if_unchanged)
3. Fetch the price document of every configured set, sequentially
4. Keep only records whose productId is a known card id (chunked lookup)
5. Insert snapshot rows in sequential batches, then advance the marker

There is no transaction spanning the run. Each batch commits on its own,
so a failed run can leave earlier batches behind without advancing the
marker; the next run inserts them again. Snapshots are an append-only log
and readers always take the newest row.
"""

import logging
import math
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardprices.core.config import Settings, settings as default_settings
from cardprices.models.card import Card, PriceHistory, PriceUpdateLog
from cardprices.schemas.prices import PriceRecord
from cardprices.services.price_feed import TcgCsvClient

logger = logging.getLogger(__name__)

MARKER_ROW_ID = 1

T = TypeVar("T")


class PriceIngestionError(Exception):
    """Base exception for the price ingestion job"""
    pass


class PersistedStateError(PriceIngestionError):
    """The stored ingestion marker could not be read"""
    pass


class CardLookupError(PriceIngestionError):
    """A chunk of the card existence lookup failed"""
    pass


class NoMatchingCardsError(PriceIngestionError):
    """No fetched price record references a known card"""
    pass


class InsertError(PriceIngestionError):
    """A snapshot batch could not be inserted"""
    pass


class MarkerUpdateError(PriceIngestionError):
    """Snapshots were written but the marker could not be advanced"""
    pass


@dataclass
class IngestionResult:
    message: str
    updated: int


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most `size` items"""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def unique_product_ids(records: Iterable[PriceRecord]) -> list[int]:
    """Distinct product ids in first-seen order"""
    return list(dict.fromkeys(record.product_id for record in records))


class PriceIngestionService:
    """
    One synchronization pass over the price feed.

    The service holds no state between runs; every call of run() re-reads
    the markers and re-fetches the feed.
    """

    def __init__(
        self,
        db: AsyncSession,
        feed: TcgCsvClient | None = None,
        config: Settings | None = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.feed = feed or TcgCsvClient(
            base_url=self.config.price_feed_base_url,
            category_id=self.config.price_category_id,
        )

    async def close(self) -> None:
        await self.feed.close()

    # =========================================================================
    # Marker
    # =========================================================================

    async def get_stored_marker(self) -> str | None:
        """Read the last ingested upstream marker (None if never recorded)"""
        try:
            result = await self.db.execute(
                select(PriceUpdateLog.last_update).where(PriceUpdateLog.id == MARKER_ROW_ID)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching last update date from database: {e}")
            raise PersistedStateError(
                f"Failed to fetch last update from database: {e}"
            ) from e

    async def update_stored_marker(self, marker: str) -> None:
        try:
            row = await self.db.get(PriceUpdateLog, MARKER_ROW_ID)
            if row is None:
                self.db.add(PriceUpdateLog(id=MARKER_ROW_ID, last_update=marker))
            else:
                row.last_update = marker
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error updating last update timestamp: {e}")
            raise MarkerUpdateError(f"Failed to update last update timestamp: {e}") from e

    # =========================================================================
    # Fetch / filter
    # =========================================================================

    async def fetch_all_prices(self, set_ids: Sequence[int]) -> list[PriceRecord]:
        """Fetch every configured set in order; failed sets are skipped"""
        all_prices: list[PriceRecord] = []
        for set_id in set_ids:
            records = await self.feed.fetch_set_prices(set_id)
            if records:
                all_prices.extend(records)
        logger.info(f"Fetched prices for {len(all_prices)} cards from {len(set_ids)} sets")
        return all_prices

    async def lookup_existing_card_ids(self, product_ids: Sequence[int]) -> set[int]:
        """
        Return the subset of product_ids that exist in cards.

        Issues one query per chunk of price_lookup_chunk_size ids. Any
        failed chunk aborts the lookup.
        """
        existing: set[int] = set()
        chunk_size = self.config.price_lookup_chunk_size
        for index, chunk in enumerate(chunked(product_ids, chunk_size), start=1):
            try:
                result = await self.db.execute(select(Card.id).where(Card.id.in_(chunk)))
            except SQLAlchemyError as e:
                logger.error(f"Card lookup chunk {index} failed: {e}")
                raise CardLookupError(f"Failed to fetch existing cards: {e}") from e
            existing.update(result.scalars().all())
        return existing

    def build_snapshot_rows(
        self,
        records: Iterable[PriceRecord],
        recorded_at: datetime,
    ) -> list[dict[str, Any]]:
        return [
            {
                "card_id": record.product_id,
                "price_min_market_us": record.low_price,
                "price_avg_market_us": record.mid_price,
                "price_max_market_us": record.high_price,
                "price_market_market_us": record.market_price,
                "recorded_at": recorded_at,
                "source": self.config.price_source,
            }
            for record in records
        ]

    # =========================================================================
    # Insert
    # =========================================================================

    async def insert_snapshots(self, rows: Sequence[dict[str, Any]]) -> int:
        """
        Insert rows in sequential batches, committing each batch.

        Stops at the first failed batch. Batches committed before it stay.
        """
        batch_size = self.config.price_insert_batch_size
        total_batches = math.ceil(len(rows) / batch_size)
        inserted = 0

        for index, batch in enumerate(chunked(rows, batch_size), start=1):
            try:
                await self.db.execute(insert(PriceHistory), list(batch))
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Error inserting batch {index}: {e}")
                raise InsertError(f"Failed to insert price history batch: {e}") from e

            inserted += len(batch)
            logger.info(f"Inserted batch {index} of {total_batches}")

        return inserted

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> IngestionResult:
        """
        Execute one synchronization pass.

        Raises:
            UpstreamFetchError: marker document unavailable
            PriceIngestionError: any datastore step failed
        """
        logger.info("Update prices job triggered")

        external_marker = await self.feed.fetch_last_updated()
        logger.info(f"External last update: {external_marker}")

        stored_marker = await self.get_stored_marker()
        logger.info(f"Database last update: {stored_marker}")

        if self.config.price_skip_if_unchanged and stored_marker == external_marker:
            logger.info("No update needed, skipping...")
            return IngestionResult(message="No update needed", updated=0)

        all_prices = await self.fetch_all_prices(self.config.price_set_ids)

        product_ids = unique_product_ids(all_prices)
        existing_ids = await self.lookup_existing_card_ids(product_ids)
        filtered = [record for record in all_prices if record.product_id in existing_ids]

        dropped = len(all_prices) - len(filtered)
        logger.info(
            f"Filtered price data: {len(filtered)} valid cards ({dropped} records for unknown cards dropped)"
        )

        if not filtered:
            raise NoMatchingCardsError("No valid price data: no matching cards found")

        recorded_at = datetime.now(timezone.utc)
        rows = self.build_snapshot_rows(filtered, recorded_at)
        inserted = await self.insert_snapshots(rows)

        await self.update_stored_marker(external_marker)

        logger.info("Price update completed successfully")
        return IngestionResult(message="Price update completed successfully", updated=inserted)

