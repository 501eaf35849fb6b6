"""
Read-side queries over price_history.

Snapshots are append-only and may repeat within a run window, so every
query orders by recorded_at and takes the newest rows instead of
assuming one row per card.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardprices.models.card import PriceHistory

logger = logging.getLogger(__name__)

PRICE_FIELDS = (
    "price_min_market_us",
    "price_avg_market_us",
    "price_max_market_us",
    "price_market_market_us",
)


class PriceQueryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_latest_price(self, card_id: int, lookback: int = 10) -> dict[str, Any] | None:
        """
        Newest non-null value of each price field.

        Scans the `lookback` most recent snapshots of the card, newest first.
        A field that is null in every scanned snapshot is returned as None.

        Returns:
            dict with card_id, recorded_at of the newest snapshot and one
            {"value", "recorded_at"} entry (or None) per price field;
            None when the card has no snapshots
        """
        result = await self.db.execute(
            select(PriceHistory)
            .where(PriceHistory.card_id == card_id)
            .order_by(PriceHistory.recorded_at.desc(), PriceHistory.id.desc())
            .limit(lookback)
        )
        snapshots = list(result.scalars().all())
        if not snapshots:
            return None

        latest: dict[str, Any] = {
            "card_id": card_id,
            "recorded_at": snapshots[0].recorded_at,
        }
        for field in PRICE_FIELDS:
            latest[field] = None
            for snapshot in snapshots:
                value = getattr(snapshot, field)
                if value is not None:
                    latest[field] = {"value": value, "recorded_at": snapshot.recorded_at}
                    break
        return latest

    async def get_price_history(
        self,
        card_id: int,
        days: int = 30,
        now: datetime | None = None,
    ) -> list[PriceHistory]:
        """Snapshots of the card recorded within the last `days`, oldest first"""
        since = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        result = await self.db.execute(
            select(PriceHistory)
            .where(
                PriceHistory.card_id == card_id,
                PriceHistory.recorded_at >= since,
            )
            .order_by(PriceHistory.recorded_at.asc(), PriceHistory.id.asc())
        )
        return list(result.scalars().all())
