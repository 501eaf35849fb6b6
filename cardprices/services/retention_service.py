"""
Price History Retention Service

Deletes price snapshots older than the retention window (14 days by default).
The reported count comes from a separate COUNT issued before the DELETE, so
it can drift from the rows actually removed if other writers run between
the two statements.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardprices.core.config import settings
from cardprices.models.card import PriceHistory

logger = logging.getLogger(__name__)


class RetentionError(Exception):
    """Counting or deleting expired snapshots failed"""
    pass


@dataclass
class RetentionResult:
    message: str
    deleted_count: int
    cutoff_date: datetime


class PriceHistoryRetentionService:
    def __init__(self, db: AsyncSession, retention_days: int | None = None):
        self.db = db
        self.retention_days = (
            retention_days if retention_days is not None else settings.price_retention_days
        )

    def cutoff(self, now: datetime | None = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        return now - timedelta(days=self.retention_days)

    async def count_expired(self, cutoff_date: datetime) -> int:
        try:
            result = await self.db.execute(
                select(func.count())
                .select_from(PriceHistory)
                .where(PriceHistory.recorded_at < cutoff_date)
            )
            return result.scalar_one()
        except SQLAlchemyError as e:
            raise RetentionError(f"Failed to count old price history: {e}") from e

    async def delete_expired(self, cutoff_date: datetime) -> None:
        try:
            await self.db.execute(
                delete(PriceHistory).where(PriceHistory.recorded_at < cutoff_date)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise RetentionError(f"Failed to delete old price history: {e}") from e

    async def run(self, now: datetime | None = None) -> RetentionResult:
        """Delete every snapshot recorded strictly before now - retention_days"""
        logger.info("Cleanup price history job triggered")

        cutoff_date = self.cutoff(now)
        logger.info(f"Deleting price history records older than: {cutoff_date.isoformat()}")

        deleted_count = await self.count_expired(cutoff_date)
        await self.delete_expired(cutoff_date)

        logger.info(f"Successfully deleted {deleted_count} old price history records")
        return RetentionResult(
            message="Price history cleanup completed successfully",
            deleted_count=deleted_count,
            cutoff_date=cutoff_date,
        )
