from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class PriceRecord(BaseModel):
    """One entry of a tcgcsv `results` array"""

    product_id: int = Field(..., alias="productId")
    low_price: Decimal | None = Field(None, alias="lowPrice")
    mid_price: Decimal | None = Field(None, alias="midPrice")
    high_price: Decimal | None = Field(None, alias="highPrice")
    market_price: Decimal | None = Field(None, alias="marketPrice")

    class Config:
        populate_by_name = True
        extra = "ignore"


class PriceUpdateResponse(BaseModel):
    """Result of one ingestion run"""

    message: str
    updated: int = Field(..., description="Number of snapshot rows inserted")


class PriceCleanupResponse(BaseModel):
    """Result of one retention run"""

    message: str
    deleted_count: int = Field(..., alias="deletedCount")
    cutoff_date: datetime = Field(..., alias="cutoffDate")

    class Config:
        populate_by_name = True


class PriceSnapshotResponse(BaseModel):
    """Stored price snapshot"""

    id: int
    card_id: int
    recorded_at: datetime
    price_min_market_us: Decimal | None = None
    price_avg_market_us: Decimal | None = None
    price_max_market_us: Decimal | None = None
    price_market_market_us: Decimal | None = None
    source: str | None = None

    class Config:
        from_attributes = True


class PricePoint(BaseModel):
    """A price value and the snapshot time it was recorded at"""

    value: Decimal
    recorded_at: datetime


class LatestPriceResponse(BaseModel):
    """Newest non-null value of each price field for a card"""

    card_id: int
    recorded_at: datetime = Field(..., description="Time of the newest snapshot")
    price_min_market_us: PricePoint | None = None
    price_avg_market_us: PricePoint | None = None
    price_max_market_us: PricePoint | None = None
    price_market_market_us: PricePoint | None = None


class PriceHistoryResponse(BaseModel):
    """Snapshots of one card within a lookback window, oldest first"""

    card_id: int
    days: int
    count: int
    items: list[PriceSnapshotResponse]
