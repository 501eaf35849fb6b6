from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cardprices.core.database import get_db
from cardprices.schemas.prices import (
    LatestPriceResponse,
    PriceHistoryResponse,
    PriceSnapshotResponse,
)
from cardprices.services.price_query_service import PriceQueryService

router = APIRouter()


def get_price_query_service(db: AsyncSession = Depends(get_db)) -> PriceQueryService:
    return PriceQueryService(db)


@router.get("/{card_id}/prices/latest", response_model=LatestPriceResponse)
async def get_latest_price(
    card_id: int,
    service: PriceQueryService = Depends(get_price_query_service),
) -> LatestPriceResponse:
    """
    Latest known prices of a card.

    Each field holds the newest non-null value among the card's most
    recent snapshots, with the time it was recorded.
    """
    latest = await service.get_latest_price(card_id)
    if latest is None:
        raise HTTPException(status_code=404, detail=f"No prices recorded for card {card_id}")
    return LatestPriceResponse(**latest)


@router.get("/{card_id}/prices/history", response_model=PriceHistoryResponse)
async def get_price_history(
    card_id: int,
    days: int = Query(30, ge=1, le=365, description="Number of days to fetch"),
    service: PriceQueryService = Depends(get_price_query_service),
) -> PriceHistoryResponse:
    """Price snapshots of a card over the last `days`, oldest first"""
    snapshots = await service.get_price_history(card_id, days=days)
    return PriceHistoryResponse(
        card_id=card_id,
        days=days,
        count=len(snapshots),
        items=[PriceSnapshotResponse.model_validate(s) for s in snapshots],
    )
