"""
Scheduled Job Endpoints

HTTP triggers for the price pipeline jobs, for an external cron:
- POST /jobs/update-prices          - price ingestion run
- POST /jobs/cleanup-price-history  - snapshot retention run

Failures return 500 {"error": message}; the next scheduled call is the retry.
"""

import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cardprices.core.database import get_db
from cardprices.schemas.common import JobErrorResponse
from cardprices.schemas.prices import PriceCleanupResponse, PriceUpdateResponse
from cardprices.services.price_feed import PriceFeedError
from cardprices.services.price_ingestion_service import (
    PriceIngestionError,
    PriceIngestionService,
)
from cardprices.services.retention_service import (
    PriceHistoryRetentionService,
    RetentionError,
)

logger = logging.getLogger(__name__)
router = APIRouter()


async def get_ingestion_service(
    db: AsyncSession = Depends(get_db),
) -> AsyncGenerator[PriceIngestionService, None]:
    service = PriceIngestionService(db)
    try:
        yield service
    finally:
        await service.close()


def get_retention_service(
    db: AsyncSession = Depends(get_db),
) -> PriceHistoryRetentionService:
    return PriceHistoryRetentionService(db)


@router.post(
    "/update-prices",
    response_model=PriceUpdateResponse,
    responses={500: {"model": JobErrorResponse}},
)
async def update_prices(
    service: PriceIngestionService = Depends(get_ingestion_service),
):
    """
    Run one price ingestion pass.

    Fetches the tcgcsv.com marker and every configured set, keeps records
    of known cards, and appends one snapshot per card.
    """
    try:
        result = await service.run()
    except (PriceIngestionError, PriceFeedError) as e:
        logger.error(f"Error updating prices: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return PriceUpdateResponse(message=result.message, updated=result.updated)


@router.post(
    "/cleanup-price-history",
    response_model=PriceCleanupResponse,
    responses={500: {"model": JobErrorResponse}},
)
async def cleanup_price_history(
    service: PriceHistoryRetentionService = Depends(get_retention_service),
):
    """Delete price snapshots older than the retention window"""
    try:
        result = await service.run()
    except RetentionError as e:
        logger.error(f"Error cleaning up price history: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return PriceCleanupResponse(
        message=result.message,
        deleted_count=result.deleted_count,
        cutoff_date=result.cutoff_date,
    )
