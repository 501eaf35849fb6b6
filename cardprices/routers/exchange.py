"""
Exchange Rate API Endpoints

Provides the cached USD/BRL rate:
- POST /exchange-rate {"isUpdate": true}   - refresh the cached rate (cron)
- POST /exchange-rate {} or GET            - serve the cached rate
- OPTIONS /exchange-rate                   - empty 200 for CORS callers

Every GET/POST passes the per-client rate limiter first.
"""

import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from cardprices.core.database import get_db
from cardprices.core.rate_limit import enforce_rate_limit
from cardprices.schemas.common import ServiceErrorResponse
from cardprices.schemas.exchange import (
    CachedExchangeRateResponse,
    ExchangeRateRequest,
    ExchangeRateUpdateResponse,
)
from cardprices.services.exchange_service import (
    ExchangeRateService,
    ExchangeRateServiceError,
)

logger = logging.getLogger(__name__)
router = APIRouter()

ERROR_RESPONSES = {
    429: {"model": ServiceErrorResponse},
    503: {"model": ServiceErrorResponse},
}


async def get_exchange_service(
    db: AsyncSession = Depends(get_db),
) -> AsyncGenerator[ExchangeRateService, None]:
    service = ExchangeRateService(db)
    try:
        yield service
    finally:
        await service.close()


async def parse_exchange_request(request: Request) -> ExchangeRateRequest:
    """Absent or unparseable bodies mean serve mode"""
    try:
        body = await request.json()
        return ExchangeRateRequest.model_validate(body)
    except (ValueError, ValidationError):
        return ExchangeRateRequest(is_update=False)


async def _update_rate(service: ExchangeRateService):
    try:
        rate = await service.update_cached_rate()
    except ExchangeRateServiceError as e:
        logger.error(f"Failed to update exchange rate: {e}")
        return JSONResponse(
            status_code=503,
            content={"error": "Failed to update exchange rate", "details": str(e)},
        )

    return ExchangeRateUpdateResponse(
        success=True,
        message="Exchange rate updated successfully",
        rate=float(rate),
    )


async def _serve_rate(service: ExchangeRateService):
    try:
        cached = await service.get_cached_rate()
    except ExchangeRateServiceError as e:
        logger.error(f"Failed to read cached exchange rate: {e}")
        return JSONResponse(
            status_code=503,
            content={"error": "Exchange rate unavailable", "details": str(e)},
        )

    return CachedExchangeRateResponse(
        rate=float(cached.rate) if cached.rate is not None else None,
        last_updated=cached.last_updated,
    )


@router.options("/exchange-rate")
async def exchange_rate_options() -> Response:
    return Response(status_code=200)


@router.post(
    "/exchange-rate",
    response_model=None,
    responses={
        200: {"description": "Cached rate (serve mode) or update result (update mode)"},
        **ERROR_RESPONSES,
    },
    dependencies=[Depends(enforce_rate_limit)],
)
async def exchange_rate(
    payload: ExchangeRateRequest = Depends(parse_exchange_request),
    service: ExchangeRateService = Depends(get_exchange_service),
):
    """
    Get or refresh the USD/BRL rate.

    With `isUpdate: true` the rate is fetched from exchangerate-api.com and
    stored; a failed refresh keeps the previous value. Otherwise the stored
    value is returned, `rate` being null until the first successful refresh.
    """
    if payload.is_update:
        return await _update_rate(service)
    return await _serve_rate(service)


@router.get(
    "/exchange-rate",
    response_model=CachedExchangeRateResponse,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(enforce_rate_limit)],
)
async def get_cached_rate(
    service: ExchangeRateService = Depends(get_exchange_service),
):
    """Serve the cached USD/BRL rate without calling the rate API"""
    return await _serve_rate(service)
