from .common import JobErrorResponse, ServiceErrorResponse
from .prices import (
    PriceRecord,
    PriceUpdateResponse,
    PriceCleanupResponse,
    PriceSnapshotResponse,
    PricePoint,
    LatestPriceResponse,
    PriceHistoryResponse,
)
from .exchange import (
    ExchangeRateRequest,
    CachedExchangeRateResponse,
    ExchangeRateUpdateResponse,
)

__all__ = [
    # Common
    "JobErrorResponse",
    "ServiceErrorResponse",
    # Prices
    "PriceRecord",
    "PriceUpdateResponse",
    "PriceCleanupResponse",
    "PriceSnapshotResponse",
    "PricePoint",
    "LatestPriceResponse",
    "PriceHistoryResponse",
    # Exchange
    "ExchangeRateRequest",
    "CachedExchangeRateResponse",
    "ExchangeRateUpdateResponse",
]
