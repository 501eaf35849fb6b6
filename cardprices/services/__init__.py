# Services module - contains business logic

from .price_feed import (
    TcgCsvClient,
    PriceFeedError,
    UpstreamFetchError,
)

from .price_ingestion_service import (
    PriceIngestionService,
    PriceIngestionError,
    PersistedStateError,
    CardLookupError,
    NoMatchingCardsError,
    InsertError,
    MarkerUpdateError,
    IngestionResult,
)

from .retention_service import (
    PriceHistoryRetentionService,
    RetentionError,
    RetentionResult,
)

from .exchange_service import (
    ExchangeRateService,
    ExchangeRateServiceError,
    ExchangeRateFetchError,
    ExchangeRateStoreError,
    CachedRate,
)

from .price_query_service import PriceQueryService

__all__ = [
    # Price feed
    "TcgCsvClient",
    "PriceFeedError",
    "UpstreamFetchError",
    # Price ingestion
    "PriceIngestionService",
    "PriceIngestionError",
    "PersistedStateError",
    "CardLookupError",
    "NoMatchingCardsError",
    "InsertError",
    "MarkerUpdateError",
    "IngestionResult",
    # Retention
    "PriceHistoryRetentionService",
    "RetentionError",
    "RetentionResult",
    # Exchange rate
    "ExchangeRateService",
    "ExchangeRateServiceError",
    "ExchangeRateFetchError",
    "ExchangeRateStoreError",
    "CachedRate",
    # Queries
    "PriceQueryService",
]
