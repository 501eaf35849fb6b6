from datetime import datetime

from pydantic import BaseModel, Field


class ExchangeRateRequest(BaseModel):
    """Body of POST /exchange-rate"""

    is_update: bool = Field(default=False, alias="isUpdate")

    class Config:
        populate_by_name = True


class CachedExchangeRateResponse(BaseModel):
    """Serve mode: cached USD -> BRL rate, null until the first successful update"""

    rate: float | None = Field(None, description="Cached exchange rate")
    last_updated: datetime | None = Field(None, alias="lastUpdated")

    class Config:
        populate_by_name = True


class ExchangeRateUpdateResponse(BaseModel):
    """Update mode: newly fetched and stored rate"""

    success: bool = True
    message: str
    rate: float
