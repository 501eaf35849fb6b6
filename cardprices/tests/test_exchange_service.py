"""
Tests for the exchange rate cache service
"""

from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from cardprices.models import ConfigEntry
from cardprices.services.exchange_service import (
    ExchangeRateFetchError,
    ExchangeRateService,
    ExchangeRateStoreError,
)

from conftest import make_http_client, utc

RATES_PATH = "/v4/latest/USD"


def make_service(db, route) -> ExchangeRateService:
    return ExchangeRateService(
        db,
        http_client=make_http_client({RATES_PATH: route}),
        api_url=f"https://rates.test{RATES_PATH}",
        currency="BRL",
        cache_key="CURRENT_USD_BRL_RATE",
    )


def rates_response(brl=5.43) -> httpx.Response:
    return httpx.Response(
        200, json={"base": "USD", "date": "2024-06-01", "rates": {"USD": 1, "BRL": brl, "EUR": 0.92}}
    )


class TestFetchRate:
    """Test rate API parsing"""

    @pytest.mark.asyncio
    async def test_fetch_rate(self, db_session):
        service = make_service(db_session, rates_response(5.43))
        assert await service.fetch_rate() == Decimal("5.43")

    @pytest.mark.asyncio
    async def test_non_ok_response(self, db_session):
        service = make_service(db_session, httpx.Response(500))
        with pytest.raises(ExchangeRateFetchError):
            await service.fetch_rate()

    @pytest.mark.asyncio
    async def test_missing_brl_rate(self, db_session):
        service = make_service(
            db_session, httpx.Response(200, json={"rates": {"USD": 1, "EUR": 0.92}})
        )
        with pytest.raises(ExchangeRateFetchError, match="BRL"):
            await service.fetch_rate()

    @pytest.mark.asyncio
    async def test_invalid_json(self, db_session):
        service = make_service(db_session, httpx.Response(200, text="<html>"))
        with pytest.raises(ExchangeRateFetchError):
            await service.fetch_rate()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("brl", [0, -1, "abc", None])
    async def test_rejects_unusable_rate(self, db_session, brl):
        service = make_service(db_session, rates_response(brl))
        with pytest.raises(ExchangeRateFetchError):
            await service.fetch_rate()


class TestCachedRate:
    """Test update and serve paths against the config table"""

    @pytest.mark.asyncio
    async def test_serve_before_any_update(self, db_session):
        service = make_service(db_session, rates_response())

        cached = await service.get_cached_rate()

        assert cached.rate is None
        assert cached.last_updated is None

    @pytest.mark.asyncio
    async def test_update_then_serve(self, db_session):
        service = make_service(db_session, rates_response(5.43))

        rate = await service.update_cached_rate()
        cached = await service.get_cached_rate()

        assert rate == Decimal("5.43")
        assert cached.rate == Decimal("5.43")
        assert cached.last_updated is not None

    @pytest.mark.asyncio
    async def test_second_update_overwrites_single_row(self, db_session):
        await make_service(db_session, rates_response(5.10)).update_cached_rate()
        await make_service(db_session, rates_response(5.55)).update_cached_rate()

        entry = await db_session.get(ConfigEntry, "CURRENT_USD_BRL_RATE")
        await db_session.refresh(entry)
        assert entry.value == Decimal("5.55")

    @pytest.mark.asyncio
    async def test_failed_update_keeps_previous_rate(self, db_session):
        updated_at = utc(2024, 6, 1, 8, 0, 0)
        await make_service(db_session, rates_response(5.10)).save_rate(
            Decimal("5.10"), updated_at=updated_at
        )

        failing = make_service(db_session, httpx.Response(503))
        with pytest.raises(ExchangeRateFetchError):
            await failing.update_cached_rate()

        cached = await failing.get_cached_rate()
        assert cached.rate == Decimal("5.10")
        assert cached.last_updated.replace(tzinfo=None) == updated_at.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_serve_never_calls_rate_api(self, db_session):
        calls = []

        def route(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return rates_response()

        service = make_service(db_session, route)
        await service.get_cached_rate()
        await service.get_cached_rate()

        assert calls == []

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_rate(self, db_session):
        updated_at = utc(2024, 6, 1, 8, 0, 0)
        await make_service(db_session, rates_response(5.43)).save_rate(
            Decimal("5.43"), updated_at=updated_at
        )

        service = make_service(db_session, rates_response(5.90))
        error = OperationalError("UPDATE config", {}, Exception("database unavailable"))
        with patch.object(db_session, "merge", side_effect=error):
            with pytest.raises(ExchangeRateStoreError):
                await service.update_cached_rate()

        cached = await service.get_cached_rate()
        assert cached.rate == Decimal("5.43")
        assert cached.last_updated.replace(tzinfo=None) == updated_at.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_failed_read_raises_store_error(self, db_session):
        service = make_service(db_session, rates_response())
        error = OperationalError("SELECT config", {}, Exception("database unavailable"))

        with patch.object(db_session, "execute", side_effect=error):
            with pytest.raises(ExchangeRateStoreError):
                await service.get_cached_rate()
