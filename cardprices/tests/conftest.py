"""Test configuration and fixtures."""
import os
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal

# Keep the app from reaching real services while tests import it
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cardprices.core.config import Settings
from cardprices.core.database import Base
from cardprices.models import Card, PriceHistory

Route = httpx.Response | Callable[[httpx.Request], httpx.Response]


@pytest_asyncio.fixture()
async def engine():
    """In-memory SQLite engine shared by every session of one test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncSession:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def test_settings() -> Settings:
    """Settings pointing at fake upstreams with small, known sizes"""
    return Settings(
        price_feed_base_url="https://tcgcsv.test",
        price_category_id=68,
        price_set_ids=[3189],
        price_skip_if_unchanged=False,
        price_lookup_chunk_size=500,
        price_insert_batch_size=100,
        price_retention_days=14,
        exchange_rate_api_url="https://rates.test/v4/latest/USD",
        scheduler_enabled=False,
    )


def make_http_client(routes: dict[str, Route]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered from `routes` (keyed by URL path)"""

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        return route

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def sample_prices() -> dict:
    """Price document with one known card (101) and one unknown card (999)"""
    return {
        "success": True,
        "results": [
            {
                "productId": 101,
                "lowPrice": 1.0,
                "midPrice": 1.5,
                "highPrice": 2.0,
                "marketPrice": 1.8,
                "subTypeName": "Normal",
            },
            {
                "productId": 999,
                "lowPrice": 5,
                "midPrice": 5,
                "highPrice": 5,
                "marketPrice": 5,
                "subTypeName": "Normal",
            },
        ],
    }


async def add_cards(session: AsyncSession, card_ids) -> None:
    session.add_all([Card(id=card_id, name=f"Card {card_id}") for card_id in card_ids])
    await session.commit()


async def add_snapshot(
    session: AsyncSession,
    card_id: int,
    recorded_at: datetime,
    market: str | None = "1.00",
    low: str | None = "0.50",
) -> PriceHistory:
    snapshot = PriceHistory(
        card_id=card_id,
        recorded_at=recorded_at,
        price_min_market_us=Decimal(low) if low is not None else None,
        price_market_market_us=Decimal(market) if market is not None else None,
        source="tcg",
    )
    session.add(snapshot)
    await session.commit()
    return snapshot


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
