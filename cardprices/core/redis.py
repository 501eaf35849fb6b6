"""
Redis Module for Card Prices

Key Structure Design:
- cardprices:scheduler:state          - 스케줄러 상태 (running, started_at)
- cardprices:scheduler:history        - 최근 작업 실행 기록 (List, 최신순)
- cardprices:ratelimit:{client_id}    - 클라이언트별 고정 윈도우 카운터 (RATE_LIMIT_BACKEND=redis)
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from redis.asyncio import Redis, from_url

from .config import settings

redis_client: Redis | None = None


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types"""
    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """JSON dumps with Decimal support"""
    return json.dumps(obj, cls=DecimalEncoder, ensure_ascii=False)


def json_loads(s: str) -> Any:
    """JSON loads wrapper"""
    return json.loads(s)


async def init_redis() -> Redis:
    """Initialize Redis connection"""
    global redis_client
    redis_client = await from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    return redis_client


async def close_redis() -> None:
    """Close Redis connection"""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


async def get_redis() -> Redis:
    """Dependency for getting Redis client"""
    if redis_client is None:
        await init_redis()
    return redis_client  # type: ignore


def make_key(*parts: str) -> str:
    return ":".join([settings.redis_prefix, *parts])


class SchedulerStateCache:
    """
    스케줄러 상태 및 실행 기록 캐시

    Keys:
    - {prefix}:scheduler:state   (String, JSON)
    - {prefix}:scheduler:history (List, JSON per run, newest first)
    """

    def __init__(self, history_size: int | None = None):
        self.state_key = make_key("scheduler", "state")
        self.history_key = make_key("scheduler", "history")
        self.history_size = history_size or settings.scheduler_history_size

    async def set_state(self, is_running: bool, **extra: Any) -> None:
        """Set scheduler state"""
        client = await get_redis()
        data = {
            "is_running": is_running,
            "updated_at": datetime.now().isoformat(),
            **extra,
        }
        await client.set(self.state_key, json_dumps(data))

    async def get_state(self) -> dict | None:
        """Get scheduler state"""
        client = await get_redis()
        value = await client.get(self.state_key)
        return json_loads(value) if value else None

    async def add_run_history(
        self,
        job_id: str,
        run_time: datetime,
        duration_ms: int,
        success: bool,
        error: str | None = None,
        result: dict[str, Any] | None = None,
    ) -> None:
        """Prepend one job run and trim the list to history_size"""
        client = await get_redis()
        entry = {
            "job_id": job_id,
            "run_time": run_time.isoformat(),
            "duration_ms": duration_ms,
            "success": success,
        }
        if error is not None:
            entry["error"] = error
        if result is not None:
            entry["result"] = result
        await client.lpush(self.history_key, json_dumps(entry))
        await client.ltrim(self.history_key, 0, self.history_size - 1)

    async def get_run_history(self, limit: int = 10) -> list[dict]:
        """Get most recent job runs"""
        client = await get_redis()
        values = await client.lrange(self.history_key, 0, limit - 1)
        return [json_loads(v) for v in values]


# Singleton instances
scheduler_state_cache = SchedulerStateCache()
