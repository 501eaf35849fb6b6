import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardprices.core.config import settings
from cardprices.core.database import get_db
from cardprices.core.redis import get_redis
from cardprices.models.card import PriceUpdateLog
from cardprices.services.scheduler_service import get_scheduler

logger = logging.getLogger(__name__)
router = APIRouter()


def redis_required() -> bool:
    """Redis backs shared rate limiting and scheduler run history"""
    return settings.rate_limit_backend.lower() == "redis" or settings.scheduler_enabled


@router.get("/health")
async def health_check() -> dict:
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": "cardprices-api",
        "version": settings.app_version,
    }


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
):
    """
    Readiness check

    - database: the pipeline tables answer a query
    - redis: PING, only blocking when Redis is in use
    - scheduler: whether in-process jobs are running
    """
    checks = {
        "database": False,
        "redis": False,
    }

    try:
        await db.execute(select(PriceUpdateLog.id).limit(1))
        checks["database"] = True
    except Exception as e:
        logger.warning(f"Readiness: database check failed: {e}")

    try:
        redis = await get_redis()
        await redis.ping()
        checks["redis"] = True
    except Exception as e:
        logger.warning(f"Readiness: redis check failed: {e}")

    required = ["database"] + (["redis"] if redis_required() else [])
    ready = all(checks[name] for name in required)

    scheduler = get_scheduler()
    body = {
        "ready": ready,
        "message": "Ready" if ready else "Not ready",
        "checks": checks,
        "required": required,
        "scheduler_running": bool(scheduler and scheduler.running),
    }
    return JSONResponse(status_code=200 if ready else 503, content=body)
