"""
Price Pipeline Scheduler Service

APScheduler 기반 가격 파이프라인 스케줄러

Jobs:
- price_ingestion        - tcgcsv.com 가격 동기화 (기본 6시간 간격)
- price_history_cleanup  - 14일 지난 가격 스냅샷 삭제 (매일 03:30 UTC)
- exchange_rate_update   - USD/BRL 환율 캐시 갱신 (기본 8시간 간격)

Jobs never retry in-process; a failed run is logged and the next tick is
the retry. Run results are kept in Redis for the status endpoint.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from datetime import datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from cardprices.core.config import settings
from cardprices.core.database import async_session_factory
from cardprices.core.redis import scheduler_state_cache
from cardprices.services.exchange_service import ExchangeRateService
from cardprices.services.price_ingestion_service import PriceIngestionService
from cardprices.services.retention_service import PriceHistoryRetentionService

logger = logging.getLogger(__name__)

PRICE_INGESTION_JOB_ID = "price_ingestion"
PRICE_CLEANUP_JOB_ID = "price_history_cleanup"
EXCHANGE_RATE_JOB_ID = "exchange_rate_update"

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


class UnknownJobError(KeyError):
    pass


async def run_price_ingestion() -> dict[str, Any]:
    async with async_session_factory() as db:
        service = PriceIngestionService(db)
        try:
            return asdict(await service.run())
        finally:
            await service.close()


async def run_price_cleanup() -> dict[str, Any]:
    async with async_session_factory() as db:
        result = await PriceHistoryRetentionService(db).run()
        return {
            "message": result.message,
            "deleted_count": result.deleted_count,
            "cutoff_date": result.cutoff_date.isoformat(),
        }


async def run_exchange_rate_update() -> dict[str, Any]:
    async with async_session_factory() as db:
        service = ExchangeRateService(db)
        try:
            rate = await service.update_cached_rate()
            return {"rate": str(rate)}
        finally:
            await service.close()


JOB_RUNNERS: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
    PRICE_INGESTION_JOB_ID: run_price_ingestion,
    PRICE_CLEANUP_JOB_ID: run_price_cleanup,
    EXCHANGE_RATE_JOB_ID: run_exchange_rate_update,
}


async def _record_run(
    job_id: str,
    run_time: datetime,
    duration_ms: int,
    success: bool,
    error: str | None = None,
    result: dict[str, Any] | None = None,
) -> None:
    # Job history is informational; a Redis outage must not fail the job
    try:
        await scheduler_state_cache.add_run_history(
            job_id=job_id,
            run_time=run_time,
            duration_ms=duration_ms,
            success=success,
            error=error,
            result=result,
        )
    except Exception as e:
        logger.warning(f"Failed to record run history for {job_id}: {e}")


async def execute_job(job_id: str) -> dict[str, Any]:
    """
    Run one pipeline job and record its outcome.

    Returns:
        {"job_id", "success", "duration_ms", "result" | "error"}
    """
    runner = JOB_RUNNERS.get(job_id)
    if runner is None:
        raise UnknownJobError(job_id)

    job_start = datetime.now()
    try:
        result = await runner()
    except Exception as e:
        duration_ms = int((datetime.now() - job_start).total_seconds() * 1000)
        logger.error(f"Scheduled job {job_id} failed after {duration_ms}ms: {e}")
        await _record_run(job_id, job_start, duration_ms, success=False, error=str(e)[:200])
        return {
            "job_id": job_id,
            "success": False,
            "duration_ms": duration_ms,
            "error": str(e),
        }

    duration_ms = int((datetime.now() - job_start).total_seconds() * 1000)
    logger.info(f"Scheduled job {job_id} completed in {duration_ms}ms: {result}")
    await _record_run(job_id, job_start, duration_ms, success=True, result=result)
    return {
        "job_id": job_id,
        "success": True,
        "duration_ms": duration_ms,
        "result": result,
    }


async def price_ingestion_job() -> None:
    await execute_job(PRICE_INGESTION_JOB_ID)


async def price_cleanup_job() -> None:
    await execute_job(PRICE_CLEANUP_JOB_ID)


async def exchange_rate_job() -> None:
    await execute_job(EXCHANGE_RATE_JOB_ID)


def job_listener(event: JobExecutionEvent) -> None:
    """스케줄러 작업 이벤트 리스너"""
    if event.exception:
        logger.error(
            f"Scheduler job {event.job_id} failed with exception: {event.exception}"
        )


def build_scheduler() -> AsyncIOScheduler:
    """Create a scheduler with all pipeline jobs registered (not started)"""
    scheduler = AsyncIOScheduler(
        timezone=settings.scheduler_timezone,
        job_defaults={
            "coalesce": True,  # 밀린 작업 합치기
            "max_instances": 1,  # 동시 실행 제한
            "misfire_grace_time": 300,
        },
    )
    scheduler.add_listener(job_listener, EVENT_JOB_ERROR | EVENT_JOB_EXECUTED)

    scheduler.add_job(
        price_ingestion_job,
        trigger=CronTrigger.from_crontab(
            settings.scheduler_price_update_cron, timezone=settings.scheduler_timezone
        ),
        id=PRICE_INGESTION_JOB_ID,
        name="Card Price Ingestion",
        replace_existing=True,
    )
    scheduler.add_job(
        price_cleanup_job,
        trigger=CronTrigger.from_crontab(
            settings.scheduler_price_cleanup_cron, timezone=settings.scheduler_timezone
        ),
        id=PRICE_CLEANUP_JOB_ID,
        name="Price History Cleanup",
        replace_existing=True,
    )
    scheduler.add_job(
        exchange_rate_job,
        trigger=CronTrigger.from_crontab(
            settings.scheduler_exchange_rate_cron, timezone=settings.scheduler_timezone
        ),
        id=EXCHANGE_RATE_JOB_ID,
        name="USD/BRL Exchange Rate Update",
        replace_existing=True,
    )
    return scheduler


async def init_scheduler() -> AsyncIOScheduler | None:
    """
    스케줄러 초기화 및 시작

    Returns:
        초기화된 AsyncIOScheduler 인스턴스 (비활성화 시 None)
    """
    global _scheduler

    if not settings.scheduler_enabled:
        logger.info("Scheduler is disabled by configuration")
        return None

    if _scheduler is not None:
        logger.warning("Scheduler already initialized")
        return _scheduler

    _scheduler = build_scheduler()
    _scheduler.start()

    try:
        await scheduler_state_cache.set_state(
            is_running=True,
            started_at=datetime.now().isoformat(),
        )
    except Exception as e:
        logger.warning(f"Failed to record scheduler state: {e}")

    logger.info(f"Scheduler started with jobs: {', '.join(JOB_RUNNERS)}")
    return _scheduler


async def shutdown_scheduler() -> None:
    """스케줄러 종료"""
    global _scheduler

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None

        try:
            await scheduler_state_cache.set_state(is_running=False)
        except Exception as e:
            logger.warning(f"Failed to record scheduler state: {e}")

        logger.info("Scheduler shut down")


def get_scheduler() -> AsyncIOScheduler | None:
    """현재 스케줄러 인스턴스 반환"""
    return _scheduler


async def get_scheduler_status() -> dict[str, Any]:
    """
    스케줄러 상태 조회

    Returns:
        스케줄러 상태 정보
    """
    scheduler = get_scheduler()

    try:
        state = await scheduler_state_cache.get_state()
        history = await scheduler_state_cache.get_run_history(limit=10)
    except Exception as e:
        logger.warning(f"Failed to read scheduler state: {e}")
        state, history = None, None

    config = {
        "timezone": settings.scheduler_timezone,
        "price_update_cron": settings.scheduler_price_update_cron,
        "price_cleanup_cron": settings.scheduler_price_cleanup_cron,
        "exchange_rate_cron": settings.scheduler_exchange_rate_cron,
    }

    if scheduler is None:
        return {
            "enabled": settings.scheduler_enabled,
            "running": False,
            "jobs": None,
            "state": state,
            "recent_history": history,
            "config": config,
        }

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "enabled": settings.scheduler_enabled,
        "running": scheduler.running,
        "jobs": jobs,
        "state": state,
        "recent_history": history,
        "config": config,
    }
