"""
Tests for the price pipeline scheduler

Tests cover:
1. Scheduler construction (jobs and triggers)
2. Job execution and run history recording
3. Scheduler state cache
"""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock, patch

from apscheduler.triggers.cron import CronTrigger

from cardprices.services.scheduler_service import (
    EXCHANGE_RATE_JOB_ID,
    PRICE_CLEANUP_JOB_ID,
    PRICE_INGESTION_JOB_ID,
    UnknownJobError,
    build_scheduler,
    execute_job,
    get_scheduler,
    get_scheduler_status,
)


class TestBuildScheduler:
    """Test scheduler construction"""

    def test_registers_pipeline_jobs(self):
        scheduler = build_scheduler()

        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {PRICE_INGESTION_JOB_ID, PRICE_CLEANUP_JOB_ID, EXCHANGE_RATE_JOB_ID}

    def test_jobs_use_cron_triggers(self):
        scheduler = build_scheduler()

        cleanup = next(job for job in scheduler.get_jobs() if job.id == PRICE_CLEANUP_JOB_ID)
        assert isinstance(cleanup.trigger, CronTrigger)
        fields = {field.name: str(field) for field in cleanup.trigger.fields}
        assert fields["hour"] == "3"
        assert fields["minute"] == "30"

    def test_scheduler_is_not_started(self):
        scheduler = build_scheduler()
        assert scheduler.running is False


class TestExecuteJob:
    """Test job execution and history recording"""

    @pytest.mark.asyncio
    async def test_successful_job(self):
        runner = AsyncMock(return_value={"message": "ok", "updated": 3})

        with patch.dict(
            "cardprices.services.scheduler_service.JOB_RUNNERS",
            {PRICE_INGESTION_JOB_ID: runner},
        ):
            with patch("cardprices.services.scheduler_service.scheduler_state_cache") as mock_cache:
                mock_cache.add_run_history = AsyncMock()

                result = await execute_job(PRICE_INGESTION_JOB_ID)

        assert result["success"] is True
        assert result["job_id"] == PRICE_INGESTION_JOB_ID
        assert result["result"] == {"message": "ok", "updated": 3}
        assert result["duration_ms"] >= 0

        mock_cache.add_run_history.assert_called_once()
        kwargs = mock_cache.add_run_history.call_args.kwargs
        assert kwargs["job_id"] == PRICE_INGESTION_JOB_ID
        assert kwargs["success"] is True

    @pytest.mark.asyncio
    async def test_failed_job_is_recorded_not_raised(self):
        runner = AsyncMock(side_effect=RuntimeError("feed down"))

        with patch.dict(
            "cardprices.services.scheduler_service.JOB_RUNNERS",
            {PRICE_CLEANUP_JOB_ID: runner},
        ):
            with patch("cardprices.services.scheduler_service.scheduler_state_cache") as mock_cache:
                mock_cache.add_run_history = AsyncMock()

                result = await execute_job(PRICE_CLEANUP_JOB_ID)

        assert result["success"] is False
        assert result["error"] == "feed down"
        runner.assert_awaited_once()
        kwargs = mock_cache.add_run_history.call_args.kwargs
        assert kwargs["success"] is False
        assert kwargs["error"] == "feed down"

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_job(self):
        runner = AsyncMock(return_value={"rate": "5.43"})

        with patch.dict(
            "cardprices.services.scheduler_service.JOB_RUNNERS",
            {EXCHANGE_RATE_JOB_ID: runner},
        ):
            with patch("cardprices.services.scheduler_service.scheduler_state_cache") as mock_cache:
                mock_cache.add_run_history = AsyncMock(side_effect=ConnectionError("redis down"))

                result = await execute_job(EXCHANGE_RATE_JOB_ID)

        assert result["success"] is True

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        with pytest.raises(UnknownJobError):
            await execute_job("nightly_backup")


class TestSchedulerStatus:
    @pytest.mark.asyncio
    async def test_status_when_not_initialized(self):
        assert get_scheduler() is None

        with patch("cardprices.services.scheduler_service.scheduler_state_cache") as mock_cache:
            mock_cache.get_state = AsyncMock(return_value={"is_running": False})
            mock_cache.get_run_history = AsyncMock(return_value=[])

            status = await get_scheduler_status()

        assert status["running"] is False
        assert status["jobs"] is None
        assert status["state"] == {"is_running": False}
        assert status["config"]["price_update_cron"] == "0 */6 * * *"

    @pytest.mark.asyncio
    async def test_status_survives_redis_outage(self):
        with patch("cardprices.services.scheduler_service.scheduler_state_cache") as mock_cache:
            mock_cache.get_state = AsyncMock(side_effect=ConnectionError("redis down"))

            status = await get_scheduler_status()

        assert status["state"] is None
        assert status["recent_history"] is None


class TestSchedulerStateCache:
    """Test scheduler state cache"""

    @pytest.fixture
    def mock_redis(self):
        """Create mock Redis client"""
        mock_client = AsyncMock()
        return mock_client

    @pytest.mark.asyncio
    async def test_set_state(self, mock_redis):
        """Test setting scheduler state"""
        from cardprices.core.redis import SchedulerStateCache

        cache = SchedulerStateCache()

        with patch("cardprices.core.redis.get_redis", return_value=mock_redis):
            await cache.set_state(is_running=True, started_at=datetime.now().isoformat())

            mock_redis.set.assert_called_once()
            assert mock_redis.set.call_args.args[0] == "cardprices:scheduler:state"

    @pytest.mark.asyncio
    async def test_get_state(self, mock_redis):
        """Test getting scheduler state"""
        from cardprices.core.redis import SchedulerStateCache

        cache = SchedulerStateCache()
        mock_redis.get.return_value = '{"is_running": true, "started_at": "2024-06-01T00:00:00"}'

        with patch("cardprices.core.redis.get_redis", return_value=mock_redis):
            state = await cache.get_state()

            assert state is not None
            assert state["is_running"] is True

    @pytest.mark.asyncio
    async def test_add_run_history(self, mock_redis):
        """Test adding run history"""
        from cardprices.core.redis import SchedulerStateCache

        cache = SchedulerStateCache(history_size=20)

        with patch("cardprices.core.redis.get_redis", return_value=mock_redis):
            await cache.add_run_history(
                job_id=PRICE_INGESTION_JOB_ID,
                run_time=datetime.now(),
                duration_ms=150,
                success=True,
                result={"updated": 12},
            )

            mock_redis.lpush.assert_called_once()
            mock_redis.ltrim.assert_called_once_with("cardprices:scheduler:history", 0, 19)

    @pytest.mark.asyncio
    async def test_get_run_history(self, mock_redis):
        """Test getting run history"""
        from cardprices.core.redis import SchedulerStateCache

        cache = SchedulerStateCache()
        mock_redis.lrange.return_value = [
            '{"job_id": "price_ingestion", "run_time": "2024-06-01T06:00:00", "success": true}',
            '{"job_id": "exchange_rate_update", "run_time": "2024-06-01T00:00:00", "success": false}',
        ]

        with patch("cardprices.core.redis.get_redis", return_value=mock_redis):
            history = await cache.get_run_history(limit=5)

            assert len(history) == 2
            assert history[0]["job_id"] == "price_ingestion"
            assert history[1]["success"] is False
