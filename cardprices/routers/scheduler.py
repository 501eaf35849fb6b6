"""
Scheduler Router

가격 파이프라인 스케줄러 관리 API 엔드포인트
"""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from cardprices.services.scheduler_service import (
    JOB_RUNNERS,
    execute_job,
    get_scheduler_status,
)

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


class SchedulerStatusResponse(BaseModel):
    """스케줄러 상태 응답"""
    enabled: bool
    running: bool
    jobs: list[dict[str, Any]] | None = None
    state: dict[str, Any] | None = None
    recent_history: list[dict[str, Any]] | None = None
    config: dict[str, Any] | None = None


class JobRunResponse(BaseModel):
    """수동 작업 실행 응답"""
    job_id: str
    success: bool
    duration_ms: int
    result: dict[str, Any] | None = None
    error: str | None = None


@router.get(
    "/status",
    response_model=SchedulerStatusResponse,
    summary="스케줄러 상태 조회",
)
async def get_status() -> SchedulerStatusResponse:
    """
    스케줄러 상태 조회

    - 스케줄러 실행 상태
    - 등록된 작업 목록과 다음 실행 시간
    - 최근 실행 기록
    """
    status_data = await get_scheduler_status()
    return SchedulerStatusResponse(**status_data)


@router.post(
    "/jobs/{job_id}/run",
    response_model=JobRunResponse,
    summary="작업 수동 실행",
)
async def run_job(job_id: str) -> JobRunResponse:
    """
    작업 수동 실행

    Runs a pipeline job immediately and waits for it to finish. The
    outcome is recorded in the run history like a scheduled run.
    """
    if job_id not in JOB_RUNNERS:
        raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}")

    result = await execute_job(job_id)
    return JobRunResponse(**result)
