"""
Jobs router for job management API.

Endpoints:
- POST /jobs - Enqueue a named calculation
- GET /jobs - List jobs (newest first, filterable)
- GET /jobs/stats - Queue statistics
- GET /jobs/workers - Worker slots
- GET /jobs/{job_id} - Get job status
- POST /jobs/{job_id}/cancel - Cancel a pending/running job or its scheduled entry
- POST /jobs/{job_id}/retry - Manually retry a failed or timed-out job
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from src.scheduler.entities import JobContext, JobPriority, JobSnapshot, JobStatus, JobType
from src.scheduler.errors import InvalidOperationError, QueueFullError

from ..schemas.jobs import (
    JobActionResponse,
    JobCreateRequest,
    JobCreateResponse,
    JobListResponse,
    JobResponse,
    QueueStatsResponse,
    WorkerListResponse,
    WorkerResponse,
)
from .._service_state import get_calculation_jobs, get_job_service


logger = logging.getLogger(__name__)

router = APIRouter()


def _job_to_response(job: JobSnapshot) -> JobResponse:
    """Convert a job snapshot to API response."""
    return JobResponse(
        job_id=job.id,
        name=job.name,
        type=job.type,
        priority=job.priority,
        status=job.status,
        progress=job.progress,
        result=job.result,
        error=job.error,
        failure_kind=job.failure_kind,
        retry_count=job.retry_count,
        max_retries=job.max_retries,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        execution_time=job.execution_time,
        next_retry_at=job.next_retry_at,
    )


@router.post("", response_model=JobCreateResponse, status_code=202)
async def create_job(request: JobCreateRequest):
    """
    Enqueue a named calculation.

    The job runs as soon as a worker is free. Poll GET /jobs/{job_id} for the result.
    """
    calculations = get_calculation_jobs()

    adapter = calculations.adapter_for(request.name)
    if adapter is None:
        raise HTTPException(status_code=404, detail=f"Unknown calculation: {request.name}")

    context = None
    if request.context is not None:
        if request.context.operation_id:
            context = JobContext(
                content_type=adapter.content_type,
                operation=request.context.operation,
                operation_id=request.context.operation_id,
                user_id=request.context.user_id,
            )
        else:
            context = JobContext.create(
                adapter.content_type,
                request.name,
                operation=request.context.operation,
                user_id=request.context.user_id,
            )

    try:
        job_id = calculations.enqueue(
            request.name,
            request.payload,
            context=context,
            priority=request.priority,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=jsonable_encoder(e.errors(include_url=False)))
    except InvalidOperationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except QueueFullError as e:
        raise HTTPException(status_code=503, detail=str(e))

    job = calculations.service.get_job_status(job_id)
    return JobCreateResponse(
        job_id=job_id,
        name=request.name,
        status=job.status if job else JobStatus.PENDING,
    )


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = Query(default=None, description="Filter by status"),
    type: Optional[JobType] = Query(default=None, description="Filter by job type"),
    priority: Optional[JobPriority] = Query(default=None, description="Filter by priority"),
    name_prefix: Optional[str] = Query(default=None, description="Filter by calculation name prefix"),
    limit: int = Query(default=50, ge=1, le=500, description="Maximum jobs to return"),
):
    """
    List jobs, newest first.
    """
    service = get_job_service()

    jobs = service.queue.list_jobs(
        status=status,
        job_type=type,
        priority=priority,
        name_prefix=name_prefix,
        limit=limit,
    )
    return JobListResponse(
        jobs=[_job_to_response(job) for job in jobs],
        total=len(jobs),
    )


@router.get("/stats", response_model=QueueStatsResponse)
async def get_queue_stats():
    """
    Queue statistics: counts by status, priority and type, mean execution time.
    """
    service = get_job_service()
    return QueueStatsResponse(**service.queue.get_statistics().to_dict())


@router.get("/workers", response_model=WorkerListResponse)
async def list_workers():
    """Worker slots and what they are running."""
    service = get_job_service()

    workers = service.queue.list_workers()
    active = sum(1 for w in workers if w.current_job_id is not None)
    return WorkerListResponse(
        workers=[
            WorkerResponse(
                worker_id=w.worker_id,
                status=w.status.value,
                current_job_id=w.current_job_id,
                processed_jobs=w.processed_jobs,
                started_at=w.started_at,
                last_activity=w.last_activity,
            )
            for w in workers
        ],
        active=active,
        idle=len(workers) - active,
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str):
    """
    Get a job by ID.

    Jobs are evicted by the periodic cleanup once they have been terminal for
    longer than the configured max age.
    """
    service = get_job_service()

    job = service.get_job_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")

    return _job_to_response(job)


@router.post("/{job_id}/cancel", response_model=JobActionResponse)
async def cancel_job(job_id: str):
    """
    Cancel a job.

    Pending jobs never run. Running jobs are marked cancelled and their late
    result is discarded. A job that has not been created yet (its scheduled
    entry has not fired) is cancelled by dropping the entry.
    """
    service = get_job_service()

    if service.cancel_job(job_id):
        return JobActionResponse(job_id=job_id, success=True, message="Job cancelled")

    if service.get_job_status(job_id) is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")

    raise HTTPException(status_code=409, detail=f"Job {job_id} is already finished")


@router.post("/{job_id}/retry", response_model=JobActionResponse)
async def retry_job(job_id: str):
    """
    Retry a failed or timed-out job.

    Counts against the job's retry budget.
    """
    service = get_job_service()

    job = service.get_job_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")

    try:
        retried = service.retry_job(job_id)
    except QueueFullError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if not retried:
        raise HTTPException(
            status_code=409,
            detail=f"Job {job_id} cannot be retried (status: {job.status.value}, "
            f"retries: {job.retry_count}/{job.max_retries})",
        )

    return JobActionResponse(job_id=job_id, success=True, message="Job re-queued")
