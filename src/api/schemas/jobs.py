"""
Job API schemas.

Request/response models for the /jobs endpoints.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from src.scheduler.entities import FailureKind, JobPriority, JobStatus, JobType


class JobContextRequest(BaseModel):
    """Correlation metadata supplied by the caller."""

    operation: str = Field(default="update", description="Operation being performed")
    operation_id: Optional[str] = Field(
        default=None,
        description="Correlation id (generated from the calculation name when omitted)"
    )
    user_id: str = Field(default="system", description="User who triggered the job")


class JobCreateRequest(BaseModel):
    """Request to enqueue a named calculation."""

    name: str = Field(
        ...,
        description="Calculation name, e.g. 'season-statistics-calculation'"
    )
    payload: dict = Field(
        default_factory=dict,
        description="Calculation payload; validated against the calculation's payload model"
    )
    priority: Optional[JobPriority] = Field(
        default=None,
        description="Priority override (defaults to the calculation's catalog priority)"
    )
    context: Optional[JobContextRequest] = Field(
        default=None,
        description="Correlation metadata"
    )


class JobCreateResponse(BaseModel):
    """Response from enqueueing a calculation."""

    job_id: str = Field(..., description="Assigned job id")
    name: str = Field(..., description="Calculation name")
    status: JobStatus = Field(..., description="Status right after enqueue")


class JobResponse(BaseModel):
    """Response representing a job snapshot."""

    job_id: str = Field(..., description="Unique job identifier")
    name: str = Field(..., description="Calculation name")
    type: JobType
    priority: JobPriority
    status: JobStatus
    progress: Optional[int] = Field(default=None, description="Progress 0-100, if reported")
    result: Any = Field(default=None, description="Calculator result (completed jobs, and aborted calculations)")
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    retry_count: int = 0
    max_retries: int = 0
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    execution_time: Optional[float] = Field(default=None, description="Seconds spent executing")
    next_retry_at: Optional[datetime] = Field(default=None, description="Scheduled automatic retry")


class JobListResponse(BaseModel):
    """Response for job list endpoint."""

    jobs: List[JobResponse] = Field(default_factory=list)
    total: int = Field(..., description="Number of jobs returned")


class JobActionResponse(BaseModel):
    """Response from cancel/retry."""

    job_id: str
    success: bool
    message: Optional[str] = None


class QueueStatsResponse(BaseModel):
    """Queue statistics."""

    total_jobs: int
    pending_jobs: int
    running_jobs: int
    completed_jobs: int
    failed_jobs: int = Field(..., description="FAILED and TIMEOUT jobs")
    timeout_jobs: int
    cancelled_jobs: int
    average_execution_time: float = Field(..., description="Mean seconds over jobs that ran")
    queue_length: int
    active_workers: int
    jobs_by_status: dict[str, int] = Field(default_factory=dict)
    jobs_by_priority: dict[str, int] = Field(default_factory=dict)
    jobs_by_type: dict[str, int] = Field(default_factory=dict)


class WorkerResponse(BaseModel):
    """Worker slot state."""

    worker_id: str
    status: str
    current_job_id: Optional[str] = None
    processed_jobs: int = 0
    started_at: datetime
    last_activity: datetime


class WorkerListResponse(BaseModel):
    workers: List[WorkerResponse] = Field(default_factory=list)
    active: int = 0
    idle: int = 0
