"""
Scheduler API schemas.

Supports /scheduler/* control and scheduled-entry endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.scheduler.entities import JobPriority, ScheduleKind


# =============================================================================
# Control plane
# =============================================================================


class SchedulerStopRequest(BaseModel):
    """Request to stop the job service."""

    timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds to wait for running jobs before force-cancelling them"
    )


class SchedulerActionResponse(BaseModel):
    """Response from start/stop."""

    success: bool
    message: str


class SchedulerStatusResponse(BaseModel):
    """Response for scheduler status endpoint."""

    queue_running: bool = Field(..., description="Whether workers dispatch jobs")
    scheduler_running: bool = Field(..., description="Whether the scheduler timer loop is active")
    queue_length: int = Field(..., description="Pending jobs")
    active_workers: int = Field(..., description="Workers executing a job")
    scheduled_entries: int = Field(..., description="Not-yet-fired scheduled entries")


# =============================================================================
# Scheduled entries
# =============================================================================


class ScheduledEntryResponse(BaseModel):
    """Response representing a scheduled entry."""

    key: str
    name: str = Field(..., description="Calculation name, or the key for internal callbacks")
    kind: ScheduleKind
    next_run_at: datetime
    priority: Optional[JobPriority] = None
    interval: Optional[float] = Field(default=None, description="Seconds between recurring runs")
    max_runs: Optional[int] = None
    remaining_runs: Optional[int] = None
    end_at: Optional[datetime] = None
    dependencies: List[str] = Field(default_factory=list)
    enabled: bool = True
    job_id: Optional[str] = Field(default=None, description="Job id a one-shot entry will create")
    run_count: int = 0
    last_run_at: Optional[datetime] = None
    last_job_id: Optional[str] = None
    created_at: datetime


class ScheduledEntryListResponse(BaseModel):
    entries: List[ScheduledEntryResponse] = Field(default_factory=list)
    total: int


class EntryEnabledRequest(BaseModel):
    enabled: bool = Field(..., description="Whether the entry may fire")


class EntryActionResponse(BaseModel):
    key: str
    success: bool
    message: Optional[str] = None
