"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .calculations import (
    CalculationDefinitionResponse,
    CalculationListResponse,
    ScheduleResponse,
)
from .jobs import (
    JobActionResponse,
    JobCreateRequest,
    JobCreateResponse,
    JobListResponse,
    JobResponse,
    QueueStatsResponse,
    WorkerListResponse,
)
from .scheduler import (
    ScheduledEntryListResponse,
    ScheduledEntryResponse,
    SchedulerStatusResponse,
)

__all__ = [
    "CalculationDefinitionResponse",
    "CalculationListResponse",
    "ScheduleResponse",
    "JobActionResponse",
    "JobCreateRequest",
    "JobCreateResponse",
    "JobListResponse",
    "JobResponse",
    "QueueStatsResponse",
    "WorkerListResponse",
    "ScheduledEntryListResponse",
    "ScheduledEntryResponse",
    "SchedulerStatusResponse",
]
