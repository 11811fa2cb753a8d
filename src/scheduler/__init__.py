"""
Job Queue Core Module.

In-memory background job queue:
- JobQueue: priority dispatch over a fixed worker pool
- JobScheduler: one-shot, recurring and dependency-gated entries
- RetryController: exponential backoff for retryable failures
- JobService: wiring and the process-wide singleton
"""

from .config import QueueConfig
from .entities import (
    FailureKind,
    Job,
    JobContext,
    JobPriority,
    JobSnapshot,
    JobSpec,
    JobStatus,
    JobType,
    ScheduledEntry,
    ScheduleKind,
    Worker,
    WorkerStatus,
)
from .errors import (
    CalculationAbortedError,
    InvalidOperationError,
    QueueFullError,
    ScheduleValidationError,
    SchedulerError,
    TransientJobError,
)
from .executor import ExecutionOutcome, Executor, classify_error
from .job_queue import JobQueue, report_progress
from .job_scheduler import JobScheduler
from .retry_controller import RetryController
from .service import (
    JobService,
    get_job_service,
    init_job_service,
    reset_job_service,
    shutdown_job_service,
)
from .statistics import QueueStatistics, compute_statistics

__all__ = [
    # Config
    "QueueConfig",
    # Entities
    "FailureKind",
    "Job",
    "JobContext",
    "JobPriority",
    "JobSnapshot",
    "JobSpec",
    "JobStatus",
    "JobType",
    "ScheduledEntry",
    "ScheduleKind",
    "Worker",
    "WorkerStatus",
    # Errors
    "CalculationAbortedError",
    "InvalidOperationError",
    "QueueFullError",
    "ScheduleValidationError",
    "SchedulerError",
    "TransientJobError",
    # Execution
    "ExecutionOutcome",
    "Executor",
    "classify_error",
    # Queue
    "JobQueue",
    "report_progress",
    # Scheduler
    "JobScheduler",
    # Retry
    "RetryController",
    # Service
    "JobService",
    "get_job_service",
    "init_job_service",
    "reset_job_service",
    "shutdown_job_service",
    # Statistics
    "QueueStatistics",
    "compute_statistics",
]
