"""
Job Queue Domain Entities.

- Job: Single unit of work owned by the JobQueue
- JobSpec: Template a Job is built from (used by adapters and the scheduler)
- JobContext: Correlation metadata threaded through a job
- Worker: Logical execution slot
- ScheduledEntry: Time-to-enqueue binding held by the JobScheduler

Status values are lowercase strings so they serialize unchanged through the API.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional


class JobStatus(str, Enum):
    """
    Job lifecycle states.

    pending -> running -> completed | failed | timeout | cancelled
    failed/timeout -> pending (retry)
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_failure(self) -> bool:
        return self in (JobStatus.FAILED, JobStatus.TIMEOUT)


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMEOUT, JobStatus.CANCELLED}
)


class JobPriority(str, Enum):
    """Dispatch priority. Lower weight is dispatched first."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHTS[self]


PRIORITY_WEIGHTS = {
    JobPriority.HIGH: 1,
    JobPriority.MEDIUM: 2,
    JobPriority.LOW: 3,
}


class JobType(str, Enum):
    CALCULATION = "calculation"
    MAINTENANCE = "maintenance"
    NOTIFICATION = "notification"


class WorkerStatus(str, Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


class ScheduleKind(str, Enum):
    ONCE = "once"
    RECURRING = "recurring"


class FailureKind(str, Enum):
    """
    Classification of a failed execution.

    Produced by the Executor and consumed by the RetryController:
    - TIMEOUT: deadline lost (retryable)
    - TRANSIENT: network/connection style error (retryable)
    - INTERNAL: executor could not invoke the calculator (retryable)
    - APPLICATION: calculator rejected the work (not retried)
    - CANCELLED: job was cancelled before it started
    """

    TIMEOUT = "timeout"
    TRANSIENT = "transient"
    INTERNAL = "internal"
    APPLICATION = "application"
    CANCELLED = "cancelled"

    @property
    def is_retryable(self) -> bool:
        return self in (FailureKind.TIMEOUT, FailureKind.TRANSIENT, FailureKind.INTERNAL)


def now_utc() -> datetime:
    """Get current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_suffix(length: int = 9) -> str:
    """Short random suffix for identifiers."""
    return uuid.uuid4().hex[:length]


def generate_job_id(name: str, operation_id: Optional[str] = None) -> str:
    """
    Build a job id of the form ``{name}-{operation_id}-{epoch_ms}-{random}``.

    The operation id segment is omitted when there is no correlation context.
    """
    timestamp = int(time.time() * 1000)
    operation = f"-{operation_id}" if operation_id else ""
    return f"{name}{operation}-{timestamp}-{generate_suffix()}"


@dataclass
class JobContext:
    """Correlation metadata for a job (who/what/why)."""

    content_type: str
    operation: str
    operation_id: str
    user_id: str = "system"
    timestamp: datetime = field(default_factory=now_utc)

    @classmethod
    def create(
        cls,
        content_type: str,
        operation_prefix: str,
        operation: str = "update",
        user_id: str = "system",
    ) -> "JobContext":
        """Create a context whose operation id is ``{prefix}-{epoch_ms}``."""
        return cls(
            content_type=content_type,
            operation=operation,
            operation_id=f"{operation_prefix}-{int(time.time() * 1000)}",
            user_id=user_id,
        )

    def to_dict(self) -> dict:
        return {
            "content_type": self.content_type,
            "operation": self.operation,
            "operation_id": self.operation_id,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
        }


Calculator = Callable[[Any, Optional[JobContext]], Awaitable[Any]]


@dataclass
class JobSpec:
    """
    Everything needed to build a Job, minus identity and lifecycle state.

    Held by ScheduledEntry as the template for every fire.
    """

    name: str
    calculator: Calculator
    type: JobType = JobType.CALCULATION
    priority: JobPriority = JobPriority.MEDIUM
    payload: Any = None
    context: Optional[JobContext] = None
    timeout: float = 30.0
    max_retries: int = 2


@dataclass
class Job:
    """
    Single unit of work.

    Mutability rules:
    - id, name, type, calculator, payload, context, created_at: Immutable
    - status, retry_count, started_at, completed_at, result, error: Owned by JobQueue
    - progress: Updated by the running calculator through JobQueue.update_progress
    """

    id: str
    name: str
    calculator: Calculator
    type: JobType = JobType.CALCULATION
    priority: JobPriority = JobPriority.MEDIUM
    status: JobStatus = JobStatus.PENDING
    payload: Any = None
    context: Optional[JobContext] = None
    timeout: float = 30.0
    max_retries: int = 2
    retry_count: int = 0
    created_at: datetime = field(default_factory=now_utc)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    execution_time: Optional[float] = None
    result: Any = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    progress: Optional[int] = None
    cancel_requested: bool = False
    next_retry_at: Optional[datetime] = None

    @classmethod
    def create(cls, spec: JobSpec, job_id: Optional[str] = None) -> "Job":
        """Create a new PENDING Job from a spec, generating an id if none is given."""
        operation_id = spec.context.operation_id if spec.context else None
        return cls(
            id=job_id or generate_job_id(spec.name, operation_id),
            name=spec.name,
            calculator=spec.calculator,
            type=spec.type,
            priority=spec.priority,
            payload=spec.payload,
            context=spec.context,
            timeout=spec.timeout,
            max_retries=spec.max_retries,
        )

    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def can_retry(self) -> bool:
        """Failed or timed-out with retries left."""
        return self.status.is_failure and self.retry_count < self.max_retries

    def snapshot(self) -> "JobSnapshot":
        return JobSnapshot(
            id=self.id,
            name=self.name,
            type=self.type,
            priority=self.priority,
            status=self.status,
            progress=self.progress,
            result=self.result,
            error=self.error,
            failure_kind=self.failure_kind,
            retry_count=self.retry_count,
            max_retries=self.max_retries,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            execution_time=self.execution_time,
            next_retry_at=self.next_retry_at,
        )


@dataclass(frozen=True)
class JobSnapshot:
    """Read-only view of a Job returned to callers."""

    id: str
    name: str
    type: JobType
    priority: JobPriority
    status: JobStatus
    progress: Optional[int]
    result: Any
    error: Optional[str]
    failure_kind: Optional[FailureKind]
    retry_count: int
    max_retries: int
    created_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    execution_time: Optional[float]
    next_retry_at: Optional[datetime]


@dataclass
class Worker:
    """Logical execution slot. Holds only the id of its current job."""

    worker_id: str
    status: WorkerStatus = WorkerStatus.IDLE
    current_job_id: Optional[str] = None
    processed_jobs: int = 0
    started_at: datetime = field(default_factory=now_utc)
    last_activity: datetime = field(default_factory=now_utc)

    @classmethod
    def create(cls, index: int) -> "Worker":
        return cls(worker_id=f"worker-{index}")

    def snapshot(self) -> "Worker":
        return replace(self)


@dataclass
class ScheduledEntry:
    """
    Time-to-enqueue binding.

    Exactly one of ``spec`` (build and enqueue a Job) or ``action``
    (plain callback, used for retry re-enqueue) is set.
    """

    key: str
    kind: ScheduleKind
    next_run_at: datetime
    spec: Optional[JobSpec] = None
    action: Optional[Callable[[], Any]] = None
    interval: Optional[float] = None
    max_runs: Optional[int] = None
    remaining_runs: Optional[int] = None
    end_at: Optional[datetime] = None
    dependencies: list[str] = field(default_factory=list)
    satisfied_dependencies: set[str] = field(default_factory=set)
    enabled: bool = True
    job_id: Optional[str] = None
    run_count: int = 0
    last_run_at: Optional[datetime] = None
    last_job_id: Optional[str] = None
    created_at: datetime = field(default_factory=now_utc)

    @property
    def name(self) -> str:
        return self.spec.name if self.spec is not None else self.key
