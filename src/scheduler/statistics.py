"""
Read-only aggregation over the job map.

One pass over the jobs, no mutation.
"""

from dataclasses import dataclass, field
from typing import Iterable

from .entities import Job, JobPriority, JobStatus, JobType


@dataclass
class QueueStatistics:
    total_jobs: int = 0
    pending_jobs: int = 0
    running_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    timeout_jobs: int = 0
    cancelled_jobs: int = 0
    average_execution_time: float = 0.0
    queue_length: int = 0
    active_workers: int = 0
    jobs_by_status: dict[str, int] = field(default_factory=dict)
    jobs_by_priority: dict[str, int] = field(default_factory=dict)
    jobs_by_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_jobs": self.total_jobs,
            "pending_jobs": self.pending_jobs,
            "running_jobs": self.running_jobs,
            "completed_jobs": self.completed_jobs,
            "failed_jobs": self.failed_jobs,
            "timeout_jobs": self.timeout_jobs,
            "cancelled_jobs": self.cancelled_jobs,
            "average_execution_time": self.average_execution_time,
            "queue_length": self.queue_length,
            "active_workers": self.active_workers,
            "jobs_by_status": dict(self.jobs_by_status),
            "jobs_by_priority": dict(self.jobs_by_priority),
            "jobs_by_type": dict(self.jobs_by_type),
        }


def compute_statistics(
    jobs: Iterable[Job],
    queue_length: int = 0,
    active_workers: int = 0,
) -> QueueStatistics:
    """
    Aggregate counts and timing over a set of jobs.

    ``failed_jobs`` counts both FAILED and TIMEOUT, since a timeout is a failure
    variant; ``timeout_jobs`` breaks the latter out.
    """
    by_status = {status.value: 0 for status in JobStatus}
    by_priority = {priority.value: 0 for priority in JobPriority}
    by_type = {job_type.value: 0 for job_type in JobType}

    total = 0
    execution_total = 0.0
    timed = 0

    for job in jobs:
        total += 1
        by_status[job.status.value] += 1
        by_priority[job.priority.value] += 1
        by_type[job.type.value] = by_type.get(job.type.value, 0) + 1

        if job.execution_time is not None:
            execution_total += job.execution_time
            timed += 1

    return QueueStatistics(
        total_jobs=total,
        pending_jobs=by_status[JobStatus.PENDING.value],
        running_jobs=by_status[JobStatus.RUNNING.value],
        completed_jobs=by_status[JobStatus.COMPLETED.value],
        failed_jobs=by_status[JobStatus.FAILED.value] + by_status[JobStatus.TIMEOUT.value],
        timeout_jobs=by_status[JobStatus.TIMEOUT.value],
        cancelled_jobs=by_status[JobStatus.CANCELLED.value],
        average_execution_time=execution_total / timed if timed else 0.0,
        queue_length=queue_length,
        active_workers=active_workers,
        jobs_by_status=by_status,
        jobs_by_priority=by_priority,
        jobs_by_type=by_type,
    )
