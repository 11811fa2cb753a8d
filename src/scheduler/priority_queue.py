"""
Pending job list for the JobQueue.

Ordering:
- Lower priority weight first (high < medium < low)
- Arrival order within a tier (stable insertion, the list is never re-sorted)
"""

import logging
from typing import Iterator, Optional

from .entities import Job, JobStatus
from .errors import InvalidOperationError, QueueFullError


logger = logging.getLogger(__name__)


class PendingQueue:
    """Bounded, priority-ordered list of PENDING jobs."""

    def __init__(self, max_size: int = 100):
        self.max_size = max_size
        self._jobs: list[Job] = []

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs))

    def __contains__(self, job_id: object) -> bool:
        return any(job.id == job_id for job in self._jobs)

    @property
    def is_full(self) -> bool:
        return len(self._jobs) >= self.max_size

    def insert(self, job: Job) -> int:
        """
        Insert a job before the first job with a larger weight.

        Returns:
            The position the job was inserted at

        Raises:
            QueueFullError: If the queue is at capacity
            InvalidOperationError: If the job is not PENDING
        """
        if self.is_full:
            raise QueueFullError(self.max_size)

        if job.status != JobStatus.PENDING:
            raise InvalidOperationError(
                f"Only PENDING jobs can be queued (job {job.id} is {job.status.value})"
            )

        weight = job.priority.weight
        position = len(self._jobs)
        for index, queued in enumerate(self._jobs):
            if queued.priority.weight > weight:
                position = index
                break

        self._jobs.insert(position, job)
        logger.debug(f"Queued job {job.id} at position {position} (priority={job.priority.value})")
        return position

    def pop(self) -> Optional[Job]:
        """Remove and return the head of the queue."""
        if not self._jobs:
            return None
        return self._jobs.pop(0)

    def peek(self) -> Optional[Job]:
        return self._jobs[0] if self._jobs else None

    def remove(self, job_id: str) -> Optional[Job]:
        """Remove a job by id. Returns None if it is not queued."""
        for index, job in enumerate(self._jobs):
            if job.id == job_id:
                return self._jobs.pop(index)
        return None

    def job_ids(self) -> list[str]:
        return [job.id for job in self._jobs]

    def clear(self) -> list[Job]:
        jobs, self._jobs = self._jobs, []
        return jobs
