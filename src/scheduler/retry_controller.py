"""
Retry Controller for the Job Queue.

- Receives failed jobs from the JobQueue
- Decides whether a failure is retried (classification + remaining budget)
- Schedules the re-queue through the JobScheduler with exponential backoff
- Keeps at most one pending retry entry per job (key "retry-<job_id>")

Backoff: base_delay * 2 ** retry_count  (1s, 2s, 4s, ... with the default base)

What RetryController MUST NOT do:
- Change job status directly (JobQueue.retry_job does that)
- Hold its own timers
"""

import logging
from datetime import timedelta
from functools import partial
from typing import Optional

from .entities import Job, now_utc
from .errors import QueueFullError
from .executor import ExecutionOutcome
from .job_queue import JobQueue
from .job_scheduler import JobScheduler


logger = logging.getLogger(__name__)


DEFAULT_BASE_DELAY_SECONDS = 1.0


class RetryController:
    """Automatic retry with exponential backoff."""

    def __init__(
        self,
        queue: JobQueue,
        scheduler: JobScheduler,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    ):
        self.queue = queue
        self.scheduler = scheduler
        self.base_delay = base_delay

    @staticmethod
    def retry_key(job_id: str) -> str:
        """Scheduler key of the pending automatic retry for a job."""
        return f"retry-{job_id}"

    def calculate_backoff(self, retry_count: int) -> float:
        """Delay in seconds before retry number ``retry_count + 1``."""
        return self.base_delay * (2 ** retry_count)

    def on_job_failed(self, job: Job, outcome: ExecutionOutcome) -> Optional[float]:
        """
        Handle a FAILED or TIMEOUT job.

        Returns:
            The backoff delay if a retry was scheduled, otherwise None
        """
        if not outcome.retry_recommended:
            kind = outcome.failure_kind.value if outcome.failure_kind else "unknown"
            logger.warning(f"[Retry] {job.id} failed permanently ({kind} errors are not retried)")
            return None

        if job.retry_count >= job.max_retries:
            logger.error(
                f"[Retry] {job.id} failed permanently after {job.retry_count + 1} attempts: {job.error}"
            )
            return None

        delay = self.calculate_backoff(job.retry_count)
        attempt = job.retry_count + 1

        self.queue.mark_retry_scheduled(job.id, now_utc() + timedelta(seconds=delay))
        self.scheduler.schedule_callback(
            self.retry_key(job.id), delay, partial(self._requeue, job.id)
        )
        logger.info(f"[Retry] {job.id} retry {attempt}/{job.max_retries} in {delay}s")
        return delay

    def _requeue(self, job_id: str) -> None:
        try:
            if not self.queue.retry_job(job_id):
                # Manually retried or evicted meanwhile
                logger.debug(f"[Retry] {job_id} no longer eligible for automatic retry")
                self.queue.mark_retry_scheduled(job_id, None)
        except QueueFullError as e:
            logger.error(f"[Retry] Could not re-queue {job_id}: {e}")
            self.queue.mark_retry_scheduled(job_id, None)
