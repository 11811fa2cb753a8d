"""
JobQueue: the single owner of job state.

- Holds the job map, the priority-ordered pending list and the worker pool
- Dispatches pending jobs to idle workers as asyncio tasks
- Applies execution outcomes and fires the failure callback
- Evicts old terminal jobs on a background cleanup loop

What JobQueue MUST NOT do:
- Decide whether a failure is retried (RetryController's responsibility)
- Hold timers for future work (JobScheduler's responsibility)
- Know anything about seasons, teams or tables
"""

import asyncio
import logging
from contextvars import ContextVar
from datetime import datetime, timedelta
from functools import partial
from typing import Callable, Optional

from .config import QueueConfig
from .entities import (
    FailureKind,
    Job,
    JobPriority,
    JobSnapshot,
    JobSpec,
    JobStatus,
    JobType,
    Worker,
    now_utc,
)
from .errors import InvalidOperationError, QueueFullError
from .executor import ExecutionOutcome, Executor
from .priority_queue import PendingQueue
from .statistics import QueueStatistics, compute_statistics
from .worker_pool import WorkerPool


logger = logging.getLogger(__name__)


SHUTDOWN_CANCEL_MESSAGE = "Job cancelled due to queue shutdown"

FailureCallback = Callable[[Job, ExecutionOutcome], None]

# Set for the duration of each calculator run
_progress_reporter: ContextVar[Optional[Callable[[int], bool]]] = ContextVar(
    "progress_reporter", default=None
)


def report_progress(progress: int) -> bool:
    """
    Report progress (0-100) for the job whose calculator is currently running.

    Returns False when called outside a running job.
    """
    reporter = _progress_reporter.get()
    if reporter is None:
        return False
    return reporter(progress)


class JobQueue:
    """
    Bounded in-memory job queue with a fixed worker pool.

    Key behaviors:
    - Ordering: high before medium before low, FIFO within a tier
    - Concurrency: at most ``max_workers`` jobs RUNNING at once
    - Capacity: at most ``max_queue_size`` jobs PENDING at once
    - Cancellation: pending jobs leave the queue; running jobs are flagged
    """

    def __init__(
        self,
        config: Optional[QueueConfig] = None,
        executor: Optional[Executor] = None,
    ):
        self.config = config or QueueConfig()
        self._executor = executor or Executor()
        self._jobs: dict[str, Job] = {}
        self._pending = PendingQueue(self.config.max_queue_size)
        self._workers = WorkerPool(self.config.max_workers)
        self._tasks: dict[str, asyncio.Task] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._running = False
        self._on_job_failed: Optional[FailureCallback] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def set_on_job_failed(self, callback: Optional[FailureCallback]) -> None:
        """Set the callback invoked after a job ends FAILED or TIMEOUT."""
        self._on_job_failed = callback

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Create the workers, start the cleanup loop and dispatch waiting jobs."""
        if self._running:
            logger.warning("[JobQueue] Already running")
            return

        self._running = True
        self._workers.start()

        if self.config.cleanup_interval > 0:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

        logger.info(
            f"[JobQueue] Started (workers={self.config.max_workers}, "
            f"max_queue_size={self.config.max_queue_size}, pending={len(self._pending)})"
        )
        self._dispatch()

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop dispatching and wait for running jobs.

        Jobs still running after ``timeout`` seconds are marked CANCELLED and
        their tasks cancelled. Pending jobs stay pending for a later start().
        """
        if not self._running:
            return

        timeout = self.config.stop_timeout if timeout is None else timeout
        self._running = False

        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        tasks = list(self._tasks.values())
        if tasks:
            logger.info(f"[JobQueue] Waiting up to {timeout}s for {len(tasks)} running jobs")
            _, still_running = await asyncio.wait(tasks, timeout=timeout)
            if still_running:
                logger.warning(f"[JobQueue] Cancelling {len(still_running)} jobs still running")
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)

        self._workers.stop()
        logger.info("[JobQueue] Stopped")

    # =========================================================================
    # Enqueue
    # =========================================================================

    def enqueue(self, job: Job) -> str:
        """
        Add a PENDING job and dispatch if a worker is free.

        Returns:
            The job id

        Raises:
            QueueFullError: If the pending list is at capacity
            InvalidOperationError: If the id is already known
        """
        if job.id in self._jobs:
            raise InvalidOperationError(f"Job {job.id} already exists")

        position = self._pending.insert(job)
        self._jobs[job.id] = job
        logger.info(
            f"[JobQueue] Enqueued {job.id} (priority={job.priority.value}, position={position})"
        )

        self._dispatch()
        return job.id

    def submit(self, spec: JobSpec, job_id: Optional[str] = None) -> str:
        """Build a Job from a spec and enqueue it."""
        return self.enqueue(Job.create(spec, job_id=job_id))

    # =========================================================================
    # Dispatch and execution
    # =========================================================================

    def _dispatch(self) -> int:
        """Start pending jobs while idle workers remain. Returns the number started."""
        started = 0
        while self._running and len(self._pending) > 0:
            worker = self._workers.acquire()
            if worker is None:
                break

            job = self._pending.pop()
            self._workers.assign(worker, job)
            job.status = JobStatus.RUNNING
            job.started_at = now_utc()

            self._tasks[job.id] = asyncio.create_task(
                self._run(worker, job), name=f"job-{job.id}"
            )
            logger.debug(f"[JobQueue] Dispatched {job.id} to {worker.worker_id}")
            started += 1

        return started

    async def _run(self, worker: Worker, job: Job) -> None:
        token = _progress_reporter.set(partial(self.update_progress, job.id))
        try:
            outcome = await self._executor.execute(job)
        except asyncio.CancelledError:
            if not job.is_terminal():
                job.status = JobStatus.CANCELLED
                job.error = SHUTDOWN_CANCEL_MESSAGE
                job.failure_kind = FailureKind.CANCELLED
            job.completed_at = now_utc()
            raise
        except Exception as e:
            logger.exception(f"[JobQueue] Executor crashed on {job.id}")
            outcome = ExecutionOutcome(
                success=False,
                execution_time=(now_utc() - job.started_at).total_seconds(),
                error=f"Execution error: {e}",
                failure_kind=FailureKind.INTERNAL,
            )
        finally:
            _progress_reporter.reset(token)
            self._tasks.pop(job.id, None)
            self._workers.release(worker)

        self._apply_outcome(job, outcome)
        self._dispatch()

    def _apply_outcome(self, job: Job, outcome: ExecutionOutcome) -> None:
        job.execution_time = outcome.execution_time
        job.completed_at = now_utc()

        # Cancelled while running: the late outcome is discarded
        if job.status == JobStatus.CANCELLED:
            logger.info(f"[JobQueue] {job.id} settled after cancellation, result discarded")
            return

        if outcome.success:
            job.status = JobStatus.COMPLETED
            job.result = outcome.result
            job.progress = 100
            logger.info(f"[JobQueue] {job.id} completed in {outcome.execution_time:.3f}s")
            return

        if outcome.failure_kind == FailureKind.CANCELLED:
            job.status = JobStatus.CANCELLED
            job.error = outcome.error
            job.failure_kind = outcome.failure_kind
            return

        job.status = (
            JobStatus.TIMEOUT if outcome.failure_kind == FailureKind.TIMEOUT else JobStatus.FAILED
        )
        job.error = outcome.error
        job.failure_kind = outcome.failure_kind
        job.result = outcome.result
        logger.warning(
            f"[JobQueue] {job.id} ended {job.status.value} "
            f"(attempt {job.retry_count + 1}/{job.max_retries + 1}): {job.error}"
        )

        if self._on_job_failed is not None:
            try:
                self._on_job_failed(job, outcome)
            except Exception:
                logger.exception(f"[JobQueue] Failure callback raised for {job.id}")

    # =========================================================================
    # Cancellation and retry
    # =========================================================================

    def cancel(self, job_id: str) -> bool:
        """
        Cancel a pending or running job, or a failed job awaiting automatic retry.

        A running job is flagged and marked CANCELLED at once; its calculator
        is allowed to settle but the outcome is discarded.

        Returns:
            True if the job was cancelled, False if unknown or already terminal
        """
        job = self._jobs.get(job_id)
        if job is None:
            return False

        if job.status == JobStatus.PENDING:
            self._pending.remove(job_id)
            job.cancel_requested = True
            job.status = JobStatus.CANCELLED
            job.completed_at = now_utc()
            logger.info(f"[JobQueue] Cancelled pending job {job_id}")
            return True

        if job.status == JobStatus.RUNNING:
            job.cancel_requested = True
            job.status = JobStatus.CANCELLED
            logger.info(f"[JobQueue] Cancelled running job {job_id}")
            return True

        if job.status.is_failure and job.next_retry_at is not None:
            job.status = JobStatus.CANCELLED
            job.next_retry_at = None
            job.completed_at = now_utc()
            logger.info(f"[JobQueue] Cancelled {job_id} while awaiting retry")
            return True

        return False

    def retry_job(self, job_id: str) -> bool:
        """
        Put a FAILED or TIMEOUT job back into the pending list.

        Returns:
            True if re-queued, False if unknown or not eligible

        Raises:
            QueueFullError: If the pending list is at capacity
        """
        job = self._jobs.get(job_id)
        if job is None or not job.can_retry():
            return False

        if self._pending.is_full:
            raise QueueFullError(self._pending.max_size)

        job.status = JobStatus.PENDING
        job.retry_count += 1
        job.started_at = None
        job.completed_at = None
        job.execution_time = None
        job.result = None
        job.error = None
        job.failure_kind = None
        job.progress = None
        job.cancel_requested = False
        job.next_retry_at = None

        self._pending.insert(job)
        logger.info(f"[JobQueue] Re-queued {job_id} (retry {job.retry_count}/{job.max_retries})")
        self._dispatch()
        return True

    def mark_retry_scheduled(self, job_id: str, retry_at: Optional[datetime]) -> None:
        """Record (or clear) when an automatic retry will re-queue a job."""
        job = self._jobs.get(job_id)
        if job is not None:
            job.next_retry_at = retry_at

    # =========================================================================
    # Queries
    # =========================================================================

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def get_job_status(self, job_id: str) -> Optional[JobSnapshot]:
        job = self._jobs.get(job_id)
        return job.snapshot() if job is not None else None

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[JobType] = None,
        priority: Optional[JobPriority] = None,
        name_prefix: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[JobSnapshot]:
        """List job snapshots, newest first. Ties keep the later submission first."""
        matched = [
            (position, job)
            for position, job in enumerate(self._jobs.values())
            if (status is None or job.status == status)
            and (job_type is None or job.type == job_type)
            and (priority is None or job.priority == priority)
            and (name_prefix is None or job.name.startswith(name_prefix))
        ]
        matched.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        jobs = [job for _, job in matched]
        if limit is not None:
            jobs = jobs[:limit]
        return [job.snapshot() for job in jobs]

    def pending_job_ids(self) -> list[str]:
        """Ids of pending jobs in dispatch order."""
        return self._pending.job_ids()

    def get_statistics(self) -> QueueStatistics:
        return compute_statistics(
            self._jobs.values(),
            queue_length=len(self._pending),
            active_workers=self._workers.active_count,
        )

    def list_workers(self) -> list[Worker]:
        return self._workers.list_workers()

    def update_progress(self, job_id: str, progress: int) -> bool:
        """Set progress (clamped to 0-100) on a RUNNING job."""
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.RUNNING:
            return False
        job.progress = max(0, min(100, int(progress)))
        return True

    # =========================================================================
    # Cleanup
    # =========================================================================

    def cleanup(self, max_age: Optional[float] = None) -> int:
        """
        Evict terminal jobs that completed more than ``max_age`` seconds ago.

        Jobs waiting on an automatic retry are kept.

        Returns:
            Number of jobs evicted
        """
        max_age = self.config.max_job_age if max_age is None else max_age
        cutoff = now_utc() - timedelta(seconds=max_age)

        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.is_terminal()
            and job.completed_at is not None
            and job.completed_at <= cutoff
            and job.next_retry_at is None
            and job_id not in self._tasks
        ]
        for job_id in expired:
            del self._jobs[job_id]

        if expired:
            logger.info(f"[JobQueue] Cleaned up {len(expired)} old jobs")
        return len(expired)

    async def _cleanup_loop(self) -> None:
        """Background loop evicting old terminal jobs."""
        while self._running:
            try:
                await asyncio.sleep(self.config.cleanup_interval)

                if not self._running:
                    break

                self.cleanup()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[JobQueue] Cleanup loop error: {e}")
