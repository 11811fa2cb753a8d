"""
Worker pool for the JobQueue.

Workers are logical capacity slots on the event loop, not threads.
The pool only tracks which slot runs which job; execution is the Executor's job.
"""

import logging
from typing import Optional

from .entities import Job, Worker, WorkerStatus, now_utc


logger = logging.getLogger(__name__)


class WorkerPool:
    """Fixed-size set of workers, created on start and torn down on stop."""

    def __init__(self, size: int = 3):
        if size < 1:
            raise ValueError("Worker pool size must be at least 1")
        self.size = size
        self._workers: dict[str, Worker] = {}

    def start(self) -> None:
        """Create the workers. Existing workers are replaced."""
        self._workers = {}
        for index in range(1, self.size + 1):
            worker = Worker.create(index)
            self._workers[worker.worker_id] = worker
        logger.info(f"Worker pool started with {self.size} workers")

    def stop(self) -> None:
        """Mark every worker STOPPED and drop them."""
        for worker in self._workers.values():
            worker.status = WorkerStatus.STOPPED
            worker.current_job_id = None
        self._workers = {}
        logger.info("Worker pool stopped")

    def acquire(self) -> Optional[Worker]:
        """Get an idle worker, or None if all are busy (or the pool is stopped)."""
        for worker in self._workers.values():
            if worker.status == WorkerStatus.IDLE:
                return worker
        return None

    def assign(self, worker: Worker, job: Job) -> None:
        worker.status = WorkerStatus.BUSY
        worker.current_job_id = job.id
        worker.last_activity = now_utc()

    def release(self, worker: Worker) -> None:
        """Return a worker to IDLE after its job settled."""
        worker.current_job_id = None
        worker.processed_jobs += 1
        worker.last_activity = now_utc()
        # A worker released after stop() stays stopped
        if worker.status == WorkerStatus.BUSY:
            worker.status = WorkerStatus.IDLE

    @property
    def active_count(self) -> int:
        return sum(1 for w in self._workers.values() if w.status == WorkerStatus.BUSY)

    @property
    def idle_count(self) -> int:
        return sum(1 for w in self._workers.values() if w.status == WorkerStatus.IDLE)

    def list_workers(self) -> list[Worker]:
        return [worker.snapshot() for worker in self._workers.values()]
