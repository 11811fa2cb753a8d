"""
Job Service - the process-wide entry point to the job queue.

This service wires the queue components together:
- JobQueue (job state, workers, dispatch)
- JobScheduler (delayed and recurring entries)
- RetryController (automatic retry with backoff)

Usage:
    service = JobService.create(QueueConfig.from_env())
    await service.start()
    job_id = service.submit(spec)
    ...
    await service.stop()

Calculation adapters receive the service explicitly; the module-level
singleton below exists for entry points (the API lifespan, scripts).
"""

import logging
from typing import Optional

from .config import QueueConfig
from .entities import JobSnapshot, JobSpec
from .executor import Executor
from .job_queue import JobQueue
from .job_scheduler import JobScheduler
from .retry_controller import RetryController


logger = logging.getLogger(__name__)


class JobService:
    """
    Coordinates the queue, the scheduler and the retry controller.

    Provides:
    - Component construction and wiring
    - Ordered startup and graceful shutdown
    - Cancellation across both pending jobs and not-yet-fired entries
    """

    def __init__(
        self,
        config: QueueConfig,
        queue: JobQueue,
        scheduler: JobScheduler,
        retry_controller: RetryController,
    ):
        """
        Initialize JobService with all components.

        Use JobService.create() for convenient construction.
        """
        self.config = config
        self.queue = queue
        self.scheduler = scheduler
        self.retry_controller = retry_controller

    @classmethod
    def create(
        cls,
        config: Optional[QueueConfig] = None,
        executor: Optional[Executor] = None,
    ) -> "JobService":
        """
        Create a JobService with all components wired together.

        Args:
            config: Queue tunables (defaults to QueueConfig())
            executor: Executor override, mainly for tests

        Returns:
            Configured JobService
        """
        config = config or QueueConfig()

        queue = JobQueue(config, executor=executor)
        scheduler = JobScheduler(queue, config)
        retry_controller = RetryController(
            queue, scheduler, base_delay=config.retry_base_delay
        )

        # Failed jobs flow to the retry controller
        queue.set_on_job_failed(retry_controller.on_job_failed)

        return cls(
            config=config,
            queue=queue,
            scheduler=scheduler,
            retry_controller=retry_controller,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self.queue.is_running

    async def start(self) -> None:
        """Start the queue, then the scheduler that feeds it."""
        await self.queue.start()
        await self.scheduler.start()
        logger.info("[JobService] Started")

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the scheduler first so nothing new arrives, then drain the queue."""
        await self.scheduler.stop()
        await self.queue.stop(timeout=timeout)
        logger.info("[JobService] Stopped")

    # =========================================================================
    # API-friendly methods
    # =========================================================================

    def submit(self, spec: JobSpec) -> str:
        return self.queue.submit(spec)

    def get_job_status(self, job_id: str) -> Optional[JobSnapshot]:
        return self.queue.get_job_status(job_id)

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a job wherever it currently lives.

        Tries the queue first, then a one-shot scheduled entry that would
        create the job, then a scheduled entry with that key. A job awaiting
        automatic retry also loses its pending retry entry.
        """
        if self.queue.cancel(job_id):
            self.scheduler.cancel_scheduled_job(RetryController.retry_key(job_id))
            return True

        key = self.scheduler.key_for_job(job_id)
        if key is not None:
            return self.scheduler.cancel_scheduled_job(key)

        return self.scheduler.cancel_scheduled_job(job_id)

    def retry_job(self, job_id: str) -> bool:
        """Manual retry; shares the retry budget with automatic retries."""
        if not self.queue.retry_job(job_id):
            return False
        self.scheduler.cancel_scheduled_job(RetryController.retry_key(job_id))
        return True


# Global job service instance
_job_service: Optional[JobService] = None


def get_job_service() -> JobService:
    """
    Get or create the global job service.

    The service is created with environment configuration on first use.
    """
    global _job_service
    if _job_service is None:
        _job_service = JobService.create(QueueConfig.from_env())
    return _job_service


def init_job_service(config: Optional[QueueConfig] = None) -> JobService:
    """
    Initialize the global job service with an explicit config.

    Returns the existing instance if one was already created.
    """
    global _job_service
    if _job_service is None:
        _job_service = JobService.create(config or QueueConfig.from_env())
    return _job_service


async def shutdown_job_service(timeout: Optional[float] = None) -> None:
    """Stop and drop the global job service."""
    global _job_service
    if _job_service is not None:
        await _job_service.stop(timeout=timeout)
        _job_service = None


def reset_job_service() -> None:
    """Drop the global job service without stopping it (tests)."""
    global _job_service
    _job_service = None
