"""
Job queue configuration.

Values come from environment variables (see .env.example); call
``load_dotenv()`` before ``QueueConfig.from_env()`` in entry points.
"""

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass
class QueueConfig:
    """
    Tunables for JobQueue, JobScheduler and RetryController.

    All durations are seconds.
    """

    max_workers: int = 3
    max_queue_size: int = 100
    default_timeout: float = 30.0
    default_max_retries: int = 2
    retry_base_delay: float = 1.0
    cleanup_interval: float = 300.0
    max_job_age: float = 3600.0
    stop_timeout: float = 30.0
    scheduler_tick: float = 1.0
    min_schedule_interval: float = 1.0
    batch_success_threshold: float = 0.5

    @classmethod
    def from_env(cls) -> "QueueConfig":
        """Build a config from environment variables, falling back to defaults."""
        return cls(
            max_workers=_env_int("JOB_QUEUE_MAX_WORKERS", 3),
            max_queue_size=_env_int("JOB_QUEUE_MAX_SIZE", 100),
            default_timeout=_env_float("JOB_DEFAULT_TIMEOUT_SECONDS", 30.0),
            default_max_retries=_env_int("JOB_DEFAULT_MAX_RETRIES", 2),
            retry_base_delay=_env_float("JOB_RETRY_BASE_DELAY_SECONDS", 1.0),
            cleanup_interval=_env_float("JOB_CLEANUP_INTERVAL_SECONDS", 300.0),
            max_job_age=_env_float("JOB_MAX_AGE_SECONDS", 3600.0),
            stop_timeout=_env_float("JOB_STOP_TIMEOUT_SECONDS", 30.0),
            scheduler_tick=_env_float("SCHEDULER_TICK_SECONDS", 1.0),
            min_schedule_interval=_env_float("SCHEDULER_MIN_INTERVAL_SECONDS", 1.0),
            batch_success_threshold=_env_float("BATCH_SUCCESS_THRESHOLD", 0.5),
        )
