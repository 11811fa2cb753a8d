"""
Pytest configuration and shared fixtures.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Iterable, Optional

import pytest

from src.api._service_state import reset_calculation_jobs
from src.scheduler import JobService, JobStatus, QueueConfig
from src.scheduler.service import reset_job_service


@pytest.fixture(autouse=True, scope="function")
def reset_auth_module():
    """
    Reset auth module state before each test.

    Tests run with API_AUTH_ENABLED=false unless they set it themselves.
    """
    original_auth_enabled = os.environ.get("API_AUTH_ENABLED")
    original_api_key = os.environ.get("API_KEY")

    os.environ["API_AUTH_ENABLED"] = "false"

    yield

    if original_auth_enabled is not None:
        os.environ["API_AUTH_ENABLED"] = original_auth_enabled
    elif "API_AUTH_ENABLED" in os.environ:
        del os.environ["API_AUTH_ENABLED"]

    if original_api_key is not None:
        os.environ["API_KEY"] = original_api_key
    elif "API_KEY" in os.environ:
        del os.environ["API_KEY"]

    import importlib
    import src.api.dependencies.auth as auth_module
    importlib.reload(auth_module)


@pytest.fixture(autouse=True, scope="function")
def reset_singletons():
    """Drop the process-wide job service and calculation registry around each test."""
    reset_job_service()
    reset_calculation_jobs()
    yield
    reset_job_service()
    reset_calculation_jobs()


@pytest.fixture
def fast_config() -> QueueConfig:
    """Config with short timers so scheduler and retry tests run in milliseconds."""
    return QueueConfig(
        max_workers=3,
        max_queue_size=100,
        default_timeout=1.0,
        default_max_retries=2,
        retry_base_delay=0.01,
        cleanup_interval=0,
        max_job_age=3600,
        stop_timeout=1.0,
        scheduler_tick=0.01,
        min_schedule_interval=0.01,
        batch_success_threshold=0.5,
    )


@pytest.fixture
def service(fast_config) -> JobService:
    """A fresh, not yet started JobService."""
    return JobService.create(fast_config)


@pytest.fixture
def running():
    """
    Async context manager that starts a service and always stops it.

    Usage:
        async with running(service):
            ...
    """
    @asynccontextmanager
    async def _running(svc: JobService, stop_timeout: float = 1.0):
        await svc.start()
        try:
            yield svc
        finally:
            await svc.stop(timeout=stop_timeout)

    return _running


@pytest.fixture
def wait_for_status():
    """Poll until a job reaches one of ``statuses`` (and has no retry pending)."""
    async def _wait(
        svc: JobService,
        job_id: str,
        statuses: Iterable[JobStatus] = (JobStatus.COMPLETED,),
        timeout: float = 2.0,
        settled: bool = True,
    ):
        statuses = set(statuses)
        deadline = asyncio.get_running_loop().time() + timeout
        job: Optional[object] = None
        while asyncio.get_running_loop().time() < deadline:
            job = svc.get_job_status(job_id)
            if job is not None and job.status in statuses:
                if not settled or job.next_retry_at is None:
                    return job
            await asyncio.sleep(0.005)
        raise AssertionError(f"Job {job_id} did not reach {statuses}: {job}")

    return _wait
