"""
Calculation service state for API integration.

Provides singleton access to the CalculationJobs registry.
Initialized and started during FastAPI lifespan.

Usage:
    from ._service_state import get_calculation_jobs, init_calculation_jobs

    # In lifespan:
    init_calculation_jobs(service, store)

    # In routers:
    calculations = get_calculation_jobs()
"""

from typing import Optional

from src.calculations import CalculationJobs
from src.infra.content_store import ContentStore
from src.scheduler.service import JobService, reset_job_service


# Global calculation registry instance
_calculation_jobs: Optional[CalculationJobs] = None


def init_calculation_jobs(service: JobService, store: ContentStore) -> CalculationJobs:
    """
    Initialize the calculation registry singleton.

    Called during FastAPI lifespan startup, after the job service exists.

    Args:
        service: Job service the adapters enqueue onto
        store: Content store the calculators read and write

    Returns:
        Initialized CalculationJobs
    """
    global _calculation_jobs

    if _calculation_jobs is not None:
        return _calculation_jobs

    _calculation_jobs = CalculationJobs(service, store)
    return _calculation_jobs


def get_calculation_jobs() -> CalculationJobs:
    """
    Get the calculation registry singleton.

    Raises:
        RuntimeError: If the registry is not initialized
    """
    if _calculation_jobs is None:
        raise RuntimeError(
            "Calculation jobs not initialized. "
            "Ensure init_calculation_jobs() is called during startup."
        )

    return _calculation_jobs


def get_job_service() -> JobService:
    """The job service behind the registry."""
    return get_calculation_jobs().service


async def shutdown_calculation_jobs(timeout: Optional[float] = None) -> None:
    """
    Shutdown the registry and its job service.

    Called during FastAPI lifespan shutdown.
    """
    global _calculation_jobs

    if _calculation_jobs is not None:
        if _calculation_jobs.service.is_running:
            await _calculation_jobs.service.stop(timeout=timeout)

        reset_job_service()
        _calculation_jobs = None


def reset_calculation_jobs() -> None:
    """Drop the registry without stopping anything (tests)."""
    global _calculation_jobs
    _calculation_jobs = None
