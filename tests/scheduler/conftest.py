"""
Scheduler test fixtures.
"""

from typing import Any, Callable

import pytest

from src.scheduler import JobPriority, JobSpec

from .calculators import RecordingCalculator


@pytest.fixture
def make_spec() -> Callable[..., JobSpec]:
    """Build a JobSpec around a calculator with test-friendly defaults."""
    def _make(
        calculator=None,
        name: str = "test-job",
        priority: JobPriority = JobPriority.MEDIUM,
        payload: Any = None,
        timeout: float = 1.0,
        max_retries: int = 2,
    ) -> JobSpec:
        return JobSpec(
            name=name,
            calculator=calculator or RecordingCalculator(),
            priority=priority,
            payload=payload,
            timeout=timeout,
            max_retries=max_retries,
        )

    return _make
