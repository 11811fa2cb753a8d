"""
Job queue exceptions.

Capacity and validation problems are raised to the caller synchronously.
Execution problems (TransientJobError, CalculationAbortedError) are raised by
calculators and contained by the Executor; they never escape the queue.
"""

from typing import Any, Optional


class SchedulerError(Exception):
    """Base exception for all job queue errors."""
    pass


class QueueFullError(SchedulerError):
    """Raised when the pending queue is at capacity."""

    def __init__(self, max_size: int):
        self.max_size = max_size
        super().__init__(f"Job queue is full (max {max_size} pending jobs)")


class InvalidOperationError(SchedulerError):
    """
    Raised when an operation violates queue invariants.

    Examples:
    - Enqueueing a job id that is already known
    - Enqueueing a job that is not PENDING
    """
    pass


class ScheduleValidationError(SchedulerError):
    """Raised when a schedule request is rejected."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid schedule: {', '.join(errors)}")


class TransientJobError(SchedulerError):
    """
    Raised by calculators for failures worth retrying.

    The Executor classifies these as TRANSIENT regardless of message text.
    """
    pass


class CalculationAbortedError(SchedulerError):
    """
    Raised by calculators when a precondition fails.

    Carries the structured failure result so callers polling the job see it.
    Never retried automatically.
    """

    def __init__(self, message: str, result: Optional[Any] = None):
        self.result = result
        super().__init__(message)
