"""
Executor for the Job Queue.

- Runs a job's calculator against its deadline
- Honors a cancellation flag set before execution started
- Classifies failures so the RetryController never has to parse messages

What Executor MUST NOT do:
- Change job status (JobQueue's responsibility)
- Decide retry policy (RetryController's responsibility)
- Touch the pending queue or workers
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .entities import FailureKind, Job
from .errors import CalculationAbortedError, TransientJobError


logger = logging.getLogger(__name__)


# Fallback for exceptions that carry no type information of their own
TRANSIENT_ERROR_MARKERS = ("timeout", "network", "connection")

TRANSIENT_EXCEPTIONS = (
    TransientJobError,
    ConnectionError,
    httpx.TransportError,
)


@dataclass
class ExecutionOutcome:
    """Result of one execution attempt."""

    success: bool
    execution_time: float
    result: Any = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None

    @property
    def retry_recommended(self) -> bool:
        return not self.success and self.failure_kind is not None and self.failure_kind.is_retryable


def classify_error(error: BaseException) -> FailureKind:
    """
    Map a calculator exception to a FailureKind.

    Typed errors win; message sniffing is only used for plain exceptions.
    """
    if isinstance(error, CalculationAbortedError):
        return FailureKind.APPLICATION
    if isinstance(error, TimeoutError):
        return FailureKind.TIMEOUT
    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return FailureKind.TRANSIENT

    message = str(error).lower()
    if any(marker in message for marker in TRANSIENT_ERROR_MARKERS):
        return FailureKind.TRANSIENT

    return FailureKind.APPLICATION


class Executor:
    """
    Executes a single job attempt.

    Execution is asynchronous; the deadline race is ``asyncio.wait_for``, which
    cancels the calculator coroutine when the deadline wins.
    """

    async def execute(self, job: Job) -> ExecutionOutcome:
        """
        Execute a job and return its outcome.

        Args:
            job: The job to execute (status already RUNNING)

        Returns:
            ExecutionOutcome describing success or the classified failure
        """
        started = time.monotonic()

        if job.cancel_requested:
            logger.info(f"Job {job.id} was cancelled before execution")
            return ExecutionOutcome(
                success=False,
                execution_time=time.monotonic() - started,
                error="Job was cancelled",
                failure_kind=FailureKind.CANCELLED,
            )

        try:
            awaitable = job.calculator(job.payload, job.context)
            if not inspect.isawaitable(awaitable):
                raise TypeError(
                    f"Calculator for {job.name} returned {type(awaitable).__name__}, expected an awaitable"
                )
        except Exception as e:
            logger.exception(f"Could not start calculator for job {job.id}")
            return ExecutionOutcome(
                success=False,
                execution_time=time.monotonic() - started,
                error=f"Execution error: {e}",
                failure_kind=FailureKind.INTERNAL,
            )

        try:
            result = await asyncio.wait_for(awaitable, timeout=job.timeout)

        except asyncio.TimeoutError:
            elapsed = time.monotonic() - started
            logger.warning(f"Job {job.id} timed out after {elapsed:.3f}s (limit {job.timeout}s)")
            return ExecutionOutcome(
                success=False,
                execution_time=elapsed,
                error=f"Job timeout after {job.timeout}s",
                failure_kind=FailureKind.TIMEOUT,
            )

        except CalculationAbortedError as e:
            logger.warning(f"Job {job.id} aborted: {e}")
            return ExecutionOutcome(
                success=False,
                execution_time=time.monotonic() - started,
                result=e.result,
                error=str(e),
                failure_kind=FailureKind.APPLICATION,
            )

        except Exception as e:
            kind = classify_error(e)
            logger.warning(f"Job {job.id} failed ({kind.value}): {e}")
            return ExecutionOutcome(
                success=False,
                execution_time=time.monotonic() - started,
                error=str(e) or type(e).__name__,
                failure_kind=kind,
            )

        elapsed = time.monotonic() - started
        logger.debug(f"Job {job.id} calculator finished in {elapsed:.3f}s")
        return ExecutionOutcome(success=True, execution_time=elapsed, result=result)
