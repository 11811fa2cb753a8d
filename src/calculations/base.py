"""
Shared plumbing for calculation adapters.

An adapter owns a catalog of named calculations for one area (season, team,
table). It turns a calculation name plus payload into a JobSpec, and offers
convenience scheduling, status, cancel and listing helpers on top of the
JobService it was given.

What adapters MUST NOT do:
- Reach for the global job service (it is injected)
- Change job state except through JobService
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from pydantic import BaseModel

from src.infra.content_store import (
    ContentStore,
    ContentStoreError,
    ContentStoreUnavailableError,
)
from src.scheduler.config import QueueConfig
from src.scheduler.entities import (
    Calculator,
    JobContext,
    JobPriority,
    JobSnapshot,
    JobSpec,
    JobStatus,
    JobType,
    now_utc,
)
from src.scheduler.errors import CalculationAbortedError, InvalidOperationError
from src.scheduler.service import JobService

from .models import CalculationResult


logger = logging.getLogger(__name__)


@dataclass
class CalculationDefinition:
    """
    Catalog entry for a named calculation.

    ``dependencies`` names the content the calculation reads; it is
    informational and never gates execution.
    """

    name: str
    calculator: Calculator
    payload_model: type[BaseModel]
    priority: JobPriority = JobPriority.MEDIUM
    dependencies: tuple[str, ...] = ()
    enabled: bool = True
    timeout: float = 30.0
    retry_attempts: int = 1

    def to_spec(
        self,
        payload: BaseModel,
        context: Optional[JobContext] = None,
        priority: Optional[JobPriority] = None,
    ) -> JobSpec:
        return JobSpec(
            name=self.name,
            calculator=self.calculator,
            type=JobType.CALCULATION,
            priority=priority or self.priority,
            payload=payload,
            context=context,
            timeout=self.timeout,
            max_retries=self.retry_attempts,
        )


class CalculationAdapter:
    """Base class for the season, team and table adapters."""

    area: str = ""
    content_type: str = ""
    # Payload field identifying the entity a job is about
    entity_field: str = ""
    # Pause between batches of concurrent content store calls
    batch_delay: float = 0.0

    def __init__(
        self,
        service: JobService,
        store: ContentStore,
        config: Optional[QueueConfig] = None,
    ):
        self.service = service
        self.store = store
        self.config = config or service.config
        self._definitions = {
            definition.name: definition for definition in self.build_definitions()
        }

    def build_definitions(self) -> list[CalculationDefinition]:
        raise NotImplementedError

    # =========================================================================
    # Catalog
    # =========================================================================

    def get_definition(self, name: str) -> Optional[CalculationDefinition]:
        return self._definitions.get(name)

    def list_definitions(self) -> list[CalculationDefinition]:
        return list(self._definitions.values())

    def build_spec(
        self,
        name: str,
        payload: Any,
        context: Optional[JobContext] = None,
        priority: Optional[JobPriority] = None,
    ) -> JobSpec:
        """
        Validate the payload against the calculation and build a JobSpec.

        Raises:
            InvalidOperationError: Unknown or disabled calculation
            pydantic.ValidationError: Payload does not fit the calculation
        """
        definition = self._definitions.get(name)
        if definition is None:
            raise InvalidOperationError(f"Unknown calculation: {name}")
        if not definition.enabled:
            raise InvalidOperationError(f"Calculation {name} is disabled")

        if not isinstance(payload, definition.payload_model):
            payload = definition.payload_model.model_validate(payload)

        return definition.to_spec(payload, context, priority)

    def create_context(self, operation_prefix: str, operation: str = "update") -> JobContext:
        return JobContext.create(self.content_type, operation_prefix, operation=operation)

    # =========================================================================
    # Enqueue and scheduling
    # =========================================================================

    def enqueue(
        self,
        name: str,
        payload: Any,
        context: Optional[JobContext] = None,
        priority: Optional[JobPriority] = None,
    ) -> str:
        """Enqueue a calculation right away. Returns the job id."""
        return self.service.submit(self.build_spec(name, payload, context, priority))

    def _schedule_once(
        self,
        key: str,
        name: str,
        payload: BaseModel,
        context: JobContext,
        delay: float,
        priority: Optional[JobPriority] = None,
        dependencies: Optional[list[str]] = None,
    ) -> str:
        spec = self.build_spec(name, payload, context, priority)
        job_id = self.service.scheduler.schedule_in(key, delay, spec, dependencies)
        logger.info(f"[{self.area}] Scheduled {name} as {job_id} in {delay}s")
        return job_id

    def _schedule_recurring(
        self,
        key: str,
        name: str,
        payload: BaseModel,
        context: JobContext,
        interval: float,
        start_delay: float,
        priority: Optional[JobPriority] = None,
        max_runs: Optional[int] = None,
    ) -> str:
        spec = self.build_spec(name, payload, context, priority)
        self.service.scheduler.schedule_recurring(
            key,
            now_utc() + timedelta(seconds=start_delay),
            interval,
            spec,
            max_runs=max_runs,
        )
        logger.info(
            f"[{self.area}] Scheduled recurring {name} as {key} every {interval}s "
            f"(max_runs={max_runs})"
        )
        return key

    # =========================================================================
    # Job management
    # =========================================================================

    def get_job_status(self, job_id: str) -> Optional[JobSnapshot]:
        return self.service.get_job_status(job_id)

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a queued job, or the scheduled entry that would create it."""
        return self.service.cancel_job(job_id)

    def list_jobs(
        self,
        entity_id: Optional[int] = None,
        status: Optional[JobStatus] = None,
        limit: Optional[int] = None,
    ) -> list[JobSnapshot]:
        """This adapter's jobs, newest first, optionally for one entity."""
        jobs = []
        for snapshot in self.service.queue.list_jobs(status=status, job_type=JobType.CALCULATION):
            if snapshot.name not in self._definitions:
                continue
            if entity_id is not None:
                job = self.service.queue.get_job(snapshot.id)
                if job is None or getattr(job.payload, self.entity_field, None) != entity_id:
                    continue
            jobs.append(snapshot)
        return jobs[:limit] if limit is not None else jobs

    # =========================================================================
    # Calculator helpers
    # =========================================================================

    def _abort(
        self, result: CalculationResult, started: float, message: str
    ) -> CalculationAbortedError:
        """Record a fatal error on the result and build the exception that ends the job."""
        result.success = False
        result.errors.append(message)
        result.execution_time = time.monotonic() - started
        logger.warning(f"[{self.area}] {result.job_type} aborted: {message}")
        return CalculationAbortedError(message, result=result)

    async def _load_one(
        self,
        result: CalculationResult,
        started: float,
        uid: str,
        entity_id: int,
        label: str,
        populate: Optional[dict] = None,
    ) -> dict:
        """
        Load the primary entity of a calculation.

        An unreachable store propagates (the job is retried); any other store
        error or a missing record aborts the job.
        """
        try:
            record = await self.store.find_one(uid, entity_id, populate)
        except ContentStoreUnavailableError:
            raise
        except ContentStoreError as e:
            raise self._abort(result, started, str(e))

        if record is None:
            raise self._abort(result, started, f"{label} with ID {entity_id} not found")
        return record

    async def _load_many(
        self,
        result: CalculationResult,
        started: float,
        uid: str,
        filters: dict,
        populate: Optional[dict] = None,
    ) -> list[dict]:
        try:
            return await self.store.find_many(uid, filters=filters, populate=populate)
        except ContentStoreUnavailableError:
            raise
        except ContentStoreError as e:
            raise self._abort(result, started, str(e))

    def _finish(self, result: CalculationResult, started: float) -> CalculationResult:
        result.execution_time = time.monotonic() - started
        logger.info(
            f"[{self.area}] {result.job_type} finished: success={result.success}, "
            f"processed={result.processed}, updated={result.updated}, errors={len(result.errors)}"
        )
        return result

    async def _pause(self) -> None:
        if self.batch_delay > 0:
            await asyncio.sleep(self.batch_delay)
