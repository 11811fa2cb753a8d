"""
Calculation registry.

Collects the season, team and table adapters behind one lookup so callers
(the /jobs API, scripts) can enqueue any calculation by name.
"""

import logging
from typing import Any, Optional

from src.infra.content_store import ContentStore
from src.scheduler.entities import JobContext, JobPriority
from src.scheduler.errors import InvalidOperationError
from src.scheduler.service import JobService

from .base import CalculationAdapter, CalculationDefinition
from .season import SeasonCalculationJobs
from .table import TableCalculationJobs
from .team import TeamStatisticsJobs


logger = logging.getLogger(__name__)


class CalculationJobs:
    """All calculation adapters sharing one JobService and content store."""

    def __init__(self, service: JobService, store: ContentStore):
        self.service = service
        self.store = store
        self.season = SeasonCalculationJobs(service, store)
        self.team = TeamStatisticsJobs(service, store)
        self.table = TableCalculationJobs(service, store)

    @property
    def adapters(self) -> list[CalculationAdapter]:
        return [self.season, self.team, self.table]

    def adapter_for(self, name: str) -> Optional[CalculationAdapter]:
        for adapter in self.adapters:
            if adapter.get_definition(name) is not None:
                return adapter
        return None

    def get_definition(self, name: str) -> Optional[CalculationDefinition]:
        adapter = self.adapter_for(name)
        return adapter.get_definition(name) if adapter else None

    def list_definitions(self) -> list[tuple[str, CalculationDefinition]]:
        """(area, definition) for every registered calculation."""
        return [
            (adapter.area, definition)
            for adapter in self.adapters
            for definition in adapter.list_definitions()
        ]

    def enqueue(
        self,
        name: str,
        payload: Any,
        context: Optional[JobContext] = None,
        priority: Optional[JobPriority] = None,
    ) -> str:
        """
        Enqueue a calculation by name.

        Raises:
            InvalidOperationError: Unknown or disabled calculation
            pydantic.ValidationError: Payload does not fit the calculation
            QueueFullError: Pending queue is at capacity
        """
        adapter = self.adapter_for(name)
        if adapter is None:
            raise InvalidOperationError(f"Unknown calculation: {name}")

        if context is None:
            context = adapter.create_context(name)

        job_id = adapter.enqueue(name, payload, context, priority)
        logger.info(f"[CalculationJobs] Enqueued {name} as {job_id}")
        return job_id
