"""
Calculation adapters for the club backend.

Each adapter owns a catalog of named calculations for one area and turns
them into jobs on the shared JobService:
- SeasonCalculationJobs: season statistics, summaries, transitions, comparisons
- TeamStatisticsJobs: team statistics, rankings, batch updates, comparisons
- TableCalculationJobs: league table positions and league statistics
"""

from .base import CalculationAdapter, CalculationDefinition
from .models import (
    CalculationPayload,
    CalculationResult,
    SeasonJobData,
    SeasonJobResult,
    TableJobData,
    TableJobResult,
    TeamJobData,
    TeamJobResult,
)
from .registry import CalculationJobs
from .season import SeasonCalculationJobs
from .table import TableCalculationJobs
from .team import TeamStatisticsJobs

__all__ = [
    "CalculationAdapter",
    "CalculationDefinition",
    "CalculationJobs",
    "CalculationPayload",
    "CalculationResult",
    "SeasonCalculationJobs",
    "SeasonJobData",
    "SeasonJobResult",
    "TableCalculationJobs",
    "TableJobData",
    "TableJobResult",
    "TeamJobData",
    "TeamJobResult",
    "TeamStatisticsJobs",
]
