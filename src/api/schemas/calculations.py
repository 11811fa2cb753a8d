"""
Calculation API schemas.

Catalog listing and the per-area scheduling endpoints under /calculations.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from src.scheduler.entities import JobPriority


class CalculationDefinitionResponse(BaseModel):
    """One catalog entry."""

    name: str
    area: str = Field(..., description="season, team or table")
    priority: JobPriority
    dependencies: List[str] = Field(default_factory=list, description="Content the calculation reads")
    enabled: bool
    timeout: float = Field(..., description="Seconds before the job times out")
    retry_attempts: int


class CalculationListResponse(BaseModel):
    calculations: List[CalculationDefinitionResponse] = Field(default_factory=list)
    total: int


class ScheduleResponse(BaseModel):
    """Response from a scheduling endpoint."""

    key: str = Field(..., description="Scheduled entry key (use with /scheduler/entries)")
    job_id: Optional[str] = Field(default=None, description="Job id the entry will create (one-shot only)")
    name: str = Field(..., description="Calculation name")


class DelayRequest(BaseModel):
    delay: Optional[float] = Field(default=None, ge=0, description="Seconds until the job is enqueued")
    priority: Optional[JobPriority] = None


class RecurringRequest(BaseModel):
    interval: Optional[float] = Field(
        default=None, gt=0, description="Interval (hours for seasons, minutes for teams and tables)"
    )
    max_runs: Optional[int] = Field(default=None, ge=1)
    start_delay: Optional[float] = Field(default=None, ge=0, description="Seconds until the first run")


# =============================================================================
# Season
# =============================================================================


class SeasonTransitionRequest(BaseModel):
    to_saison_id: int = Field(..., description="Season teams and leagues move to")
    include_teams: bool = True
    include_leagues: bool = True
    delay: Optional[float] = Field(default=None, ge=0)


class SeasonComparisonRequest(BaseModel):
    comparison_saison_ids: List[int] = Field(..., min_length=1)
    delay: Optional[float] = Field(default=None, ge=0)


# =============================================================================
# Team
# =============================================================================


class TeamPerformanceRequest(BaseModel):
    liga_id: Optional[int] = None
    saison_id: Optional[int] = None
    include_ranking: bool = True
    delay: Optional[float] = Field(default=None, ge=0)
    priority: Optional[JobPriority] = None


class TeamRankingRequest(BaseModel):
    liga_id: int
    saison_id: int
    delay: Optional[float] = Field(default=None, ge=0)


class TeamBatchRequest(BaseModel):
    liga_id: int
    saison_id: int
    batch_size: int = Field(default=10, ge=1)
    include_ranking: bool = True
    delay: Optional[float] = Field(default=None, ge=0)


class TeamComparisonRequest(BaseModel):
    comparison_team_ids: List[int] = Field(..., min_length=1)
    delay: Optional[float] = Field(default=None, ge=0)


class TeamRecurringRequest(RecurringRequest):
    liga_id: int
    saison_id: int


# =============================================================================
# Table
# =============================================================================


class TableBatchRequest(BaseModel):
    batch_size: int = Field(default=10, ge=1)
    delay: Optional[float] = Field(default=None, ge=0)
