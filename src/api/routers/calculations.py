"""
Calculations router: catalog and per-area scheduling.

Endpoints:
- GET /calculations - All registered calculations
- POST /calculations/season/{saison_id}/{statistics|summary|transition|comparison|recurring}
- POST /calculations/team/{team_id}/{performance|ranking|comparison}
- POST /calculations/team/batch, POST /calculations/team/recurring
- POST /calculations/table/{liga_id}/{position/{team_id}|statistics|ranking|batch|recurring}

Scheduling endpoints return the scheduled entry key and, for one-shot
entries, the job id the entry will create.
"""

import logging
from typing import Callable

from fastapi import APIRouter, HTTPException

from src.calculations.season import (
    SEASON_COMPARISON,
    SEASON_STATISTICS,
    SEASON_SUMMARY,
    SEASON_TRANSITION,
)
from src.calculations.table import LEAGUE_BATCH, LEAGUE_STATISTICS, TABLE_POSITION, TABLE_RANKING
from src.calculations.team import TEAM_BATCH, TEAM_COMPARISON, TEAM_PERFORMANCE, TEAM_RANKING
from src.scheduler.errors import InvalidOperationError, ScheduleValidationError

from ..schemas.calculations import (
    CalculationDefinitionResponse,
    CalculationListResponse,
    DelayRequest,
    RecurringRequest,
    ScheduleResponse,
    SeasonComparisonRequest,
    SeasonTransitionRequest,
    TableBatchRequest,
    TeamBatchRequest,
    TeamComparisonRequest,
    TeamPerformanceRequest,
    TeamRankingRequest,
    TeamRecurringRequest,
)
from .._service_state import get_calculation_jobs


logger = logging.getLogger(__name__)

router = APIRouter()


def _options(**kwargs) -> dict:
    """Keyword arguments the caller actually supplied; the rest keep their defaults."""
    return {key: value for key, value in kwargs.items() if value is not None}


def _schedule(name: str, schedule: Callable[[], str], recurring: bool = False) -> ScheduleResponse:
    """Run a scheduling call and map its errors to HTTP responses."""
    try:
        result = schedule()
    except ScheduleValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors)
    except InvalidOperationError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if recurring:
        return ScheduleResponse(key=result, job_id=None, name=name)

    scheduler = get_calculation_jobs().service.scheduler
    return ScheduleResponse(key=scheduler.key_for_job(result) or result, job_id=result, name=name)


@router.get("", response_model=CalculationListResponse)
async def list_calculations():
    """Every calculation with its priority, timeout and retry budget."""
    calculations = get_calculation_jobs()

    items = [
        CalculationDefinitionResponse(
            name=definition.name,
            area=area,
            priority=definition.priority,
            dependencies=list(definition.dependencies),
            enabled=definition.enabled,
            timeout=definition.timeout,
            retry_attempts=definition.retry_attempts,
        )
        for area, definition in calculations.list_definitions()
    ]
    return CalculationListResponse(calculations=items, total=len(items))


# =============================================================================
# Season
# =============================================================================


@router.post("/season/{saison_id}/statistics", response_model=ScheduleResponse, status_code=202)
async def schedule_season_statistics(saison_id: int, request: DelayRequest = DelayRequest()):
    season = get_calculation_jobs().season
    return _schedule(
        SEASON_STATISTICS,
        lambda: season.schedule_statistics(
            saison_id, **_options(delay=request.delay, priority=request.priority)
        ),
    )


@router.post("/season/{saison_id}/summary", response_model=ScheduleResponse, status_code=202)
async def schedule_season_summary(saison_id: int, request: DelayRequest = DelayRequest()):
    season = get_calculation_jobs().season
    return _schedule(
        SEASON_SUMMARY,
        lambda: season.schedule_summary(
            saison_id, **_options(delay=request.delay, priority=request.priority)
        ),
    )


@router.post("/season/{saison_id}/transition", response_model=ScheduleResponse, status_code=202)
async def schedule_season_transition(saison_id: int, request: SeasonTransitionRequest):
    """Move teams and leagues of a season to ``to_saison_id``."""
    season = get_calculation_jobs().season
    return _schedule(
        SEASON_TRANSITION,
        lambda: season.schedule_transition(
            saison_id,
            request.to_saison_id,
            include_teams=request.include_teams,
            include_leagues=request.include_leagues,
            **_options(delay=request.delay),
        ),
    )


@router.post("/season/{saison_id}/comparison", response_model=ScheduleResponse, status_code=202)
async def schedule_season_comparison(saison_id: int, request: SeasonComparisonRequest):
    season = get_calculation_jobs().season
    return _schedule(
        SEASON_COMPARISON,
        lambda: season.schedule_comparison(
            saison_id, request.comparison_saison_ids, **_options(delay=request.delay)
        ),
    )


@router.post("/season/{saison_id}/recurring", response_model=ScheduleResponse, status_code=202)
async def schedule_season_recurring(saison_id: int, request: RecurringRequest = RecurringRequest()):
    """Recurring season statistics; ``interval`` is in hours."""
    season = get_calculation_jobs().season
    return _schedule(
        SEASON_STATISTICS,
        lambda: season.schedule_recurring_updates(
            saison_id,
            **_options(
                interval_hours=request.interval,
                max_runs=request.max_runs,
                start_delay=request.start_delay,
            ),
        ),
        recurring=True,
    )


# =============================================================================
# Team
# =============================================================================


@router.post("/team/batch", response_model=ScheduleResponse, status_code=202)
async def schedule_team_batch(request: TeamBatchRequest):
    """Statistics for every team of a league in a season."""
    team = get_calculation_jobs().team
    return _schedule(
        TEAM_BATCH,
        lambda: team.schedule_batch_update(
            request.liga_id,
            request.saison_id,
            batch_size=request.batch_size,
            include_ranking=request.include_ranking,
            **_options(delay=request.delay),
        ),
    )


@router.post("/team/recurring", response_model=ScheduleResponse, status_code=202)
async def schedule_team_recurring(request: TeamRecurringRequest):
    """Recurring team batch update; ``interval`` is in minutes."""
    team = get_calculation_jobs().team
    return _schedule(
        TEAM_BATCH,
        lambda: team.schedule_recurring_updates(
            request.liga_id,
            request.saison_id,
            **_options(
                interval_minutes=request.interval,
                max_runs=request.max_runs,
                start_delay=request.start_delay,
            ),
        ),
        recurring=True,
    )


@router.post("/team/{team_id}/performance", response_model=ScheduleResponse, status_code=202)
async def schedule_team_performance(
    team_id: int, request: TeamPerformanceRequest = TeamPerformanceRequest()
):
    team = get_calculation_jobs().team
    return _schedule(
        TEAM_PERFORMANCE,
        lambda: team.schedule_performance(
            team_id,
            liga_id=request.liga_id,
            saison_id=request.saison_id,
            include_ranking=request.include_ranking,
            **_options(delay=request.delay, priority=request.priority),
        ),
    )


@router.post("/team/{team_id}/ranking", response_model=ScheduleResponse, status_code=202)
async def schedule_team_ranking(team_id: int, request: TeamRankingRequest):
    team = get_calculation_jobs().team
    return _schedule(
        TEAM_RANKING,
        lambda: team.schedule_ranking_update(
            team_id, request.liga_id, request.saison_id, **_options(delay=request.delay)
        ),
    )


@router.post("/team/{team_id}/comparison", response_model=ScheduleResponse, status_code=202)
async def schedule_team_comparison(team_id: int, request: TeamComparisonRequest):
    team = get_calculation_jobs().team
    return _schedule(
        TEAM_COMPARISON,
        lambda: team.schedule_comparison(
            team_id, request.comparison_team_ids, **_options(delay=request.delay)
        ),
    )


# =============================================================================
# Table
# =============================================================================


@router.post(
    "/table/{liga_id}/position/{team_id}", response_model=ScheduleResponse, status_code=202
)
async def schedule_table_position(
    liga_id: int, team_id: int, request: DelayRequest = DelayRequest()
):
    table = get_calculation_jobs().table
    return _schedule(
        TABLE_POSITION,
        lambda: table.schedule_position(
            liga_id, team_id, **_options(delay=request.delay, priority=request.priority)
        ),
    )


@router.post("/table/{liga_id}/statistics", response_model=ScheduleResponse, status_code=202)
async def schedule_league_statistics(liga_id: int, request: DelayRequest = DelayRequest()):
    table = get_calculation_jobs().table
    return _schedule(
        LEAGUE_STATISTICS,
        lambda: table.schedule_league_statistics(liga_id, **_options(delay=request.delay)),
    )


@router.post("/table/{liga_id}/ranking", response_model=ScheduleResponse, status_code=202)
async def schedule_table_ranking(liga_id: int, request: DelayRequest = DelayRequest()):
    table = get_calculation_jobs().table
    return _schedule(
        TABLE_RANKING,
        lambda: table.schedule_ranking_update(liga_id, **_options(delay=request.delay)),
    )


@router.post("/table/{liga_id}/batch", response_model=ScheduleResponse, status_code=202)
async def schedule_league_batch(liga_id: int, request: TableBatchRequest = TableBatchRequest()):
    """Recompute derived columns and positions for a whole league table."""
    table = get_calculation_jobs().table
    return _schedule(
        LEAGUE_BATCH,
        lambda: table.schedule_batch_calculation(
            liga_id, batch_size=request.batch_size, **_options(delay=request.delay)
        ),
    )


@router.post("/table/{liga_id}/recurring", response_model=ScheduleResponse, status_code=202)
async def schedule_table_recurring(
    liga_id: int, request: RecurringRequest = RecurringRequest()
):
    """Recurring league statistics; ``interval`` is in minutes."""
    table = get_calculation_jobs().table
    return _schedule(
        LEAGUE_STATISTICS,
        lambda: table.schedule_recurring_updates(
            liga_id,
            **_options(
                interval_minutes=request.interval,
                max_runs=request.max_runs,
                start_delay=request.start_delay,
            ),
        ),
        recurring=True,
    )
