"""
Pydantic models for calculation payloads and results.

Payloads are a tagged union on ``area`` so a job's payload can be validated
from plain JSON (the /jobs API) and still dispatch to the right calculator.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from src.scheduler.entities import now_utc


# =============================================================================
# Payloads
# =============================================================================


class SeasonJobData(BaseModel):
    area: Literal["season"] = "season"
    saison_id: int = Field(..., description="Season to calculate")
    include_teams: bool = Field(default=True, description="Transition: move teams")
    include_leagues: bool = Field(default=True, description="Transition: move leagues")
    transition_to_saison_id: Optional[int] = Field(default=None, description="Transition target season")
    comparison_saison_ids: list[int] = Field(default_factory=list, description="Seasons to compare against")
    batch_size: int = Field(default=10, ge=1)
    force_update: bool = False


class TeamJobData(BaseModel):
    area: Literal["team"] = "team"
    team_id: int = Field(default=0, description="Team to calculate (0 for league-wide jobs)")
    liga_id: Optional[int] = None
    saison_id: Optional[int] = None
    include_ranking: bool = True
    include_statistics: bool = True
    comparison_team_ids: list[int] = Field(default_factory=list)
    batch_size: int = Field(default=10, ge=1)
    force_update: bool = False


class TableJobData(BaseModel):
    area: Literal["table"] = "table"
    liga_id: int = Field(..., description="League whose table is recalculated")
    team_id: Optional[int] = None
    batch_size: int = Field(default=10, ge=1)
    force_update: bool = False


CalculationPayload = Annotated[
    Union[SeasonJobData, TeamJobData, TableJobData],
    Field(discriminator="area"),
]


# =============================================================================
# Job results
# =============================================================================


class CalculationResult(BaseModel):
    """Common envelope returned by every calculator."""

    success: bool = False
    job_type: str
    processed: int = 0
    updated: int = 0
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    execution_time: float = 0.0
    result: Any = None


class SeasonJobResult(CalculationResult):
    saison_id: int


class TeamJobResult(CalculationResult):
    team_id: int
    liga_id: Optional[int] = None


class TableJobResult(CalculationResult):
    liga_id: int
    team_id: Optional[int] = None


# =============================================================================
# Shared pieces
# =============================================================================


class TeamPoints(BaseModel):
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    points: int


class TeamGoals(BaseModel):
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    goals: int


class TeamGoalsAgainst(BaseModel):
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    goals_against: int


class TeamWins(BaseModel):
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    wins: int


# =============================================================================
# Season results
# =============================================================================


class LeagueSeasonStatistics(BaseModel):
    liga_id: int
    liga_name: Optional[str] = None
    team_count: int = 0
    total_games: int = 0
    total_goals: int = 0
    champion: Optional[TeamPoints] = None


class SeasonStatistics(BaseModel):
    saison_id: int
    saison_name: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_active: bool = False
    total_teams: int = 0
    total_leagues: int = 0
    total_games: int = 0
    total_goals: int = 0
    average_goals_per_game: float = 0.0
    top_scoring_team: Optional[TeamGoals] = None
    champion_team: Optional[TeamPoints] = None
    league_statistics: list[LeagueSeasonStatistics] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=now_utc)


class LeagueChampion(BaseModel):
    liga_id: int
    liga_name: Optional[str] = None
    champion_team: TeamPoints


class SeasonOverview(BaseModel):
    total_teams: int
    total_leagues: int
    total_matches: int
    total_goals: int


class TopPerformers(BaseModel):
    top_scorer: Optional[TeamGoals] = None
    best_defense: Optional[TeamGoalsAgainst] = None
    most_wins: Optional[TeamWins] = None


class SeasonSummaryStatistics(BaseModel):
    average_goals_per_game: float
    average_points_per_team: float
    competitiveness: int


class SeasonSummary(BaseModel):
    saison_id: int
    saison_name: Optional[str] = None
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    status: Literal["active", "completed", "upcoming"]
    overview: SeasonOverview
    champions: list[LeagueChampion] = Field(default_factory=list)
    top_performers: TopPerformers
    statistics: SeasonSummaryStatistics
    generated_at: datetime = Field(default_factory=now_utc)


class SeasonTransitionResult(BaseModel):
    from_saison_id: int
    to_saison_id: int
    teams_transitioned: int = 0
    leagues_transitioned: int = 0
    summary_generated: bool = False
    summary: Optional[SeasonSummary] = Field(
        default=None, description="Snapshot of the season taken before teams and leagues move"
    )
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=now_utc)


class LeagueAggregation(BaseModel):
    liga_id: int
    liga_name: Optional[str] = None
    total_teams: int = 0
    total_games: int = 0
    total_goals: int = 0
    average_goals_per_game: float = 0.0
    champion: Optional[TeamPoints] = None


class LeaguePosition(BaseModel):
    liga_id: Optional[int] = None
    liga_name: Optional[str] = None
    position: int


class TeamAggregation(BaseModel):
    team_id: int
    team_name: Optional[str] = None
    total_games: int = 0
    total_goals: int = 0
    total_points: int = 0
    average_goals_per_game: float = 0.0
    average_points_per_game: float = 0.0
    best_league_position: Optional[LeaguePosition] = None


class SeasonLeagueAggregation(BaseModel):
    saison_id: int
    league_aggregations: list[LeagueAggregation] = Field(default_factory=list)
    total_leagues: int = 0
    processed_leagues: int = 0


class SeasonTeamAggregation(BaseModel):
    saison_id: int
    team_aggregations: list[TeamAggregation] = Field(default_factory=list)
    total_teams: int = 0
    processed_teams: int = 0


class SeasonPerformanceAnalysis(BaseModel):
    saison_id: int
    competitiveness: int
    insights: list[str] = Field(default_factory=list)
    statistics: SeasonStatistics
    performance_score: int
    last_updated: datetime = Field(default_factory=now_utc)


class SeasonMetrics(BaseModel):
    statistics: SeasonStatistics
    summary: SeasonSummary
    performance_score: int


class SeasonComparisons(BaseModel):
    team_growth: dict[int, int] = Field(default_factory=dict)
    goal_trends: dict[int, float] = Field(default_factory=dict)
    competitiveness_trends: dict[int, int] = Field(default_factory=dict)


class SeasonComparisonResult(BaseModel):
    base_saison_id: int
    compared_saison_ids: list[int]
    metrics: dict[int, SeasonMetrics] = Field(default_factory=dict)
    comparisons: SeasonComparisons = Field(default_factory=SeasonComparisons)
    insights: list[str] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=now_utc)


# =============================================================================
# Team results
# =============================================================================


class TeamStatistics(BaseModel):
    games_played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0
    win_percentage: float = 0.0
    average_goals_for: float = 0.0
    average_goals_against: float = 0.0
    last_updated: datetime = Field(default_factory=now_utc)


class TeamRanking(BaseModel):
    position: int
    total_teams: int
    points_gap: int
    points_above: int
    last_updated: datetime = Field(default_factory=now_utc)


class TeamPerformanceMetrics(BaseModel):
    team_id: int
    statistics: TeamStatistics
    ranking: Optional[TeamRanking] = None
    performance_score: int
    strength_areas: list[str] = Field(default_factory=list)
    improvement_areas: list[str] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=now_utc)


class TeamMetrics(BaseModel):
    statistics: TeamStatistics
    ranking: Optional[TeamRanking] = None
    performance_score: int


class TeamComparisonRankings(BaseModel):
    by_points: list[int] = Field(default_factory=list)
    by_goal_difference: list[int] = Field(default_factory=list)
    by_win_percentage: list[int] = Field(default_factory=list)


class TeamComparisonResult(BaseModel):
    base_team: int
    compared_teams: list[int]
    metrics: dict[int, TeamMetrics] = Field(default_factory=dict)
    rankings: TeamComparisonRankings = Field(default_factory=TeamComparisonRankings)
    last_updated: datetime = Field(default_factory=now_utc)


# =============================================================================
# Table results
# =============================================================================


class PositionResult(BaseModel):
    position: int
    previous_position: Optional[int] = None
    position_change: int = 0


class TeamScore(BaseModel):
    team_id: Optional[int] = None
    value: int


class GoalStatistics(BaseModel):
    total_goals: int = 0
    total_games: int = 0
    average_goals_per_team: float = 0.0
    average_goals_per_game: float = 0.0
    highest_scoring_team: Optional[TeamScore] = None
    lowest_scoring_team: Optional[TeamScore] = None


class PointsDistribution(BaseModel):
    total_points: int = 0
    average_points: float = 0.0
    points_leader: Optional[TeamScore] = None
    min_points: int = 0
    max_points: int = 0
    distribution: dict[str, int] = Field(default_factory=dict)


class LeagueStatistics(BaseModel):
    liga_id: int
    total_teams: int
    total_games: int
    total_goals: int
    average_goals_per_game: float
    top_scorer: Optional[TeamScore] = None
    points_leader: Optional[TeamScore] = None
    points_distribution: dict[str, int] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=now_utc)
