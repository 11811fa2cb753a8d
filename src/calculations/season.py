"""
Season calculations.

Catalog:
- season-statistics-calculation: totals, top scorer and champion per league and overall
- season-summary-generation: status, champions, top performers, competitiveness
- season-transition-processing: moves teams and leagues to the next season
- season-league-aggregation / season-team-aggregation: per-entity rollups
- season-performance-analysis: performance score and insights
- season-comparison-analysis: metrics across several seasons
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from src.infra.content_store import LIGA, SAISON, TEAM, ContentStoreError, related_id
from src.scheduler.entities import JobContext, JobPriority

from .base import CalculationAdapter, CalculationDefinition
from .models import (
    LeagueAggregation,
    LeagueChampion,
    LeaguePosition,
    LeagueSeasonStatistics,
    SeasonComparisonResult,
    SeasonComparisons,
    SeasonJobData,
    SeasonJobResult,
    SeasonLeagueAggregation,
    SeasonMetrics,
    SeasonOverview,
    SeasonPerformanceAnalysis,
    SeasonStatistics,
    SeasonSummary,
    SeasonSummaryStatistics,
    SeasonTeamAggregation,
    SeasonTransitionResult,
    TeamAggregation,
    TeamGoals,
    TeamGoalsAgainst,
    TeamPoints,
    TeamWins,
    TopPerformers,
)
from .standings import safe_divide, safe_number


logger = logging.getLogger(__name__)


SEASON_STATISTICS = "season-statistics-calculation"
SEASON_SUMMARY = "season-summary-generation"
SEASON_TRANSITION = "season-transition-processing"
SEASON_LEAGUE_AGGREGATION = "season-league-aggregation"
SEASON_TEAM_AGGREGATION = "season-team-aggregation"
SEASON_PERFORMANCE = "season-performance-analysis"
SEASON_COMPARISON = "season-comparison-analysis"

SEASON_POPULATE = {
    "teams": {"populate": {"tabellen_eintraege": {"populate": {"liga": True}}}},
    "ligen": {"populate": {"tabellen_eintraege": {"populate": {"team": True}}}},
}


# =============================================================================
# Pure calculations
# =============================================================================


def _team_of(entry: dict) -> tuple[Optional[int], Optional[str]]:
    team = entry.get("team")
    if isinstance(team, dict):
        return team.get("id"), team.get("name")
    return related_id(entry, "team"), None


def _parse_date(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def calculate_season_statistics(saison: dict) -> SeasonStatistics:
    """
    Totals over every table entry of every league in the season.

    Teams are counted per league entry, so a season's team total is the sum
    of its leagues' entry counts. Ties for champion and top scorer keep the
    first entry seen.
    """
    stats = SeasonStatistics(
        saison_id=saison["id"],
        saison_name=saison.get("name"),
        start_date=saison.get("start_datum"),
        end_date=saison.get("end_datum"),
        is_active=bool(saison.get("aktiv")),
    )
    ligen = saison.get("ligen") or []
    stats.total_leagues = len(ligen)

    for liga in ligen:
        entries = liga.get("tabellen_eintraege") or []
        league = LeagueSeasonStatistics(
            liga_id=liga["id"], liga_name=liga.get("name"), team_count=len(entries)
        )

        for entry in entries:
            games = safe_number(entry.get("spiele"))
            goals = safe_number(entry.get("tore_fuer"))
            points = safe_number(entry.get("punkte"))
            team_id, team_name = _team_of(entry)

            league.total_games += games
            league.total_goals += goals

            if league.champion is None or points > league.champion.points:
                league.champion = TeamPoints(team_id=team_id, team_name=team_name, points=points)
            if stats.champion_team is None or points > stats.champion_team.points:
                stats.champion_team = TeamPoints(team_id=team_id, team_name=team_name, points=points)
            if stats.top_scoring_team is None or goals > stats.top_scoring_team.goals:
                stats.top_scoring_team = TeamGoals(team_id=team_id, team_name=team_name, goals=goals)

        stats.total_teams += league.team_count
        stats.total_games += league.total_games
        stats.total_goals += league.total_goals
        stats.league_statistics.append(league)

    stats.average_goals_per_game = safe_divide(stats.total_goals, stats.total_games)
    return stats


def calculate_competitiveness(stats: SeasonStatistics) -> int:
    score = 50
    if stats.total_teams > 10:
        score += 20
    if stats.average_goals_per_game > 2:
        score += 15
    return max(0, min(100, score))


def calculate_season_performance_score(
    stats: SeasonStatistics, summary: Optional[SeasonSummary] = None
) -> int:
    """Four quarters: participation, scoring, league count, competitiveness."""
    score = min(25.0, stats.total_teams / 20 * 25)
    score += min(25.0, stats.average_goals_per_game / 3 * 25)
    score += min(25.0, stats.total_leagues / 5 * 25)
    if summary is not None:
        score += summary.statistics.competitiveness / 100 * 25
    else:
        score += 12.5
    return round(max(0.0, min(100.0, score)))


def generate_season_summary(
    saison: dict, stats: Optional[SeasonStatistics] = None
) -> SeasonSummary:
    stats = stats or calculate_season_statistics(saison)

    if saison.get("aktiv"):
        status = "active"
    else:
        start = _parse_date(saison.get("start_datum"))
        status = "upcoming" if start is not None and start > datetime.now(timezone.utc) else "completed"

    best_defense: Optional[TeamGoalsAgainst] = None
    most_wins: Optional[TeamWins] = None
    for liga in saison.get("ligen") or []:
        for entry in liga.get("tabellen_eintraege") or []:
            goals_against = safe_number(entry.get("tore_gegen"))
            wins = safe_number(entry.get("siege"))
            team_id, team_name = _team_of(entry)

            if goals_against > 0 and (
                best_defense is None or goals_against < best_defense.goals_against
            ):
                best_defense = TeamGoalsAgainst(
                    team_id=team_id, team_name=team_name, goals_against=goals_against
                )
            if wins > 0 and (most_wins is None or wins > most_wins.wins):
                most_wins = TeamWins(team_id=team_id, team_name=team_name, wins=wins)

    champion_points = sum(
        league.champion.points for league in stats.league_statistics if league.champion
    )

    return SeasonSummary(
        saison_id=stats.saison_id,
        saison_name=stats.saison_name,
        period_start=stats.start_date,
        period_end=stats.end_date,
        status=status,
        overview=SeasonOverview(
            total_teams=stats.total_teams,
            total_leagues=stats.total_leagues,
            total_matches=stats.total_games,
            total_goals=stats.total_goals,
        ),
        champions=[
            LeagueChampion(
                liga_id=league.liga_id, liga_name=league.liga_name, champion_team=league.champion
            )
            for league in stats.league_statistics
            if league.champion is not None
        ],
        top_performers=TopPerformers(
            top_scorer=stats.top_scoring_team,
            best_defense=best_defense,
            most_wins=most_wins,
        ),
        statistics=SeasonSummaryStatistics(
            average_goals_per_game=stats.average_goals_per_game,
            average_points_per_team=safe_divide(champion_points, stats.total_teams),
            competitiveness=calculate_competitiveness(stats),
        ),
    )


def aggregate_league(liga: dict) -> LeagueAggregation:
    entries = liga.get("tabellen_eintraege") or []
    aggregation = LeagueAggregation(
        liga_id=liga["id"], liga_name=liga.get("name"), total_teams=len(entries)
    )
    for entry in entries:
        points = safe_number(entry.get("punkte"))
        aggregation.total_games += safe_number(entry.get("spiele"))
        aggregation.total_goals += safe_number(entry.get("tore_fuer"))
        if aggregation.champion is None or points > aggregation.champion.points:
            team_id, team_name = _team_of(entry)
            aggregation.champion = TeamPoints(team_id=team_id, team_name=team_name, points=points)

    aggregation.average_goals_per_game = safe_divide(aggregation.total_goals, aggregation.total_games)
    return aggregation


def aggregate_team(team: dict) -> TeamAggregation:
    aggregation = TeamAggregation(team_id=team["id"], team_name=team.get("name"))
    for entry in team.get("tabellen_eintraege") or []:
        aggregation.total_games += safe_number(entry.get("spiele"))
        aggregation.total_goals += safe_number(entry.get("tore_fuer"))
        aggregation.total_points += safe_number(entry.get("punkte"))

        position = safe_number(entry.get("platz"))
        best = aggregation.best_league_position
        if position > 0 and (best is None or position < best.position):
            liga = entry.get("liga")
            aggregation.best_league_position = LeaguePosition(
                liga_id=related_id(entry, "liga"),
                liga_name=liga.get("name") if isinstance(liga, dict) else None,
                position=position,
            )

    aggregation.average_goals_per_game = safe_divide(aggregation.total_goals, aggregation.total_games)
    aggregation.average_points_per_game = safe_divide(aggregation.total_points, aggregation.total_games)
    return aggregation


def season_performance_insights(stats: SeasonStatistics, competitiveness: int) -> list[str]:
    insights = []
    if stats.average_goals_per_game > 2.5:
        insights.append("High-scoring season with exciting matches")
    elif stats.average_goals_per_game < 1.5:
        insights.append("Defensive season with low-scoring matches")

    if competitiveness > 80:
        insights.append("Highly competitive season with close standings")
    elif competitiveness < 40:
        insights.append("Season dominated by few strong teams")
    return insights


def compare_seasons(metrics: dict[int, SeasonMetrics]) -> SeasonComparisons:
    comparisons = SeasonComparisons()
    for saison_id, metric in metrics.items():
        comparisons.team_growth[saison_id] = metric.statistics.total_teams
        comparisons.goal_trends[saison_id] = metric.statistics.average_goals_per_game
        comparisons.competitiveness_trends[saison_id] = metric.summary.statistics.competitiveness
    return comparisons


def comparison_insights(comparisons: SeasonComparisons) -> list[str]:
    insights = []

    team_counts = list(comparisons.team_growth.values())
    if len(team_counts) > 1 and max(team_counts) > min(team_counts):
        insights.append(
            f"Team participation varied from {min(team_counts)} to {max(team_counts)} teams across seasons"
        )

    goal_averages = list(comparisons.goal_trends.values())
    if len(goal_averages) > 1 and max(goal_averages) - min(goal_averages) > 0.5:
        insights.append(
            "Goal scoring varied significantly across seasons "
            f"({min(goal_averages):.1f} to {max(goal_averages):.1f} per game)"
        )

    return insights


# =============================================================================
# Adapter
# =============================================================================


class SeasonCalculationJobs(CalculationAdapter):
    """Season-wide calculations over leagues, teams and table entries."""

    area = "season"
    content_type = "saison"
    entity_field = "saison_id"

    def build_definitions(self) -> list[CalculationDefinition]:
        return [
            CalculationDefinition(
                name=SEASON_STATISTICS,
                calculator=self.calculate_statistics,
                payload_model=SeasonJobData,
                priority=JobPriority.MEDIUM,
                dependencies=("saison", "teams", "ligen"),
                timeout=30.0,
                retry_attempts=2,
            ),
            CalculationDefinition(
                name=SEASON_SUMMARY,
                calculator=self.generate_summary,
                payload_model=SeasonJobData,
                priority=JobPriority.LOW,
                dependencies=("saison",),
                timeout=25.0,
                retry_attempts=1,
            ),
            CalculationDefinition(
                name=SEASON_TRANSITION,
                calculator=self.process_transition,
                payload_model=SeasonJobData,
                priority=JobPriority.HIGH,
                dependencies=("saison", "teams", "ligen"),
                timeout=45.0,
                retry_attempts=2,
            ),
            CalculationDefinition(
                name=SEASON_LEAGUE_AGGREGATION,
                calculator=self.aggregate_leagues,
                payload_model=SeasonJobData,
                priority=JobPriority.MEDIUM,
                dependencies=("saison", "ligen"),
                timeout=20.0,
                retry_attempts=1,
            ),
            CalculationDefinition(
                name=SEASON_TEAM_AGGREGATION,
                calculator=self.aggregate_teams,
                payload_model=SeasonJobData,
                priority=JobPriority.MEDIUM,
                dependencies=("saison", "teams"),
                timeout=25.0,
                retry_attempts=1,
            ),
            CalculationDefinition(
                name=SEASON_PERFORMANCE,
                calculator=self.analyze_performance,
                payload_model=SeasonJobData,
                priority=JobPriority.LOW,
                dependencies=("saison",),
                timeout=35.0,
                retry_attempts=1,
            ),
            CalculationDefinition(
                name=SEASON_COMPARISON,
                calculator=self.analyze_comparison,
                payload_model=SeasonJobData,
                priority=JobPriority.LOW,
                dependencies=("saison",),
                timeout=40.0,
                retry_attempts=1,
            ),
        ]

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_statistics(
        self,
        saison_id: int,
        delay: float = 1.0,
        priority: JobPriority = JobPriority.MEDIUM,
    ) -> str:
        return self._schedule_once(
            f"season-statistics-{saison_id}",
            SEASON_STATISTICS,
            SeasonJobData(saison_id=saison_id),
            self.create_context(f"season-stats-{saison_id}"),
            delay,
            priority,
        )

    def schedule_summary(
        self,
        saison_id: int,
        delay: float = 2.0,
        priority: JobPriority = JobPriority.LOW,
    ) -> str:
        return self._schedule_once(
            f"season-summary-{saison_id}",
            SEASON_SUMMARY,
            SeasonJobData(saison_id=saison_id),
            self.create_context(f"season-summary-{saison_id}"),
            delay,
            priority,
        )

    def schedule_transition(
        self,
        from_saison_id: int,
        to_saison_id: int,
        include_teams: bool = True,
        include_leagues: bool = True,
        delay: float = 5.0,
    ) -> str:
        return self._schedule_once(
            f"season-transition-{from_saison_id}-{to_saison_id}",
            SEASON_TRANSITION,
            SeasonJobData(
                saison_id=from_saison_id,
                transition_to_saison_id=to_saison_id,
                include_teams=include_teams,
                include_leagues=include_leagues,
            ),
            self.create_context(f"season-transition-{from_saison_id}-{to_saison_id}"),
            delay,
            JobPriority.HIGH,
        )

    def schedule_comparison(
        self,
        saison_id: int,
        comparison_saison_ids: list[int],
        delay: float = 3.0,
    ) -> str:
        return self._schedule_once(
            f"season-comparison-{saison_id}",
            SEASON_COMPARISON,
            SeasonJobData(saison_id=saison_id, comparison_saison_ids=comparison_saison_ids),
            self.create_context(f"season-comparison-{saison_id}", operation="read"),
            delay,
            JobPriority.LOW,
        )

    def schedule_recurring_updates(
        self,
        saison_id: int,
        interval_hours: float = 24,
        max_runs: Optional[int] = None,
        start_delay: float = 300.0,
    ) -> str:
        context = JobContext(
            content_type=self.content_type,
            operation="update",
            operation_id=f"recurring-season-{saison_id}",
        )
        return self._schedule_recurring(
            f"recurring-season-stats-{saison_id}",
            SEASON_STATISTICS,
            SeasonJobData(saison_id=saison_id),
            context,
            interval=interval_hours * 3600,
            start_delay=start_delay,
            priority=JobPriority.LOW,
            max_runs=max_runs,
        )

    # =========================================================================
    # Calculators
    # =========================================================================

    async def calculate_statistics(
        self, data: SeasonJobData, context: Optional[JobContext] = None
    ) -> SeasonJobResult:
        started = time.monotonic()
        result = SeasonJobResult(job_type=SEASON_STATISTICS, saison_id=data.saison_id)

        saison = await self._load_one(
            result, started, SAISON, data.saison_id, "Season", SEASON_POPULATE
        )
        result.processed = 1

        stats = calculate_season_statistics(saison)
        result.result = stats
        result.updated = 1
        result.success = True
        return self._finish(result, started)

    async def generate_summary(
        self, data: SeasonJobData, context: Optional[JobContext] = None
    ) -> SeasonJobResult:
        started = time.monotonic()
        result = SeasonJobResult(job_type=SEASON_SUMMARY, saison_id=data.saison_id)

        saison = await self._load_one(
            result, started, SAISON, data.saison_id, "Season", SEASON_POPULATE
        )
        result.processed = 1

        result.result = generate_season_summary(saison)
        result.updated = 1
        result.success = True
        return self._finish(result, started)

    async def process_transition(
        self, data: SeasonJobData, context: Optional[JobContext] = None
    ) -> SeasonJobResult:
        started = time.monotonic()
        result = SeasonJobResult(job_type=SEASON_TRANSITION, saison_id=data.saison_id)

        if data.transition_to_saison_id is None:
            raise self._abort(result, started, "Transition target season ID is required")

        transition = SeasonTransitionResult(
            from_saison_id=data.saison_id, to_saison_id=data.transition_to_saison_id
        )

        try:
            saison = await self.store.find_one(SAISON, data.saison_id, SEASON_POPULATE)
            if saison is not None:
                transition.summary = generate_season_summary(saison)
                transition.summary_generated = True
        except ContentStoreError as e:
            transition.warnings.append(f"Summary generation failed: {e}")

        if data.include_teams:
            transition.teams_transitioned = await self._move_to_season(
                TEAM, "team", data.saison_id, data.transition_to_saison_id, transition.errors
            )
        if data.include_leagues:
            transition.leagues_transitioned = await self._move_to_season(
                LIGA, "league", data.saison_id, data.transition_to_saison_id, transition.errors
            )

        result.processed = transition.teams_transitioned + transition.leagues_transitioned
        result.updated = result.processed
        result.errors = list(transition.errors)
        result.warnings = list(transition.warnings)
        result.success = not transition.errors
        result.result = transition
        return self._finish(result, started)

    async def _move_to_season(
        self, uid: str, label: str, from_id: int, to_id: int, errors: list[str]
    ) -> int:
        try:
            records = await self.store.find_many(uid, filters={"saison": {"id": from_id}})
        except ContentStoreError as e:
            errors.append(f"{label.capitalize()} transition failed: {e}")
            return 0

        moved = 0
        for record in records:
            try:
                await self.store.update(uid, record["id"], {"saison": to_id})
                moved += 1
            except ContentStoreError as e:
                errors.append(f"Failed to transition {label} {record['id']}: {e}")
        return moved

    async def aggregate_leagues(
        self, data: SeasonJobData, context: Optional[JobContext] = None
    ) -> SeasonJobResult:
        started = time.monotonic()
        result = SeasonJobResult(job_type=SEASON_LEAGUE_AGGREGATION, saison_id=data.saison_id)

        leagues = await self._load_many(
            result,
            started,
            LIGA,
            {"saison": {"id": data.saison_id}},
            {"tabellen_eintraege": {"populate": {"team": True}}},
        )
        result.processed = len(leagues)

        if not leagues:
            result.warnings.append("No leagues found for season")
            result.success = True
            return self._finish(result, started)

        aggregations = []
        for league in leagues:
            try:
                aggregations.append(aggregate_league(league))
                result.updated += 1
            except (KeyError, TypeError, ValueError) as e:
                result.errors.append(f"League {league.get('id')}: {e}")

        result.result = SeasonLeagueAggregation(
            saison_id=data.saison_id,
            league_aggregations=aggregations,
            total_leagues=len(leagues),
            processed_leagues=result.updated,
        )
        result.success = not result.errors
        return self._finish(result, started)

    async def aggregate_teams(
        self, data: SeasonJobData, context: Optional[JobContext] = None
    ) -> SeasonJobResult:
        started = time.monotonic()
        result = SeasonJobResult(job_type=SEASON_TEAM_AGGREGATION, saison_id=data.saison_id)

        teams = await self._load_many(
            result,
            started,
            TEAM,
            {"saison": {"id": data.saison_id}},
            {"tabellen_eintraege": {"populate": {"liga": True}}},
        )
        result.processed = len(teams)

        if not teams:
            result.warnings.append("No teams found for season")
            result.success = True
            return self._finish(result, started)

        aggregations = []
        for team in teams:
            try:
                aggregations.append(aggregate_team(team))
                result.updated += 1
            except (KeyError, TypeError, ValueError) as e:
                result.errors.append(f"Team {team.get('id')}: {e}")

        result.result = SeasonTeamAggregation(
            saison_id=data.saison_id,
            team_aggregations=aggregations,
            total_teams=len(teams),
            processed_teams=result.updated,
        )
        result.success = not result.errors
        return self._finish(result, started)

    async def analyze_performance(
        self, data: SeasonJobData, context: Optional[JobContext] = None
    ) -> SeasonJobResult:
        started = time.monotonic()
        result = SeasonJobResult(job_type=SEASON_PERFORMANCE, saison_id=data.saison_id)

        saison = await self._load_one(
            result, started, SAISON, data.saison_id, "Season", SEASON_POPULATE
        )
        result.processed = 1

        stats = calculate_season_statistics(saison)
        competitiveness = calculate_competitiveness(stats)
        result.result = SeasonPerformanceAnalysis(
            saison_id=data.saison_id,
            competitiveness=competitiveness,
            insights=season_performance_insights(stats, competitiveness),
            statistics=stats,
            performance_score=calculate_season_performance_score(stats),
        )
        result.updated = 1
        result.success = True
        return self._finish(result, started)

    async def analyze_comparison(
        self, data: SeasonJobData, context: Optional[JobContext] = None
    ) -> SeasonJobResult:
        started = time.monotonic()
        result = SeasonJobResult(job_type=SEASON_COMPARISON, saison_id=data.saison_id)

        if not data.comparison_saison_ids:
            raise self._abort(
                result, started, "Comparison season IDs are required for season comparison"
            )

        comparison = SeasonComparisonResult(
            base_saison_id=data.saison_id, compared_saison_ids=data.comparison_saison_ids
        )

        for saison_id in [data.saison_id, *data.comparison_saison_ids]:
            try:
                saison = await self.store.find_one(SAISON, saison_id, SEASON_POPULATE)
            except ContentStoreError as e:
                result.errors.append(f"Season {saison_id}: {e}")
                continue

            if saison is None:
                result.warnings.append(f"Season {saison_id} not found")
                continue

            stats = calculate_season_statistics(saison)
            summary = generate_season_summary(saison, stats)
            comparison.metrics[saison_id] = SeasonMetrics(
                statistics=stats,
                summary=summary,
                performance_score=calculate_season_performance_score(stats, summary),
            )
            result.processed += 1

        if len(comparison.metrics) > 1:
            comparison.comparisons = compare_seasons(comparison.metrics)
            comparison.insights = comparison_insights(comparison.comparisons)

        result.result = comparison
        result.updated = 1
        result.success = not result.errors
        return self._finish(result, started)
