"""
Team calculations.

Catalog:
- team-performance-calculation: statistics, ranking, score, strengths/weaknesses
- team-ranking-update: league position from aggregated team totals
- team-statistics-update: statistics only
- team-batch-update: statistics (and ranking) for every team in a league
- team-comparison-analysis: metrics and rankings across several teams
"""

import asyncio
import logging
import time
from typing import Optional

from src.infra.content_store import TEAM, ContentStoreError, related_id
from src.scheduler.entities import JobContext, JobPriority
from src.scheduler.job_queue import report_progress

from .base import CalculationAdapter, CalculationDefinition
from .models import (
    TeamComparisonRankings,
    TeamComparisonResult,
    TeamJobData,
    TeamJobResult,
    TeamMetrics,
    TeamPerformanceMetrics,
    TeamRanking,
    TeamStatistics,
)
from .standings import create_batches, goal_difference, safe_divide, safe_number


logger = logging.getLogger(__name__)


TEAM_PERFORMANCE = "team-performance-calculation"
TEAM_RANKING = "team-ranking-update"
TEAM_STATISTICS = "team-statistics-update"
TEAM_BATCH = "team-batch-update"
TEAM_COMPARISON = "team-comparison-analysis"

TEAM_POPULATE = {
    "tabellen_eintraege": {"populate": {"liga": True, "saison": True}},
    "liga": True,
    "saison": True,
}


class TeamNotRankedError(Exception):
    """Raised when a team has no place in the league it was ranked against."""
    pass


# =============================================================================
# Pure calculations
# =============================================================================


def calculate_team_statistics(team: dict) -> TeamStatistics:
    stats = TeamStatistics()
    for entry in team.get("tabellen_eintraege") or []:
        stats.games_played += safe_number(entry.get("spiele"))
        stats.wins += safe_number(entry.get("siege"))
        stats.draws += safe_number(entry.get("unentschieden"))
        stats.losses += safe_number(entry.get("niederlagen"))
        stats.goals_for += safe_number(entry.get("tore_fuer"))
        stats.goals_against += safe_number(entry.get("tore_gegen"))
        stats.points += safe_number(entry.get("punkte"))

    stats.goal_difference = stats.goals_for - stats.goals_against
    stats.win_percentage = safe_divide(stats.wins, stats.games_played) * 100
    stats.average_goals_for = safe_divide(stats.goals_for, stats.games_played)
    stats.average_goals_against = safe_divide(stats.goals_against, stats.games_played)
    return stats


def rank_teams(teams: list[dict], team_id: int) -> TeamRanking:
    """
    Position of ``team_id`` among ``teams`` by summed table entries.

    Raises:
        TeamNotRankedError: If the team is not among ``teams``
    """
    totals = []
    for team in teams:
        entries = team.get("tabellen_eintraege") or []
        totals.append(
            (
                team["id"],
                sum(safe_number(e.get("punkte")) for e in entries),
                sum(goal_difference(e) for e in entries),
                sum(safe_number(e.get("tore_fuer")) for e in entries),
            )
        )
    totals.sort(key=lambda t: (-t[1], -t[2], -t[3]))

    index = next((i for i, t in enumerate(totals) if t[0] == team_id), None)
    if index is None:
        raise TeamNotRankedError(f"Team {team_id} not found in league")

    points = totals[index][1]
    below = totals[index + 1][1] if index + 1 < len(totals) else None
    return TeamRanking(
        position=index + 1,
        total_teams=len(totals),
        points_gap=totals[0][1] - points,
        points_above=points - below if below is not None else 0,
    )


def calculate_performance_score(
    stats: TeamStatistics, ranking: Optional[TeamRanking] = None
) -> int:
    score = stats.points / max(stats.games_played * 3, 1) * 40
    score += stats.win_percentage / 100 * 25
    score += max(0.0, stats.goal_difference / max(abs(stats.goal_difference), 1)) * 20
    if ranking is not None and ranking.total_teams > 0:
        score += max(0.0, (ranking.total_teams - ranking.position + 1) / ranking.total_teams) * 15
    return round(max(0.0, min(100.0, score)))


def analyze_team_performance(
    stats: TeamStatistics, ranking: Optional[TeamRanking] = None
) -> tuple[list[str], list[str]]:
    """Returns (strength_areas, improvement_areas)."""
    strengths: list[str] = []
    improvements: list[str] = []

    if stats.win_percentage >= 60:
        strengths.append("High win rate")
    elif stats.win_percentage <= 30:
        improvements.append("Low win rate")

    if stats.goal_difference > 5:
        strengths.append("Strong goal difference")
    elif stats.goal_difference < -5:
        improvements.append("Poor goal difference")

    if stats.average_goals_for >= 2:
        strengths.append("Good scoring rate")
    elif stats.average_goals_for <= 1:
        improvements.append("Low scoring rate")

    if stats.average_goals_against <= 1:
        strengths.append("Strong defense")
    elif stats.average_goals_against >= 2:
        improvements.append("Defensive issues")

    if ranking is not None:
        if ranking.position <= ranking.total_teams * 0.3:
            strengths.append("Top league position")
        elif ranking.position >= ranking.total_teams * 0.7:
            improvements.append("Low league position")

    return strengths, improvements


# =============================================================================
# Adapter
# =============================================================================


class TeamStatisticsJobs(CalculationAdapter):
    """Per-team statistics, rankings and comparisons."""

    area = "team"
    content_type = "team"
    entity_field = "team_id"
    batch_delay = 0.2

    def build_definitions(self) -> list[CalculationDefinition]:
        return [
            CalculationDefinition(
                name=TEAM_PERFORMANCE,
                calculator=self.calculate_performance,
                payload_model=TeamJobData,
                priority=JobPriority.MEDIUM,
                dependencies=("team", "tabellen_eintraege"),
                timeout=15.0,
                retry_attempts=2,
            ),
            CalculationDefinition(
                name=TEAM_RANKING,
                calculator=self.update_ranking,
                payload_model=TeamJobData,
                priority=JobPriority.HIGH,
                dependencies=("team", "liga", "saison"),
                timeout=20.0,
                retry_attempts=2,
            ),
            CalculationDefinition(
                name=TEAM_STATISTICS,
                calculator=self.update_statistics,
                payload_model=TeamJobData,
                priority=JobPriority.MEDIUM,
                dependencies=("team", "tabellen_eintraege"),
                timeout=12.0,
                retry_attempts=1,
            ),
            CalculationDefinition(
                name=TEAM_BATCH,
                calculator=self.batch_update,
                payload_model=TeamJobData,
                priority=JobPriority.LOW,
                dependencies=("liga", "saison"),
                timeout=60.0,
                retry_attempts=1,
            ),
            CalculationDefinition(
                name=TEAM_COMPARISON,
                calculator=self.analyze_comparison,
                payload_model=TeamJobData,
                priority=JobPriority.LOW,
                dependencies=("team",),
                timeout=25.0,
                retry_attempts=1,
            ),
        ]

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_performance(
        self,
        team_id: int,
        liga_id: Optional[int] = None,
        saison_id: Optional[int] = None,
        include_ranking: bool = True,
        delay: float = 0.0,
        priority: JobPriority = JobPriority.MEDIUM,
    ) -> str:
        return self._schedule_once(
            f"team-performance-{team_id}",
            TEAM_PERFORMANCE,
            TeamJobData(
                team_id=team_id,
                liga_id=liga_id,
                saison_id=saison_id,
                include_ranking=include_ranking,
            ),
            self.create_context(f"team-perf-{team_id}"),
            delay,
            priority,
        )

    def schedule_ranking_update(
        self,
        team_id: int,
        liga_id: int,
        saison_id: int,
        delay: float = 0.5,
    ) -> str:
        return self._schedule_once(
            f"team-ranking-{team_id}-{liga_id}",
            TEAM_RANKING,
            TeamJobData(team_id=team_id, liga_id=liga_id, saison_id=saison_id),
            self.create_context(f"team-ranking-{team_id}"),
            delay,
            JobPriority.HIGH,
        )

    def schedule_batch_update(
        self,
        liga_id: int,
        saison_id: int,
        batch_size: int = 10,
        include_ranking: bool = True,
        delay: float = 2.0,
    ) -> str:
        return self._schedule_once(
            f"batch-teams-{liga_id}-{saison_id}",
            TEAM_BATCH,
            TeamJobData(
                liga_id=liga_id,
                saison_id=saison_id,
                batch_size=batch_size,
                include_ranking=include_ranking,
            ),
            self.create_context(f"batch-teams-{liga_id}-{saison_id}"),
            delay,
            JobPriority.LOW,
        )

    def schedule_comparison(
        self,
        team_id: int,
        comparison_team_ids: list[int],
        delay: float = 1.5,
    ) -> str:
        return self._schedule_once(
            f"team-comparison-{team_id}",
            TEAM_COMPARISON,
            TeamJobData(team_id=team_id, comparison_team_ids=comparison_team_ids),
            self.create_context(f"team-comparison-{team_id}", operation="read"),
            delay,
            JobPriority.LOW,
        )

    def schedule_recurring_updates(
        self,
        liga_id: int,
        saison_id: int,
        interval_minutes: float = 60,
        max_runs: Optional[int] = None,
        start_delay: float = 120.0,
    ) -> str:
        context = JobContext(
            content_type=self.content_type,
            operation="update",
            operation_id=f"recurring-teams-{liga_id}-{saison_id}",
        )
        return self._schedule_recurring(
            f"recurring-team-stats-{liga_id}-{saison_id}",
            TEAM_BATCH,
            TeamJobData(liga_id=liga_id, saison_id=saison_id),
            context,
            interval=interval_minutes * 60,
            start_delay=start_delay,
            priority=JobPriority.LOW,
            max_runs=max_runs,
        )

    # =========================================================================
    # Calculators
    # =========================================================================

    async def _league_teams(self, liga_id: int, saison_id: int) -> list[dict]:
        return await self.store.find_many(
            TEAM,
            filters={"liga": {"id": liga_id}, "saison": {"id": saison_id}},
            populate={"tabellen_eintraege": True},
        )

    async def _rank(self, team_id: int, liga_id: int, saison_id: int) -> TeamRanking:
        return rank_teams(await self._league_teams(liga_id, saison_id), team_id)

    async def calculate_performance(
        self, data: TeamJobData, context: Optional[JobContext] = None
    ) -> TeamJobResult:
        started = time.monotonic()
        result = TeamJobResult(job_type=TEAM_PERFORMANCE, team_id=data.team_id, liga_id=data.liga_id)

        team = await self._load_one(result, started, TEAM, data.team_id, "Team", TEAM_POPULATE)
        result.processed = 1

        stats = calculate_team_statistics(team)

        ranking = None
        liga_id = related_id(team, "liga")
        saison_id = related_id(team, "saison")
        if data.include_ranking and liga_id is not None and saison_id is not None:
            try:
                ranking = await self._rank(data.team_id, liga_id, saison_id)
            except (ContentStoreError, TeamNotRankedError) as e:
                result.warnings.append(f"Ranking calculation failed: {e}")

        strengths, improvements = analyze_team_performance(stats, ranking)
        result.result = TeamPerformanceMetrics(
            team_id=data.team_id,
            statistics=stats,
            ranking=ranking,
            performance_score=calculate_performance_score(stats, ranking),
            strength_areas=strengths,
            improvement_areas=improvements,
        )
        result.updated = 1
        result.success = True
        return self._finish(result, started)

    async def update_ranking(
        self, data: TeamJobData, context: Optional[JobContext] = None
    ) -> TeamJobResult:
        started = time.monotonic()
        result = TeamJobResult(job_type=TEAM_RANKING, team_id=data.team_id, liga_id=data.liga_id)

        if data.liga_id is None or data.saison_id is None:
            raise self._abort(result, started, "Liga ID and Saison ID are required for ranking update")

        teams = await self._load_many(
            result,
            started,
            TEAM,
            {"liga": {"id": data.liga_id}, "saison": {"id": data.saison_id}},
            {"tabellen_eintraege": True},
        )
        try:
            ranking = rank_teams(teams, data.team_id)
        except TeamNotRankedError as e:
            raise self._abort(result, started, f"{e} {data.liga_id}")

        result.processed = 1
        result.updated = 1
        result.success = True
        result.result = ranking
        return self._finish(result, started)

    async def update_statistics(
        self, data: TeamJobData, context: Optional[JobContext] = None
    ) -> TeamJobResult:
        started = time.monotonic()
        result = TeamJobResult(job_type=TEAM_STATISTICS, team_id=data.team_id)

        team = await self._load_one(
            result,
            started,
            TEAM,
            data.team_id,
            "Team",
            {"tabellen_eintraege": {"populate": {"liga": True, "saison": True}}},
        )

        result.result = calculate_team_statistics(team)
        result.processed = 1
        result.updated = 1
        result.success = True
        return self._finish(result, started)

    async def batch_update(
        self, data: TeamJobData, context: Optional[JobContext] = None
    ) -> TeamJobResult:
        started = time.monotonic()
        result = TeamJobResult(job_type=TEAM_BATCH, team_id=0, liga_id=data.liga_id)

        if data.liga_id is None or data.saison_id is None:
            raise self._abort(result, started, "Liga ID and Saison ID are required for batch update")

        teams = await self._load_many(
            result,
            started,
            TEAM,
            {"liga": {"id": data.liga_id}, "saison": {"id": data.saison_id}},
            {"tabellen_eintraege": True},
        )
        result.processed = len(teams)

        if not teams:
            result.warnings.append("No teams found for the specified league and season")
            result.success = True
            return self._finish(result, started)

        async def update_one(team: dict) -> None:
            try:
                stats = calculate_team_statistics(team)
                position = None
                if data.include_ranking:
                    position = rank_teams(teams, team["id"]).position
                result.updated += 1
                logger.debug(
                    f"[team] Team {team['id']}: {stats.games_played} games, "
                    f"{stats.points} points, position {position}"
                )
            except (TeamNotRankedError, KeyError, TypeError, ValueError) as e:
                result.errors.append(f"Team {team.get('id')}: {e}")

        batches = create_batches(teams, data.batch_size)
        for index, batch in enumerate(batches):
            await asyncio.gather(*(update_one(team) for team in batch))
            report_progress(int((index + 1) / len(batches) * 100))
            if index < len(batches) - 1:
                await self._pause()

        result.success = len(result.errors) < self.config.batch_success_threshold * result.processed
        return self._finish(result, started)

    async def analyze_comparison(
        self, data: TeamJobData, context: Optional[JobContext] = None
    ) -> TeamJobResult:
        started = time.monotonic()
        result = TeamJobResult(job_type=TEAM_COMPARISON, team_id=data.team_id)

        if not data.comparison_team_ids:
            raise self._abort(result, started, "Comparison team IDs are required for team comparison")

        comparison = TeamComparisonResult(
            base_team=data.team_id, compared_teams=data.comparison_team_ids
        )

        for team_id in [data.team_id, *data.comparison_team_ids]:
            try:
                team = await self.store.find_one(
                    TEAM, team_id, {"tabellen_eintraege": True, "liga": True, "saison": True}
                )
            except ContentStoreError as e:
                result.errors.append(f"Team {team_id}: {e}")
                continue

            if team is None:
                result.warnings.append(f"Team {team_id} not found")
                continue

            stats = calculate_team_statistics(team)
            ranking = None
            liga_id = related_id(team, "liga")
            saison_id = related_id(team, "saison")
            if liga_id is not None and saison_id is not None:
                try:
                    ranking = await self._rank(team_id, liga_id, saison_id)
                except (ContentStoreError, TeamNotRankedError) as e:
                    result.warnings.append(f"Ranking calculation failed for team {team_id}: {e}")

            comparison.metrics[team_id] = TeamMetrics(
                statistics=stats,
                ranking=ranking,
                performance_score=calculate_performance_score(stats, ranking),
            )
            result.processed += 1

        metrics = list(comparison.metrics.items())
        comparison.rankings = TeamComparisonRankings(
            by_points=[
                team_id for team_id, m in sorted(metrics, key=lambda item: -item[1].statistics.points)
            ],
            by_goal_difference=[
                team_id
                for team_id, m in sorted(metrics, key=lambda item: -item[1].statistics.goal_difference)
            ],
            by_win_percentage=[
                team_id
                for team_id, m in sorted(metrics, key=lambda item: -item[1].statistics.win_percentage)
            ],
        )

        result.result = comparison
        result.updated = 1
        result.success = not result.errors
        return self._finish(result, started)
