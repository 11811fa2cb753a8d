"""
Tests for team calculations.
"""

import pytest

from src.calculations import team as team_module
from src.calculations.models import TeamJobData, TeamStatistics
from src.calculations.team import (
    TEAM_BATCH,
    TEAM_PERFORMANCE,
    TeamNotRankedError,
    analyze_team_performance,
    calculate_performance_score,
    calculate_team_statistics,
    rank_teams,
)
from src.scheduler import CalculationAbortedError, JobPriority, JobStatus


def _team(team_id, *entries):
    return {"id": team_id, "tabellen_eintraege": list(entries)}


class TestTeamStatistics:
    def test_sums_entries(self):
        team = _team(
            1,
            {"spiele": 10, "siege": 6, "unentschieden": 2, "niederlagen": 2,
             "tore_fuer": 20, "tore_gegen": 10, "punkte": 20},
            {"spiele": 2, "siege": 1, "unentschieden": 1, "niederlagen": 0,
             "tore_fuer": 3, "tore_gegen": 1, "punkte": 4},
        )

        stats = calculate_team_statistics(team)

        assert stats.games_played == 12
        assert stats.wins == 7
        assert stats.points == 24
        assert stats.goal_difference == 12
        assert stats.win_percentage == pytest.approx(7 / 12 * 100)
        assert stats.average_goals_for == pytest.approx(23 / 12)

    def test_team_without_entries(self):
        stats = calculate_team_statistics({"id": 1})

        assert stats.games_played == 0
        assert stats.win_percentage == 0.0
        assert stats.average_goals_against == 0.0


class TestRankTeams:
    def test_orders_by_points_then_goal_difference(self):
        teams = [
            _team(1, {"punkte": 10, "tore_fuer": 5, "tore_gegen": 5}),
            _team(2, {"punkte": 12, "tore_fuer": 5, "tore_gegen": 5}),
            _team(3, {"punkte": 10, "tore_fuer": 9, "tore_gegen": 2}),
        ]

        assert rank_teams(teams, 2).position == 1
        assert rank_teams(teams, 3).position == 2
        assert rank_teams(teams, 1).position == 3

    def test_gaps(self):
        teams = [
            _team(1, {"punkte": 30}),
            _team(2, {"punkte": 20}),
            _team(3, {"punkte": 15}),
        ]

        ranking = rank_teams(teams, 2)

        assert ranking.total_teams == 3
        assert ranking.points_gap == 10
        assert ranking.points_above == 5
        assert rank_teams(teams, 3).points_above == 0

    def test_unknown_team(self):
        with pytest.raises(TeamNotRankedError) as exc_info:
            rank_teams([_team(1)], 9)

        assert str(exc_info.value) == "Team 9 not found in league"


class TestPerformanceScore:
    def test_score_is_bounded(self):
        perfect = TeamStatistics(
            games_played=10, wins=10, points=30, goals_for=30, goals_against=0,
            goal_difference=30, win_percentage=100.0,
        )

        assert calculate_performance_score(perfect) == 85
        assert calculate_performance_score(TeamStatistics()) == 0

    def test_weak_team_improvements(self):
        stats = TeamStatistics(
            games_played=10, wins=1, points=5, goals_for=8, goals_against=25,
            goal_difference=-17, win_percentage=10.0,
            average_goals_for=0.8, average_goals_against=2.5,
        )

        strengths, improvements = analyze_team_performance(stats)

        assert strengths == []
        assert improvements == [
            "Low win rate",
            "Poor goal difference",
            "Low scoring rate",
            "Defensive issues",
        ]


class TestTeamCalculators:
    @pytest.mark.asyncio
    async def test_performance_with_ranking(self, calculations):
        result = await calculations.team.calculate_performance(TeamJobData(team_id=100))

        metrics = result.result
        assert result.success is True
        assert result.job_type == TEAM_PERFORMANCE
        assert metrics.statistics.points == 23
        assert metrics.ranking.position == 1
        assert metrics.ranking.total_teams == 3
        assert metrics.ranking.points_above == 5
        assert metrics.performance_score == 83
        assert "Top league position" in metrics.strength_areas
        assert metrics.improvement_areas == []

    @pytest.mark.asyncio
    async def test_performance_without_ranking(self, calculations):
        result = await calculations.team.calculate_performance(
            TeamJobData(team_id=102, include_ranking=False)
        )

        assert result.result.ranking is None
        assert "Low league position" not in result.result.improvement_areas

    @pytest.mark.asyncio
    async def test_missing_team_aborts(self, calculations):
        with pytest.raises(CalculationAbortedError) as exc_info:
            await calculations.team.calculate_performance(TeamJobData(team_id=999))

        assert str(exc_info.value) == "Team with ID 999 not found"

    @pytest.mark.asyncio
    async def test_ranking_update(self, calculations):
        result = await calculations.team.update_ranking(
            TeamJobData(team_id=102, liga_id=10, saison_id=1)
        )

        assert result.result.position == 3
        assert result.result.points_gap == 18

    @pytest.mark.asyncio
    async def test_ranking_update_requires_league_and_season(self, calculations):
        with pytest.raises(CalculationAbortedError) as exc_info:
            await calculations.team.update_ranking(TeamJobData(team_id=100))

        assert str(exc_info.value) == "Liga ID and Saison ID are required for ranking update"

    @pytest.mark.asyncio
    async def test_ranking_update_for_team_outside_league(self, calculations):
        with pytest.raises(CalculationAbortedError) as exc_info:
            await calculations.team.update_ranking(
                TeamJobData(team_id=110, liga_id=10, saison_id=1)
            )

        assert str(exc_info.value) == "Team 110 not found in league 10"

    @pytest.mark.asyncio
    async def test_statistics_update(self, calculations):
        result = await calculations.team.update_statistics(TeamJobData(team_id=110))

        assert result.result.games_played == 8
        assert result.result.goals_against == 6

    @pytest.mark.asyncio
    async def test_batch_update(self, calculations):
        result = await calculations.team.batch_update(
            TeamJobData(liga_id=10, saison_id=1, batch_size=2)
        )

        assert result.success is True
        assert result.job_type == TEAM_BATCH
        assert result.processed == 3
        assert result.updated == 3
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_batch_update_without_teams(self, calculations):
        result = await calculations.team.batch_update(TeamJobData(liga_id=99, saison_id=1))

        assert result.success is True
        assert result.processed == 0
        assert result.warnings == ["No teams found for the specified league and season"]

    @pytest.mark.asyncio
    async def test_batch_update_threshold(self, calculations, monkeypatch):
        original = team_module.calculate_team_statistics

        def corrupt_except_leader(team):
            if team["id"] != 100:
                raise ValueError("corrupt table entry")
            return original(team)

        monkeypatch.setattr(team_module, "calculate_team_statistics", corrupt_except_leader)

        result = await calculations.team.batch_update(TeamJobData(liga_id=10, saison_id=1))

        assert result.processed == 3
        assert result.updated == 1
        assert result.errors == ["Team 101: corrupt table entry", "Team 102: corrupt table entry"]
        assert result.success is False

    @pytest.mark.asyncio
    async def test_batch_update_tolerates_few_errors(self, calculations, monkeypatch):
        original = team_module.calculate_team_statistics

        def corrupt_one(team):
            if team["id"] == 102:
                raise ValueError("corrupt table entry")
            return original(team)

        monkeypatch.setattr(team_module, "calculate_team_statistics", corrupt_one)

        result = await calculations.team.batch_update(TeamJobData(liga_id=10, saison_id=1))

        assert len(result.errors) == 1
        assert result.success is True

    @pytest.mark.asyncio
    async def test_comparison(self, calculations):
        result = await calculations.team.analyze_comparison(
            TeamJobData(team_id=100, comparison_team_ids=[101, 102, 999])
        )

        rankings = result.result.rankings
        assert result.success is True
        assert result.processed == 3
        assert result.warnings == ["Team 999 not found"]
        assert rankings.by_points == [100, 101, 102]
        assert rankings.by_goal_difference == [100, 101, 102]
        assert result.result.metrics[102].ranking.position == 3

    @pytest.mark.asyncio
    async def test_comparison_requires_ids(self, calculations):
        with pytest.raises(CalculationAbortedError):
            await calculations.team.analyze_comparison(TeamJobData(team_id=100))


class TestTeamScheduling:
    def test_schedule_ranking_update(self, calculations):
        calculations.team.schedule_ranking_update(100, 10, 1)

        entry = calculations.service.scheduler.get_entry("team-ranking-100-10")
        assert entry.spec.priority == JobPriority.HIGH
        assert entry.spec.timeout == 20.0

    def test_schedule_batch_update(self, calculations):
        calculations.team.schedule_batch_update(10, 1, batch_size=5)

        entry = calculations.service.scheduler.get_entry("batch-teams-10-1")
        assert entry.spec.payload.batch_size == 5
        assert entry.spec.priority == JobPriority.LOW

    def test_recurring_updates(self, calculations):
        key = calculations.team.schedule_recurring_updates(10, 1, interval_minutes=15)

        entry = calculations.service.scheduler.get_entry(key)
        assert key == "recurring-team-stats-10-1"
        assert entry.interval == 900
        assert entry.spec.name == TEAM_BATCH


class TestTeamThroughQueue:
    @pytest.mark.asyncio
    async def test_performance_job(self, calculations, running, wait_for_status):
        service = calculations.service

        async with running(service):
            job_id = calculations.team.enqueue(TEAM_PERFORMANCE, {"team_id": 101})
            job = await wait_for_status(service, job_id, [JobStatus.COMPLETED])

        assert job.result.result.ranking.position == 2
        assert [j.id for j in calculations.team.list_jobs(entity_id=101)] == [job_id]
