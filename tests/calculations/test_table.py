"""
Tests for league table calculations.
"""

import pytest

from src.calculations.models import TableJobData
from src.calculations.table import (
    LEAGUE_BATCH,
    LEAGUE_STATISTICS,
    TABLE_POSITION,
    recalculate_entry,
)
from src.infra.content_store import TABELLEN_EINTRAG, ContentStoreError
from src.scheduler import CalculationAbortedError, JobPriority, JobStatus


def _fail_updates_for(store, monkeypatch, failing_ids):
    original = store.update

    async def update(uid, entity_id, data):
        if entity_id in failing_ids:
            raise ContentStoreError(f"{uid} {entity_id} is locked")
        return await original(uid, entity_id, data)

    monkeypatch.setattr(store, "update", update)


class TestRecalculateEntry:
    def test_derived_columns(self):
        entry = {"siege": 7, "unentschieden": 2, "niederlagen": 1, "tore_fuer": 25, "tore_gegen": 8}

        assert recalculate_entry(entry) == {"tordifferenz": 17, "punkte": 23, "spiele": 10}

    def test_missing_values(self):
        assert recalculate_entry({}) == {"tordifferenz": 0, "punkte": 0, "spiele": 0}


class TestPosition:
    @pytest.mark.asyncio
    async def test_position_changed_is_written(self, calculations, store):
        result = await calculations.table.calculate_position(TableJobData(liga_id=10, team_id=100))

        assert result.success is True
        assert result.job_type == TABLE_POSITION
        assert result.updated == 1
        assert result.result.position == 1
        assert result.result.previous_position == 2
        assert result.result.position_change == 1
        assert store.get(TABELLEN_EINTRAG, 1)["platz"] == 1

    @pytest.mark.asyncio
    async def test_unchanged_position_is_not_written(self, calculations):
        result = await calculations.table.calculate_position(TableJobData(liga_id=10, team_id=102))

        assert result.updated == 0
        assert result.result.position == 3
        assert result.result.position_change == 0

    @pytest.mark.asyncio
    async def test_requires_team(self, calculations):
        with pytest.raises(CalculationAbortedError) as exc_info:
            await calculations.table.calculate_position(TableJobData(liga_id=10))

        assert str(exc_info.value) == "Team ID is required for position calculation"

    @pytest.mark.asyncio
    async def test_team_without_entry(self, calculations):
        with pytest.raises(CalculationAbortedError) as exc_info:
            await calculations.table.calculate_position(TableJobData(liga_id=10, team_id=999))

        assert str(exc_info.value) == "No table entry found for team 999 in league 10"


class TestLeagueStatistics:
    @pytest.mark.asyncio
    async def test_statistics(self, calculations):
        result = await calculations.table.calculate_statistics(TableJobData(liga_id=10))

        stats = result.result
        assert result.job_type == LEAGUE_STATISTICS
        assert result.processed == 3
        assert stats.total_teams == 3
        assert stats.total_games == 30
        assert stats.total_goals == 52
        assert stats.average_goals_per_game == pytest.approx(52 / 30)
        assert (stats.top_scorer.team_id, stats.top_scorer.value) == (100, 25)
        assert (stats.points_leader.team_id, stats.points_leader.value) == (100, 23)
        assert stats.points_distribution == {"20-29": 1, "10-19": 1, "0-9": 1}

    @pytest.mark.asyncio
    async def test_empty_league(self, calculations):
        result = await calculations.table.calculate_statistics(TableJobData(liga_id=99))

        assert result.success is True
        assert result.result is None
        assert result.warnings == ["No table entries found for league"]


class TestRankingUpdate:
    @pytest.mark.asyncio
    async def test_rewrites_changed_positions(self, calculations, store):
        result = await calculations.table.update_ranking(TableJobData(liga_id=10))

        assert result.success is True
        assert result.processed == 3
        assert result.updated == 2
        assert result.result == [
            {"team_id": 100, "position": 1},
            {"team_id": 101, "position": 2},
            {"team_id": 102, "position": 3},
        ]
        assert store.get(TABELLEN_EINTRAG, 1)["platz"] == 1
        assert store.get(TABELLEN_EINTRAG, 2)["platz"] == 2

    @pytest.mark.asyncio
    async def test_second_run_writes_nothing(self, calculations):
        await calculations.table.update_ranking(TableJobData(liga_id=10))

        result = await calculations.table.update_ranking(TableJobData(liga_id=10))

        assert result.updated == 0

    @pytest.mark.asyncio
    async def test_failed_write_is_reported(self, calculations, store, monkeypatch):
        _fail_updates_for(store, monkeypatch, {2})

        result = await calculations.table.update_ranking(TableJobData(liga_id=10))

        assert result.success is False
        assert result.updated == 1
        assert result.errors == [f"Failed to update entry 2: {TABELLEN_EINTRAG} 2 is locked"]


class TestBatchCalculation:
    @pytest.mark.asyncio
    async def test_recomputes_derived_columns(self, calculations, store):
        result = await calculations.table.batch_calculate(TableJobData(liga_id=10))

        assert result.success is True
        assert result.job_type == LEAGUE_BATCH
        assert result.processed == 3
        assert result.updated == 3
        assert result.result.total_goals == 52

        entry = store.get(TABELLEN_EINTRAG, 1)
        assert entry["tordifferenz"] == 17
        assert entry["platz"] == 1

    @pytest.mark.asyncio
    async def test_stale_points_are_corrected_before_ranking(self, calculations, store):
        await store.update(TABELLEN_EINTRAG, 3, {"punkte": 99})

        await calculations.table.batch_calculate(TableJobData(liga_id=10))

        entry = store.get(TABELLEN_EINTRAG, 3)
        assert entry["punkte"] == 5
        assert entry["platz"] == 3

    @pytest.mark.asyncio
    async def test_unchanged_entries_are_skipped(self, calculations):
        await calculations.table.batch_calculate(TableJobData(liga_id=10))

        result = await calculations.table.batch_calculate(TableJobData(liga_id=10, batch_size=1))

        assert result.updated == 0
        assert result.success is True

    @pytest.mark.asyncio
    async def test_many_failed_writes_fail_the_batch(self, calculations, store, monkeypatch):
        _fail_updates_for(store, monkeypatch, {1, 2, 3})

        result = await calculations.table.batch_calculate(TableJobData(liga_id=10))

        assert result.success is False
        assert len(result.errors) == 3
        assert result.warnings == ["3 errors occurred during batch update"]

    @pytest.mark.asyncio
    async def test_empty_league_succeeds(self, calculations):
        result = await calculations.table.batch_calculate(TableJobData(liga_id=99))

        assert result.success is True
        assert result.processed == 0


class TestTableScheduling:
    def test_schedule_position(self, calculations):
        job_id = calculations.table.schedule_position(10, 100)

        entry = calculations.service.scheduler.get_entry("table-position-10-100")
        assert entry.job_id == job_id
        assert entry.spec.priority == JobPriority.HIGH
        assert entry.spec.timeout == 10.0

    def test_recurring_updates(self, calculations):
        key = calculations.table.schedule_recurring_updates(10, interval_minutes=30, max_runs=4)

        entry = calculations.service.scheduler.get_entry(key)
        assert key == "recurring-league-stats-10"
        assert entry.interval == 1800
        assert entry.spec.name == LEAGUE_STATISTICS
        assert entry.spec.priority == JobPriority.LOW


class TestTableThroughQueue:
    @pytest.mark.asyncio
    async def test_scheduled_ranking_update(self, calculations, running, wait_for_status, store):
        service = calculations.service

        async with running(service):
            job_id = calculations.table.schedule_ranking_update(10, delay=0.01)
            job = await wait_for_status(service, job_id, [JobStatus.COMPLETED])

        assert job.result.updated == 2
        assert store.get(TABELLEN_EINTRAG, 2)["platz"] == 2
