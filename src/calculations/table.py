"""
League table calculations.

Catalog:
- table-position-calculation: one team's position in its league table
- league-statistics-calculation: goal and points statistics for a league
- table-ranking-update: rewrites ``platz`` for every entry whose position changed
- league-batch-calculation: recomputes derived columns and positions for a league

Only entries whose stored values differ from the recomputed ones are written.
"""

import logging
import time
from typing import Optional

from src.infra.content_store import TABELLEN_EINTRAG, ContentStoreError, related_id
from src.scheduler.entities import JobContext, JobPriority
from src.scheduler.job_queue import report_progress

from .base import CalculationAdapter, CalculationDefinition
from .models import LeagueStatistics, PositionResult, TableJobData, TableJobResult
from .standings import (
    create_batches,
    games_for_record,
    goal_difference,
    goal_statistics,
    points_distribution,
    points_for_record,
    rank_entries,
)


logger = logging.getLogger(__name__)


TABLE_POSITION = "table-position-calculation"
LEAGUE_STATISTICS = "league-statistics-calculation"
TABLE_RANKING = "table-ranking-update"
LEAGUE_BATCH = "league-batch-calculation"

RANKING_WRITE_BATCH_SIZE = 10


def calculate_league_statistics(liga_id: int, entries: list[dict]) -> LeagueStatistics:
    goals = goal_statistics(entries)
    points = points_distribution(entries)
    return LeagueStatistics(
        liga_id=liga_id,
        total_teams=len(entries),
        total_games=goals.total_games,
        total_goals=goals.total_goals,
        average_goals_per_game=goals.average_goals_per_game,
        top_scorer=goals.highest_scoring_team,
        points_leader=points.points_leader,
        points_distribution=points.distribution,
    )


def recalculate_entry(entry: dict) -> dict:
    """Derived columns of a table entry from its raw results."""
    return {
        "tordifferenz": goal_difference(entry),
        "punkte": points_for_record(entry),
        "spiele": games_for_record(entry),
    }


class TableCalculationJobs(CalculationAdapter):
    """League table positions and league statistics."""

    area = "table"
    content_type = "tabellen-eintrag"
    entity_field = "liga_id"
    batch_delay = 0.1

    def build_definitions(self) -> list[CalculationDefinition]:
        return [
            CalculationDefinition(
                name=TABLE_POSITION,
                calculator=self.calculate_position,
                payload_model=TableJobData,
                priority=JobPriority.HIGH,
                dependencies=("tabellen_eintraege",),
                timeout=10.0,
                retry_attempts=2,
            ),
            CalculationDefinition(
                name=LEAGUE_STATISTICS,
                calculator=self.calculate_statistics,
                payload_model=TableJobData,
                priority=JobPriority.MEDIUM,
                dependencies=("tabellen_eintraege", "liga"),
                timeout=15.0,
                retry_attempts=1,
            ),
            CalculationDefinition(
                name=TABLE_RANKING,
                calculator=self.update_ranking,
                payload_model=TableJobData,
                priority=JobPriority.HIGH,
                dependencies=("tabellen_eintraege",),
                timeout=20.0,
                retry_attempts=2,
            ),
            CalculationDefinition(
                name=LEAGUE_BATCH,
                calculator=self.batch_calculate,
                payload_model=TableJobData,
                priority=JobPriority.MEDIUM,
                dependencies=("tabellen_eintraege", "liga"),
                timeout=60.0,
                retry_attempts=1,
            ),
        ]

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_position(
        self,
        liga_id: int,
        team_id: int,
        delay: float = 0.0,
        priority: JobPriority = JobPriority.HIGH,
    ) -> str:
        return self._schedule_once(
            f"table-position-{liga_id}-{team_id}",
            TABLE_POSITION,
            TableJobData(liga_id=liga_id, team_id=team_id),
            self.create_context(f"table-pos-{liga_id}-{team_id}"),
            delay,
            priority,
        )

    def schedule_league_statistics(self, liga_id: int, delay: float = 1.0) -> str:
        return self._schedule_once(
            f"league-statistics-{liga_id}",
            LEAGUE_STATISTICS,
            TableJobData(liga_id=liga_id),
            self.create_context(f"league-stats-{liga_id}", operation="read"),
            delay,
            JobPriority.MEDIUM,
        )

    def schedule_ranking_update(self, liga_id: int, delay: float = 0.5) -> str:
        return self._schedule_once(
            f"table-ranking-{liga_id}",
            TABLE_RANKING,
            TableJobData(liga_id=liga_id),
            self.create_context(f"table-ranking-{liga_id}"),
            delay,
            JobPriority.HIGH,
        )

    def schedule_batch_calculation(
        self,
        liga_id: int,
        batch_size: int = 10,
        delay: float = 2.0,
    ) -> str:
        return self._schedule_once(
            f"batch-league-{liga_id}",
            LEAGUE_BATCH,
            TableJobData(liga_id=liga_id, batch_size=batch_size),
            self.create_context(f"batch-league-{liga_id}"),
            delay,
            JobPriority.MEDIUM,
        )

    def schedule_recurring_updates(
        self,
        liga_id: int,
        interval_minutes: float = 30,
        max_runs: Optional[int] = None,
        start_delay: float = 60.0,
    ) -> str:
        context = JobContext(
            content_type=self.content_type,
            operation="update",
            operation_id=f"recurring-league-{liga_id}",
        )
        return self._schedule_recurring(
            f"recurring-league-stats-{liga_id}",
            LEAGUE_STATISTICS,
            TableJobData(liga_id=liga_id),
            context,
            interval=interval_minutes * 60,
            start_delay=start_delay,
            priority=JobPriority.LOW,
            max_runs=max_runs,
        )

    # =========================================================================
    # Calculators
    # =========================================================================

    async def _league_entries(
        self, result: TableJobResult, started: float, liga_id: int
    ) -> list[dict]:
        return await self._load_many(
            result,
            started,
            TABELLEN_EINTRAG,
            {"liga": {"id": liga_id}},
            {"team": True},
        )

    async def calculate_position(
        self, data: TableJobData, context: Optional[JobContext] = None
    ) -> TableJobResult:
        started = time.monotonic()
        result = TableJobResult(job_type=TABLE_POSITION, liga_id=data.liga_id, team_id=data.team_id)

        if data.team_id is None:
            raise self._abort(result, started, "Team ID is required for position calculation")

        own = await self._load_many(
            result,
            started,
            TABELLEN_EINTRAG,
            {"liga": {"id": data.liga_id}, "team": {"id": data.team_id}},
        )
        if not own:
            raise self._abort(
                result,
                started,
                f"No table entry found for team {data.team_id} in league {data.liga_id}",
            )
        entry = own[0]

        ranked = rank_entries(await self._league_entries(result, started, data.liga_id))
        position = next(
            (i for i, e in enumerate(ranked, start=1) if e["id"] == entry["id"]),
            len(ranked) + 1,
        )
        previous = entry.get("platz")
        result.processed = 1

        if previous != position:
            try:
                await self.store.update(TABELLEN_EINTRAG, entry["id"], {"platz": position})
                result.updated = 1
            except ContentStoreError as e:
                raise self._abort(result, started, f"Failed to update entry {entry['id']}: {e}")

        result.result = PositionResult(
            position=position,
            previous_position=previous,
            position_change=previous - position if previous is not None else 0,
        )
        result.success = True
        return self._finish(result, started)

    async def calculate_statistics(
        self, data: TableJobData, context: Optional[JobContext] = None
    ) -> TableJobResult:
        started = time.monotonic()
        result = TableJobResult(job_type=LEAGUE_STATISTICS, liga_id=data.liga_id)

        entries = await self._league_entries(result, started, data.liga_id)
        result.processed = len(entries)

        if not entries:
            result.warnings.append("No table entries found for league")
            result.success = True
            return self._finish(result, started)

        result.result = calculate_league_statistics(data.liga_id, entries)
        result.updated = 1
        result.success = True
        return self._finish(result, started)

    async def update_ranking(
        self, data: TableJobData, context: Optional[JobContext] = None
    ) -> TableJobResult:
        started = time.monotonic()
        result = TableJobResult(job_type=TABLE_RANKING, liga_id=data.liga_id)

        ranked = rank_entries(await self._league_entries(result, started, data.liga_id))
        result.processed = len(ranked)

        changed = [
            (entry, position)
            for position, entry in enumerate(ranked, start=1)
            if entry.get("platz") != position
        ]

        batches = create_batches(changed, RANKING_WRITE_BATCH_SIZE)
        for index, batch in enumerate(batches):
            for entry, position in batch:
                try:
                    await self.store.update(TABELLEN_EINTRAG, entry["id"], {"platz": position})
                    result.updated += 1
                except ContentStoreError as e:
                    result.errors.append(f"Failed to update entry {entry['id']}: {e}")
            report_progress(int((index + 1) / len(batches) * 100))
            if index < len(batches) - 1:
                await self._pause()

        result.result = [
            {"team_id": related_id(entry, "team"), "position": position}
            for position, entry in enumerate(ranked, start=1)
        ]
        result.success = not result.errors
        return self._finish(result, started)

    async def batch_calculate(
        self, data: TableJobData, context: Optional[JobContext] = None
    ) -> TableJobResult:
        started = time.monotonic()
        result = TableJobResult(job_type=LEAGUE_BATCH, liga_id=data.liga_id)

        entries = await self._league_entries(result, started, data.liga_id)
        result.processed = len(entries)

        stored = {entry["id"]: entry for entry in entries}
        recalculated = [{**entry, **recalculate_entry(entry)} for entry in entries]

        changes = []
        for position, entry in enumerate(rank_entries(recalculated), start=1):
            original = stored[entry["id"]]
            updates = {
                field: value
                for field, value in {**recalculate_entry(entry), "platz": position}.items()
                if original.get(field) != value
            }
            if updates:
                changes.append((entry["id"], updates))

        batches = create_batches(changes, data.batch_size)
        for index, batch in enumerate(batches):
            for entry_id, updates in batch:
                try:
                    await self.store.update(TABELLEN_EINTRAG, entry_id, updates)
                    result.updated += 1
                except ContentStoreError as e:
                    result.errors.append(f"Update failed for entry {entry_id}: {e}")
            report_progress(int((index + 1) / len(batches) * 100))
            if index < len(batches) - 1:
                await self._pause()

        if result.errors:
            result.warnings.append(f"{len(result.errors)} errors occurred during batch update")

        result.result = calculate_league_statistics(data.liga_id, recalculated)
        result.success = len(result.errors) < self.config.batch_success_threshold * max(result.processed, 1)
        return self._finish(result, started)
