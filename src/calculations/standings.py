"""
Numeric helpers and table ordering shared by the calculation adapters.

Numeric policy:
- Missing or non-numeric values count as 0
- A zero denominator yields 0
- Standings order by points, then goal difference, then goals for, then
  arrival order (the sort is stable)
"""

import math
import re
from typing import Any, Iterable, Optional, Sequence, TypeVar

from src.infra.content_store import related_id

from .models import GoalStatistics, PointsDistribution, TeamScore


T = TypeVar("T")

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def safe_number(value: Any) -> int:
    """Parse a leading integer out of ``value``; anything unparsable is 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


def safe_divide(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def create_batches(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split items into consecutive chunks of at most ``batch_size``."""
    size = max(1, batch_size)
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def goal_difference(entry: dict) -> int:
    return safe_number(entry.get("tore_fuer")) - safe_number(entry.get("tore_gegen"))


def points_for_record(entry: dict) -> int:
    """3 per win, 1 per draw."""
    return safe_number(entry.get("siege")) * 3 + safe_number(entry.get("unentschieden"))


def games_for_record(entry: dict) -> int:
    return (
        safe_number(entry.get("siege"))
        + safe_number(entry.get("unentschieden"))
        + safe_number(entry.get("niederlagen"))
    )


def standing_key(entry: dict) -> tuple[int, int, int]:
    return (
        -safe_number(entry.get("punkte")),
        -goal_difference(entry),
        -safe_number(entry.get("tore_fuer")),
    )


def rank_entries(entries: Iterable[dict]) -> list[dict]:
    """Table entries in standings order."""
    return sorted(entries, key=standing_key)


def positions_by_team(entries: Iterable[dict]) -> dict[int, int]:
    """Map team id -> 1-based table position. Entries without a team are skipped."""
    positions: dict[int, int] = {}
    for index, entry in enumerate(rank_entries(entries), start=1):
        team_id = related_id(entry, "team")
        if team_id is not None:
            positions[team_id] = index
    return positions


def goal_statistics(entries: Sequence[dict]) -> GoalStatistics:
    stats = GoalStatistics()
    for entry in entries:
        goals = safe_number(entry.get("tore_fuer"))
        team_id = related_id(entry, "team")
        stats.total_goals += goals
        stats.total_games += safe_number(entry.get("spiele"))

        if stats.highest_scoring_team is None or goals > stats.highest_scoring_team.value:
            stats.highest_scoring_team = TeamScore(team_id=team_id, value=goals)
        if stats.lowest_scoring_team is None or goals < stats.lowest_scoring_team.value:
            stats.lowest_scoring_team = TeamScore(team_id=team_id, value=goals)

    stats.average_goals_per_team = safe_divide(stats.total_goals, len(entries))
    stats.average_goals_per_game = safe_divide(stats.total_goals, stats.total_games)
    return stats


def points_distribution(entries: Sequence[dict]) -> PointsDistribution:
    """Points totals, leader and a histogram in buckets of ten ("0-9", "10-19", ...)."""
    dist = PointsDistribution()
    min_points: Optional[int] = None

    for entry in entries:
        points = safe_number(entry.get("punkte"))
        dist.total_points += points

        if points > dist.max_points:
            dist.max_points = points
            dist.points_leader = TeamScore(team_id=related_id(entry, "team"), value=points)
        if min_points is None or points < min_points:
            min_points = points

        low = (points // 10) * 10
        bucket = f"{low}-{low + 9}"
        dist.distribution[bucket] = dist.distribution.get(bucket, 0) + 1

    dist.min_points = min_points or 0
    dist.average_points = safe_divide(dist.total_points, len(entries))
    return dist
