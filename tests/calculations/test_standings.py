"""
Tests for numeric helpers and standings order.
"""

import math

import pytest

from src.calculations.standings import (
    create_batches,
    goal_statistics,
    points_distribution,
    positions_by_team,
    rank_entries,
    safe_divide,
    safe_number,
)


class TestSafeNumber:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (7, 7),
            ("12", 12),
            ("12 Tore", 12),
            (" -3", -3),
            ("abc", 0),
            ("", 0),
            (None, 0),
            (3.9, 3),
            (math.nan, 0),
            (True, 0),
        ],
    )
    def test_parsing(self, value, expected):
        assert safe_number(value) == expected

    def test_safe_divide_by_zero(self):
        assert safe_divide(5, 0) == 0.0
        assert safe_divide(5, 2) == 2.5


class TestCreateBatches:
    def test_chunks(self):
        assert create_batches([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert create_batches([], 3) == []

    def test_size_below_one_is_one(self):
        assert create_batches([1, 2], 0) == [[1], [2]]


class TestRankEntries:
    def test_points_then_goal_difference_then_goals_for(self):
        entries = [
            {"team": 1, "punkte": 10, "tore_fuer": 10, "tore_gegen": 10},
            {"team": 2, "punkte": 10, "tore_fuer": 12, "tore_gegen": 10},
            {"team": 3, "punkte": 10, "tore_fuer": 14, "tore_gegen": 12},
            {"team": 4, "punkte": 11, "tore_fuer": 0, "tore_gegen": 20},
        ]

        assert [e["team"] for e in rank_entries(entries)] == [4, 3, 2, 1]

    def test_full_tie_keeps_arrival_order(self):
        entries = [{"team": n, "punkte": 5, "tore_fuer": 3, "tore_gegen": 3} for n in (9, 4, 7)]

        assert [e["team"] for e in rank_entries(entries)] == [9, 4, 7]

    def test_goal_difference_is_computed_not_read(self):
        entries = [
            {"team": 1, "punkte": 10, "tore_fuer": 5, "tore_gegen": 5, "tordifferenz": 99},
            {"team": 2, "punkte": 10, "tore_fuer": 8, "tore_gegen": 5, "tordifferenz": 0},
        ]

        assert [e["team"] for e in rank_entries(entries)] == [2, 1]

    def test_positions_by_team(self):
        entries = [
            {"team": {"id": 5}, "punkte": 3},
            {"team": None, "punkte": 9},
            {"team": 6, "punkte": 6},
        ]

        assert positions_by_team(entries) == {6: 2, 5: 3}


class TestLeagueAggregates:
    def test_goal_statistics(self):
        entries = [
            {"team": 1, "tore_fuer": 10, "spiele": 5},
            {"team": 2, "tore_fuer": 4, "spiele": 5},
        ]

        stats = goal_statistics(entries)

        assert stats.total_goals == 14
        assert stats.average_goals_per_team == 7.0
        assert stats.average_goals_per_game == 1.4
        assert stats.highest_scoring_team.team_id == 1
        assert stats.lowest_scoring_team.team_id == 2

    def test_points_distribution_buckets(self):
        entries = [{"team": 1, "punkte": 31}, {"team": 2, "punkte": 35}, {"team": 3, "punkte": 9}]

        dist = points_distribution(entries)

        assert dist.distribution == {"30-39": 2, "0-9": 1}
        assert dist.points_leader.team_id == 2
        assert dist.min_points == 9
        assert dist.max_points == 35
        assert dist.average_points == pytest.approx(25.0)

    def test_empty_league(self):
        assert goal_statistics([]).average_goals_per_game == 0.0
        assert points_distribution([]).points_leader is None
