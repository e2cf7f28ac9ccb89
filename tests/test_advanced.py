"""Tests for the advanced analytics layer and the full stat stack."""

import pytest

from config.play_types import EXPECTED_POINTS_CURVE
from chartstats.data.drives import derive_drive_records
from chartstats.data.normalizer import map_chart_event_to_play_event
from chartstats.models.advanced import (
    compute_advanced_analytics,
    compute_field_position_advantage,
    compute_leverage_rate,
    compute_sp_plus_like_ratings,
    estimate_epa,
    estimate_havoc_rate,
)
from chartstats.models.box_score import compute_base_counts, compute_box_score
from chartstats.models.expected_points import compute_epa_aggregates
from chartstats.pipeline import build_stats_stack


def make_play(**fields):
    return map_chart_event_to_play_event(fields, team_id="T1")


def scripted_drive():
    return [
        make_play(id="a1", drive_number=1, possession="OFFENSE", quarter=1, clock_seconds=850, down=1, distance=10,
                  gained_yards=6, play_family="RUN", field_position=25),
        make_play(id="a2", drive_number=1, possession="OFFENSE", quarter=1, clock_seconds=810, down=2, distance=4,
                  gained_yards=5, play_family="RUN", field_position=31, first_down=True),
        make_play(id="a3", drive_number=1, possession="OFFENSE", quarter=1, clock_seconds=770, down=1, distance=10,
                  gained_yards=22, play_family="PASS", field_position=36, participation={"quarterback": "QB1"}),
    ]


# =============================================================================
# Baseline estimates
# =============================================================================

class TestBaselineEstimates:
    """The simple box-score-driven estimates."""

    def test_estimated_epa(self):
        base = compute_base_counts(scripted_drive())
        assert estimate_epa(base) == pytest.approx(33 * 0.06)

    def test_havoc_rate_counts_turnovers_and_penalties(self):
        events = scripted_drive() + [
            make_play(id="a4", drive_number=1, possession="OFFENSE", result="intercepted", play_family="PASS",
                      penalties=[{"occurred": True, "yards": 10}]),
        ]
        base = compute_base_counts(events)
        assert estimate_havoc_rate(base) == pytest.approx((1 + 0.25) / 4)

    def test_leverage_rate(self):
        events = scripted_drive()
        base = compute_base_counts(events)
        assert compute_leverage_rate(base, derive_drive_records(events)) == pytest.approx(1.0)
        assert compute_leverage_rate(base, []) == pytest.approx(1.0)

    def test_field_position_advantage(self):
        events = scripted_drive()
        base = compute_base_counts(events)
        assert compute_field_position_advantage(base, derive_drive_records(events)) == pytest.approx(25)
        assert compute_field_position_advantage(base, []) == pytest.approx(11)

    def test_empty(self):
        base = compute_base_counts([])
        assert estimate_epa(base) == 0.0
        assert estimate_havoc_rate(base) == 0.0
        assert compute_leverage_rate(base, []) == 0.0
        assert compute_field_position_advantage(base, []) == 0.0


# =============================================================================
# Ratings
# =============================================================================

class TestSpPlusLikeRatings:
    """Unit ratings on a 0-100 scale."""

    def test_bounds_and_overall(self):
        events = scripted_drive()
        ratings = compute_sp_plus_like_ratings(events, compute_epa_aggregates(events), defense_havoc=0.2)
        for value in (ratings.offense, ratings.defense, ratings.special_teams, ratings.overall):
            assert 0 <= value <= 100
        expected = ratings.offense - (100 - ratings.defense) * 0.6 + (ratings.special_teams - 50) * 0.3 + 50
        assert ratings.overall == pytest.approx(min(100, max(0, expected)))
        assert ratings.success_rate == pytest.approx(1.0)
        assert ratings.havoc == 0.2

    def test_neutral_without_plays(self):
        ratings = compute_sp_plus_like_ratings([], compute_epa_aggregates([]), defense_havoc=0.0)
        assert ratings.special_teams == pytest.approx(50)
        assert ratings.iso_ppp == 0.0


# =============================================================================
# Full layer
# =============================================================================

class TestAdvancedAnalytics:
    """Everything advanced for one game."""

    def test_layer(self):
        events = scripted_drive()
        base = compute_base_counts(events)
        box = compute_box_score(events, None, base)
        advanced = compute_advanced_analytics(box, base, drives=derive_drive_records(events), events=events)
        assert advanced.estimated_epa_per_play == pytest.approx(33 * 0.06 / 3)
        assert advanced.epa.plays == 3
        assert len(advanced.win_probability.timeline) == 3
        assert advanced.expected_points_model.curve == [ep for _, ep in EXPECTED_POINTS_CURVE]
        assert advanced.expected_points_model.latest is not None
        assert set(advanced.any_a.by_quarterback) == {"QB1"}
        assert advanced.season_simulation is None
        total = advanced.post_game_win_expectancy
        assert total.team_win_expectancy + total.opponent_win_expectancy == pytest.approx(1.0)

    def test_opponent_box_enables_game_simulation(self):
        opponent_events = [
            make_play(id="o1", possession="OFFENSE", down=1, distance=10, gained_yards=3, play_family="RUN"),
            make_play(id="o2", possession="OFFENSE", down=2, distance=7, gained_yards=4, play_family="RUN"),
        ]
        opponent_box = compute_box_score(opponent_events)
        stack = build_stats_stack(scripted_drive(), opponent_events=opponent_events, opponent_box=opponent_box)
        simulation = stack.advanced.season_simulation
        assert simulation is not None
        assert len(simulation.game_results) == 1
        assert len(simulation.win_distribution) == 2
        assert stack.core.explosive_margin == 1

    def test_stack_is_deterministic(self):
        assert build_stats_stack(scripted_drive()) == build_stats_stack(scripted_drive())
