"""Tests for season simulation, aggregation and projection."""

import pytest

from chartstats.data.normalizer import map_chart_event_to_play_event
from chartstats.errors import ChartStatsError
from chartstats.pipeline import build_stats_stack
from chartstats.season.aggregate import (
    SeasonAggregate,
    aggregate_season_metrics,
    season_trend_frame,
)
from chartstats.season.projection import (
    INSUFFICIENT_DATA_NOTES,
    project_season,
    synthetic_schedule,
)
from chartstats.season.simulation import (
    SeasonSimulationInput,
    SimulatedGame,
    game_win_probabilities,
    simulate_season_outcomes,
)


def make_play(**fields):
    return map_chart_event_to_play_event(fields, team_id="T1")


def schedule(ratings, conference=2):
    return [
        SimulatedGame(
            opponent_id=f"opp-{idx}",
            opponent_rating=rating,
            is_conference=idx < conference,
            home_field=1 if idx % 2 == 0 else -1,
        )
        for idx, rating in enumerate(ratings)
    ]


def sim_input(team_rating=60.0, ratings=(50, 55, 60, 65, 70), **overrides):
    fields = {
        "team_rating": team_rating,
        "offense_rating": 30.0,
        "defense_rating": 30.0,
        "schedule": schedule(list(ratings)),
        "iterations": 500,
        "seed": 7,
    }
    fields.update(overrides)
    return SeasonSimulationInput(**fields)


def game_plays(game_id, gains, opponent_gains=(), touchdowns=0):
    """One charted game: offensive snaps, opponent snaps and a few touchdowns."""
    plays = []
    for idx, gained in enumerate(gains):
        plays.append(
            make_play(id=f"{game_id}-o{idx}", game_id=game_id, opponent_id="OPP", drive_number=idx // 3 + 1,
                      possession="OFFENSE", quarter=1 + idx % 4, down=1, distance=10, gained_yards=gained,
                      play_family="RUN" if idx % 2 else "PASS")
        )
    for idx, gained in enumerate(opponent_gains):
        plays.append(
            make_play(id=f"{game_id}-d{idx}", game_id=game_id, opponent_id="OPP", drive_number=100 + idx,
                      possession="DEFENSE", quarter=2, down=1, distance=10, gained_yards=gained,
                      play_family="RUN")
        )
    for idx in range(touchdowns):
        plays.append(
            make_play(id=f"{game_id}-td{idx}", game_id=game_id, opponent_id="OPP", drive_number=50 + idx,
                      possession="OFFENSE", quarter=3, down=1, distance=10, gained_yards=45,
                      result="Touchdown", play_family="PASS", field_position=55)
        )
    return plays


# =============================================================================
# Simulation
# =============================================================================

class TestSeasonSimulation:
    """Seeded Monte Carlo over a schedule."""

    def test_same_seed_same_result(self):
        assert simulate_season_outcomes(sim_input()) == simulate_season_outcomes(sim_input())

    @pytest.mark.parametrize("iterations", [0, -5])
    def test_non_positive_iterations(self, iterations):
        with pytest.raises(ChartStatsError):
            simulate_season_outcomes(sim_input(iterations=iterations))

    def test_empty_schedule(self):
        result = simulate_season_outcomes(sim_input(schedule=[]))
        assert result.win_out_probability == 1.0
        assert result.win_probability == 0.0
        assert result.expected_wins == 0.0
        assert result.strength_of_schedule == 0.0
        assert result.game_results == []
        assert result.win_distribution == [1.0]

    def test_win_distribution(self):
        result = simulate_season_outcomes(sim_input())
        assert len(result.win_distribution) == 6
        assert sum(result.win_distribution) == pytest.approx(1.0)
        expected = sum(k * p for k, p in enumerate(result.win_distribution))
        assert expected == pytest.approx(result.expected_wins)
        assert result.win_out_probability == pytest.approx(result.win_distribution[-1])

    def test_stronger_team_wins_more(self):
        strong = simulate_season_outcomes(sim_input(team_rating=90))
        weak = simulate_season_outcomes(sim_input(team_rating=30))
        assert strong.expected_wins > weak.expected_wins
        assert strong.game_control > weak.game_control

    def test_per_game_probabilities_clamped(self):
        probs = game_win_probabilities(sim_input(team_rating=500))
        assert probs.max() == pytest.approx(0.95)
        probs = game_win_probabilities(sim_input(team_rating=-500))
        assert probs.min() == pytest.approx(0.05)

    def test_game_results(self):
        result = simulate_season_outcomes(sim_input())
        assert [g.opponent_id for g in result.game_results] == [f"opp-{idx}" for idx in range(5)]
        assert all(0.0 <= g.win_rate <= 1.0 for g in result.game_results)
        assert result.expected_wins == pytest.approx(sum(g.win_rate for g in result.game_results))

    def test_strength_of_schedule(self):
        result = simulate_season_outcomes(sim_input())
        assert result.strength_of_schedule == pytest.approx(60.0)
        assert 0.0 <= result.strength_of_record <= 1.0


# =============================================================================
# Aggregation
# =============================================================================

class TestSeasonAggregate:
    """Pooled season rates and per-game trends."""

    def test_no_games(self):
        aggregate = aggregate_season_metrics([])
        assert aggregate == SeasonAggregate()
        assert aggregate.games == 0
        assert aggregate.turnover.trend == []
        assert season_trend_frame(aggregate).empty

    def test_rates_pool_counts(self):
        first = build_stats_stack(game_plays("g1", [4, 6, 20, 2]))
        second = build_stats_stack(game_plays("g2", [10, 0]))
        aggregate = aggregate_season_metrics([first.game, second.game])
        ypp = aggregate.efficiency.yards_per_play
        assert aggregate.games == 2
        assert ypp.plays == 6
        assert ypp.yards == pytest.approx(42)
        assert ypp.ypp == pytest.approx(7.0)

    def test_trend_order(self):
        games = [build_stats_stack(game_plays(gid, [5, 5])).game for gid in ("g1", "g2", "g3")]
        aggregate = aggregate_season_metrics(games)
        assert [pt.game_id for pt in aggregate.turnover.trend] == ["g1", "g2", "g3"]
        frame = season_trend_frame(aggregate)
        assert list(frame.columns) == ["game_id", "opponent_id", "turnover_margin", "point_differential"]
        assert list(frame["game_id"]) == ["g1", "g2", "g3"]


# =============================================================================
# Projection
# =============================================================================

class TestSeasonProjection:
    """Projection from charted games."""

    def test_insufficient_data(self):
        projection = project_season([])
        assert projection.insufficient_data is True
        assert projection.games_modeled == 0
        assert projection.projected_win_rate is None
        assert projection.expected_wins is None
        assert projection.notes == INSUFFICIENT_DATA_NOTES

    def test_lopsided_game_stays_in_bounds(self):
        stack = build_stats_stack(game_plays("g1", [40, 45, 50, 60], opponent_gains=[-5, -3], touchdowns=6))
        projection = project_season([stack])
        assert projection.insufficient_data is False
        assert projection.games_modeled == 1
        assert 0.01 <= projection.projected_win_rate <= 0.99

    def test_deterministic(self):
        stacks = [build_stats_stack(game_plays("g1", [4, 6, 12])), build_stats_stack(game_plays("g2", [3, 8]))]
        assert project_season(stacks) == project_season(stacks)

    def test_explicit_schedule(self):
        stack = build_stats_stack(game_plays("g1", [4, 6, 12]))
        projection = project_season([stack], schedule=schedule([40, 45, 50]))
        assert projection.strength_of_schedule == pytest.approx(45.0)

    def test_synthetic_schedule(self):
        games = synthetic_schedule(60, 4)
        assert [g.opponent_rating for g in games] == [55, 56, 57, 58]
        assert [g.home_field for g in games] == [1, -1, 1, -1]
        assert [g.is_conference for g in games] == [True, True, False, False]

    def test_synthetic_schedule_clamps_ratings(self):
        assert {g.opponent_rating for g in synthetic_schedule(0, 2)} == {20}
        assert {g.opponent_rating for g in synthetic_schedule(200, 2)} == {95}
