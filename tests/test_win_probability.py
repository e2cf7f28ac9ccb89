"""Tests for win probability, WPA timelines, game control and post-game expectancy."""

import pytest

from chartstats.data.events import ChartUnit
from chartstats.data.normalizer import map_chart_event_to_play_event
from chartstats.models.win_probability import (
    HIGH_LEVERAGE_WPA,
    GameControlMetric,
    WinExpectancyProfile,
    WinProbabilityPoint,
    WinProbabilityState,
    WinProbabilitySummary,
    compute_game_control_metric,
    compute_post_game_win_expectancy,
    compute_win_probability,
    compute_win_probability_summary,
)


def make_play(**fields):
    return map_chart_event_to_play_event(fields, team_id="T1")


def game_flow():
    """A handful of snaps across all three units, charted out of order."""
    return [
        make_play(id="p4", quarter=4, clock_seconds=90, possession="OFFENSE", down=3, distance=2,
                  gained_yards=30, result="Touchdown", team_score_before=21, opponent_score_before=24,
                  participation={"quarterback": "QB1", "primary_target": "WR1"}),
        make_play(id="p1", quarter=1, clock_seconds=880, possession="OFFENSE", down=1, distance=10,
                  field_position=25, gained_yards=7, participation={"primary_ballcarrier": "RB1"}),
        make_play(id="p2", quarter=2, clock_seconds=400, possession="DEFENSE", down=2, distance=6,
                  field_position=40, gained_yards=-3),
        make_play(id="p3", quarter=3, clock_seconds=600, st_play_type="PUNT", gained_yards=42,
                  team_score_before=14, opponent_score_before=17),
    ]


def point(play_id, wp, seconds, unit=ChartUnit.OFFENSE):
    return WinProbabilityPoint(
        play_id=play_id,
        win_probability=wp,
        wpa=0.0,
        leverage=0.0,
        unit=unit,
        seconds_remaining=seconds,
    )


# =============================================================================
# Win probability
# =============================================================================

class TestWinProbability:
    """Logistic win probability for a single state."""

    def test_bounds(self):
        assert compute_win_probability(WinProbabilityState(score_diff=100)) == pytest.approx(0.99)
        assert compute_win_probability(WinProbabilityState(score_diff=-100)) == pytest.approx(0.01)

    def test_lead_helps(self):
        behind = compute_win_probability(WinProbabilityState(score_diff=-7, seconds_remaining=600))
        ahead = compute_win_probability(WinProbabilityState(score_diff=7, seconds_remaining=600))
        assert ahead > behind

    def test_possession_helps(self):
        with_ball = compute_win_probability(WinProbabilityState(possession=ChartUnit.OFFENSE))
        without = compute_win_probability(WinProbabilityState(possession=ChartUnit.DEFENSE))
        assert with_ball > without

    def test_pregame_edge(self):
        favored = compute_win_probability(WinProbabilityState(pregame_edge=10))
        even = compute_win_probability(WinProbabilityState())
        assert favored > even


# =============================================================================
# WPA timeline
# =============================================================================

class TestWinProbabilitySummary:
    """Timeline and WPA attribution."""

    def test_timeline_in_clock_order(self):
        summary = compute_win_probability_summary(game_flow())
        assert [pt.play_id for pt in summary.timeline] == ["p1", "p2", "p3", "p4"]
        seconds = [pt.seconds_remaining for pt in summary.timeline]
        assert seconds == sorted(seconds, reverse=True)

    def test_unit_wpa_sums_to_final_swing(self):
        summary = compute_win_probability_summary(game_flow())
        final = summary.timeline[-1].win_probability
        assert sum(summary.wpa_by_unit.values()) == pytest.approx(final - 0.5)
        assert set(summary.wpa_by_unit) == {"OFFENSE", "DEFENSE", "SPECIAL_TEAMS"}

    def test_units_attributed(self):
        summary = compute_win_probability_summary(game_flow())
        units = {pt.play_id: pt.unit for pt in summary.timeline}
        assert units == {
            "p1": ChartUnit.OFFENSE,
            "p2": ChartUnit.DEFENSE,
            "p3": ChartUnit.SPECIAL_TEAMS,
            "p4": ChartUnit.OFFENSE,
        }

    def test_player_wpa(self):
        summary = compute_win_probability_summary(game_flow())
        by_id = {pt.play_id: pt for pt in summary.timeline}
        assert summary.wpa_by_player["RB1"] == pytest.approx(by_id["p1"].wpa)
        assert summary.wpa_by_player["QB1"] == pytest.approx(by_id["p4"].wpa)
        assert summary.wpa_by_player["WR1"] == pytest.approx(by_id["p4"].wpa)

    def test_high_leverage(self):
        summary = compute_win_probability_summary(game_flow())
        assert all(pt.leverage >= HIGH_LEVERAGE_WPA for pt in summary.high_leverage)
        flagged = {pt.play_id for pt in summary.high_leverage}
        for pt in summary.timeline:
            assert (pt.play_id in flagged) == (abs(pt.wpa) >= HIGH_LEVERAGE_WPA)

    def test_average(self):
        summary = compute_win_probability_summary(game_flow())
        values = [pt.win_probability for pt in summary.timeline]
        assert summary.average_win_probability == pytest.approx(sum(values) / len(values))

    def test_empty(self):
        summary = compute_win_probability_summary([])
        assert summary.timeline == []
        assert summary.average_win_probability == 0.5
        assert summary.wpa_by_unit == {"OFFENSE": 0.0, "DEFENSE": 0.0, "SPECIAL_TEAMS": 0.0}
        assert summary.high_leverage == []


# =============================================================================
# Game control
# =============================================================================

class TestGameControl:
    """Time-weighted win probability."""

    def test_empty_summary(self):
        assert compute_game_control_metric(WinProbabilitySummary()) == GameControlMetric(0.5, 0.0, 0.0)

    def test_last_value_holds_to_the_end(self):
        summary = WinProbabilitySummary(timeline=[point("a", 0.7, 1800)])
        control = compute_game_control_metric(summary)
        assert control.average_lead_win_prob == pytest.approx(0.7)
        assert control.time_led_pct == pytest.approx(1.0)
        assert control.domination_index == pytest.approx(0.85)

    def test_split_game(self):
        summary = WinProbabilitySummary(timeline=[point("a", 0.4, 1800), point("b", 0.8, 0)])
        control = compute_game_control_metric(summary, total_seconds=3600)
        # 0.4 for the first half, 0.8 for the second
        assert control.average_lead_win_prob == pytest.approx(0.6)
        assert control.time_led_pct == pytest.approx(0.5)


# =============================================================================
# Post-game win expectancy
# =============================================================================

class TestPostGameWinExpectancy:
    """Box-score-driven win expectancy."""

    def test_even_game(self):
        profile = WinExpectancyProfile(
            yards_for=350,
            yards_allowed=350,
            success_rate_for=0.45,
            success_rate_allowed=0.45,
            turnovers_for=1,
            turnovers_allowed=1,
            plays=60,
        )
        result = compute_post_game_win_expectancy(profile)
        assert result.team_win_expectancy == pytest.approx(0.5)
        assert result.opponent_win_expectancy == pytest.approx(0.5)

    def test_better_box_score_wins(self):
        profile = WinExpectancyProfile(
            yards_for=450,
            yards_allowed=280,
            success_rate_for=0.52,
            success_rate_allowed=0.38,
            explosive_plays_for=8,
            explosive_plays_allowed=3,
            turnovers_for=0,
            turnovers_allowed=2,
            plays=65,
        )
        result = compute_post_game_win_expectancy(profile)
        assert result.team_win_expectancy > 0.5
        assert result.team_win_expectancy + result.opponent_win_expectancy == pytest.approx(1.0)

    def test_explicit_opponent(self):
        team = WinExpectancyProfile(yards_for=300, turnovers_for=3, avg_start_field_position=20, plays=50)
        opponent = WinExpectancyProfile(yards_for=300, turnovers_for=0, avg_start_field_position=40, plays=50)
        result = compute_post_game_win_expectancy(team, opponent)
        assert result.team_win_expectancy < 0.5
        assert 0.01 <= result.team_win_expectancy <= 0.99

    def test_mirrored(self):
        profile = WinExpectancyProfile(yards_for=400, yards_allowed=250, turnovers_for=1, turnovers_allowed=3)
        mirror = profile.mirrored()
        assert mirror.yards_for == 250
        assert mirror.yards_allowed == 400
        assert mirror.turnovers_for == 3
        assert mirror.mirrored() == profile
