"""Tests for box score, drives, offense and core winning metrics."""

import pytest

from chartstats.data.drives import classify_drive_result, derive_drive_records
from chartstats.data.events import ChartUnit, DriveResult, PlayEvent
from chartstats.data.normalizer import map_chart_event_to_play_event
from chartstats.models.box_score import (
    compute_base_counts,
    compute_box_score,
    compute_explosive_metrics,
    compute_red_zone_metrics,
    compute_scoring_summary,
    compute_turnover_summary,
)
from chartstats.models.core_metrics import compute_core_winning_metrics, estimate_points_per_drive
from chartstats.models.offense import (
    compute_passing_efficiency,
    compute_possession_metrics,
    compute_rushing_efficiency,
)


def make_play(**fields):
    return map_chart_event_to_play_event(fields, team_id="T1")


def three_play_drive():
    """1st&10 run for 6, 2nd&4 run for 5 (first down), 1st&10 pass for 22."""
    return [
        make_play(id="p1", down=1, distance=10, gained_yards=6, play_family="RUN", drive_number=1, possession="OFFENSE"),
        make_play(id="p2", down=2, distance=4, gained_yards=5, play_family="RUN", first_down=True,
                  drive_number=1, possession="OFFENSE"),
        make_play(id="p3", down=1, distance=10, gained_yards=22, play_family="PASS", drive_number=1,
                  possession="OFFENSE"),
    ]


# =============================================================================
# Box score
# =============================================================================

class TestBoxScore:
    """Descriptive box score for one side of one game."""

    def test_three_play_scenario(self):
        box = compute_box_score(three_play_drive())
        assert box.plays == 3
        assert box.total_yards == 33
        assert box.explosives == 1
        assert box.yards_per_play == pytest.approx(11.0)
        assert box.success_rate == pytest.approx(1.0)
        assert box.late_down.attempts == 0
        assert box.late_down.rate == 0.0

    def test_empty_events_are_zero_not_nan(self):
        box = compute_box_score([])
        assert box.plays == 0
        assert box.yards_per_play == 0.0
        assert box.success_rate == 0.0
        assert box.explosive_rate == 0.0
        assert box.average_start is None
        assert box.average_depth is None
        assert box.third_down.rate == 0.0

    def test_deterministic(self):
        events = three_play_drive()
        assert compute_box_score(events) == compute_box_score(events)

    def test_third_down_conversions(self):
        events = [
            make_play(id="a", down=3, distance=5, gained_yards=6, play_family="RUN"),
            make_play(id="b", down=3, distance=5, gained_yards=2, play_family="RUN"),
            make_play(id="c", down=4, distance=1, gained_yards=0, play_family="RUN"),
        ]
        box = compute_box_score(events)
        assert box.third_down.attempts == 2
        assert box.third_down.conversions == 1
        assert box.third_down.rate == pytest.approx(0.5)
        assert box.fourth_down.attempts == 1
        assert box.late_down.attempts == 3
        assert box.late_down.conversions == 1

    def test_defense_scope(self):
        events = three_play_drive() + [
            make_play(id="d1", down=1, distance=10, gained_yards=3, play_family="RUN", possession="DEFENSE"),
        ]
        box = compute_box_score(events, ChartUnit.DEFENSE)
        assert box.plays == 1
        assert box.total_yards == 3

    def test_base_counts(self):
        events = three_play_drive() + [
            make_play(id="x", result="Touchdown", possession="OFFENSE", drive_number=2, gained_yards=4),
            make_play(
                id="y",
                drive_number=2,
                penalties=[{"yards": 10}, {"yards": 5, "occurred": False}],
            ),
        ]
        base = compute_base_counts(events)
        assert base.plays == 5
        assert base.drives == 2
        assert base.scoring_plays == 1
        assert base.points_for == 6.0
        assert base.penalties.count == 1
        assert base.penalties.yards == 10.0
        assert base.first_downs == 1

    def test_drives_default_to_one_without_numbers(self):
        assert compute_base_counts([make_play(id="a")]).drives == 1
        assert compute_base_counts([]).drives == 0


# =============================================================================
# Turnovers, explosives, scoring, red zone
# =============================================================================

class TestTurnoversAndScoring:
    """Turnover margin, explosive breakdown, scoring and red zone."""

    def test_turnover_margin(self):
        events = [
            make_play(id="int", result="intercepted", possession="OFFENSE", play_family="PASS"),
            make_play(id="ff", result="fumble recovered", possession="DEFENSE", play_family="RUN"),
        ]
        summary = compute_turnover_summary(compute_base_counts(events))
        assert summary.giveaways == 1
        assert summary.takeaways == 1
        assert summary.margin == 0
        assert summary.giveaways_by_type.interceptions == 1
        assert summary.takeaways_by_type.fumbles == 1

    def test_explosive_breakdown(self):
        events = three_play_drive() + [
            make_play(id="d", down=1, distance=10, gained_yards=45, play_family="RUN", possession="DEFENSE"),
        ]
        metrics = compute_explosive_metrics(events)
        assert metrics.offense.plays == 3
        assert metrics.offense.explosives == 1
        assert metrics.offense.pass_.explosives == 1
        assert metrics.offense.run.explosives == 0
        assert metrics.defense.explosives == 1
        assert metrics.defense.rate == pytest.approx(1.0)

    def test_non_offensive_touchdowns(self):
        events = [
            make_play(id="o", result="Touchdown", possession="OFFENSE"),
            make_play(id="pick6", possession="DEFENSE", scoring_points=6, scoring_type="TD", result="interception"),
            make_play(id="opp", result="Touchdown", possession="DEFENSE"),
        ]
        summary = compute_scoring_summary(compute_base_counts(events))
        assert summary.points_for == 12.0
        assert summary.points_allowed == 6.0
        assert summary.point_differential == 6.0
        assert summary.non_offensive.defense == 1
        assert summary.non_offensive.total == 1
        assert summary.non_offensive.rate == pytest.approx(0.5)

    def test_red_zone_trips(self):
        events = [
            make_play(id="a", drive_number=1, field_position=85, down=1, distance=10, gained_yards=7, possession="OFFENSE"),
            make_play(id="b", drive_number=1, field_position=92, gained_yards=8, result="Touchdown", possession="OFFENSE"),
            make_play(id="c", drive_number=2, field_position=95, result="fumble", possession="OFFENSE"),
            make_play(id="d", drive_number=3, field_position=40, gained_yards=3, possession="OFFENSE"),
        ]
        red_zone = compute_red_zone_metrics(events)
        assert red_zone.offense.trips == 2
        assert red_zone.offense.touchdowns == 1
        assert red_zone.offense.empty == 1
        assert red_zone.offense.scoring_pct == pytest.approx(0.5)
        assert red_zone.defense.trips == 0


# =============================================================================
# Drives
# =============================================================================

class TestDrives:
    """Drive grouping and result classification."""

    @pytest.mark.parametrize(
        "row,expected",
        [
            ({"result": "Touchdown"}, DriveResult.TD),
            ({"scoring_points": 3, "scoring_type": "FG"}, DriveResult.FG),
            ({"result": "Punt"}, DriveResult.PUNT),
            ({"result": "intercepted"}, DriveResult.TURNOVER),
            ({"result": "turnover on downs"}, DriveResult.DOWNS),
            ({"is_half_end": True}, DriveResult.END_HALF),
            ({"is_game_end": True}, DriveResult.END_GAME),
            ({"result": "gain of 4"}, DriveResult.UNKNOWN),
        ],
    )
    def test_classify_drive_result(self, row, expected):
        assert classify_drive_result(make_play(**row)) is expected

    def test_missed_field_goal(self):
        assert classify_drive_result(PlayEvent(result="missed fg")) is DriveResult.MISS_FG

    def test_derive_drive_records(self):
        events = [
            make_play(id="b", drive_number=1, quarter=1, clock_seconds=840, field_position=30, gained_yards=5),
            make_play(id="a", drive_number=1, quarter=1, clock_seconds=900, field_position=25, gained_yards=5),
            make_play(id="c", drive_number=2, quarter=1, clock_seconds=600, field_position=60, result="Punt"),
        ]
        drives = derive_drive_records(events)
        assert [d.drive_number for d in drives] == [1, 2]
        first = drives[0]
        assert first.play_ids == ["a", "b"]
        assert first.start_field_position == 25
        assert first.end_field_position == 30
        assert first.yards == 10
        assert first.unit is ChartUnit.OFFENSE
        assert drives[1].result is DriveResult.PUNT

    def test_empty_events_have_no_drives(self):
        assert derive_drive_records([]) == []

    def test_possession_metrics(self):
        events = [
            make_play(id="a", drive_number=1, quarter=1, clock_seconds=900, possession="OFFENSE", gained_yards=10),
            make_play(id="b", drive_number=1, quarter=1, clock_seconds=840, possession="OFFENSE",
                      gained_yards=15, result="Touchdown", is_drive_end=True),
            make_play(id="c", drive_number=2, quarter=1, clock_seconds=700, possession="DEFENSE", gained_yards=4),
        ]
        metrics = compute_possession_metrics(events)
        assert metrics.offense.drives == 1
        assert metrics.offense.time_of_possession_seconds == pytest.approx(60)
        assert metrics.offense.first_half_seconds == pytest.approx(60)
        assert metrics.offense.drive_results["TD"] == 1
        assert metrics.offense.points_per_possession == pytest.approx(6.0)
        assert metrics.defense.drives == 1


# =============================================================================
# Passing and rushing
# =============================================================================

class TestOffenseLines:
    """Passing and rushing lines."""

    def test_passing_line_separates_sacks(self):
        events = [
            make_play(id="c", play_family="PASS", pass_result="COMPLETE", gained_yards=20,
                      participation={"quarterback": "QB1"}),
            make_play(id="i", play_family="PASS", pass_result="INCOMPLETE", gained_yards=0,
                      participation={"quarterback": "QB1"}),
            make_play(id="s", play_family="PASS", result="Sack", gained_yards=-7,
                      participation={"quarterback": "QB2"}),
        ]
        passing = compute_passing_efficiency(events)
        assert passing.team.attempts == 2
        assert passing.team.completions == 1
        assert passing.team.sacks == 1
        assert passing.team.sack_yards == 7
        assert passing.team.dropbacks == 3
        assert passing.team.net_yards_per_attempt == pytest.approx(13 / 3)
        assert passing.by_quarterback["QB1"].completion_pct == pytest.approx(0.5)
        assert passing.by_quarterback["QB2"].attempts == 0

    def test_rushing_by_rusher(self):
        events = [
            make_play(id="r1", play_family="RUN", gained_yards=4, participation={"primary_ballcarrier": "RB1"}),
            make_play(id="r2", play_family="RUN", gained_yards=8, participation={"primary_ballcarrier": "RB1"}),
            make_play(id="r3", play_family="RUN", gained_yards=3),
        ]
        rushing = compute_rushing_efficiency(events)
        assert rushing.team.attempts == 3
        assert rushing.by_rusher["RB1"].yards_per_carry == pytest.approx(6.0)
        assert rushing.by_rusher["TEAM"].yards == 3


# =============================================================================
# Core winning metrics
# =============================================================================

class TestCoreMetrics:
    """Margins between team and opponent box scores."""

    def test_points_per_drive_estimate(self):
        events = [
            make_play(id="a", down=3, distance=5, gained_yards=6, play_family="RUN"),
            make_play(id="b", down=3, distance=5, gained_yards=2, play_family="RUN"),
            make_play(id="c", down=1, distance=10, gained_yards=30, play_family="PASS", result="Touchdown"),
        ]
        box = compute_box_score(events)
        # (1 score * 7 + 1 net conversion * 3) / 2 late-down attempts
        assert estimate_points_per_drive(box) == pytest.approx(5.0)

    def test_points_per_drive_without_late_downs(self):
        assert estimate_points_per_drive(compute_box_score(three_play_drive())) == 0.0

    def test_margins_against_opponent(self):
        team = compute_box_score(three_play_drive())
        opponent = compute_box_score([
            make_play(id="o1", down=1, distance=10, gained_yards=2, play_family="RUN"),
            make_play(id="o2", down=2, distance=8, gained_yards=0, play_family="PASS", result="intercepted"),
        ])
        core = compute_core_winning_metrics(team, opponent)
        assert core.explosive_margin == 1
        assert core.turnover_margin == 1
        assert core.success_margin == pytest.approx(1.0)

    def test_without_opponent(self):
        core = compute_core_winning_metrics(compute_box_score(three_play_drive()))
        assert core.turnover_margin == 0
        assert core.explosive_margin == 1
        assert core.red_zone_efficiency == 0.0
