"""Tests for the situational tendency lens."""

import pandas as pd
import pytest

from chartstats.data.events import ChartUnit
from chartstats.data.normalizer import map_chart_event_to_play_event
from chartstats.tendencies.lens import (
    EMPTY_SUMMARY,
    TOP_OPTIONS,
    build_numeric_summary,
    build_tendency_lens,
    pretty_label,
    rank_options,
)


def make_play(**fields):
    return map_chart_event_to_play_event(fields, team_id="T1")


def offense_history():
    """Most recent first. Every snap but the last is 1st and 10."""
    return [
        make_play(id="e0", down=1, distance=10, gained_yards=7, play_family="RUN", run_concept="POWER",
                  drive_number=4, field_position=30),
        make_play(id="e1", down=1, distance=10, gained_yards=2, play_family="RUN", run_concept="INSIDE_ZONE"),
        make_play(id="e2", down=1, distance=10, gained_yards=20, play_family="PASS", wr_concept_id="MESH"),
        make_play(id="e3", down=1, distance=10, gained_yards=5, play_family="RUN", run_concept="INSIDE_ZONE"),
        make_play(id="e4", down=1, distance=10, gained_yards=6, play_family="PASS", wr_concept_id="MESH"),
        make_play(id="e5", down=3, distance=2, gained_yards=30, play_family="PASS", wr_concept_id="FADE"),
    ]


def defense_history():
    return [
        make_play(id="d0", possession="DEFENSE", down=3, distance=8, gained_yards=20, play_family="PASS",
                  coverage_shell_post="cover_3", pressure_code="SIM", front_code="OKIE"),
        make_play(id="d1", possession="DEFENSE", down=3, distance=8, gained_yards=2, play_family="PASS",
                  coverage_shell_post="cover_3", front_code="OKIE"),
        make_play(id="d2", possession="DEFENSE", down=3, distance=8, gained_yards=3, play_family="PASS",
                  coverage_shell_post="cover_1", pressure_code="BLITZ"),
    ]


# =============================================================================
# Ranking
# =============================================================================

class TestRankOptions:
    """Ordering of grouped options."""

    def stats(self, rows):
        return pd.DataFrame(rows, columns=["label", "sample", "success", "explosive", "average_yards"])

    def test_zero_samples_excluded(self):
        options = rank_options(self.stats([("A", 0, 1.0, 0.0, 0.0), ("B", 3, 0.5, 0.0, 4.0)]))
        assert [opt.label for opt in options] == ["B"]

    def test_success_tie_goes_to_larger_sample(self):
        options = rank_options(self.stats([("A", 2, 0.5, 0.0, 3.0), ("B", 6, 0.5, 0.0, 5.0), ("C", 4, 0.8, 0.0, 6.0)]))
        assert [opt.label for opt in options] == ["C", "B", "A"]

    def test_full_tie_keeps_first_seen_order(self):
        options = rank_options(self.stats([("A", 2, 0.5, 0.0, 3.0), ("B", 2, 0.5, 0.0, 5.0)]))
        assert [opt.label for opt in options] == ["A", "B"]

    def test_note(self):
        options = rank_options(self.stats([("A", 2, 0.5, 0.0, 3.25)]))
        assert options[0].note == "YPP 3.2"

    @pytest.mark.parametrize(
        "raw,pretty",
        [("INSIDE_ZONE", "INSIDE ZONE"), ("cover_3", "Cover 3"), ("open_field", "Open Field"), ("PASS", "PASS")],
    )
    def test_pretty_label(self, raw, pretty):
        assert pretty_label(raw) == pretty


# =============================================================================
# Lens
# =============================================================================

class TestTendencyLens:
    """Summaries and top options per unit."""

    def test_no_events(self):
        lens = build_tendency_lens([], ChartUnit.OFFENSE)
        assert lens.summary == EMPTY_SUMMARY
        assert lens.options == []

    def test_offense(self):
        lens = build_tendency_lens(offense_history(), ChartUnit.OFFENSE)
        assert lens.summary == (
            "On long 1st in Drive 4, PASS leads: 100% success, 50% explosive. "
            "In Open Field, lean on MESH."
        )
        assert [opt.label for opt in lens.options] == ["MESH", "POWER", "INSIDE_ZONE"]
        assert lens.options[0].sample == 2
        assert lens.options[2].success == pytest.approx(0.5)

    def test_only_current_situation_counts(self):
        lens = build_tendency_lens(offense_history(), ChartUnit.OFFENSE)
        assert "FADE" not in {opt.label for opt in lens.options}
        assert sum(opt.sample for opt in lens.options) == 5

    def test_offense_options_capped(self):
        events = [
            make_play(id=f"c{idx}", down=2, distance=5, gained_yards=idx, play_family="RUN", run_concept=f"C{idx}")
            for idx in range(6)
        ]
        assert len(build_tendency_lens(events, ChartUnit.OFFENSE).options) == TOP_OPTIONS

    def test_defense(self):
        lens = build_tendency_lens(defense_history(), ChartUnit.DEFENSE)
        assert [opt.label for opt in lens.options] == ["cover_3", "cover_1", "SIM"]
        assert "Cover 3 is allowing 50% explosive" in lens.summary
        assert "Consider dialing SIM" in lens.summary

    def test_defense_summary_names_field_zone(self):
        lens = build_tendency_lens(defense_history(), ChartUnit.DEFENSE)
        assert lens.summary.endswith("if they stay ahead of the sticks in the open field.")

        events = [make_play(id="rz", possession="DEFENSE", down=3, distance=8, gained_yards=4, play_family="PASS",
                            coverage_shell_post="cover_2", field_position=92)] + defense_history()
        assert "in the Red Zone." in build_tendency_lens(events, ChartUnit.DEFENSE).summary

    def test_untracked_gains_left_out_of_success_rate(self):
        events = [make_play(id="z0", down=2, distance=8, gained_yards=9, play_family="RUN", run_concept="ZONE")] + [
            make_play(id=f"z{idx}", down=2, distance=8, gained_yards=None, play_family="RUN", run_concept="ZONE")
            for idx in range(1, 4)
        ]
        lens = build_tendency_lens(events, ChartUnit.OFFENSE)
        assert lens.options[0].label == "ZONE"
        assert lens.options[0].sample == 4
        assert lens.options[0].success == pytest.approx(1.0)

    def test_no_eligible_plays_means_zero_success(self):
        events = [
            make_play(id=f"n{idx}", down=2, distance=8, gained_yards=None, play_family="RUN", run_concept="ZONE")
            for idx in range(2)
        ]
        assert build_tendency_lens(events, ChartUnit.OFFENSE).options[0].success == 0.0

    def test_special_teams(self):
        events = [
            make_play(id="s0", st_play_type="KICKOFF", gained_yards=10),
            make_play(id="s1", st_play_type="PUNT", gained_yards=40),
            make_play(id="s2", st_play_type="PUNT", gained_yards=38),
        ]
        lens = build_tendency_lens(events, ChartUnit.SPECIAL_TEAMS)
        assert [opt.label for opt in lens.options] == ["PUNT", "KICKOFF"]
        assert lens.summary.startswith("PUNT showing 0% success with 100% explosive")


# =============================================================================
# Numeric summary
# =============================================================================

class TestNumericSummary:
    """Flat per-key numbers for a unit."""

    def test_offense_by_family(self):
        summary = build_numeric_summary(ChartUnit.OFFENSE, offense_history())
        assert set(summary) == {"RUN", "PASS"}
        assert summary["PASS"].plays == 3
        assert summary["RUN"].ypp == pytest.approx(14 / 3)
        assert summary["RUN"].success == pytest.approx(2 / 3)

    def test_defense_by_coverage_and_front(self):
        summary = build_numeric_summary(ChartUnit.DEFENSE, defense_history())
        assert set(summary) == {"cover_3", "cover_1", "OKIE", "Front"}
        assert summary["OKIE"].plays == 2
        assert summary["cover_3"].explosive == pytest.approx(0.5)

    def test_empty(self):
        assert build_numeric_summary(ChartUnit.SPECIAL_TEAMS, []) == {}
