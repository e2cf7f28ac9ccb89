"""Tests for the stats cache, cached stack lookups and season reports."""

import json
from unittest.mock import patch

import numpy as np
import pytest

from chartstats.data.cache import (
    StackEntry,
    StatsCache,
    event_signature,
    format_timestamp_ms,
    parse_timestamp_ms,
    stack_key,
)
from chartstats.data.drives import derive_drive_records
from chartstats.data.events import ChartUnit, FieldZone, OtherLabel
from chartstats.data.normalizer import map_chart_event_to_play_event
from chartstats.errors import ChartStatsError
from chartstats.models.box_score import compute_box_score
from chartstats.pipeline import (
    GameMeta,
    build_stacks_for_games,
    build_stats_stack,
    get_cached_stack,
    stack_signature,
)
from chartstats.utils.serialization import to_serializable


def make_play(**fields):
    return map_chart_event_to_play_event(fields, team_id="T1")


def game_events(game_id, count=3, start=1):
    return [
        make_play(id=f"{game_id}-{idx}", game_id=game_id, sequence=idx, drive_number=1, possession="OFFENSE",
                  down=1, distance=10, gained_yards=4 + idx, play_family="RUN",
                  created_at=f"2024-09-0{start}T12:00:0{idx}Z")
        for idx in range(count)
    ]


def entry(key, computed_at):
    return StackEntry(key=key, signature="sig", stack=None, last_event_at=None, computed_at=computed_at)


# =============================================================================
# Signatures and keys
# =============================================================================

class TestSignatures:
    """Event-set fingerprints."""

    def test_empty(self):
        assert event_signature([], ["ALL", "g1"]) == "0|ALL|g1"

    def test_stable(self):
        events = game_events("g1")
        assert event_signature(events, ["ALL"]) == event_signature(list(events), ["ALL"])

    def test_changes_on_append(self):
        events = game_events("g1")
        before = event_signature(events, ["ALL"])
        after = event_signature(events + [make_play(id="new", game_id="g1", gained_yards=0)], ["ALL"])
        assert before != after

    def test_extras_distinguish_units(self):
        events = game_events("g1")
        assert event_signature(events, ["OFFENSE"]) != event_signature(events, ["DEFENSE"])

    def test_stack_key(self):
        assert stack_key("g1", "OFFENSE") == "g1|OFFENSE"
        assert stack_key(None, None) == "game|ALL"

    def test_timestamps(self):
        ms = parse_timestamp_ms("2024-09-01T12:00:00Z")
        assert ms > 0
        assert format_timestamp_ms(ms) == "2024-09-01T12:00:00.000Z"
        assert parse_timestamp_ms("not a date") == 0
        assert parse_timestamp_ms(None) == 0
        assert format_timestamp_ms(0) is None


# =============================================================================
# Cache
# =============================================================================

class TestStatsCache:
    """Signature matching, eviction and maintenance."""

    @pytest.mark.parametrize("limits", [(0, 5), (5, 0), (-1, -1)])
    def test_non_positive_limits(self, limits):
        with pytest.raises(ChartStatsError):
            StatsCache(stack_limit=limits[0], season_limit=limits[1])

    def test_hit_returns_stored_entry(self):
        cache = StatsCache(stack_limit=5, season_limit=5)
        first = cache.get_stack("g1|ALL", "sig", lambda: entry("g1|ALL", 1.0))
        second = cache.get_stack("g1|ALL", "sig", lambda: entry("g1|ALL", 2.0))
        assert second is first
        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(0.5)

    def test_signature_change_recomputes(self):
        cache = StatsCache(stack_limit=5, season_limit=5)
        cache.get_stack("g1|ALL", "old", lambda: StackEntry("g1|ALL", "old", None, None, 1.0))
        fresh = cache.get_stack("g1|ALL", "new", lambda: StackEntry("g1|ALL", "new", None, None, 2.0))
        assert fresh.signature == "new"
        assert cache.get_stats()["stack_size"] == 1

    def test_evicts_oldest(self):
        cache = StatsCache(stack_limit=2, season_limit=1)
        cache.get_stack("a", "sig", lambda: entry("a", 1.0))
        cache.get_stack("b", "sig", lambda: entry("b", 2.0))
        cache.get_stack("c", "sig", lambda: entry("c", 3.0))
        assert "a" not in cache
        assert "b" in cache
        assert "c" in cache
        assert cache.get_stats()["evictions"] == 1

    def test_clear(self):
        cache = StatsCache(stack_limit=5, season_limit=5)
        cache.get_stack("a", "sig", lambda: entry("a", 1.0))
        before = cache.clear()
        assert before["stack_size"] == 1
        assert "a" not in cache
        assert cache.get_stats() == {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "stack_size": 0,
            "season_size": 0,
            "hit_rate": 0.0,
        }


# =============================================================================
# Cached stacks
# =============================================================================

class TestCachedStack:
    """Stacks are rebuilt only when the game's events change."""

    def test_unchanged_events_reuse_stack(self):
        cache = StatsCache()
        events = game_events("g1")
        with patch("chartstats.pipeline.build_stats_stack", wraps=build_stats_stack) as spy:
            first = get_cached_stack(cache, events, game_id="g1")
            second = get_cached_stack(cache, events, game_id="g1")
            assert spy.call_count == 1
        assert second is first
        assert first.key == "g1|ALL"
        assert first.last_event_at == "2024-09-01T12:00:02.000Z"

    def test_new_event_rebuilds(self):
        cache = StatsCache()
        events = game_events("g1")
        with patch("chartstats.pipeline.build_stats_stack", wraps=build_stats_stack) as spy:
            get_cached_stack(cache, events, game_id="g1")
            updated = get_cached_stack(cache, events + game_events("g1x", count=1), game_id="g1")
            assert spy.call_count == 2
        assert updated.stack.base.plays == 4

    def test_opponent_context_changes_signature(self):
        cache = StatsCache()
        events = game_events("g1")
        opponent_events = [
            make_play(id=f"o{idx}", game_id="g1", possession="OFFENSE", down=1, distance=10, gained_yards=30,
                      play_family="PASS")
            for idx in range(3)
        ]
        opponent_box = compute_box_score(opponent_events)

        plain = get_cached_stack(cache, events, game_id="g1")
        with_opponent = get_cached_stack(cache, events, game_id="g1", opponent_box=opponent_box)
        fresh = build_stats_stack(events, game_id="g1", opponent_box=opponent_box)

        assert with_opponent is not plain
        assert with_opponent.signature != plain.signature
        assert with_opponent.stack == fresh
        assert with_opponent.stack.core.explosive_margin == -3

        again = get_cached_stack(cache, events, game_id="g1", opponent_box=opponent_box)
        assert again is with_opponent

    def test_signature_tracks_opponent_plays_and_drives(self):
        events = game_events("g1")
        opponent_events = game_events("g1opp", count=2)
        base = stack_signature(events, "ALL", "g1")
        assert base == event_signature(events, ["ALL", "g1"])
        assert stack_signature(events, "ALL", "g1", opponent_events=opponent_events) != base
        assert stack_signature(events, "ALL", "g1", drives=derive_drive_records(events)) != base
        assert stack_signature(events, "ALL", "g1", opponent_events=opponent_events) != stack_signature(
            events, "ALL", "g1", opponent_events=opponent_events[:1]
        )

    def test_units_cached_separately(self):
        cache = StatsCache()
        events = game_events("g1")
        offense = get_cached_stack(cache, events, unit=ChartUnit.OFFENSE, game_id="g1")
        defense = get_cached_stack(cache, events, unit=ChartUnit.DEFENSE, game_id="g1")
        assert offense.key == "g1|OFFENSE"
        assert defense.key == "g1|DEFENSE"
        assert offense.stack.base.plays == 3
        assert defense.stack.base.plays == 0


# =============================================================================
# Season report
# =============================================================================

class TestSeasonReport:
    """Per-game stacks rolled into a season aggregate and projection."""

    def games(self):
        return [GameMeta(id="g1", opponent_name="Rival"), GameMeta(id="g2"), GameMeta(id="g3")]

    def events(self):
        # g3 has not been charted yet
        return game_events("g1") + game_events("g2", count=2, start=8)

    def test_without_cache(self):
        report = build_stacks_for_games(self.events(), self.games())
        assert [s.game_id for s in report.stacks] == ["g1", "g2", "g3"]
        assert report.stacks[0].opponent_name == "Rival"
        assert report.stacks[2].stack.base.plays == 0
        assert report.aggregate.games == 2
        assert report.projection.games_modeled == 2
        assert report.projection.insufficient_data is False

    def test_no_charted_games(self):
        report = build_stacks_for_games([], self.games())
        assert report.aggregate.games == 0
        assert report.projection.insufficient_data is True

    def test_cached_report_matches_uncached(self):
        uncached = build_stacks_for_games(self.events(), self.games())
        cached = build_stacks_for_games(self.events(), self.games(), cache=StatsCache(), team_key="T1")
        assert cached.aggregate == uncached.aggregate
        assert cached.projection == uncached.projection
        assert [s.signature for s in cached.stacks] == [s.signature for s in uncached.stacks]

    def test_second_build_hits_cache(self):
        cache = StatsCache()
        build_stacks_for_games(self.events(), self.games(), cache=cache, team_key="T1")
        with patch("chartstats.pipeline.build_stats_stack", wraps=build_stats_stack) as spy:
            build_stacks_for_games(self.events(), self.games(), cache=cache, team_key="T1")
            assert spy.call_count == 0
        stats = cache.get_stats()
        # Three stacks and one season on each pass
        assert stats["misses"] == 4
        assert stats["hits"] == 4
        assert stats["season_size"] == 1

    def test_report_serializes(self):
        report = build_stacks_for_games(self.events(), self.games())
        payload = to_serializable(report)
        text = json.dumps(payload)
        assert '"g1"' in text
        assert payload["aggregate"]["games"] == 2


class TestSerialization:
    """JSON-safe conversion of engine output."""

    def test_values(self):
        payload = to_serializable(
            {
                "zone": FieldZone.RED_ZONE,
                "label": OtherLabel("Scout Team"),
                "count": np.int64(3),
                "rate": np.float64(0.25),
                "missing": float("nan"),
                "flags": (np.bool_(True), False),
            }
        )
        assert payload == {
            "zone": "RED_ZONE",
            "label": "Scout Team",
            "count": 3,
            "rate": 0.25,
            "missing": None,
            "flags": [True, False],
        }
