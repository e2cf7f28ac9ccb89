"""Defensive metrics with situational breakdowns.

Every takeaway, stop, havoc and TFL figure carries a breakdown of the same
sample by half, quarter, field zone, down and defensive call. Plays that
cannot be placed in a bucket land in ``UNKNOWN`` so each dimension sums back
to the overall sample.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from config.play_types import DRIVE_TERMINAL_RESULTS
from config.settings import get_settings
from chartstats.data.drives import derive_drive_records, drive_side, plays_by_drive
from chartstats.data.events import OPPONENT, ChartUnit, DriveRecord, FieldZone, PlayEvent
from chartstats.models.box_score import (
    RedZoneLine,
    TurnoverBuckets,
    compute_base_counts,
    compute_red_zone_metrics,
)
from chartstats.models.offense import drive_result_key
from chartstats.models.play_rules import (
    is_sack,
    is_series_conversion,
    is_tackle_for_loss,
    possessing_team_scored,
    scrimmage_plays,
)
from chartstats.utils.numeric import safe_div

logger = logging.getLogger(__name__)

UNKNOWN = "UNKNOWN"


# =============================================================================
# Situational breakdown
# =============================================================================

@dataclass(frozen=True)
class SampleRate:
    count: int = 0
    sample: int = 0
    rate: float = 0.0


def make_sample_rate(count: int, sample: int) -> SampleRate:
    return SampleRate(count=count, sample=sample, rate=safe_div(count, sample))


def merge_sample_rate(a: SampleRate, b: SampleRate) -> SampleRate:
    return make_sample_rate(a.count + b.count, a.sample + b.sample)


@dataclass(frozen=True)
class SituationalBreakdown:
    overall: SampleRate
    by_half: dict[str, SampleRate]
    by_quarter: dict[str, SampleRate]
    by_field_zone: dict[str, SampleRate]
    by_down: dict[str, SampleRate]
    by_call: dict[str, dict[str, SampleRate]]


def _half_key(ev: PlayEvent) -> str:
    if ev.quarter in (1, 2):
        return "first"
    if ev.quarter in (3, 4):
        return "second"
    return UNKNOWN


def _quarter_key(ev: PlayEvent) -> str:
    return str(ev.quarter) if ev.quarter in (1, 2, 3, 4) else UNKNOWN


def _zone_key(ev: PlayEvent) -> str:
    return ev.field_zone.value if ev.field_zone is not None else UNKNOWN


def _down_key(ev: PlayEvent) -> str:
    return str(ev.down) if ev.down in (1, 2, 3, 4) else UNKNOWN


CALL_RESOLVERS: dict[str, Callable[[PlayEvent], Optional[str]]] = {
    "front": lambda ev: ev.front_code,
    "coverage": lambda ev: ev.coverage_shell,
    "pressure": lambda ev: ev.pressure_code,
}


def _rates_by(
    domain: list[PlayEvent],
    match_ids: set[int],
    key_fn: Callable[[PlayEvent], str],
    keys: tuple[str, ...] = (),
) -> dict[str, SampleRate]:
    counts = {key: [0, 0] for key in keys}
    for ev in domain:
        bucket = counts.setdefault(key_fn(ev), [0, 0])
        bucket[1] += 1
        if id(ev) in match_ids:
            bucket[0] += 1
    return {key: make_sample_rate(count, sample) for key, (count, sample) in counts.items()}


def build_situational_breakdown(domain: list[PlayEvent], matches: list[PlayEvent]) -> SituationalBreakdown:
    """Break a matched subset of a play sample down by situation.

    Args:
        domain: Every play in the sample (the denominators)
        matches: Plays in the sample that meet the criterion (the numerators)

    Returns:
        SituationalBreakdown whose buckets in every dimension sum to the overall sample
    """
    match_ids = {id(ev) for ev in matches}
    zones = tuple(zone.value for zone in FieldZone) + (UNKNOWN,)
    return SituationalBreakdown(
        overall=make_sample_rate(len(matches), len(domain)),
        by_half=_rates_by(domain, match_ids, _half_key, ("first", "second", UNKNOWN)),
        by_quarter=_rates_by(domain, match_ids, _quarter_key, ("1", "2", "3", "4", UNKNOWN)),
        by_field_zone=_rates_by(domain, match_ids, _zone_key, zones),
        by_down=_rates_by(domain, match_ids, _down_key, ("1", "2", "3", "4", UNKNOWN)),
        by_call={
            name: _rates_by(domain, match_ids, lambda ev, r=resolver: r(ev) or UNKNOWN, (UNKNOWN,))
            for name, resolver in CALL_RESOLVERS.items()
        },
    )


def _merge_rate_maps(a: dict[str, SampleRate], b: dict[str, SampleRate]) -> dict[str, SampleRate]:
    merged = dict(a)
    for key, rate in b.items():
        merged[key] = merge_sample_rate(merged.get(key, SampleRate()), rate)
    return merged


def empty_situational() -> SituationalBreakdown:
    return build_situational_breakdown([], [])


def merge_situational(a: SituationalBreakdown, b: SituationalBreakdown) -> SituationalBreakdown:
    """Combine two breakdowns, e.g. across games of a season."""
    return SituationalBreakdown(
        overall=merge_sample_rate(a.overall, b.overall),
        by_half=_merge_rate_maps(a.by_half, b.by_half),
        by_quarter=_merge_rate_maps(a.by_quarter, b.by_quarter),
        by_field_zone=_merge_rate_maps(a.by_field_zone, b.by_field_zone),
        by_down=_merge_rate_maps(a.by_down, b.by_down),
        by_call={
            name: _merge_rate_maps(a.by_call.get(name, {}), b.by_call.get(name, {}))
            for name in set(a.by_call) | set(b.by_call)
        },
    )


# =============================================================================
# Containers
# =============================================================================

@dataclass(frozen=True)
class DefensiveTakeaways:
    total: int
    by_type: TurnoverBuckets
    situational: SituationalBreakdown


@dataclass(frozen=True)
class DefensiveStops:
    attempts: int
    stops: int
    conversions_allowed: int
    stop_rate: float
    situational: SituationalBreakdown


@dataclass(frozen=True)
class ThreeAndOuts:
    count: int = 0
    drives: int = 0
    rate: float = 0.0


@dataclass(frozen=True)
class TflMetrics:
    total: int
    sacks: int
    by_player: dict[str, dict[str, int]]
    situational: SituationalBreakdown


@dataclass(frozen=True)
class HavocComponents:
    tfl: int = 0
    sacks: int = 0
    forced_fumbles: int = 0
    interceptions: int = 0
    pass_deflections: int = 0


@dataclass(frozen=True)
class HavocMetrics:
    plays: int
    havoc_plays: int
    rate: float
    components: HavocComponents
    situational: SituationalBreakdown


@dataclass(frozen=True)
class DefensiveDrives:
    drives_faced: int = 0
    points_allowed: float = 0.0
    points_per_drive: float = 0.0
    three_and_outs: ThreeAndOuts = field(default_factory=ThreeAndOuts)


@dataclass(frozen=True)
class DefensiveMetrics:
    snaps: int
    takeaways: DefensiveTakeaways
    third_down: DefensiveStops
    fourth_down: DefensiveStops
    three_and_outs: ThreeAndOuts
    tfls: TflMetrics
    havoc: HavocMetrics
    drives: DefensiveDrives
    red_zone: RedZoneLine


# =============================================================================
# Components
# =============================================================================

def defensive_plays(events: list[PlayEvent]) -> list[PlayEvent]:
    return scrimmage_plays(events, ChartUnit.DEFENSE)


def _is_takeaway(ev: PlayEvent) -> bool:
    turnover = ev.turnover_detail
    if turnover is None or turnover.lost_by_side != OPPONENT:
        return False
    if turnover.type == "DOWNS":
        return get_settings().include_turnover_on_downs
    return turnover.type in ("INTERCEPTION", "FUMBLE", "BLOCKED_KICK")


def compute_defensive_takeaways(events: list[PlayEvent]) -> DefensiveTakeaways:
    domain = defensive_plays(events)
    takeaways = [ev for ev in domain if _is_takeaway(ev)]
    counts = {"INTERCEPTION": 0, "FUMBLE": 0, "DOWNS": 0, "BLOCKED_KICK": 0}
    for ev in takeaways:
        counts[ev.turnover_detail.type] += 1
    by_type = TurnoverBuckets(
        interceptions=counts["INTERCEPTION"],
        fumbles=counts["FUMBLE"],
        downs=counts["DOWNS"],
        blocked_kicks=counts["BLOCKED_KICK"],
    )
    return DefensiveTakeaways(
        total=len(takeaways),
        by_type=by_type,
        situational=build_situational_breakdown(domain, takeaways),
    )


def compute_defensive_stops(events: list[PlayEvent], down: int) -> DefensiveStops:
    """Stops on a given down: attempts the opponent failed to convert."""
    attempts = [ev for ev in defensive_plays(events) if ev.down == down]
    stops = [ev for ev in attempts if not is_series_conversion(ev)]
    return DefensiveStops(
        attempts=len(attempts),
        stops=len(stops),
        conversions_allowed=len(attempts) - len(stops),
        stop_rate=safe_div(len(stops), len(attempts)),
        situational=build_situational_breakdown(attempts, stops),
    )


def compute_forced_three_and_outs(drives: list[DriveRecord], events: list[PlayEvent]) -> ThreeAndOuts:
    """Opponent drives of at most three snaps ending without a conversion or a score."""
    by_drive = plays_by_drive(events)
    faced = 0
    count = 0
    for drive in drives:
        plays = by_drive.get(drive.drive_number, [])
        if drive_side(drive, plays, ChartUnit.DEFENSE) is not ChartUnit.DEFENSE:
            continue
        faced += 1
        snaps = defensive_plays(plays)
        if not snaps or len(snaps) > 3:
            continue
        if drive_result_key(drive) not in DRIVE_TERMINAL_RESULTS:
            continue
        if any(is_series_conversion(ev) or possessing_team_scored(ev) for ev in snaps):
            continue
        count += 1
    return ThreeAndOuts(count=count, drives=faced, rate=safe_div(count, faced))


def _tfl_players(ev: PlayEvent, sack: bool) -> list[str]:
    participation = ev.participation
    if participation is None:
        return []
    tacklers = list(participation.solo_tacklers) + list(participation.assisted_tacklers)
    candidates = list(participation.sackers) if sack and participation.sackers else tacklers
    return list(dict.fromkeys(candidates))


def compute_tfl_metrics(events: list[PlayEvent]) -> TflMetrics:
    domain = defensive_plays(events)
    tfls = []
    sacks = 0
    by_player: dict[str, dict[str, int]] = {}
    for ev in domain:
        if not is_tackle_for_loss(ev):
            continue
        sack = is_sack(ev)
        tfls.append(ev)
        sacks += int(sack)
        for player in _tfl_players(ev, sack):
            line = by_player.setdefault(player, {"tfl": 0, "sacks": 0})
            line["tfl"] += 1
            line["sacks"] += int(sack)
    return TflMetrics(
        total=len(tfls),
        sacks=sacks,
        by_player=by_player,
        situational=build_situational_breakdown(domain, tfls),
    )


def _is_forced_fumble(ev: PlayEvent) -> bool:
    if ev.participation is not None and ev.participation.forced_fumble:
        return True
    turnover = ev.turnover_detail
    return turnover is not None and turnover.type == "FUMBLE" and turnover.lost_by_side == OPPONENT


def _is_interception(ev: PlayEvent) -> bool:
    turnover = ev.turnover_detail
    return turnover is not None and turnover.type == "INTERCEPTION" and turnover.lost_by_side == OPPONENT


def _is_pass_deflection(ev: PlayEvent) -> bool:
    return ev.participation is not None and bool(ev.participation.pass_defenders)


def compute_havoc_metrics(events: list[PlayEvent]) -> HavocMetrics:
    """Havoc plays: TFLs, forced fumbles, interceptions and pass breakups."""
    domain = defensive_plays(events)
    havoc = []
    components = {"tfl": 0, "sacks": 0, "forced_fumbles": 0, "interceptions": 0, "pass_deflections": 0}
    for ev in domain:
        flags = {
            "tfl": is_tackle_for_loss(ev),
            "sacks": is_sack(ev),
            "forced_fumbles": _is_forced_fumble(ev),
            "interceptions": _is_interception(ev),
            "pass_deflections": _is_pass_deflection(ev),
        }
        for name, hit in flags.items():
            components[name] += int(hit)
        if flags["tfl"] or flags["forced_fumbles"] or flags["interceptions"] or flags["pass_deflections"]:
            havoc.append(ev)
    return HavocMetrics(
        plays=len(domain),
        havoc_plays=len(havoc),
        rate=safe_div(len(havoc), len(domain)),
        components=HavocComponents(**components),
        situational=build_situational_breakdown(domain, havoc),
    )


def compute_defensive_metrics(
    events: list[PlayEvent],
    drives: Optional[list[DriveRecord]] = None,
) -> DefensiveMetrics:
    """Full defensive line for one game.

    Args:
        events: Normalized plays (only defensive scrimmage snaps are used)
        drives: Drive records (derived from the defensive snaps when omitted)

    Returns:
        DefensiveMetrics
    """
    domain = defensive_plays(events)
    all_drives = drives or derive_drive_records(domain, ChartUnit.DEFENSE)
    by_drive = plays_by_drive(domain)
    defensive_drives = [
        d for d in all_drives
        if drive_side(d, by_drive.get(d.drive_number, []), ChartUnit.DEFENSE) is ChartUnit.DEFENSE
    ]
    base = compute_base_counts(domain)
    three_and_outs = compute_forced_three_and_outs(defensive_drives, domain)

    return DefensiveMetrics(
        snaps=len(domain),
        takeaways=compute_defensive_takeaways(domain),
        third_down=compute_defensive_stops(domain, 3),
        fourth_down=compute_defensive_stops(domain, 4),
        three_and_outs=three_and_outs,
        tfls=compute_tfl_metrics(domain),
        havoc=compute_havoc_metrics(domain),
        drives=DefensiveDrives(
            drives_faced=len(defensive_drives),
            points_allowed=base.points_allowed,
            points_per_drive=safe_div(base.points_allowed, len(defensive_drives)),
            three_and_outs=three_and_outs,
        ),
        red_zone=compute_red_zone_metrics(domain, defensive_drives, ChartUnit.DEFENSE).defense,
    )
