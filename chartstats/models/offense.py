"""Offensive efficiency lines: passing, rushing and possession."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from config.play_types import PASS_FAMILIES, RUSH_FAMILIES
from config.settings import get_settings
from chartstats.data.drives import derive_drive_records, drive_side, plays_by_drive
from chartstats.data.events import ChartUnit, DriveRecord, DriveResult, OtherLabel, PlayEvent
from chartstats.models.box_score import compute_base_counts
from chartstats.models.play_rules import (
    is_pass_attempt,
    is_pass_completion,
    is_sack,
    is_throwaway,
    scrimmage_plays,
)
from chartstats.utils.numeric import safe_div

logger = logging.getLogger(__name__)

TEAM_LINE_KEY = "TEAM"


@dataclass(frozen=True)
class PassingLine:
    attempts: int = 0
    completions: int = 0
    completion_pct: float = 0.0
    accuracy_pct: float = 0.0  # Completions over attempts excluding throwaways
    yards: float = 0.0
    yards_per_attempt: float = 0.0
    yards_per_completion: float = 0.0
    sacks: int = 0
    sack_yards: float = 0.0
    dropbacks: int = 0
    net_yards_per_attempt: float = 0.0


@dataclass(frozen=True)
class PassingEfficiency:
    team: PassingLine
    by_quarterback: dict[str, PassingLine]


@dataclass(frozen=True)
class RushingLine:
    attempts: int = 0
    yards: float = 0.0
    yards_per_carry: float = 0.0


@dataclass(frozen=True)
class RushingEfficiency:
    team: RushingLine
    by_rusher: dict[str, RushingLine]


@dataclass(frozen=True)
class OffensePossession:
    drives: int = 0
    time_of_possession_seconds: float = 0.0
    first_half_seconds: float = 0.0
    second_half_seconds: float = 0.0
    average_plays: float = 0.0
    average_seconds: float = 0.0
    average_yards: float = 0.0
    drive_results: dict[str, int] = field(default_factory=dict)
    points_per_possession: float = 0.0


@dataclass(frozen=True)
class DefensePossession:
    drives: int = 0
    points_per_possession: float = 0.0


@dataclass(frozen=True)
class PossessionMetrics:
    offense: OffensePossession
    defense: DefensePossession


# =============================================================================
# Passing and rushing
# =============================================================================

def build_passing_line(plays: list[PlayEvent]) -> PassingLine:
    """Passing line over pass-family plays (sacks counted separately from attempts)."""
    attempts = [ev for ev in plays if is_pass_attempt(ev)]
    sacks = [ev for ev in plays if is_sack(ev)]
    completions = sum(1 for ev in attempts if is_pass_completion(ev))
    throwaways = sum(1 for ev in attempts if is_throwaway(ev))
    yards = sum(ev.gained_yards or 0 for ev in attempts)
    sack_yards = sum(abs(ev.gained_yards or 0) for ev in sacks)
    dropbacks = len(attempts) + len(sacks)
    completion_pct = safe_div(completions, len(attempts))
    accuracy_base = max(len(attempts) - throwaways, 0)

    return PassingLine(
        attempts=len(attempts),
        completions=completions,
        completion_pct=completion_pct,
        accuracy_pct=completions / accuracy_base if accuracy_base else completion_pct,
        yards=yards,
        yards_per_attempt=safe_div(yards, len(attempts)),
        yards_per_completion=safe_div(yards, completions),
        sacks=len(sacks),
        sack_yards=sack_yards,
        dropbacks=dropbacks,
        net_yards_per_attempt=safe_div(yards - sack_yards, dropbacks),
    )


def build_rushing_line(plays: list[PlayEvent]) -> RushingLine:
    yards = sum(ev.gained_yards or 0 for ev in plays)
    return RushingLine(attempts=len(plays), yards=yards, yards_per_carry=safe_div(yards, len(plays)))


def _group_by(plays: list[PlayEvent], key_fn) -> dict[str, list[PlayEvent]]:
    grouped: dict[str, list[PlayEvent]] = {}
    for ev in plays:
        grouped.setdefault(key_fn(ev), []).append(ev)
    return grouped


def _quarterback(ev: PlayEvent) -> str:
    return (ev.participation and ev.participation.quarterback) or TEAM_LINE_KEY


def _rusher(ev: PlayEvent) -> str:
    participation = ev.participation
    if participation is None:
        return TEAM_LINE_KEY
    return participation.primary_ballcarrier or participation.quarterback or TEAM_LINE_KEY


def compute_passing_efficiency(events: list[PlayEvent], unit: Optional[ChartUnit] = None) -> PassingEfficiency:
    """Team and per-quarterback passing lines for the offense's pass-family snaps."""
    passes = [ev for ev in scrimmage_plays(events, unit) if ev.play_family in PASS_FAMILIES]
    by_quarterback = {
        qb: build_passing_line(plays) for qb, plays in _group_by(passes, _quarterback).items()
    }
    return PassingEfficiency(team=build_passing_line(passes), by_quarterback=by_quarterback)


def compute_rushing_efficiency(events: list[PlayEvent], unit: Optional[ChartUnit] = None) -> RushingEfficiency:
    """Team and per-rusher lines for the offense's run-family snaps."""
    runs = [ev for ev in scrimmage_plays(events, unit) if ev.play_family in RUSH_FAMILIES]
    by_rusher = {
        rusher: build_rushing_line(plays) for rusher, plays in _group_by(runs, _rusher).items()
    }
    return RushingEfficiency(team=build_rushing_line(runs), by_rusher=by_rusher)


# =============================================================================
# Possession
# =============================================================================

def _drive_window(drive: DriveRecord, plays: list[PlayEvent]) -> Optional[tuple[float, float]]:
    start = drive.start_time_seconds
    end = drive.end_time_seconds
    if start is None and plays:
        start = plays[0].absolute_clock_seconds
    if end is None and plays:
        end = plays[-1].absolute_clock_seconds
    if start is None or end is None:
        return None
    return start, max(start, end)


def _seconds_in_half(start: float, end: float, half: int) -> float:
    half_length = get_settings().quarter_length_seconds * 2
    half_start = 0 if half == 1 else half_length
    return max(0.0, min(end, half_start + half_length) - max(start, half_start))


def drive_result_key(drive: DriveRecord) -> str:
    """Breakdown key for a drive result; unrecognized labels count as OTHER."""
    if isinstance(drive.result, DriveResult):
        return drive.result.value
    if isinstance(drive.result, OtherLabel):
        return "OTHER"
    return DriveResult.UNKNOWN.value


def compute_possession_metrics(
    events: list[PlayEvent],
    drives: Optional[list[DriveRecord]] = None,
    unit: ChartUnit = ChartUnit.OFFENSE,
) -> PossessionMetrics:
    """Drive counts, time of possession split by half, and points per possession.

    Args:
        events: Normalized plays for one game
        drives: Drive records (derived from events when omitted)
        unit: Unit assumed for plays that carry no possession

    Returns:
        PossessionMetrics with an offense and a defense side
    """
    drives = drives or derive_drive_records(events, unit)
    by_drive = plays_by_drive(events)

    results = {result.value: 0 for result in DriveResult}
    results["OTHER"] = 0
    offense_drives = 0
    defense_drives = 0
    duration = 0.0
    first_half = 0.0
    second_half = 0.0
    offense_plays = 0
    offense_yards = 0.0

    for drive in drives:
        plays = by_drive.get(drive.drive_number, [])
        side = drive_side(drive, plays, unit)
        if side is ChartUnit.DEFENSE:
            defense_drives += 1
            continue
        if side is not ChartUnit.OFFENSE:
            continue
        offense_drives += 1
        window = _drive_window(drive, plays)
        if window is not None:
            start, end = window
            duration += end - start
            first_half += _seconds_in_half(start, end, 1)
            second_half += _seconds_in_half(start, end, 2)
        offense_plays += len(drive.play_ids) or len(plays)
        offense_yards += drive.yards
        results[drive_result_key(drive)] += 1

    base = compute_base_counts(events)
    return PossessionMetrics(
        offense=OffensePossession(
            drives=offense_drives,
            time_of_possession_seconds=duration,
            first_half_seconds=first_half,
            second_half_seconds=second_half,
            average_plays=safe_div(offense_plays, offense_drives),
            average_seconds=safe_div(duration, offense_drives),
            average_yards=safe_div(offense_yards, offense_drives),
            drive_results=results,
            points_per_possession=safe_div(base.points_for, offense_drives),
        ),
        defense=DefensePossession(
            drives=defense_drives,
            points_per_possession=safe_div(base.points_allowed, defense_drives),
        ),
    )
