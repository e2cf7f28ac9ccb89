"""Special teams metrics: field position, returns, kicking and coverage.

Kicking plays are recognized from the charted special teams play type (then
the play call, then the result text). Yard lines follow the engine-wide
convention of 0 at the kicking team's own goal line.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from config.play_types import FIELD_GOAL_BANDS, FIELD_GOAL_LONG_BAND, KICK_DISTANCE_OFFSET
from chartstats.data.drives import derive_drive_records
from chartstats.data.events import OPPONENT, ChartUnit, DriveRecord, PlayEvent
from chartstats.models.play_rules import is_touchdown
from chartstats.utils.numeric import clamp, mean_or_none, safe_div

logger = logging.getLogger(__name__)

DEFAULT_KICK_LINE = 35  # Where a kick is assumed to be snapped from when the spot is missing
KICKOFF_TOUCHBACK_START = 25
PUNT_TOUCHBACK_END_LINE = 75
PUNT_TOUCHBACK_NET_PENALTY = 20

_MADE_KICK = re.compile(r"good|made", re.IGNORECASE)


# =============================================================================
# Containers
# =============================================================================

@dataclass(frozen=True)
class FieldPositionMetrics:
    offense_start: Optional[float] = None
    defense_start: Optional[float] = None
    net_start: Optional[float] = None


@dataclass(frozen=True)
class ReturnLine:
    returns: int = 0
    yards: float = 0.0
    average: float = 0.0
    longest: float = 0.0
    touchdowns: int = 0


@dataclass(frozen=True)
class ReturnMetrics:
    team: ReturnLine
    by_returner: dict[str, ReturnLine]


@dataclass(frozen=True)
class KickSplit:
    attempts: int = 0
    made: int = 0
    pct: float = 0.0


@dataclass(frozen=True)
class FieldGoalSplits:
    overall: KickSplit
    bands: dict[str, KickSplit]
    extra_point: KickSplit
    longest_made: float = 0.0


@dataclass(frozen=True)
class FieldGoalMetrics:
    team: FieldGoalSplits
    by_kicker: dict[str, FieldGoalSplits]


@dataclass(frozen=True)
class PuntingLine:
    punts: int = 0
    yards: float = 0.0
    gross: float = 0.0
    touchbacks: int = 0
    inside_20: int = 0
    net: float = 0.0
    longest: float = 0.0
    opponent_average_start: Optional[float] = None


@dataclass(frozen=True)
class PuntingMetrics:
    team: PuntingLine
    by_punter: dict[str, PuntingLine]


@dataclass(frozen=True)
class KickoffMetrics:
    kicks: int = 0
    touchbacks: int = 0
    touchback_pct: float = 0.0
    opponent_average_start: Optional[float] = None
    longest_return_allowed: float = 0.0


@dataclass(frozen=True)
class CoverageLine:
    attempts: int = 0
    yards: float = 0.0
    average: float = 0.0
    longest: float = 0.0
    touchdowns_allowed: int = 0


@dataclass(frozen=True)
class CoverageMetrics:
    kickoff: CoverageLine
    punt: CoverageLine


@dataclass(frozen=True)
class SpecialTeamsMetrics:
    field_position: FieldPositionMetrics
    kickoff_returns: ReturnMetrics
    punt_returns: ReturnMetrics
    coverage: CoverageMetrics
    field_goals: FieldGoalMetrics
    punting: PuntingMetrics
    kickoff: KickoffMetrics


# =============================================================================
# Play recognition
# =============================================================================

def _code(ev: PlayEvent) -> str:
    return (ev.st_play_type or ev.play_call or ev.result or "").upper()


def team_possesses_special_teams(ev: PlayEvent) -> bool:
    if ev.possession_team_id and ev.team_id:
        return ev.possession_team_id == ev.team_id
    return ev.possession is not ChartUnit.DEFENSE


def is_kickoff_play(ev: PlayEvent) -> bool:
    code = _code(ev)
    return ev.play_family == "SPECIAL_TEAMS" and ("KICKOFF" in code or "KO" in code or "KICK OFF" in code)


def is_punt_play(ev: PlayEvent) -> bool:
    return ev.play_family == "SPECIAL_TEAMS" and "PUNT" in _code(ev)


def is_field_goal_attempt(ev: PlayEvent) -> bool:
    if ev.scoring is not None and ev.scoring.type == "FG":
        return True
    code = _code(ev)
    return ev.play_family == "SPECIAL_TEAMS" and ("FG" in code or "FIELD GOAL" in code)


def is_extra_point_attempt(ev: PlayEvent) -> bool:
    if ev.scoring is not None and ev.scoring.type == "PAT":
        return True
    code = _code(ev)
    return ev.play_family == "SPECIAL_TEAMS" and ("PAT" in code or "XP" in code or "EXTRA POINT" in code)


def is_touchback(ev: PlayEvent) -> bool:
    return "TOUCHBACK" in (ev.st_variant or ev.result or "").upper()


def is_return_play(ev: PlayEvent) -> bool:
    if ev.st_return_yards is not None:
        return True
    return "RETURN" in (ev.st_play_type or ev.result or "").upper()


def estimate_kick_distance(ev: PlayEvent) -> Optional[float]:
    """Kick distance: yards to the goal line plus the snap-and-hold offset."""
    if ev.field_position is None:
        return None
    return clamp(100 - ev.field_position + KICK_DISTANCE_OFFSET, 0, 100)


def field_goal_band(distance: Optional[float]) -> Optional[str]:
    if distance is None:
        return None
    for upper, label in FIELD_GOAL_BANDS:
        if distance < upper:
            return label
    return FIELD_GOAL_LONG_BAND


# =============================================================================
# Components
# =============================================================================

def compute_field_position(
    drives: list[DriveRecord],
    opponent_drives: Optional[list[DriveRecord]] = None,
) -> FieldPositionMetrics:
    """Average drive starts for our offense and for the offense we faced."""
    offense_starts = [d.start_field_position for d in drives if d.unit is ChartUnit.OFFENSE]
    if opponent_drives:
        defense_starts = [d.start_field_position for d in opponent_drives if d.unit is ChartUnit.OFFENSE]
    else:
        defense_starts = [d.start_field_position for d in drives if d.unit is ChartUnit.DEFENSE]
    offense_avg = mean_or_none(offense_starts)
    defense_avg = mean_or_none(defense_starts)
    net = offense_avg - defense_avg if offense_avg is not None and defense_avg is not None else None
    return FieldPositionMetrics(offense_start=offense_avg, defense_start=defense_avg, net_start=net)


def _returner(ev: PlayEvent) -> str:
    participation = ev.participation
    if participation is None:
        return "TEAM"
    return participation.returner or participation.primary_ballcarrier or "TEAM"


def compute_return_metrics(events: list[PlayEvent], predicate: Callable[[PlayEvent], bool]) -> ReturnMetrics:
    """Return lines for plays matching predicate, team-wide and by returner."""
    totals: dict[str, dict] = {}
    team = {"returns": 0, "yards": 0.0, "longest": 0.0, "touchdowns": 0}
    for ev in events:
        if not predicate(ev):
            continue
        yards = ev.st_return_yards if ev.st_return_yards is not None else ev.gained_yards
        if yards is None:
            continue
        touchdown = is_touchdown(ev.scoring)
        line = totals.setdefault(_returner(ev), {"returns": 0, "yards": 0.0, "longest": 0.0, "touchdowns": 0})
        for bucket in (team, line):
            bucket["returns"] += 1
            bucket["yards"] += yards
            bucket["touchdowns"] += int(touchdown)
            bucket["longest"] = max(bucket["longest"], yards)

    def finalize(bucket: dict) -> ReturnLine:
        return ReturnLine(**bucket, average=safe_div(bucket["yards"], bucket["returns"]))

    return ReturnMetrics(
        team=finalize(team),
        by_returner={name: finalize(bucket) for name, bucket in totals.items()},
    )


class _KickTally:
    """Mutable field goal counters finalized into FieldGoalSplits."""

    def __init__(self):
        self.overall = [0, 0]
        self.bands = {label: [0, 0] for _, label in FIELD_GOAL_BANDS}
        self.bands[FIELD_GOAL_LONG_BAND] = [0, 0]
        self.extra_point = [0, 0]
        self.longest_made = 0.0

    def add_field_goal(self, made: bool, distance: Optional[float]) -> None:
        band = field_goal_band(distance)
        self.overall[0] += 1
        self.overall[1] += int(made)
        if band is not None:
            self.bands[band][0] += 1
            self.bands[band][1] += int(made)
        if made and distance is not None:
            self.longest_made = max(self.longest_made, distance)

    def add_extra_point(self, made: bool) -> None:
        self.extra_point[0] += 1
        self.extra_point[1] += int(made)

    def finalize(self) -> FieldGoalSplits:
        def split(pair):
            return KickSplit(attempts=pair[0], made=pair[1], pct=safe_div(pair[1], pair[0]))

        return FieldGoalSplits(
            overall=split(self.overall),
            bands={label: split(pair) for label, pair in self.bands.items()},
            extra_point=split(self.extra_point),
            longest_made=self.longest_made,
        )


def compute_field_goal_metrics(events: list[PlayEvent]) -> FieldGoalMetrics:
    """Field goals by distance band, extra points and longest make, team-wide and by kicker."""
    team = _KickTally()
    by_kicker: dict[str, _KickTally] = {}
    for ev in events:
        field_goal = is_field_goal_attempt(ev)
        extra_point = not field_goal and is_extra_point_attempt(ev)
        if not field_goal and not extra_point:
            continue
        made = (ev.scoring is not None and ev.scoring.type in ("FG", "PAT")) or bool(
            ev.result and _MADE_KICK.search(ev.result)
        )
        kicker = (ev.participation and ev.participation.kicker) or "TEAM"
        tallies = (team, by_kicker.setdefault(kicker, _KickTally()))
        for tally in tallies:
            if field_goal:
                tally.add_field_goal(made, estimate_kick_distance(ev))
            else:
                tally.add_extra_point(made)
    return FieldGoalMetrics(
        team=team.finalize(),
        by_kicker={name: tally.finalize() for name, tally in by_kicker.items()},
    )


def compute_punting_metrics(events: list[PlayEvent]) -> PuntingMetrics:
    """Gross and net punting, touchbacks, inside-20s and opponent starting spot."""
    punts = [
        ev for ev in events
        if is_punt_play(ev)
        and "RETURN" not in (ev.st_play_type or "").upper()
        and team_possesses_special_teams(ev)
    ]
    lines: dict[str, PuntingLine] = {}
    starts: dict[str, list[float]] = {}
    for ev in punts:
        gross = max(0.0, ev.gained_yards or 0)
        return_yards = max(0.0, ev.st_return_yards or 0)
        touchback = is_touchback(ev)
        start_line = ev.field_position if ev.field_position is not None else DEFAULT_KICK_LINE
        end_line = PUNT_TOUCHBACK_END_LINE if touchback else clamp(start_line + gross - return_yards, 0, 100)
        opponent_start = 100 - end_line
        net = gross - return_yards - (PUNT_TOUCHBACK_NET_PENALTY if touchback else 0)
        punter = (ev.participation and ev.participation.punter) or "TEAM"
        for key in ("__team__", punter):
            line = lines.get(key, PuntingLine())
            lines[key] = replace(
                line,
                punts=line.punts + 1,
                yards=line.yards + gross,
                touchbacks=line.touchbacks + int(touchback),
                inside_20=line.inside_20 + int(not touchback and opponent_start <= 20),
                net=line.net + net,
                longest=max(line.longest, gross),
            )
            starts.setdefault(key, []).append(opponent_start)

    def finalize(key: str) -> PuntingLine:
        line = lines.get(key, PuntingLine())
        return replace(
            line,
            gross=safe_div(line.yards, line.punts),
            net=safe_div(line.net, line.punts),
            opponent_average_start=mean_or_none(starts.get(key, [])),
        )

    return PuntingMetrics(
        team=finalize("__team__"),
        by_punter={key: finalize(key) for key in lines if key != "__team__"},
    )


def compute_kickoff_metrics(events: list[PlayEvent]) -> KickoffMetrics:
    kickoffs = [ev for ev in events if is_kickoff_play(ev) and not team_possesses_special_teams(ev)]
    touchbacks = 0
    longest_return = 0.0
    opponent_starts = []
    for ev in kickoffs:
        if is_touchback(ev):
            touchbacks += 1
            opponent_starts.append(KICKOFF_TOUCHBACK_START)
            continue
        start_line = ev.field_position if ev.field_position is not None else DEFAULT_KICK_LINE
        gross = max(0.0, ev.gained_yards or 0)
        return_yards = max(0.0, ev.st_return_yards or 0)
        opponent_starts.append(100 - clamp(start_line + gross - return_yards, 0, 100))
        longest_return = max(longest_return, return_yards)
    return KickoffMetrics(
        kicks=len(kickoffs),
        touchbacks=touchbacks,
        touchback_pct=safe_div(touchbacks, len(kickoffs)),
        opponent_average_start=mean_or_none(opponent_starts),
        longest_return_allowed=longest_return,
    )


def compute_coverage_metrics(events: list[PlayEvent]) -> CoverageMetrics:
    """Returns allowed on our kickoffs and punts."""
    tallies = {
        "kickoff": {"attempts": 0, "yards": 0.0, "longest": 0.0, "touchdowns_allowed": 0},
        "punt": {"attempts": 0, "yards": 0.0, "longest": 0.0, "touchdowns_allowed": 0},
    }
    for ev in events:
        if not is_return_play(ev) or team_possesses_special_teams(ev):
            continue
        return_yards = max(0.0, ev.st_return_yards or 0)
        opponent_td = (
            ev.scoring is not None
            and ev.scoring.scoring_team_side == OPPONENT
            and is_touchdown(ev.scoring)
        )
        for name, matches in (("kickoff", is_kickoff_play(ev)), ("punt", is_punt_play(ev))):
            if not matches:
                continue
            tally = tallies[name]
            tally["attempts"] += 1
            tally["yards"] += return_yards
            tally["longest"] = max(tally["longest"], return_yards)
            tally["touchdowns_allowed"] += int(opponent_td)

    def finalize(tally: dict) -> CoverageLine:
        return CoverageLine(**tally, average=safe_div(tally["yards"], tally["attempts"]))

    return CoverageMetrics(kickoff=finalize(tallies["kickoff"]), punt=finalize(tallies["punt"]))


def compute_special_teams_metrics(
    events: list[PlayEvent],
    drives: Optional[list[DriveRecord]] = None,
    opponent_events: Optional[list[PlayEvent]] = None,
    opponent_drives: Optional[list[DriveRecord]] = None,
) -> SpecialTeamsMetrics:
    """Full special teams line for one game.

    Args:
        events: Normalized plays for one game
        drives: Our drive records (derived when omitted)
        opponent_events: Opponent's charted plays, used for their drive starts
        opponent_drives: Opponent drive records (take precedence over opponent_events)

    Returns:
        SpecialTeamsMetrics
    """
    drives = drives or derive_drive_records(events)
    if not opponent_drives and opponent_events:
        opponent_drives = derive_drive_records(opponent_events)

    return SpecialTeamsMetrics(
        field_position=compute_field_position(drives, opponent_drives),
        kickoff_returns=compute_return_metrics(
            events,
            lambda ev: is_kickoff_play(ev) and team_possesses_special_teams(ev) and is_return_play(ev),
        ),
        punt_returns=compute_return_metrics(
            events,
            lambda ev: is_punt_play(ev) and "RETURN" in (ev.st_play_type or "").upper(),
        ),
        coverage=compute_coverage_metrics(events),
        field_goals=compute_field_goal_metrics(events),
        punting=compute_punting_metrics(events),
        kickoff=compute_kickoff_metrics(events),
    )
