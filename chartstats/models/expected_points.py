"""
Expected points, EPA ledger, ANY/A and quarterback ratings.

The expected-points model interpolates a fixed field-position curve and
adjusts it for down, distance, game clock, score and timeouts. EPA is the
change in the charting team's expected points across a snap, plus any
points scored on it.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from config.play_types import EXPECTED_POINTS_CURVE, PASS_FAMILIES
from config.settings import get_settings
from chartstats.data.events import (
    OPPONENT,
    TEAM,
    ChartUnit,
    DriveRecord,
    FieldZone,
    PlayEvent,
)
from chartstats.models.play_rules import (
    filter_events_for_unit,
    is_scoring_result,
    is_series_conversion,
    is_sack,
    offense_scored,
    points_from_result,
    possessing_side,
    resolve_play_side,
    result_text,
)
from chartstats.utils.field import absolute_clock_seconds, yard_line_from_ball_on
from chartstats.utils.numeric import clamp, safe_div

logger = logging.getLogger(__name__)

_CURVE_YARD_LINES = np.array([yl for yl, _ in EXPECTED_POINTS_CURVE], dtype=float)
_CURVE_POINTS = np.array([ep for _, ep in EXPECTED_POINTS_CURVE], dtype=float)

# Yard line assumed when only a field zone was charted
ZONE_YARD_LINES = {
    FieldZone.RED_ZONE: 90,
    FieldZone.SCORING_RANGE: 70,
    FieldZone.COMING_OUT: 15,
}

DOWN_CONVERSION_MULTIPLIERS = {1: 1.0, 2: 0.82, 3: 0.58, 4: 0.28}
PLAY_DURATION_SECONDS = 6
LEVERAGE_WEIGHT = 0.35


@dataclass(frozen=True)
class ExpectedPointsState:
    """Pre-snap situation fed to the expected-points model."""

    down: Optional[int] = None
    distance: Optional[float] = None
    yard_line: Optional[float] = None
    clock_seconds_remaining: Optional[float] = None
    score_diff: float = 0.0
    offense_timeouts: Optional[int] = None
    defense_timeouts: Optional[int] = None


@dataclass(frozen=True)
class ExpectedPointsComponents:
    base_field_position: float
    conversion_probability: float
    turnover_penalty: float
    tempo_adjustment: float
    timeout_adjustment: float


@dataclass(frozen=True)
class ExpectedPointsResult:
    points: float
    components: ExpectedPointsComponents


@dataclass(frozen=True)
class PlayEpa:
    play_id: str
    raw: float
    adjusted: float
    pre_ep: float  # Team perspective
    post_ep: float  # Team perspective
    points: float
    unit: ChartUnit
    drive_number: Optional[int]
    leverage: float
    possession: str
    score_diff: float
    seconds_remaining: Optional[float]
    players: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EpaBucket:
    epa: float = 0.0
    adjusted: float = 0.0
    plays: int = 0
    per_play: float = 0.0


@dataclass
class _EpaTally:
    epa: float = 0.0
    adjusted: float = 0.0
    plays: int = 0

    def add(self, raw: float, adjusted: float) -> None:
        self.epa += raw
        self.adjusted += adjusted
        self.plays += 1

    def freeze(self) -> EpaBucket:
        return EpaBucket(
            epa=self.epa,
            adjusted=self.adjusted,
            plays=self.plays,
            per_play=safe_div(self.epa, self.plays),
        )


@dataclass(frozen=True)
class EpaAggregate:
    """Game EPA totals. Built once per stack; the breakdown mappings are read-only."""

    plays: int = 0
    total: float = 0.0
    adjusted_total: float = 0.0
    per_play: float = 0.0
    per_drive: float = 0.0
    by_drive: dict[str, EpaBucket] = field(default_factory=dict)
    by_player: dict[str, EpaBucket] = field(default_factory=dict)
    by_unit: dict[str, EpaBucket] = field(default_factory=dict)
    plays_detail: dict[str, PlayEpa] = field(default_factory=dict)


@dataclass(frozen=True)
class AdjustedNetYardsPerAttempt:
    team: float
    attempts: int
    sacks: int
    by_quarterback: dict[str, float]


@dataclass(frozen=True)
class QuarterbackRating:
    quarterback: str
    plays: int
    adjusted_epa: float
    adjusted_epa_per_play: float
    rating: float


@dataclass(frozen=True)
class QuarterbackRatings:
    by_quarterback: dict[str, QuarterbackRating]
    team_rating: float


# =============================================================================
# Expected points model
# =============================================================================

def interpolate_expected_points(yard_line: float) -> float:
    """Expected points at a yard line, linearly interpolated on the curve."""
    return float(np.interp(clamp(yard_line, 1, 99), _CURVE_YARD_LINES, _CURVE_POINTS))


def compute_expected_points(state: ExpectedPointsState) -> ExpectedPointsResult:
    """
    Situational expected points for the offense.

    Missing values default to 1st-and-10 at midfield with the full game
    remaining and two timeouts per side.

    Args:
        state: Pre-snap situation

    Returns:
        ExpectedPointsResult with the point value and its components
    """
    game_length = get_settings().game_length_seconds
    yard_line = 50 if state.yard_line is None else clamp(state.yard_line, 1, 99)
    distance = 10 if state.distance is None else state.distance
    down = state.down or 1

    base = interpolate_expected_points(yard_line)
    base_conversion = clamp(1 - math.log1p(max(distance, 0)) / (2.8 if down == 4 else 3.6), 0.05, 0.98)
    multiplier = DOWN_CONVERSION_MULTIPLIERS.get(down, 0.28)
    conversion = clamp(base_conversion * multiplier + (0.08 if down == 1 else 0), 0.05, 0.98)

    opponent_yard_line = clamp(100 - yard_line + min(distance, 10), 1, 99)
    turnover_penalty = interpolate_expected_points(opponent_yard_line)

    remaining = game_length if state.clock_seconds_remaining is None else state.clock_seconds_remaining
    urgency = 1 - clamp(remaining / game_length, 0, 1)
    tempo = clamp(-state.score_diff / 21, -1, 1) * urgency * 0.9

    offense_timeouts = 2 if state.offense_timeouts is None else state.offense_timeouts
    defense_timeouts = 2 if state.defense_timeouts is None else state.defense_timeouts
    timeout_adjustment = (offense_timeouts - defense_timeouts) * 0.12

    if down == 4:
        penalty_weight = 0.95
    elif down == 3:
        penalty_weight = 0.6
    else:
        penalty_weight = 0.35

    points = (
        base * (0.35 + 0.65 * conversion)
        - turnover_penalty * (1 - conversion) * penalty_weight
        + tempo
        + timeout_adjustment
    )
    return ExpectedPointsResult(
        points=points,
        components=ExpectedPointsComponents(
            base_field_position=base,
            conversion_probability=conversion,
            turnover_penalty=turnover_penalty,
            tempo_adjustment=tempo,
            timeout_adjustment=timeout_adjustment,
        ),
    )


# =============================================================================
# Per-event situation
# =============================================================================

def resolve_yard_line(ev: PlayEvent) -> Optional[float]:
    """Yard line for a snap from its field position, ball spot or zone."""
    if ev.field_position is not None:
        return ev.field_position
    if ev.ball_on:
        return yard_line_from_ball_on(ev.ball_on)
    return ZONE_YARD_LINES.get(ev.field_zone)


def resolve_score_differential(ev: PlayEvent) -> float:
    """Team score minus opponent score before the snap, 0 when uncharted."""
    if ev.score_before is None:
        return 0.0
    return (ev.score_before.team or 0) - (ev.score_before.opponent or 0)


def resolve_clock_remaining(ev: PlayEvent) -> Optional[float]:
    elapsed = ev.absolute_clock_seconds
    if elapsed is None:
        elapsed = absolute_clock_seconds(ev.quarter, ev.clock_seconds)
    if elapsed is None:
        return None
    return max(0.0, get_settings().game_length_seconds - elapsed)


def clock_order_key(ev: PlayEvent) -> float:
    elapsed = ev.absolute_clock_seconds
    if elapsed is None:
        elapsed = absolute_clock_seconds(ev.quarter, ev.clock_seconds)
    return elapsed or 0.0


def event_state(ev: PlayEvent) -> ExpectedPointsState:
    """Expected-points state for a snap as charted."""
    timeouts = ev.timeouts_before
    return ExpectedPointsState(
        down=ev.down,
        distance=ev.distance,
        yard_line=resolve_yard_line(ev),
        clock_seconds_remaining=resolve_clock_remaining(ev),
        score_diff=resolve_score_differential(ev),
        offense_timeouts=timeouts.offense if timeouts else None,
        defense_timeouts=timeouts.defense if timeouts else None,
    )


def possession_after_play(ev: PlayEvent, before: str) -> str:
    """Side holding the ball once the snap is over."""
    flipped = OPPONENT if before == TEAM else TEAM
    if ev.turnover_detail is not None:
        return OPPONENT if ev.turnover_detail.lost_by_side == TEAM else TEAM
    if ev.scoring is not None:
        return OPPONENT if ev.scoring.scoring_team_side == TEAM else TEAM
    if ev.is_drive_end and "punt" in (ev.result or "").lower():
        return flipped
    return before


def estimate_next_series_state(ev: PlayEvent, yard_line_before: float) -> tuple[float, int, float]:
    """(yard line, down, distance) for the next snap of the same series."""
    gained = ev.gained_yards or 0
    distance = 10 if ev.distance is None else ev.distance
    down = ev.down or 1
    achieved = bool(ev.first_down) or gained >= distance or offense_scored(ev)
    next_yard_line = clamp(yard_line_before + gained, 1, 99)
    if achieved:
        return next_yard_line, 1, max(1, min(10, 100 - next_yard_line))
    return next_yard_line, min(4, down + 1), max(1, distance - gained)


def points_for_team(ev: PlayEvent) -> float:
    """Points scored on the snap, signed from the charting team's perspective."""
    if ev.scoring is not None:
        return ev.scoring.points if ev.scoring.scoring_team_side == TEAM else -ev.scoring.points
    if is_scoring_result(ev.result):
        points = points_from_result(ev.result)
        return points if (possessing_side(ev) or TEAM) == TEAM else -points
    return 0.0


def compute_leverage_factor(
    score_diff: float,
    seconds_remaining: Optional[float],
    down: Optional[int],
    distance: Optional[float],
) -> float:
    """Situational leverage in [0, 2]: late, close, late-down snaps weigh more."""
    if seconds_remaining is None:
        time_pressure = 0.25
    else:
        time_pressure = 1 - clamp(seconds_remaining / get_settings().game_length_seconds, 0, 1)
    score_pressure = min(1.0, abs(score_diff) / 21)
    if not down:
        down_weight = 0.3
    elif down >= 4:
        down_weight = 1.0
    elif down == 3:
        down_weight = 0.7
    elif down == 2:
        down_weight = 0.45
    else:
        down_weight = 0.2
    distance_weight = clamp(distance / 12, 0, 1) * 0.3 if distance is not None else 0.0
    return clamp(time_pressure + score_pressure * 0.5 + down_weight + distance_weight, 0, 2)


# =============================================================================
# EPA ledger
# =============================================================================

def _drive_key(ev: PlayEvent) -> str:
    if ev.drive_number is not None:
        return str(ev.drive_number)
    return ev.drive_id or "unknown"


def compute_play_epa(ev: PlayEvent) -> PlayEpa:
    """EPA for a single snap from the charting team's perspective."""
    side = possessing_side(ev) or TEAM
    pre_state = event_state(ev)
    yard_line = 50 if pre_state.yard_line is None else pre_state.yard_line

    pre_raw = compute_expected_points(
        ExpectedPointsState(
            down=pre_state.down,
            distance=pre_state.distance,
            yard_line=yard_line,
            clock_seconds_remaining=pre_state.clock_seconds_remaining,
            score_diff=pre_state.score_diff,
            offense_timeouts=pre_state.offense_timeouts,
            defense_timeouts=pre_state.defense_timeouts,
        )
    ).points
    team_pre = pre_raw if side == TEAM else -pre_raw

    points = points_for_team(ev)
    next_yard_line, next_down, next_distance = estimate_next_series_state(ev, yard_line)
    if ev.turnover_detail is not None:
        next_yard_line, next_down, next_distance = clamp(100 - next_yard_line, 1, 99), 1, 10
    seconds = pre_state.clock_seconds_remaining
    next_seconds = max(0.0, seconds - PLAY_DURATION_SECONDS) if seconds is not None else None

    post_raw = compute_expected_points(
        ExpectedPointsState(
            down=next_down,
            distance=next_distance,
            yard_line=next_yard_line,
            clock_seconds_remaining=next_seconds,
            score_diff=pre_state.score_diff + points,
            offense_timeouts=pre_state.offense_timeouts,
            defense_timeouts=pre_state.defense_timeouts,
        )
    ).points
    team_post = post_raw if possession_after_play(ev, side) == TEAM else -post_raw

    raw = points + team_post - team_pre
    leverage = compute_leverage_factor(pre_state.score_diff, seconds, ev.down, ev.distance)
    return PlayEpa(
        play_id=ev.id,
        raw=raw,
        adjusted=raw * (1 + leverage * LEVERAGE_WEIGHT),
        pre_ep=team_pre,
        post_ep=team_post,
        points=points,
        unit=resolve_play_side(ev, ChartUnit.OFFENSE),
        drive_number=ev.drive_number,
        leverage=leverage,
        possession=side,
        score_diff=pre_state.score_diff,
        seconds_remaining=seconds,
        players=ev.players,
    )


def compute_epa_aggregates(events: list[PlayEvent], drives: Optional[list[DriveRecord]] = None) -> EpaAggregate:
    """
    EPA totals for a game, broken out by drive, player and unit.

    Args:
        events: Normalized plays (any order; sorted by game clock here)
        drives: Drive records used for the per-drive rate

    Returns:
        EpaAggregate with totals, rates, breakdowns and per-play detail
    """
    ordered = sorted(events, key=clock_order_key)
    plays_detail: dict[str, PlayEpa] = {}
    by_drive: dict[str, _EpaTally] = {}
    by_player: dict[str, _EpaTally] = {}
    by_unit = {unit.value: _EpaTally() for unit in ChartUnit}
    total = 0.0
    adjusted_total = 0.0

    for ev in ordered:
        detail = compute_play_epa(ev)
        plays_detail[ev.id] = detail
        total += detail.raw
        adjusted_total += detail.adjusted
        by_drive.setdefault(_drive_key(ev), _EpaTally()).add(detail.raw, detail.adjusted)
        for player in detail.players:
            by_player.setdefault(player, _EpaTally()).add(detail.raw, detail.adjusted)
        by_unit[detail.unit.value].add(detail.raw, detail.adjusted)

    drives_used = len(drives) if drives else len({ev.drive_number for ev in ordered if ev.drive_number is not None})
    return EpaAggregate(
        plays=len(ordered),
        total=total,
        adjusted_total=adjusted_total,
        per_play=safe_div(total, len(ordered)),
        per_drive=safe_div(total, drives_used),
        by_drive={key: tally.freeze() for key, tally in by_drive.items()},
        by_player={key: tally.freeze() for key, tally in by_player.items()},
        by_unit={key: tally.freeze() for key, tally in by_unit.items()},
        plays_detail=plays_detail,
    )


# =============================================================================
# ANY/A
# =============================================================================

@dataclass
class _PassTally:
    attempts: int = 0
    yards: float = 0.0
    touchdowns: int = 0
    interceptions: int = 0
    sacks: int = 0
    sack_yards: float = 0.0

    def add(self, ev: PlayEvent) -> None:
        gained = ev.gained_yards or 0
        text = result_text(ev)
        if is_sack(ev):
            self.sacks += 1
            self.sack_yards += abs(gained)
            return
        if "SPIKE" in text:
            return
        self.attempts += 1
        self.yards += gained
        if ev.scoring is not None and ev.scoring.type == "TD":
            self.touchdowns += 1
        detail = ev.turnover_detail
        if (detail is not None and detail.type == "INTERCEPTION") or "INTERCEPT" in text:
            self.interceptions += 1

    @property
    def any_a(self) -> float:
        numerator = self.yards + self.touchdowns * 20 - self.interceptions * 45 - self.sack_yards
        return safe_div(numerator, self.attempts + self.sacks)


def compute_adjusted_net_yards_per_attempt(
    events: list[PlayEvent],
    unit: Optional[ChartUnit] = None,
) -> AdjustedNetYardsPerAttempt:
    """
    Adjusted net yards per attempt, team and per quarterback.

    ``(yards + 20*TD - 45*INT - sack_yards) / (attempts + sacks)``. Sacks are
    dropbacks, not attempts, and their yardage counts only as sack yards.
    Spikes are ignored.
    """
    pool = filter_events_for_unit(events, unit) if unit else events
    team = _PassTally()
    by_quarterback: dict[str, _PassTally] = {}
    for ev in pool:
        if ev.play_family not in PASS_FAMILIES:
            continue
        quarterback = (ev.participation and ev.participation.quarterback) or "TEAM"
        team.add(ev)
        by_quarterback.setdefault(quarterback, _PassTally()).add(ev)

    return AdjustedNetYardsPerAttempt(
        team=team.any_a,
        attempts=team.attempts,
        sacks=team.sacks,
        by_quarterback={qb: tally.any_a for qb, tally in by_quarterback.items()},
    )


# =============================================================================
# Quarterback rating
# =============================================================================

def _qbr_adjustment(ev: PlayEvent, adjusted: float, opponent_defense_rating: float) -> float:
    if is_series_conversion(ev):
        difficulty = clamp(ev.distance / 12, 0, 1) if ev.distance is not None else 0.2
        adjusted *= 1.1 + difficulty * 0.35
    # Short-yardage chunk plays are discounted
    if ev.play_family in PASS_FAMILIES and (ev.distance or 0) <= 5 and (ev.gained_yards or 0) >= 15:
        adjusted *= 0.7
    seconds = resolve_clock_remaining(ev)
    # Garbage time
    if seconds is not None and seconds < 300 and abs(resolve_score_differential(ev)) > 16:
        adjusted *= 0.3
    return adjusted * (1 + opponent_defense_rating / 100)


def compute_quarterback_ratings(
    events: list[PlayEvent],
    epa: EpaAggregate,
    opponent_defense_rating: float = 0.0,
) -> QuarterbackRatings:
    """
    Per-quarterback 0-100 rating built on leverage-adjusted EPA.

    Args:
        events: Normalized plays
        epa: EPA ledger for the same plays
        opponent_defense_rating: Strength of the opposing defense (scales credit)

    Returns:
        QuarterbackRatings keyed by quarterback, plus the team mean
    """
    buckets: dict[str, list[float]] = {}
    for ev in events:
        quarterback = ev.participation.quarterback if ev.participation else None
        detail = epa.plays_detail.get(ev.id)
        if not quarterback or detail is None:
            continue
        buckets.setdefault(quarterback, []).append(
            _qbr_adjustment(ev, detail.adjusted, opponent_defense_rating)
        )

    by_quarterback = {}
    for quarterback, values in buckets.items():
        total = float(sum(values))
        per_play = safe_div(total, len(values))
        by_quarterback[quarterback] = QuarterbackRating(
            quarterback=quarterback,
            plays=len(values),
            adjusted_epa=total,
            adjusted_epa_per_play=per_play,
            rating=clamp(50 + per_play * 18 + len(values) * 0.1, 0, 100),
        )

    ratings = [qb.rating for qb in by_quarterback.values()]
    team_rating = float(np.mean(ratings)) if ratings else 0.0
    return QuarterbackRatings(by_quarterback=by_quarterback, team_rating=team_rating)
