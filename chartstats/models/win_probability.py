"""
Win probability, win-probability-added timeline, game control and
post-game win expectancy.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Optional

from config.settings import get_settings
from chartstats.data.events import OPPONENT, TEAM, ChartUnit, PlayEvent
from chartstats.models.expected_points import (
    clock_order_key,
    resolve_clock_remaining,
    resolve_score_differential,
    resolve_yard_line,
)
from chartstats.models.play_rules import possessing_side, resolve_play_side
from chartstats.utils.numeric import clamp, safe_div, sigmoid

logger = logging.getLogger(__name__)

HIGH_LEVERAGE_WPA = 0.05

POST_GAME_NOTES = (
    "Deterministic win expectancy combining yardage, efficiency, explosives, "
    "turnovers, field position, and penalties."
)


@dataclass(frozen=True)
class WinProbabilityState:
    score_diff: float = 0.0
    seconds_remaining: Optional[float] = None
    yard_line: Optional[float] = None
    down: Optional[int] = None
    distance: Optional[float] = None
    offense_timeouts: Optional[int] = None
    defense_timeouts: Optional[int] = None
    possession: ChartUnit = ChartUnit.OFFENSE  # OFFENSE when the team has the ball
    pregame_edge: float = 0.0


@dataclass(frozen=True)
class WinProbabilityPoint:
    play_id: str
    win_probability: float
    wpa: float
    leverage: float
    unit: ChartUnit
    seconds_remaining: float


@dataclass(frozen=True)
class WinProbabilitySummary:
    timeline: list[WinProbabilityPoint] = field(default_factory=list)
    average_win_probability: float = 0.5
    wpa_by_player: dict[str, float] = field(default_factory=dict)
    wpa_by_unit: dict[str, float] = field(default_factory=dict)
    high_leverage: list[WinProbabilityPoint] = field(default_factory=list)


@dataclass(frozen=True)
class GameControlMetric:
    average_lead_win_prob: float = 0.5
    time_led_pct: float = 0.0
    domination_index: float = 0.0


@dataclass(frozen=True)
class WinExpectancyProfile:
    """One side's game profile for post-game win expectancy."""

    yards_for: float = 0.0
    yards_allowed: float = 0.0
    success_rate_for: float = 0.0
    success_rate_allowed: float = 0.0
    explosive_plays_for: int = 0
    explosive_plays_allowed: int = 0
    turnovers_for: int = 0
    turnovers_allowed: int = 0
    avg_start_field_position: Optional[float] = None
    penalties: float = 0.0  # Penalty yards
    plays: int = 0

    def mirrored(self) -> "WinExpectancyProfile":
        """The opponent's profile implied by this one."""
        return replace(
            self,
            yards_for=self.yards_allowed,
            yards_allowed=self.yards_for,
            success_rate_for=self.success_rate_allowed,
            success_rate_allowed=self.success_rate_for,
            explosive_plays_for=self.explosive_plays_allowed,
            explosive_plays_allowed=self.explosive_plays_for,
            turnovers_for=self.turnovers_allowed,
            turnovers_allowed=self.turnovers_for,
        )


@dataclass(frozen=True)
class PostGameWinExpectancy:
    team_win_expectancy: float
    opponent_win_expectancy: float
    notes: str = POST_GAME_NOTES


# =============================================================================
# Win probability
# =============================================================================

def compute_win_probability(state: WinProbabilityState) -> float:
    """Logistic win probability for the charting team, clamped to [0.01, 0.99]."""
    game_length = get_settings().game_length_seconds
    seconds = game_length if state.seconds_remaining is None else state.seconds_remaining

    score_term = state.score_diff / 10
    yard_term = (state.yard_line - 50) / 25 if state.yard_line is not None else 0.0
    time_term = math.log1p(max(seconds, 0)) / math.log1p(game_length)
    down_term = 1.2 - state.down * 0.3 if state.down else 0.0
    distance_term = -math.log1p(max(state.distance, 0)) / 3 if state.distance is not None else 0.0
    offense_timeouts = 2 if state.offense_timeouts is None else state.offense_timeouts
    defense_timeouts = 2 if state.defense_timeouts is None else state.defense_timeouts
    possession_tilt = -0.25 if state.possession is ChartUnit.DEFENSE else 0.25

    z = (
        0.9 * score_term
        + 0.5 * yard_term
        + 0.35 * time_term
        + 0.25 * down_term
        + 0.2 * distance_term
        + (offense_timeouts - defense_timeouts) * 0.08
        + state.pregame_edge / 15
        + possession_tilt
    )
    return clamp(sigmoid(z), 0.01, 0.99)


def win_probability_state(ev: PlayEvent, side: str) -> WinProbabilityState:
    """Win-probability inputs for a snap with the given side in possession."""
    remaining = resolve_clock_remaining(ev)
    timeouts = ev.timeouts_before
    offense = timeouts.offense if timeouts else None
    defense = timeouts.defense if timeouts else None
    team_has_ball = side == TEAM
    return WinProbabilityState(
        score_diff=resolve_score_differential(ev),
        seconds_remaining=get_settings().game_length_seconds if remaining is None else remaining,
        yard_line=resolve_yard_line(ev),
        down=ev.down,
        distance=ev.distance,
        offense_timeouts=offense if team_has_ball else defense,
        defense_timeouts=defense if team_has_ball else offense,
        possession=ChartUnit.OFFENSE if team_has_ball else ChartUnit.DEFENSE,
    )


def _possession_for(ev: PlayEvent, unit: Optional[ChartUnit]) -> str:
    if unit is ChartUnit.DEFENSE:
        return OPPONENT
    if unit is ChartUnit.OFFENSE:
        return TEAM
    return possessing_side(ev) or TEAM


def compute_win_probability_summary(
    events: list[PlayEvent],
    unit: Optional[ChartUnit] = None,
) -> WinProbabilitySummary:
    """
    Win-probability timeline with WPA per snap.

    WPA is measured against the previous snap, starting from 0.5, so the
    per-unit totals always sum to the final win probability minus 0.5.

    Args:
        events: Normalized plays (sorted by game clock here)
        unit: Unit whose perspective fixes possession; None reads it per play

    Returns:
        WinProbabilitySummary
    """
    by_unit = {u.value: 0.0 for u in ChartUnit}
    if not events:
        return WinProbabilitySummary(wpa_by_unit=by_unit)

    timeline: list[WinProbabilityPoint] = []
    by_player: dict[str, float] = {}
    previous = 0.5
    for ev in sorted(events, key=clock_order_key):
        state = win_probability_state(ev, _possession_for(ev, unit))
        wp = compute_win_probability(state)
        wpa = wp - previous
        play_unit = resolve_play_side(ev, ChartUnit.OFFENSE)
        timeline.append(
            WinProbabilityPoint(
                play_id=ev.id,
                win_probability=wp,
                wpa=wpa,
                leverage=abs(wpa),
                unit=play_unit,
                seconds_remaining=state.seconds_remaining,
            )
        )
        previous = wp
        for player in ev.players:
            by_player[player] = by_player.get(player, 0.0) + wpa
        by_unit[play_unit.value] += wpa

    average = sum(pt.win_probability for pt in timeline) / len(timeline)
    return WinProbabilitySummary(
        timeline=timeline,
        average_win_probability=average,
        wpa_by_player=by_player,
        wpa_by_unit=by_unit,
        high_leverage=[pt for pt in timeline if pt.leverage >= HIGH_LEVERAGE_WPA],
    )


# =============================================================================
# Game control
# =============================================================================

def compute_game_control_metric(
    summary: WinProbabilitySummary,
    total_seconds: Optional[float] = None,
) -> GameControlMetric:
    """
    Time-weighted win probability over the game.

    Each snap's win probability holds from the previous snap until it; the
    last snap's value holds until the final whistle.
    """
    if not summary.timeline:
        return GameControlMetric()
    total = total_seconds or get_settings().game_length_seconds

    last_time = total
    weighted = 0.0
    led_seconds = 0.0
    for pt in sorted(summary.timeline, key=lambda p: p.seconds_remaining, reverse=True):
        delta = max(0.0, last_time - pt.seconds_remaining)
        weighted += pt.win_probability * delta
        if pt.win_probability > 0.5:
            led_seconds += delta
        last_time = pt.seconds_remaining

    if last_time > 0:
        tail = summary.timeline[-1].win_probability
        weighted += tail * last_time
        if tail > 0.5:
            led_seconds += last_time

    average = safe_div(weighted, total)
    time_led = safe_div(led_seconds, total)
    return GameControlMetric(
        average_lead_win_prob=average,
        time_led_pct=time_led,
        domination_index=clamp((average + time_led) / 2, 0, 1),
    )


# =============================================================================
# Post-game win expectancy
# =============================================================================

def compute_post_game_win_expectancy(
    team: WinExpectancyProfile,
    opponent: Optional[WinExpectancyProfile] = None,
) -> PostGameWinExpectancy:
    """
    How often a team with this box score would be expected to win.

    Args:
        team: The charting team's profile
        opponent: The opponent's profile; mirrored from ``team`` when absent

    Returns:
        PostGameWinExpectancy for both sides
    """
    opp = opponent or team.mirrored()

    yard_margin = (team.yards_for - opp.yards_for) / 100
    success_margin = team.success_rate_for - opp.success_rate_for
    explosive_margin = (team.explosive_plays_for - opp.explosive_plays_for) / max(
        1, min(team.plays or 1, opp.plays or 1)
    )
    turnover_term = -(team.turnovers_for - opp.turnovers_for) * 0.35
    team_start = 50 if team.avg_start_field_position is None else team.avg_start_field_position
    opp_start = 50 if opp.avg_start_field_position is None else opp.avg_start_field_position
    field_position_term = (team_start - opp_start) / 25
    penalty_term = -(team.penalties - opp.penalties) / 120

    z = (
        0.28 * yard_margin
        + 0.32 * success_margin
        + 0.22 * explosive_margin
        + turnover_term
        + field_position_term * 0.25
        + penalty_term
    )
    expectancy = clamp(sigmoid(z), 0.01, 0.99)
    return PostGameWinExpectancy(team_win_expectancy=expectancy, opponent_win_expectancy=1 - expectancy)
