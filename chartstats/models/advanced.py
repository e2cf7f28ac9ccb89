"""
Advanced analytics for a game: the baseline efficiency estimates plus the
expected-points, win-probability, rating and simulation layers built on top
of them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from config.play_types import EXPECTED_POINTS_CURVE
from chartstats.data.events import ChartUnit, DriveRecord, PlayEvent
from chartstats.models.box_score import BaseCounts, BoxScoreMetrics, compute_success_rate
from chartstats.models.defense import DefensiveMetrics
from chartstats.models.expected_points import (
    AdjustedNetYardsPerAttempt,
    EpaAggregate,
    ExpectedPointsResult,
    QuarterbackRatings,
    compute_adjusted_net_yards_per_attempt,
    compute_epa_aggregates,
    compute_expected_points,
    compute_quarterback_ratings,
    event_state,
)
from chartstats.models.play_rules import is_successful_play
from chartstats.models.special_teams import SpecialTeamsMetrics
from chartstats.models.win_probability import (
    GameControlMetric,
    PostGameWinExpectancy,
    WinExpectancyProfile,
    WinProbabilitySummary,
    compute_game_control_metric,
    compute_post_game_win_expectancy,
    compute_win_probability_summary,
)
from chartstats.season.simulation import (
    SeasonSimulationInput,
    SeasonSimulationResult,
    SimulatedGame,
    simulate_season_outcomes,
)
from chartstats.utils.numeric import clamp, safe_div

logger = logging.getLogger(__name__)

# Baseline EPA estimate weights
YARD_EPA = 0.06
SCORE_EPA = 2.0
TURNOVER_EPA = 2.0
PENALTY_HAVOC_WEIGHT = 0.25

# Single-game simulation against the charted opponent
GAME_SIMULATION_ITERATIONS = 750
GAME_SIMULATION_SEED = 7

LEAGUE_AVERAGE_SUCCESS = 0.45


@dataclass(frozen=True)
class ExpectedPointsModel:
    latest: Optional[ExpectedPointsResult]
    curve: list[float]


@dataclass(frozen=True)
class SpPlusLikeRatings:
    offense: float
    defense: float
    special_teams: float
    overall: float
    iso_ppp: float  # Mean EPA of successful plays
    success_rate: float
    havoc: float
    epa_per_play: float


@dataclass(frozen=True)
class AdvancedAnalytics:
    estimated_epa: float
    estimated_epa_per_play: float
    havoc_rate: float
    leverage_rate: float
    field_position_advantage: float
    expected_points_model: ExpectedPointsModel
    epa: EpaAggregate
    win_probability: WinProbabilitySummary
    post_game_win_expectancy: PostGameWinExpectancy
    sp_plus: SpPlusLikeRatings
    any_a: AdjustedNetYardsPerAttempt
    qbr: QuarterbackRatings
    game_control: GameControlMetric
    season_simulation: Optional[SeasonSimulationResult] = None


# =============================================================================
# Ratings
# =============================================================================

def compute_sp_plus_like_ratings(
    events: list[PlayEvent],
    epa: EpaAggregate,
    defense_havoc: float,
    special_teams: Optional[SpecialTeamsMetrics] = None,
) -> SpPlusLikeRatings:
    """
    SP+-style 0-100 unit ratings from success rate, explosiveness and EPA.

    Args:
        events: Normalized plays
        epa: EPA ledger for the same plays
        defense_havoc: Defensive havoc rate
        special_teams: Special-teams metrics (net start drives the unit rating)

    Returns:
        SpPlusLikeRatings
    """
    success = compute_success_rate(events, ChartUnit.OFFENSE)
    success_epa = [
        epa.plays_detail[ev.id].raw
        for ev in events
        if is_successful_play(ev) and ev.id in epa.plays_detail
    ]
    iso_ppp = safe_div(sum(success_epa), len(success_epa))
    net_start = special_teams.field_position.net_start if special_teams else None
    st_contribution = net_start or 0.0

    success_edge = success.rate - LEAGUE_AVERAGE_SUCCESS
    offense = clamp(50 + success_edge * 120 + iso_ppp * 35 + epa.per_play * 60, 0, 100)
    defense = clamp(50 - success_edge * 90 - epa.per_play * 40 + defense_havoc * 25, 0, 100)
    special_teams_rating = clamp(50 + st_contribution * 0.6, 0, 100)
    overall = clamp(offense - (100 - defense) * 0.6 + (special_teams_rating - 50) * 0.3 + 50, 0, 100)

    return SpPlusLikeRatings(
        offense=offense,
        defense=defense,
        special_teams=special_teams_rating,
        overall=overall,
        iso_ppp=iso_ppp,
        success_rate=success.rate,
        havoc=defense_havoc,
        epa_per_play=epa.per_play,
    )


# =============================================================================
# Baseline estimates
# =============================================================================

def estimate_epa(base: BaseCounts) -> float:
    return base.total_yards * YARD_EPA + base.scoring_plays * SCORE_EPA - base.turnovers * TURNOVER_EPA


def estimate_havoc_rate(base: BaseCounts) -> float:
    """Turnovers plus a quarter-weight for penalties, per play."""
    return safe_div(base.turnovers + base.penalties.count * PENALTY_HAVOC_WEIGHT, base.plays)


def compute_leverage_rate(base: BaseCounts, drives: list[DriveRecord]) -> float:
    """Share of plays that belong to tracked drives (all plays when none)."""
    tracked = sum(len(d.play_ids) for d in drives) if drives else base.plays
    return safe_div(tracked, base.plays)


def compute_field_position_advantage(base: BaseCounts, drives: list[DriveRecord]) -> float:
    """Average drive start (midfield when a start is missing), else yards per play."""
    if drives:
        starts = [50 if d.start_field_position is None else d.start_field_position for d in drives]
        return sum(starts) / len(starts)
    return safe_div(base.total_yards, base.plays)


def build_win_expectancy_profile(
    box: BoxScoreMetrics,
    base: BaseCounts,
    allowed: Optional[BoxScoreMetrics] = None,
) -> WinExpectancyProfile:
    """Win-expectancy profile from a box score, with the other side's box as 'allowed'."""
    return WinExpectancyProfile(
        yards_for=box.total_yards,
        yards_allowed=allowed.total_yards if allowed else 0.0,
        success_rate_for=box.success_rate,
        success_rate_allowed=allowed.success_rate if allowed else 0.0,
        explosive_plays_for=box.explosives,
        explosive_plays_allowed=allowed.explosives if allowed else 0,
        turnovers_for=base.turnovers,
        turnovers_allowed=allowed.turnovers if allowed else 0,
        penalties=base.penalties.yards,
        plays=box.plays,
    )


# =============================================================================
# Advanced analytics
# =============================================================================

def compute_advanced_analytics(
    box: BoxScoreMetrics,
    base: BaseCounts,
    drives: Optional[list[DriveRecord]] = None,
    defense: Optional[DefensiveMetrics] = None,
    events: Optional[list[PlayEvent]] = None,
    opponent_box: Optional[BoxScoreMetrics] = None,
    opponent_base: Optional[BaseCounts] = None,
    unit: Optional[ChartUnit] = None,
    special_teams: Optional[SpecialTeamsMetrics] = None,
) -> AdvancedAnalytics:
    """
    Compute the full advanced-analytics layer for one game.

    Args:
        box: Box score for the scoped plays
        base: Base counts for the same plays
        drives: Drive records for the scope
        defense: Defensive metrics (supplies the havoc rate for ratings)
        events: The scoped plays themselves
        opponent_box: Opponent's box score, enables margins and a game simulation
        opponent_base: Opponent's base counts
        unit: Unit scope, fixes possession for the win-probability timeline
        special_teams: Special-teams metrics

    Returns:
        AdvancedAnalytics
    """
    drives = drives or []
    events = events or []

    estimated = estimate_epa(base)
    havoc_rate = estimate_havoc_rate(base)
    rating_havoc = defense.havoc.rate if defense else havoc_rate

    epa = compute_epa_aggregates(events, drives)
    latest = compute_expected_points(event_state(events[0])) if events else None
    win_probability = compute_win_probability_summary(events, unit)

    team_profile = build_win_expectancy_profile(box, base, opponent_box)
    opponent_profile = None
    if opponent_box is not None:
        opponent_profile = build_win_expectancy_profile(opponent_box, opponent_base or base, box)

    sp_plus = compute_sp_plus_like_ratings(events, epa, rating_havoc, special_teams)

    season_simulation = None
    if opponent_box is not None:
        season_simulation = simulate_season_outcomes(
            SeasonSimulationInput(
                team_rating=sp_plus.overall,
                offense_rating=sp_plus.offense,
                defense_rating=sp_plus.defense,
                special_teams_rating=sp_plus.special_teams,
                schedule=[
                    SimulatedGame(
                        opponent_id="opponent",
                        opponent_name="opponent",
                        opponent_rating=opponent_box.yards_per_play * 10,
                        is_conference=True,
                    )
                ],
                iterations=GAME_SIMULATION_ITERATIONS,
                seed=GAME_SIMULATION_SEED,
            )
        )

    return AdvancedAnalytics(
        estimated_epa=estimated,
        estimated_epa_per_play=safe_div(estimated, base.plays),
        havoc_rate=havoc_rate,
        leverage_rate=compute_leverage_rate(base, drives),
        field_position_advantage=compute_field_position_advantage(base, drives),
        expected_points_model=ExpectedPointsModel(
            latest=latest,
            curve=[ep for _, ep in EXPECTED_POINTS_CURVE],
        ),
        epa=epa,
        win_probability=win_probability,
        post_game_win_expectancy=compute_post_game_win_expectancy(team_profile, opponent_profile),
        sp_plus=sp_plus,
        any_a=compute_adjusted_net_yards_per_attempt(events, unit),
        qbr=compute_quarterback_ratings(events, epa, defense.havoc.rate * 10 if defense else 0.0),
        game_control=compute_game_control_metric(win_probability),
        season_simulation=season_simulation,
    )
