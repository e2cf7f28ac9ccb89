"""Season projection from per-game core and advanced metrics."""

import logging
from dataclasses import dataclass
from typing import Optional

from config.settings import get_settings
from chartstats.season.simulation import (
    SeasonSimulationInput,
    SimulatedGame,
    simulate_season_outcomes,
)
from chartstats.utils.numeric import clamp

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA_NOTES = "Insufficient data; chart games to unlock projections."
PROJECTION_NOTES = (
    "Projection uses deterministic Monte Carlo on team/offense/defense/special teams "
    "efficiency and opponent strength."
)

# Baseline points allowed before the explosive-margin adjustment
BASELINE_POINTS_ALLOWED = 24


@dataclass(frozen=True)
class SeasonProjection:
    """Season-wide projection. Every projected value is None when insufficient_data is set."""
    games_modeled: int
    insufficient_data: bool
    projected_win_rate: Optional[float] = None
    projected_win_out: Optional[float] = None
    projected_conference_win_rate: Optional[float] = None
    projected_playoff_rate: Optional[float] = None
    projected_points_per_game: Optional[float] = None
    projected_points_allowed: Optional[float] = None
    expected_wins: Optional[float] = None
    strength_of_schedule: Optional[float] = None
    strength_of_record: Optional[float] = None
    game_control: Optional[float] = None
    notes: str = PROJECTION_NOTES


def synthetic_schedule(team_rating: float, n_games: int) -> list[SimulatedGame]:
    """Placeholder schedule of slightly weaker-to-stronger opponents, alternating home and away."""
    conference_games = max(1, n_games // 2)
    return [
        SimulatedGame(
            opponent_id=f"sim-{idx + 1}",
            opponent_rating=clamp(team_rating - 5 + idx, 20, 95),
            is_conference=idx < conference_games,
            home_field=1 if idx % 2 == 0 else -1,
        )
        for idx in range(n_games)
    ]


def project_season(games: list, schedule: Optional[list[SimulatedGame]] = None) -> SeasonProjection:
    """
    Project the rest of a season from the games charted so far.

    Args:
        games: Per-game stacks (anything exposing ``box``, ``core`` and
            ``advanced``) for games with at least one play
        schedule: Remaining schedule; a synthetic one is built when omitted

    Returns:
        SeasonProjection, flagged insufficient_data when no games are modeled
    """
    n_games = len(games)
    if n_games == 0:
        logger.info("No charted games; returning insufficient-data projection")
        return SeasonProjection(games_modeled=0, insufficient_data=True, notes=INSUFFICIENT_DATA_NOTES)

    settings = get_settings()

    avg_points = sum(
        g.core.points_per_drive * max(g.box.plays, 1) / max(g.box.late_down.attempts, 1)
        for g in games
    ) / n_games
    avg_explosive_margin = sum(g.core.explosive_margin for g in games) / n_games
    avg_against = max(0.0, BASELINE_POINTS_ALLOWED - avg_explosive_margin * 2)

    offense_ratings = []
    defense_ratings = []
    special_teams_ratings = []
    for g in games:
        sp_plus = g.advanced.sp_plus if g.advanced is not None else None
        offense_ratings.append(sp_plus.offense if sp_plus else g.core.points_per_drive * 120)
        defense_ratings.append(sp_plus.defense if sp_plus else (1 - g.core.success_margin) * 100)
        special_teams_ratings.append(sp_plus.special_teams if sp_plus else 50.0)

    offense = sum(offense_ratings) / n_games
    defense = sum(defense_ratings) / n_games
    special_teams = sum(special_teams_ratings) / n_games
    team_rating = clamp((offense - (100 - defense)) * 0.6 + special_teams * 0.4, 0, 120)

    if not schedule:
        remaining = max(1, settings.projection_season_games - n_games)
        schedule = synthetic_schedule(team_rating, remaining)

    simulation = simulate_season_outcomes(
        SeasonSimulationInput(
            team_rating=team_rating,
            offense_rating=offense,
            defense_rating=defense,
            special_teams_rating=special_teams,
            schedule=schedule,
            iterations=settings.projection_iterations,
            seed=settings.projection_seed,
        )
    )

    logger.debug(
        f"Projected from {n_games} games: rating {team_rating:.1f}, "
        f"win rate {simulation.win_probability:.3f} over {len(schedule)} games"
    )

    return SeasonProjection(
        games_modeled=n_games,
        insufficient_data=False,
        projected_win_rate=clamp(simulation.win_probability, 0.01, 0.99),
        projected_win_out=simulation.win_out_probability,
        projected_conference_win_rate=simulation.conference_win_probability,
        projected_playoff_rate=simulation.playoff_probability,
        projected_points_per_game=avg_points,
        projected_points_allowed=avg_against,
        expected_wins=simulation.expected_wins,
        strength_of_schedule=simulation.strength_of_schedule,
        strength_of_record=simulation.strength_of_record,
        game_control=simulation.game_control,
    )
