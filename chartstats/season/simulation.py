"""Seeded Monte Carlo season simulation.

Each game is an independent Bernoulli draw with a logistic win probability
built from the rating gap. Identical inputs (seed included) always produce
identical output.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from config.settings import get_settings
from chartstats.errors import ChartStatsError
from chartstats.utils.numeric import clamp

logger = logging.getLogger(__name__)

# Home-field bump in rating points
HOME_FIELD_POINTS = 1.5

# Seed offset for the average-team strength-of-record draws
SOR_SEED_OFFSET = 131

WIN_PROB_FLOOR = 0.05
WIN_PROB_CEILING = 0.95


@dataclass(frozen=True)
class SimulatedGame:
    """A single game on a simulated schedule."""
    opponent_id: str
    opponent_rating: float = 0.0
    opponent_name: Optional[str] = None
    is_conference: bool = False
    home_field: float = 0.0  # 1 home, 0 neutral, -1 away


@dataclass(frozen=True)
class SeasonSimulationInput:
    team_rating: float
    offense_rating: float
    defense_rating: float
    schedule: list[SimulatedGame]
    special_teams_rating: float = 0.0
    iterations: Optional[int] = None  # Settings default when omitted
    seed: Optional[int] = None  # Settings default when omitted


@dataclass(frozen=True)
class GameSimulationResult:
    opponent_id: str
    win_rate: float


@dataclass(frozen=True)
class SeasonSimulationResult:
    win_probability: float
    expected_wins: float
    win_out_probability: float
    conference_win_probability: float
    playoff_probability: float
    strength_of_schedule: float
    strength_of_record: float
    game_control: float
    game_results: list[GameSimulationResult] = field(default_factory=list)
    win_distribution: list[float] = field(default_factory=list)  # P(wins = k), k = 0..n_games


def game_win_probabilities(sim: SeasonSimulationInput) -> np.ndarray:
    """Per-game win probability for the team, clamped to [0.05, 0.95]."""
    if not sim.schedule:
        return np.zeros(0)
    opponent = np.array([g.opponent_rating for g in sim.schedule], dtype=np.float64)
    home = np.array([g.home_field for g in sim.schedule], dtype=np.float64)
    diff = sim.team_rating - opponent + home * HOME_FIELD_POINTS + sim.special_teams_rating * 0.1
    logits = diff / 6 + sim.offense_rating * 0.01 - sim.defense_rating * 0.01
    return np.clip(1.0 / (1.0 + np.exp(-logits)), WIN_PROB_FLOOR, WIN_PROB_CEILING)


def simulate_season_outcomes(sim: SeasonSimulationInput) -> SeasonSimulationResult:
    """Simulate a schedule many times and summarize the outcomes.

    Args:
        sim: Ratings, schedule, iteration count and seed

    Returns:
        SeasonSimulationResult with expected wins, win-out, conference,
        playoff, strength of schedule and record, and per-game win rates

    Raises:
        ChartStatsError: If the iteration count is not positive
    """
    settings = get_settings()
    iterations = settings.simulation_iterations if sim.iterations is None else sim.iterations
    seed = settings.simulation_seed if sim.seed is None else sim.seed
    if iterations <= 0:
        raise ChartStatsError(f"Simulation iterations must be positive, got {iterations}")

    n_games = len(sim.schedule)
    rng = np.random.default_rng(seed)
    sor_rng = np.random.default_rng(seed + SOR_SEED_OFFSET)

    probs = game_win_probabilities(sim)
    outcomes = rng.random(size=(iterations, n_games)) < probs[np.newaxis, :]
    wins = outcomes.sum(axis=1)

    conference_mask = np.array([g.is_conference for g in sim.schedule], dtype=bool)
    conference_games = int(conference_mask.sum())
    conference_wins = outcomes[:, conference_mask].sum(axis=1) if conference_games else np.zeros(iterations)

    expected_wins = float(wins.mean())
    win_out = float(np.mean(wins == n_games))
    conference_perfect = float(np.mean(conference_wins == conference_games)) if conference_games else 0.0
    playoff = (wins >= n_games - 1) | (
        (wins >= math.ceil(n_games * 0.75))
        & (conference_wins >= max(1, math.floor(conference_games * 0.7)))
    )

    opponent_ratings = np.array([g.opponent_rating for g in sim.schedule], dtype=np.float64)
    strength_of_schedule = float(opponent_ratings.mean()) if n_games else 0.0

    # How often an average (rating 0) team matches the expected win total
    home = np.array([g.home_field for g in sim.schedule], dtype=np.float64)
    average_probs = np.clip(
        1.0 / (1.0 + np.exp(-((0 - opponent_ratings + home * HOME_FIELD_POINTS) / 6))),
        WIN_PROB_FLOOR,
        WIN_PROB_CEILING,
    )
    average_wins = (sor_rng.random(size=(iterations, n_games)) < average_probs[np.newaxis, :]).sum(axis=1)
    strength_of_record = float(np.mean(average_wins >= expected_wins))

    distribution = np.bincount(wins, minlength=n_games + 1) / iterations
    per_game = outcomes.mean(axis=0) if n_games else np.zeros(0)

    logger.debug(
        f"Simulated {n_games} games x {iterations} iterations (seed {seed}): "
        f"{expected_wins:.2f} expected wins"
    )

    return SeasonSimulationResult(
        win_probability=expected_wins / n_games if n_games else 0.0,
        expected_wins=expected_wins,
        win_out_probability=win_out,
        conference_win_probability=conference_perfect,
        playoff_probability=float(np.mean(playoff)),
        strength_of_schedule=strength_of_schedule,
        strength_of_record=strength_of_record,
        game_control=clamp(0.5 + (sim.team_rating - strength_of_schedule) / 40, 0, 1),
        game_results=[
            GameSimulationResult(opponent_id=g.opponent_id, win_rate=float(rate))
            for g, rate in zip(sim.schedule, per_game)
        ],
        win_distribution=[float(p) for p in distribution],
    )
