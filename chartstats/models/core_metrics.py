"""Margin-based core winning metrics."""

from dataclasses import dataclass
from typing import Optional

from chartstats.models.box_score import BoxScoreMetrics
from chartstats.utils.numeric import safe_div

TOUCHDOWN_VALUE = 7
LATE_DOWN_CONVERSION_VALUE = 3


@dataclass(frozen=True)
class CoreWinningMetrics:
    """Team vs opponent margins. Positive is good for the team."""

    points_per_drive: float
    turnover_margin: int
    explosive_margin: int
    success_margin: float
    red_zone_efficiency: float


def estimate_points_per_drive(box: BoxScoreMetrics) -> float:
    """Bounded points-per-drive estimate.

    Scoring plays are valued as touchdowns, late-down conversions net of
    turnovers as field goals, normalized by late-down attempts.
    """
    if not box.plays or not box.late_down.attempts:
        return 0.0
    net_conversions = max(0, box.late_down.conversions - box.turnovers)
    points = box.scoring_plays * TOUCHDOWN_VALUE + net_conversions * LATE_DOWN_CONVERSION_VALUE
    return points / max(box.late_down.attempts, 1)


def compute_core_winning_metrics(
    box: BoxScoreMetrics,
    opponent_box: Optional[BoxScoreMetrics] = None,
) -> CoreWinningMetrics:
    """Core margins from a team box score and an optional opponent box score.

    Without an opponent, the opponent side of every margin is zero.
    """
    opponent_explosives = opponent_box.explosives if opponent_box else 0
    opponent_success = opponent_box.success_rate if opponent_box else 0.0
    opponent_turnovers = opponent_box.turnovers if opponent_box else 0

    return CoreWinningMetrics(
        points_per_drive=estimate_points_per_drive(box),
        turnover_margin=opponent_turnovers - box.turnovers,
        explosive_margin=box.explosives - opponent_explosives,
        success_margin=box.success_rate - opponent_success,
        red_zone_efficiency=safe_div(box.scoring_plays, box.red_zone_trips),
    )
