"""
Season aggregation over per-game metric snapshots.

Per-game counts are pooled before rates are taken (a season third-down rate
is total conversions over total attempts, not a mean of game rates). Trend
series carry one point per game in game order.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import pandas as pd

from config.play_types import FIELD_GOAL_BANDS, FIELD_GOAL_LONG_BAND
from chartstats.data.events import TimeoutState
from chartstats.models.box_score import (
    ConversionSummary,
    ExplosiveMetrics,
    RedZoneSummary,
    ScoringSummary,
    SuccessSummary,
    TurnoverBuckets,
    TurnoverSummary,
    YardsPerPlaySummary,
    aggregate_conversion_summaries,
)
from chartstats.models.defense import (
    DefensiveMetrics,
    SituationalBreakdown,
    empty_situational,
    merge_situational,
)
from chartstats.models.special_teams import (
    FieldPositionMetrics,
    KickSplit,
    ReturnLine,
    SpecialTeamsMetrics,
)
from chartstats.utils.numeric import mean_or_none, safe_div

logger = logging.getLogger(__name__)

FIELD_GOAL_BAND_KEYS = tuple(name for _, name in FIELD_GOAL_BANDS) + (FIELD_GOAL_LONG_BAND,)


# =============================================================================
# Per-game snapshot
# =============================================================================

@dataclass(frozen=True)
class EfficiencySnapshot:
    yards_per_play: YardsPerPlaySummary = field(default_factory=YardsPerPlaySummary)
    success: SuccessSummary = field(default_factory=SuccessSummary)
    third_down: ConversionSummary = field(default_factory=ConversionSummary)
    fourth_down: ConversionSummary = field(default_factory=ConversionSummary)
    late_down: ConversionSummary = field(default_factory=ConversionSummary)


@dataclass(frozen=True)
class GameMetricSnapshot:
    """The slice of a game's stack that feeds season aggregation."""
    game_id: Optional[str]
    season_id: Optional[str]
    opponent_id: Optional[str]
    turnover: TurnoverSummary
    explosives: ExplosiveMetrics
    scoring: ScoringSummary
    red_zone: RedZoneSummary
    efficiency: EfficiencySnapshot
    special_teams: Optional[SpecialTeamsMetrics] = None
    defense: Optional[DefensiveMetrics] = None
    timeouts: Optional[TimeoutState] = None


# =============================================================================
# Season containers
# =============================================================================

@dataclass(frozen=True)
class TrendPoint:
    game_id: Optional[str]
    opponent_id: Optional[str]
    value: float


@dataclass(frozen=True)
class TurnoverAggregate:
    average_margin: float = 0.0
    takeaways_per_game: float = 0.0
    giveaways_per_game: float = 0.0
    trend: list[TrendPoint] = field(default_factory=list)


@dataclass(frozen=True)
class ScoringAggregate:
    average_points_for: float = 0.0
    average_points_allowed: float = 0.0
    average_differential: float = 0.0
    trend: list[TrendPoint] = field(default_factory=list)


@dataclass(frozen=True)
class ExplosiveRates:
    offense_rate: float = 0.0
    defense_rate: float = 0.0
    offense_run_rate: float = 0.0
    offense_pass_rate: float = 0.0


@dataclass(frozen=True)
class RedZoneRates:
    scoring_pct: float = 0.0
    td_pct: float = 0.0


@dataclass(frozen=True)
class RedZoneAggregate:
    offense: RedZoneRates = field(default_factory=RedZoneRates)
    defense: RedZoneRates = field(default_factory=RedZoneRates)


@dataclass(frozen=True)
class NonOffensiveAggregate:
    per_game: float = 0.0
    total: int = 0


@dataclass(frozen=True)
class FieldGoalAggregate:
    overall_pct: float = 0.0
    extra_point_pct: float = 0.0
    longest_made: float = 0.0
    bands: dict[str, KickSplit] = field(
        default_factory=lambda: {key: KickSplit() for key in FIELD_GOAL_BAND_KEYS}
    )


@dataclass(frozen=True)
class PuntingAggregate:
    punts: int = 0
    gross: float = 0.0
    net: float = 0.0
    touchback_pct: float = 0.0
    inside_20_pct: float = 0.0
    longest: float = 0.0
    opponent_average_start: Optional[float] = None


@dataclass(frozen=True)
class KickoffAggregate:
    touchback_pct: float = 0.0
    opponent_average_start: Optional[float] = None
    longest_return_allowed: float = 0.0


@dataclass(frozen=True)
class SpecialTeamsAggregate:
    field_position: FieldPositionMetrics = field(default_factory=FieldPositionMetrics)
    kickoff_returns: ReturnLine = field(default_factory=ReturnLine)
    punt_returns: ReturnLine = field(default_factory=ReturnLine)
    field_goals: FieldGoalAggregate = field(default_factory=FieldGoalAggregate)
    punting: PuntingAggregate = field(default_factory=PuntingAggregate)
    kickoff: KickoffAggregate = field(default_factory=KickoffAggregate)


@dataclass(frozen=True)
class StopAggregate:
    attempts: int = 0
    stops: int = 0
    conversions_allowed: int = 0
    stop_rate: float = 0.0
    situational: SituationalBreakdown = field(default_factory=empty_situational)


@dataclass(frozen=True)
class DefenseSituational:
    takeaways: SituationalBreakdown = field(default_factory=empty_situational)
    havoc: SituationalBreakdown = field(default_factory=empty_situational)
    tfl: SituationalBreakdown = field(default_factory=empty_situational)


@dataclass(frozen=True)
class DefenseAggregate:
    takeaways_per_game: float = 0.0
    takeaways_by_type: TurnoverBuckets = field(default_factory=TurnoverBuckets)
    third_down: StopAggregate = field(default_factory=StopAggregate)
    fourth_down: StopAggregate = field(default_factory=StopAggregate)
    three_and_out_rate: float = 0.0
    havoc_rate: float = 0.0
    tfl_per_game: float = 0.0
    sack_per_game: float = 0.0
    drives_faced: int = 0
    points_allowed_per_game: float = 0.0
    points_allowed_per_drive: float = 0.0
    red_zone: RedZoneRates = field(default_factory=RedZoneRates)
    situational: DefenseSituational = field(default_factory=DefenseSituational)


@dataclass(frozen=True)
class SeasonAggregate:
    games: int = 0
    turnover: TurnoverAggregate = field(default_factory=TurnoverAggregate)
    scoring: ScoringAggregate = field(default_factory=ScoringAggregate)
    explosives: ExplosiveRates = field(default_factory=ExplosiveRates)
    efficiency: EfficiencySnapshot = field(default_factory=EfficiencySnapshot)
    red_zone: RedZoneAggregate = field(default_factory=RedZoneAggregate)
    non_offensive_tds: NonOffensiveAggregate = field(default_factory=NonOffensiveAggregate)
    special_teams: SpecialTeamsAggregate = field(default_factory=SpecialTeamsAggregate)
    defense: DefenseAggregate = field(default_factory=DefenseAggregate)


# =============================================================================
# Per-game rows
# =============================================================================

def _game_row(game: GameMetricSnapshot) -> dict:
    """Flatten the additive counts of one game into a DataFrame row."""
    offense = game.explosives.offense
    efficiency = game.efficiency
    return {
        "game_id": game.game_id,
        "opponent_id": game.opponent_id,
        "turnover_margin": game.turnover.margin,
        "takeaways": game.turnover.takeaways,
        "giveaways": game.turnover.giveaways,
        "points_for": game.scoring.points_for,
        "points_allowed": game.scoring.points_allowed,
        "point_differential": game.scoring.point_differential,
        "non_offensive_tds": game.scoring.non_offensive.total,
        "offense_plays": offense.plays,
        "offense_explosives": offense.explosives,
        "defense_plays": game.explosives.defense.plays,
        "defense_explosives": game.explosives.defense.explosives,
        "run_plays": offense.run.plays,
        "run_explosives": offense.run.explosives,
        "pass_plays": offense.pass_.plays,
        "pass_explosives": offense.pass_.explosives,
        "ypp_plays": efficiency.yards_per_play.plays,
        "ypp_yards": efficiency.yards_per_play.yards,
        "success_plays": efficiency.success.plays,
        "successes": efficiency.success.successes,
        "rz_offense_trips": game.red_zone.offense.trips,
        "rz_offense_scores": game.red_zone.offense.scores,
        "rz_offense_tds": game.red_zone.offense.touchdowns,
        "rz_defense_trips": game.red_zone.defense.trips,
        "rz_defense_scores": game.red_zone.defense.scores,
        "rz_defense_tds": game.red_zone.defense.touchdowns,
    }


def _defense_row(defense: DefensiveMetrics) -> dict:
    return {
        "takeaways": defense.takeaways.total,
        "snaps": defense.snaps,
        "havoc_plays": defense.havoc.havoc_plays,
        "drives_faced": defense.drives.drives_faced,
        "three_and_outs": defense.three_and_outs.count,
        "points_allowed": defense.drives.points_allowed,
        "tfl": defense.tfls.total,
        "sacks": defense.tfls.sacks,
        "rz_trips": defense.red_zone.trips,
        "rz_scores": defense.red_zone.scores,
        "rz_tds": defense.red_zone.touchdowns,
    }


def _trend(frame: pd.DataFrame, column: str) -> list[TrendPoint]:
    return [
        TrendPoint(game_id=row.game_id, opponent_id=row.opponent_id, value=float(getattr(row, column)))
        for row in frame.itertuples(index=False)
    ]


# =============================================================================
# Special teams
# =============================================================================

def _merge_return_lines(lines: list[ReturnLine]) -> ReturnLine:
    returns = sum(line.returns for line in lines)
    yards = sum(line.yards for line in lines)
    return ReturnLine(
        returns=returns,
        yards=yards,
        average=safe_div(yards, returns),
        longest=max((line.longest for line in lines), default=0.0),
        touchdowns=sum(line.touchdowns for line in lines),
    )


def _aggregate_field_goals(metrics: list[SpecialTeamsMetrics]) -> FieldGoalAggregate:
    splits = [st.field_goals.team for st in metrics]
    attempts = sum(s.overall.attempts for s in splits)
    made = sum(s.overall.made for s in splits)
    xp_attempts = sum(s.extra_point.attempts for s in splits)
    xp_made = sum(s.extra_point.made for s in splits)
    bands = {}
    for key in FIELD_GOAL_BAND_KEYS:
        band_attempts = sum(s.bands.get(key, KickSplit()).attempts for s in splits)
        band_made = sum(s.bands.get(key, KickSplit()).made for s in splits)
        bands[key] = KickSplit(attempts=band_attempts, made=band_made, pct=safe_div(band_made, band_attempts))
    return FieldGoalAggregate(
        overall_pct=safe_div(made, attempts),
        extra_point_pct=safe_div(xp_made, xp_attempts),
        longest_made=max((s.longest_made for s in splits), default=0.0),
        bands=bands,
    )


def _weighted_start(pairs: list[tuple[Optional[float], int]]) -> Optional[float]:
    """Average of per-game starts weighted by kick count, ignoring games without one."""
    counted = [(start, n) for start, n in pairs if start is not None and n]
    total = sum(n for _, n in counted)
    if not total:
        return None
    return sum(start * n for start, n in counted) / total


def _aggregate_punting(metrics: list[SpecialTeamsMetrics]) -> PuntingAggregate:
    lines = [st.punting.team for st in metrics]
    punts = sum(line.punts for line in lines)
    return PuntingAggregate(
        punts=punts,
        gross=safe_div(sum(line.yards for line in lines), punts),
        net=safe_div(sum(line.net * line.punts for line in lines), punts),
        touchback_pct=safe_div(sum(line.touchbacks for line in lines), punts),
        inside_20_pct=safe_div(sum(line.inside_20 for line in lines), punts),
        longest=max((line.longest for line in lines), default=0.0),
        opponent_average_start=_weighted_start([(line.opponent_average_start, line.punts) for line in lines]),
    )


def _aggregate_kickoffs(metrics: list[SpecialTeamsMetrics]) -> KickoffAggregate:
    kickoffs = [st.kickoff for st in metrics]
    kicks = sum(ko.kicks for ko in kickoffs)
    return KickoffAggregate(
        touchback_pct=safe_div(sum(ko.touchbacks for ko in kickoffs), kicks),
        opponent_average_start=_weighted_start([(ko.opponent_average_start, ko.kicks) for ko in kickoffs]),
        longest_return_allowed=max((ko.longest_return_allowed for ko in kickoffs), default=0.0),
    )


def aggregate_special_teams(games: list[GameMetricSnapshot]) -> SpecialTeamsAggregate:
    metrics = [g.special_teams for g in games if g.special_teams is not None]
    offense_start = mean_or_none(st.field_position.offense_start for st in metrics)
    defense_start = mean_or_none(st.field_position.defense_start for st in metrics)
    net_start = None
    if offense_start is not None and defense_start is not None:
        net_start = offense_start - defense_start
    return SpecialTeamsAggregate(
        field_position=FieldPositionMetrics(
            offense_start=offense_start,
            defense_start=defense_start,
            net_start=net_start,
        ),
        kickoff_returns=_merge_return_lines([st.kickoff_returns.team for st in metrics]),
        punt_returns=_merge_return_lines([st.punt_returns.team for st in metrics]),
        field_goals=_aggregate_field_goals(metrics),
        punting=_aggregate_punting(metrics),
        kickoff=_aggregate_kickoffs(metrics),
    )


# =============================================================================
# Defense
# =============================================================================

def _merge_stops(stops: list) -> StopAggregate:
    attempts = sum(s.attempts for s in stops)
    stopped = sum(s.stops for s in stops)
    situational = empty_situational()
    for s in stops:
        situational = merge_situational(situational, s.situational)
    return StopAggregate(
        attempts=attempts,
        stops=stopped,
        conversions_allowed=sum(s.conversions_allowed for s in stops),
        stop_rate=safe_div(stopped, attempts),
        situational=situational,
    )


def _merge_all(breakdowns: list[SituationalBreakdown]) -> SituationalBreakdown:
    merged = empty_situational()
    for breakdown in breakdowns:
        merged = merge_situational(merged, breakdown)
    return merged


def aggregate_defense(games: list[GameMetricSnapshot]) -> DefenseAggregate:
    """Defensive season totals over games that carry defensive metrics."""
    defenses = [g.defense for g in games if g.defense is not None]
    if not defenses:
        return DefenseAggregate()

    totals = pd.DataFrame([_defense_row(d) for d in defenses]).sum()
    count = len(defenses)
    by_type = [d.takeaways.by_type for d in defenses]

    return DefenseAggregate(
        takeaways_per_game=totals["takeaways"] / count,
        takeaways_by_type=TurnoverBuckets(
            interceptions=sum(b.interceptions for b in by_type),
            fumbles=sum(b.fumbles for b in by_type),
            downs=sum(b.downs for b in by_type),
            blocked_kicks=sum(b.blocked_kicks for b in by_type),
            other=sum(b.other for b in by_type),
        ),
        third_down=_merge_stops([d.third_down for d in defenses]),
        fourth_down=_merge_stops([d.fourth_down for d in defenses]),
        three_and_out_rate=safe_div(totals["three_and_outs"], totals["drives_faced"]),
        havoc_rate=safe_div(totals["havoc_plays"], totals["snaps"]),
        tfl_per_game=totals["tfl"] / count,
        sack_per_game=totals["sacks"] / count,
        drives_faced=int(totals["drives_faced"]),
        points_allowed_per_game=totals["points_allowed"] / count,
        points_allowed_per_drive=safe_div(totals["points_allowed"], totals["drives_faced"]),
        red_zone=RedZoneRates(
            scoring_pct=safe_div(totals["rz_scores"], totals["rz_trips"]),
            td_pct=safe_div(totals["rz_tds"], totals["rz_trips"]),
        ),
        situational=DefenseSituational(
            takeaways=_merge_all([d.takeaways.situational for d in defenses]),
            havoc=_merge_all([d.havoc.situational for d in defenses]),
            tfl=_merge_all([d.tfls.situational for d in defenses]),
        ),
    )


# =============================================================================
# Season aggregate
# =============================================================================

def aggregate_season_metrics(games: list[GameMetricSnapshot]) -> SeasonAggregate:
    """
    Roll per-game snapshots up into season averages, rates and trends.

    Args:
        games: One snapshot per game, in game order

    Returns:
        SeasonAggregate (all zeros with empty trends when there are no games)
    """
    n_games = len(games)
    if n_games == 0:
        return SeasonAggregate()

    frame = pd.DataFrame([_game_row(g) for g in games])
    totals = frame.drop(columns=["game_id", "opponent_id"]).sum()

    efficiency = EfficiencySnapshot(
        yards_per_play=YardsPerPlaySummary(
            plays=int(totals["ypp_plays"]),
            yards=float(totals["ypp_yards"]),
            ypp=safe_div(totals["ypp_yards"], totals["ypp_plays"]),
        ),
        success=SuccessSummary(
            plays=int(totals["success_plays"]),
            successes=int(totals["successes"]),
            rate=safe_div(totals["successes"], totals["success_plays"]),
        ),
        third_down=aggregate_conversion_summaries([g.efficiency.third_down for g in games]),
        fourth_down=aggregate_conversion_summaries([g.efficiency.fourth_down for g in games]),
        late_down=aggregate_conversion_summaries([g.efficiency.late_down for g in games]),
    )

    logger.debug(f"Aggregated {n_games} games: {efficiency.yards_per_play.ypp:.2f} ypp")

    return SeasonAggregate(
        games=n_games,
        turnover=TurnoverAggregate(
            average_margin=totals["turnover_margin"] / n_games,
            takeaways_per_game=totals["takeaways"] / n_games,
            giveaways_per_game=totals["giveaways"] / n_games,
            trend=_trend(frame, "turnover_margin"),
        ),
        scoring=ScoringAggregate(
            average_points_for=totals["points_for"] / n_games,
            average_points_allowed=totals["points_allowed"] / n_games,
            average_differential=totals["point_differential"] / n_games,
            trend=_trend(frame, "point_differential"),
        ),
        explosives=ExplosiveRates(
            offense_rate=safe_div(totals["offense_explosives"], totals["offense_plays"]),
            defense_rate=safe_div(totals["defense_explosives"], totals["defense_plays"]),
            offense_run_rate=safe_div(totals["run_explosives"], totals["run_plays"]),
            offense_pass_rate=safe_div(totals["pass_explosives"], totals["pass_plays"]),
        ),
        efficiency=efficiency,
        red_zone=RedZoneAggregate(
            offense=RedZoneRates(
                scoring_pct=safe_div(totals["rz_offense_scores"], totals["rz_offense_trips"]),
                td_pct=safe_div(totals["rz_offense_tds"], totals["rz_offense_trips"]),
            ),
            defense=RedZoneRates(
                scoring_pct=safe_div(totals["rz_defense_scores"], totals["rz_defense_trips"]),
                td_pct=safe_div(totals["rz_defense_tds"], totals["rz_defense_trips"]),
            ),
        ),
        non_offensive_tds=NonOffensiveAggregate(
            per_game=totals["non_offensive_tds"] / n_games,
            total=int(totals["non_offensive_tds"]),
        ),
        special_teams=aggregate_special_teams(games),
        defense=aggregate_defense(games),
    )


def season_trend_frame(aggregate: SeasonAggregate) -> pd.DataFrame:
    """Turnover-margin and point-differential trends as one row per game."""
    columns = ["game_id", "opponent_id", "turnover_margin", "point_differential"]
    if not aggregate.turnover.trend:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(
        {
            "game_id": [pt.game_id for pt in aggregate.turnover.trend],
            "opponent_id": [pt.opponent_id for pt in aggregate.turnover.trend],
            "turnover_margin": [pt.value for pt in aggregate.turnover.trend],
            "point_differential": [pt.value for pt in aggregate.scoring.trend],
        },
        columns=columns,
    )
