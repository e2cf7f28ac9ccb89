"""Base counts and box score statistics for a list of plays.

The box score is descriptive: counts, yards and rates for one side of one
game with no opponent-relative context. Every rate is guarded so an empty
sample yields 0 rather than NaN, and field-position averages are None when
no play contributes.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from config.settings import get_settings
from chartstats.data.drives import derive_drive_records, drive_side, plays_by_drive
from chartstats.data.events import (
    OPPONENT,
    TEAM,
    ChartUnit,
    DriveRecord,
    DriveResult,
    PlayEvent,
    ScoringEvent,
    TurnoverEvent,
)
from chartstats.models.play_rules import (
    filter_events_for_unit,
    is_explosive_play,
    is_red_zone_snap,
    is_scoring_play,
    is_series_conversion,
    is_success_eligible,
    is_successful_play,
    is_touchdown,
    rate_pool,
    resolve_play_side,
    scrimmage_plays,
)
from chartstats.utils.numeric import mean_or_none, safe_div

logger = logging.getLogger(__name__)


# =============================================================================
# Containers
# =============================================================================

@dataclass(frozen=True)
class PenaltyTotals:
    count: int = 0
    yards: float = 0.0


@dataclass(frozen=True)
class BaseCounts:
    """Raw tallies over a list of plays."""

    plays: int
    total_yards: float
    explosives: int
    scoring_plays: int
    turnovers: int
    penalties: PenaltyTotals
    first_downs: int
    drives: int
    points_for: float = 0.0
    points_allowed: float = 0.0
    scoring_events: tuple[ScoringEvent, ...] = ()
    turnover_events: tuple[TurnoverEvent, ...] = ()


@dataclass(frozen=True)
class ConversionSummary:
    attempts: int = 0
    conversions: int = 0
    rate: float = 0.0


@dataclass(frozen=True)
class SuccessSummary:
    plays: int = 0
    successes: int = 0
    rate: float = 0.0


@dataclass(frozen=True)
class YardsPerPlaySummary:
    plays: int = 0
    yards: float = 0.0
    ypp: float = 0.0


@dataclass(frozen=True)
class BoxScoreMetrics:
    """Per-entity box score. average_start/average_depth are None without data."""

    plays: int
    total_yards: float
    yards_per_play: float
    explosives: int
    explosive_rate: float
    turnovers: int
    scoring_plays: int
    success_rate: float
    third_down: ConversionSummary
    fourth_down: ConversionSummary
    late_down: ConversionSummary
    red_zone_trips: int
    average_start: Optional[float]
    average_depth: Optional[float]


@dataclass(frozen=True)
class TurnoverBuckets:
    interceptions: int = 0
    fumbles: int = 0
    downs: int = 0
    blocked_kicks: int = 0
    other: int = 0

    @property
    def total(self) -> int:
        return self.interceptions + self.fumbles + self.downs + self.blocked_kicks + self.other


@dataclass(frozen=True)
class TurnoverSummary:
    takeaways: int
    giveaways: int
    margin: int
    takeaways_by_type: TurnoverBuckets
    giveaways_by_type: TurnoverBuckets
    include_turnover_on_downs: bool


@dataclass(frozen=True)
class ExplosiveLine:
    plays: int = 0
    explosives: int = 0
    rate: float = 0.0


@dataclass(frozen=True)
class ExplosiveBreakdown:
    plays: int
    explosives: int
    rate: float
    run: ExplosiveLine
    pass_: ExplosiveLine
    special_teams: ExplosiveLine


@dataclass(frozen=True)
class ExplosiveMetrics:
    offense: ExplosiveBreakdown
    defense: ExplosiveBreakdown


@dataclass(frozen=True)
class NonOffensiveTouchdowns:
    defense: int = 0
    special_teams: int = 0
    total: int = 0
    rate: float = 0.0  # Share of the team's touchdowns


@dataclass(frozen=True)
class ScoringSummary:
    points_for: float
    points_allowed: float
    point_differential: float
    points_per_game: float
    points_allowed_per_game: float
    non_offensive: NonOffensiveTouchdowns


@dataclass(frozen=True)
class RedZoneLine:
    trips: int = 0
    touchdowns: int = 0
    field_goals: int = 0
    scores: int = 0
    empty: int = 0
    scoring_pct: float = 0.0
    touchdown_pct: float = 0.0


@dataclass(frozen=True)
class RedZoneSummary:
    offense: RedZoneLine
    defense: RedZoneLine


# =============================================================================
# Base counts and box score
# =============================================================================

def compute_base_counts(events: list[PlayEvent]) -> BaseCounts:
    """Tally plays, yards, explosives, scores, turnovers, penalties and drives.

    Args:
        events: Normalized plays

    Returns:
        BaseCounts. Drives is the number of distinct drive numbers, or 1 when
        there are plays but none carry a drive number.
    """
    penalty_count = 0
    penalty_yards = 0.0
    drive_numbers = set()
    scoring_events = []
    turnover_events = []
    points_for = 0.0
    points_allowed = 0.0

    for ev in events:
        for penalty in ev.penalties:
            if penalty.occurred:
                penalty_count += 1
                penalty_yards += penalty.yards or 0
        if ev.drive_number is not None:
            drive_numbers.add(ev.drive_number)
        if ev.scoring is not None:
            scoring_events.append(ev.scoring)
            if ev.scoring.scoring_team_side == OPPONENT:
                points_allowed += ev.scoring.points
            else:
                points_for += ev.scoring.points
        if ev.turnover_detail is not None:
            turnover_events.append(ev.turnover_detail)

    return BaseCounts(
        plays=len(events),
        total_yards=sum(ev.gained_yards or 0 for ev in events),
        explosives=sum(1 for ev in events if ev.explosive),
        scoring_plays=sum(1 for ev in events if is_scoring_play(ev)),
        turnovers=sum(1 for ev in events if ev.turnover),
        penalties=PenaltyTotals(count=penalty_count, yards=penalty_yards),
        first_downs=sum(1 for ev in events if ev.first_down),
        drives=len(drive_numbers) or (1 if events else 0),
        points_for=points_for,
        points_allowed=points_allowed,
        scoring_events=tuple(scoring_events),
        turnover_events=tuple(turnover_events),
    )


def compute_success_rate(events: list[PlayEvent], unit: Optional[ChartUnit] = None) -> SuccessSummary:
    """Success rate over success-eligible plays of the unit's pool."""
    candidates = [ev for ev in rate_pool(events, unit) if is_success_eligible(ev)]
    successes = sum(1 for ev in candidates if is_successful_play(ev))
    return SuccessSummary(
        plays=len(candidates),
        successes=successes,
        rate=safe_div(successes, len(candidates)),
    )


def compute_yards_per_play(events: list[PlayEvent], unit: Optional[ChartUnit] = None) -> YardsPerPlaySummary:
    pool = rate_pool(events, unit)
    yards = sum(ev.gained_yards or 0 for ev in pool)
    return YardsPerPlaySummary(plays=len(pool), yards=yards, ypp=safe_div(yards, len(pool)))


def compute_conversion_rate(
    events: list[PlayEvent],
    downs: tuple[int, ...],
    unit: Optional[ChartUnit] = None,
) -> ConversionSummary:
    """Series conversions on the given downs.

    Args:
        events: Normalized plays
        downs: Downs that count as attempts, e.g. (3,) or (3, 4)
        unit: Unit whose snaps are considered (offense when None)
    """
    side = unit if unit in (ChartUnit.OFFENSE, ChartUnit.DEFENSE) else ChartUnit.OFFENSE
    attempts = [ev for ev in scrimmage_plays(events, side) if ev.down in downs]
    conversions = sum(1 for ev in attempts if is_series_conversion(ev))
    return ConversionSummary(
        attempts=len(attempts),
        conversions=conversions,
        rate=safe_div(conversions, len(attempts)),
    )


def aggregate_conversion_summaries(summaries: list[ConversionSummary]) -> ConversionSummary:
    attempts = sum(s.attempts for s in summaries)
    conversions = sum(s.conversions for s in summaries)
    return ConversionSummary(attempts=attempts, conversions=conversions, rate=safe_div(conversions, attempts))


def compute_box_score(
    events: list[PlayEvent],
    unit: Optional[ChartUnit] = None,
    base: Optional[BaseCounts] = None,
) -> BoxScoreMetrics:
    """Box score for a unit (or every play when unit is None).

    Args:
        events: Normalized plays for one game
        unit: Optional unit scope
        base: Precomputed base counts for the same scope, reused when it matches

    Returns:
        BoxScoreMetrics
    """
    scoped = filter_events_for_unit(events, unit)
    if base is None or base.plays != len(scoped):
        base = compute_base_counts(scoped)

    success = compute_success_rate(scoped, unit)
    total_yards = sum(ev.gained_yards or 0 for ev in scoped)
    explosives = sum(1 for ev in scoped if is_explosive_play(ev))
    red_zone_drives = {
        ev.drive_number for ev in scoped
        if ev.drive_number is not None and is_red_zone_snap(ev)
    }
    eligible = [ev for ev in rate_pool(scoped, unit) if is_success_eligible(ev)]

    return BoxScoreMetrics(
        plays=len(scoped),
        total_yards=total_yards,
        yards_per_play=safe_div(total_yards, len(scoped)),
        explosives=explosives,
        explosive_rate=safe_div(explosives, len(scoped)),
        turnovers=base.turnovers,
        scoring_plays=base.scoring_plays,
        success_rate=success.rate,
        third_down=compute_conversion_rate(scoped, (3,), unit),
        fourth_down=compute_conversion_rate(scoped, (4,), unit),
        late_down=compute_conversion_rate(scoped, (3, 4), unit),
        red_zone_trips=len(red_zone_drives),
        average_start=mean_or_none(ev.field_position for ev in scoped),
        average_depth=mean_or_none(ev.distance for ev in eligible),
    )


# =============================================================================
# Turnovers, explosives, scoring, red zone
# =============================================================================

def _should_count_turnover(turnover: TurnoverEvent) -> bool:
    if turnover.type == "DOWNS" and not get_settings().include_turnover_on_downs:
        return False
    return True


def _bucket_turnovers(turnovers: list[TurnoverEvent]) -> TurnoverBuckets:
    counts = {"INTERCEPTION": 0, "FUMBLE": 0, "DOWNS": 0, "BLOCKED_KICK": 0}
    other = 0
    for turnover in turnovers:
        if turnover.type in counts:
            counts[turnover.type] += 1
        else:
            other += 1
    return TurnoverBuckets(
        interceptions=counts["INTERCEPTION"],
        fumbles=counts["FUMBLE"],
        downs=counts["DOWNS"],
        blocked_kicks=counts["BLOCKED_KICK"],
        other=other,
    )


def compute_turnover_summary(
    base: BaseCounts,
    opponent_base: Optional[BaseCounts] = None,
    opponent_box: Optional[BoxScoreMetrics] = None,
) -> TurnoverSummary:
    """Giveaways and takeaways by type with the resulting margin.

    Takeaways come from our own charted turnovers lost by the opponent; when
    none are charted, the opponent's own giveaways are used, then the
    opponent box score's turnover total.
    """
    counted = [t for t in base.turnover_events if _should_count_turnover(t)]
    giveaways = [t for t in counted if t.lost_by_side != OPPONENT]
    giveaways_by_type = _bucket_turnovers(giveaways)
    giveaway_count = len(giveaways)
    if giveaway_count == 0 and base.turnovers > 0:
        giveaway_count = base.turnovers
        giveaways_by_type = TurnoverBuckets(other=base.turnovers)

    takeaways = [t for t in counted if t.lost_by_side == OPPONENT]
    if not takeaways and opponent_base is not None:
        takeaways = [
            t for t in opponent_base.turnover_events
            if _should_count_turnover(t) and t.lost_by_side == TEAM
        ]
    takeaways_by_type = _bucket_turnovers(takeaways)
    takeaway_count = len(takeaways)
    if takeaway_count == 0 and opponent_box is not None and opponent_box.turnovers:
        takeaway_count = opponent_box.turnovers
        takeaways_by_type = TurnoverBuckets(other=opponent_box.turnovers)

    return TurnoverSummary(
        takeaways=takeaway_count,
        giveaways=giveaway_count,
        margin=takeaway_count - giveaway_count,
        takeaways_by_type=takeaways_by_type,
        giveaways_by_type=giveaways_by_type,
        include_turnover_on_downs=get_settings().include_turnover_on_downs,
    )


def _explosive_line(plays: list[PlayEvent]) -> ExplosiveLine:
    explosives = sum(1 for ev in plays if is_explosive_play(ev))
    return ExplosiveLine(plays=len(plays), explosives=explosives, rate=safe_div(explosives, len(plays)))


def _explosive_breakdown(events: list[PlayEvent]) -> ExplosiveBreakdown:
    overall = _explosive_line(events)
    return ExplosiveBreakdown(
        plays=overall.plays,
        explosives=overall.explosives,
        rate=overall.rate,
        run=_explosive_line([ev for ev in events if ev.play_family in ("RUN", "RPO")]),
        pass_=_explosive_line([ev for ev in events if ev.play_family == "PASS"]),
        special_teams=_explosive_line([ev for ev in events if ev.play_family == "SPECIAL_TEAMS"]),
    )


def compute_explosive_metrics(events: list[PlayEvent], unit: Optional[ChartUnit] = None) -> ExplosiveMetrics:
    """Explosive plays gained (offense and special teams) and allowed (defense)."""
    offense = []
    defense = []
    for ev in events:
        side = resolve_play_side(ev, unit)
        if side is ChartUnit.DEFENSE:
            defense.append(ev)
        else:
            offense.append(ev)
    return ExplosiveMetrics(offense=_explosive_breakdown(offense), defense=_explosive_breakdown(defense))


def compute_scoring_summary(base: BaseCounts, games_played: int = 1) -> ScoringSummary:
    """Points for/against and touchdowns scored by the defense or special teams."""
    team_touchdowns = [
        s for s in base.scoring_events
        if s.scoring_team_side != OPPONENT and is_touchdown(s)
    ]
    defensive = sum(
        1 for s in team_touchdowns
        if s.credited_to is ChartUnit.DEFENSE or s.type == "DEF_TD"
    )
    special_teams = sum(
        1 for s in team_touchdowns
        if s.credited_to is ChartUnit.SPECIAL_TEAMS or s.type == "ST_TD"
    )
    total = defensive + special_teams
    return ScoringSummary(
        points_for=base.points_for,
        points_allowed=base.points_allowed,
        point_differential=base.points_for - base.points_allowed,
        points_per_game=safe_div(base.points_for, games_played),
        points_allowed_per_game=safe_div(base.points_allowed, games_played),
        non_offensive=NonOffensiveTouchdowns(
            defense=defensive,
            special_teams=special_teams,
            total=total,
            rate=safe_div(total, len(team_touchdowns)),
        ),
    )


def _finalize_red_zone(counts: dict) -> RedZoneLine:
    return RedZoneLine(
        **counts,
        scoring_pct=safe_div(counts["scores"], counts["trips"]),
        touchdown_pct=safe_div(counts["touchdowns"], counts["trips"]),
    )


def compute_red_zone_metrics(
    events: list[PlayEvent],
    drives: Optional[list[DriveRecord]] = None,
    unit: Optional[ChartUnit] = None,
) -> RedZoneSummary:
    """Red zone trips and outcomes for drives with at least one red zone snap.

    A trip belongs to the defense when the drive's unit is DEFENSE, in which
    case the opponent's points count against it.
    """
    drives = drives or derive_drive_records(events, unit)
    by_drive = plays_by_drive(events)

    keys = ("trips", "touchdowns", "field_goals", "scores", "empty")
    offense = dict.fromkeys(keys, 0)
    defense = dict.fromkeys(keys, 0)

    for drive in drives:
        plays = by_drive.get(drive.drive_number, [])
        if not any(is_red_zone_snap(ev) for ev in plays):
            continue
        side = drive_side(drive, plays, unit)
        scoring_side = OPPONENT if side is ChartUnit.DEFENSE else TEAM

        touchdown = any(
            ev.scoring is not None and ev.scoring.scoring_team_side == scoring_side and is_touchdown(ev.scoring)
            for ev in plays
        )
        field_goal = any(
            ev.scoring is not None and ev.scoring.scoring_team_side == scoring_side and ev.scoring.type == "FG"
            for ev in plays
        )
        if not touchdown and not field_goal:
            touchdown = drive.result is DriveResult.TD
            field_goal = drive.result is DriveResult.FG

        bucket = defense if side is ChartUnit.DEFENSE else offense
        bucket["trips"] += 1
        if touchdown:
            bucket["touchdowns"] += 1
        if field_goal:
            bucket["field_goals"] += 1
        if touchdown or field_goal:
            bucket["scores"] += 1
        else:
            bucket["empty"] += 1

    return RedZoneSummary(offense=_finalize_red_zone(offense), defense=_finalize_red_zone(defense))
