"""
Stack pipeline: per-game stat stacks, cached lookups and season reports.

A stack is every metric the engine produces for one game (optionally scoped
to one unit). Season reports roll the stacks of a team's games up into an
aggregate and a projection.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from chartstats.data.cache import (
    SeasonEntry,
    StackEntry,
    StatsCache,
    event_signature,
    format_timestamp_ms,
    latest_event_timestamp,
    now_seconds,
    parse_timestamp_ms,
    season_signature,
    stack_key,
)
from chartstats.data.drives import derive_drive_records
from chartstats.data.events import ChartUnit, DriveRecord, PlayEvent, TimeoutState
from chartstats.models.advanced import AdvancedAnalytics, compute_advanced_analytics
from chartstats.models.box_score import (
    BaseCounts,
    BoxScoreMetrics,
    ExplosiveMetrics,
    RedZoneSummary,
    ScoringSummary,
    TurnoverSummary,
    compute_base_counts,
    compute_box_score,
    compute_explosive_metrics,
    compute_red_zone_metrics,
    compute_scoring_summary,
    compute_success_rate,
    compute_turnover_summary,
    compute_yards_per_play,
)
from chartstats.models.core_metrics import CoreWinningMetrics, compute_core_winning_metrics
from chartstats.models.defense import DefensiveMetrics, compute_defensive_metrics
from chartstats.models.expected_points import clock_order_key
from chartstats.models.offense import (
    PassingEfficiency,
    PossessionMetrics,
    RushingEfficiency,
    compute_passing_efficiency,
    compute_possession_metrics,
    compute_rushing_efficiency,
)
from chartstats.models.play_rules import filter_events_for_unit
from chartstats.models.special_teams import SpecialTeamsMetrics, compute_special_teams_metrics
from chartstats.season.aggregate import (
    EfficiencySnapshot,
    GameMetricSnapshot,
    SeasonAggregate,
    aggregate_season_metrics,
)
from chartstats.season.projection import SeasonProjection, project_season

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatsStack:
    """Every metric computed for one game and unit scope."""
    base: BaseCounts
    box: BoxScoreMetrics
    core: CoreWinningMetrics
    advanced: AdvancedAnalytics
    drives: list[DriveRecord]
    turnovers: TurnoverSummary
    explosives: ExplosiveMetrics
    red_zone: RedZoneSummary
    scoring: ScoringSummary
    defense: DefensiveMetrics
    special_teams: SpecialTeamsMetrics
    passing: PassingEfficiency
    rushing: RushingEfficiency
    possession: PossessionMetrics
    timeouts: Optional[TimeoutState]
    game: GameMetricSnapshot


@dataclass(frozen=True)
class GameMeta:
    id: str
    opponent_name: Optional[str] = None
    start_time: Optional[str] = None
    season_label: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class GameStack:
    game_id: str
    stack: StatsStack
    opponent_name: Optional[str] = None
    start_time: Optional[str] = None
    season_label: Optional[str] = None
    status: Optional[str] = None
    last_event_at: Optional[str] = None
    signature: str = ""


@dataclass(frozen=True)
class SeasonReport:
    stacks: list[GameStack] = field(default_factory=list)
    aggregate: SeasonAggregate = field(default_factory=SeasonAggregate)
    projection: Optional[SeasonProjection] = None


def latest_timeout_state(events: list[PlayEvent]) -> Optional[TimeoutState]:
    """Timeouts charted on the latest snap that has them."""
    for ev in sorted(events, key=clock_order_key, reverse=True):
        if ev.timeouts_before is not None:
            return ev.timeouts_before
    return None


# =============================================================================
# Stack
# =============================================================================

def build_stats_stack(
    events: list[PlayEvent],
    unit: Optional[ChartUnit] = None,
    game_id: Optional[str] = None,
    drives: Optional[list[DriveRecord]] = None,
    opponent_events: Optional[list[PlayEvent]] = None,
    opponent_drives: Optional[list[DriveRecord]] = None,
    opponent_box: Optional[BoxScoreMetrics] = None,
    season_id: Optional[str] = None,
    opponent_id: Optional[str] = None,
) -> StatsStack:
    """
    Compute the full stat stack for one game.

    Args:
        events: Normalized plays for the game
        unit: Unit scope (None keeps every play)
        game_id: Game identifier (taken from the plays when omitted)
        drives: Precomputed drive records (derived when omitted)
        opponent_events: The opponent's own charted plays, if any
        opponent_drives: The opponent's drive records
        opponent_box: The opponent's box score, enables margins
        season_id: Season identifier (taken from the plays when omitted)
        opponent_id: Opponent identifier (taken from the plays when omitted)

    Returns:
        StatsStack
    """
    scoped = filter_events_for_unit(events, unit)
    base = compute_base_counts(scoped)
    opponent_base = compute_base_counts(opponent_events) if opponent_events else None
    box = compute_box_score(scoped, unit, base)

    scoped_drives = drives or derive_drive_records(scoped, unit)
    all_drives = drives or derive_drive_records(events, unit)
    if not opponent_drives and opponent_events:
        opponent_drives = derive_drive_records(opponent_events)

    defense = compute_defensive_metrics(events, drives)
    special_teams = compute_special_teams_metrics(events, all_drives, opponent_events or [], opponent_drives or [])
    core = compute_core_winning_metrics(box, opponent_box)
    advanced = compute_advanced_analytics(
        box,
        base,
        drives=scoped_drives,
        defense=defense,
        events=scoped,
        opponent_box=opponent_box,
        opponent_base=opponent_base,
        unit=unit,
        special_teams=special_teams,
    )

    turnovers = compute_turnover_summary(base, opponent_base, opponent_box)
    explosives = compute_explosive_metrics(scoped, unit)
    red_zone = compute_red_zone_metrics(scoped, scoped_drives, unit)
    scoring = compute_scoring_summary(base, 1)
    timeouts = latest_timeout_state(events)

    first = scoped[0] if scoped else None
    game = GameMetricSnapshot(
        game_id=game_id or (first.game_id if first else None),
        season_id=season_id or (first.season_id if first else None),
        opponent_id=opponent_id or (first.opponent_id if first else None),
        turnover=turnovers,
        explosives=explosives,
        scoring=scoring,
        red_zone=red_zone,
        efficiency=EfficiencySnapshot(
            yards_per_play=compute_yards_per_play(scoped, unit),
            success=compute_success_rate(scoped, unit),
            third_down=box.third_down,
            fourth_down=box.fourth_down,
            late_down=box.late_down,
        ),
        special_teams=special_teams,
        defense=defense,
        timeouts=timeouts,
    )

    return StatsStack(
        base=base,
        box=box,
        core=core,
        advanced=advanced,
        drives=scoped_drives,
        turnovers=turnovers,
        explosives=explosives,
        red_zone=red_zone,
        scoring=scoring,
        defense=defense,
        special_teams=special_teams,
        passing=compute_passing_efficiency(events, ChartUnit.OFFENSE),
        rushing=compute_rushing_efficiency(events, ChartUnit.OFFENSE),
        possession=compute_possession_metrics(events, all_drives),
        timeouts=timeouts,
        game=game,
    )


# =============================================================================
# Cached lookups
# =============================================================================

def _unit_label(unit: Optional[ChartUnit]) -> str:
    return unit.value if unit else "ALL"


def _drives_fingerprint(drives: list[DriveRecord]) -> str:
    starts = sum(drive.start_field_position or 0 for drive in drives)
    yards = sum(drive.yards for drive in drives)
    plays = sum(len(drive.play_ids) for drive in drives)
    return f"{len(drives)}:{plays}:{starts:.1f}:{yards:.1f}"


def _box_fingerprint(box: BoxScoreMetrics) -> str:
    return (
        f"{box.plays}:{box.total_yards:.1f}:{box.explosives}:"
        f"{box.success_rate:.4f}:{box.turnovers}:{box.scoring_plays}"
    )


def stack_signature(
    events: list[PlayEvent],
    unit_label: str,
    game_id: Optional[str],
    drives: Optional[list[DriveRecord]] = None,
    opponent_events: Optional[list[PlayEvent]] = None,
    opponent_drives: Optional[list[DriveRecord]] = None,
    opponent_box: Optional[BoxScoreMetrics] = None,
) -> str:
    """Event signature plus a fingerprint of every input that shapes the stack."""
    extras = [unit_label, game_id or "no-game"]
    if drives is not None:
        extras.append(f"drives={_drives_fingerprint(drives)}")
    if opponent_events is not None:
        extras.append(f"opp=[{event_signature(opponent_events)}]")
    if opponent_drives is not None:
        extras.append(f"opp_drives={_drives_fingerprint(opponent_drives)}")
    if opponent_box is not None:
        extras.append(f"opp_box={_box_fingerprint(opponent_box)}")
    return event_signature(events, extras)


def get_cached_stack(
    cache: StatsCache,
    events: list[PlayEvent],
    unit: Optional[ChartUnit] = None,
    game_id: Optional[str] = None,
    drives: Optional[list[DriveRecord]] = None,
    opponent_events: Optional[list[PlayEvent]] = None,
    opponent_drives: Optional[list[DriveRecord]] = None,
    opponent_box: Optional[BoxScoreMetrics] = None,
) -> StackEntry:
    """
    Stack for a game and unit, recomputed only when the events changed.

    Args:
        cache: Shared StatsCache
        events: Normalized plays for the game
        unit: Unit scope
        game_id: Game identifier
        drives: Precomputed drive records
        opponent_events: Opponent's charted plays
        opponent_drives: Opponent drive records
        opponent_box: Opponent box score

    Returns:
        StackEntry (the stored entry itself on a signature match)
    """
    unit_label = _unit_label(unit)
    key = stack_key(game_id, unit_label)
    signature = stack_signature(
        events, unit_label, game_id, drives, opponent_events, opponent_drives, opponent_box
    )

    def compute() -> StackEntry:
        stack = build_stats_stack(
            events,
            unit=unit,
            game_id=game_id,
            drives=drives,
            opponent_events=opponent_events,
            opponent_drives=opponent_drives,
            opponent_box=opponent_box,
        )
        return StackEntry(
            key=key,
            signature=signature,
            stack=stack,
            last_event_at=format_timestamp_ms(latest_event_timestamp(events)),
            computed_at=now_seconds(),
        )

    return cache.get_stack(key, signature, compute)


def _modeled(stacks: list[GameStack]) -> list[GameStack]:
    return [entry for entry in stacks if entry.stack.base.plays > 0]


def _season_rollup(stacks: list[GameStack]) -> tuple[SeasonAggregate, SeasonProjection]:
    modeled = _modeled(stacks)
    aggregate = aggregate_season_metrics([entry.stack.game for entry in modeled])
    projection = project_season([entry.stack for entry in modeled])
    return aggregate, projection


def get_cached_season(cache: StatsCache, team_key: str, entries: list[GameStack]) -> SeasonEntry:
    """
    Season aggregate and projection for a team, recomputed only when a game changed.

    Args:
        cache: Shared StatsCache
        team_key: Team identifier
        entries: One GameStack per game (games without plays are skipped)

    Returns:
        SeasonEntry
    """
    signature = season_signature(
        [(entry.game_id, entry.signature, entry.stack.base.plays) for entry in entries]
    )

    def compute() -> SeasonEntry:
        aggregate, projection = _season_rollup(entries)
        latest = max((parse_timestamp_ms(entry.last_event_at) for entry in _modeled(entries)), default=0)
        return SeasonEntry(
            signature=signature,
            aggregate=aggregate,
            projection=projection,
            last_updated=format_timestamp_ms(latest),
            computed_at=now_seconds(),
        )

    return cache.get_season(team_key, signature, compute)


# =============================================================================
# Season report
# =============================================================================

def build_stacks_for_games(
    events: list[PlayEvent],
    games: list[GameMeta],
    cache: Optional[StatsCache] = None,
    team_key: Optional[str] = None,
) -> SeasonReport:
    """
    One stack per game plus the season aggregate and projection.

    Games without plays keep their (empty) stack but are left out of the
    aggregate and projection.

    Args:
        events: Normalized plays for every game of the team
        games: Game metadata, in schedule order
        cache: Shared StatsCache; without one everything is recomputed
        team_key: Season cache key (defaults to the plays' team id)

    Returns:
        SeasonReport
    """
    by_game: dict[str, list[PlayEvent]] = {}
    for ev in events:
        if ev.game_id:
            by_game.setdefault(ev.game_id, []).append(ev)

    stacks = []
    for game in games:
        game_events = by_game.get(game.id, [])
        if cache is not None:
            entry = get_cached_stack(cache, game_events, game_id=game.id)
            stack, signature, last_event_at = entry.stack, entry.signature, entry.last_event_at
        else:
            stack = build_stats_stack(game_events, game_id=game.id)
            signature = stack_signature(game_events, _unit_label(None), game.id)
            last_event_at = format_timestamp_ms(latest_event_timestamp(game_events))
        stacks.append(
            GameStack(
                game_id=game.id,
                stack=stack,
                opponent_name=game.opponent_name,
                start_time=game.start_time,
                season_label=game.season_label,
                status=game.status,
                last_event_at=last_event_at,
                signature=signature,
            )
        )

    logger.info(f"Built {len(stacks)} game stacks ({len(_modeled(stacks))} with plays)")

    if cache is not None:
        key = team_key or next((ev.team_id for ev in events if ev.team_id), "team")
        season = get_cached_season(cache, key, stacks)
        return SeasonReport(stacks=stacks, aggregate=season.aggregate, projection=season.projection)

    aggregate, projection = _season_rollup(stacks)
    return SeasonReport(stacks=stacks, aggregate=aggregate, projection=projection)
