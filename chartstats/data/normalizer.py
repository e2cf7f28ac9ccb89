"""Normalize raw charted rows into canonical PlayEvent records.

Rows come from an upstream store or a CSV export and may carry legacy column
names, numeric strings, or missing values. Normalization is total: any
mapping produces a PlayEvent, with missing fields defaulted rather than
raising. Legacy aliases are resolved here and nowhere else.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

from config.play_types import TURNOVER_RESULT_PATTERN
from chartstats.data.events import (
    OPPONENT,
    TEAM,
    ChartUnit,
    Participation,
    PenaltyEvent,
    PlayEvent,
    ScoreState,
    ScoringEvent,
    TimeoutState,
    TurnoverEvent,
    parse_unit,
)
from chartstats.models.play_rules import (
    classify_explosive,
    is_scoring_result,
    points_from_result,
    scoring_type_from_result,
    turnover_type_from_result,
)
from chartstats.utils.field import absolute_clock_seconds, field_zone, yard_line_from_ball_on
from chartstats.utils.numeric import coerce_bool, coerce_float, coerce_int

logger = logging.getLogger(__name__)

# Legacy column name -> canonical column name
LEGACY_ALIASES = {
    "opponent": "opponent_name",
    "has_motion": "motion",
    "has_shift": "shift",
    "is_play_action": "play_action",
    "is_shot_play": "shot",
    "offensive_personnel": "offensive_personnel_code",
    "front": "front_code",
    "coverage": "coverage_shell_post",
    "pressure": "pressure_code",
}


def _get(row: Mapping, key: str, default: Any = None) -> Any:
    """Read a column, treating pandas NaN and empty strings as missing."""
    value = row.get(key, default)
    if value is None:
        return default
    if isinstance(value, float) and value != value:
        return default
    if isinstance(value, str) and not value.strip():
        return default
    return value


def _text(row: Mapping, key: str) -> Optional[str]:
    value = _get(row, key)
    return str(value).strip() if value is not None else None


def resolve_aliases(row: Mapping) -> dict:
    """Copy a row with legacy column names folded into canonical ones.

    Canonical columns win when both are present.
    """
    resolved = dict(row)
    for legacy, canonical in LEGACY_ALIASES.items():
        if _get(resolved, canonical) is None and _get(resolved, legacy) is not None:
            resolved[canonical] = resolved[legacy]
        resolved.pop(legacy, None)
    return resolved


def _side(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().upper()
    return text if text in (TEAM, OPPONENT) else None


def _lost_side(row: Mapping, possession) -> Optional[str]:
    possession_team_id = _text(row, "possession_team_id")
    team_id = _text(row, "team_id")
    if possession_team_id and team_id:
        return TEAM if possession_team_id == team_id else OPPONENT
    if possession is ChartUnit.DEFENSE:
        return OPPONENT
    if possession is ChartUnit.OFFENSE:
        return TEAM
    return None


def _scoring_side(row: Mapping, possession, turnover: Optional[TurnoverEvent]) -> str:
    explicit = _side(_get(row, "scoring_team_side"))
    if explicit:
        return explicit
    if turnover is not None:
        # Whoever did not lose the ball scored on a return
        return TEAM if turnover.lost_by_side == OPPONENT else OPPONENT
    lost = _lost_side(row, possession)
    return lost or TEAM


def _credited_unit(row: Mapping, possession, scoring_side: str):
    if _text(row, "play_family") == "SPECIAL_TEAMS":
        return ChartUnit.SPECIAL_TEAMS
    if possession is ChartUnit.DEFENSE:
        return ChartUnit.DEFENSE if scoring_side == TEAM else ChartUnit.OFFENSE
    return possession


def normalize_turnover(row: Mapping, possession) -> Optional[TurnoverEvent]:
    """Build turnover detail from an explicit mapping, a turnover flag, or the result text."""
    inferred_side = _lost_side(row, possession)
    lost_by = ChartUnit.OFFENSE if possession is ChartUnit.DEFENSE else possession
    detail = _get(row, "turnover_detail")
    if isinstance(detail, Mapping):
        detail_type = _text(detail, "type")
        if detail_type is None:
            raw_type = _text(row, "turnover_type")
            detail_type = turnover_type_from_result(raw_type) if raw_type else None
        return TurnoverEvent(
            type=detail_type.upper() if detail_type else None,
            lost_by_side=_side(_get(detail, "lost_by_side", _get(detail, "lostBySide")))
            or inferred_side
            or TEAM,
            lost_by=parse_unit(_get(detail, "lost_by", _get(detail, "lostBy"))) or lost_by,
            return_yards=coerce_float(_get(detail, "return_yards", _get(detail, "returnYards"))),
            recovered_by=_text(detail, "recovered_by"),
            forced_by=_text(detail, "forced_by"),
        )

    result = _text(row, "result")
    implied = bool(coerce_bool(_get(row, "turnover"))) or bool(
        result and TURNOVER_RESULT_PATTERN.search(result)
    )
    if not implied:
        return None
    raw_type = _text(row, "turnover_type")
    return TurnoverEvent(
        type=raw_type.upper() if raw_type else turnover_type_from_result(result),
        lost_by_side=inferred_side or TEAM,
        lost_by=lost_by,
        recovered_by=_text(row, "recovered_by"),
        forced_by=_text(row, "forced_by"),
    )


def normalize_scoring(row: Mapping, possession, turnover: Optional[TurnoverEvent]) -> Optional[ScoringEvent]:
    """Build a scoring event from a mapping, scoring columns, a flag, or the result text."""
    scoring = _get(row, "scoring")
    result = _text(row, "result")
    side = _scoring_side(row, possession, turnover)
    return_yards = coerce_float(_get(row, "st_return_yards"))

    if isinstance(scoring, Mapping):
        scoring_side = _side(_get(scoring, "scoring_team_side")) or side
        credited = parse_unit(_get(scoring, "credited_to", _get(scoring, "creditedTo")))
        return ScoringEvent(
            points=coerce_float(_get(scoring, "points")) or 0.0,
            type=(_text(scoring, "type") or "OTHER").upper(),
            scoring_team_side=scoring_side,
            credited_to=credited or _credited_unit(row, possession, scoring_side),
            return_yards=coerce_float(_get(scoring, "return_yards")) or return_yards,
        )

    points = coerce_float(_get(row, "scoring_points"))
    scoring_type = _text(row, "scoring_type")
    if points is not None or scoring_type:
        return ScoringEvent(
            points=points or 0.0,
            type=scoring_type.upper() if scoring_type else "OTHER",
            scoring_team_side=side,
            credited_to=_credited_unit(row, possession, side),
            return_yards=return_yards,
        )

    if coerce_bool(scoring) or is_scoring_result(result):
        return ScoringEvent(
            points=points_from_result(result),
            type=scoring_type_from_result(result),
            scoring_team_side=side,
            credited_to=_credited_unit(row, possession, side),
            return_yards=return_yards,
        )
    return None


def _score_state(row: Mapping, phase: str) -> Optional[ScoreState]:
    team = coerce_float(_get(row, f"team_score_{phase}", _get(row, f"offense_score_{phase}")))
    opponent = coerce_float(_get(row, f"opponent_score_{phase}", _get(row, f"defense_score_{phase}")))
    if team is None and opponent is None:
        return None
    return ScoreState(team=team, opponent=opponent)


def _timeouts(row: Mapping) -> Optional[TimeoutState]:
    offense = coerce_int(_get(row, "offense_timeouts", _get(row, "timeouts_team")))
    defense = coerce_int(_get(row, "defense_timeouts", _get(row, "timeouts_opponent")))
    if offense is None and defense is None:
        return None
    return TimeoutState(offense=offense, defense=defense)


def _penalties(raw) -> tuple[PenaltyEvent, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    penalties = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        penalties.append(
            PenaltyEvent(
                occurred=bool(coerce_bool(_get(item, "occurred", True))),
                yards=coerce_float(_get(item, "yards")) or 0.0,
                declined=bool(coerce_bool(_get(item, "declined", False))),
                offsetting=bool(coerce_bool(_get(item, "offsetting", False))),
                automatic_first_down=bool(
                    coerce_bool(_get(item, "automatic_first_down", _get(item, "automaticFirstDown", False)))
                ),
                on_side=_side(_get(item, "on_side")),
                code=_text(item, "code"),
            )
        )
    return tuple(penalties)


def _names(raw) -> tuple[str, ...]:
    if isinstance(raw, str):
        return (raw,) if raw.strip() else ()
    if not isinstance(raw, (list, tuple)):
        return ()
    return tuple(str(name) for name in raw if name)


def _participation(raw) -> Optional[Participation]:
    if not isinstance(raw, Mapping):
        return None
    return Participation(
        quarterback=_text(raw, "quarterback"),
        primary_ballcarrier=_text(raw, "primary_ballcarrier") or _text(raw, "primaryBallcarrier"),
        primary_target=_text(raw, "primary_target") or _text(raw, "primaryTarget"),
        returner=_text(raw, "returner"),
        kicker=_text(raw, "kicker"),
        punter=_text(raw, "punter"),
        interceptors=_names(_get(raw, "interceptors")),
        sackers=_names(_get(raw, "sackers")),
        solo_tacklers=_names(_get(raw, "solo_tacklers", _get(raw, "soloTacklers"))),
        assisted_tacklers=_names(_get(raw, "assisted_tacklers", _get(raw, "assistedTacklers"))),
        pass_defenders=_names(_get(raw, "pass_defenders", _get(raw, "passDefenders"))),
        forced_fumble=_text(raw, "forced_fumble") or _text(raw, "forcedFumble"),
        recovery=_text(raw, "recovery"),
    )


def _tags(raw) -> tuple[str, ...]:
    if isinstance(raw, str):
        return tuple(tag.strip() for tag in raw.split(",") if tag.strip())
    return _names(raw)


def map_chart_event_to_play_event(
    row: Mapping,
    team_id: Optional[str] = None,
    opponent: Optional[str] = None,
) -> PlayEvent:
    """Convert one raw chart row into a PlayEvent.

    Args:
        row: Raw row (a superset of PlayEvent, legacy aliases allowed)
        team_id: Charting team used when the row carries none
        opponent: Opponent name used when the row carries none

    Returns:
        Fully populated PlayEvent. Never raises for missing or malformed fields.
    """
    if not isinstance(row, Mapping):
        logger.warning(f"Ignoring non-mapping chart row of type {type(row).__name__}")
        row = {}
    row = resolve_aliases(row)

    possession = parse_unit(_get(row, "possession"))
    turnover_detail = normalize_turnover(row, possession)
    scoring = normalize_scoring(row, possession, turnover_detail)

    explicit_position = coerce_float(_get(row, "field_position"))
    ball_on = _text(row, "ball_on")
    yard_line = explicit_position if explicit_position is not None else yard_line_from_ball_on(ball_on)

    st_play_type = _text(row, "st_play_type")
    play_family = _text(row, "play_family")
    if play_family:
        play_family = play_family.upper()
    elif st_play_type:
        play_family = "SPECIAL_TEAMS"

    gained_yards = coerce_float(_get(row, "gained_yards"))
    explicit_explosive = coerce_bool(_get(row, "explosive"))
    explosive = (
        explicit_explosive
        if explicit_explosive is not None
        else classify_explosive(gained_yards, play_family)
    )
    explicit_turnover = coerce_bool(_get(row, "turnover"))
    turnover = explicit_turnover if explicit_turnover is not None else turnover_detail is not None

    quarter = coerce_int(_get(row, "quarter"))
    clock_seconds = coerce_float(_get(row, "clock_seconds"))

    return PlayEvent(
        id=str(_get(row, "id", "")),
        team_id=_text(row, "team_id") or team_id or "",
        game_id=_text(row, "game_id") or "",
        game_session_id=_text(row, "game_session_id"),
        opponent_name=_text(row, "opponent_name") or opponent,
        opponent_id=_text(row, "opponent_id"),
        season_id=_text(row, "season_id"),
        season_label=_text(row, "season_label"),
        possession_team_id=_text(row, "possession_team_id"),
        quarter=quarter,
        clock_seconds=clock_seconds,
        absolute_clock_seconds=absolute_clock_seconds(quarter, clock_seconds),
        down=coerce_int(_get(row, "down")),
        distance=coerce_float(_get(row, "distance")),
        ball_on=ball_on,
        hash_mark=_text(row, "hash_mark"),
        field_position=yard_line,
        field_zone=field_zone(yard_line),
        possession=possession,
        score_before=_score_state(row, "before"),
        score_after=_score_state(row, "after"),
        timeouts_before=_timeouts(row),
        play_call=_text(row, "play_call"),
        result=_text(row, "result"),
        pass_result=_text(row, "pass_result"),
        gained_yards=gained_yards,
        explosive=explosive,
        turnover=turnover,
        turnover_detail=turnover_detail,
        first_down=coerce_bool(_get(row, "first_down")),
        scoring=scoring,
        play_family=play_family,
        run_concept=_text(row, "run_concept"),
        wr_concept_id=_text(row, "wr_concept_id"),
        pass_concept=_text(row, "pass_concept"),
        offensive_personnel_code=_text(row, "offensive_personnel_code"),
        offensive_formation_id=_text(row, "offensive_formation_id"),
        front_code=_text(row, "front_code"),
        coverage_shell_pre=_text(row, "coverage_shell_pre"),
        coverage_shell_post=_text(row, "coverage_shell_post"),
        pressure_code=_text(row, "pressure_code"),
        st_play_type=st_play_type,
        st_variant=_text(row, "st_variant"),
        st_return_yards=coerce_float(_get(row, "st_return_yards")),
        motion=coerce_bool(_get(row, "motion")),
        shift=coerce_bool(_get(row, "shift")),
        play_action=coerce_bool(_get(row, "play_action")),
        shot=coerce_bool(_get(row, "shot")),
        tags=_tags(_get(row, "tags")),
        drive_number=coerce_int(_get(row, "drive_number")),
        drive_id=_text(row, "drive_id"),
        sequence=coerce_int(_get(row, "sequence")),
        created_at=_text(row, "created_at"),
        is_drive_end=bool(coerce_bool(_get(row, "is_drive_end"))),
        is_half_end=bool(coerce_bool(_get(row, "is_half_end"))),
        is_game_end=bool(coerce_bool(_get(row, "is_game_end"))),
        penalties=_penalties(_get(row, "penalties")),
        participation=_participation(_get(row, "participation")),
        notes=_text(row, "notes"),
    )


def map_chart_rows_to_events(
    rows,
    team_id: str,
    opponent: Optional[str] = None,
    preferences=None,
) -> list[PlayEvent]:
    """Normalize a batch of rows, optionally applying team analytics preferences.

    Args:
        rows: Sequence of raw row mappings (anything else yields no events)
        team_id: Charting team id
        opponent: Default opponent name
        preferences: Optional AnalyticsPreferences to re-apply after normalization

    Returns:
        List of PlayEvent in input order
    """
    if not isinstance(rows, (list, tuple)):
        return []
    events = [map_chart_event_to_play_event(row, team_id=team_id, opponent=opponent) for row in rows]
    if preferences is not None:
        from chartstats.data.preferences import apply_analytics_preferences

        events = apply_analytics_preferences(events, preferences)
    logger.debug(f"Normalized {len(events)} chart rows for team {team_id}")
    return events
