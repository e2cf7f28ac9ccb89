"""Play classification rules shared by every metric.

Success rate thresholds follow the standard college definition:
- 1st down: gain >= 50% of distance
- 2nd down: gain >= 70% of distance
- 3rd/4th down: gain >= 100% of distance
"""

import logging
from typing import Optional

from config.play_types import (
    PASS_FAMILIES,
    RUSH_FAMILIES,
    SCORING_RESULT_KEYWORDS,
    TOUCHDOWN_SCORING_TYPES,
)
from config.settings import get_settings
from chartstats.data.events import (
    OPPONENT,
    TEAM,
    ChartUnit,
    FieldZone,
    PlayEvent,
    ScoringEvent,
)

logger = logging.getLogger(__name__)

# Success thresholds by down (fraction of distance needed)
SUCCESS_THRESHOLDS = {1: 0.5, 2: 0.7}
LATE_DOWN_THRESHOLD = 1.0


# =============================================================================
# Explosive and successful plays
# =============================================================================

def classify_explosive(
    gained_yards: Optional[float],
    play_family: Optional[str],
    run_threshold: Optional[float] = None,
    pass_threshold: Optional[float] = None,
    special_teams_threshold: Optional[float] = None,
) -> bool:
    """Rule-based explosive classification.

    Any gain of 40+ is explosive. Otherwise PASS needs 15, SPECIAL_TEAMS 25,
    and RUN (or anything else) 12, unless team thresholds are supplied.
    """
    settings = get_settings()
    yards = gained_yards or 0
    if yards >= settings.explosive_any_play_yards:
        return True
    if play_family == "PASS":
        threshold = pass_threshold if pass_threshold is not None else settings.explosive_pass_yards
    elif play_family == "SPECIAL_TEAMS":
        threshold = (
            special_teams_threshold
            if special_teams_threshold is not None
            else settings.explosive_special_teams_yards
        )
    else:
        threshold = run_threshold if run_threshold is not None else settings.explosive_run_yards
    return yards >= threshold


def effective_family(ev: PlayEvent) -> Optional[str]:
    return ev.play_family or ("SPECIAL_TEAMS" if ev.st_play_type else None)


def is_explosive_play(ev: PlayEvent) -> bool:
    """The play's explosive flag, set at normalization and by team preferences."""
    return ev.explosive


def is_success_eligible(ev: PlayEvent) -> bool:
    """Plays missing down, distance or gain are excluded from success rate."""
    return ev.down is not None and ev.distance is not None and ev.gained_yards is not None


def is_successful_play(ev: PlayEvent) -> bool:
    if not is_success_eligible(ev):
        return False
    fraction = SUCCESS_THRESHOLDS.get(ev.down, LATE_DOWN_THRESHOLD)
    return ev.gained_yards >= ev.distance * fraction


# =============================================================================
# Result-text heuristics
# =============================================================================

def is_scoring_result(result: Optional[str]) -> bool:
    """Whether a free-text result describes a score (td/touchdown/fg/field goal/safety)."""
    if not result:
        return False
    text = result.lower()
    return any(keyword in text for keyword in SCORING_RESULT_KEYWORDS)


def points_from_result(result: Optional[str]) -> float:
    text = (result or "").lower()
    if "touchdown" in text or "td" in text:
        return 6.0
    if "two point" in text or "safety" in text:
        return 2.0
    if "fg" in text or "field goal" in text:
        return 3.0
    return 0.0


def scoring_type_from_result(result: Optional[str]) -> str:
    text = (result or "").lower()
    if "safety" in text:
        return "SAFETY"
    if "fg" in text or "field goal" in text:
        return "FG"
    if "pat" in text:
        return "PAT"
    if "two point" in text:
        return "TWO_POINT"
    if "td" in text or "touchdown" in text:
        return "TD"
    return "OTHER"


def turnover_type_from_result(result: Optional[str]) -> Optional[str]:
    if not result:
        return None
    text = result.lower()
    if "intercept" in text or "pick" in text:
        return "INTERCEPTION"
    if "fumble" in text:
        return "FUMBLE"
    if "downs" in text:
        return "DOWNS"
    if "block" in text:
        return "BLOCKED_KICK"
    return "OTHER"


def is_touchdown(scoring: Optional[ScoringEvent]) -> bool:
    if scoring is None:
        return False
    return scoring.type in TOUCHDOWN_SCORING_TYPES or scoring.points >= 6


def is_scoring_play(ev: PlayEvent) -> bool:
    return ev.scoring is not None or is_scoring_result(ev.result)


# =============================================================================
# Sides and units
# =============================================================================

def resolve_play_side(ev: PlayEvent, unit_hint: Optional[ChartUnit] = None) -> ChartUnit:
    """Which of the charting team's units was on the field for this snap."""
    if ev.play_family == "SPECIAL_TEAMS" or ev.possession is ChartUnit.SPECIAL_TEAMS:
        return ChartUnit.SPECIAL_TEAMS
    if ev.possession in (ChartUnit.OFFENSE, ChartUnit.DEFENSE):
        return ev.possession
    if ev.possession_team_id and ev.team_id:
        return ChartUnit.OFFENSE if ev.possession_team_id == ev.team_id else ChartUnit.DEFENSE
    return unit_hint or ChartUnit.OFFENSE


def possessing_side(ev: PlayEvent) -> Optional[str]:
    """TEAM when the charting team had the ball, OPPONENT when it did not."""
    side = resolve_play_side(ev, ChartUnit.OFFENSE)
    if side is ChartUnit.OFFENSE:
        return TEAM
    if side is ChartUnit.DEFENSE:
        return OPPONENT
    return None


def possessing_team_scored(ev: PlayEvent) -> bool:
    if ev.scoring is None:
        return False
    side = possessing_side(ev)
    return side is not None and ev.scoring.scoring_team_side == side


def offense_scored(ev: PlayEvent) -> bool:
    if possessing_team_scored(ev):
        return True
    if ev.turnover_detail is not None:
        return False
    return is_scoring_result(ev.result)


def is_series_conversion(ev: PlayEvent) -> bool:
    """A snap that moved the chains: first down, enough yards, a score, or an auto-first penalty."""
    if ev.first_down:
        return True
    if ev.distance is not None and ev.gained_yards is not None and ev.gained_yards >= ev.distance:
        return True
    if offense_scored(ev):
        return True
    return any(
        p.occurred and not p.declined and not p.offsetting and p.automatic_first_down
        for p in ev.penalties
    )


def filter_events_for_unit(events: list[PlayEvent], unit: Optional[ChartUnit] = None) -> list[PlayEvent]:
    """Events belonging to a unit. No unit keeps everything."""
    if unit is None:
        return list(events)
    if unit is ChartUnit.OFFENSE:
        return scrimmage_plays(events, ChartUnit.OFFENSE)
    return [ev for ev in events if resolve_play_side(ev, unit) is unit]


def scrimmage_plays(events: list[PlayEvent], unit: Optional[ChartUnit] = None) -> list[PlayEvent]:
    """Non-special-teams snaps for the offense (default) or the defense."""
    side = unit if unit in (ChartUnit.OFFENSE, ChartUnit.DEFENSE) else ChartUnit.OFFENSE
    return [
        ev for ev in events
        if resolve_play_side(ev, side) is side and ev.play_family != "SPECIAL_TEAMS"
    ]


def rate_pool(events: list[PlayEvent], unit: Optional[ChartUnit] = None) -> list[PlayEvent]:
    """Plays feeding success, conversion and yards-per-play rates for a unit."""
    if unit is None or unit is ChartUnit.OFFENSE:
        return scrimmage_plays(events, ChartUnit.OFFENSE)
    return filter_events_for_unit(events, unit)


# =============================================================================
# Field position and play types
# =============================================================================

def is_red_zone_snap(ev: PlayEvent) -> bool:
    return ev.field_zone is FieldZone.RED_ZONE


def result_text(ev: PlayEvent) -> str:
    return (ev.pass_result or ev.result or "").upper()


def is_sack(ev: PlayEvent) -> bool:
    return "SACK" in result_text(ev)


def is_throwaway(ev: PlayEvent) -> bool:
    text = result_text(ev)
    return "THROW" in text and "AWAY" in text


def is_pass_attempt(ev: PlayEvent) -> bool:
    return ev.play_family in PASS_FAMILIES and not is_sack(ev)


def is_rush_attempt(ev: PlayEvent) -> bool:
    return ev.play_family in RUSH_FAMILIES


def is_pass_completion(ev: PlayEvent) -> bool:
    if not is_pass_attempt(ev):
        return False
    code = (ev.pass_result or "").upper()
    text = (ev.result or "").upper()
    if code in ("COMPLETE", "SCREEN"):
        return True
    if code in ("INCOMPLETE", "INT", "THROWAWAY"):
        return False
    if "INCOMP" in text or "INT" in text or "SACK" in text:
        return False
    if "THROW" in text and "AWAY" in text:
        return False
    if ev.turnover_detail is not None and ev.turnover_detail.type == "INTERCEPTION":
        return False
    return ev.gained_yards is not None


def is_tackle_for_loss(ev: PlayEvent) -> bool:
    if is_sack(ev):
        return True
    return ev.play_family in RUSH_FAMILIES and (ev.gained_yards or 0) < 0
