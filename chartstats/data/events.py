"""Canonical play, drive and charting records.

Everything here is produced by the normalizer and treated as immutable by
the rest of the engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

TEAM = "TEAM"
OPPONENT = "OPPONENT"


class ChartUnit(Enum):
    OFFENSE = "OFFENSE"
    DEFENSE = "DEFENSE"
    SPECIAL_TEAMS = "SPECIAL_TEAMS"


class FieldZone(Enum):
    BACKED_UP = "BACKED_UP"
    COMING_OUT = "COMING_OUT"
    OPEN_FIELD = "OPEN_FIELD"
    SCORING_RANGE = "SCORING_RANGE"
    RED_ZONE = "RED_ZONE"


class DriveResult(Enum):
    TD = "TD"
    FG = "FG"
    MISS_FG = "MISS_FG"
    PUNT = "PUNT"
    DOWNS = "DOWNS"
    TURNOVER = "TURNOVER"
    END_HALF = "END_HALF"
    END_GAME = "END_GAME"
    SAFETY = "SAFETY"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class OtherLabel:
    """An unrecognized value from an open vocabulary, kept verbatim."""

    label: str


Possession = Union[ChartUnit, OtherLabel, None]
DriveOutcome = Union[DriveResult, OtherLabel]


def _parse_label(value, enum_cls):
    if value is None:
        return None
    if isinstance(value, (enum_cls, OtherLabel)):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return enum_cls(text.upper())
    except ValueError:
        return OtherLabel(text)


def parse_unit(value) -> Possession:
    """Parse a unit label into ChartUnit, OtherLabel, or None when empty."""
    return _parse_label(value, ChartUnit)


def parse_drive_result(value) -> DriveOutcome:
    """Parse a drive result label. Empty input is UNKNOWN."""
    parsed = _parse_label(value, DriveResult)
    return DriveResult.UNKNOWN if parsed is None else parsed


@dataclass(frozen=True)
class PenaltyEvent:
    """A flag thrown on a snap."""

    occurred: bool = True
    yards: float = 0.0
    declined: bool = False
    offsetting: bool = False
    automatic_first_down: bool = False
    on_side: Optional[str] = None  # TEAM or OPPONENT
    code: Optional[str] = None


@dataclass(frozen=True)
class ScoringEvent:
    """Points scored on a snap, from the charting team's perspective."""

    points: float = 0.0
    type: str = "OTHER"  # TD, FG, PAT, TWO_POINT, SAFETY, DEF_TD, ST_TD, OTHER
    scoring_team_side: str = TEAM
    credited_to: Possession = None
    return_yards: Optional[float] = None


@dataclass(frozen=True)
class TurnoverEvent:
    """A change of possession forced by the play."""

    type: Optional[str] = None  # INTERCEPTION, FUMBLE, DOWNS, BLOCKED_KICK, OTHER
    lost_by_side: str = TEAM
    lost_by: Possession = None
    return_yards: Optional[float] = None
    recovered_by: Optional[str] = None
    forced_by: Optional[str] = None


@dataclass(frozen=True)
class ScoreState:
    team: Optional[float] = None
    opponent: Optional[float] = None


@dataclass(frozen=True)
class TimeoutState:
    offense: Optional[int] = None
    defense: Optional[int] = None


@dataclass(frozen=True)
class Participation:
    """Player identifiers credited on a snap."""

    quarterback: Optional[str] = None
    primary_ballcarrier: Optional[str] = None
    primary_target: Optional[str] = None
    returner: Optional[str] = None
    kicker: Optional[str] = None
    punter: Optional[str] = None
    interceptors: tuple[str, ...] = ()
    sackers: tuple[str, ...] = ()
    solo_tacklers: tuple[str, ...] = ()
    assisted_tacklers: tuple[str, ...] = ()
    pass_defenders: tuple[str, ...] = ()
    forced_fumble: Optional[str] = None
    recovery: Optional[str] = None

    def players(self) -> list[str]:
        """Distinct players credited with the outcome, in a stable order."""
        ordered = [
            self.quarterback,
            self.primary_ballcarrier,
            self.primary_target,
            self.returner,
            *self.interceptors,
            *self.sackers,
            self.forced_fumble,
            self.recovery,
        ]
        seen: list[str] = []
        for player in ordered:
            if player and player not in seen:
                seen.append(player)
        return seen


@dataclass(frozen=True)
class PlayEvent:
    """One charted snap."""

    # Identity
    id: str = ""
    team_id: str = ""
    game_id: str = ""
    game_session_id: Optional[str] = None
    opponent_name: Optional[str] = None
    opponent_id: Optional[str] = None
    season_id: Optional[str] = None
    season_label: Optional[str] = None
    possession_team_id: Optional[str] = None

    # Situation
    quarter: Optional[int] = None
    clock_seconds: Optional[float] = None
    absolute_clock_seconds: Optional[float] = None
    down: Optional[int] = None
    distance: Optional[float] = None
    ball_on: Optional[str] = None
    hash_mark: Optional[str] = None
    field_position: Optional[float] = None  # Yard line, 0 = own goal
    field_zone: Optional[FieldZone] = None
    possession: Possession = None
    score_before: Optional[ScoreState] = None
    score_after: Optional[ScoreState] = None
    timeouts_before: Optional[TimeoutState] = None

    # Outcome
    play_call: Optional[str] = None
    result: Optional[str] = None
    pass_result: Optional[str] = None
    gained_yards: Optional[float] = None
    explosive: bool = False
    turnover: bool = False
    turnover_detail: Optional[TurnoverEvent] = None
    first_down: Optional[bool] = None
    scoring: Optional[ScoringEvent] = None

    # Classification tags
    play_family: Optional[str] = None
    run_concept: Optional[str] = None
    wr_concept_id: Optional[str] = None
    pass_concept: Optional[str] = None
    offensive_personnel_code: Optional[str] = None
    offensive_formation_id: Optional[str] = None
    front_code: Optional[str] = None
    coverage_shell_pre: Optional[str] = None
    coverage_shell_post: Optional[str] = None
    pressure_code: Optional[str] = None
    st_play_type: Optional[str] = None
    st_variant: Optional[str] = None
    st_return_yards: Optional[float] = None
    motion: Optional[bool] = None
    shift: Optional[bool] = None
    play_action: Optional[bool] = None
    shot: Optional[bool] = None
    tags: tuple[str, ...] = ()

    # Bookkeeping
    drive_number: Optional[int] = None
    drive_id: Optional[str] = None
    sequence: Optional[int] = None
    created_at: Optional[str] = None
    is_drive_end: bool = False
    is_half_end: bool = False
    is_game_end: bool = False
    penalties: tuple[PenaltyEvent, ...] = ()
    participation: Optional[Participation] = None
    notes: Optional[str] = None

    @property
    def coverage_shell(self) -> Optional[str]:
        """Post-snap coverage when charted, else the pre-snap shell."""
        return self.coverage_shell_post or self.coverage_shell_pre

    @property
    def players(self) -> list[str]:
        return self.participation.players() if self.participation else []


@dataclass
class DriveRecord:
    """An ordered run of plays sharing a drive number."""

    drive_number: int
    team_id: str
    game_id: str
    unit: Possession
    drive_id: Optional[str] = None
    play_ids: list[str] = field(default_factory=list)
    start_field_position: Optional[float] = None
    end_field_position: Optional[float] = None
    start_time_seconds: Optional[float] = None
    end_time_seconds: Optional[float] = None
    start_score: Optional[ScoreState] = None
    end_score: Optional[ScoreState] = None
    yards: float = 0.0
    result: DriveOutcome = DriveResult.UNKNOWN
