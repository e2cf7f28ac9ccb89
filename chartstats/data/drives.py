"""Derive drive records from a list of normalized plays."""

import logging
from typing import Optional

from chartstats.data.events import (
    ChartUnit,
    DriveRecord,
    DriveResult,
    PlayEvent,
)
from chartstats.models.play_rules import resolve_play_side

logger = logging.getLogger(__name__)


def classify_drive_result(ev: PlayEvent) -> DriveResult:
    """Classify how a drive ended from its terminal play."""
    if ev.scoring is not None:
        if ev.scoring.type == "FG":
            return DriveResult.FG
        if ev.scoring.type == "SAFETY":
            return DriveResult.SAFETY
        return DriveResult.TD
    if ev.turnover_detail is not None:
        if ev.turnover_detail.type == "DOWNS":
            return DriveResult.DOWNS
        return DriveResult.TURNOVER

    result = (ev.result or "").lower()
    if "punt" in result:
        return DriveResult.PUNT
    if "fg" in result or "field goal" in result:
        return DriveResult.MISS_FG if "miss" in result else DriveResult.FG
    if "intercept" in result or "fumble" in result:
        return DriveResult.TURNOVER
    if "downs" in result:
        return DriveResult.DOWNS
    if ev.is_half_end:
        return DriveResult.END_HALF
    if ev.is_game_end:
        return DriveResult.END_GAME
    return DriveResult.UNKNOWN


def _is_boundary(ev: PlayEvent) -> bool:
    return ev.is_drive_end or ev.is_half_end or ev.is_game_end


def derive_drive_records(
    events: list[PlayEvent],
    unit_fallback: Optional[ChartUnit] = None,
) -> list[DriveRecord]:
    """Group plays into drives by drive number.

    Plays without a drive number fall into drive 0. Within a drive, plays are
    ordered by absolute game clock.

    Args:
        events: Normalized plays for one game
        unit_fallback: Unit assumed for drives whose plays carry no possession

    Returns:
        DriveRecords ordered by drive number
    """
    if not events:
        return []

    ordered = sorted(
        events,
        key=lambda ev: (ev.drive_number or 0, ev.absolute_clock_seconds or 0),
    )

    drives: dict[int, DriveRecord] = {}
    last_play: dict[int, PlayEvent] = {}
    for ev in ordered:
        drive_number = ev.drive_number or 0
        drive = drives.get(drive_number)
        if drive is None:
            if ev.possession is not None:
                unit = ev.possession
            elif ev.play_family == "SPECIAL_TEAMS":
                unit = ChartUnit.SPECIAL_TEAMS
            else:
                unit = unit_fallback or ChartUnit.OFFENSE
            drive = DriveRecord(
                drive_number=drive_number,
                team_id=ev.team_id,
                game_id=ev.game_id,
                unit=unit,
                drive_id=ev.drive_id,
                result=None,
            )
            drives[drive_number] = drive

        drive.play_ids.append(ev.id)
        if drive.start_field_position is None:
            drive.start_field_position = ev.field_position
        if ev.field_position is not None:
            drive.end_field_position = ev.field_position
        if drive.start_time_seconds is None:
            drive.start_time_seconds = ev.absolute_clock_seconds
        if ev.absolute_clock_seconds is not None:
            drive.end_time_seconds = ev.absolute_clock_seconds
        if drive.start_score is None:
            drive.start_score = ev.score_before
        if ev.score_after is not None:
            drive.end_score = ev.score_after
        drive.yards += ev.gained_yards or 0
        if drive.result is None and _is_boundary(ev):
            drive.result = classify_drive_result(ev)
        last_play[drive_number] = ev

    records = []
    for drive_number, drive in drives.items():
        if drive.result is None:
            drive.result = classify_drive_result(last_play[drive_number])
        records.append(drive)

    logger.debug(f"Derived {len(records)} drives from {len(events)} plays")
    return records


def plays_by_drive(events: list[PlayEvent]) -> dict[int, list[PlayEvent]]:
    """Index plays by drive number, skipping plays without one."""
    grouped: dict[int, list[PlayEvent]] = {}
    for ev in events:
        if ev.drive_number is not None:
            grouped.setdefault(ev.drive_number, []).append(ev)
    return grouped


def drive_side(
    drive: DriveRecord,
    plays: list[PlayEvent],
    unit_hint: Optional[ChartUnit] = None,
) -> ChartUnit:
    """Unit that was on the field for a drive."""
    if isinstance(drive.unit, ChartUnit):
        return drive.unit
    if plays:
        return resolve_play_side(plays[0], unit_hint)
    return unit_hint or ChartUnit.OFFENSE
