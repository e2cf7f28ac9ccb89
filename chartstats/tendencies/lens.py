"""
Tendency lens: what has worked in the current down-and-distance situation.

Events are expected most-recent-first; the first event defines the
situation being scouted.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

import pandas as pd

from chartstats.data.events import ChartUnit, PlayEvent
from chartstats.models.play_rules import is_explosive_play, is_success_eligible, is_successful_play
from chartstats.utils.field import bucket_down_distance, field_zone

logger = logging.getLogger(__name__)

TOP_OPTIONS = 3
EMPTY_SUMMARY = "No charted plays yet to build tendencies."

KeyFn = Callable[[PlayEvent], Optional[str]]


@dataclass(frozen=True)
class TendencyOption:
    label: str
    success: float
    explosive: float
    sample: int
    average_yards: float = 0.0

    @property
    def note(self) -> str:
        return f"YPP {self.average_yards:.1f}"


@dataclass(frozen=True)
class TendencyLens:
    summary: str
    options: list[TendencyOption] = field(default_factory=list)


@dataclass(frozen=True)
class NumericLine:
    plays: int
    success: float
    explosive: float
    ypp: float


def pretty_label(label: str) -> str:
    """``INSIDE_ZONE`` -> ``INSIDE ZONE``, ``cover_3`` -> ``Cover 3``."""
    return re.sub(r"\b\w", lambda m: m.group().upper(), label.replace("_", " "))


def _pct(rate: float) -> int:
    return round(rate * 100)


# =============================================================================
# Grouping
# =============================================================================

def _offense_family(ev: PlayEvent) -> str:
    return ev.play_family or "UNKNOWN"


def _offense_concept(ev: PlayEvent) -> str:
    return ev.run_concept or ev.wr_concept_id or ev.play_call or ev.play_family or "Concept"


def _coverage(ev: PlayEvent) -> str:
    return ev.coverage_shell or "Coverage"


def _pressure(ev: PlayEvent) -> str:
    return ev.pressure_code or "Pressure"


def _front(ev: PlayEvent) -> str:
    return ev.front_code or "Front"


def _special_teams(ev: PlayEvent) -> str:
    return ev.st_play_type or "ST"


def _group_stats(events: list[PlayEvent], key_fn: KeyFn) -> pd.DataFrame:
    """Per-key sample, success rate, explosive rate and yards per play, in first-seen order.

    Success rate only counts plays with down, distance and gain charted.
    """
    records = [
        {
            "label": key_fn(ev),
            "success": is_successful_play(ev),
            "eligible": is_success_eligible(ev),
            "explosive": is_explosive_play(ev),
            "yards": ev.gained_yards or 0.0,
        }
        for ev in events
    ]
    frame = pd.DataFrame(records, columns=["label", "success", "eligible", "explosive", "yards"])
    frame = frame[frame["label"].notna() & (frame["label"] != "")]
    if frame.empty:
        return pd.DataFrame(columns=["label", "sample", "success", "explosive", "average_yards"])
    stats = (
        frame.groupby("label", sort=False)
        .agg(
            sample=("success", "size"),
            successes=("success", "sum"),
            eligible=("eligible", "sum"),
            explosive=("explosive", "mean"),
            average_yards=("yards", "mean"),
        )
        .reset_index()
    )
    eligible = stats["eligible"].astype(float)
    stats["success"] = (stats["successes"].astype(float) / eligible.where(eligible > 0)).fillna(0.0)
    return stats[["label", "sample", "success", "explosive", "average_yards"]]


def rank_options(stats: pd.DataFrame) -> list[TendencyOption]:
    """Options with a sample, best success first, ties broken by the larger sample."""
    ranked = stats[stats["sample"] > 0].sort_values(
        ["success", "sample"], ascending=[False, False], kind="mergesort"
    )
    return [
        TendencyOption(
            label=str(row.label),
            success=float(row.success),
            explosive=float(row.explosive),
            sample=int(row.sample),
            average_yards=float(row.average_yards),
        )
        for row in ranked.itertuples(index=False)
    ]


# =============================================================================
# Lens
# =============================================================================

def _zone_label(ev: PlayEvent) -> str:
    zone = ev.field_zone or field_zone(ev.field_position)
    return pretty_label(zone.value.lower()) if zone else "open field"


def build_tendency_lens(events: list[PlayEvent], unit: ChartUnit) -> TendencyLens:
    """
    Rank what has worked in the current down-and-distance bucket.

    Args:
        events: Normalized plays, most recent first
        unit: OFFENSE, DEFENSE or SPECIAL_TEAMS

    Returns:
        TendencyLens with a one-line summary and up to three options
    """
    if not events:
        return TendencyLens(summary=EMPTY_SUMMARY)

    current = events[0]
    bucket = bucket_down_distance(current.down, current.distance)
    zone = _zone_label(current)
    drive_label = f"Drive {current.drive_number}" if current.drive_number else "current drive"
    situational = [ev for ev in events if bucket_down_distance(ev.down, ev.distance) == bucket]

    if unit is ChartUnit.OFFENSE:
        families = rank_options(_group_stats(situational, _offense_family))
        concepts = rank_options(_group_stats(situational, _offense_concept))
        if families:
            best = families[0]
            lean = concepts[0].label if concepts else best.label
            summary = (
                f"On {bucket} in {drive_label}, {pretty_label(best.label)} leads: "
                f"{_pct(best.success)}% success, {_pct(best.explosive)}% explosive. "
                f"In {zone}, lean on {pretty_label(lean)}."
            )
        else:
            summary = f"On {bucket} tonight, stay with your top concepts in this field zone ({zone})."
        return TendencyLens(summary=summary, options=concepts[:TOP_OPTIONS])

    if unit is ChartUnit.DEFENSE:
        coverages = rank_options(_group_stats(situational, _coverage))
        pressures = rank_options(_group_stats(situational, _pressure))
        if coverages:
            pressure_label = pressures[0].label if pressures else "pressure"
            summary = (
                f"On {bucket}, {pretty_label(coverages[0].label)} is allowing "
                f"{_pct(coverages[0].explosive)}% explosive. Consider dialing "
                f"{pretty_label(pressure_label)} if they stay ahead of the sticks in the {zone}."
            )
        else:
            summary = f"Tighten late down calls; match coverage and pressure to the field zone ({zone})."
        return TendencyLens(summary=summary, options=(coverages + pressures)[:TOP_OPTIONS])

    kicks = rank_options(_group_stats(situational, _special_teams))
    if kicks:
        summary = (
            f"{pretty_label(kicks[0].label)} showing {_pct(kicks[0].success)}% success with "
            f"{_pct(kicks[0].explosive)}% explosive; watch returns in the {zone}."
        )
    else:
        summary = "Special teams tendencies will populate after a few charted kicks."
    return TendencyLens(summary=summary, options=kicks[:TOP_OPTIONS])


def build_numeric_summary(unit: ChartUnit, events: list[PlayEvent]) -> dict[str, NumericLine]:
    """Per-key plays, success rate, explosive rate and yards per play for a unit."""
    if unit is ChartUnit.OFFENSE:
        key_fns = [_offense_family]
    elif unit is ChartUnit.DEFENSE:
        key_fns = [_coverage, _front]
    else:
        key_fns = [_special_teams]

    summary: dict[str, NumericLine] = {}
    for key_fn in key_fns:
        for row in _group_stats(events, key_fn).itertuples(index=False):
            summary[str(row.label)] = NumericLine(
                plays=int(row.sample),
                success=float(row.success),
                explosive=float(row.explosive),
                ypp=float(row.average_yards),
            )
    return summary
