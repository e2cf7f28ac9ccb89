"""Field geometry and game-clock helpers.

Yard lines are measured from the offense's own goal line: 0 is the own goal
line, 100 is the opponent's goal line.
"""

import re
from typing import Optional

from config.play_types import FIELD_ZONE_UPPER_BOUNDS
from config.settings import get_settings
from chartstats.data.events import FieldZone

MIDFIELD = 50

_DIGITS = re.compile(r"\d+")


def yard_line_from_ball_on(ball_on) -> float:
    """Convert a charted ball spot into a yard line.

    ``O35`` is the offense's own 35 (yard line 35); ``D20`` or ``X20`` is the
    opponent's 20 (yard line 80). A bare number is taken as the yard line.
    Anything unparsable resolves to midfield.

    Args:
        ball_on: Charted spot such as "O25", "D10", "X40" or a number

    Returns:
        Yard line in [0, 100]
    """
    if ball_on is None or isinstance(ball_on, bool):
        return MIDFIELD
    if isinstance(ball_on, (int, float)):
        return max(0, min(100, ball_on)) if ball_on == ball_on else MIDFIELD
    text = str(ball_on).strip().upper()
    match = _DIGITS.search(text)
    if not text or match is None:
        return MIDFIELD
    number = int(match.group())
    if text.startswith("O"):
        yard_line = number
    elif text.startswith("D") or text.startswith("X"):
        yard_line = 100 - number
    else:
        yard_line = number
    return max(0, min(100, yard_line))


def field_zone(yard_line: Optional[float]) -> Optional[FieldZone]:
    """Bucket a yard line into its field zone."""
    if yard_line is None:
        return None
    for upper, zone in FIELD_ZONE_UPPER_BOUNDS:
        if yard_line <= upper:
            return FieldZone(zone)
    return FieldZone.RED_ZONE


def absolute_clock_seconds(quarter: Optional[int], clock_seconds: Optional[float]) -> Optional[float]:
    """Seconds elapsed since kickoff, increasing monotonically through the game."""
    if quarter is None or clock_seconds is None:
        return None
    quarter_length = get_settings().quarter_length_seconds
    return (quarter - 1) * quarter_length + (quarter_length - clock_seconds)


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def distance_bucket(distance: Optional[float]) -> Optional[str]:
    """SHORT (<=2), MEDIUM (<=6) or LONG."""
    if distance is None:
        return None
    if distance <= 2:
        return "SHORT"
    if distance <= 6:
        return "MEDIUM"
    return "LONG"


def bucket_down_distance(down: Optional[int], distance: Optional[float]) -> str:
    """Label a down-and-distance situation, e.g. "short 3rd" or "long 1st"."""
    if not down or not distance:
        return "any down"
    return f"{distance_bucket(distance).lower()} {ordinal(int(down))}"
