"""Charting vocabularies - single source of truth for the entire codebase.

All modules that need to recognize play families, scoring or turnover types,
drive results or field-zone boundaries should import from this file to ensure
consistency.
"""

import re

# Play families a charted snap can be tagged with
PLAY_FAMILIES = frozenset({
    "RUN",
    "PASS",
    "RPO",
    "SPECIAL_TEAMS",
})

# Families that count as rushing attempts (RPOs charted as run-first)
RUSH_FAMILIES = frozenset({"RUN", "RPO"})

# Families that count as pass attempts
PASS_FAMILIES = frozenset({"PASS", "RPO"})

# Scoring event types carried on normalized plays
SCORING_TYPES = frozenset({
    "TD",
    "FG",
    "PAT",
    "TWO_POINT",
    "SAFETY",
    "DEF_TD",
    "ST_TD",
    "OTHER",
})

# Scoring types that represent a touchdown
TOUCHDOWN_SCORING_TYPES = frozenset({"TD", "DEF_TD", "ST_TD"})

# Turnover event types
TURNOVER_TYPES = frozenset({
    "INTERCEPTION",
    "FUMBLE",
    "DOWNS",
    "BLOCKED_KICK",
    "OTHER",
})

# Drive results after which the defense got off the field without allowing points
DRIVE_TERMINAL_RESULTS = frozenset({
    "PUNT",
    "TURNOVER",
    "DOWNS",
    "END_HALF",
    "END_GAME",
})

# Lower-cased substrings in a result string that mark a scoring play
SCORING_RESULT_KEYWORDS = ("td", "touchdown", "fg", "field goal", "safety")

# Result strings that imply the offense lost the ball
TURNOVER_RESULT_PATTERN = re.compile(r"intercept|fumble|turnover|downs|pick|lost", re.IGNORECASE)

# Field zone upper bounds (yard line from own goal line, inclusive).
# Anything beyond the last bound is RED_ZONE. These boundaries are exact.
FIELD_ZONE_UPPER_BOUNDS = (
    (10, "BACKED_UP"),
    (25, "COMING_OUT"),
    (75, "OPEN_FIELD"),
    (90, "SCORING_RANGE"),
)

# Expected points by yard line (0 = own goal, 100 = opponent goal line)
EXPECTED_POINTS_CURVE = (
    (1, -2.5),
    (10, -1.6),
    (20, -0.9),
    (30, -0.1),
    (40, 0.8),
    (50, 1.6),
    (60, 2.6),
    (70, 3.6),
    (80, 4.5),
    (90, 5.3),
    (99, 5.9),
)

# Field goal distance bands (upper bound exclusive, label)
FIELD_GOAL_BANDS = (
    (30, "inside_30"),
    (40, "from_30_to_39"),
    (50, "from_40_to_49"),
)
FIELD_GOAL_LONG_BAND = "from_50_plus"

# Snap-to-goal-post offset added to yards-to-goal when estimating kick distance
KICK_DISTANCE_OFFSET = 17


def validate_play_types():
    """Validate that charting vocabularies are properly defined and consistent.

    Call this at module load or in tests to catch any issues early.

    Raises:
        AssertionError: If validation fails
    """
    # Touchdown types must be scoring types
    missing = TOUCHDOWN_SCORING_TYPES - SCORING_TYPES
    assert not missing, f"Touchdown types not in scoring types: {missing}"

    # Rush and pass families must be known families
    unknown = (RUSH_FAMILIES | PASS_FAMILIES) - PLAY_FAMILIES
    assert not unknown, f"Unknown play families: {unknown}"

    # Zone bounds must be strictly increasing
    bounds = [upper for upper, _ in FIELD_ZONE_UPPER_BOUNDS]
    assert bounds == sorted(set(bounds)), f"Field zone bounds not increasing: {bounds}"

    # Expected points curve must be monotonically increasing in both axes
    yard_lines = [yl for yl, _ in EXPECTED_POINTS_CURVE]
    values = [ep for _, ep in EXPECTED_POINTS_CURVE]
    assert yard_lines == sorted(yard_lines), "Expected points curve yard lines not sorted"
    assert values == sorted(values), "Expected points curve not monotonic"

    # Field goal bands must be increasing
    fg_bounds = [upper for upper, _ in FIELD_GOAL_BANDS]
    assert fg_bounds == sorted(fg_bounds), f"Field goal bands not increasing: {fg_bounds}"

    return True


# Validate on import
validate_play_types()
