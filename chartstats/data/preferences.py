"""Team-configured analytics preferences applied after normalization."""

import logging
from dataclasses import dataclass, replace

from config.settings import get_settings
from chartstats.data.events import PlayEvent
from chartstats.models.play_rules import classify_explosive, effective_family

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalyticsPreferences:
    """Per-team thresholds for explosive plays and turnover accounting."""

    explosive_run: float = 12
    explosive_pass: float = 15
    include_turnover_on_downs: bool = True

    @property
    def explosive_special_teams(self) -> float:
        return max(get_settings().explosive_special_teams_yards, self.explosive_pass)

    @classmethod
    def from_settings(cls) -> "AnalyticsPreferences":
        """Build preferences from the environment-backed settings."""
        settings = get_settings()
        return cls(
            explosive_run=settings.explosive_run_yards,
            explosive_pass=settings.explosive_pass_yards,
            include_turnover_on_downs=settings.include_turnover_on_downs,
        )


def apply_analytics_preferences(
    events: list[PlayEvent],
    preferences: AnalyticsPreferences,
) -> list[PlayEvent]:
    """Re-derive preference-dependent flags on a list of events.

    Events are immutable, so changed plays are replaced rather than edited.

    Args:
        events: Normalized events
        preferences: Team preferences

    Returns:
        New list of events with `explosive` recomputed and, when turnovers on
        downs are excluded, DOWNS turnovers stripped.
    """
    adjusted = []
    stripped = 0
    for ev in events:
        changes = {
            "explosive": classify_explosive(
                ev.gained_yards,
                effective_family(ev),
                run_threshold=preferences.explosive_run,
                pass_threshold=preferences.explosive_pass,
                special_teams_threshold=preferences.explosive_special_teams,
            )
        }
        if (
            not preferences.include_turnover_on_downs
            and ev.turnover_detail is not None
            and ev.turnover_detail.type == "DOWNS"
        ):
            changes["turnover"] = False
            changes["turnover_detail"] = None
            stripped += 1
        adjusted.append(replace(ev, **changes))

    if stripped:
        logger.debug(f"Excluded {stripped} turnover-on-downs plays per team preferences")
    return adjusted
