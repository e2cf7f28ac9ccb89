"""Application settings and configuration."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Engine configuration settings."""

    # Cache Capacity (entries, oldest computed_at evicted first)
    stack_cache_limit: int = field(
        default_factory=lambda: int(os.getenv("CHARTSTATS_STACK_CACHE_LIMIT", "200"))
    )
    season_cache_limit: int = field(
        default_factory=lambda: int(os.getenv("CHARTSTATS_SEASON_CACHE_LIMIT", "50"))
    )

    # Explosive Play Thresholds (yards gained)
    explosive_run_yards: int = field(
        default_factory=lambda: int(os.getenv("CHARTSTATS_EXPLOSIVE_RUN", "12"))
    )
    explosive_pass_yards: int = field(
        default_factory=lambda: int(os.getenv("CHARTSTATS_EXPLOSIVE_PASS", "15"))
    )
    explosive_special_teams_yards: int = 25
    explosive_any_play_yards: int = 40  # Explosive regardless of play family

    # Turnover Accounting
    include_turnover_on_downs: bool = field(
        default_factory=lambda: _env_bool("CHARTSTATS_TURNOVER_ON_DOWNS", "true")
    )

    # Game Clock
    quarter_length_seconds: int = 900

    # Season Simulation (seeded so identical inputs reproduce identical output)
    simulation_iterations: int = field(
        default_factory=lambda: int(os.getenv("CHARTSTATS_SIM_ITERATIONS", "2000"))
    )
    simulation_seed: int = field(
        default_factory=lambda: int(os.getenv("CHARTSTATS_SIM_SEED", "1"))
    )
    projection_iterations: int = 1200
    projection_seed: int = 17
    projection_season_games: int = 12  # Regular-season length used for synthetic schedules

    # Logging
    log_level: str = field(
        default_factory=lambda: os.getenv("CHARTSTATS_LOG_LEVEL", "INFO")
    )

    @property
    def game_length_seconds(self) -> int:
        return self.quarter_length_seconds * 4

    def validate(self) -> list[str]:
        """Validate settings. Returns list of errors."""
        errors = []
        if self.stack_cache_limit <= 0:
            errors.append("CHARTSTATS_STACK_CACHE_LIMIT must be positive.")
        if self.season_cache_limit <= 0:
            errors.append("CHARTSTATS_SEASON_CACHE_LIMIT must be positive.")
        if self.simulation_iterations <= 0 or self.projection_iterations <= 0:
            errors.append("Simulation iteration counts must be positive.")
        for name in ("explosive_run_yards", "explosive_pass_yards", "explosive_special_teams_yards"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive.")
        return errors


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
