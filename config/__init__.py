"""Configuration package for the charting analytics engine."""

from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
