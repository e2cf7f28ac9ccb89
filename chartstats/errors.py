"""Exceptions raised by the analytics engine."""


class ChartStatsError(ValueError):
    """Raised for invalid engine configuration, never for malformed play data."""
