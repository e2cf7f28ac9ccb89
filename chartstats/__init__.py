"""Football charting analytics engine.

Turns charted play-by-play rows into box scores, efficiency metrics,
win probability, SP+-like ratings and season projections.
"""

__version__ = "0.1.0"
