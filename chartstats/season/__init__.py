"""Season aggregation, Monte Carlo simulation and projection."""
