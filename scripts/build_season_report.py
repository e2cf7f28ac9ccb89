#!/usr/bin/env python3
"""
Build a season report from a chart export.

Loads chart rows from a CSV or JSON export, normalizes them, builds one
stat stack per game and prints the season aggregate and projection as JSON.

Usage:
    python3 scripts/build_season_report.py chart.csv --team-id T1
    python3 scripts/build_season_report.py chart.json --team-id T1 --games games.csv
    python3 scripts/build_season_report.py chart.csv --team-id T1 --explosive-run 10 --stacks
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import pandas as pd

from config.settings import get_settings
from chartstats.data.cache import StatsCache
from chartstats.data.normalizer import map_chart_rows_to_events
from chartstats.data.preferences import AnalyticsPreferences
from chartstats.pipeline import GameMeta, build_stacks_for_games
from chartstats.utils.serialization import to_serializable

logger = logging.getLogger(__name__)


def load_frame(path: Path) -> pd.DataFrame:
    """Read a CSV or JSON export into a DataFrame."""
    if path.suffix.lower() == ".json":
        return pd.read_json(path)
    return pd.read_csv(path)


def load_games(path: Path | None, rows: pd.DataFrame) -> list[GameMeta]:
    """Game metadata from a games file, or one entry per game id in the chart rows."""
    if path is not None:
        frame = load_frame(path)
        frame = frame.astype(object).where(frame.notna(), None)
        return [
            GameMeta(
                id=str(row["id"]),
                opponent_name=row.get("opponent_name"),
                start_time=row.get("start_time"),
                season_label=row.get("season_label"),
                status=row.get("status"),
            )
            for row in frame.to_dict(orient="records")
        ]
    if "game_id" not in rows.columns:
        return []
    return [GameMeta(id=str(game_id)) for game_id in rows["game_id"].dropna().unique()]


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Build a season stats report from charted plays"
    )
    parser.add_argument("chart", type=Path, help="Chart export (.csv or .json)")
    parser.add_argument("--team-id", required=True, help="Charting team id")
    parser.add_argument("--opponent", help="Opponent name for rows that carry none")
    parser.add_argument("--games", type=Path, help="Optional games file (id, opponent_name, start_time, ...)")
    parser.add_argument(
        "--explosive-run",
        type=int,
        help="Explosive run threshold in yards (default from settings)",
    )
    parser.add_argument(
        "--explosive-pass",
        type=int,
        help="Explosive pass threshold in yards (default from settings)",
    )
    parser.add_argument(
        "--exclude-turnover-on-downs",
        action="store_true",
        help="Do not count turnovers on downs as giveaways/takeaways",
    )
    parser.add_argument(
        "--stacks",
        action="store_true",
        help="Include every per-game stack in the output",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    errors = settings.validate()
    if errors:
        for error in errors:
            logger.error(error)
        sys.exit(1)

    rows = load_frame(args.chart)
    logger.info(f"Loaded {len(rows)} chart rows from {args.chart}")

    defaults = AnalyticsPreferences.from_settings()
    preferences = AnalyticsPreferences(
        explosive_run=args.explosive_run or defaults.explosive_run,
        explosive_pass=args.explosive_pass or defaults.explosive_pass,
        include_turnover_on_downs=not args.exclude_turnover_on_downs,
    )
    records = rows.astype(object).where(rows.notna(), None).to_dict(orient="records")
    events = map_chart_rows_to_events(records, args.team_id, args.opponent, preferences)
    games = load_games(args.games, rows)

    report = build_stacks_for_games(events, games, cache=StatsCache(), team_key=args.team_id)
    output = {
        "aggregate": to_serializable(report.aggregate),
        "projection": to_serializable(report.projection),
    }
    if args.stacks:
        output["stacks"] = to_serializable(report.stacks)

    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
