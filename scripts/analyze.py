#!/usr/bin/env python3
"""Run the revenue analysis over an exported opportunity file.

Usage:
    python scripts/analyze.py exports/opportunities.csv
    python scripts/analyze.py exports/opportunities.tsv --year 2024 --year 2025 \
        --territory Canada --period Q1 --period Q2 --as-of 2025-06-30
    python scripts/analyze.py data/compact.json --summary-only
    python scripts/analyze.py --demo --summary-only

``.json`` files are read as compact datasets; anything else as a delimited
text export. Prints the dashboard snapshot (or the summary export) as JSON.

Exit code 0 on success, 1 when the input yields no usable data.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import date
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.revintel.analytics.schemas import GoalOverrides  # noqa: E402
from src.revintel.core.logging import configure_structlog  # noqa: E402
from src.revintel.filters.engine import (  # noqa: E402
    ALL,
    QUARTER_PERIODS,
    SINGLETON_PERIODS,
    toggle_time_period,
)
from src.revintel.service import AnalysisSession, export_summary  # noqa: E402

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Revenue intelligence over a deal export")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("file", nargs="?", help="CSV/TSV export or compact .json dataset")
    source.add_argument("--demo", action="store_true", help="Use the seeded demo dataset")
    parser.add_argument(
        "--year", type=int, action="append", dest="years",
        help="Active fiscal year (repeatable; default: latest two in the data)",
    )
    parser.add_argument("--territory", action="append", default=[], help="Territory filter")
    parser.add_argument("--source", action="append", default=[], help="Lead source filter")
    parser.add_argument("--vertical", action="append", default=[], help="Vertical filter")
    parser.add_argument(
        "--period", action="append", default=[],
        choices=list(SINGLETON_PERIODS + QUARTER_PERIODS),
        help="Time period token (repeatable for quarters)",
    )
    parser.add_argument("--as-of", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    parser.add_argument("--goal", type=float, default=None, help="Revenue goal override")
    parser.add_argument("--summary-only", action="store_true", help="Print the summary export")
    parser.add_argument(
        "--prior-keeps-filters", action="store_true",
        help="Apply the filters to the prior-year comparison set as well",
    )
    parser.add_argument("--log-level", default=None, help="Override REVINTEL_LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", default=None, help="Emit JSON log lines")
    return parser


async def main_async(args: argparse.Namespace) -> int:
    session = AnalysisSession(today=args.as_of)

    if args.demo:
        result = await session.load_demo()
    else:
        path = Path(args.file)
        if not path.is_file():
            print(f"Error: {path} not found", file=sys.stderr)
            return 1
        if path.suffix.lower() == ".json":
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            result = await session.load_compact(raw)
        else:
            result = await session.load_file(path)

    if not result.has_data:
        logger.warning("cli.no_usable_data", rows_read=result.rows_read)
        print("No usable data found in input.", file=sys.stderr)
        return 1

    periods: tuple[str, ...] = (ALL,)
    for token in args.period:
        periods = toggle_time_period(periods, token)

    criteria = session.default_criteria()
    update = {
        "territories": frozenset(args.territory),
        "sources": frozenset(args.source),
        "verticals": frozenset(args.vertical),
        "time_periods": periods,
    }
    if args.years:
        update["active_years"] = frozenset(args.years)
    criteria = criteria.model_copy(update=update)

    goals = GoalOverrides(revenue=args.goal)
    snapshot = session.snapshot(
        criteria, goals=goals, prior_keeps_filters=args.prior_keeps_filters
    )

    if args.summary_only:
        print(export_summary(snapshot).model_dump_json(indent=2))
    else:
        print(snapshot.model_dump_json(indent=2))
    return 0


def main() -> None:
    args = build_parser().parse_args()
    configure_structlog(level=args.log_level, json_logs=args.json_logs)
    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
