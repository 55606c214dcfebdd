"""Run the tour analysis on two exported spreadsheets and print the headline KPIs.

Usage:
    python scripts/analyze_files.py tours.xlsx tasks.xlsx [--threshold 15] [--period 30]

Defaults (threshold, max weight, depot prefixes) come from the settings,
the same as for the HTTP API.
"""

import argparse
import json
import logging
from dataclasses import replace

from config.settings import settings
from tour_insight.analysis.engine import run_analysis
from tour_insight.analysis.filters import FilterSet
from tour_insight.analysis.lookups import DepotLookup
from tour_insight.ingestion.spreadsheet_loader import load_tasks, load_tours


def build_filters(args: argparse.Namespace) -> FilterSet:
    filters = FilterSet.from_mapping(
        {
            "period": args.period,
            "depot": args.depot,
            "punctualityThreshold": args.threshold,
            "maxWeightThreshold": args.max_weight,
        },
        default_threshold=settings.punctuality_threshold_minutes,
        mobile_marker=settings.mobile_completion_marker,
    )
    if filters.max_weight_threshold is None and settings.max_weight_threshold_kg is not None:
        filters = replace(filters, max_weight_threshold=settings.max_weight_threshold_kg)
    return filters


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("tours")
    parser.add_argument("tasks")
    parser.add_argument("--threshold", type=float, default=None, help="punctuality threshold (min)")
    parser.add_argument("--max-weight", type=float, default=None, help="weight limit for tours without capacity (kg)")
    parser.add_argument("--period", default="all", help="'all' or a trailing day count")
    parser.add_argument("--depot", default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    tours = load_tours(args.tours)
    tasks = load_tasks(args.tasks, tours)
    result = run_analysis(tours, tasks, build_filters(args), DepotLookup(settings.depot_prefixes))

    if not result.has_data:
        print(f"[analyze_files] No data: {result.reason}")
        return

    p = result.punctuality
    print(json.dumps({
        "tours": result.total_tours,
        "tasks": result.total_records,
        "punctuality_planned": p.punctuality_rate_planned,
        "punctuality_realized": p.punctuality_rate_realized,
        "late": p.late,
        "early": p.early,
        "avg_rating": result.avg_rating,
        "overloaded_tours": result.overloaded_tours_count,
        "late_start_anomalies": result.late_start_anomalies_count,
    }, indent=2))


if __name__ == "__main__":
    main()
