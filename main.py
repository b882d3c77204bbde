# =============================================================================
# MATERIAL VARIANCE ENGINE - MAIN ENTRY POINT
# =============================================================================
# Command-line interface for running the analytics engine.
#
# Usage:
#   python main.py run --period 2025-06
#   python main.py run --period 2025-06 --dept-mode list --dept "Press Shop"
#   python main.py run --period 2025-06 --material Direct --json
#   python main.py validate --period 2025-06
# =============================================================================

import argparse
import json
import logging
import sys
from pathlib import Path

from analytics.facade import load_period_view
from analytics.filters import DEPARTMENT_MODES, DepartmentFilter, FilterError
from analytics.settings import (
    SettingsError,
    configure_logging,
    load_settings,
    resolve_data_dir,
)
from analytics.sources import DataFetchError, StoreSource
from analytics.validation_report import format_report, generate_validation_report

logger = logging.getLogger("main")


def _fmt_value(value: float, currency: str) -> str:
    return f"{currency} {value:,.0f}"


def _fmt_pct(value) -> str:
    return "n/a" if value is None else f"{value:.1f}%"


def build_view(args, settings):
    """Load the data source and compute the requested view."""
    data_dir = Path(args.data) if args.data else resolve_data_dir(settings)
    source = StoreSource.from_csv_dir(data_dir, settings.get("tables"))
    department_filter = DepartmentFilter(mode=args.dept_mode, name=args.dept)
    return load_period_view(source, args.period, department_filter, args.material)


def print_view(view, currency: str, limit: int = 10):
    """Print a text summary of a period view."""
    totals = view.period_totals

    print(f"\nPeriod: {view.period}")
    print("-" * 40)
    print("\nPERIOD TOTALS:")
    print(f"  Forecast:   {_fmt_value(totals.forecast_value, currency)}")
    print(f"  Actual:     {_fmt_value(totals.actual_value, currency)}")
    print(f"  Variance:   {_fmt_value(totals.variance_value, currency)}")
    print(f"  Usage:      {_fmt_pct(totals.usage_pct)}")

    print("\nDEPARTMENTS:")
    for row in view.department_summary:
        name = row.department or "(none)"
        print(
            f"  {name:20} forecast {row.forecast_value:>14,.0f}  "
            f"actual {row.actual_value:>14,.0f}  usage {_fmt_pct(row.usage_pct):>8}"
        )

    sections = [
        ("OVER USAGE", view.over_usage),
        ("UNDER USAGE", view.under_usage),
    ]
    for title, records in sections:
        print(f"\n{title} ({len(records)}):")
        for record in records[:limit]:
            print(f"  {record.department or '(none)':20} {record.material_id:15} {record.delta_value:>+14,.0f}")

    for title, records in [("CONTINUOUS OVER", view.continuous_over),
                           ("CONTINUOUS UNDER", view.continuous_under)]:
        print(f"\n{title} ({len(records)}):")
        for record in records[:limit]:
            print(
                f"  {record.department or '(none)':20} {record.material_id:15} "
                f"{record.delta_month1:>+12,.0f} {record.delta_month2:>+12,.0f} "
                f"{record.delta_month3:>+12,.0f}  ratio {_fmt_pct(record.three_month_usage_ratio)}"
            )

    print(f"\nDELAYED POSTINGS ({len(view.delays)}):")
    for record in view.delays[:limit]:
        print(
            f"  {record.material_id:15} {record.department or '(none)':20} "
            f"{record.posting_date} -> {record.document_date}  {record.delay_days} days"
        )

    if view.missing_materials:
        print(f"\nMISSING IN MASTER ({len(view.missing_materials)}):")
        print("  " + ", ".join(view.missing_materials))


def run(args, settings):
    view = build_view(args, settings)
    if args.json:
        print(json.dumps(view.to_dict(), indent=2))
    else:
        print_view(view, settings.get("currency_label", ""))
    return view


def run_validation(args, settings):
    """Run validation checks and print the report."""
    print("\n" + "=" * 60)
    print("RUNNING VALIDATION")
    print("=" * 60)

    view = build_view(args, settings)
    report = generate_validation_report(view)
    print(format_report(report))
    return report


def _add_view_arguments(parser):
    parser.add_argument("--period", "-p", required=True, help="Month YYYY-MM")
    parser.add_argument("--dept-mode", default="all", choices=DEPARTMENT_MODES,
                        help="Department filter mode")
    parser.add_argument("--dept", help="Department name (with --dept-mode list)")
    parser.add_argument("--material", "-m", default="all",
                        help="Material filter: all, Direct, Indirect, Unassigned")
    parser.add_argument("--data", "-d", help="Data directory (overrides settings)")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Material Variance Engine")
    parser.add_argument("--config", "-c", help="Settings YAML file")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Compute a period view")
    _add_view_arguments(run_parser)
    run_parser.add_argument("--json", action="store_true", help="Print the JSON bundle")

    # Validate command
    val_parser = subparsers.add_parser("validate", help="Run validation checks")
    _add_view_arguments(val_parser)

    args = parser.parse_args(argv)

    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except (SettingsError, FileNotFoundError) as exc:
        print(f"Invalid settings: {exc}", file=sys.stderr)
        return 2
    configure_logging(settings)

    try:
        if args.command == "run":
            run(args, settings)
        elif args.command == "validate":
            report = run_validation(args, settings)
            return 0 if report.overall_passed else 1
        else:
            parser.print_help()
    except (DataFetchError, FilterError, FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
