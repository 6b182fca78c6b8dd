#!/usr/bin/env python3
"""
Unit Profitability & Inventory Health Report Generator
======================================================

Loads the source sheets, reconciles every sale, derives inventory health,
backorder, customer, opportunity, promotion and shipment views, and writes
them to an Excel workbook.

Usage:
    # Use settings.yaml defaults
    python generate_reports.py

    # Point at another data folder and settings file
    python generate_reports.py --settings my_settings.yaml --data-dir ./exports

    # Reproduce a past run
    python generate_reports.py --as-of 2024-06-30

    # Console summary only, no workbook
    python generate_reports.py --summary-only

    # Also publish the five derived sheets to a shared workbook
    python generate_reports.py --publish shared/derived_sheets.xlsx
"""

import sys
import argparse
import logging
from pathlib import Path

from dateutil import parser as date_parser

from profit_engine.config import config_from_yaml, default_config
from profit_engine.data_loader import DataLoader
from profit_engine.engine import AnalyticsEngine
from profit_engine.report_generator import ReportGenerator
from profit_engine.sheet_sync import ExcelWorkbookSink, SheetSync, sync_derived_results

logger = logging.getLogger("generate_reports")


def parse_as_of(value: str):
    """Parse the --as-of date with dateutil (any common format)."""
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError) as e:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}': {e}")


def run(args) -> int:
    config = config_from_yaml(args.settings) if args.settings else default_config
    if args.data_dir:
        config = config.with_overrides(data_path=Path(args.data_dir))

    try:
        loader = DataLoader(config=config, strict=True)
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        return 1

    print("\nLoading data...")
    snapshot = loader.fetch_all()

    print("Computing derived results...")
    results = AnalyticsEngine(config=config).compute(snapshot, today=args.as_of)

    generator = ReportGenerator(config=config)
    print(generator.generate_quick_summary(results))

    if args.summary_only:
        return 0

    output_file = generator.generate_workbook(results, output_file=args.output)
    print(f"Report saved to: {output_file}")

    if args.publish:
        sync = SheetSync(ExcelWorkbookSink(Path(args.publish)), config=config)
        sync_derived_results(sync, results, config)
        sync.flush()
        print(f"Derived sheets published to: {args.publish}")

    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Unit Profitability & Inventory Health Report Generator',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--settings', '-s',
        help='Path to settings.yaml (default: repository settings.yaml)'
    )

    parser.add_argument(
        '--data-dir', '-d',
        help='Folder holding the source CSV/Excel files (overrides settings)'
    )

    parser.add_argument(
        '--as-of',
        type=parse_as_of,
        help='Reference "today" for recency windows (default: current UTC date)'
    )

    parser.add_argument(
        '--output', '-o',
        help='Output workbook path (default: output/derived_results.xlsx)'
    )

    parser.add_argument(
        '--publish',
        help='Also push the five derived sheets to this workbook (replace-all per sheet)'
    )

    parser.add_argument(
        '--summary-only',
        action='store_true',
        help='Print the console summary without writing a workbook'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    return run(args)


if __name__ == "__main__":
    sys.exit(main())
