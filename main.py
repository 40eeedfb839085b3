"""
main.py
--------
Entry point for the Recurrence Budget Engine.

Reads a user's categorized transactions from CSV, detects recurring
expense patterns, computes per-category monthly averages and a 12-month
budget projection, and writes all three to the outputs/ folder.

Usage (from the project root):
    python main.py --input path/to/transactions.csv

    # With optional arguments:
    python main.py --input txns.csv --user-id user-42 --months 12
    python main.py --input txns.csv --end-date 2024-12-31
    python main.py --input txns.csv --approve-detected
"""

import sys
import os
import argparse
import logging
import pandas as pd
from datetime import datetime

# Ensure project root is on path (for runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from core.pattern_store import PatternStore
from pipeline import RecurrenceBudgetPipeline


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")

ID_COLUMNS = {"transaction_id": str, "category_id": str, "sub_category_id": str}


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Recurrence Budget Engine: detect recurring expenses and build monthly budgets."
    )
    parser.add_argument(
        "--input", type=str, required=True,
        help="Path to a transactions CSV with transaction_id, processed_date, amount, "
             "category_id, sub_category_id and description columns."
    )
    parser.add_argument(
        "--user-id", type=str, default="local-user",
        help="Owner of the transactions. Default: local-user."
    )
    parser.add_argument(
        "--months", type=int, default=None,
        help="Analysis window in months. Defaults to config value (6)."
    )
    parser.add_argument(
        "--end-date", type=str, default=None,
        help="Last day of the analysis window (YYYY-MM-DD). Defaults to today."
    )
    parser.add_argument(
        "--approve-detected", action="store_true",
        help="Approve every detected pattern so it feeds the budget. "
             "By default detections stay pending and only category averages are budgeted."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Output directory. Defaults to outputs/ in project root."
    )
    return parser.parse_args(argv)


# =============================================================================
# MAIN
# =============================================================================

def main(argv: list[str] | None = None):
    args = parse_args(argv)

    # --- Resolve paths ---
    output_dir = args.output_dir or os.path.join(PROJECT_ROOT, "outputs")

    # --- Load transactions ---
    logger.info(f"Loading transactions from: {args.input}")
    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        sys.exit(1)

    os.makedirs(output_dir, exist_ok=True)
    transactions = pd.read_csv(args.input, dtype=ID_COLUMNS)
    logger.info(f"Loaded {len(transactions):,} transactions.")

    end_date = datetime.strptime(args.end_date, "%Y-%m-%d") if args.end_date else None

    # --- Run pipeline ---
    pipeline = RecurrenceBudgetPipeline(months_to_analyze=args.months)
    store = PatternStore()
    if args.approve_detected:
        store.upsert(pipeline.detect_patterns(args.user_id, transactions, end_date=end_date))
        for pattern in store.pending_patterns(args.user_id):
            pattern.approve()
        logger.info(f"Approved {len(store.active_patterns(args.user_id)):,} detected patterns.")
    outputs = pipeline.run(args.user_id, transactions, end_date=end_date, store=store)

    # --- Output ---
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    for name, frame in outputs.items():
        path = os.path.join(output_dir, f"{name}_{timestamp}.csv")
        frame.to_csv(path, index=False)
        logger.info(f"{name} saved to: {path}")

    _print_summary(outputs)
    return outputs


def _print_summary(outputs: dict[str, pd.DataFrame]):
    """Prints a clean summary to the console."""
    patterns = outputs["patterns"]
    averages = outputs["category_averages"]
    projection = outputs["budget_projection"]

    print("\n" + "=" * 80)
    print("  RECURRENCE BUDGET SUMMARY")
    print("=" * 80)

    print("\n  Detected Patterns:")
    print("  " + "-" * 60)
    if patterns.empty:
        print("    None")
    for _, row in patterns.iterrows():
        print(
            f"    {row['description'][:30]:30s}  {row['recurrence_pattern']:10s}  "
            f"{int(row['average_amount']):>8,}  (confidence {float(row['confidence']):.2f}, {row['approval_status']})"
        )

    print("\n  Coverage Mix:")
    print("  " + "-" * 60)
    for coverage in ["REGULAR", "MOSTLY_REGULAR", "SEMI_REGULAR", "IRREGULAR"]:
        count = (averages["coverage"] == coverage).sum() if not averages.empty else 0
        print(f"    {coverage:16s}  {count:>5,}")

    variable = (projection["budget_type"] == "variable").sum() if not projection.empty else 0
    print(f"\n  Budget categories: {len(projection):,} ({variable:,} variable)")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    main()
