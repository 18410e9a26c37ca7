#!/usr/bin/env python3
"""
Run one of the batched backfills over the student collection.

Each batch commits on its own. A failed batch is reported and skipped,
never retried; re-run the script to pick up whatever was left, records
already fixed are skipped.

Usage:
    python scripts/run_backfill.py counselor-names --db data/students.db
    python scripts/run_backfill.py searchable-names --batch-size 100 --dry-run
"""

import argparse
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pipelines.backfill.jobs import BACKFILLS
from studentstats.app import build_pipeline
from studentstats.env import Settings, load_env


def main():
    load_env()
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Run a batched backfill")
    parser.add_argument("job", choices=sorted(BACKFILLS), help="Backfill to run")
    parser.add_argument("--db", type=Path, default=settings.db_path,
                        help="Path to SQLite database file")
    parser.add_argument("--batch-size", type=int, default=settings.batch_size,
                        help="Records per committed batch")
    parser.add_argument("--dry-run", action="store_true",
                        help="Show what would change without writing")
    args = parser.parse_args()

    if not args.db.exists():
        print(f"❌ Database file not found: {args.db}")
        sys.exit(1)

    settings.db_path = args.db
    pipeline = build_pipeline(settings)
    try:
        report = BACKFILLS[args.job](pipeline.repository, batch_size=args.batch_size, dry_run=args.dry_run)
    finally:
        pipeline.close()

    prefix = "[DRY RUN] " if report.dry_run else ""
    print(f"\n{prefix}Backfill '{report.name}'")
    print(f"   Scanned:  {report.scanned}")
    print(f"   Planned:  {report.planned} in {report.batches} batch(es)")
    print(f"   Updated:  {report.updated}")
    if report.failed_batches:
        print(f"❌ Failed batches: {report.failed_batches} (re-run to retry)")
        sys.exit(1)
    print("✅ Done")


if __name__ == "__main__":
    main()
