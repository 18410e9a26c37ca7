#!/usr/bin/env python3
"""
Rebuild the dashboard summary from every student record.

Replaces metrics/dashboard with a fresh count. Safe to run while the
incremental path is live; run it again if you suspect drift.

Usage:
    python scripts/aggregate_stats.py --db data/students.db [--dry-run]
"""

import argparse
import json
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pipelines.reconciliation.full_rebuild import ReconciliationJob
from storage.repositories.students import StudentRepository
from studentstats.database import get_session_factory, init_database
from studentstats.env import Settings, load_env
from studentstats.errors import ReconciliationFailure
from studentstats.storage import AggregateStore


def main():
    load_env()
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Rebuild the dashboard summary")
    parser.add_argument("--db", type=Path, default=settings.db_path,
                        help="Path to SQLite database file")
    parser.add_argument("--months", type=int, default=settings.window_months,
                        help="Monthly admissions window (default: 12)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the rebuilt summary without writing it")
    args = parser.parse_args()

    if not args.db.exists():
        print(f"❌ Database file not found: {args.db}")
        sys.exit(1)

    init_database(args.db)
    session_factory = get_session_factory(args.db)
    job = ReconciliationJob(
        StudentRepository(session_factory),
        AggregateStore(session_factory, max_retries=settings.tx_retries),
        window_months=args.months,
    )

    try:
        summary = job.run(dry_run=args.dry_run)
    except ReconciliationFailure as e:
        print(f"❌ Rebuild failed, previous summary kept: {e}")
        sys.exit(1)

    if args.dry_run:
        print(json.dumps(summary, indent=2, sort_keys=True))
        return
    print(f"✅ Summary rebuilt: {summary['totalStudents']} students")


if __name__ == "__main__":
    main()
