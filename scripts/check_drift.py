#!/usr/bin/env python3
"""
Compare the incrementally maintained summary with a full rebuild.

Exits 0 when they agree, 1 when drift is found. Nothing is written.

Usage:
    python scripts/check_drift.py --db data/students.db
"""

import argparse
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pipelines.reconciliation.full_rebuild import ReconciliationJob
from storage.repositories.students import StudentRepository
from studentstats.database import get_session_factory
from studentstats.env import Settings, load_env
from studentstats.storage import AggregateStore


def report(drift: dict) -> bool:
    """Print drift per summary field. Returns True when there is none."""
    if not drift:
        print("✅ Summary matches a full rebuild")
        return True

    print(f"❌ DRIFT in {len(drift)} field(s)")
    for name, changes in sorted(drift.items()):
        print(f"   - {name}")
        if "old" in changes:
            print(f"     stored={changes['old']} rebuilt={changes['new']}")
            continue
        for key, values in list(sorted(changes.items()))[:5]:
            print(f"     {key}: stored={values['old']} rebuilt={values['new']}")
        if len(changes) > 5:
            print(f"     ... and {len(changes) - 5} more")
    return False


def main():
    load_env()
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Check the summary for drift")
    parser.add_argument("--db", type=Path, default=settings.db_path,
                        help="Path to SQLite database file")
    args = parser.parse_args()

    if not args.db.exists():
        print(f"❌ Database file not found: {args.db}")
        sys.exit(1)

    session_factory = get_session_factory(args.db)
    job = ReconciliationJob(
        StudentRepository(session_factory),
        AggregateStore(session_factory),
        window_months=settings.window_months,
    )
    sys.exit(0 if report(job.drift()) else 1)


if __name__ == "__main__":
    main()
