"""
Future timestamp Backfill.

Clamps creation timestamps that lie in the future (bad clock, bad import)
to the time of the run. A clamped record is no longer in the future, so a
second run finds nothing to do.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from studentstats.normalize import parse_timestamp

from .batching import BackfillReport, run_backfill

NAME = "future-timestamps"


def plan_timestamp_fix(snapshot: Dict[str, Any], now: datetime) -> Optional[Dict[str, Any]]:
    ts = parse_timestamp(snapshot.get("timestamp"))
    if ts is None or ts <= now:
        return None
    return {"timestamp": now}


def fix_future_timestamps(
    repository,
    batch_size: int = 250,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> BackfillReport:
    now = now or datetime.now()
    return run_backfill(
        repository,
        NAME,
        lambda snapshot: plan_timestamp_fix(snapshot, now),
        batch_size=batch_size,
        dry_run=dry_run,
    )
