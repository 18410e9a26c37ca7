"""
Searchable name Backfill.

Adds searchable_name (lowercased full_name) to records created before the
field existed. Records that already have one are left alone.
"""

from typing import Any, Dict, Optional

from .batching import BackfillReport, run_backfill

NAME = "searchable-names"


def plan_searchable_name(snapshot: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    full_name = snapshot.get("full_name")
    if not isinstance(full_name, str) or not full_name.strip():
        return None
    if snapshot.get("searchable_name"):
        return None
    return {"searchable_name": full_name.lower()}


def add_searchable_names(repository, batch_size: int = 250, dry_run: bool = False) -> BackfillReport:
    return run_backfill(repository, NAME, plan_searchable_name, batch_size=batch_size, dry_run=dry_run)
