"""
Counselor name Backfill.

Rewrites assigned_to values that still hold a historical short name
("Pawan Sir") to the counselor's full name. Records already holding a
full name are skipped, so re-running is a no-op.
"""

from typing import Any, Dict, Optional

from studentstats.normalize import COUNSELOR, COUNSELOR_ALIASES

from .batching import BackfillReport, run_backfill

NAME = "counselor-names"


def plan_counselor_rename(
    snapshot: Dict[str, Any],
    aliases: Dict[str, str] = COUNSELOR_ALIASES,
) -> Optional[Dict[str, Any]]:
    current = snapshot.get(COUNSELOR)
    if not isinstance(current, str):
        return None
    new_name = aliases.get(current.strip())
    if new_name is None or new_name == current:
        return None
    return {COUNSELOR: new_name}


def update_counselor_names(
    repository,
    batch_size: int = 250,
    dry_run: bool = False,
    aliases: Optional[Dict[str, str]] = None,
) -> BackfillReport:
    table = aliases if aliases is not None else COUNSELOR_ALIASES
    return run_backfill(
        repository,
        NAME,
        lambda snapshot: plan_counselor_rename(snapshot, table),
        batch_size=batch_size,
        dry_run=dry_run,
    )
