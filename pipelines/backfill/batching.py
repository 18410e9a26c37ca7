"""
Bounded-batch Backfill runner.

Responsibilities:
- One read pass over the students table.
- Plan a change per record, skipping records that already carry it.
- Commit batches of at most batch_size updates, one transaction each,
  strictly in sequence.

Non-Responsibilities:
- No whole-run atomicity. Batches committed before a failure stay applied.
- No retry. A failed batch is logged and reported, and the run moves on.

Invariant:
Every job must be safe to re-run; a second run over unchanged data plans
nothing.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from studentstats.errors import BackfillBatchError
from studentstats.logger import get_logger

logger = get_logger()

PlanChange = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


@dataclass
class BackfillReport:
    name: str
    scanned: int = 0
    planned: int = 0
    updated: int = 0
    batches: int = 0
    failed_batches: List[int] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed_batches


def chunked(items: List[Any], size: int) -> List[List[Any]]:
    if size < 1:
        raise ValueError("batch_size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


def run_backfill(
    repository,
    name: str,
    plan_change: PlanChange,
    batch_size: int = 250,
    dry_run: bool = False,
) -> BackfillReport:
    report = BackfillReport(name=name, dry_run=dry_run)
    logger.info(f"Starting backfill '{name}'", batch_size=batch_size, dry_run=dry_run)

    pending = []
    for snapshot in repository.list_snapshots():
        report.scanned += 1
        changes = plan_change(snapshot)
        if changes:
            logger.debug(
                "Scheduling update",
                student_id=snapshot["id"],
                full_name=snapshot.get("full_name"),
                changes=changes,
            )
            pending.append((snapshot["id"], changes))
    report.planned = len(pending)

    if not pending:
        logger.info(f"Backfill '{name}': no records need updating", scanned=report.scanned)
        return report

    batches = chunked(pending, batch_size)
    report.batches = len(batches)
    logger.info(
        f"Backfill '{name}': {report.planned} of {report.scanned} records in {len(batches)} batch(es)"
    )
    if dry_run:
        return report

    for number, batch in enumerate(batches, 1):
        try:
            events = repository.update_many(dict(batch))
        except Exception as e:
            failure = BackfillBatchError(number, str(e))
            logger.error(f"Backfill '{name}' batch failed", batch=number, error=str(failure))
            logger.record_error("BackfillBatchError")
            report.failed_batches.append(number)
            continue
        report.updated += len(events)
        logger.info(f"Committed batch {number} of {len(batches)}", updated=len(events))

    logger.info(
        f"Backfill '{name}' finished",
        updated=report.updated,
        failed_batches=report.failed_batches,
    )
    return report
