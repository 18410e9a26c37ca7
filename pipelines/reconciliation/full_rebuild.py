"""
Full Rebuild of the dashboard summary.

Responsibilities:
- Recompute totals, the six dimension histograms and the trailing-window
  monthly admissions from every student record.
- Replace (never merge) the summary document with the result.
- Report drift between the stored summary and a fresh recomputation.

Non-Responsibilities:
- No locking against live deltas; a delta landing between the read pass
  and the overwrite is lost until the next rebuild.
- No partial writes: anything failing before the overwrite leaves the
  previous summary untouched.

Invariant:
A full rebuild must be idempotent and reproducible.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from studentstats.aggregator import empty_summary
from studentstats.errors import ReconciliationFailure
from studentstats.logger import get_logger
from studentstats.normalize import canonical_labels, parse_timestamp
from studentstats.schema import HISTOGRAM_KEYS, MONTH_KEY, TOTAL_KEY, validate_summary
from studentstats.storage import AggregateStore, diff_dict

logger = get_logger()


def months_before(now: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the month's end."""
    year, month_index = divmod(now.year * 12 + now.month - 1 - months, 12)
    month = month_index + 1
    day = now.day
    while day > 28:
        try:
            return now.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1
    return now.replace(year=year, month=month, day=day)


def compute_summary(
    snapshots: Iterable[Dict[str, Any]],
    now: datetime,
    window_months: int = 12,
) -> Dict[str, Any]:
    summary = empty_summary()
    cutoff = months_before(now, window_months)

    for snapshot in snapshots:
        summary[TOTAL_KEY] += 1

        for field, label in canonical_labels(snapshot).items():
            counts = summary[HISTOGRAM_KEYS[field]]
            counts[label] = counts.get(label, 0) + 1

        ts = parse_timestamp(snapshot.get("timestamp"))
        if ts is not None and ts > cutoff:
            month = ts.strftime("%Y-%m")
            summary[MONTH_KEY][month] = summary[MONTH_KEY].get(month, 0) + 1

    return summary


def detect_drift(current: Dict[str, Any], recomputed: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Per-key differences between the stored summary and a rebuild.

    Histogram keys are compared bucket by bucket; a zero bucket on one
    side and a missing bucket on the other are not drift.
    """
    drift: Dict[str, Dict[str, Any]] = {}

    if current.get(TOTAL_KEY, 0) != recomputed.get(TOTAL_KEY, 0):
        drift[TOTAL_KEY] = {"old": current.get(TOTAL_KEY, 0), "new": recomputed.get(TOTAL_KEY, 0)}

    for name in list(HISTOGRAM_KEYS.values()) + [MONTH_KEY]:
        old = {k: v for k, v in (current.get(name) or {}).items() if v}
        new = {k: v for k, v in (recomputed.get(name) or {}).items() if v}
        changed = diff_dict(old, new)
        if changed:
            drift[name] = changed

    return drift


class ReconciliationJob:
    def __init__(self, repository, store: AggregateStore, window_months: int = 12):
        self.repository = repository
        self.store = store
        self.window_months = window_months

    def compute(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now()
        snapshots = self.repository.list_snapshots()
        logger.info("Processing student records", count=len(snapshots))
        return compute_summary(snapshots, now, self.window_months)

    def run(self, now: Optional[datetime] = None, dry_run: bool = False) -> Dict[str, Any]:
        """
        Rebuild the summary from scratch and overwrite the stored document.

        Args:
            now: Reference time for the monthly window (default: now)
            dry_run: Compute and return the summary without writing it

        Returns:
            The recomputed summary

        Raises:
            ReconciliationFailure: anything failed before the overwrite
        """
        logger.info("Starting summary rebuild", dry_run=dry_run, window_months=self.window_months)
        try:
            summary = self.compute(now)
            # Bucket keys come from canonical(); only the counts and months need checking.
            errors = validate_summary(summary, check_labels=False)
            if errors:
                raise ValueError("; ".join(errors))
        except Exception as e:
            logger.error("Summary rebuild failed, previous summary kept", error=str(e))
            logger.record_error("ReconciliationFailure")
            raise ReconciliationFailure(str(e)) from e

        if dry_run:
            return summary

        try:
            self.store.replace(summary)
        except Exception as e:
            logger.error("Summary overwrite failed, previous summary kept", error=str(e))
            logger.record_error("ReconciliationFailure")
            raise ReconciliationFailure(str(e)) from e

        logger.record_reconciliation()
        logger.info(
            "Summary rebuilt",
            path=self.store.path,
            total=summary[TOTAL_KEY],
        )
        return summary

    def drift(self, now: Optional[datetime] = None) -> Dict[str, Dict[str, Any]]:
        return detect_drift(self.store.read(), self.compute(now))
