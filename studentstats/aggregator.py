"""
Incremental maintenance of the dashboard summary.

Each mutation event becomes a delta: a pure function from the current
summary to the next one. Deltas only ever adjust counts relative to what
is stored, so the order in which events land does not matter. Decrements
are floored at zero; a missing or non-positive bucket is left untouched.

The summary built here is a best-effort cache. The full rebuild in
pipelines/reconciliation is the source of truth.
"""

from typing import Any, Callable, Dict, Optional

from .events import CREATED, DELETED, UPDATED, ChangeEvent
from .logger import get_logger
from .normalize import DIMENSIONS, canonical, canonical_labels, month_key
from .schema import HISTOGRAM_KEYS, MONTH_KEY, TOTAL_KEY
from .storage import AggregateStore

logger = get_logger()

Summary = Dict[str, Any]
Delta = Callable[[Summary], Summary]


def empty_summary() -> Summary:
    summary: Summary = {TOTAL_KEY: 0, MONTH_KEY: {}}
    for name in HISTOGRAM_KEYS.values():
        summary[name] = {}
    return summary


def _increment(counts: Dict[str, int], key: str) -> None:
    counts[key] = counts.get(key, 0) + 1


def _decrement(counts: Dict[str, int], key: str) -> None:
    current = counts.get(key)
    if not isinstance(current, int) or current <= 0:
        return
    counts[key] = current - 1


def _histogram(summary: Summary, name: str) -> Dict[str, int]:
    counts = summary.get(name)
    if not isinstance(counts, dict):
        counts = {}
    summary[name] = counts
    return counts


def _total(summary: Summary) -> int:
    total = summary.get(TOTAL_KEY)
    return total if isinstance(total, int) and total > 0 else 0


def changed_dimensions(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, tuple]:
    """Fields whose canonical label differs, as {field: (old, new)}."""
    changes = {}
    for field in DIMENSIONS:
        old_label = canonical(field, before.get(field))
        new_label = canonical(field, after.get(field))
        if old_label != new_label:
            changes[field] = (old_label, new_label)
    return changes


def created_delta(after: Dict[str, Any]) -> Delta:
    labels = canonical_labels(after)
    month = month_key(after.get("timestamp"))
    if month is None:
        logger.warning(
            "Created record has no usable timestamp, skipping month bucket",
            student_id=after.get("id"),
        )

    def apply(summary: Summary) -> Summary:
        summary[TOTAL_KEY] = _total(summary) + 1
        for field, label in labels.items():
            _increment(_histogram(summary, HISTOGRAM_KEYS[field]), label)
        if month is not None:
            _increment(_histogram(summary, MONTH_KEY), month)
        return summary

    return apply


def deleted_delta(before: Dict[str, Any]) -> Delta:
    labels = canonical_labels(before)

    def apply(summary: Summary) -> Summary:
        total = _total(summary)
        summary[TOTAL_KEY] = total - 1 if total > 0 else 0
        for field, label in labels.items():
            _decrement(_histogram(summary, HISTOGRAM_KEYS[field]), label)
        # monthlyAdmissions keeps deleted records: it is an intake history.
        return summary

    return apply


def updated_delta(before: Dict[str, Any], after: Dict[str, Any]) -> Optional[Delta]:
    changes = changed_dimensions(before, after)
    if not changes:
        return None

    def apply(summary: Summary) -> Summary:
        for field, (old_label, new_label) in changes.items():
            counts = _histogram(summary, HISTOGRAM_KEYS[field])
            _decrement(counts, old_label)
            _increment(counts, new_label)
        return summary

    return apply


def delta_for(event: ChangeEvent) -> Optional[Delta]:
    kind = event.kind
    if kind == CREATED:
        return created_delta(event.after)
    if kind == DELETED:
        return deleted_delta(event.before)
    if kind == UPDATED:
        return updated_delta(event.before, event.after)
    return None


class AggregateUpdater:
    """Applies event deltas to the summary through the aggregate store."""

    def __init__(self, store: AggregateStore):
        self.store = store

    def apply(self, event: ChangeEvent) -> Optional[Summary]:
        """
        Apply the delta for one event.

        Returns:
            The merged summary that was written, or None when the event
            carries no change to any tracked dimension

        Raises:
            TransactionConflict: the retry budget was exhausted
        """
        delta = delta_for(event)
        if delta is None:
            logger.debug("No summary delta for event", student_id=event.student_id, kind=event.kind)
            return None
        summary = self.store.transact(delta)
        logger.debug(
            "Summary delta applied",
            student_id=event.student_id,
            kind=event.kind,
            total=summary.get(TOTAL_KEY),
        )
        return summary
