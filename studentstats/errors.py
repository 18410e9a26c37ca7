"""
Error taxonomy for the aggregation engine.

None of these reach an end user. They are logged by the component that
catches them and the next event or a manual reconciliation run repairs
whatever state was left stale.
"""


class StudentStatsError(Exception):
    """Base class for all studentstats errors."""


class TransactionConflict(StudentStatsError):
    """The summary transaction could not commit within the retry budget."""


class ProjectionRecomputeFailure(StudentStatsError):
    """The waiting-list projection could not be rebuilt."""


class ReconciliationFailure(StudentStatsError):
    """A full rebuild failed before the summary was overwritten."""


class BackfillBatchError(StudentStatsError):
    """A single backfill batch failed to commit."""

    def __init__(self, batch_number: int, message: str):
        super().__init__(f"Batch {batch_number}: {message}")
        self.batch_number = batch_number
