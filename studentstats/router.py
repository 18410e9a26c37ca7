from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Optional

from .aggregator import AggregateUpdater
from .events import ChangeEvent
from .logger import get_logger
from .welcome_board import WelcomeBoardProjection

logger = get_logger()


@dataclass
class EventOutcome:
    kind: Optional[str]
    summary_updated: bool = False
    board_updated: bool = False


class ChangeEventRouter:
    """
    Fans one mutation event out to the summary delta and the waiting-list
    recompute. Both run concurrently and are awaited together; neither
    blocks or undoes the other. There is no retry here.
    """

    def __init__(
        self,
        updater: AggregateUpdater,
        projection: WelcomeBoardProjection,
        max_workers: int = 4,
    ):
        self.updater = updater
        self.projection = projection
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="studentstats")

    def handle(self, event: ChangeEvent) -> EventOutcome:
        kind = event.kind
        if kind is None:
            logger.warning("No snapshot data on event, ignoring", student_id=event.student_id)
            return EventOutcome(kind=None)

        logger.info(f"Processing {kind.upper()}", student_id=event.student_id)
        logger.record_event(kind)

        summary_future = self._executor.submit(self.updater.apply, event)
        board_future = self._executor.submit(self.projection.recompute)
        wait([summary_future, board_future])

        outcome = EventOutcome(kind=kind)

        summary_error = summary_future.exception()
        if summary_error is None:
            outcome.summary_updated = True
            logger.record_delta(True)
        else:
            logger.error(
                "Summary delta failed",
                student_id=event.student_id,
                kind=kind,
                error_type=type(summary_error).__name__,
                error=str(summary_error),
            )
            logger.record_delta(False)
            logger.record_error(type(summary_error).__name__)

        board_error = board_future.exception()
        if board_error is None:
            outcome.board_updated = bool(board_future.result())
        else:
            logger.error(
                "Waiting list recompute raised",
                student_id=event.student_id,
                error=str(board_error),
            )
            logger.record_error(type(board_error).__name__)

        logger.info(
            "Event handled",
            student_id=event.student_id,
            kind=kind,
            summary_updated=outcome.summary_updated,
            board_updated=outcome.board_updated,
        )
        return outcome

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
