from typing import List, Optional

from .database import WELCOME_DOC_PATH, write_transaction
from .errors import ProjectionRecomputeFailure
from .logger import get_logger
from .normalize import is_unassigned
from .storage import save_document

logger = get_logger()


class WelcomeBoardProjection:
    """
    Names of students still waiting for a counselor, newest first.

    Every recompute rebuilds the whole list from the student table and
    overwrites the display document; nothing is tracked incrementally.
    """

    def __init__(self, repository, path: str = WELCOME_DOC_PATH, limit: Optional[int] = None):
        self.repository = repository
        self.path = path
        self.limit = limit

    def waiting_names(self, session=None) -> List[str]:
        names = []
        for snapshot in self.repository.list_snapshots(newest_first=True, session=session):
            if not is_unassigned(snapshot):
                continue
            names.append(snapshot.get("full_name") or "")
            if self.limit is not None and len(names) >= self.limit:
                break
        return names

    def _write(self) -> List[str]:
        # One write transaction, so the last list to commit is never stale.
        try:
            with write_transaction(self.repository.session_factory) as session:
                names = self.waiting_names(session)
                save_document(session, self.path, {"names": names})
        except Exception as e:
            raise ProjectionRecomputeFailure(str(e)) from e
        return names

    def recompute(self) -> bool:
        """Rebuild the waiting list. Failures are logged, never raised."""
        try:
            names = self._write()
        except ProjectionRecomputeFailure as e:
            logger.error("Waiting list recompute failed", path=self.path, error=str(e))
            logger.record_error("ProjectionRecomputeFailure")
            logger.record_projection(False)
            return False

        logger.info("Waiting list updated", path=self.path, count=len(names))
        logger.record_projection(True)
        return True
