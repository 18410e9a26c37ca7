import copy
from typing import Any, Callable, Dict

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from .database import Document, SUMMARY_DOC_PATH, write_transaction
from .errors import TransactionConflict
from .logger import get_logger
from .retry import RetryError, exponential_backoff, is_transient_error

logger = get_logger()


def load_document(session, path: str) -> Dict[str, Any]:
    doc = session.get(Document, path)
    if doc is None or not isinstance(doc.data, dict):
        return {}
    return copy.deepcopy(doc.data)


def save_document(session, path: str, data: Dict[str, Any]) -> None:
    """Overwrite the document at path. Caller owns the transaction."""
    doc = session.get(Document, path)
    if doc is None:
        session.add(Document(path=path, data=data))
    else:
        doc.data = data


def diff_dict(old: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    changed = {}
    keys = set(old.keys()) | set(new.keys())
    for k in keys:
        ov = old.get(k)
        nv = new.get(k)
        if ov != nv:
            changed[k] = {"old": ov, "new": nv}
    return changed


class AggregateStore:
    """
    The singleton summary document and the only way to change it.

    transact() is the serialization point for all incremental writes;
    replace() is the wholesale overwrite used by a full rebuild.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        path: str = SUMMARY_DOC_PATH,
        max_retries: int = 5,
        base_delay: float = 0.05,
    ):
        self.session_factory = session_factory
        self.path = path
        self.max_retries = max_retries
        self.base_delay = base_delay

    def read(self) -> Dict[str, Any]:
        with self.session_factory() as session:
            return load_document(session, self.path)

    def transact(self, update_fn: Callable[[Dict[str, Any]], Dict[str, Any]]) -> Dict[str, Any]:
        """
        Read the summary (or {}), apply update_fn, merge the result over the
        stored fields and write it back, all in one transaction.

        Raises:
            TransactionConflict: the write lock could not be won in time
        """

        def _log_retry(attempt, exc, delay):
            logger.warning(
                "Summary transaction conflict, retrying",
                attempt=attempt,
                delay=delay,
                error=str(exc),
            )

        @exponential_backoff(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=2.0,
            exceptions=(OperationalError, IntegrityError),
            should_retry=is_transient_error,
            on_retry=_log_retry,
        )
        def _attempt() -> Dict[str, Any]:
            with write_transaction(self.session_factory) as session:
                doc = session.get(Document, self.path, with_for_update=True)
                stored = copy.deepcopy(doc.data) if doc is not None and isinstance(doc.data, dict) else {}
                updated = update_fn(copy.deepcopy(stored))
                merged = {**stored, **updated}
                if doc is None:
                    session.add(Document(path=self.path, data=merged))
                else:
                    doc.data = merged
            return merged

        try:
            return _attempt()
        except RetryError as e:
            raise TransactionConflict(str(e)) from e

    def replace(self, data: Dict[str, Any]) -> None:
        with write_transaction(self.session_factory) as session:
            save_document(session, self.path, data)
