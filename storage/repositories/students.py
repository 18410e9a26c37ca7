"""
Students Repository.

Responsibilities:
- CRUD operations for the students table.
- Transaction-safe writes, one transaction per call.
- Emit a ChangeEvent for every committed mutation.

Non-Responsibilities:
- No aggregation or normalization.
- No retry of failed listeners.

Invariant:
Listeners run only after the write has committed, outside its transaction.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from studentstats.database import STUDENT_FIELDS, Student, write_transaction
from studentstats.events import ChangeEvent
from studentstats.logger import get_logger
from studentstats.normalize import parse_timestamp

logger = get_logger()

_TIMESTAMP_FIELDS = {"timestamp", "visa_status_updated_at", "service_fee_updated_at"}


def _coerce(data: Dict[str, Any]) -> Dict[str, Any]:
    values = {}
    for key, value in data.items():
        if key not in STUDENT_FIELDS or key == "id":
            continue
        if key in _TIMESTAMP_FIELDS and value is not None and not isinstance(value, datetime):
            value = parse_timestamp(value)
        values[key] = value
    return values


class StudentRepository:
    def __init__(
        self,
        session_factory: sessionmaker,
        on_change: Optional[Callable[[ChangeEvent], Any]] = None,
    ):
        self.session_factory = session_factory
        self.on_change = on_change

    def _emit(self, events: Iterable[ChangeEvent]) -> None:
        if self.on_change is None:
            return
        for change in events:
            try:
                self.on_change(change)
            except Exception as e:
                logger.error(
                    "Change listener failed",
                    student_id=change.student_id,
                    error=str(e),
                )
                logger.record_error(type(e).__name__)

    def get(self, student_id: str) -> Optional[Dict[str, Any]]:
        with self.session_factory() as session:
            student = session.get(Student, student_id)
            return student.to_snapshot() if student else None

    def list_snapshots(self, newest_first: bool = False, session: Optional[Session] = None) -> List[Dict[str, Any]]:
        """Every student as a plain dict. Pass session to read inside a caller's transaction."""
        stmt = select(Student)
        if newest_first:
            stmt = stmt.order_by(Student.timestamp.desc(), Student.id)
        else:
            stmt = stmt.order_by(Student.timestamp, Student.id)
        if session is not None:
            return [s.to_snapshot() for s in session.scalars(stmt)]
        with self.session_factory() as session:
            return [s.to_snapshot() for s in session.scalars(stmt)]

    def create(self, data: Dict[str, Any]) -> str:
        values = _coerce(data)
        if values.get("timestamp") is None:
            values.pop("timestamp", None)  # column default: now
        if data.get("id"):
            values["id"] = data["id"]
        with write_transaction(self.session_factory) as session:
            student = Student(**values)
            session.add(student)
            session.flush()
            after = student.to_snapshot()
        self._emit([ChangeEvent(after["id"], before=None, after=after)])
        return after["id"]

    def update(self, student_id: str, changes: Dict[str, Any]) -> Optional[ChangeEvent]:
        events = self.update_many({student_id: changes})
        return events[0] if events else None

    def update_many(self, changes: Dict[str, Dict[str, Any]]) -> List[ChangeEvent]:
        """Apply several updates in one transaction; unknown ids are skipped."""
        events = []
        with write_transaction(self.session_factory) as session:
            for student_id, fields in changes.items():
                student = session.get(Student, student_id)
                if student is None:
                    logger.warning("Update skipped, student not found", student_id=student_id)
                    continue
                before = student.to_snapshot()
                for key, value in _coerce(fields).items():
                    setattr(student, key, value)
                session.flush()
                events.append(ChangeEvent(student_id, before=before, after=student.to_snapshot()))
        self._emit(events)
        return events

    def delete(self, student_id: str) -> Optional[ChangeEvent]:
        with write_transaction(self.session_factory) as session:
            student = session.get(Student, student_id)
            if student is None:
                return None
            before = student.to_snapshot()
            session.delete(student)
        change = ChangeEvent(student_id, before=before, after=None)
        self._emit([change])
        return change
