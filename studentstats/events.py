from dataclasses import dataclass
from typing import Any, Dict, Optional

CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """One mutation of a student record, as before/after snapshots."""

    student_id: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None

    @property
    def kind(self) -> Optional[str]:
        if self.before is None and self.after is None:
            return None
        if self.before is None:
            return CREATED
        if self.after is None:
            return DELETED
        return UPDATED
