import re
from datetime import datetime
from typing import Any, Dict, Optional

DESTINATION = "preferred_study_destination"
VISA = "visa_status"
COUNSELOR = "assigned_to"
FEE = "service_fee_status"
EDUCATION = "last_completed_education"
ENGLISH_TEST = "english_proficiency_test"

DIMENSIONS = [DESTINATION, VISA, COUNSELOR, FEE, EDUCATION, ENGLISH_TEST]

DEFAULT_LABELS = {
    DESTINATION: "N/A",
    VISA: "Not Applied",
    COUNSELOR: "Unassigned",
    FEE: "Unpaid",
    EDUCATION: "N/A",
    ENGLISH_TEST: "N/A",
}

UNASSIGNED = DEFAULT_LABELS[COUNSELOR]

# Historical short names -> canonical full names.
COUNSELOR_ALIASES = {
    "Pawan Sir": "Pawan Acharya",
    "Mujal Sir": "Mujal Amatya",
    "Sabina Mam": "Sabina Thapa",
    "Shyam Sir": "Shyam Babu Ojha",
    "Mamta Miss": "Mamata Chapagain",
    "Sonima Mam": "Sonima Rijal",
    "Sujata Mam": "Sujata Nepal",
    "Anisha Mam": "Anisha Thapa",
    "Saubhana Mam": "Saubhana Bhandari",
    "Sunita Mam": "Sunita Khadka",
    "Shikhar Sir": "Shikhar KC",
    "Ram Sir": "Ram Babu Ojha",
    "Pradeep Sir": "Pradeep Khadka",
}


def _lookup_key(s: str) -> str:
    return " ".join(s.lower().split())


# Full names map to themselves so a canonical label is a fixed point.
_COUNSELOR_LOOKUP = {_lookup_key(full): full for full in COUNSELOR_ALIASES.values()}
_COUNSELOR_LOOKUP.update({_lookup_key(old): new for old, new in COUNSELOR_ALIASES.items()})

_TOKEN = re.compile(r"\S+")


def title_case(s: str) -> str:
    return _TOKEN.sub(lambda m: m.group(0)[:1].title() + m.group(0)[1:].lower(), s)


def _label(field: str, value: str) -> str:
    if field == COUNSELOR:
        alias = _COUNSELOR_LOOKUP.get(_lookup_key(value))
        if alias:
            return alias
    return title_case(value)


def canonical(field: str, raw: Any) -> str:
    """
    Map a raw field value to its bucket key. Never raises.

    Non-default labels are fixed points: canonical(field, label) == label.
    """
    default = DEFAULT_LABELS.get(field, "N/A")
    value = raw.strip() if isinstance(raw, str) else ""
    if not value:
        return default
    label = _label(field, value)
    # Case mapping can change length ("ŉ" -> "ʼN"); settle on a stable label.
    seen = set()
    while label not in seen:
        seen.add(label)
        again = _label(field, label)
        if again == label:
            break
        label = again
    return label


def canonical_labels(snapshot: Optional[Dict[str, Any]]) -> Dict[str, str]:
    snapshot = snapshot or {}
    return {field: canonical(field, snapshot.get(field)) for field in DIMENSIONS}


def is_canonical(field: str, label: Any) -> bool:
    """True when label lies in the normalizer's output range for field."""
    if not isinstance(label, str) or label == "":
        return False
    # "N/A" is only reachable as a default; title-casing it gives "N/a".
    return label == DEFAULT_LABELS.get(field) or canonical(field, label) == label


def is_unassigned(snapshot: Optional[Dict[str, Any]]) -> bool:
    return canonical(COUNSELOR, (snapshot or {}).get(COUNSELOR)) == UNASSIGNED


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def month_key(value: Any) -> Optional[str]:
    ts = parse_timestamp(value)
    return ts.strftime("%Y-%m") if ts else None
