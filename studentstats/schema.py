import re
from typing import Any, Dict, List

from .normalize import DIMENSIONS, is_canonical, parse_timestamp

REQUIRED_STR_FIELDS = ["full_name"]
OPTIONAL_STR_FIELDS = DIMENSIONS + ["searchable_name"]
TIMESTAMP_FIELDS = ["timestamp", "visa_status_updated_at", "service_fee_updated_at"]

TOTAL_KEY = "totalStudents"
MONTH_KEY = "monthlyAdmissions"

# Summary histogram names, one per dimension.
HISTOGRAM_KEYS = {
    "preferred_study_destination": "studentsByDestination",
    "visa_status": "visaStatusCounts",
    "assigned_to": "studentsByCounselor",
    "service_fee_status": "serviceFeeStatusCounts",
    "last_completed_education": "studentsByEducation",
    "english_proficiency_test": "studentsByEnglishTest",
}

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _is_count(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and v >= 0


def validate_student(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Dimension fields may be absent or empty; they fall back to defaults.
    """
    errors: List[str] = []

    for f in REQUIRED_STR_FIELDS:
        if f not in data:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    for f in OPTIONAL_STR_FIELDS:
        if f in data and data[f] is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    for f in TIMESTAMP_FIELDS:
        if f in data and data[f] is not None and parse_timestamp(data[f]) is None:
            errors.append(f"Field '{f}' must be an ISO-8601 timestamp")

    return errors


def validate_summary(data: Dict[str, Any], check_labels: bool = True) -> List[str]:
    """
    Check a summary document: non-negative counts, bucket keys drawn from
    the normalizer's output range, month keys shaped YYYY-MM.

    check_labels=False skips the bucket-key check, for summaries whose keys
    were produced by canonical() itself.
    """
    errors: List[str] = []

    if TOTAL_KEY in data and not _is_count(data[TOTAL_KEY]):
        errors.append(f"'{TOTAL_KEY}' must be a non-negative integer")

    for field, name in HISTOGRAM_KEYS.items():
        histogram = data.get(name, {})
        if not isinstance(histogram, dict):
            errors.append(f"'{name}' must be a mapping")
            continue
        for label, count in histogram.items():
            if check_labels and not is_canonical(field, label):
                errors.append(f"'{name}' has non-canonical key {label!r}")
            if not _is_count(count):
                errors.append(f"'{name}[{label}]' must be a non-negative integer")

    months = data.get(MONTH_KEY, {})
    if not isinstance(months, dict):
        errors.append(f"'{MONTH_KEY}' must be a mapping")
    else:
        for month, count in months.items():
            if not isinstance(month, str) or not _MONTH_RE.match(month):
                errors.append(f"'{MONTH_KEY}' has malformed key {month!r}")
            if not _is_count(count):
                errors.append(f"'{MONTH_KEY}[{month}]' must be a non-negative integer")

    return errors
