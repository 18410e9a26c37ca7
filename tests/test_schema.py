"""
Tests for schema validation.
"""

from studentstats.aggregator import empty_summary
from studentstats.schema import validate_student, validate_summary


class TestValidateStudent:
    """Test student record validation."""

    def test_valid_student(self, valid_student):
        """Valid student should have no errors."""
        assert validate_student(valid_student) == []

    def test_minimal_student(self):
        """Only the name is required; dimensions fall back to defaults."""
        assert validate_student({"full_name": "Sita"}) == []

    def test_missing_required_field(self):
        errors = validate_student({"visa_status": "Applied"})
        assert any("full_name" in err for err in errors)

    def test_empty_name(self):
        errors = validate_student({"full_name": "   "})
        assert len(errors) == 1

    def test_invalid_student(self, invalid_student):
        errors = validate_student(invalid_student)
        assert any("full_name" in err for err in errors)
        assert any("visa_status" in err for err in errors)
        assert any("timestamp" in err for err in errors)

    def test_null_dimension_allowed(self):
        assert validate_student({"full_name": "Sita", "assigned_to": None}) == []

    def test_iso_timestamp_allowed(self):
        assert validate_student({"full_name": "Sita", "timestamp": "2026-02-01T09:30:00"}) == []


class TestValidateSummary:
    """Test summary document validation."""

    def test_empty_summary_is_valid(self):
        assert validate_summary(empty_summary()) == []
        assert validate_summary({}) == []

    def test_valid_summary(self):
        summary = empty_summary()
        summary["totalStudents"] = 2
        summary["studentsByDestination"] = {"Usa": 1, "N/A": 1}
        summary["studentsByCounselor"] = {"Pawan Acharya": 2, "Shikhar KC": 0}
        summary["monthlyAdmissions"] = {"2026-01": 2}
        assert validate_summary(summary) == []

    def test_negative_count(self):
        errors = validate_summary({"totalStudents": -1, "visaStatusCounts": {"Applied": -2}})
        assert len(errors) == 2

    def test_non_canonical_keys(self):
        errors = validate_summary({
            "studentsByDestination": {"usa ": 1},
            "studentsByCounselor": {"Pawan Sir": 1},
        })
        assert len(errors) == 2
        assert all("non-canonical" in err for err in errors)

    def test_label_check_can_be_skipped(self):
        summary = {"studentsByDestination": {"usa ": 1}, "totalStudents": -1}
        errors = validate_summary(summary, check_labels=False)
        assert errors == ["'totalStudents' must be a non-negative integer"]

    def test_malformed_month(self):
        errors = validate_summary({"monthlyAdmissions": {"2026-13": 1, "March": 2}})
        assert len(errors) == 2

    def test_bool_is_not_a_count(self):
        assert validate_summary({"totalStudents": True}) != []
