"""
Tests for summary deltas and the transactional aggregate store.
"""

import copy
import pytest
from datetime import datetime
from sqlalchemy.exc import OperationalError

from studentstats.aggregator import (
    AggregateUpdater,
    changed_dimensions,
    created_delta,
    delta_for,
    deleted_delta,
    empty_summary,
    updated_delta,
)
from studentstats.errors import TransactionConflict
from studentstats.events import ChangeEvent
from studentstats.schema import HISTOGRAM_KEYS, validate_summary
from studentstats.storage import AggregateStore

STUDENT_A = {
    "id": "a",
    "full_name": "Student A",
    "preferred_study_destination": "usa",
    "timestamp": datetime(2026, 4, 1, 12, 0),
}


def _histograms(summary):
    return {name: dict(summary.get(name, {})) for name in HISTOGRAM_KEYS.values()}


class TestCreatedDelta:
    def test_scenario_from_empty(self):
        summary = created_delta(STUDENT_A)({})

        assert summary["totalStudents"] == 1
        assert summary["studentsByDestination"] == {"Usa": 1}
        assert summary["visaStatusCounts"] == {"Not Applied": 1}
        assert summary["studentsByCounselor"] == {"Unassigned": 1}
        assert summary["serviceFeeStatusCounts"] == {"Unpaid": 1}
        assert summary["monthlyAdmissions"] == {"2026-04": 1}

    def test_missing_timestamp_skips_month(self):
        summary = created_delta({"full_name": "x"})(empty_summary())
        assert summary["totalStudents"] == 1
        assert summary["monthlyAdmissions"] == {}

    def test_tolerates_malformed_stored_histogram(self):
        summary = created_delta(STUDENT_A)({"studentsByDestination": "garbage", "totalStudents": -4})
        assert summary["studentsByDestination"] == {"Usa": 1}
        assert summary["totalStudents"] == 1


class TestDeletedDelta:
    def test_delete_of_never_created_record_stays_non_negative(self):
        summary = deleted_delta(STUDENT_A)(empty_summary())

        assert summary["totalStudents"] == 0
        # Absent buckets are not created by a floored decrement.
        assert summary["studentsByDestination"] == {}
        assert validate_summary(summary) == []

    def test_zero_bucket_stays_zero(self):
        start = empty_summary()
        start["studentsByDestination"] = {"Usa": 0}
        summary = deleted_delta(STUDENT_A)(start)
        assert summary["studentsByDestination"] == {"Usa": 0}

    def test_month_not_decremented(self):
        summary = created_delta(STUDENT_A)(empty_summary())
        summary = deleted_delta(STUDENT_A)(summary)
        assert summary["monthlyAdmissions"] == {"2026-04": 1}

    def test_create_then_delete_symmetry(self):
        start = empty_summary()
        start["totalStudents"] = 3
        start["studentsByDestination"] = {"Usa": 2, "Canada": 1}
        before = _histograms(start)

        summary = created_delta(STUDENT_A)(copy.deepcopy(start))
        summary = deleted_delta(STUDENT_A)(summary)

        assert summary["totalStudents"] == 3
        for name, counts in before.items():
            assert {k: v for k, v in summary[name].items() if v} == {k: v for k, v in counts.items() if v}
        assert summary["monthlyAdmissions"] == {"2026-04": 1}


class TestUpdatedDelta:
    def test_destination_change(self):
        summary = created_delta(STUDENT_A)(empty_summary())
        after = dict(STUDENT_A, preferred_study_destination="Canada ")
        summary = updated_delta(STUDENT_A, after)(summary)

        assert summary["studentsByDestination"] == {"Usa": 0, "Canada": 1}
        assert summary["totalStudents"] == 1
        assert summary["monthlyAdmissions"] == {"2026-04": 1}

    def test_label_equivalent_change_is_noop(self):
        before = dict(STUDENT_A, preferred_study_destination="usa ")
        after = dict(STUDENT_A, preferred_study_destination="USA")
        assert changed_dimensions(before, after) == {}
        assert updated_delta(before, after) is None

    def test_alias_rename_is_noop(self):
        before = dict(STUDENT_A, assigned_to="Pawan Sir")
        after = dict(STUDENT_A, assigned_to="Pawan Acharya")
        assert updated_delta(before, after) is None

    def test_untracked_field_change_is_noop(self):
        after = dict(STUDENT_A, full_name="Renamed", timestamp=datetime(2020, 1, 1))
        assert updated_delta(STUDENT_A, after) is None

    def test_increment_applies_even_when_old_bucket_missing(self):
        after = dict(STUDENT_A, visa_status="Granted")
        summary = updated_delta(STUDENT_A, after)(empty_summary())
        assert summary["visaStatusCounts"] == {"Granted": 1}

    def test_changed_dimensions(self):
        after = dict(STUDENT_A, visa_status="granted", assigned_to="mujal sir")
        assert changed_dimensions(STUDENT_A, after) == {
            "visa_status": ("Not Applied", "Granted"),
            "assigned_to": ("Unassigned", "Mujal Amatya"),
        }


class TestDeltaFor:
    def test_classification(self):
        assert delta_for(ChangeEvent("a", after=STUDENT_A)) is not None
        assert delta_for(ChangeEvent("a", before=STUDENT_A)) is not None
        assert delta_for(ChangeEvent("a", before=STUDENT_A, after=dict(STUDENT_A))) is None
        assert delta_for(ChangeEvent("a")) is None


class TestAggregateStore:
    def test_read_empty(self, store):
        assert store.read() == {}

    def test_transact_merges_with_existing_fields(self, store):
        store.replace({"totalStudents": 5, "legacyField": "keep me"})

        result = store.transact(lambda data: {"totalStudents": data["totalStudents"] + 1})

        assert result == {"totalStudents": 6, "legacyField": "keep me"}
        assert store.read() == result

    def test_failing_update_fn_leaves_summary(self, store):
        store.replace({"totalStudents": 1})

        def fn(data):
            data["totalStudents"] = 99
            raise ValueError("boom")

        with pytest.raises(ValueError):
            store.transact(fn)

        assert store.read() == {"totalStudents": 1}

    def test_replace_overwrites(self, store):
        store.replace({"totalStudents": 1, "old": True})
        store.replace({"totalStudents": 2})
        assert store.read() == {"totalStudents": 2}

    def test_lock_contention_exhausts_into_conflict(self, store):
        calls = [0]

        def locked(data):
            calls[0] += 1
            raise OperationalError("UPDATE documents", {}, Exception("database is locked"))

        store.max_retries = 2
        with pytest.raises(TransactionConflict):
            store.transact(locked)
        assert calls[0] == 3

    def test_non_transient_operational_error_is_not_retried(self, store):
        calls = [0]

        def broken(data):
            calls[0] += 1
            raise OperationalError("SELECT", {}, Exception("no such column: nope"))

        with pytest.raises(OperationalError):
            store.transact(broken)
        assert calls[0] == 1


class TestAggregateUpdater:
    def test_apply_sequence(self, store):
        updater = AggregateUpdater(store)

        updater.apply(ChangeEvent("a", after=STUDENT_A))
        updater.apply(ChangeEvent("a", before=STUDENT_A, after=dict(STUDENT_A, preferred_study_destination="Canada ")))

        summary = store.read()
        assert summary["totalStudents"] == 1
        assert summary["studentsByDestination"] == {"Usa": 0, "Canada": 1}

    def test_noop_update_writes_nothing(self, store):
        updater = AggregateUpdater(store)
        assert updater.apply(ChangeEvent("a", before=STUDENT_A, after=dict(STUDENT_A))) is None
        assert store.read() == {}
