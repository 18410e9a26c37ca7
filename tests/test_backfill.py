"""
Tests for the batched backfills.
"""

from datetime import datetime, timedelta

import pytest

from pipelines.backfill.batching import chunked, run_backfill
from pipelines.backfill.counselor_names import plan_counselor_rename, update_counselor_names
from pipelines.backfill.future_timestamps import fix_future_timestamps, plan_timestamp_fix
from pipelines.backfill.jobs import BACKFILLS
from pipelines.backfill.searchable_names import add_searchable_names, plan_searchable_name

NOW = datetime(2026, 10, 19, 12, 0)


class TestChunked:
    def test_bounded_batches(self):
        assert chunked(list(range(5)), 2) == [[0, 1], [2, 3], [4]]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunked([1], 0)


class TestPlans:
    def test_counselor_rename(self):
        assert plan_counselor_rename({"assigned_to": "Pawan Sir"}) == {"assigned_to": "Pawan Acharya"}
        assert plan_counselor_rename({"assigned_to": "Ram Sir "}) == {"assigned_to": "Ram Babu Ojha"}
        assert plan_counselor_rename({"assigned_to": "Pawan Acharya"}) is None
        assert plan_counselor_rename({"assigned_to": None}) is None

    def test_searchable_name(self):
        assert plan_searchable_name({"full_name": "Asha Gurung"}) == {"searchable_name": "asha gurung"}
        assert plan_searchable_name({"full_name": "Asha", "searchable_name": "asha"}) is None

    def test_timestamp_fix(self):
        assert plan_timestamp_fix({"timestamp": NOW + timedelta(days=3)}, NOW) == {"timestamp": NOW}
        assert plan_timestamp_fix({"timestamp": NOW - timedelta(days=3)}, NOW) is None
        assert plan_timestamp_fix({"timestamp": None}, NOW) is None


class TestCounselorNames:
    def test_renames_and_rerun_is_noop(self, repository):
        ids = [
            repository.create({"full_name": f"S{i}", "assigned_to": name})
            for i, name in enumerate(["Pawan Sir", "Mujal Sir", "Pawan Acharya", None, "Mamta Miss"])
        ]

        report = update_counselor_names(repository, batch_size=2)

        assert report.scanned == 5
        assert report.planned == 3
        assert report.batches == 2
        assert report.updated == 3
        assert report.ok
        assert repository.get(ids[0])["assigned_to"] == "Pawan Acharya"
        assert repository.get(ids[4])["assigned_to"] == "Mamata Chapagain"

        again = update_counselor_names(repository, batch_size=2)
        assert again.planned == 0
        assert again.updated == 0

    def test_dry_run(self, repository):
        student_id = repository.create({"full_name": "S", "assigned_to": "Pawan Sir"})

        report = update_counselor_names(repository, dry_run=True)

        assert report.planned == 1
        assert report.updated == 0
        assert repository.get(student_id)["assigned_to"] == "Pawan Sir"

    def test_rename_leaves_summary_unchanged(self, pipeline):
        pipeline.repository.create({"full_name": "S", "assigned_to": "Pawan Sir"})
        before = pipeline.store.read()

        update_counselor_names(pipeline.repository)

        assert pipeline.store.read() == before
        assert before["studentsByCounselor"] == {"Pawan Acharya": 1}


class TestSearchableNames:
    def test_adds_missing(self, repository):
        a = repository.create({"full_name": "Asha Gurung"})
        b = repository.create({"full_name": "Bikash Rai", "searchable_name": "already set"})

        report = add_searchable_names(repository)

        assert report.updated == 1
        assert repository.get(a)["searchable_name"] == "asha gurung"
        assert repository.get(b)["searchable_name"] == "already set"


class TestFutureTimestamps:
    def test_clamps_future(self, repository):
        future = repository.create({"full_name": "Future", "timestamp": NOW + timedelta(days=30)})
        past = repository.create({"full_name": "Past", "timestamp": NOW - timedelta(days=30)})

        report = fix_future_timestamps(repository, now=NOW)

        assert report.updated == 1
        assert repository.get(future)["timestamp"] == NOW
        assert repository.get(past)["timestamp"] == NOW - timedelta(days=30)
        assert fix_future_timestamps(repository, now=NOW).planned == 0


class _FlakyRepository:
    """Wraps a repository and fails the nth update_many call."""

    def __init__(self, inner, fail_on):
        self.inner = inner
        self.fail_on = fail_on
        self.calls = 0

    def list_snapshots(self, newest_first=False):
        return self.inner.list_snapshots(newest_first)

    def update_many(self, changes):
        self.calls += 1
        if self.calls == self.fail_on:
            raise RuntimeError("commit rejected")
        return self.inner.update_many(changes)


class TestBatchFailures:
    def test_failed_batch_is_reported_and_others_stay_applied(self, repository, quiet_logger):
        for i in range(5):
            repository.create({"full_name": f"Student {i}", "timestamp": datetime(2026, 1, i + 1)})
        flaky = _FlakyRepository(repository, fail_on=2)

        report = run_backfill(flaky, "searchable-names", plan_searchable_name, batch_size=2)

        assert report.batches == 3
        assert report.failed_batches == [2]
        assert report.updated == 3
        assert not report.ok
        assert flaky.calls == 3  # no retry of batch 2
        assert quiet_logger.get_metrics()["errors_by_type"]["BackfillBatchError"] == 1

        # Re-running picks up exactly what the failed batch left behind.
        rerun = add_searchable_names(repository, batch_size=2)
        assert rerun.planned == 2
        assert all(s["searchable_name"] for s in repository.list_snapshots())


def test_registry():
    assert sorted(BACKFILLS) == ["counselor-names", "future-timestamps", "searchable-names"]
