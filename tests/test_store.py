"""
Tests for store.py - JobStore persistence and queries.
"""

from datetime import datetime, timedelta

import pytest

from jobtracker.database import JobRecord, StatusHistoryEntry
from jobtracker.errors import ConflictError, StorageError
from jobtracker.store import JobStore, diff_dict

from conftest import NOW


def make_job(owner_id="user-alice", company="Acme", status="Applied", reminder=None, **kwargs):
    job = JobRecord(
        owner_id=owner_id,
        company_name=company,
        job_title=kwargs.pop("title", "Engineer"),
        application_date=kwargs.pop("application_date", NOW),
        application_method=kwargs.pop("application_method", "Company Website"),
        status=status,
        reminder_date=reminder,
        **kwargs,
    )
    job.status_history = [StatusHistoryEntry(status=status, date=NOW)]
    return job


class TestInsertAndFind:
    """Test inserting and fetching records."""

    def test_insert_returns_id(self, store):
        job_id = store.insert(make_job())
        assert isinstance(job_id, str)
        assert len(job_id) == 32

    def test_insert_sets_timestamps_and_version(self, store, store_clock):
        expected = store_clock.current
        job = make_job()
        store.insert(job)

        assert job.created_at == expected
        assert job.updated_at == expected
        assert job.version == 1

    def test_find_by_id(self, store):
        job_id = store.insert(make_job(company="Globex"))

        found = store.find_by_id(job_id)

        assert found.company_name == "Globex"
        assert [e.status for e in found.status_history] == ["Applied"]

    def test_find_by_id_missing(self, store):
        assert store.find_by_id("0" * 32) is None

    def test_insert_constraint_violation_raises_storage_error(self, store):
        job = JobRecord(owner_id="user-alice", company_name=None, job_title="Engineer")
        with pytest.raises(StorageError):
            store.insert(job)

    def test_insert_blank_title_raises_storage_error(self, store):
        job = make_job(title="  ")
        with pytest.raises(StorageError):
            store.insert(job)

    def test_store_survives_failed_insert(self, store):
        with pytest.raises(StorageError):
            store.insert(make_job(title=""))
        store.insert(make_job())
        assert store.count_by_owner("user-alice") == 1


class TestFindByOwner:
    """Test owner-scoped listing with filter and sort."""

    @pytest.fixture
    def populated(self, store):
        ids = {}
        for company, status in [("Initech", "Applied"), ("acme", "Rejected"), ("Globex", "Applied")]:
            ids[company] = store.insert(make_job(company=company, status=status))
        store.insert(make_job(owner_id="user-bob", company="Bobco"))
        return ids

    def test_only_owner_records(self, store, populated):
        jobs = store.find_by_owner("user-alice")
        assert len(jobs) == 3
        assert all(job.owner_id == "user-alice" for job in jobs)

    def test_default_sort_newest_first(self, store, populated):
        jobs = store.find_by_owner("user-alice")
        assert [job.company_name for job in jobs] == ["Globex", "acme", "Initech"]

    def test_sort_oldest_first(self, store, populated):
        jobs = store.find_by_owner("user-alice", sort="oldest")
        assert [job.company_name for job in jobs] == ["Initech", "acme", "Globex"]

    def test_sort_company(self, store, populated):
        jobs = store.find_by_owner("user-alice", sort="company")
        # Binary collation: uppercase sorts before lowercase
        assert [job.company_name for job in jobs] == ["Globex", "Initech", "acme"]

    def test_status_filter(self, store, populated):
        jobs = store.find_by_owner("user-alice", status="Applied")
        assert {job.company_name for job in jobs} == {"Initech", "Globex"}

    def test_unknown_sort(self, store):
        with pytest.raises(ValueError):
            store.find_by_owner("user-alice", sort="salary")

    def test_empty(self, store):
        assert store.find_by_owner("nobody") == []


class TestDateRange:
    """Test inclusive date-range queries."""

    def test_inclusive_bounds(self, store):
        start, end = NOW, NOW + timedelta(days=7)
        store.insert(make_job(company="at-start", reminder=start))
        store.insert(make_job(company="at-end", reminder=end))
        store.insert(make_job(company="before", reminder=start - timedelta(seconds=1)))
        store.insert(make_job(company="after", reminder=end + timedelta(seconds=1)))
        store.insert(make_job(company="none"))

        jobs = store.find_by_owner_in_date_range("user-alice", "reminder_date", start, end)

        assert [job.company_name for job in jobs] == ["at-start", "at-end"]

    def test_open_ended_with_limit(self, store):
        for days in [9, 2, 5, 1, 7, 3]:
            store.insert(make_job(company=f"d{days}", reminder=NOW + timedelta(days=days)))

        jobs = store.find_by_owner_in_date_range("user-alice", "reminder_date", NOW, None, limit=4)

        assert [job.company_name for job in jobs] == ["d1", "d2", "d3", "d5"]

    def test_other_date_fields(self, store):
        store.insert(make_job(company="old", application_date=NOW - timedelta(days=30)))
        store.insert(make_job(company="recent", application_date=NOW - timedelta(days=2)))

        jobs = store.find_by_owner_in_date_range(
            "user-alice", "application_date", NOW - timedelta(days=7), NOW
        )

        assert [job.company_name for job in jobs] == ["recent"]

    def test_scoped_to_owner(self, store):
        store.insert(make_job(owner_id="user-bob", reminder=NOW + timedelta(days=1)))
        assert store.find_by_owner_in_date_range("user-alice", "reminder_date", NOW) == []

    def test_unknown_field(self, store):
        with pytest.raises(ValueError):
            store.find_by_owner_in_date_range("user-alice", "deadline", NOW)


class TestUpdate:
    """Test field-level updates and optimistic concurrency."""

    def test_update_changes_fields_and_bumps_version(self, store):
        job_id = store.insert(make_job())

        updated = store.update(job_id, {"notes": "Called recruiter", "salary_max": 90000.0})

        assert updated.notes == "Called recruiter"
        assert updated.salary_max == 90000.0
        assert updated.company_name == "Acme"
        assert updated.version == 2
        assert updated.updated_at > updated.created_at

    def test_update_with_history_entry(self, store):
        job_id = store.insert(make_job())

        updated = store.update(
            job_id,
            {"status": "Rejected"},
            history_entry={"status": "Rejected", "date": NOW, "notes": "Email"},
        )

        assert updated.status == "Rejected"
        assert [(e.status, e.notes) for e in updated.status_history] == [("Applied", None), ("Rejected", "Email")]

    def test_update_missing_returns_none(self, store):
        assert store.update("0" * 32, {"notes": "x"}) is None

    def test_matching_version_succeeds(self, store):
        job_id = store.insert(make_job())
        updated = store.update(job_id, {"notes": "a"}, expected_version=1)
        assert updated.version == 2

    def test_stale_version_conflicts(self, store):
        job_id = store.insert(make_job())
        store.update(job_id, {"notes": "first writer"}, expected_version=1)

        with pytest.raises(ConflictError):
            store.update(
                job_id,
                {"status": "Rejected"},
                expected_version=1,
                history_entry={"status": "Rejected", "date": NOW},
            )

        current = store.find_by_id(job_id)
        assert current.notes == "first writer"
        assert current.status == "Applied"
        assert len(current.status_history) == 1

    def test_conflict_is_transient_storage_error(self, store):
        job_id = store.insert(make_job())
        store.update(job_id, {"notes": "a"})
        with pytest.raises(StorageError) as exc_info:
            store.update(job_id, {"notes": "b"}, expected_version=1)
        assert exc_info.value.transient

    def test_unknown_column_rejected(self, store):
        job_id = store.insert(make_job())
        with pytest.raises(ValueError):
            store.update(job_id, {"owner_id": "mallory"})

    def test_constraint_violation_rolls_back(self, store):
        job_id = store.insert(make_job())

        with pytest.raises(StorageError):
            store.update(job_id, {"company_name": " "}, history_entry={"status": "Rejected", "date": NOW})

        current = store.find_by_id(job_id)
        assert current.company_name == "Acme"
        assert current.version == 1
        assert len(current.status_history) == 1


class TestDeleteCountAggregate:
    """Test delete, count and aggregation."""

    def test_delete(self, store):
        job_id = store.insert(make_job())
        assert store.delete(job_id) is True
        assert store.find_by_id(job_id) is None

    def test_delete_missing(self, store):
        assert store.delete("0" * 32) is False

    def test_count_by_owner(self, store):
        store.insert(make_job())
        store.insert(make_job())
        store.insert(make_job(owner_id="user-bob"))
        assert store.count_by_owner("user-alice") == 2
        assert store.count_by_owner("nobody") == 0

    def test_aggregate_by_status(self, store):
        for status in ["Applied", "Applied", "Rejected", "On Hold"]:
            store.insert(make_job(status=status))
        store.insert(make_job(owner_id="user-bob", status="Rejected"))

        assert store.aggregate_by_status("user-alice") == {"Applied": 2, "Rejected": 1, "On Hold": 1}

    def test_aggregate_empty(self, store):
        assert store.aggregate_by_status("nobody") == {}


class TestStoreInit:
    """Test store construction."""

    def test_creates_database(self, tmp_path):
        db_path = tmp_path / "nested" / "jobs.db"
        job_store = JobStore(db_path)
        try:
            assert db_path.exists()
        finally:
            job_store.close()

    def test_uses_clock(self, tmp_path):
        fixed = datetime(2030, 1, 1)
        job_store = JobStore(tmp_path / "jobs.db", clock=lambda: fixed)
        try:
            job = make_job()
            job_store.insert(job)
            assert job_store.find_by_id(job.id).created_at == fixed
        finally:
            job_store.close()


class TestDiffDict:
    """Test change detection helper."""

    def test_reports_changed_keys(self):
        assert diff_dict({"a": 1, "b": 2}, {"a": 1, "b": 3}) == {"b": {"old": 2, "new": 3}}

    def test_added_and_removed(self):
        assert diff_dict({"a": 1}, {"b": 2}) == {
            "a": {"old": 1, "new": None},
            "b": {"old": None, "new": 2},
        }

    def test_no_change(self):
        assert diff_dict({"a": 1}, {"a": 1}) == {}
