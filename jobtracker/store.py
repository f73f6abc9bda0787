"""
Jobs store.

Responsibilities:
- CRUD and query operations for the jobs table.
- Transaction-safe writes; a status-history row is written in the same
  transaction as the job update that produced it.
- Optimistic concurrency through the ``version`` column.

Non-Responsibilities:
- No ownership checks.
- No validation beyond database constraints.
"""

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .database import JobRecord, StatusHistoryEntry, get_engine, init_database, new_job_id
from .errors import ConflictError, StorageError
from .retry import is_transient_error

SORT_ORDERS = {
    "newest": (JobRecord.created_at.desc(), JobRecord.id.desc()),
    "oldest": (JobRecord.created_at.asc(), JobRecord.id.asc()),
    "company": (JobRecord.company_name.asc(), JobRecord.created_at.desc()),
}

DATE_COLUMNS = {
    "reminder_date": JobRecord.reminder_date,
    "application_date": JobRecord.application_date,
    "created_at": JobRecord.created_at,
}

UPDATABLE_COLUMNS = {
    "company_name",
    "job_title",
    "job_description",
    "application_date",
    "application_method",
    "status",
    "salary_min",
    "salary_max",
    "salary_currency",
    "job_url",
    "notes",
    "reminder_date",
}


def diff_dict(old: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    changed = {}
    keys = set(old.keys()) | set(new.keys())
    for k in keys:
        ov = old.get(k)
        nv = new.get(k)
        if ov != nv:
            changed[k] = {"old": ov, "new": nv}
    return changed


class JobStore:
    """SQLite-backed persistence for job records."""

    def __init__(self, db_path: Path, clock: Callable[[], datetime] = datetime.now):
        self.db_path = Path(db_path)
        self.clock = clock
        try:
            init_database(self.db_path)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not initialize database at {self.db_path}: {e}") from e
        self.engine = get_engine(self.db_path)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"{operation} failed: {e}", transient=is_transient_error(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def insert(self, record: JobRecord) -> str:
        """Persist a new record and return its id."""
        now = self.clock()
        if record.id is None:
            record.id = new_job_id()
        record.version = 1
        record.created_at = now
        record.updated_at = now
        with self._session("insert") as session:
            session.add(record)
        return record.id

    def find_by_id(self, job_id: str) -> Optional[JobRecord]:
        with self._session("find_by_id") as session:
            return session.get(JobRecord, job_id)

    def find_by_owner(
        self,
        owner_id: str,
        status: Optional[str] = None,
        sort: str = "newest",
    ) -> List[JobRecord]:
        """
        List an owner's records.

        Args:
            owner_id: Owning principal
            status: Exact status to match, or None for all statuses
            sort: One of newest, oldest, company
        """
        if sort not in SORT_ORDERS:
            raise ValueError(f"Unknown sort order: {sort}")
        stmt = select(JobRecord).where(JobRecord.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(JobRecord.status == status)
        stmt = stmt.order_by(*SORT_ORDERS[sort])
        with self._session("find_by_owner") as session:
            return list(session.scalars(stmt).all())

    def find_by_owner_in_date_range(
        self,
        owner_id: str,
        field: str,
        start: datetime,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[JobRecord]:
        """
        Records whose ``field`` lies in [start, end], ascending by ``field``.

        ``end=None`` leaves the range open-ended. Records with no value for
        ``field`` never match.
        """
        if field not in DATE_COLUMNS:
            raise ValueError(f"Unknown date field: {field}")
        column = DATE_COLUMNS[field]
        stmt = select(JobRecord).where(
            JobRecord.owner_id == owner_id,
            column.is_not(None),
            column >= start,
        )
        if end is not None:
            stmt = stmt.where(column <= end)
        stmt = stmt.order_by(column.asc(), JobRecord.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session("find_by_owner_in_date_range") as session:
            return list(session.scalars(stmt).all())

    def update(
        self,
        job_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
        history_entry: Optional[Dict[str, Any]] = None,
    ) -> Optional[JobRecord]:
        """
        Apply ``changes`` to a record in a single UPDATE statement.

        Only the given columns are written; ``version`` is bumped and
        ``updated_at`` refreshed. When ``expected_version`` is given and
        the stored version differs, ConflictError is raised. Returns the
        updated record, or None when no record has ``job_id``.
        """
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")

        values = dict(changes)
        values["updated_at"] = self.clock()
        values["version"] = JobRecord.version + 1

        stmt = update(JobRecord).where(JobRecord.id == job_id)
        if expected_version is not None:
            stmt = stmt.where(JobRecord.version == expected_version)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        with self._session("update") as session:
            result = session.execute(stmt)
            if result.rowcount == 0:
                if session.get(JobRecord, job_id) is None:
                    return None
                raise ConflictError(
                    f"Job {job_id} was modified concurrently (expected version {expected_version})"
                )
            if history_entry is not None:
                session.add(StatusHistoryEntry(job_id=job_id, **history_entry))
            session.flush()
            return session.get(JobRecord, job_id, populate_existing=True)

    def delete(self, job_id: str) -> bool:
        """Hard-delete a record and its history. False when it does not exist."""
        with self._session("delete") as session:
            record = session.get(JobRecord, job_id)
            if record is None:
                return False
            session.delete(record)
        return True

    def count_by_owner(self, owner_id: str) -> int:
        stmt = select(func.count()).select_from(JobRecord).where(JobRecord.owner_id == owner_id)
        with self._session("count_by_owner") as session:
            return session.scalar(stmt) or 0

    def aggregate_by_status(self, owner_id: str) -> Dict[str, int]:
        """Group-count an owner's records by status."""
        stmt = (
            select(JobRecord.status, func.count(JobRecord.id))
            .where(JobRecord.owner_id == owner_id)
            .group_by(JobRecord.status)
        )
        with self._session("aggregate_by_status") as session:
            return {status: count for status, count in session.execute(stmt).all()}
