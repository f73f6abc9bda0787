"""
Job service: ownership enforcement, validation and status-history bookkeeping.

Every operation takes the authenticated principal as ``owner_id``. Records
are looked up first and their owner compared second, so a missing job
(NotFoundError) stays distinguishable from someone else's job
(AuthorizationError).
"""

import functools
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .database import JobRecord, StatusHistoryEntry
from .errors import (
    AuthorizationError,
    JobTrackerError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .logger import StructuredLogger, get_logger
from .schema import (
    ALL_STATUSES,
    DEFAULT_METHOD,
    DEFAULT_REMINDER_DAYS,
    DEFAULT_SORT,
    DEFAULT_STATUS,
    SORT_OPTIONS,
    JobStatus,
    _is_blank,
    coerce_status,
    normalize_input,
    parse_days_ahead,
    validate_job,
)
from .store import UPDATABLE_COLUMNS, JobStore, diff_dict

UPCOMING_REMINDERS_LIMIT = 5


def _tracked(operation: str):
    """Count calls and failures of a service operation in the logger metrics."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            log = self.logger
            log.record_operation(operation)
            try:
                return func(self, *args, **kwargs)
            except JobTrackerError as e:
                log.record_failure(operation, type(e).__name__)
                if isinstance(e, StorageError):
                    log.error(f"{operation} failed", error=str(e), transient=e.transient)
                raise
        return wrapper
    return decorator


class JobService:
    """Business operations on job records, scoped to their owner."""

    def __init__(
        self,
        store: JobStore,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[StructuredLogger] = None,
        reminder_days: int = DEFAULT_REMINDER_DAYS,
    ):
        self.store = store
        self.clock = clock
        self.reminder_days = reminder_days
        self._logger = logger

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    def _require_owner(self, owner_id: Any) -> None:
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise AuthorizationError("Not authorized: no authenticated user")

    def _load_owned(self, owner_id: str, job_id: str) -> JobRecord:
        self._require_owner(owner_id)
        record = self.store.find_by_id(job_id)
        if record is None:
            raise NotFoundError(f"Job not found: {job_id}")
        if record.owner_id != owner_id:
            self.logger.warning("Refused access to another user's job", owner_id=owner_id, job_id=job_id)
            raise AuthorizationError("Not authorized")
        return record

    @_tracked("create_job")
    def create_job(self, owner_id: str, data: Dict[str, Any]) -> JobRecord:
        """
        Create a job owned by ``owner_id``.

        Missing applicationDate defaults to now, missing status to Applied and
        missing applicationMethod to Company Website. The status history is
        seeded with the initial status.
        """
        self._require_owner(owner_id)
        fields, errors = normalize_input(data)
        if errors:
            raise ValidationError(errors)

        now = self.clock()
        status_note = fields.pop("status_note", None)
        if fields.get("application_date") is None:
            fields["application_date"] = now
        if fields.get("status") is None:
            fields["status"] = DEFAULT_STATUS
        if fields.get("application_method") is None:
            fields["application_method"] = DEFAULT_METHOD

        errors = validate_job(fields)
        if errors:
            raise ValidationError(errors)

        record = JobRecord(owner_id=owner_id, **fields)
        record.status_history = [StatusHistoryEntry(status=record.status, date=now, notes=status_note)]
        self.store.insert(record)

        self.logger.info(
            "Created job",
            owner_id=owner_id,
            job_id=record.id,
            company=record.company_name,
            status=record.status,
        )
        return record

    @_tracked("get_job")
    def get_job(self, owner_id: str, job_id: str) -> JobRecord:
        return self._load_owned(owner_id, job_id)

    @_tracked("list_jobs")
    def list_jobs(
        self,
        owner_id: str,
        status: Optional[str] = ALL_STATUSES,
        sort_by: Optional[str] = DEFAULT_SORT,
    ) -> List[JobRecord]:
        """
        List the owner's jobs.

        Args:
            owner_id: Authenticated principal
            status: A status value, or "All", blank or None for every status
            sort_by: newest (default), oldest or company
        """
        self._require_owner(owner_id)

        status_filter = None
        if not _is_blank(status) and status != ALL_STATUSES:
            try:
                status_filter = coerce_status(status)
            except ValueError as e:
                raise ValidationError(str(e)) from e

        sort = DEFAULT_SORT if sort_by is None else str(sort_by).strip().lower()
        if sort not in SORT_OPTIONS:
            raise ValidationError(f"'sort' must be one of: {', '.join(SORT_OPTIONS)}")

        jobs = self.store.find_by_owner(owner_id, status=status_filter, sort=sort)
        self.logger.debug("Listed jobs", owner_id=owner_id, status=status_filter, sort=sort, count=len(jobs))
        return jobs

    @_tracked("update_job")
    def update_job(self, owner_id: str, job_id: str, patch: Dict[str, Any]) -> JobRecord:
        """
        Apply a partial update to one of the owner's jobs.

        A new history entry is appended only when ``patch`` carries a status
        different from the stored one. Only changed columns are written, and
        the write is rejected with ConflictError if the record changed since
        it was read.
        """
        record = self._load_owned(owner_id, job_id)

        fields, errors = normalize_input(patch)
        if errors:
            raise ValidationError(errors)

        status_note = fields.pop("status_note", None)
        for name in ("status", "application_method"):
            if name in fields and fields[name] is None:
                del fields[name]

        current = {column: getattr(record, column) for column in UPDATABLE_COLUMNS}
        merged = dict(current)
        merged.update(fields)
        errors = validate_job(merged)
        if errors:
            raise ValidationError(errors)

        changed = diff_dict({k: current[k] for k in fields}, fields)

        history_entry = None
        new_status = fields.get("status")
        if new_status is not None and new_status != record.status:
            history_entry = {"status": new_status, "date": self.clock(), "notes": status_note}

        updated = self.store.update(
            job_id,
            {k: fields[k] for k in changed},
            expected_version=record.version,
            history_entry=history_entry,
        )
        if updated is None:
            raise NotFoundError(f"Job not found: {job_id}")

        if history_entry is not None:
            self.logger.record_status_transition(record.status, new_status)
        self.logger.info(
            "Updated job",
            owner_id=owner_id,
            job_id=job_id,
            changed=sorted(changed),
            status_appended=history_entry is not None,
        )
        return updated

    @_tracked("delete_job")
    def delete_job(self, owner_id: str, job_id: str) -> bool:
        self._load_owned(owner_id, job_id)
        if not self.store.delete(job_id):
            raise NotFoundError(f"Job not found: {job_id}")
        self.logger.info("Deleted job", owner_id=owner_id, job_id=job_id)
        return True

    @_tracked("get_stats")
    def get_stats(self, owner_id: str) -> Dict[str, Any]:
        """
        Summary of the owner's jobs.

        Returns a dict with ``total``, ``by_status`` (list of
        ``{"status", "count"}`` in status declaration order) and
        ``upcoming_reminders`` (at most 5 jobs with a reminder at or after
        now, soonest first).
        """
        self._require_owner(owner_id)
        now = self.clock()

        total = self.store.count_by_owner(owner_id)
        counts = self.store.aggregate_by_status(owner_id)
        order = {status.value: i for i, status in enumerate(JobStatus)}
        by_status = [
            {"status": status, "count": count}
            for status, count in sorted(counts.items(), key=lambda item: (order.get(item[0], len(order)), item[0]))
        ]
        upcoming = self.store.find_by_owner_in_date_range(
            owner_id, "reminder_date", now, None, limit=UPCOMING_REMINDERS_LIMIT
        )

        self.logger.debug("Computed stats", owner_id=owner_id, total=total)
        return {"total": total, "by_status": by_status, "upcoming_reminders": upcoming}

    @_tracked("get_reminders")
    def get_reminders(self, owner_id: str, days_ahead: Any = None) -> List[JobRecord]:
        """Jobs whose reminder falls in [now, now + days_ahead days], soonest first."""
        self._require_owner(owner_id)
        try:
            days = parse_days_ahead(days_ahead, default=self.reminder_days)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        now = self.clock()
        try:
            end = now + timedelta(days=days)
        except OverflowError as e:
            raise ValidationError("'days' is too large") from e
        jobs = self.store.find_by_owner_in_date_range(owner_id, "reminder_date", now, end)
        self.logger.debug("Listed reminders", owner_id=owner_id, days=days, count=len(jobs))
        return jobs
