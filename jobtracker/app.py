import argparse
import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from . import __version__
from .env import get_settings, load_env
from .errors import JobTrackerError, StorageError, error_signal
from .logger import LOG_LEVELS, get_logger
from .retry import RetryError, exponential_backoff, is_transient_error
from .schema import ALL_STATUSES, SORT_OPTIONS
from .service import JobService
from .store import JobStore

EXIT_CODES = {
    "internal": 1,
    "invalid": 2,
    "forbidden": 3,
    "not_found": 4,
    "conflict": 5,
}

# flag dest -> payload key
FIELD_FLAGS = {
    "company": "companyName",
    "title": "jobTitle",
    "description": "jobDescription",
    "status": "status",
    "method": "applicationMethod",
    "url": "jobUrl",
    "notes": "notes",
    "applied": "applicationDate",
    "reminder": "reminderDate",
    "status_note": "statusNote",
}


def _log_retry(attempt: int, exc: Exception, delay: float) -> None:
    get_logger().warning("Retrying after storage error", attempt=attempt, error=str(exc), delay=delay)


def _call(func, *args, **kwargs):
    """Run a service call, retrying stale-version conflicts and locked-database errors."""
    retried = exponential_backoff(
        max_retries=3,
        base_delay=0.05,
        max_delay=1.0,
        exceptions=(StorageError,),
        retry_if=is_transient_error,
        on_retry=_log_retry,
    )(func)
    return retried(*args, **kwargs)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _load_payload(args: argparse.Namespace) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if getattr(args, "input", None):
        input_path = Path(args.input)
        if not input_path.exists():
            raise SystemExit(f"Input file not found: {input_path}")
        with input_path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
        if not isinstance(payload, dict):
            raise SystemExit(f"Input file must contain a JSON object: {input_path}")

    for dest, key in FIELD_FLAGS.items():
        value = getattr(args, dest, None)
        if value is not None:
            payload[key] = value

    salary = {}
    for dest, key in (("salary_min", "min"), ("salary_max", "max"), ("currency", "currency")):
        value = getattr(args, dest, None)
        if value is not None:
            salary[key] = value
    if salary:
        payload["salaryRange"] = salary
    return payload


@contextmanager
def _open_service(args: argparse.Namespace) -> Iterator[JobService]:
    """Yield a service over the configured database; the store is closed on exit."""
    store = JobStore(Path(args.db))
    try:
        yield JobService(store, reminder_days=args.reminder_days)
    finally:
        store.close()


def cmd_add(args: argparse.Namespace) -> None:
    with _open_service(args) as service:
        job = _call(service.create_job, args.user, _load_payload(args))
    _emit(job.to_dict())


def cmd_list(args: argparse.Namespace) -> None:
    with _open_service(args) as service:
        jobs = _call(service.list_jobs, args.user, status=args.status, sort_by=args.sort)
    _emit([job.to_dict() for job in jobs])


def cmd_show(args: argparse.Namespace) -> None:
    with _open_service(args) as service:
        job = _call(service.get_job, args.user, args.id)
    _emit(job.to_dict())


def cmd_update(args: argparse.Namespace) -> None:
    with _open_service(args) as service:
        job = _call(service.update_job, args.user, args.id, _load_payload(args))
    _emit(job.to_dict())


def cmd_delete(args: argparse.Namespace) -> None:
    with _open_service(args) as service:
        _call(service.delete_job, args.user, args.id)
    _emit({"message": "Job removed", "id": args.id})


def cmd_stats(args: argparse.Namespace) -> None:
    with _open_service(args) as service:
        stats = _call(service.get_stats, args.user)
    _emit({
        "total": stats["total"],
        "byStatus": stats["by_status"],
        "upcomingReminders": [job.to_dict() for job in stats["upcoming_reminders"]],
    })


def cmd_reminders(args: argparse.Namespace) -> None:
    with _open_service(args) as service:
        jobs = _call(service.get_reminders, args.user, args.days)
    _emit([job.to_dict() for job in jobs])


def _add_field_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", help="Path to a JSON object with job fields")
    parser.add_argument("--company", help="Company name")
    parser.add_argument("--title", help="Job title")
    parser.add_argument("--description", help="Job description")
    parser.add_argument("--status", help="Application status, e.g. \"Interview Scheduled\"")
    parser.add_argument("--method", help="Application method, e.g. LinkedIn, Referral")
    parser.add_argument("--url", help="Job posting URL")
    parser.add_argument("--notes", help="Free-form notes")
    parser.add_argument("--applied", help="Application date (YYYY-MM-DD)")
    parser.add_argument("--reminder", help="Follow-up reminder date (YYYY-MM-DD[THH:MM])")
    parser.add_argument("--salary-min", dest="salary_min", help="Salary range lower bound")
    parser.add_argument("--salary-max", dest="salary_max", help="Salary range upper bound")
    parser.add_argument("--currency", help="Salary currency (default: USD)")
    parser.add_argument("--status-note", dest="status_note", help="Note stored with the status history entry")


def build_parser(settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobtracker", description="Job Tracker: log of job applications")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", default=str(settings.db_path), help=f"Path to SQLite database (default: {settings.db_path})")
    parser.add_argument("--user", default=settings.user, help="Authenticated user id (or set JOBTRACKER_USER)")
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        type=str.upper,
        choices=LOG_LEVELS,
        help="Log level (default: INFO)",
    )
    parser.add_argument("--log-dir", default=str(settings.log_dir), help="Directory for log files (default: logs)")
    parser.add_argument("--verbose", action="store_true", help="Echo logs to the console and print a metrics summary")
    parser.set_defaults(reminder_days=settings.reminder_days)

    subparsers = parser.add_subparsers(dest="command")

    add = subparsers.add_parser("add", help="Record a new job application")
    _add_field_flags(add)
    add.set_defaults(func=cmd_add)

    lst = subparsers.add_parser("list", help="List job applications")
    lst.add_argument("--status", default=ALL_STATUSES, help="Filter by status (default: All)")
    lst.add_argument("--sort", default="newest", choices=SORT_OPTIONS, help="Sort order (default: newest)")
    lst.set_defaults(func=cmd_list)

    show = subparsers.add_parser("show", help="Show one job application")
    show.add_argument("id", help="Job id")
    show.set_defaults(func=cmd_show)

    upd = subparsers.add_parser("update", help="Update a job application")
    upd.add_argument("id", help="Job id")
    _add_field_flags(upd)
    upd.set_defaults(func=cmd_update)

    dele = subparsers.add_parser("delete", help="Delete a job application")
    dele.add_argument("id", help="Job id")
    dele.set_defaults(func=cmd_delete)

    stats = subparsers.add_parser("stats", help="Totals per status and upcoming reminders")
    stats.set_defaults(func=cmd_stats)

    rem = subparsers.add_parser("reminders", help="Jobs with a reminder in the next N days")
    rem.add_argument("--days", help=f"Window size in days (default: {settings.reminder_days})")
    rem.set_defaults(func=cmd_reminders)

    return parser


def main(argv: Optional[list] = None):
    # Load .env if present (JOBTRACKER_DB, JOBTRACKER_USER, etc.)
    load_env()
    try:
        settings = get_settings()
    except ValueError as e:
        raise SystemExit(str(e))
    parser = build_parser(settings)
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        return

    logger = get_logger(level=args.log_level, log_dir=Path(args.log_dir), enable_console=args.verbose)
    try:
        args.func(args)
    except (JobTrackerError, RetryError) as e:
        cause = e.__cause__ if isinstance(e, RetryError) and e.__cause__ is not None else e
        signal = error_signal(cause)
        logger.debug("Command failed", command=args.command, signal=signal, error=str(e))
        print(f"Error ({signal}): {e}", file=sys.stderr)
        raise SystemExit(EXIT_CODES[signal])
    finally:
        if args.verbose:
            logger.log_metrics_summary()


if __name__ == "__main__":
    main()
