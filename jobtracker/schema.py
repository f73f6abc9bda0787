"""
Field domains, payload normalization and validation for job records.

Payload dicts coming from an adapter use camelCase wire names; the rest of
the package works with snake_case column names. ``normalize_input`` does
that translation and value coercion, ``validate_job`` checks a complete set
of fields before it is persisted.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class JobStatus(str, Enum):
    APPLIED = "Applied"
    INTERVIEW_SCHEDULED = "Interview Scheduled"
    INTERVIEW_COMPLETED = "Interview Completed"
    OFFER_RECEIVED = "Offer Received"
    REJECTED = "Rejected"
    WITHDRAWN = "Withdrawn"
    ON_HOLD = "On Hold"


class ApplicationMethod(str, Enum):
    LINKEDIN = "LinkedIn"
    COMPANY_WEBSITE = "Company Website"
    REFERRAL = "Referral"
    JOB_BOARD = "Job Board"
    EMAIL = "Email"
    OTHER = "Other"


DEFAULT_STATUS = JobStatus.APPLIED.value
DEFAULT_METHOD = ApplicationMethod.COMPANY_WEBSITE.value
DEFAULT_CURRENCY = "USD"
DEFAULT_REMINDER_DAYS = 7

ALL_STATUSES = "All"
SORT_OPTIONS = ("newest", "oldest", "company")
DEFAULT_SORT = "newest"

REQUIRED_STR_FIELDS = ["company_name", "job_title"]
OPTIONAL_STR_FIELDS = ["job_description", "job_url", "notes"]
DATE_FIELDS = ["application_date", "reminder_date"]

# wire name -> column name
FIELD_ALIASES = {
    "companyName": "company_name",
    "jobTitle": "job_title",
    "jobDescription": "job_description",
    "jobUrl": "job_url",
    "applicationDate": "application_date",
    "applicationMethod": "application_method",
    "reminderDate": "reminder_date",
    "salaryRange": "salary_range",
    "statusNote": "status_note",
}

KNOWN_FIELDS = set(
    REQUIRED_STR_FIELDS
    + OPTIONAL_STR_FIELDS
    + DATE_FIELDS
    + ["application_method", "status", "salary_range", "status_note"]
)

# Keys a caller may send but never sets: owner comes from the authenticated
# principal, the rest are maintained by the service and the store.
IGNORED_FIELDS = {
    "id",
    "_id",
    "userId",
    "user_id",
    "ownerId",
    "owner_id",
    "statusHistory",
    "status_history",
    "createdAt",
    "created_at",
    "updatedAt",
    "updated_at",
    "version",
    "__v",
}


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _is_blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and v.strip() == "")


def _compact(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


def _coerce_enum(enum_cls, value: Any, label: str) -> str:
    if isinstance(value, enum_cls):
        return value.value
    if isinstance(value, str):
        wanted = _compact(value)
        for member in enum_cls:
            if wanted in (_compact(member.value), _compact(member.name)):
                return member.value
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValueError(f"Field '{label}' must be one of: {allowed}")


def coerce_status(value: Any) -> str:
    """Return the canonical status value for ``value`` or raise ValueError."""
    return _coerce_enum(JobStatus, value, "status")


def coerce_method(value: Any) -> str:
    return _coerce_enum(ApplicationMethod, value, "applicationMethod")


def parse_datetime(value: Any, label: str) -> datetime:
    """
    Parse a date-like value into a naive local datetime.

    Accepts datetime, date, or ISO-8601 strings (``2026-03-01``,
    ``2026-03-01T09:30:00Z``, ``2026-03-01T09:30:00+02:00``).
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Field '{label}' must be an ISO-8601 date") from None
    else:
        raise ValueError(f"Field '{label}' must be a date")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _to_amount(value: Any, label: str) -> Optional[float]:
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"Field '{label}' must be a number")
    try:
        amount = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"Field '{label}' must be a number") from None
    if amount != amount or amount in (float("inf"), float("-inf")):
        raise ValueError(f"Field '{label}' must be a finite number")
    if amount < 0:
        raise ValueError(f"Field '{label}' must be >= 0")
    return amount


def normalize_salary_range(value: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize a salary range payload.

    Returns None when neither min nor max is supplied, otherwise a dict with
    numeric ``min``/``max`` (either may be None) and a ``currency`` that
    defaults to USD.
    """
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError("Field 'salaryRange' must be an object")

    low = _to_amount(value.get("min"), "salaryRange.min")
    high = _to_amount(value.get("max"), "salaryRange.max")
    if low is None and high is None:
        return None

    currency = value.get("currency")
    if _is_blank(currency):
        currency = DEFAULT_CURRENCY
    elif not isinstance(currency, str):
        raise ValueError("Field 'salaryRange.currency' must be a string")
    return {"min": low, "max": high, "currency": currency.strip()}


def parse_days_ahead(value: Any, default: int = DEFAULT_REMINDER_DAYS) -> int:
    """Coerce a caller-supplied day count into a non-negative int."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return default
    if isinstance(value, bool):
        raise ValueError("'days' must be a non-negative integer")
    if isinstance(value, int):
        days = value
    elif isinstance(value, float) and value.is_integer():
        days = int(value)
    elif isinstance(value, str) and value.strip().lstrip("+").isdigit():
        days = int(value.strip())
    else:
        raise ValueError("'days' must be a non-negative integer")
    if days < 0:
        raise ValueError("'days' must be a non-negative integer")
    return days


def normalize_input(data: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Translate a create/update payload into column values.

    Returns ``(fields, errors)``. Only keys present in ``data`` appear in
    ``fields``; ``salary_range`` is flattened into the salary columns.
    """
    if not isinstance(data, dict):
        return {}, ["Payload must be an object"]

    fields: Dict[str, Any] = {}
    errors: List[str] = []

    for key, value in data.items():
        if key in IGNORED_FIELDS:
            continue
        name = FIELD_ALIASES.get(key, key)
        if name not in KNOWN_FIELDS:
            errors.append(f"Unknown field: {key}")
            continue

        try:
            if name in REQUIRED_STR_FIELDS:
                fields[name] = value.strip() if isinstance(value, str) else value
            elif name in OPTIONAL_STR_FIELDS or name == "status_note":
                if value is not None and not isinstance(value, str):
                    raise ValueError(f"Field '{key}' must be a string if provided")
                fields[name] = value.strip() if value is not None and value.strip() else None
            elif name in DATE_FIELDS:
                fields[name] = None if _is_blank(value) else parse_datetime(value, key)
            elif name == "status":
                fields[name] = None if _is_blank(value) else coerce_status(value)
            elif name == "application_method":
                fields[name] = None if _is_blank(value) else coerce_method(value)
            elif name == "salary_range":
                salary = normalize_salary_range(value)
                fields["salary_min"] = salary["min"] if salary else None
                fields["salary_max"] = salary["max"] if salary else None
                fields["salary_currency"] = salary["currency"] if salary else None
        except ValueError as e:
            errors.append(str(e))

    return fields, errors


def validate_job(fields: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.

    ``fields`` must be the complete set of column values about to be
    persisted (after defaults and patches are applied).
    """
    errors: List[str] = []

    for f in REQUIRED_STR_FIELDS:
        if f not in fields or fields[f] is None:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(fields[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    if not isinstance(fields.get("application_date"), datetime):
        errors.append("Missing required field: application_date")

    for name, check in (("status", coerce_status), ("application_method", coerce_method)):
        try:
            check(fields.get(name))
        except ValueError as e:
            errors.append(str(e))

    for f in ("salary_min", "salary_max"):
        v = fields.get(f)
        if v is not None and (not isinstance(v, (int, float)) or v < 0):
            errors.append(f"Field '{f}' must be a number >= 0")

    return errors
