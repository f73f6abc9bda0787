"""
Error taxonomy for the job tracker core.

Every failure surfaced by JobService is one of these. Each class carries a
``signal`` that the adapter layer translates into its own status (exit code,
HTTP status, ...).
"""

from typing import Iterable, Union


class JobTrackerError(Exception):
    """Base class for all job tracker failures."""

    signal = "internal"


class ValidationError(JobTrackerError):
    """Raised when caller input is missing, malformed or out of domain."""

    signal = "invalid"

    def __init__(self, errors: Union[str, Iterable[str]]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NotFoundError(JobTrackerError):
    """Raised when no job exists for the given id."""

    signal = "not_found"


class AuthorizationError(JobTrackerError):
    """Raised when the job exists but the caller does not own it."""

    signal = "forbidden"


class StorageError(JobTrackerError):
    """Raised when the underlying persistence layer fails."""

    signal = "internal"

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class ConflictError(StorageError):
    """Raised when a job changed between read and write (stale version)."""

    signal = "conflict"

    def __init__(self, message: str):
        super().__init__(message, transient=True)


def error_signal(exc: BaseException) -> str:
    """Return the adapter signal for any exception."""
    if isinstance(exc, JobTrackerError):
        return exc.signal
    return "internal"
