"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta
from typing import Any, Dict

import pytest

from jobtracker.logger import get_logger, reset_logger
from jobtracker.service import JobService
from jobtracker.store import JobStore

NOW = datetime(2026, 3, 2, 9, 0, 0)
OWNER = "user-alice"
OTHER_OWNER = "user-bob"


class TickingClock:
    """Clock that advances a fixed step on every call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


@pytest.fixture(autouse=True)
def test_logger(tmp_path):
    """Route all logging to a temporary directory, never the console."""
    reset_logger()
    logger = get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield logger
    for handler in list(logger.logger.handlers):
        handler.close()
        logger.logger.removeHandler(handler)
    reset_logger()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "jobs.db"


@pytest.fixture
def store_clock() -> TickingClock:
    return TickingClock(NOW - timedelta(hours=1))


@pytest.fixture
def store(db_path, store_clock):
    job_store = JobStore(db_path, clock=store_clock)
    yield job_store
    job_store.close()


@pytest.fixture
def service(store, test_logger) -> JobService:
    return JobService(store, clock=lambda: NOW, logger=test_logger)


@pytest.fixture
def acme_input() -> Dict[str, Any]:
    """Minimal valid job payload."""
    return {"companyName": "Acme", "jobTitle": "Engineer"}


@pytest.fixture
def full_input() -> Dict[str, Any]:
    """Job payload with every optional field."""
    return {
        "companyName": "Globex",
        "jobTitle": "Data Scientist",
        "jobDescription": "Forecasting and experimentation",
        "applicationDate": "2026-02-20",
        "applicationMethod": "Referral",
        "status": "Interview Scheduled",
        "salaryRange": {"min": "120000", "max": 150000},
        "jobUrl": "https://jobs.example.com/globex/123",
        "notes": "Referred by Sam",
        "reminderDate": "2026-03-05T10:00:00",
    }
