import os
from pathlib import Path
from typing import NamedTuple, Optional

from dotenv import load_dotenv

from .logger import LOG_LEVELS


class Settings(NamedTuple):
    db_path: Path
    log_level: str
    log_dir: Path
    user: Optional[str]
    reminder_days: int


def load_env() -> None:
    """Load .env from the working directory if present."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)


def get_settings() -> Settings:
    """Read settings from the environment, falling back to defaults."""
    raw_days = os.getenv("JOBTRACKER_REMINDER_DAYS", "7").strip()
    if not raw_days.isdigit():
        raise ValueError(f"JOBTRACKER_REMINDER_DAYS must be a non-negative integer, got {raw_days!r}")
    log_level = os.getenv("JOBTRACKER_LOG_LEVEL", "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"JOBTRACKER_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")
    return Settings(
        db_path=Path(os.getenv("JOBTRACKER_DB", "data/jobs.db")),
        log_level=log_level,
        log_dir=Path(os.getenv("JOBTRACKER_LOG_DIR", "logs")),
        user=os.getenv("JOBTRACKER_USER") or None,
        reminder_days=int(raw_days),
    )
