"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for job application storage. A job record owns
an ordered status-history log stored in its own table.
"""

import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from .schema import ApplicationMethod, JobStatus

Base = declarative_base()


def new_job_id() -> str:
    return uuid.uuid4().hex


def _in_domain(column: str, enum_cls) -> str:
    values = ", ".join(f"'{m.value}'" for m in enum_cls)
    return f"{column} IN ({values})"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class StatusHistoryEntry(Base):
    """One status transition of a job application."""

    __tablename__ = "job_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(32), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)
    date = Column(DateTime, nullable=False, default=datetime.now)
    notes = Column(Text, nullable=True)

    job = relationship("JobRecord", back_populates="status_history")

    def to_dict(self) -> Dict[str, Any]:
        entry = {"status": self.status, "date": _iso(self.date)}
        if self.notes:
            entry["notes"] = self.notes
        return entry


class JobRecord(Base):
    """Tracked job application."""

    __tablename__ = "jobs"

    id = Column(String(32), primary_key=True, default=new_job_id)
    owner_id = Column(String, nullable=False)
    company_name = Column(String, nullable=False)
    job_title = Column(String, nullable=False)
    job_description = Column(Text, nullable=True)
    application_date = Column(DateTime, nullable=False, default=datetime.now)
    application_method = Column(String, nullable=False, default=ApplicationMethod.COMPANY_WEBSITE.value)
    status = Column(String, nullable=False, default=JobStatus.APPLIED.value)
    salary_min = Column(Float, nullable=True)
    salary_max = Column(Float, nullable=True)
    salary_currency = Column(String, nullable=True)
    job_url = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    reminder_date = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    status_history = relationship(
        "StatusHistoryEntry",
        back_populates="job",
        order_by="StatusHistoryEntry.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("length(trim(company_name)) > 0", name="ck_jobs_company_name"),
        CheckConstraint("length(trim(job_title)) > 0", name="ck_jobs_job_title"),
        CheckConstraint(_in_domain("status", JobStatus), name="ck_jobs_status"),
        CheckConstraint(_in_domain("application_method", ApplicationMethod), name="ck_jobs_method"),
        Index("ix_jobs_owner_created", "owner_id", "created_at"),
        Index("ix_jobs_owner_status", "owner_id", "status"),
        Index("ix_jobs_owner_reminder", "owner_id", "reminder_date"),
    )

    @property
    def salary_range(self) -> Optional[Dict[str, Any]]:
        if self.salary_min is None and self.salary_max is None:
            return None
        return {
            "min": self.salary_min,
            "max": self.salary_max,
            "currency": self.salary_currency or "USD",
        }

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, ISO-8601 dates)."""
        return {
            "id": self.id,
            "userId": self.owner_id,
            "companyName": self.company_name,
            "jobTitle": self.job_title,
            "jobDescription": self.job_description,
            "applicationDate": _iso(self.application_date),
            "applicationMethod": self.application_method,
            "status": self.status,
            "salaryRange": self.salary_range,
            "jobUrl": self.job_url,
            "notes": self.notes,
            "reminderDate": _iso(self.reminder_date),
            "statusHistory": [entry.to_dict() for entry in self.status_history],
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "version": self.version,
        }

    def __repr__(self) -> str:
        return f"<JobRecord {self.id} {self.company_name!r} - {self.job_title!r} [{self.status}]>"


def get_engine(db_path: Path) -> Engine:
    """
    Create an engine for the SQLite database file.

    Args:
        db_path: Path to SQLite database file
    """
    return create_engine(f"sqlite:///{db_path}")


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    engine.dispose()


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = get_engine(db_path)
    Session = sessionmaker(bind=engine)
    return Session()
