"""
SQLAlchemy database models.
Defines the jobs, result_entries and users tables.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from dnstest_queue.constants import DEFAULT_PRIORITY, DEFAULT_QUEUE_LABEL, HASH_ID_LENGTH, Progress


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing one requested DNS test.

    This is the authoritative source of truth for job state.

    Key constraints:
    - hash_id is unique and addresses the job in every per-job operation
    - fingerprint is the deduplication key and may repeat across time
    - progress moves 0 -> 1..99 -> 100, and back to 0 only on supervisor retry
    - id orders submissions and breaks ties between equal priorities
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    # Identity
    hash_id: Mapped[str] = mapped_column(String(HASH_ID_LENGTH), nullable=False, unique=True)
    fingerprint: Mapped[str] = mapped_column(String(32), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)

    # Scheduling
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_PRIORITY)
    queue_label: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_QUEUE_LABEL,
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=Progress.QUEUED)
    batch_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    # Retry tracking
    nb_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Audit copy of raw + normalized parameters
    params: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    undelegated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        # Index for efficient queue polling
        Index(
            "ix_jobs_queue_poll",
            "queue_label",
            "priority",
            "id",
            postgresql_where=text("progress = 0"),
        ),
        # Index for stalled job sweeps
        Index(
            "ix_jobs_running_updated",
            "updated_at",
            postgresql_where=text("progress > 0 AND progress < 100"),
        ),
        # Index for deduplication lookups
        Index("ix_jobs_fingerprint_created", "fingerprint", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, hash_id={self.hash_id}, "
            f"progress={self.progress}, nb_retries={self.nb_retries})"
        )


class ResultEntryRow(Base):
    """Append-only result entry attached to a job."""

    __tablename__ = "result_entries"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    hash_id: Mapped[str] = mapped_column(
        String(HASH_ID_LENGTH),
        ForeignKey("jobs.hash_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level: Mapped[str] = mapped_column(String(15), nullable=False)
    module: Mapped[str] = mapped_column(String(255), nullable=False)
    testcase: Mapped[str] = mapped_column(String(255), nullable=False)
    tag: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[float] = mapped_column(Float, nullable=False)
    args: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)


class User(Base):
    """API user allowed to submit batches."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    api_key: Mapped[str] = mapped_column(String(512), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
