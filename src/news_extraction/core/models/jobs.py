"""SQLAlchemy ORM models for extraction jobs and their append-only logs.

Owned by the job orchestrator (job rows) and the extraction worker (log rows).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from news_extraction.core.models.base import Base, new_id, utcnow

#: Allowed values of :attr:`ExtractionJob.status`.
JOB_STATUSES: tuple[str, ...] = (
    "pending",
    "active",
    "completed",
    "failed",
    "delayed",
    "waiting",
)

#: Statuses after which a job row is never mutated again.
TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

#: Allowed values of :attr:`ExtractionLog.status`.
LOG_STATUSES: tuple[str, ...] = ("success", "error", "partial", "skipped")


class ExtractionJob(Base):
    """One extraction request: a single URL or a batch of URLs for one domain.

    A retry never resumes a job; it creates a new row whose
    ``job_metadata["originalJobId"]`` points back at the failed one.

    Attributes:
        job_id: String UUID primary key.  Also used as the Celery task id.
        job_type: ``"single"`` or ``"batch"``.
        source_url: URL to extract (``None`` for batch jobs).
        domain: Target domain.
        config_id: Extraction config used for the job.
        facebook_post_id: Origin post id, when known.
        page_id: Origin page id, when known.
        triggered_by: Free-form origin marker (``"manual"``, ``"discovery"`` ...).
        status: One of :data:`JOB_STATUSES`.
        progress: Completion percentage 0-100.
        result: Outcome summary on success.
        error: ``{message, code, kind, retryCount}`` on failure.
        job_options: ``{priority, attempts, timeout_ms, force}``.
        job_metadata: ``{batchId, members, originalJobId}`` as applicable.
        attempts_made: Number of times a worker has claimed the job.
        created_at: When the job was enqueued.
        started_at: When a worker first claimed the job.
        completed_at: When the job reached a terminal status.
        updated_at: Last modification time.
    """

    __tablename__ = "extraction_jobs"

    job_id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    job_type: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="single")
    source_url: Mapped[Optional[str]] = mapped_column(sa.String(2048), nullable=True)
    domain: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    config_id: Mapped[str] = mapped_column(sa.String(36), nullable=False)

    # Origin
    facebook_post_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)
    page_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)
    triggered_by: Mapped[str] = mapped_column(sa.String(50), nullable=False, default="manual")

    # Lifecycle
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="pending")
    progress: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    result: Mapped[Optional[dict]] = mapped_column(sa.JSON, nullable=True)
    error: Mapped[Optional[dict]] = mapped_column(sa.JSON, nullable=True)
    job_options: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    job_metadata: Mapped[dict] = mapped_column(
        "metadata",
        sa.JSON,
        nullable=False,
        default=dict,
    )
    attempts_made: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    # Timing
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        sa.Index("idx_extraction_jobs_status", "status"),
        sa.Index("idx_extraction_jobs_domain", "domain"),
        sa.Index("idx_extraction_jobs_created_at", "created_at"),
        sa.Index("idx_extraction_jobs_config_id", "config_id"),
    )


class ExtractionLog(Base):
    """Write-once audit record for one extraction attempt.

    Never read back into the control flow; used for diagnostics only.
    """

    __tablename__ = "extraction_logs"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    source_url: Mapped[str] = mapped_column(sa.String(2048), nullable=False)
    domain: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    config_id: Mapped[Optional[str]] = mapped_column(sa.String(36), nullable=True)
    job_id: Mapped[Optional[str]] = mapped_column(sa.String(36), nullable=True)
    facebook_post_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)

    status: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    method: Mapped[Optional[str]] = mapped_column(sa.String(20), nullable=True)
    latency_ms: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    http_status: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)

    extracted_data: Mapped[Optional[dict]] = mapped_column(sa.JSON, nullable=True)
    error: Mapped[Optional[dict]] = mapped_column(sa.JSON, nullable=True)
    warnings: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    request_metadata: Mapped[Optional[dict]] = mapped_column(sa.JSON, nullable=True)
    response_metadata: Mapped[Optional[dict]] = mapped_column(sa.JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        sa.Index("idx_extraction_logs_domain", "domain"),
        sa.Index("idx_extraction_logs_status", "status"),
        sa.Index("idx_extraction_logs_created_at", "created_at"),
    )
