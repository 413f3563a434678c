"""Pydantic schemas for job orchestration requests and read models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

JobStatus = Literal["pending", "active", "completed", "failed", "delayed", "waiting"]


class JobOrigin(BaseModel):
    """Where an extraction request came from."""

    facebook_post_id: Optional[str] = None
    page_id: Optional[str] = None
    triggered_by: str = "manual"


class EnqueueOptions(BaseModel):
    """Per-request job options.  ``None`` fields fall back to settings defaults.

    Attributes:
        priority: 1 (highest) to 10 (lowest).
        attempts: Total attempts including the first run.
        timeout_ms: Soft time budget recorded on the job.
        force: Extract again even if a stored extraction exists.
    """

    priority: Optional[int] = Field(default=None, ge=1, le=10)
    attempts: Optional[int] = Field(default=None, ge=1, le=10)
    timeout_ms: Optional[int] = Field(default=None, ge=1_000)
    force: bool = False


class BatchOptions(EnqueueOptions):
    """Options for a batch request.  ``limit`` caps the number of members."""

    limit: Optional[int] = Field(default=None, ge=1, le=500)


class EnqueueResult(BaseModel):
    """Outcome of :meth:`JobOrchestrator.enqueue_single`."""

    job_id: Optional[str]
    cached: bool
    message: str
    extracted_id: Optional[str] = None


class BatchEnqueueResult(BaseModel):
    """Outcome of :meth:`JobOrchestrator.enqueue_batch`."""

    batch_id: Optional[str]
    job_id: Optional[str]
    total_urls: int
    message: str


class JobFilter(BaseModel):
    """Filters for listing jobs."""

    status: Optional[JobStatus] = None
    domain: Optional[str] = None
    job_type: Optional[Literal["single", "batch"]] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class ExtractionJobRead(BaseModel):
    """Read-only projection of a persisted job."""

    model_config = ConfigDict(from_attributes=True)

    job_id: str
    job_type: str
    source_url: Optional[str]
    domain: str
    config_id: str
    facebook_post_id: Optional[str] = None
    page_id: Optional[str] = None
    triggered_by: str
    status: JobStatus
    progress: int
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    job_options: Dict[str, Any]
    job_metadata: Dict[str, Any]
    attempts_made: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ExtractionStats(BaseModel):
    """Counts of jobs per status and URLs per extraction status."""

    jobs: Dict[str, int]
    urls: Dict[str, int]
    extracted_articles: int
