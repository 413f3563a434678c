"""Celery tasks that drive extraction jobs.

Two tasks are provided:

``extract_article_task``
    Processes one single-URL job.

``extract_batch_task``
    Processes a batch job's members sequentially (see
    :meth:`~news_extraction.workers.extraction_worker.ExtractionWorker.process_batch`).

Task naming convention::

    news_extraction.workers.tasks.<action>

Both tasks receive only the job id; everything else is read from the
``extraction_jobs`` row.  The task id equals the job id.

Job lifecycle:
    ``pending`` → ``active`` when claimed (``started_at`` set on the first
    claim, ``attempts_made`` incremented on every claim) → ``completed``
    with the result, or on failure ``delayed`` while attempts remain and
    ``failed`` once they are exhausted.  Retries wait
    ``job_backoff_base_seconds * 2 ** retries`` seconds; rate-limited
    failures wait at least until the limiter window resets.
    An attempt that runs longer than the job's ``timeout_ms`` option fails
    with a ``timeout`` error and counts against ``attempts``.

Database updates:
    All DB writes use a synchronous session so that no nested event loop is
    needed inside the Celery worker process.  Async extraction code runs in
    ``asyncio.run()`` per task invocation.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog

from news_extraction.config.settings import Settings, get_settings
from news_extraction.core.config_registry import ConfigRegistry
from news_extraction.core.database import SessionFactory, get_sync_session
from news_extraction.core.exceptions import FetchTimeoutError, RateLimitedError
from news_extraction.core.logging_config import job_id_var
from news_extraction.core.models import TERMINAL_JOB_STATUSES, ExtractionJob, utcnow
from news_extraction.core.schemas import ExtractionJobRead
from news_extraction.discovery.url_discovery import UrlDiscoveryService
from news_extraction.scraper.cache import ExtractionCache
from news_extraction.scraper.extractor import SelectorExtractor
from news_extraction.scraper.http_fetcher import build_client
from news_extraction.scraper.playwright_fetcher import PlaywrightRenderer
from news_extraction.scraper.quality import classify
from news_extraction.workers.celery_app import celery_app
from news_extraction.workers.extraction_worker import (
    ExtractionPayload,
    ExtractionWorker,
    ProgressCallback,
)
from news_extraction.workers.rate_limiter import DomainRateLimiter, get_redis_client

logger = structlog.get_logger(__name__)

JobRunner = Callable[[ExtractionJobRead, ProgressCallback], Awaitable[dict[str, Any]]]


# ---------------------------------------------------------------------------
# Job row helpers (synchronous)
# ---------------------------------------------------------------------------


def claim_job(
    job_id: str,
    session_factory: SessionFactory = get_sync_session,
) -> ExtractionJobRead | None:
    """Mark a job ``active`` and count the attempt.

    Returns:
        The updated job, or ``None`` if the job does not exist or has
        already reached a terminal status.
    """
    with session_factory() as session:
        row = session.get(ExtractionJob, job_id)
        if row is None or row.status in TERMINAL_JOB_STATUSES:
            return None
        row.status = "active"
        row.attempts_made += 1
        if row.started_at is None:
            row.started_at = utcnow()
        session.commit()
        return ExtractionJobRead.model_validate(row)


def update_job(
    job_id: str,
    session_factory: SessionFactory = get_sync_session,
    **values: Any,
) -> None:
    """Set columns on a job row."""
    if not values:
        return
    with session_factory() as session:
        row = session.get(ExtractionJob, job_id)
        if row is None:
            logger.warning("tasks.job_missing", job_id=job_id)
            return
        for column, value in values.items():
            setattr(row, column, value)
        session.commit()


def error_payload(exc: BaseException, retry_count: int) -> dict[str, Any]:
    """Build the ``error`` column value for a failed attempt."""
    return {
        "message": str(exc),
        "code": getattr(exc, "code", type(exc).__name__),
        "kind": classify(exc).value,
        "retryCount": retry_count,
    }


def retry_countdown(exc: BaseException, retries: int, base_seconds: float) -> float:
    """Return the delay before the next attempt.

    Exponential backoff ``base_seconds * 2 ** retries``; a rate-limited
    failure waits at least the limiter's ``retry_after``.
    """
    countdown = base_seconds * (2 ** retries)
    if isinstance(exc, RateLimitedError):
        countdown = max(countdown, exc.retry_after)
    return countdown


# ---------------------------------------------------------------------------
# Worker composition
# ---------------------------------------------------------------------------


@asynccontextmanager
async def build_worker(settings: Settings | None = None) -> AsyncIterator[ExtractionWorker]:
    """Compose an :class:`ExtractionWorker` around shared Redis state.

    The Redis client and HTTP client are created inside the running event
    loop and closed on exit.
    """
    settings = settings or get_settings()
    redis_client = get_redis_client()
    extractor = SelectorExtractor(
        rate_limiter=DomainRateLimiter(
            redis_client, window_seconds=settings.rate_limit_window_seconds
        ),
        http_client=build_client(max_redirects=settings.http_max_redirects),
        cache=ExtractionCache(redis_client, ttl_seconds=settings.extraction_cache_ttl_seconds),
        renderer=PlaywrightRenderer(headless=settings.playwright_headless),
    )
    try:
        yield ExtractionWorker(
            extractor,
            registry=ConfigRegistry(extractor=extractor),
            discovery=UrlDiscoveryService(max_depth=settings.discovery_max_depth),
            settings=settings,
        )
    finally:
        await extractor.aclose()
        await redis_client.aclose()


async def run_single(job: ExtractionJobRead, progress: ProgressCallback) -> dict[str, Any]:
    """Run a single-URL job."""
    async with build_worker() as worker:
        return await worker.process(ExtractionPayload.from_job(job), progress=progress)


async def run_batch(job: ExtractionJobRead, progress: ProgressCallback) -> dict[str, Any]:
    """Run a batch job over ``metadata.members``."""
    members = [
        ExtractionPayload.from_job(job, url=url) for url in job.job_metadata.get("members", [])
    ]
    async with build_worker() as worker:
        result = await worker.process_batch(members, progress=progress)
    result["batchId"] = job.job_metadata.get("batchId")
    return result


# ---------------------------------------------------------------------------
# Task body
# ---------------------------------------------------------------------------


async def _run_with_timeout(
    runner: JobRunner,
    job: ExtractionJobRead,
    report: ProgressCallback,
    timeout_s: float,
) -> dict[str, Any]:
    try:
        return await asyncio.wait_for(runner(job, report), timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        raise FetchTimeoutError(
            f"Job exceeded its {timeout_s:g}s timeout", url=job.source_url
        ) from exc


def execute_job(
    task: Any,
    job_id: str,
    runner: JobRunner,
    session_factory: SessionFactory = get_sync_session,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Run one claimed attempt of a job and apply the retry policy.

    Args:
        task: The bound Celery task (``update_state``, ``retry``).
        job_id: Job to run.
        runner: Coroutine function doing the actual work.
        session_factory: Context-manager factory yielding sessions.
        settings: Job defaults.

    Returns:
        The job result, or ``{"skipped": True}`` for missing or finished jobs.

    Raises:
        celery.exceptions.Retry: Attempts remain; the job is ``delayed``.
        Exception: The final attempt failed; the job is ``failed``.
    """
    settings = settings or get_settings()
    job = claim_job(job_id, session_factory)
    if job is None:
        logger.warning("tasks.job_not_runnable", job_id=job_id)
        return {"job_id": job_id, "skipped": True}

    token = job_id_var.set(job_id)
    try:
        logger.info(
            "tasks.job_started",
            job_type=job.job_type,
            attempt=job.attempts_made,
            domain=job.domain,
        )

        timeout_s = int(job.job_options.get("timeout_ms", settings.job_default_timeout_ms)) / 1000

        def report(progress: int) -> None:
            update_job(job_id, session_factory, progress=progress)
            task.update_state(state="PROGRESS", meta={"job_id": job_id, "progress": progress})

        try:
            result = asyncio.run(_run_with_timeout(runner, job, report, timeout_s))
        except Exception as exc:
            attempts = int(job.job_options.get("attempts", settings.job_default_attempts))
            retries = job.attempts_made - 1
            error = error_payload(exc, retries)
            if job.attempts_made < attempts:
                update_job(job_id, session_factory, status="delayed", error=error)
                countdown = retry_countdown(exc, retries, settings.job_backoff_base_seconds)
                logger.warning(
                    "tasks.job_retry_scheduled",
                    error=str(exc),
                    kind=error["kind"],
                    countdown=countdown,
                )
                raise task.retry(exc=exc, countdown=countdown, max_retries=attempts - 1)

            update_job(
                job_id,
                session_factory,
                status="failed",
                error=error,
                completed_at=utcnow(),
            )
            logger.error("tasks.job_failed", error=str(exc), kind=error["kind"])
            raise

        update_job(
            job_id,
            session_factory,
            status="completed",
            progress=100,
            result=result,
            error=None,
            completed_at=utcnow(),
        )
        logger.info("tasks.job_completed")
        return result
    finally:
        job_id_var.reset(token)


# ---------------------------------------------------------------------------
# Celery tasks
# ---------------------------------------------------------------------------


@celery_app.task(
    bind=True,
    name="news_extraction.workers.tasks.extract_article_task",
    acks_late=True,
)
def extract_article_task(self: Any, job_id: str) -> dict[str, Any]:
    """Extract one article for a single-URL job.

    Args:
        job_id: String UUID of the ``ExtractionJob`` row.

    Returns:
        The job result dict.
    """
    return execute_job(self, job_id, run_single)


@celery_app.task(
    bind=True,
    name="news_extraction.workers.tasks.extract_batch_task",
    acks_late=True,
)
def extract_batch_task(self: Any, job_id: str) -> dict[str, Any]:
    """Extract every member of a batch job.

    Args:
        job_id: String UUID of the ``ExtractionJob`` row.

    Returns:
        ``{total, succeeded, failed, members, batchId}``.
    """
    return execute_job(self, job_id, run_batch)
