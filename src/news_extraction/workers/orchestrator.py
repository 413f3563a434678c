"""Job orchestration: enqueue, retry and inspect extraction jobs.

Every request is persisted as an ``ExtractionJob`` row *before* it is handed
to the broker, so job state survives broker restarts and can always be
queried from the database.  Only the job id travels through the queue.

Single jobs
    One URL.  A non-forced request for a URL that already has a stored
    article short-circuits without creating a job.

Batch jobs
    Up to ``limit`` pending URLs of one domain, processed sequentially by a
    single task with a fixed delay between members.

Retries
    A failed job is never resumed.  :meth:`JobOrchestrator.retry` creates a
    new job with the same source data and ``metadata.originalJobId`` pointing
    at the failed one, which is left untouched.
"""

from __future__ import annotations

import time

import structlog
from sqlalchemy import func, or_, select

from news_extraction.config.settings import Settings, get_settings
from news_extraction.core.config_registry import ConfigRegistry
from news_extraction.core.database import SessionFactory, get_sync_session
from news_extraction.core.exceptions import (
    ConfigInactiveError,
    ConfigNotFoundError,
    InvalidUrlError,
    JobNotFoundError,
    JobStateError,
)
from news_extraction.core.models import (
    ExternalUrl,
    ExtractedArticle,
    ExtractionJob,
)
from news_extraction.core.schemas import (
    BatchEnqueueResult,
    BatchOptions,
    ContentFilter,
    EnqueueOptions,
    EnqueueResult,
    ExtractedArticleRead,
    ExtractionJobRead,
    ExtractionStats,
    JobFilter,
    JobOrigin,
    Page,
    PageParams,
)
from news_extraction.core.urls import extract_domain, is_valid_url, normalize_domain, normalize_url
from news_extraction.discovery.url_discovery import UrlDiscoveryService
from news_extraction.workers.broker import CeleryJobBroker, JobBroker

logger = structlog.get_logger(__name__)

_CONTENT_SORT_COLUMNS = {
    "extracted_at": ExtractedArticle.extracted_at,
    "published_at": ExtractedArticle.published_at,
    "title": ExtractedArticle.title,
}


class JobOrchestrator:
    """Create extraction jobs and hand them to the broker.

    Args:
        session_factory: Context-manager factory yielding sessions.
        broker: Queue collaborator.  Defaults to :class:`CeleryJobBroker`.
        registry: Config registry used to validate configs.
        discovery: URL discovery service supplying batch members.
        settings: Job defaults.  Defaults to :func:`get_settings`.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_sync_session,
        broker: JobBroker | None = None,
        registry: ConfigRegistry | None = None,
        discovery: UrlDiscoveryService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._broker = broker if broker is not None else CeleryJobBroker()
        self._registry = registry or ConfigRegistry(session_factory)
        self._discovery = discovery or UrlDiscoveryService(session_factory)
        self._settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_options(self, options: EnqueueOptions | None) -> dict:
        """Fill unset options from settings defaults."""
        options = options or EnqueueOptions()
        return {
            "priority": options.priority or self._settings.job_default_priority,
            "attempts": options.attempts or self._settings.job_default_attempts,
            "timeout_ms": options.timeout_ms or self._settings.job_default_timeout_ms,
            "force": options.force,
        }

    def _persist_and_submit(self, job: ExtractionJob) -> str:
        """Store ``job`` as pending, then submit it to the broker.

        A broker failure marks the stored job ``failed`` and re-raises.
        """
        with self._session_factory() as session:
            session.add(job)
            session.commit()
            job_id = job.job_id
            job_type = job.job_type
            priority = int(job.job_options.get("priority", self._settings.job_default_priority))

        try:
            self._broker.submit(job_id, job_type=job_type, priority=priority)
        except Exception as exc:
            logger.error("orchestrator.submit_failed", job_id=job_id, error=str(exc))
            with self._session_factory() as session:
                row = session.get(ExtractionJob, job_id)
                if row is not None:
                    row.status = "failed"
                    row.error = {
                        "message": f"Could not submit job to the broker: {exc}",
                        "code": "BROKER_ERROR",
                        "kind": "unknown",
                        "retryCount": 0,
                    }
                    session.commit()
            raise
        return job_id

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue_single(
        self,
        url: str,
        config_id: str,
        origin: JobOrigin | None = None,
        options: EnqueueOptions | None = None,
    ) -> EnqueueResult:
        """Enqueue the extraction of one URL.

        Args:
            url: Article URL.  Stored in normalised form.
            config_id: Extraction config to use.
            origin: Where the request came from.
            options: Priority, attempts, timeout and ``force``.

        Returns:
            The new job id, or ``cached=True`` with the stored article id when
            the URL was already extracted and ``force`` is not set.

        Raises:
            InvalidUrlError: ``url`` is not an absolute http(s) URL.
            ConfigNotFoundError: ``config_id`` does not exist.
            ConfigInactiveError: The config is deactivated.
        """
        if not is_valid_url(url):
            raise InvalidUrlError(f"Invalid URL: {url!r}", url=url)
        url = normalize_url(url)
        origin = origin or JobOrigin()
        job_options = self._resolve_options(options)

        if not job_options["force"]:
            with self._session_factory() as session:
                extracted_id = session.scalar(
                    select(ExtractedArticle.id)
                    .where(ExtractedArticle.source_url == url)
                    .order_by(ExtractedArticle.extracted_at.desc())
                    .limit(1)
                )
            if extracted_id is not None:
                logger.info("orchestrator.cached", url=url, extracted_id=extracted_id)
                return EnqueueResult(
                    job_id=None,
                    cached=True,
                    message="Content already extracted",
                    extracted_id=extracted_id,
                )

        config = self._registry.get(config_id)
        if not config.is_active:
            raise ConfigInactiveError(
                f"Extraction config for {config.domain} is inactive", config_id=config_id
            )

        job_id = self._persist_and_submit(
            ExtractionJob(
                job_type="single",
                source_url=url,
                domain=extract_domain(url),
                config_id=config_id,
                facebook_post_id=origin.facebook_post_id,
                page_id=origin.page_id,
                triggered_by=origin.triggered_by,
                status="pending",
                job_options=job_options,
                job_metadata={},
            )
        )
        logger.info("orchestrator.enqueued", job_id=job_id, url=url, config_id=config_id)
        return EnqueueResult(job_id=job_id, cached=False, message="Extraction job queued")

    def enqueue_batch(
        self,
        domain: str,
        options: BatchOptions | None = None,
    ) -> BatchEnqueueResult:
        """Enqueue one composite job over a domain's pending URLs.

        Args:
            domain: Target domain.
            options: Job options plus ``limit`` on the number of members.

        Returns:
            The batch id and job id, or ``total_urls=0`` without a job when
            the domain has no pending URLs.

        Raises:
            ConfigNotFoundError: The domain has no active config.
        """
        domain = normalize_domain(domain)
        options = options or BatchOptions()
        config = self._registry.find_by_domain(domain)
        if config is None:
            raise ConfigNotFoundError(
                f"No active extraction config for {domain}", domain=domain
            )

        limit = options.limit or self._settings.batch_default_limit
        members = self._discovery.pending_urls_for_domain(domain, limit)
        if not members:
            return BatchEnqueueResult(
                batch_id=None,
                job_id=None,
                total_urls=0,
                message=f"No pending URLs for {domain}",
            )

        batch_id = f"batch_{domain}_{int(time.time() * 1000)}"
        job_id = self._persist_and_submit(
            ExtractionJob(
                job_type="batch",
                source_url=None,
                domain=domain,
                config_id=config.id,
                triggered_by="batch",
                status="pending",
                job_options=self._resolve_options(options),
                job_metadata={"batchId": batch_id, "members": members},
            )
        )
        logger.info(
            "orchestrator.batch_enqueued",
            job_id=job_id,
            batch_id=batch_id,
            domain=domain,
            total_urls=len(members),
        )
        return BatchEnqueueResult(
            batch_id=batch_id,
            job_id=job_id,
            total_urls=len(members),
            message=f"Batch of {len(members)} URLs queued",
        )

    def retry(self, job_id: str) -> EnqueueResult:
        """Create a new job from a failed one.

        Raises:
            JobNotFoundError: ``job_id`` does not exist.
            JobStateError: The job is not in ``failed`` state.
        """
        with self._session_factory() as session:
            original = session.get(ExtractionJob, job_id)
            if original is None:
                raise JobNotFoundError(f"Job {job_id} not found", job_id=job_id)
            if original.status != "failed":
                raise JobStateError(
                    f"Only failed jobs can be retried; job {job_id} is {original.status}",
                    job_id=job_id,
                    status=original.status,
                )
            metadata = {k: v for k, v in original.job_metadata.items() if k != "originalJobId"}
            metadata["originalJobId"] = job_id
            clone = ExtractionJob(
                job_type=original.job_type,
                source_url=original.source_url,
                domain=original.domain,
                config_id=original.config_id,
                facebook_post_id=original.facebook_post_id,
                page_id=original.page_id,
                triggered_by=original.triggered_by,
                status="pending",
                job_options=dict(original.job_options),
                job_metadata=metadata,
            )

        new_id = self._persist_and_submit(clone)
        logger.info("orchestrator.retried", job_id=new_id, original_job_id=job_id)
        return EnqueueResult(job_id=new_id, cached=False, message=f"Retry of job {job_id} queued")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, job_id: str) -> ExtractionJobRead | None:
        """Return a job's current state, or ``None`` if it does not exist."""
        with self._session_factory() as session:
            row = session.get(ExtractionJob, job_id)
            return ExtractionJobRead.model_validate(row) if row is not None else None

    def list_jobs(
        self,
        filters: JobFilter | None = None,
        pagination: PageParams | None = None,
    ) -> Page[ExtractionJobRead]:
        """Return jobs matching ``filters``, newest first."""
        filters = filters or JobFilter()
        pagination = pagination or PageParams()
        stmt = select(ExtractionJob)
        if filters.status:
            stmt = stmt.where(ExtractionJob.status == filters.status)
        if filters.domain:
            stmt = stmt.where(ExtractionJob.domain == filters.domain)
        if filters.job_type:
            stmt = stmt.where(ExtractionJob.job_type == filters.job_type)
        if filters.date_from:
            stmt = stmt.where(ExtractionJob.created_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(ExtractionJob.created_at <= filters.date_to)

        with self._session_factory() as session:
            total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            rows = session.scalars(
                stmt.order_by(ExtractionJob.created_at.desc())
                .offset(pagination.offset)
                .limit(pagination.limit)
            ).all()
            return Page[ExtractionJobRead](
                items=[ExtractionJobRead.model_validate(r) for r in rows],
                total=total,
                page=pagination.page,
                limit=pagination.limit,
            )

    def list_extracted_content(
        self,
        filters: ContentFilter | None = None,
        pagination: PageParams | None = None,
    ) -> Page[ExtractedArticleRead]:
        """Return stored articles matching ``filters`` in the requested order."""
        filters = filters or ContentFilter()
        pagination = pagination or PageParams()
        stmt = select(ExtractedArticle)
        if filters.domain:
            stmt = stmt.where(ExtractedArticle.domain == filters.domain)
        if filters.page_id:
            stmt = stmt.where(ExtractedArticle.page_id == filters.page_id)
        if filters.has_images is not None:
            image_count = func.json_array_length(ExtractedArticle.images)
            stmt = stmt.where(image_count > 0 if filters.has_images else image_count == 0)
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(
                or_(
                    ExtractedArticle.title.ilike(pattern),
                    ExtractedArticle.content.ilike(pattern),
                )
            )
        if filters.date_from:
            stmt = stmt.where(ExtractedArticle.extracted_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(ExtractedArticle.extracted_at <= filters.date_to)

        column = _CONTENT_SORT_COLUMNS[filters.sort_by]
        order = column.asc() if filters.sort_order == "asc" else column.desc()

        with self._session_factory() as session:
            total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            rows = session.scalars(
                stmt.order_by(order).offset(pagination.offset).limit(pagination.limit)
            ).all()
            return Page[ExtractedArticleRead](
                items=[ExtractedArticleRead.model_validate(r) for r in rows],
                total=total,
                page=pagination.page,
                limit=pagination.limit,
            )

    def get_extracted_content(self, article_id: str) -> ExtractedArticleRead | None:
        """Return one stored article, or ``None`` if it does not exist."""
        with self._session_factory() as session:
            row = session.get(ExtractedArticle, article_id)
            return ExtractedArticleRead.model_validate(row) if row is not None else None

    def extraction_stats(self) -> ExtractionStats:
        """Return job counts per status and URL counts per extraction status."""
        with self._session_factory() as session:
            jobs = dict(
                session.execute(
                    select(ExtractionJob.status, func.count()).group_by(ExtractionJob.status)
                ).all()
            )
            urls = dict(
                session.execute(
                    select(ExternalUrl.extraction_status, func.count()).group_by(
                        ExternalUrl.extraction_status
                    )
                ).all()
            )
            articles = session.scalar(select(func.count()).select_from(ExtractedArticle)) or 0
        return ExtractionStats(jobs=jobs, urls=urls, extracted_articles=articles)
