"""Per-job extraction processing.

:class:`ExtractionWorker` runs one extraction end to end: config
resolution, selector extraction, keyword analysis, persistence of the
article and its audit log, and the URL status update.  Failures are
recorded (URL status, error log, config statistics) and then re-raised so
that the task layer can apply the job's retry policy.

:meth:`ExtractionWorker.process_batch` runs a list of members sequentially
with a fixed delay between them; one member's failure never aborts the
batch.

The worker holds no broker state and can be driven directly from tests.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import select

from news_extraction.config.settings import Settings, get_settings
from news_extraction.core.config_registry import ConfigRegistry
from news_extraction.core.database import SessionFactory, get_sync_session
from news_extraction.core.exceptions import ConfigInactiveError
from news_extraction.core.models import ExtractedArticle, ExtractionLog
from news_extraction.core.schemas import (
    ExtractionConfigRead,
    ExtractionJobRead,
    ExtractionResult,
)
from news_extraction.core.urls import extract_domain, normalize_url
from news_extraction.discovery.url_discovery import UrlDiscoveryService
from news_extraction.scraper.extractor import SelectorExtractor
from news_extraction.scraper.keywords import extract_keywords
from news_extraction.scraper.quality import classify

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass
class ExtractionPayload:
    """Everything a worker needs to process one URL.

    Attributes:
        url: Article URL.
        config_id: Extraction config to use.
        job_id: Owning job, recorded on log rows.
        facebook_post_id: Origin post id, copied onto the article.
        page_id: Origin page id, copied onto the article.
        force: Extract even if a stored article exists.
    """

    url: str
    config_id: str
    job_id: str | None = None
    facebook_post_id: str | None = None
    page_id: str | None = None
    force: bool = False

    @classmethod
    def from_job(cls, job: ExtractionJobRead, url: str | None = None) -> ExtractionPayload:
        """Build a payload from a job row; ``url`` overrides it for batch members."""
        return cls(
            url=url or job.source_url or "",
            config_id=job.config_id,
            job_id=job.job_id,
            facebook_post_id=job.facebook_post_id,
            page_id=job.page_id,
            force=bool(job.job_options.get("force", False)),
        )


def _error_dict(exc: BaseException) -> dict[str, Any]:
    return {
        "message": str(exc),
        "code": getattr(exc, "code", type(exc).__name__),
        "kind": classify(exc).value,
    }


class ExtractionWorker:
    """Process extraction payloads against the shared stores.

    Args:
        extractor: The selector-driven extractor.
        session_factory: Context-manager factory yielding sessions.
        registry: Config registry for lookups and statistics.
        discovery: URL discovery service owning URL status.
        settings: Keyword count and batch delay.
    """

    def __init__(
        self,
        extractor: SelectorExtractor,
        session_factory: SessionFactory = get_sync_session,
        registry: ConfigRegistry | None = None,
        discovery: UrlDiscoveryService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._extractor = extractor
        self._session_factory = session_factory
        self._registry = registry or ConfigRegistry(session_factory, extractor=extractor)
        self._discovery = discovery or UrlDiscoveryService(session_factory)
        self._settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Single URL
    # ------------------------------------------------------------------

    async def process(
        self,
        payload: ExtractionPayload,
        progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        """Extract and store one article.

        Progress is reported at 10, 20, 40, 70, 90 and 100 percent.

        Args:
            payload: The URL, config and origin to process.
            progress: Called with a completion percentage.

        Returns:
            A JSON-serializable job result with the stored article id.

        Raises:
            ConfigNotFoundError: The payload's config does not exist.
            ConfigInactiveError: The config is deactivated.
            ExtractionError: Extraction failed.  The failure has already been
                recorded when this propagates.
        """
        report = progress or (lambda _pct: None)
        url = normalize_url(payload.url)
        log = logger.bind(job_id=payload.job_id, url=url)
        report(10)

        if not payload.force:
            cached = self._stored_article(url)
            if cached is not None:
                self._discovery.update_extraction_status(url, "extracted")
                log.info("worker.already_extracted", extracted_id=cached.id)
                report(100)
                return {
                    "extracted_id": cached.id,
                    "url": url,
                    "title": cached.title,
                    "method": "cached",
                }

        started = time.perf_counter()
        config: ExtractionConfigRead | None = None
        try:
            report(20)
            config = self._registry.get(payload.config_id)
            if not config.is_active:
                raise ConfigInactiveError(
                    f"Extraction config for {config.domain} is inactive",
                    config_id=payload.config_id,
                )

            report(40)
            result = await self._extractor.extract(url, config)

            report(70)
            keywords = extract_keywords(
                f"{result.data.title} {result.data.content}",
                limit=self._settings.keyword_count,
            )
            extracted_id = self._save_success(payload, url, config, result, keywords)

            report(90)
            self._discovery.update_extraction_status(url, "extracted")
            self._registry.record_attempt(
                config.id, success=True, latency_ms=result.metadata.extraction_ms
            )
        except Exception as exc:
            latency_ms = int((time.perf_counter() - started) * 1000)
            self._record_failure(payload, url, config, exc, latency_ms)
            log.warning(
                "worker.extraction_failed",
                error=str(exc),
                kind=classify(exc).value,
            )
            raise

        log.info(
            "worker.extracted",
            extracted_id=extracted_id,
            method=result.metadata.method,
            extraction_ms=result.metadata.extraction_ms,
        )
        report(100)
        return {
            "extracted_id": extracted_id,
            "url": url,
            "final_url": result.metadata.final_url,
            "title": result.data.title,
            "method": result.metadata.method,
            "extraction_ms": result.metadata.extraction_ms,
            "quality": result.quality.model_dump(),
            "warnings": list(result.warnings),
            "keywords": keywords,
        }

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def process_batch(
        self,
        members: Sequence[ExtractionPayload],
        progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        """Process ``members`` in order with a fixed delay between them.

        Returns:
            ``{total, succeeded, failed, members}`` where each member entry is
            ``{url, success, extracted_id}`` or ``{url, success, error, kind}``.
        """
        outcomes: list[dict[str, Any]] = []
        total = len(members)
        for index, payload in enumerate(members):
            if index:
                await asyncio.sleep(self._settings.batch_item_delay_seconds)
            try:
                result = await self.process(payload)
            except Exception as exc:  # noqa: BLE001
                outcomes.append(
                    {
                        "url": payload.url,
                        "success": False,
                        "error": str(exc),
                        "kind": classify(exc).value,
                    }
                )
            else:
                outcomes.append(
                    {
                        "url": payload.url,
                        "success": True,
                        "extracted_id": result["extracted_id"],
                    }
                )
            if progress is not None:
                progress(int((index + 1) * 100 / total))

        succeeded = sum(1 for o in outcomes if o["success"])
        logger.info("worker.batch_finished", total=total, succeeded=succeeded)
        return {
            "total": total,
            "succeeded": succeeded,
            "failed": total - succeeded,
            "members": outcomes,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _stored_article(self, url: str) -> ExtractedArticle | None:
        with self._session_factory() as session:
            return session.scalar(
                select(ExtractedArticle)
                .where(ExtractedArticle.source_url == url)
                .order_by(ExtractedArticle.extracted_at.desc())
                .limit(1)
            )

    def _save_success(
        self,
        payload: ExtractionPayload,
        url: str,
        config: ExtractionConfigRead,
        result: ExtractionResult,
        keywords: list[str],
    ) -> str:
        """Store the article and its success log in one transaction."""
        data = result.data
        metadata = result.metadata.model_dump(mode="json")
        with self._session_factory() as session:
            article = ExtractedArticle(
                source_url=url,
                final_url=result.metadata.final_url,
                domain=extract_domain(url),
                facebook_post_id=payload.facebook_post_id,
                page_id=payload.page_id,
                title=data.title,
                content=data.content,
                images=list(data.images),
                published_at=data.published_at,
                author=data.author,
                categories=list(data.categories),
                excerpt=data.excerpt,
                tags=list(data.tags),
                keywords=keywords,
                config_id=config.id,
                extraction_metadata=metadata,
                quality=result.quality.model_dump(),
            )
            session.add(article)
            session.add(
                ExtractionLog(
                    source_url=url,
                    domain=extract_domain(url),
                    config_id=config.id,
                    job_id=payload.job_id,
                    facebook_post_id=payload.facebook_post_id,
                    status="success",
                    method=result.metadata.method,
                    latency_ms=result.metadata.extraction_ms,
                    http_status=result.metadata.http_status,
                    extracted_data={
                        "title": data.title,
                        "content_length": len(data.content),
                        "image_count": len(data.images),
                    },
                    warnings=list(result.warnings),
                    request_metadata={"url": url, "config_id": config.id},
                    response_metadata=metadata,
                )
            )
            session.commit()
            return article.id

    def _record_failure(
        self,
        payload: ExtractionPayload,
        url: str,
        config: ExtractionConfigRead | None,
        exc: BaseException,
        latency_ms: int,
    ) -> None:
        """Mark the URL failed, write an error log and update config stats."""
        error = _error_dict(exc)
        self._discovery.update_extraction_status(url, "failed", error["message"])
        with self._session_factory() as session:
            session.add(
                ExtractionLog(
                    source_url=url,
                    domain=extract_domain(url),
                    config_id=config.id if config is not None else payload.config_id,
                    job_id=payload.job_id,
                    facebook_post_id=payload.facebook_post_id,
                    status="error",
                    latency_ms=latency_ms,
                    error=error,
                    request_metadata={"url": url, "config_id": payload.config_id},
                )
            )
            session.commit()
        if config is not None and config.id is not None:
            self._registry.record_attempt(config.id, success=False, latency_ms=latency_ms)
