"""Extraction config registry: CRUD and statistics for per-domain configurations.

Besides plain CRUD, the registry owns one cross-collection invariant:

    an ``ExternalUrl`` has ``has_config = True`` only if an *active*
    ``ExtractionConfig`` exists for its domain.

Every write that can change that answer (create, update, toggle, delete)
re-derives the pointer for the affected domains from the stored configs
instead of assuming it.

The registry also hosts the selector-authoring dry run,
:meth:`ConfigRegistry.test_extraction`, which runs the extractor with caching
disabled and persists nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from news_extraction.core.database import SessionFactory, get_sync_session
from news_extraction.core.exceptions import (
    ConfigConflictError,
    ConfigInUseError,
    ConfigNotFoundError,
    ExtractionError,
)
from news_extraction.core.models import (
    TERMINAL_JOB_STATUSES,
    ExternalUrl,
    ExtractionConfig,
    ExtractionJob,
    utcnow,
)
from news_extraction.core.schemas import (
    ArticlePreview,
    ConfigStats,
    ExtractionConfigCreate,
    ExtractionConfigRead,
    ExtractionConfigUpdate,
    ExtractionSettings,
    Page,
    PageParams,
    SiteConfig,
    TestExtractionRequest,
    TestExtractionResponse,
)
from news_extraction.core.urls import extract_domain, normalize_domain
from news_extraction.scraper.config import PREVIEW_CONTENT_CHARS, PREVIEW_IMAGE_COUNT
from news_extraction.scraper.quality import classify

if TYPE_CHECKING:
    from news_extraction.scraper.extractor import SelectorExtractor

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Invariant maintenance
# ---------------------------------------------------------------------------


def revalidate_domain_urls(session: Session, domain: str) -> int:
    """Re-derive ``has_config`` / ``config_id`` for every URL of ``domain``.

    Must run inside the caller's transaction after the config change has been
    flushed.

    Args:
        session: Open session.
        domain: Normalised domain.

    Returns:
        Number of URL rows touched.
    """
    active = session.scalar(
        select(ExtractionConfig).where(
            ExtractionConfig.domain == domain,
            ExtractionConfig.is_active.is_(True),
        )
    )
    values = (
        {"has_config": True, "config_id": active.id}
        if active is not None
        else {"has_config": False, "config_id": None}
    )
    result = session.execute(
        update(ExternalUrl)
        .where(ExternalUrl.domain == domain)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


# ---------------------------------------------------------------------------
# ConfigRegistry
# ---------------------------------------------------------------------------


class ConfigRegistry:
    """Per-domain extraction configuration store.

    Args:
        session_factory: Context-manager factory yielding sessions.
        extractor: Extractor used by :meth:`test_extraction`.  Only needed
            for dry runs.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_sync_session,
        extractor: SelectorExtractor | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._extractor = extractor

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_row(session: Session, config_id: str) -> ExtractionConfig:
        row = session.get(ExtractionConfig, config_id)
        if row is None:
            raise ConfigNotFoundError(
                f"Extraction config {config_id} not found", config_id=config_id
            )
        return row

    @staticmethod
    def _ensure_domain_free(session: Session, domain: str) -> None:
        existing = session.scalar(
            select(ExtractionConfig.id).where(ExtractionConfig.domain == domain)
        )
        if existing is not None:
            raise ConfigConflictError(
                f"An extraction config already exists for {domain}", domain=domain
            )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, data: ExtractionConfigCreate) -> ExtractionConfigRead:
        """Register a configuration for a new domain.

        Raises:
            ConfigConflictError: The domain already has a configuration.
        """
        with self._session_factory() as session:
            self._ensure_domain_free(session, data.domain)
            row = ExtractionConfig(
                domain=data.domain,
                name=data.name,
                is_active=data.is_active,
                selectors=data.selectors.model_dump(exclude_none=True),
                settings=data.settings.model_dump(),
                custom_headers=dict(data.custom_headers),
                notes=data.notes,
            )
            session.add(row)
            session.flush()
            synced = revalidate_domain_urls(session, row.domain)
            session.commit()
            logger.info(
                "config_registry.created",
                config_id=row.id,
                domain=row.domain,
                urls_synced=synced,
            )
            return ExtractionConfigRead.model_validate(row)

    def get(self, config_id: str) -> ExtractionConfigRead:
        """Return a configuration by id.

        Raises:
            ConfigNotFoundError: No such configuration.
        """
        with self._session_factory() as session:
            return ExtractionConfigRead.model_validate(self._get_row(session, config_id))

    def find_by_domain(self, domain: str) -> ExtractionConfigRead | None:
        """Return the *active* configuration for ``domain``, or ``None``."""
        with self._session_factory() as session:
            row = session.scalar(
                select(ExtractionConfig).where(
                    ExtractionConfig.domain == normalize_domain(domain),
                    ExtractionConfig.is_active.is_(True),
                )
            )
            return ExtractionConfigRead.model_validate(row) if row is not None else None

    def list_configs(
        self,
        pagination: PageParams | None = None,
        *,
        is_active: bool | None = None,
    ) -> Page[ExtractionConfigRead]:
        """Return configurations, newest first."""
        pagination = pagination or PageParams()
        with self._session_factory() as session:
            stmt = select(ExtractionConfig)
            if is_active is not None:
                stmt = stmt.where(ExtractionConfig.is_active.is_(is_active))
            total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            rows = session.scalars(
                stmt.order_by(ExtractionConfig.created_at.desc())
                .offset(pagination.offset)
                .limit(pagination.limit)
            ).all()
            return Page[ExtractionConfigRead](
                items=[ExtractionConfigRead.model_validate(r) for r in rows],
                total=total,
                page=pagination.page,
                limit=pagination.limit,
            )

    def update(self, config_id: str, data: ExtractionConfigUpdate) -> ExtractionConfigRead:
        """Apply a partial update.

        ``settings`` and ``custom_headers`` are merged into the stored values;
        ``selectors`` replaces the stored set.

        Raises:
            ConfigNotFoundError: No such configuration.
            ConfigConflictError: The new domain already has a configuration.
        """
        with self._session_factory() as session:
            row = self._get_row(session, config_id)
            old_domain = row.domain

            if data.domain is not None and data.domain != row.domain:
                self._ensure_domain_free(session, data.domain)
                row.domain = data.domain
            if data.name is not None:
                row.name = data.name
            if data.is_active is not None:
                row.is_active = data.is_active
            if data.notes is not None:
                row.notes = data.notes
            if data.selectors is not None:
                row.selectors = data.selectors.model_dump(exclude_none=True)
            if data.settings is not None:
                merged = {**row.settings, **data.settings.model_dump(exclude_none=True)}
                row.settings = ExtractionSettings.model_validate(merged).model_dump()
            if data.custom_headers is not None:
                row.custom_headers = {**row.custom_headers, **data.custom_headers}

            session.flush()
            synced = revalidate_domain_urls(session, row.domain)
            if old_domain != row.domain:
                synced += revalidate_domain_urls(session, old_domain)
            session.commit()
            logger.info(
                "config_registry.updated",
                config_id=row.id,
                domain=row.domain,
                urls_synced=synced,
            )
            return ExtractionConfigRead.model_validate(row)

    def delete(self, config_id: str) -> None:
        """Delete a configuration and clear ``has_config`` on its domain's URLs.

        Raises:
            ConfigNotFoundError: No such configuration.
            ConfigInUseError: Unfinished jobs still reference the configuration.
        """
        with self._session_factory() as session:
            row = self._get_row(session, config_id)
            in_flight = session.scalar(
                select(func.count())
                .select_from(ExtractionJob)
                .where(
                    ExtractionJob.config_id == config_id,
                    ExtractionJob.status.not_in(TERMINAL_JOB_STATUSES),
                )
            ) or 0
            if in_flight:
                raise ConfigInUseError(
                    f"Extraction config {config_id} is referenced by {in_flight} unfinished job(s)",
                    config_id=config_id,
                    job_count=in_flight,
                )
            domain = row.domain
            session.delete(row)
            session.flush()
            cleared = revalidate_domain_urls(session, domain)
            session.commit()
            logger.info(
                "config_registry.deleted",
                config_id=config_id,
                domain=domain,
                urls_cleared=cleared,
            )

    def toggle_active(self, config_id: str) -> ExtractionConfigRead:
        """Flip ``is_active`` and re-validate the domain's URLs."""
        with self._session_factory() as session:
            row = self._get_row(session, config_id)
            row.is_active = not row.is_active
            session.flush()
            synced = revalidate_domain_urls(session, row.domain)
            session.commit()
            logger.info(
                "config_registry.toggled",
                config_id=row.id,
                domain=row.domain,
                is_active=row.is_active,
                urls_synced=synced,
            )
            return ExtractionConfigRead.model_validate(row)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def record_attempt(self, config_id: str, *, success: bool, latency_ms: int) -> None:
        """Fold one extraction attempt into the config's rolling statistics.

        The average latency is an incremental mean over all attempts.
        Unknown ids are ignored with a warning.
        """
        with self._session_factory() as session:
            row = session.get(ExtractionConfig, config_id)
            if row is None:
                logger.warning("config_registry.stats_missing_config", config_id=config_id)
                return
            row.total_extractions += 1
            if success:
                row.successful_extractions += 1
            else:
                row.failed_extractions += 1
            row.average_extraction_ms += (latency_ms - row.average_extraction_ms) / row.total_extractions
            row.last_extraction_at = utcnow()
            session.commit()

    def stats(self) -> ConfigStats:
        """Return totals across every configuration."""
        with self._session_factory() as session:
            total, extractions, succeeded, failed = session.execute(
                select(
                    func.count(ExtractionConfig.id),
                    func.coalesce(func.sum(ExtractionConfig.total_extractions), 0),
                    func.coalesce(func.sum(ExtractionConfig.successful_extractions), 0),
                    func.coalesce(func.sum(ExtractionConfig.failed_extractions), 0),
                )
            ).one()
            active = session.scalar(
                select(func.count())
                .select_from(ExtractionConfig)
                .where(ExtractionConfig.is_active.is_(True))
            ) or 0
        return ConfigStats(
            total_configs=total,
            active_configs=active,
            total_extractions=extractions,
            successful_extractions=succeeded,
            failed_extractions=failed,
            success_rate=round(succeeded / extractions * 100, 2) if extractions else 0.0,
        )

    def sync_urls_with_configs(self) -> int:
        """Re-validate ``has_config`` for every stored URL.

        Returns:
            Number of URL rows whose pointer changed.
        """
        with self._session_factory() as session:
            active = dict(
                session.execute(
                    select(ExtractionConfig.domain, ExtractionConfig.id).where(
                        ExtractionConfig.is_active.is_(True)
                    )
                ).all()
            )
            changed = 0
            for url_row in session.scalars(select(ExternalUrl)):
                config_id = active.get(url_row.domain)
                if url_row.has_config != (config_id is not None) or url_row.config_id != config_id:
                    url_row.has_config = config_id is not None
                    url_row.config_id = config_id
                    changed += 1
            session.commit()
        logger.info("config_registry.urls_synced", changed=changed)
        return changed

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    async def test_extraction(self, request: TestExtractionRequest) -> TestExtractionResponse:
        """Run the extractor against ``request.url`` without persisting anything.

        The extraction cache is neither read nor written.  The rate limiter
        still gates the request so that selector authoring cannot hammer a
        site.  Content is truncated to a preview.

        Raises:
            RuntimeError: The registry was built without an extractor.
        """
        if self._extractor is None:
            raise RuntimeError("ConfigRegistry.test_extraction requires an extractor")

        site = SiteConfig(
            domain=extract_domain(request.url),
            name="dry-run",
            selectors=request.selectors,
            settings=request.settings,
            custom_headers=request.custom_headers,
        )
        try:
            result = await self._extractor.extract(request.url, site, use_cache=False)
        except ExtractionError as exc:
            kind = classify(exc)
            logger.info(
                "config_registry.test_extraction_failed",
                url=request.url,
                error=str(exc),
                kind=kind.value,
            )
            return TestExtractionResponse(success=False, error=str(exc), error_kind=kind.value)

        data = result.data
        return TestExtractionResponse(
            success=True,
            data=ArticlePreview(
                title=data.title,
                content=data.content[:PREVIEW_CONTENT_CHARS],
                content_length=len(data.content),
                images=data.images[:PREVIEW_IMAGE_COUNT],
                image_count=len(data.images),
                published_at=data.published_at,
                author=data.author,
                categories=data.categories,
                excerpt=data.excerpt,
                tags=data.tags,
            ),
            metadata=result.metadata,
            quality=result.quality,
            warnings=result.warnings,
        )
