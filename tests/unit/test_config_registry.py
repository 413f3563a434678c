"""Unit tests for ConfigRegistry.

Tests cover:
- create() normalises the domain and refuses duplicates
- every write re-derives has_config / config_id on the domain's URLs
- update() merges settings and custom headers, replaces selectors
- delete() is refused while unfinished jobs reference the config
- record_attempt() keeps an incremental latency mean
- stats() aggregates across configs
- test_extraction() returns a truncated preview or the classified error

Uses an in-memory SQLite database; no external services are required.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from news_extraction.core.config_registry import ConfigRegistry
from news_extraction.core.exceptions import (
    ConfigConflictError,
    ConfigInUseError,
    ConfigNotFoundError,
    NoTitleFoundError,
)
from news_extraction.core.models import ExternalUrl, ExtractionJob
from news_extraction.core.schemas import (
    ArticleContent,
    ExtractionConfigCreate,
    ExtractionConfigUpdate,
    ExtractionMetadata,
    ExtractionResult,
    ExtractionSettingsUpdate,
    QualityMetrics,
    SelectorSet,
    TestExtractionRequest,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_payload(domain: str = "https://www.Diario.mx/", **overrides) -> ExtractionConfigCreate:
    data = {
        "domain": domain,
        "name": "Diario",
        "selectors": SelectorSet(title="h1", content=".body"),
    }
    data.update(overrides)
    return ExtractionConfigCreate(**data)


def _add_url(session_factory, url: str, domain: str) -> None:
    with session_factory() as session:
        session.add(ExternalUrl(url=url, domain=domain))
        session.commit()


def _url_row(session_factory, url: str) -> ExternalUrl:
    with session_factory() as session:
        return session.scalar(select(ExternalUrl).where(ExternalUrl.url == url))


def _add_job(session_factory, config_id: str, status: str) -> None:
    with session_factory() as session:
        session.add(
            ExtractionJob(
                job_type="single",
                source_url="https://diario.mx/a",
                domain="diario.mx",
                config_id=config_id,
                status=status,
                job_options={},
                job_metadata={},
            )
        )
        session.commit()


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


class TestCreate:
    def test_domain_is_normalised(self, session_factory) -> None:
        config = ConfigRegistry(session_factory).create(_create_payload())
        assert config.domain == "diario.mx"
        assert config.is_active is True
        assert config.settings.respect_robots is True

    def test_duplicate_domain_conflicts(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        registry.create(_create_payload("diario.mx"))
        with pytest.raises(ConfigConflictError):
            registry.create(_create_payload("www.diario.mx"))

    def test_existing_urls_gain_config(self, session_factory) -> None:
        _add_url(session_factory, "https://diario.mx/a", "diario.mx")
        config = ConfigRegistry(session_factory).create(_create_payload())

        row = _url_row(session_factory, "https://diario.mx/a")
        assert row.has_config is True
        assert row.config_id == config.id

    def test_inactive_config_does_not_mark_urls(self, session_factory) -> None:
        _add_url(session_factory, "https://diario.mx/a", "diario.mx")
        ConfigRegistry(session_factory).create(_create_payload(is_active=False))
        assert _url_row(session_factory, "https://diario.mx/a").has_config is False


class TestReadAndList:
    def test_get_unknown_raises(self, session_factory) -> None:
        with pytest.raises(ConfigNotFoundError):
            ConfigRegistry(session_factory).get("missing")

    def test_find_by_domain_ignores_inactive(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload())
        assert registry.find_by_domain("https://www.diario.mx").id == config.id

        registry.toggle_active(config.id)
        assert registry.find_by_domain("diario.mx") is None

    def test_list_configs_filters_on_active(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        registry.create(_create_payload("a.mx"))
        registry.create(_create_payload("b.mx", is_active=False))

        assert registry.list_configs().total == 2
        page = registry.list_configs(is_active=False)
        assert [c.domain for c in page.items] == ["b.mx"]


class TestUpdate:
    def test_settings_and_headers_are_merged(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload(custom_headers={"Accept-Language": "es"}))

        updated = registry.update(
            config.id,
            ExtractionConfigUpdate(
                settings=ExtractionSettingsUpdate(requests_per_minute=5),
                custom_headers={"Referer": "https://diario.mx"},
                selectors=SelectorSet(title=["h1.title", "h1"], content="article"),
            ),
        )

        assert updated.settings.requests_per_minute == 5
        assert updated.settings.timeout_ms == config.settings.timeout_ms
        assert updated.custom_headers == {
            "Accept-Language": "es",
            "Referer": "https://diario.mx",
        }
        assert updated.selectors.title == ["h1.title", "h1"]

    def test_domain_change_moves_url_pointers(self, session_factory) -> None:
        _add_url(session_factory, "https://diario.mx/a", "diario.mx")
        _add_url(session_factory, "https://eldiario.mx/b", "eldiario.mx")
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload())

        registry.update(config.id, ExtractionConfigUpdate(domain="eldiario.mx"))

        assert _url_row(session_factory, "https://diario.mx/a").has_config is False
        assert _url_row(session_factory, "https://eldiario.mx/b").config_id == config.id

    def test_update_to_taken_domain_conflicts(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        registry.create(_create_payload("a.mx"))
        second = registry.create(_create_payload("b.mx"))
        with pytest.raises(ConfigConflictError):
            registry.update(second.id, ExtractionConfigUpdate(domain="a.mx"))


class TestToggleAndDelete:
    def test_toggle_clears_and_restores_url_pointer(self, session_factory) -> None:
        _add_url(session_factory, "https://diario.mx/a", "diario.mx")
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload())

        assert registry.toggle_active(config.id).is_active is False
        assert _url_row(session_factory, "https://diario.mx/a").has_config is False

        registry.toggle_active(config.id)
        assert _url_row(session_factory, "https://diario.mx/a").config_id == config.id

    def test_delete_clears_url_pointer(self, session_factory) -> None:
        _add_url(session_factory, "https://diario.mx/a", "diario.mx")
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload())

        registry.delete(config.id)

        row = _url_row(session_factory, "https://diario.mx/a")
        assert row.has_config is False
        assert row.config_id is None
        with pytest.raises(ConfigNotFoundError):
            registry.get(config.id)

    def test_delete_refused_with_unfinished_jobs(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload())
        _add_job(session_factory, config.id, "pending")

        with pytest.raises(ConfigInUseError) as excinfo:
            registry.delete(config.id)
        assert excinfo.value.job_count == 1

    def test_delete_allowed_when_jobs_finished(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload())
        _add_job(session_factory, config.id, "completed")
        _add_job(session_factory, config.id, "failed")

        registry.delete(config.id)
        assert registry.list_configs().total == 0


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class TestStatistics:
    def test_record_attempt_keeps_running_mean(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload())

        registry.record_attempt(config.id, success=True, latency_ms=100)
        registry.record_attempt(config.id, success=False, latency_ms=300)

        stored = registry.get(config.id)
        assert stored.total_extractions == 2
        assert stored.successful_extractions == 1
        assert stored.failed_extractions == 1
        assert stored.average_extraction_ms == pytest.approx(200.0)
        assert stored.last_extraction_at is not None

    def test_record_attempt_unknown_config_is_ignored(self, session_factory) -> None:
        ConfigRegistry(session_factory).record_attempt("missing", success=True, latency_ms=1)

    def test_stats(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        a = registry.create(_create_payload("a.mx"))
        registry.create(_create_payload("b.mx", is_active=False))
        for success in (True, True, True, False):
            registry.record_attempt(a.id, success=success, latency_ms=50)

        stats = registry.stats()
        assert stats.total_configs == 2
        assert stats.active_configs == 1
        assert stats.total_extractions == 4
        assert stats.success_rate == 75.0

    def test_sync_urls_with_configs(self, session_factory) -> None:
        registry = ConfigRegistry(session_factory)
        config = registry.create(_create_payload())
        # Inserted after the config, bypassing the registry.
        _add_url(session_factory, "https://diario.mx/a", "diario.mx")

        assert registry.sync_urls_with_configs() == 1
        assert _url_row(session_factory, "https://diario.mx/a").config_id == config.id
        assert registry.sync_urls_with_configs() == 0


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------


def _result(content: str, images: list[str]) -> ExtractionResult:
    return ExtractionResult(
        data=ArticleContent(title="Titular", content=content, images=images),
        metadata=ExtractionMetadata(
            method="static",
            extraction_ms=40,
            http_status=200,
            content_length=len(content),
            image_count=len(images),
            url="https://diario.mx/a",
            final_url="https://diario.mx/a",
        ),
        quality=QualityMetrics(
            title_quality="low", content_quality="high", completeness=60, confidence=70
        ),
    )


@pytest.mark.asyncio
class TestTestExtraction:
    async def test_preview_is_truncated(self, session_factory) -> None:
        extractor = AsyncMock()
        images = [f"https://diario.mx/{i}.jpg" for i in range(8)]
        extractor.extract.return_value = _result("x" * 2000, images)
        registry = ConfigRegistry(session_factory, extractor=extractor)

        response = await registry.test_extraction(
            TestExtractionRequest(
                url="https://diario.mx/a",
                selectors=SelectorSet(title="h1", content=".body"),
            )
        )

        assert response.success is True
        assert len(response.data.content) == 500
        assert response.data.content_length == 2000
        assert len(response.data.images) == 5
        assert response.data.image_count == 8
        extractor.extract.assert_awaited_once()
        assert extractor.extract.await_args.kwargs == {"use_cache": False}
        assert registry.list_configs().total == 0

    async def test_failure_reports_kind(self, session_factory) -> None:
        extractor = AsyncMock()
        extractor.extract.side_effect = NoTitleFoundError(
            "No title found", field="title", selector="h1"
        )
        registry = ConfigRegistry(session_factory, extractor=extractor)

        response = await registry.test_extraction(
            TestExtractionRequest(
                url="https://diario.mx/a",
                selectors=SelectorSet(title="h1", content=".body"),
            )
        )

        assert response.success is False
        assert response.error_kind == "selector"
        assert response.data is None

    async def test_requires_extractor(self, session_factory) -> None:
        with pytest.raises(RuntimeError):
            await ConfigRegistry(session_factory).test_extraction(
                TestExtractionRequest(
                    url="https://diario.mx/a",
                    selectors=SelectorSet(title="h1", content=".body"),
                )
            )
