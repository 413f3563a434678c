"""Tests for URL discovery in social-media posts.

Tests cover:
- candidate extraction from text, link lists and raw payloads
- filtering of social, shortener and infrastructure hosts and file types
- persistence: idempotence, has_config resolution, first post owns origin
- extraction status bookkeeping, pending URL selection and statistics
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from news_extraction.core.models import ExternalUrl
from news_extraction.core.schemas import PageParams, SocialPost, UrlFilter
from news_extraction.discovery.url_discovery import (
    UrlDiscoveryService,
    candidate_urls,
    extract_urls_from_payload,
    extract_urls_from_text,
    is_candidate_url,
)


# ---------------------------------------------------------------------------
# Pure candidate extraction
# ---------------------------------------------------------------------------


class TestExtractUrlsFromText:
    def test_tracking_params_and_punctuation(self) -> None:
        post = SocialPost(
            facebook_post_id="p1",
            text="Lee más en https://news.example.mx/a?utm_source=fb&fbclid=123 gracias",
        )
        assert candidate_urls(post) == ["https://news.example.mx/a"]

    def test_trailing_punctuation_stripped(self) -> None:
        assert extract_urls_from_text("Ver https://diario.mx/nota-1.") == ["https://diario.mx/nota-1"]

    def test_www_prefix_gets_scheme(self) -> None:
        assert extract_urls_from_text("visita www.diario.mx/seccion hoy") == [
            "https://www.diario.mx/seccion"
        ]

    def test_www_inside_full_url_not_duplicated(self) -> None:
        assert extract_urls_from_text("https://www.diario.mx/a") == ["https://www.diario.mx/a"]

    def test_empty_text(self) -> None:
        assert extract_urls_from_text("") == []


class TestExtractUrlsFromPayload:
    def test_nested_strings_are_scanned(self) -> None:
        payload = {
            "attachments": [
                {"target": {"url": "https://diario.mx/a"}},
                {"description": "más en https://otro.mx/b."},
            ],
            "count": 3,
        }
        assert sorted(extract_urls_from_payload(payload)) == [
            "https://diario.mx/a",
            "https://otro.mx/b",
        ]

    def test_depth_bound(self) -> None:
        payload: dict = {"url": "https://diario.mx/top"}
        node = payload
        for _ in range(12):
            node["child"] = {}
            node = node["child"]
        node["url"] = "https://diario.mx/deep"

        assert extract_urls_from_payload(payload, max_depth=10) == ["https://diario.mx/top"]

    def test_reference_cycle_terminates(self) -> None:
        payload: dict = {"url": "https://diario.mx/a"}
        payload["self"] = payload
        payload["list"] = [payload, {"url": "https://diario.mx/b"}]

        assert extract_urls_from_payload(payload) == ["https://diario.mx/a", "https://diario.mx/b"]


class TestIsCandidateUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://facebook.com/story/1",
            "https://m.facebook.com/story/1",
            "https://youtu.be/xyz",
            "https://bit.ly/abc",
            "https://storage.googleapis.com/bucket/file",
            "https://diario.mx/foto.JPG",
            "https://diario.mx/informe.pdf",
            "ftp://diario.mx/a",
            "https://a.b",
            "https://localhost/a",
        ],
    )
    def test_rejected(self, url: str) -> None:
        assert is_candidate_url(url) is False

    @pytest.mark.parametrize(
        "url",
        [
            "https://diario.mx/a",
            "https://news.example.mx/2024/01/nota.html",
            "http://example.com",
        ],
    )
    def test_accepted(self, url: str) -> None:
        assert is_candidate_url(url) is True


class TestCandidateUrls:
    def test_all_sources_are_merged_and_deduplicated(self) -> None:
        post = SocialPost(
            text="https://diario.mx/a?utm_medium=social y https://facebook.com/x",
            links=["https://www.diario.mx/a", "https://otro.mx/b"],
            raw_data={"link": "https://otro.mx/b#comments"},
        )
        assert candidate_urls(post) == ["https://diario.mx/a", "https://otro.mx/b"]


# ---------------------------------------------------------------------------
# UrlDiscoveryService
# ---------------------------------------------------------------------------


def _rows(session_factory) -> list[ExternalUrl]:
    with session_factory() as session:
        return list(session.scalars(select(ExternalUrl)).all())


class TestDiscover:
    def test_scenario_post_is_persisted(self, session_factory) -> None:
        service = UrlDiscoveryService(session_factory)
        post = SocialPost(
            facebook_post_id="p1",
            page_id="page-9",
            text="Lee más en https://news.example.mx/a?utm_source=fb&fbclid=123 gracias",
        )

        assert service.discover([post]) == 1

        (row,) = _rows(session_factory)
        assert row.url == "https://news.example.mx/a"
        assert row.domain == "news.example.mx"
        assert row.facebook_post_id == "p1"
        assert row.page_id == "page-9"
        assert row.extraction_status == "pending"
        assert row.has_config is False

    def test_rediscovery_is_a_no_op(self, session_factory) -> None:
        service = UrlDiscoveryService(session_factory)
        first = SocialPost(facebook_post_id="p1", text="https://diario.mx/a")
        second = SocialPost(facebook_post_id="p2", links=["https://www.diario.mx/a?fbclid=9"])

        assert service.discover([first]) == 1
        assert service.discover([second, first]) == 0

        (row,) = _rows(session_factory)
        assert row.facebook_post_id == "p1"

    def test_has_config_resolved_at_discovery(self, session_factory, example_config) -> None:
        service = UrlDiscoveryService(session_factory)
        service.discover([SocialPost(links=["https://example.com/a", "https://diario.mx/b"])])

        by_url = {r.url: r for r in _rows(session_factory)}
        assert by_url["https://example.com/a"].config_id == example_config.id
        assert by_url["https://example.com/a"].has_config is True
        assert by_url["https://diario.mx/b"].has_config is False

    def test_discover_urls_pulls_from_post_source(self, session_factory) -> None:
        source = MagicMock()
        source.fetch_posts.return_value = [SocialPost(links=["https://diario.mx/a"])]
        service = UrlDiscoveryService(session_factory, post_source=source)

        page = service.discover_urls(UrlFilter(domain="diario.mx"))

        source.fetch_posts.assert_called_once()
        assert page.total == 1
        assert page.items[0].url == "https://diario.mx/a"


class TestListUrls:
    def test_filters_and_pagination(self, session_factory, example_config) -> None:
        service = UrlDiscoveryService(session_factory)
        service.discover(
            [
                SocialPost(page_id="p", links=[f"https://example.com/{i}" for i in range(3)]),
                SocialPost(page_id="q", links=["https://diario.mx/x"]),
            ]
        )

        assert service.list_urls().total == 4
        assert service.list_urls(UrlFilter(has_config=True)).total == 3
        assert service.list_urls(UrlFilter(page_id="q")).items[0].domain == "diario.mx"

        page = service.list_urls(UrlFilter(domain="example.com"), PageParams(page=2, limit=2))
        assert page.total == 3
        assert len(page.items) == 1
        assert page.pages == 2


class TestExtractionStatus:
    def test_failed_increments_attempts(self, session_factory) -> None:
        service = UrlDiscoveryService(session_factory)
        service.discover([SocialPost(links=["https://diario.mx/a"])])

        assert service.update_extraction_status("https://diario.mx/a", "failed", "boom") is True
        assert service.update_extraction_status("https://diario.mx/a", "failed", "again") is True

        (row,) = _rows(session_factory)
        assert row.extraction_status == "failed"
        assert row.extraction_attempts == 2
        assert row.last_error == "again"
        assert row.last_attempt_at is not None

    def test_extracted_clears_error(self, session_factory) -> None:
        service = UrlDiscoveryService(session_factory)
        service.discover([SocialPost(links=["https://diario.mx/a"])])
        service.update_extraction_status("https://diario.mx/a", "failed", "boom")

        service.update_extraction_status("https://www.diario.mx/a?utm_source=x", "extracted")

        (row,) = _rows(session_factory)
        assert row.extraction_status == "extracted"
        assert row.last_error is None
        assert row.extraction_attempts == 1

    def test_unknown_url(self, session_factory) -> None:
        service = UrlDiscoveryService(session_factory)
        assert service.update_extraction_status("https://nope.mx/a", "extracted") is False

    def test_pending_urls_for_domain(self, session_factory) -> None:
        service = UrlDiscoveryService(session_factory)
        for i in range(4):
            service.discover([SocialPost(links=[f"https://diario.mx/{i}"])])
        service.update_extraction_status("https://diario.mx/0", "extracted")

        assert service.pending_urls_for_domain("diario.mx", 2) == [
            "https://diario.mx/1",
            "https://diario.mx/2",
        ]
        assert service.pending_urls_for_domain("otro.mx", 10) == []


class TestUrlStats:
    def test_counts(self, session_factory, example_config) -> None:
        service = UrlDiscoveryService(session_factory)
        service.discover(
            [SocialPost(links=["https://example.com/a", "https://example.com/b", "https://diario.mx/c"])]
        )
        service.update_extraction_status("https://example.com/a", "extracted")

        stats = service.url_stats()
        assert stats.total == 3
        assert stats.with_config == 2
        assert stats.by_status == {"pending": 2, "extracted": 1}
        assert stats.top_domains[0] == {"domain": "example.com", "count": 2}
