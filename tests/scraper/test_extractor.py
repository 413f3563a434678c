"""Tests for SelectorExtractor.

Covers the static strategy end to end (mocked with respx), the rendered
strategy with static fallback, the cache round-trip and the rate-limit gate.
Redis is replaced by the in-process ``FakeRedis`` from ``conftest``.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from news_extraction.core.exceptions import (
    InvalidUrlError,
    NoTitleFoundError,
    RateLimitedError,
    RenderError,
)
from news_extraction.core.schemas import ExtractionSettings, SelectorSet, SiteConfig
from news_extraction.scraper.cache import ExtractionCache
from news_extraction.scraper.extractor import SelectorExtractor
from news_extraction.scraper.http_fetcher import FetchResult
from news_extraction.workers.rate_limiter import DomainRateLimiter

SCENARIO_HTML = (
    '<h1>Hello</h1><div class="body">World, this is a sufficiently long '
    "article body text.</div>"
)

_URL = "https://example.com/a"


def _config(**settings) -> SiteConfig:
    return SiteConfig(
        domain="example.com",
        selectors=SelectorSet(title="h1", content=".body"),
        settings=ExtractionSettings(respect_robots=False, **settings),
    )


def _extractor(fake_redis, clock, *, cache: bool = True, renderer=None) -> SelectorExtractor:
    return SelectorExtractor(
        rate_limiter=DomainRateLimiter(fake_redis, clock=clock),
        http_client=httpx.AsyncClient(follow_redirects=True, max_redirects=5),
        cache=ExtractionCache(fake_redis) if cache else None,
        renderer=renderer,
    )


def _html_response(html: str = SCENARIO_HTML) -> httpx.Response:
    return httpx.Response(200, text=html, headers={"content-type": "text/html"})


# ---------------------------------------------------------------------------
# Static strategy
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestStaticExtraction:
    async def test_scenario_a_success(self, fake_redis, clock) -> None:
        extractor = _extractor(fake_redis, clock, cache=False)
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/a").mock(return_value=_html_response())
            result = await extractor.extract(_URL, _config())
        await extractor.aclose()

        assert result.data.title == "Hello"
        assert result.data.content.startswith("World")
        assert result.quality.completeness >= 50
        assert result.metadata.method == "static"
        assert result.metadata.http_status == 200
        assert result.metadata.fallback_used is False
        assert "Title is very short (5 chars)" in result.warnings

    async def test_missing_title_is_a_failure(self, fake_redis, clock) -> None:
        extractor = _extractor(fake_redis, clock, cache=False)
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/a").mock(
                return_value=_html_response('<div class="body">Only a body here.</div>')
            )
            with pytest.raises(NoTitleFoundError):
                await extractor.extract(_URL, _config())
        await extractor.aclose()

    async def test_invalid_url_rejected_before_any_io(self, fake_redis, clock) -> None:
        extractor = _extractor(fake_redis, clock)
        with pytest.raises(InvalidUrlError):
            await extractor.extract("ftp://example.com/a", _config())
        await extractor.aclose()
        assert fake_redis.calls == []

    async def test_redirect_is_reported_as_warning(self, fake_redis, clock) -> None:
        extractor = _extractor(fake_redis, clock, cache=False)
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/a").mock(
                return_value=httpx.Response(302, headers={"location": "https://example.com/b"})
            )
            mock.get("/b").mock(return_value=_html_response())
            result = await extractor.extract(_URL, _config())
        await extractor.aclose()

        assert result.metadata.final_url == "https://example.com/b"
        assert any(w.startswith("Redirected to a different URL") for w in result.warnings)


# ---------------------------------------------------------------------------
# Cache round-trip
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestCacheRoundTrip:
    async def test_second_call_is_cached_without_limiter_or_network(
        self, fake_redis, clock
    ) -> None:
        extractor = _extractor(fake_redis, clock)
        with respx.mock(base_url="https://example.com") as mock:
            route = mock.get("/a").mock(return_value=_html_response())
            first = await extractor.extract(_URL, _config())
            evalsha_before = fake_redis.calls.count("evalsha")
            second = await extractor.extract(_URL, _config())
        await extractor.aclose()

        assert route.call_count == 1
        assert fake_redis.calls.count("evalsha") == evalsha_before
        assert second.metadata.method == "cached"
        assert second.data == first.data
        assert second.quality == first.quality

    async def test_use_cache_false_bypasses_cache(self, fake_redis, clock) -> None:
        extractor = _extractor(fake_redis, clock)
        with respx.mock(base_url="https://example.com") as mock:
            route = mock.get("/a").mock(return_value=_html_response())
            await extractor.extract(_URL, _config(), use_cache=False)
            await extractor.extract(_URL, _config(), use_cache=False)
        await extractor.aclose()

        assert route.call_count == 2
        assert "set" not in fake_redis.calls


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestRateLimitGate:
    async def test_exhausted_budget_raises(self, fake_redis, clock) -> None:
        extractor = _extractor(fake_redis, clock, cache=False)
        with respx.mock(base_url="https://example.com") as mock:
            route = mock.get("/a").mock(return_value=_html_response())
            await extractor.extract(_URL, _config(requests_per_minute=1))
            with pytest.raises(RateLimitedError) as excinfo:
                await extractor.extract(_URL, _config(requests_per_minute=1))
        await extractor.aclose()

        assert route.call_count == 1
        assert 0 < excinfo.value.retry_after <= 60


# ---------------------------------------------------------------------------
# Rendered strategy
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestRenderedStrategy:
    async def test_rendered_dom_used_when_configured(self, fake_redis, clock) -> None:
        renderer = AsyncMock()
        renderer.render.return_value = FetchResult(
            html=SCENARIO_HTML, status_code=200, final_url=_URL
        )
        extractor = _extractor(fake_redis, clock, cache=False, renderer=renderer)

        result = await extractor.extract(_URL, _config(use_rendered_dom=True, wait_time_ms=500))
        await extractor.aclose()

        assert result.metadata.method == "rendered"
        renderer.render.assert_awaited_once()
        assert renderer.render.await_args.kwargs["wait_ms"] == 500

    async def test_render_failure_falls_back_to_static(self, fake_redis, clock) -> None:
        renderer = AsyncMock()
        renderer.render.side_effect = RenderError("browser crashed", url=_URL)
        extractor = _extractor(fake_redis, clock, cache=False, renderer=renderer)

        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/a").mock(return_value=_html_response())
            result = await extractor.extract(_URL, _config(use_rendered_dom=True))
        await extractor.aclose()

        assert result.metadata.method == "static"
        assert result.metadata.fallback_used is True
        assert result.data.title == "Hello"

    async def test_rendered_selector_failure_also_falls_back(self, fake_redis, clock) -> None:
        renderer = AsyncMock()
        renderer.render.return_value = FetchResult(
            html="<div>loading...</div>", status_code=200, final_url=_URL
        )
        extractor = _extractor(fake_redis, clock, cache=False, renderer=renderer)

        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/a").mock(return_value=_html_response())
            result = await extractor.extract(_URL, _config(use_rendered_dom=True))
        await extractor.aclose()

        assert result.metadata.fallback_used is True

    async def test_rendered_dom_without_renderer_uses_static(self, fake_redis, clock) -> None:
        extractor = _extractor(fake_redis, clock, cache=False, renderer=None)

        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/a").mock(return_value=_html_response())
            result = await extractor.extract(_URL, _config(use_rendered_dom=True))
        await extractor.aclose()

        assert result.metadata.method == "static"
        assert result.metadata.fallback_used is False
        assert result.data.title == "Hello"
