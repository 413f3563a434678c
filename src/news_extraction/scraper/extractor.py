"""Selector-driven article extractor.

:class:`SelectorExtractor` turns a URL plus a domain configuration into an
:class:`~news_extraction.core.schemas.extraction.ExtractionResult`:

1. Validate the URL (``InvalidUrlError``).
2. Look the fingerprint up in the extraction cache; a hit returns
   immediately with ``method="cached"``, with no rate-limit or network use.
3. Pass the per-domain rate limiter (``RateLimitedError``).
4. Fetch: rendered DOM when the domain asks for it, falling back once to a
   static fetch on *any* rendering or extraction failure; otherwise static.
5. Extract fields with the configured selectors.
6. Score, collect warnings, and write the result through the cache.

Collaborators (rate limiter, cache, HTTP client, renderer) are injected so
that every worker process composes its own instance around shared Redis state.
"""

from __future__ import annotations

import logging
import time
import urllib.robotparser
from dataclasses import dataclass, field

import httpx

from news_extraction.core.exceptions import InvalidUrlError
from news_extraction.core.schemas.config import SiteConfig
from news_extraction.core.schemas.extraction import (
    ArticleContent,
    ExtractionMetadata,
    ExtractionMethod,
    ExtractionResult,
)
from news_extraction.core.urls import extract_domain, is_valid_url, normalize_url
from news_extraction.scraper.cache import ExtractionCache, fingerprint
from news_extraction.scraper.content_extractor import extract_article
from news_extraction.scraper.http_fetcher import FetchResult, fetch_url
from news_extraction.scraper.playwright_fetcher import PageRenderer
from news_extraction.scraper.quality import collect_warnings, score
from news_extraction.workers.rate_limiter import DomainRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class SelectorExtractor:
    """Extract structured articles from arbitrary news sites.

    Attributes:
        rate_limiter: Shared per-domain request budget.
        http_client: Client for static fetches (see
            :func:`~news_extraction.scraper.http_fetcher.build_client`).
        cache: Shared result cache, or ``None`` to disable caching.
        renderer: Headless renderer for the rendered-DOM strategy, or
            ``None`` to always fetch statically.
    """

    rate_limiter: DomainRateLimiter
    http_client: httpx.AsyncClient
    cache: ExtractionCache | None = None
    renderer: PageRenderer | None = None
    robots_cache: dict[str, urllib.robotparser.RobotFileParser | None] = field(
        default_factory=dict,
        repr=False,
    )

    async def extract(
        self,
        url: str,
        config: SiteConfig,
        *,
        use_cache: bool = True,
    ) -> ExtractionResult:
        """Extract one article.

        Args:
            url: Article URL.
            config: The domain's selectors, settings and custom headers.
            use_cache: Read and write the extraction cache.  Dry runs pass
                ``False``.

        Returns:
            The successful :class:`ExtractionResult`.

        Raises:
            InvalidUrlError: ``url`` is not an absolute http(s) URL.
            RateLimitedError: The domain's budget is exhausted.
            NetworkError: The site could not be fetched.
            FetchTimeoutError: The fetch exceeded the configured timeout.
            ParsingError: The response is not a parseable document.
            NoTitleFoundError: The title selector matched no text.
            NoContentFoundError: The content selector matched no text.
        """
        if not is_valid_url(url):
            raise InvalidUrlError(f"Invalid URL: {url!r}", url=url)

        started = time.perf_counter()
        cache_key = fingerprint(url, config.selectors)

        if use_cache and self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug("scraper: cache hit for %s", url)
                return cached.as_cached()

        domain = extract_domain(url)
        await self.rate_limiter.acquire(domain, config.settings.requests_per_minute)

        method: ExtractionMethod = "static"
        fallback_used = False
        renderer = self.renderer
        if config.settings.use_rendered_dom and renderer is not None:
            try:
                fetched, content = await self._extract_rendered(renderer, url, config)
                method = "rendered"
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "scraper: rendered extraction failed for %s (%s); falling back to static fetch",
                    url,
                    exc,
                )
                fallback_used = True
                fetched, content = await self._extract_static(url, config)
        else:
            fetched, content = await self._extract_static(url, config)

        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if normalize_url(fetched.final_url) != normalize_url(url):
            logger.warning("scraper: %s redirected to %s", url, fetched.final_url)

        result = ExtractionResult(
            data=content,
            metadata=ExtractionMetadata(
                method=method,
                extraction_ms=elapsed_ms,
                http_status=fetched.status_code,
                content_length=len(content.content),
                image_count=len(content.images),
                url=url,
                final_url=fetched.final_url,
                fallback_used=fallback_used,
            ),
            quality=score(content),
            warnings=collect_warnings(content, url=url, final_url=fetched.final_url),
        )

        if use_cache and self.cache is not None:
            await self.cache.set(cache_key, result)

        return result

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _extract_static(
        self,
        url: str,
        config: SiteConfig,
    ) -> tuple[FetchResult, ArticleContent]:
        fetched = await fetch_url(
            url,
            client=self.http_client,
            timeout=config.settings.timeout_ms / 1000,
            custom_headers=config.custom_headers,
            respect_robots=config.settings.respect_robots,
            robots_cache=self.robots_cache,
        )
        return fetched, extract_article(fetched.html, config.selectors, base_url=fetched.final_url)

    async def _extract_rendered(
        self,
        renderer: PageRenderer,
        url: str,
        config: SiteConfig,
    ) -> tuple[FetchResult, ArticleContent]:
        fetched = await renderer.render(
            url,
            wait_ms=config.settings.wait_time_ms,
            timeout_ms=config.settings.timeout_ms,
            custom_headers=config.custom_headers,
        )
        return fetched, extract_article(fetched.html, config.selectors, base_url=fetched.final_url)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()
