"""Async HTTP fetcher for the static-fetch extraction strategy.

Uses ``httpx`` for all HTTP requests, including robots.txt.  The shared
client must be created with ``follow_redirects`` semantics and a
``max_redirects`` ceiling (see :func:`build_client`); every request carries a
rotated browser user-agent plus the domain's custom headers.

Failures are raised as taxonomy exceptions from
:mod:`news_extraction.core.exceptions` rather than returned, so the extractor
can fall back or propagate without inspecting result fields.
"""

from __future__ import annotations

import logging
import random
import urllib.parse
import urllib.robotparser
from dataclasses import dataclass

import httpx

from news_extraction.core.exceptions import (
    FetchTimeoutError,
    NetworkError,
    ParsingError,
    RateLimitedError,
)
from news_extraction.scraper.config import (
    BINARY_CONTENT_TYPES,
    DEFAULT_HEADERS,
    MAX_REDIRECTS,
    ROBOTS_TIMEOUT,
    ROBOTS_USER_AGENT,
    ROBOTS_USER_AGENT_FALLBACK,
    USER_AGENTS,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class FetchResult:
    """Result of a successful fetch or render.

    Attributes:
        html: Decoded HTML document.
        status_code: HTTP status code of the final response, or ``None`` when
            the renderer could not report one.
        final_url: URL after following redirects.
    """

    html: str
    status_code: int | None
    final_url: str


# ---------------------------------------------------------------------------
# Client and header helpers
# ---------------------------------------------------------------------------


def build_client(max_redirects: int = MAX_REDIRECTS) -> httpx.AsyncClient:
    """Return an :class:`httpx.AsyncClient` configured for article fetching.

    Args:
        max_redirects: Redirect ceiling, clamped to :data:`MAX_REDIRECTS`.
    """
    return httpx.AsyncClient(
        follow_redirects=True,
        max_redirects=min(max_redirects, MAX_REDIRECTS),
    )


def build_headers(custom_headers: dict[str, str] | None = None) -> dict[str, str]:
    """Return request headers with a randomly rotated user-agent.

    Custom headers win over both the defaults and the rotated user-agent.
    """
    headers = {"User-Agent": random.choice(USER_AGENTS), **DEFAULT_HEADERS}
    if custom_headers:
        headers.update(custom_headers)
    return headers


# ---------------------------------------------------------------------------
# robots.txt helpers
# ---------------------------------------------------------------------------


async def _is_allowed_by_robots(
    url: str,
    *,
    client: httpx.AsyncClient,
    robots_cache: dict[str, urllib.robotparser.RobotFileParser | None],
) -> bool:
    """Return ``True`` if the URL is allowed by the site's robots.txt.

    Parsed rules are cached in ``robots_cache`` keyed by origin.  On any
    network or parse error the origin is treated as allowed (fail-open).

    Args:
        url: Target URL.
        client: Shared HTTP client used to download robots.txt.
        robots_cache: Mutable dict used as a TTL-less per-origin cache.
            ``None`` values mean "no usable robots.txt".

    Returns:
        ``True`` if allowed (or if the check fails), ``False`` if disallowed.
    """
    parsed = urllib.parse.urlparse(url)
    origin = f"{parsed.scheme}://{parsed.netloc}"

    if origin not in robots_cache:
        parser: urllib.robotparser.RobotFileParser | None = None
        try:
            response = await client.get(f"{origin}/robots.txt", timeout=ROBOTS_TIMEOUT)
            if response.status_code == 200:
                parser = urllib.robotparser.RobotFileParser()
                parser.parse(response.text.splitlines())
        except Exception as exc:  # noqa: BLE001
            logger.debug("scraper: robots.txt fetch failed for %s: %s; allowing", origin, exc)
        robots_cache[origin] = parser

    parser = robots_cache[origin]
    if parser is None:
        return True
    return parser.can_fetch(ROBOTS_USER_AGENT, url) and parser.can_fetch(
        ROBOTS_USER_AGENT_FALLBACK, url
    )


# ---------------------------------------------------------------------------
# Binary content-type check
# ---------------------------------------------------------------------------


def _is_binary_content_type(content_type: str) -> bool:
    """Return ``True`` if the Content-Type indicates a non-text binary resource."""
    ct = content_type.lower().split(";")[0].strip()
    return any(ct.startswith(prefix) for prefix in BINARY_CONTENT_TYPES)


def _retry_after_seconds(response: httpx.Response, default: float = 60.0) -> float:
    value = response.headers.get("retry-after", "")
    try:
        return max(float(value), 0.0)
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Public fetch function
# ---------------------------------------------------------------------------


async def fetch_url(
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout: float,
    custom_headers: dict[str, str] | None = None,
    respect_robots: bool = False,
    robots_cache: dict[str, urllib.robotparser.RobotFileParser | None] | None = None,
) -> FetchResult:
    """Fetch a single URL for static extraction.

    Performs the following steps in order:

    1. **robots.txt**: if ``respect_robots`` is ``True``, downloads and
       caches the origin's rules and refuses disallowed URLs.
    2. **HTTP GET** with a rotated user-agent and the custom headers.
       Redirects are followed up to the client's ``max_redirects``.
    3. **Status check**: 429 becomes :class:`RateLimitedError`, any other
       status >= 400 becomes :class:`NetworkError`.
    4. **Binary content-type** responses are refused with :class:`ParsingError`.

    Args:
        url: Target URL to fetch.
        client: Shared :class:`httpx.AsyncClient` (see :func:`build_client`).
        timeout: Request timeout in seconds.
        custom_headers: Per-domain extra headers.
        respect_robots: Whether to honour robots.txt disallow rules.
        robots_cache: Per-origin robots.txt cache shared across calls.

    Returns:
        A :class:`FetchResult` with the decoded body.

    Raises:
        FetchTimeoutError: The request exceeded ``timeout``.
        NetworkError: Connection failure, redirect loop, robots.txt refusal
            or an HTTP error status.
        RateLimitedError: The site answered 429.
        ParsingError: The response is not a text document.
    """
    # 1. robots.txt check
    if respect_robots and not await _is_allowed_by_robots(
        url,
        client=client,
        robots_cache=robots_cache if robots_cache is not None else {},
    ):
        logger.info("scraper: robots.txt disallows %s", url)
        raise NetworkError(f"robots.txt disallows fetching {url}", url=url)

    # 2. HTTP GET
    try:
        response = await client.get(
            url,
            timeout=timeout,
            follow_redirects=True,
            headers=build_headers(custom_headers),
        )
    except httpx.TimeoutException as exc:
        logger.warning("scraper: timeout fetching %s", url)
        raise FetchTimeoutError(
            f"Request timed out after {timeout:.0f}s fetching {url}", url=url
        ) from exc
    except httpx.TooManyRedirects as exc:
        logger.warning("scraper: too many redirects for %s", url)
        raise NetworkError(f"Too many redirects fetching {url}", url=url) from exc
    except httpx.RequestError as exc:
        logger.warning("scraper: request error for %s: %s", url, exc)
        raise NetworkError(f"Connection error fetching {url}: {exc}", url=url) from exc

    final_url = str(response.url)

    # 3. HTTP error status
    if response.status_code == 429:
        retry_after = _retry_after_seconds(response)
        logger.info("scraper: HTTP 429 for %s (retry_after=%.0fs)", url, retry_after)
        raise RateLimitedError(
            f"HTTP 429 Too Many Requests from {final_url}",
            domain=urllib.parse.urlparse(final_url).hostname,
            retry_after=retry_after,
            url=url,
        )
    if response.status_code >= 400:
        logger.info("scraper: HTTP %d for %s", response.status_code, url)
        raise NetworkError(
            f"HTTP {response.status_code} fetching {url}",
            status_code=response.status_code,
            url=url,
        )

    # 4. Binary content-type check
    content_type = response.headers.get("content-type", "")
    if _is_binary_content_type(content_type):
        logger.info("scraper: refusing binary content-type '%s' for %s", content_type, url)
        raise ParsingError(f"Unsupported content-type {content_type!r} for {url}", url=url)

    try:
        html = response.text
    except Exception as exc:  # noqa: BLE001
        raise ParsingError(f"Could not decode response body of {url}: {exc}", url=url) from exc

    return FetchResult(html=html, status_code=response.status_code, final_url=final_url)
