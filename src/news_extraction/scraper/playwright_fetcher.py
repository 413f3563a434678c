"""Playwright-based headless browser renderer for JavaScript-dependent sites.

Used by the rendered-DOM extraction strategy when a domain's settings ask
for it.  Any failure here is raised as an extraction error; the extractor
then falls back to the static-fetch strategy.

Install Playwright and download the Chromium browser binary::

    pip install playwright>=1.48
    playwright install chromium
"""

from __future__ import annotations

import logging
from typing import Protocol

from news_extraction.core.exceptions import FetchTimeoutError, RenderError
from news_extraction.scraper.http_fetcher import FetchResult, build_headers

logger = logging.getLogger(__name__)

# Guard import; the browser binaries are often missing on API-only hosts.
try:
    from playwright.async_api import TimeoutError as _PlaywrightTimeoutError
    from playwright.async_api import async_playwright as _async_playwright

    _PLAYWRIGHT_AVAILABLE = True
except ImportError:
    _PLAYWRIGHT_AVAILABLE = False


class PageRenderer(Protocol):
    """Headless-render collaborator: turn a URL into fully rendered HTML."""

    async def render(
        self,
        url: str,
        *,
        wait_ms: int,
        timeout_ms: int,
        custom_headers: dict[str, str] | None = None,
    ) -> FetchResult: ...


async def fetch_url_playwright(
    url: str,
    *,
    timeout_ms: int,
    wait_ms: int = 0,
    custom_headers: dict[str, str] | None = None,
    headless: bool = True,
) -> FetchResult:
    """Render a URL in headless Chromium and return the resulting DOM.

    Navigates to ``url``, waits for the network to become idle, then waits a
    further ``wait_ms`` for late client-side rendering.  The browser, context
    and page are always closed.

    Args:
        url: Target URL.
        timeout_ms: Navigation timeout in milliseconds.
        wait_ms: Extra settle time after navigation.
        custom_headers: Per-domain extra headers; a ``User-Agent`` entry
            overrides the rotated user-agent.
        headless: Launch Chromium without a window.

    Returns:
        A :class:`~news_extraction.scraper.http_fetcher.FetchResult`.

    Raises:
        FetchTimeoutError: Navigation exceeded ``timeout_ms``.
        RenderError: Playwright is unavailable or rendering failed.
    """
    if not _PLAYWRIGHT_AVAILABLE:
        raise RenderError(
            "Playwright is not installed. "
            "Install it with: pip install playwright>=1.48 && playwright install chromium",
            url=url,
        )

    headers = build_headers(custom_headers)
    user_agent = headers.pop("User-Agent")

    try:
        async with _async_playwright() as p:
            browser = await p.chromium.launch(headless=headless)
            try:
                context = await browser.new_context(
                    user_agent=user_agent,
                    extra_http_headers=headers,
                )
                page = await context.new_page()
                try:
                    response = await page.goto(
                        url,
                        timeout=timeout_ms,
                        wait_until="networkidle",
                    )
                    if wait_ms > 0:
                        await page.wait_for_timeout(wait_ms)
                    html = await page.content()
                    return FetchResult(
                        html=html,
                        status_code=response.status if response else None,
                        final_url=page.url,
                    )
                finally:
                    await page.close()
                    await context.close()
            finally:
                await browser.close()
    except _PlaywrightTimeoutError as exc:
        logger.warning("scraper: playwright timeout for %s", url)
        raise FetchTimeoutError(
            f"Rendering timed out after {timeout_ms}ms for {url}", url=url
        ) from exc
    except Exception as exc:
        logger.warning("scraper: playwright render failed for %s: %s", url, exc)
        raise RenderError(f"Rendering failed for {url}: {exc}", url=url) from exc


class PlaywrightRenderer:
    """:class:`PageRenderer` backed by :func:`fetch_url_playwright`."""

    def __init__(self, *, headless: bool = True) -> None:
        self.headless = headless

    async def render(
        self,
        url: str,
        *,
        wait_ms: int,
        timeout_ms: int,
        custom_headers: dict[str, str] | None = None,
    ) -> FetchResult:
        return await fetch_url_playwright(
            url,
            timeout_ms=timeout_ms,
            wait_ms=wait_ms,
            custom_headers=custom_headers,
            headless=self.headless,
        )
