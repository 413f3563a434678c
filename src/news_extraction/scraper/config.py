"""Constants and tuning parameters for the selector-driven extractor."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: Desktop browser user-agents rotated across requests.  News sites routinely
#: serve reduced or blocked pages to obvious bot user-agents.
USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
)

#: Headers sent with every request.  Per-domain custom headers override these.
DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "es-ES,es;q=0.9,en;q=0.8",
    "Cache-Control": "no-cache",
}

#: Hard ceiling on redirects followed by the static-fetch strategy.
MAX_REDIRECTS: int = 5

#: Content-Type prefixes that cannot contain an article document.
BINARY_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/zip",
        "application/octet-stream",
        "application/vnd.",
        "image/",
        "video/",
        "audio/",
        "font/",
    }
)

# ---------------------------------------------------------------------------
# robots.txt
# ---------------------------------------------------------------------------

#: robots.txt user-agent token to check against.
ROBOTS_USER_AGENT: str = "NewsExtraction"

#: Fallback token covering rules for every crawler.
ROBOTS_USER_AGENT_FALLBACK: str = "*"

#: Timeout (seconds) for fetching a site's robots.txt.
ROBOTS_TIMEOUT: float = 10.0

# ---------------------------------------------------------------------------
# DOM parsing
# ---------------------------------------------------------------------------

#: Tags removed before text extraction.
NON_CONTENT_TAGS: tuple[str, ...] = ("script", "style", "noscript", "template")

#: Attributes checked, in order, for an image URL.
IMAGE_SRC_ATTRIBUTES: tuple[str, ...] = (
    "src",
    "data-src",
    "data-lazy-src",
    "data-lazy",
    "data-original",
)

#: Case-insensitive substrings of an image path that mark non-content assets.
IMAGE_EXCLUDE_HINTS: tuple[str, ...] = (
    "icon",
    "logo",
    "pixel",
    "1x1",
    "sprite",
    "spacer",
    "avatar",
    "tracking",
)

#: Attributes checked, in order, for a machine-readable publication date.
DATE_ATTRIBUTES: tuple[str, ...] = ("datetime", "content", "data-date")

# ---------------------------------------------------------------------------
# Quality thresholds
# ---------------------------------------------------------------------------

#: Titles shorter than this trigger a warning.
TITLE_MIN_LENGTH: int = 10

#: Titles longer than this trigger a warning.
TITLE_MAX_LENGTH: int = 200

#: Content shorter than this triggers a warning.
CONTENT_MIN_LENGTH: int = 100

# ---------------------------------------------------------------------------
# Dry-run previews
# ---------------------------------------------------------------------------

#: Characters of content returned by a dry-run extraction.
PREVIEW_CONTENT_CHARS: int = 500

#: Images returned by a dry-run extraction.
PREVIEW_IMAGE_COUNT: int = 5
