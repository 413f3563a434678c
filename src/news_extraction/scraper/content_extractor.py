"""Selector-driven article extraction over a parsed HTML document.

Uses BeautifulSoup with the stdlib ``html.parser`` backend and CSS selectors
(``soup.select``).  A selector is a single CSS selector or an ordered list of
fallbacks:

- scalar fields (title, content, author, excerpt, publication date) use the
  first selector that yields non-empty text;
- list fields (images, categories, tags) take the union over all selectors.

Only ``title`` and ``content`` are required.  Every other field is
best-effort and silently left empty when its selector is absent or matches
nothing.
"""

from __future__ import annotations

import email.utils
import logging
import re
from datetime import datetime, timezone
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from news_extraction.core.exceptions import (
    NoContentFoundError,
    NoTitleFoundError,
    ParsingError,
)
from news_extraction.core.schemas.config import Selector, SelectorSet
from news_extraction.core.schemas.extraction import ArticleContent
from news_extraction.scraper.config import (
    DATE_ATTRIBUTES,
    IMAGE_EXCLUDE_HINTS,
    IMAGE_SRC_ATTRIBUTES,
    NON_CONTENT_TAGS,
)

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_BACKGROUND_URL_RE = re.compile(
    r"background(?:-image)?\s*:[^;]*?url\(\s*['\"]?([^'\")]+?)['\"]?\s*\)",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Parsing and selection helpers
# ---------------------------------------------------------------------------


def parse_html(html: str) -> BeautifulSoup:
    """Parse ``html`` into a traversable DOM with non-content tags removed.

    Raises:
        ParsingError: The document is empty or cannot be parsed.
    """
    if not html or not html.strip():
        raise ParsingError("Cannot parse an empty HTML document")
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as exc:
        raise ParsingError(f"Invalid HTML document: {exc}") from exc
    for tag in soup.find_all(list(NON_CONTENT_TAGS)):
        tag.decompose()
    return soup


def _as_list(selector: Selector | None) -> list[str]:
    if selector is None:
        return []
    if isinstance(selector, str):
        return [selector]
    return list(selector)


def _clean_text(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _element_text(element: Tag) -> str:
    return _clean_text(element.get_text(" ", strip=True))


def extract_text(soup: BeautifulSoup, selector: Selector | None) -> str:
    """Return the text of the first selector that matches non-empty content.

    All elements matched by that selector contribute, joined by a space.
    """
    for css in _as_list(selector):
        parts = [text for text in (_element_text(el) for el in soup.select(css)) if text]
        if parts:
            return _clean_text(" ".join(parts))
    return ""


def extract_text_list(soup: BeautifulSoup, selector: Selector | None) -> list[str]:
    """Return the de-duplicated texts of every element matched by any selector."""
    seen: set[str] = set()
    values: list[str] = []
    for css in _as_list(selector):
        for element in soup.select(css):
            text = _element_text(element)
            if text and text not in seen:
                seen.add(text)
                values.append(text)
    return values


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


def _first_srcset_candidate(srcset: str) -> str | None:
    first = srcset.split(",")[0].strip()
    return first.split()[0] if first else None


def _image_sources(element: Tag) -> list[str]:
    """Collect raw image references from one element and its nested ``<img>`` tags."""
    sources: list[str] = []

    def _from_img_like(tag: Tag) -> None:
        for attr in IMAGE_SRC_ATTRIBUTES:
            value = tag.get(attr)
            # Lazy-loaded images carry a data: placeholder in src.
            if isinstance(value, str) and value.strip() and not value.strip().startswith("data:"):
                sources.append(value.strip())
                return
        srcset = tag.get("srcset") or tag.get("data-srcset")
        if isinstance(srcset, str):
            candidate = _first_srcset_candidate(srcset)
            if candidate:
                sources.append(candidate)

    if element.name in ("img", "source"):
        _from_img_like(element)
    elif element.name == "meta":
        content = element.get("content")
        if isinstance(content, str) and content.strip():
            sources.append(content.strip())
    else:
        for attr in IMAGE_SRC_ATTRIBUTES[1:]:
            value = element.get(attr)
            if isinstance(value, str) and value.strip():
                sources.append(value.strip())
        for nested in element.find_all("img"):
            _from_img_like(nested)

    style = element.get("style")
    if isinstance(style, str):
        sources.extend(match.strip() for match in _BACKGROUND_URL_RE.findall(style))

    return sources


def _is_content_image(absolute_url: str) -> bool:
    parts = urlsplit(absolute_url)
    if parts.scheme not in ("http", "https"):
        return False
    path = parts.path.lower()
    return not any(hint in path for hint in IMAGE_EXCLUDE_HINTS)


def extract_images(
    soup: BeautifulSoup,
    selector: Selector | None,
    *,
    base_url: str,
) -> list[str]:
    """Return absolute, de-duplicated content image URLs.

    Reads ``src`` and lazy-load attributes, the first ``srcset`` candidate,
    inline ``background-image`` styles and ``<meta content>`` values, and
    descends into nested ``<img>`` elements.  Relative references are
    resolved against ``base_url`` (the post-redirect URL).  Icons, logos and
    tracking pixels are dropped by filename heuristics.

    Args:
        soup: Parsed document.
        selector: Image selector(s), or ``None`` to skip.
        base_url: URL that relative references resolve against.

    Returns:
        Image URLs in document order.
    """
    seen: set[str] = set()
    images: list[str] = []
    for css in _as_list(selector):
        for element in soup.select(css):
            for raw in _image_sources(element):
                if raw.startswith(("data:", "javascript:")):
                    continue
                absolute = urljoin(base_url, raw)
                if absolute in seen or not _is_content_image(absolute):
                    continue
                seen.add(absolute)
                images.append(absolute)
    return images


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def parse_date(value: str) -> datetime | None:
    """Parse an ISO-8601 or RFC-2822 date string into an aware UTC datetime.

    Naive values are assumed to be UTC.  Returns ``None`` when the string
    matches neither format.
    """
    text = value.strip()
    if not text:
        return None
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = email.utils.parsedate_to_datetime(text)
        except (TypeError, ValueError):
            return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def extract_date(soup: BeautifulSoup, selector: Selector | None) -> datetime | None:
    """Return the first parseable date among the matched elements.

    Machine-readable attributes (``datetime``, ``content``, ``data-date``)
    are preferred over visible text.
    """
    for css in _as_list(selector):
        for element in soup.select(css):
            for attr in DATE_ATTRIBUTES:
                value = element.get(attr)
                if isinstance(value, str):
                    parsed = parse_date(value)
                    if parsed is not None:
                        return parsed
            parsed = parse_date(_element_text(element))
            if parsed is not None:
                return parsed
    return None


def date_from_metadata(html: str, url: str) -> datetime | None:
    """Return the publication date detected by trafilatura's metadata extractor.

    Used when no configured selector yields a date.  Parses Open Graph
    ``article:published_time``, ``<meta name="date">`` and JSON-LD
    ``datePublished`` signals.
    """
    try:
        import trafilatura  # noqa: PLC0415

        meta = trafilatura.extract_metadata(html, default_url=url)
        if meta is not None and getattr(meta, "date", None):
            return parse_date(meta.date)
    except Exception as exc:  # noqa: BLE001
        logger.debug("scraper: trafilatura metadata failed for %s: %s", url, exc)
    return None


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def extract_article(
    html: str,
    selectors: SelectorSet,
    *,
    base_url: str,
) -> ArticleContent:
    """Extract structured article fields from an HTML document.

    Args:
        html: Raw HTML of the page.
        selectors: The domain's selector set.
        base_url: Post-redirect URL of the page, used to resolve images.

    Returns:
        The populated :class:`ArticleContent`.

    Raises:
        ParsingError: The document cannot be parsed.
        NoTitleFoundError: The title selector yields empty text.
        NoContentFoundError: The content selector yields empty text.
    """
    soup = parse_html(html)

    title = extract_text(soup, selectors.title)
    if not title:
        raise NoTitleFoundError(
            f"No title found: selector {selectors.title!r} matched no text",
            field="title",
            selector=selectors.title,
            url=base_url,
        )

    content = extract_text(soup, selectors.content)
    if not content:
        raise NoContentFoundError(
            f"No content found: selector {selectors.content!r} matched no text",
            field="content",
            selector=selectors.content,
            url=base_url,
        )

    published_at = extract_date(soup, selectors.published_at)
    if published_at is None:
        published_at = date_from_metadata(html, base_url)

    return ArticleContent(
        title=title,
        content=content,
        images=extract_images(soup, selectors.images, base_url=base_url),
        published_at=published_at,
        author=extract_text(soup, selectors.author) or None,
        categories=extract_text_list(soup, selectors.categories),
        excerpt=extract_text(soup, selectors.excerpt) or None,
        tags=extract_text_list(soup, selectors.tags),
    )
