"""Quality scoring and error classification for extraction results.

This module is the single home of the failure taxonomy rules.  Logs, job
error records and the retry policy all call :func:`classify`; no other module
inspects exception messages.
"""

from __future__ import annotations

from news_extraction.core.exceptions import ErrorKind, ExtractionError
from news_extraction.core.schemas.extraction import ArticleContent, QualityBand, QualityMetrics
from news_extraction.core.urls import normalize_url
from news_extraction.scraper.config import (
    CONTENT_MIN_LENGTH,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
)

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

#: Points awarded per present field.  Sums to 100.
COMPLETENESS_WEIGHTS: dict[str, int] = {
    "title": 25,
    "content": 25,
    "images": 15,
    "published_at": 10,
    "author": 10,
    "categories": 10,
    "excerpt": 5,
}

_TITLE_CONFIDENCE: dict[str, int] = {"high": 30, "medium": 20, "low": 10}
_CONTENT_CONFIDENCE: dict[str, int] = {"high": 40, "medium": 25, "low": 10}


def title_quality(title: str) -> QualityBand:
    """Grade a title by length: high for 11-199 chars, medium above 5."""
    length = len(title)
    if TITLE_MIN_LENGTH < length < TITLE_MAX_LENGTH:
        return "high"
    if length > 5:
        return "medium"
    return "low"


def content_quality(content: str) -> QualityBand:
    """Grade body text by length: high above 500 chars, medium above 200."""
    length = len(content)
    if length > 500:
        return "high"
    if length > 200:
        return "medium"
    return "low"


def score(content: ArticleContent) -> QualityMetrics:
    """Score an extraction's completeness and confidence.

    Completeness is an additive rubric over present fields (see
    :data:`COMPLETENESS_WEIGHTS`).  Confidence combines the title and content
    quality bands with presence bonuses for images (15), publication date (10)
    and author (5).  Both are capped at 100.

    Args:
        content: Extracted article fields.

    Returns:
        The :class:`QualityMetrics` for ``content``.
    """
    present = {
        "title": bool(content.title),
        "content": bool(content.content),
        "images": bool(content.images),
        "published_at": content.published_at is not None,
        "author": bool(content.author),
        "categories": bool(content.categories),
        "excerpt": bool(content.excerpt),
    }
    completeness = sum(weight for name, weight in COMPLETENESS_WEIGHTS.items() if present[name])

    t_quality = title_quality(content.title)
    c_quality = content_quality(content.content)
    confidence = _TITLE_CONFIDENCE[t_quality] + _CONTENT_CONFIDENCE[c_quality]
    if present["images"]:
        confidence += 15
    if present["published_at"]:
        confidence += 10
    if present["author"]:
        confidence += 5

    return QualityMetrics(
        title_quality=t_quality,
        content_quality=c_quality,
        completeness=min(completeness, 100),
        confidence=min(confidence, 100),
    )


def collect_warnings(content: ArticleContent, *, url: str, final_url: str) -> list[str]:
    """Return human-readable warnings for a successful extraction.

    None of these conditions fail an extraction.  A redirect to a different
    URL is flagged because misconfigured selectors often "succeed" on an
    unrelated landing page.
    """
    warnings: list[str] = []
    title_len = len(content.title)
    if title_len < TITLE_MIN_LENGTH:
        warnings.append(f"Title is very short ({title_len} chars)")
    elif title_len > TITLE_MAX_LENGTH:
        warnings.append(f"Title is very long ({title_len} chars)")
    content_len = len(content.content)
    if content_len < CONTENT_MIN_LENGTH:
        warnings.append(f"Content is very short ({content_len} chars)")
    if not content.images:
        warnings.append("No images found")
    if content.published_at is None:
        warnings.append("No publication date found")
    if not content.author:
        warnings.append("No author found")
    if normalize_url(url) != normalize_url(final_url):
        warnings.append(f"Redirected to a different URL: {final_url}")
    return warnings


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

#: Ordered keyword rules; the first rule with a matching keyword wins.
_KEYWORD_RULES: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.TIMEOUT, ("timeout", "timed out")),
    (ErrorKind.NETWORK, ("network", "connection", "connecterror", "econnrefused", "refused", "enotfound")),
    (ErrorKind.SELECTOR, ("selector", "not found", "element")),
    (ErrorKind.RATE_LIMIT, ("rate limit", "ratelimit", "too many requests", "429")),
    (ErrorKind.PARSING, ("parse", "parsing", "invalid html")),
)


def _classify_text(text: str) -> ErrorKind:
    lowered = text.lower()
    for kind, keywords in _KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return kind
    return ErrorKind.UNKNOWN


def classify(error: BaseException | str) -> ErrorKind:
    """Map an error onto the failure taxonomy.

    Extraction errors that declare a ``kind`` are trusted as-is.  Anything
    else is classified by keywords in its type name and message, following
    the ``__cause__`` chain until a rule matches.

    Args:
        error: An exception or a bare error message.

    Returns:
        The :class:`ErrorKind`; ``ErrorKind.UNKNOWN`` when nothing matches.
    """
    if isinstance(error, str):
        return _classify_text(error)

    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ExtractionError) and current.kind is not None:
            return current.kind
        if isinstance(current, TimeoutError):
            return ErrorKind.TIMEOUT
        kind = _classify_text(f"{type(current).__name__} {current}")
        if kind is not ErrorKind.UNKNOWN:
            return kind
        current = current.__cause__
    return ErrorKind.UNKNOWN
