"""Discover candidate article URLs in inbound social-media posts.

Links are collected from three places on each post:

1. the free text, matched against protocol-qualified and ``www.``-prefixed
   URL patterns;
2. the post's structured link list;
3. the raw platform payload, walked breadth-first with an explicit worklist
   bounded by depth and protected against reference cycles.

Every candidate is normalised (:func:`news_extraction.core.urls.normalize_url`)
and filtered: social platforms, link shorteners, cloud infrastructure and
non-document file types are rejected.  Surviving URLs that have never been
seen are stored as ``ExternalUrl`` rows, with ``has_config`` resolved against
the active extraction configs at discovery time.
"""

from __future__ import annotations

import re
from collections import deque
from collections.abc import Iterable
from datetime import timedelta
from typing import Any, Protocol
from urllib.parse import urlsplit

import structlog
from sqlalchemy import func, select

from news_extraction.core.database import SessionFactory, get_sync_session
from news_extraction.core.models import ExternalUrl, ExtractionConfig, utcnow
from news_extraction.core.schemas import (
    ExternalUrlRead,
    Page,
    PageParams,
    SocialPost,
    UrlFilter,
    UrlStats,
)
from news_extraction.core.urls import extract_domain, normalize_url

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_HTTP_URL_RE = re.compile(
    r"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"[-a-zA-Z0-9()@:%_+.~#?&=/]*"
)
_WWW_URL_RE = re.compile(
    r"(?<![/\w.])www\.[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"[-a-zA-Z0-9()@:%_+.~#?&=/]*"
)
_TRAILING_PUNCTUATION_RE = re.compile(r"[.,;:!?()]+$")

# ---------------------------------------------------------------------------
# Rejection lists
# ---------------------------------------------------------------------------

#: Social and messaging platforms; links to them are never articles.
SOCIAL_DOMAINS: frozenset[str] = frozenset(
    {
        "facebook.com", "fb.com", "fb.me", "fb.watch", "twitter.com", "x.com",
        "t.co", "instagram.com", "youtube.com", "youtu.be", "tiktok.com",
        "linkedin.com", "whatsapp.com", "wa.me", "telegram.org", "t.me",
        "snapchat.com", "reddit.com", "pinterest.com", "discord.com",
        "threads.net",
    }
)

#: Link shorteners and cloud / infrastructure hosts.
GENERIC_DOMAINS: frozenset[str] = frozenset(
    {
        "bit.ly", "tinyurl.com", "short.link", "ow.ly", "goo.gl", "buff.ly",
        "is.gd", "google.com", "googleapis.com", "gstatic.com",
        "microsoft.com", "amazon.com", "cloudfront.net", "amazonaws.com",
        "fbcdn.net", "akamaihd.net",
    }
)

#: Path extensions of non-document resources.
EXCLUDED_EXTENSIONS: frozenset[str] = frozenset(
    {
        "jpg", "jpeg", "png", "gif", "webp", "svg", "ico", "bmp",
        "mp4", "mp3", "avi", "mov", "wmv", "flv", "webm", "wav",
        "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
        "zip", "rar", "7z", "tar", "gz", "exe", "dmg", "apk",
    }
)


def _matches_domain(host: str, domains: frozenset[str]) -> bool:
    return any(host == d or host.endswith(f".{d}") for d in domains)


# ---------------------------------------------------------------------------
# Candidate extraction (pure functions)
# ---------------------------------------------------------------------------


def clean_candidate(raw: str) -> str:
    """Strip surrounding whitespace and trailing sentence punctuation."""
    return _TRAILING_PUNCTUATION_RE.sub("", raw.strip())


def extract_urls_from_text(text: str) -> list[str]:
    """Return raw URL candidates found in free text, in order of appearance.

    ``www.``-prefixed matches without a scheme get ``https://`` prepended.
    """
    if not text:
        return []
    found: list[str] = [clean_candidate(m) for m in _HTTP_URL_RE.findall(text)]
    found.extend(f"https://{clean_candidate(m)}" for m in _WWW_URL_RE.findall(text))
    return [url for url in found if url]


def extract_urls_from_payload(payload: Any, max_depth: int = 10) -> list[str]:
    """Return URL candidates found in string values of a nested payload.

    The payload is walked with an explicit worklist.  Containers nested
    deeper than ``max_depth`` are skipped and containers already visited
    (reference cycles) are not revisited.

    Args:
        payload: Arbitrary JSON-like structure (dicts, lists, strings...).
        max_depth: Maximum container nesting depth to descend into.

    Returns:
        Raw candidates in traversal order.
    """
    found: list[str] = []
    visited: set[int] = set()
    worklist: deque[tuple[Any, int]] = deque([(payload, 0)])

    while worklist:
        value, depth = worklist.popleft()
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith(("http://", "https://")) and " " not in stripped:
                found.append(clean_candidate(stripped))
            elif "http" in stripped or "www." in stripped:
                found.extend(extract_urls_from_text(stripped))
            continue
        if not isinstance(value, (dict, list, tuple)):
            continue
        if depth >= max_depth or id(value) in visited:
            continue
        visited.add(id(value))
        children = value.values() if isinstance(value, dict) else value
        worklist.extend((child, depth + 1) for child in children)

    return found


def extract_urls_from_post(post: SocialPost, max_depth: int = 10) -> list[str]:
    """Return raw URL candidates from a post's text, link list and raw payload."""
    candidates = extract_urls_from_text(post.text or "")
    candidates.extend(clean_candidate(link) for link in post.links if link)
    if post.raw_data is not None:
        candidates.extend(extract_urls_from_payload(post.raw_data, max_depth=max_depth))
    return candidates


def is_candidate_url(url: str) -> bool:
    """Return ``True`` if a *normalised* URL may point at a news article.

    Rejects non-http(s) schemes, hosts without a dot or shorter than four
    characters, social platforms, link shorteners / infrastructure hosts and
    paths ending in a non-document file extension.
    """
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        return False
    if parts.scheme not in ("http", "https"):
        return False
    if "." not in host or len(host) < 4:
        return False
    if _matches_domain(host, SOCIAL_DOMAINS) or _matches_domain(host, GENERIC_DOMAINS):
        return False
    last_segment = parts.path.rsplit("/", 1)[-1].lower()
    if "." in last_segment and last_segment.rsplit(".", 1)[-1] in EXCLUDED_EXTENSIONS:
        return False
    return True


def candidate_urls(post: SocialPost, max_depth: int = 10) -> list[str]:
    """Return the de-duplicated, normalised, accepted URLs of one post."""
    seen: set[str] = set()
    accepted: list[str] = []
    for raw in extract_urls_from_post(post, max_depth=max_depth):
        url = normalize_url(raw)
        if url in seen or not is_candidate_url(url):
            continue
        seen.add(url)
        accepted.append(url)
    return accepted


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PostSource(Protocol):
    """Inbound post ingestion collaborator."""

    def fetch_posts(self, filters: UrlFilter) -> Iterable[SocialPost]: ...


class UrlDiscoveryService:
    """Persist discovered URLs and own their extraction status.

    Args:
        session_factory: Context-manager factory yielding sessions.
        post_source: Optional inbound post collaborator used by
            :meth:`discover_urls`.
        max_depth: Raw payload scan depth.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_sync_session,
        post_source: PostSource | None = None,
        max_depth: int = 10,
    ) -> None:
        self._session_factory = session_factory
        self._post_source = post_source
        self._max_depth = max_depth

    def discover(self, posts: Iterable[SocialPost]) -> int:
        """Store every previously unseen candidate URL found in ``posts``.

        Re-discovering a stored URL is a no-op; the first post that mentions
        a URL owns its origin fields.

        Returns:
            Number of new ``ExternalUrl`` rows.
        """
        new_count = 0
        with self._session_factory() as session:
            active_configs = dict(
                session.execute(
                    select(ExtractionConfig.domain, ExtractionConfig.id).where(
                        ExtractionConfig.is_active.is_(True)
                    )
                ).all()
            )
            seen: set[str] = set()
            for post in posts:
                for url in candidate_urls(post, max_depth=self._max_depth):
                    if url in seen:
                        continue
                    seen.add(url)
                    exists = session.scalar(select(ExternalUrl.id).where(ExternalUrl.url == url))
                    if exists is not None:
                        continue
                    domain = extract_domain(url)
                    config_id = active_configs.get(domain)
                    session.add(
                        ExternalUrl(
                            url=url,
                            domain=domain,
                            facebook_post_id=post.facebook_post_id,
                            page_id=post.page_id,
                            post_url=post.post_url,
                            has_config=config_id is not None,
                            config_id=config_id,
                        )
                    )
                    new_count += 1
            session.commit()
        logger.info("discovery.persisted", new_urls=new_count)
        return new_count

    def discover_urls(
        self,
        filters: UrlFilter | None = None,
        pagination: PageParams | None = None,
    ) -> Page[ExternalUrlRead]:
        """Pull posts from the post source (if any), discover, then list URLs.

        Args:
            filters: Filters applied to both the post fetch and the listing.
            pagination: Page of URLs to return.

        Returns:
            A page of stored URLs, newest first.
        """
        filters = filters or UrlFilter()
        if self._post_source is not None:
            self.discover(self._post_source.fetch_posts(filters))
        return self.list_urls(filters, pagination)

    def list_urls(
        self,
        filters: UrlFilter | None = None,
        pagination: PageParams | None = None,
    ) -> Page[ExternalUrlRead]:
        """Return stored URLs matching ``filters``, newest first."""
        filters = filters or UrlFilter()
        pagination = pagination or PageParams()
        stmt = select(ExternalUrl)
        if filters.domain:
            stmt = stmt.where(ExternalUrl.domain == filters.domain)
        if filters.extraction_status:
            stmt = stmt.where(ExternalUrl.extraction_status == filters.extraction_status)
        if filters.has_config is not None:
            stmt = stmt.where(ExternalUrl.has_config.is_(filters.has_config))
        if filters.page_id:
            stmt = stmt.where(ExternalUrl.page_id == filters.page_id)
        if filters.date_from:
            stmt = stmt.where(ExternalUrl.detected_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(ExternalUrl.detected_at <= filters.date_to)

        with self._session_factory() as session:
            total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            rows = session.scalars(
                stmt.order_by(ExternalUrl.detected_at.desc())
                .offset(pagination.offset)
                .limit(pagination.limit)
            ).all()
            return Page[ExternalUrlRead](
                items=[ExternalUrlRead.model_validate(r) for r in rows],
                total=total,
                page=pagination.page,
                limit=pagination.limit,
            )

    def update_extraction_status(
        self,
        url: str,
        status: str,
        error: str | None = None,
    ) -> bool:
        """Record an extraction outcome on a stored URL.

        ``"failed"`` increments ``extraction_attempts`` and stores ``error``;
        ``"extracted"`` clears ``last_error``.

        Returns:
            ``False`` if the URL is not stored.
        """
        with self._session_factory() as session:
            row = session.scalar(select(ExternalUrl).where(ExternalUrl.url == normalize_url(url)))
            if row is None:
                logger.debug("discovery.status_for_unknown_url", url=url, status=status)
                return False
            row.extraction_status = status
            row.last_attempt_at = utcnow()
            if status == "failed":
                row.extraction_attempts += 1
                row.last_error = error
            elif status == "extracted":
                row.last_error = None
            session.commit()
        return True

    def pending_urls_for_domain(self, domain: str, limit: int) -> list[str]:
        """Return up to ``limit`` pending URLs of ``domain``, oldest first."""
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(ExternalUrl.url)
                    .where(
                        ExternalUrl.domain == domain,
                        ExternalUrl.extraction_status == "pending",
                    )
                    .order_by(ExternalUrl.detected_at.asc())
                    .limit(limit)
                ).all()
            )

    def url_stats(self, since_days: int | None = None) -> UrlStats:
        """Return URL counts, optionally limited to recently detected URLs."""
        with self._session_factory() as session:
            base = select(ExternalUrl)
            if since_days is not None:
                base = base.where(ExternalUrl.detected_at >= utcnow() - timedelta(days=since_days))
            sub = base.subquery()
            total = session.scalar(select(func.count()).select_from(sub)) or 0
            with_config = session.scalar(
                select(func.count()).select_from(sub).where(sub.c.has_config.is_(True))
            ) or 0
            by_status = dict(
                session.execute(
                    select(sub.c.extraction_status, func.count()).group_by(sub.c.extraction_status)
                ).all()
            )
            top_domains = [
                {"domain": domain, "count": count}
                for domain, count in session.execute(
                    select(sub.c.domain, func.count().label("n"))
                    .group_by(sub.c.domain)
                    .order_by(func.count().desc())
                    .limit(10)
                ).all()
            ]
        return UrlStats(
            total=total,
            with_config=with_config,
            by_status=by_status,
            top_domains=top_domains,
        )
