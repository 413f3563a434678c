"""Pydantic schemas for URL discovery.

:class:`SocialPost` is the only contract with the inbound post ingestion,
which lives outside this package.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

UrlStatus = Literal["pending", "extracted", "failed", "skipped"]


class SocialPost(BaseModel):
    """An inbound social-media post scanned for article links.

    Attributes:
        facebook_post_id: Platform id of the post.
        page_id: Platform id of the publishing page.
        post_url: Permalink of the post.
        text: Free text of the post.
        links: Structured link list attached to the post.
        raw_data: The raw platform payload, scanned recursively.
        published_at: When the post was published.
    """

    facebook_post_id: Optional[str] = None
    page_id: Optional[str] = None
    post_url: Optional[str] = None
    text: Optional[str] = None
    links: List[str] = Field(default_factory=list)
    raw_data: Optional[Any] = None
    published_at: Optional[datetime] = None


class UrlFilter(BaseModel):
    """Filters for listing discovered URLs."""

    domain: Optional[str] = None
    extraction_status: Optional[UrlStatus] = None
    has_config: Optional[bool] = None
    page_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class ExternalUrlRead(BaseModel):
    """Read-only projection of a discovered URL."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    domain: str
    facebook_post_id: Optional[str] = None
    page_id: Optional[str] = None
    post_url: Optional[str] = None
    detected_at: datetime
    has_config: bool
    config_id: Optional[str] = None
    extraction_status: UrlStatus
    last_attempt_at: Optional[datetime] = None
    extraction_attempts: int
    last_error: Optional[str] = None


class UrlStats(BaseModel):
    """Discovered-URL counts."""

    total: int
    with_config: int
    by_status: Dict[str, int]
    top_domains: List[Dict[str, Any]]
