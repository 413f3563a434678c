"""Pydantic schemas for extracted article content."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class ContentFilter(BaseModel):
    """Filters and ordering for listing extracted articles.

    Attributes:
        domain: Exact domain match.
        page_id: Origin page id.
        has_images: Only articles with (``True``) or without (``False``) images.
        search: Case-insensitive substring matched against title and content.
        date_from: Lower bound on ``extracted_at`` (inclusive).
        date_to: Upper bound on ``extracted_at`` (inclusive).
        sort_by: Column to order by.
        sort_order: ``"asc"`` or ``"desc"``.
    """

    domain: Optional[str] = None
    page_id: Optional[str] = None
    has_images: Optional[bool] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: Literal["extracted_at", "published_at", "title"] = "extracted_at"
    sort_order: Literal["asc", "desc"] = "desc"


class ExtractedArticleRead(BaseModel):
    """Read-only projection of a stored article."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    source_url: str
    final_url: Optional[str] = None
    domain: str
    facebook_post_id: Optional[str] = None
    page_id: Optional[str] = None
    title: str
    content: str
    images: List[str]
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    categories: List[str]
    excerpt: Optional[str] = None
    tags: List[str]
    keywords: List[str]
    extracted_at: datetime
    config_id: Optional[str] = None
    extraction_metadata: Dict[str, Any]
    quality: Dict[str, Any]
    status: str
