"""Pydantic schemas for extraction results.

:class:`ExtractionResult` is both the extractor's return value and the value
stored in the extraction cache, so it must round-trip through JSON.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from news_extraction.core.schemas.config import ExtractionSettings, SelectorSet

ExtractionMethod = Literal["static", "rendered", "cached"]
QualityBand = Literal["high", "medium", "low"]


class ArticleContent(BaseModel):
    """Structured article fields.  ``title`` and ``content`` are never empty."""

    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    images: List[str] = Field(default_factory=list)
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    excerpt: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ExtractionMetadata(BaseModel):
    """How an extraction was performed."""

    method: ExtractionMethod
    extraction_ms: int
    http_status: Optional[int] = None
    content_length: int
    image_count: int
    url: str
    final_url: str
    fallback_used: bool = False


class QualityMetrics(BaseModel):
    """Completeness / confidence scores, both 0-100."""

    title_quality: QualityBand
    content_quality: QualityBand
    completeness: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)


class ExtractionResult(BaseModel):
    """Successful extraction of one URL."""

    data: ArticleContent
    metadata: ExtractionMetadata
    quality: QualityMetrics
    warnings: List[str] = Field(default_factory=list)

    def as_cached(self) -> "ExtractionResult":
        """Return a copy whose metadata reports ``method="cached"``."""
        return self.model_copy(
            update={"metadata": self.metadata.model_copy(update={"method": "cached"})}
        )


class TestExtractionRequest(BaseModel):
    """Dry-run request used while authoring selectors."""

    __test__ = False

    url: str
    selectors: SelectorSet
    settings: ExtractionSettings = Field(default_factory=ExtractionSettings)
    custom_headers: Dict[str, str] = Field(default_factory=dict)


class ArticlePreview(BaseModel):
    """Truncated article fields returned by a dry run."""

    title: str
    content: str
    content_length: int
    images: List[str] = Field(default_factory=list)
    image_count: int = 0
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    excerpt: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class TestExtractionResponse(BaseModel):
    """Outcome of a dry run: a preview on success, the classified error otherwise."""

    __test__ = False

    success: bool
    data: Optional[ArticlePreview] = None
    metadata: Optional[ExtractionMetadata] = None
    quality: Optional[QualityMetrics] = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[str] = None
