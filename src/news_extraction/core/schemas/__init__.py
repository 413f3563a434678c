"""Pydantic schemas for the news extraction pipeline."""

from __future__ import annotations

from news_extraction.core.schemas.common import Page, PageParams
from news_extraction.core.schemas.config import (
    ConfigStats,
    ExtractionConfigCreate,
    ExtractionConfigRead,
    ExtractionConfigUpdate,
    ExtractionSettings,
    ExtractionSettingsUpdate,
    Selector,
    SelectorSet,
    SiteConfig,
)
from news_extraction.core.schemas.content import ContentFilter, ExtractedArticleRead
from news_extraction.core.schemas.discovery import (
    ExternalUrlRead,
    SocialPost,
    UrlFilter,
    UrlStats,
)
from news_extraction.core.schemas.extraction import (
    ArticleContent,
    ArticlePreview,
    ExtractionMetadata,
    ExtractionResult,
    QualityMetrics,
    TestExtractionRequest,
    TestExtractionResponse,
)
from news_extraction.core.schemas.jobs import (
    BatchEnqueueResult,
    BatchOptions,
    EnqueueOptions,
    EnqueueResult,
    ExtractionJobRead,
    ExtractionStats,
    JobFilter,
    JobOrigin,
)

__all__ = [
    "Page",
    "PageParams",
    "ConfigStats",
    "ExtractionConfigCreate",
    "ExtractionConfigRead",
    "ExtractionConfigUpdate",
    "ExtractionSettings",
    "ExtractionSettingsUpdate",
    "Selector",
    "SelectorSet",
    "SiteConfig",
    "ContentFilter",
    "ExtractedArticleRead",
    "ExternalUrlRead",
    "SocialPost",
    "UrlFilter",
    "UrlStats",
    "ArticleContent",
    "ArticlePreview",
    "ExtractionMetadata",
    "ExtractionResult",
    "QualityMetrics",
    "TestExtractionRequest",
    "TestExtractionResponse",
    "BatchEnqueueResult",
    "BatchOptions",
    "EnqueueOptions",
    "EnqueueResult",
    "ExtractionJobRead",
    "ExtractionStats",
    "JobFilter",
    "JobOrigin",
]
