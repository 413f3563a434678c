"""Pydantic schemas for per-domain extraction configurations.

Selectors are free-form CSS selectors, either a single string or a list of
fallbacks.  The shape is validated here, when a config is written; the
extractor treats an absent optional selector as "skip" and never re-checks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Union

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, field_validator

from news_extraction.core.urls import normalize_domain

Selector = Union[str, List[str]]
"""A CSS selector or an ordered list of fallback selectors."""


_PROBE_DOCUMENT = BeautifulSoup("", "html.parser")


def _check_syntax(css: str) -> str:
    try:
        _PROBE_DOCUMENT.select(css)
    except Exception as exc:
        raise ValueError(f"invalid CSS selector {css!r}: {exc}") from exc
    return css


def _clean_selector(value: Selector | None) -> Selector | None:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError("selector must not be empty")
        return _check_syntax(stripped)
    cleaned = [_check_syntax(item.strip()) for item in value if item and item.strip()]
    if not cleaned:
        raise ValueError("selector list must contain at least one selector")
    return cleaned


class SelectorSet(BaseModel):
    """Where to find each article field within a page's DOM.

    ``title`` and ``content`` are required; everything else is best-effort.
    """

    title: Selector
    content: Selector
    images: Optional[Selector] = None
    published_at: Optional[Selector] = None
    author: Optional[Selector] = None
    categories: Optional[Selector] = None
    excerpt: Optional[Selector] = None
    tags: Optional[Selector] = None

    @field_validator(
        "title",
        "content",
        "images",
        "published_at",
        "author",
        "categories",
        "excerpt",
        "tags",
    )
    @classmethod
    def _validate_selector(cls, value: Selector | None) -> Selector | None:
        return _clean_selector(value)


class ExtractionSettings(BaseModel):
    """Fetch behaviour for one domain.

    Attributes:
        use_rendered_dom: Render pages in a headless browser before parsing.
        wait_time_ms: Extra wait after the rendered page settles.
        requests_per_minute: Per-domain budget enforced by the rate limiter.
        timeout_ms: Timeout for every fetch or render.
        retry_attempts: Suggested attempts for jobs created from this config.
        respect_robots: Honour robots.txt disallow rules on static fetches.
    """

    use_rendered_dom: bool = False
    wait_time_ms: int = Field(default=1000, ge=0, le=30_000)
    requests_per_minute: int = Field(default=30, ge=1, le=300)
    timeout_ms: int = Field(default=30_000, ge=5_000, le=120_000)
    retry_attempts: int = Field(default=3, ge=0, le=10)
    respect_robots: bool = True


class ExtractionSettingsUpdate(BaseModel):
    """Partial settings update; unset fields keep their stored value."""

    use_rendered_dom: Optional[bool] = None
    wait_time_ms: Optional[int] = Field(default=None, ge=0, le=30_000)
    requests_per_minute: Optional[int] = Field(default=None, ge=1, le=300)
    timeout_ms: Optional[int] = Field(default=None, ge=5_000, le=120_000)
    retry_attempts: Optional[int] = Field(default=None, ge=0, le=10)
    respect_robots: Optional[bool] = None


class SiteConfig(BaseModel):
    """Typed configuration value object consumed by the extractor.

    Built from a stored :class:`~news_extraction.core.models.ExtractionConfig`
    or ad hoc for a dry-run extraction (``id`` is then ``None``).
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    domain: str
    name: str = ""
    selectors: SelectorSet
    settings: ExtractionSettings = Field(default_factory=ExtractionSettings)
    custom_headers: Dict[str, str] = Field(default_factory=dict)


class ExtractionConfigCreate(BaseModel):
    """Payload for registering a new domain configuration."""

    domain: str
    name: str = Field(min_length=1, max_length=255)
    is_active: bool = True
    selectors: SelectorSet
    settings: ExtractionSettings = Field(default_factory=ExtractionSettings)
    custom_headers: Dict[str, str] = Field(default_factory=dict)
    notes: Optional[str] = None

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        domain = normalize_domain(value)
        if "." not in domain:
            raise ValueError(f"invalid domain: {value!r}")
        return domain


class ExtractionConfigUpdate(BaseModel):
    """Partial update of a domain configuration.

    ``selectors`` replaces the stored selector set wholesale; ``settings``
    and ``custom_headers`` are merged into the stored values.
    """

    domain: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_active: Optional[bool] = None
    selectors: Optional[SelectorSet] = None
    settings: Optional[ExtractionSettingsUpdate] = None
    custom_headers: Optional[Dict[str, str]] = None
    notes: Optional[str] = None

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str | None) -> str | None:
        if value is None:
            return None
        domain = normalize_domain(value)
        if "." not in domain:
            raise ValueError(f"invalid domain: {value!r}")
        return domain


class ExtractionConfigRead(SiteConfig):
    """Full representation of a stored configuration, statistics included."""

    id: str
    is_active: bool
    notes: Optional[str] = None
    total_extractions: int = 0
    successful_extractions: int = 0
    failed_extractions: int = 0
    average_extraction_ms: float = 0.0
    last_extraction_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ConfigStats(BaseModel):
    """Aggregate statistics across every stored configuration."""

    total_configs: int
    active_configs: int
    total_extractions: int
    successful_extractions: int
    failed_extractions: int
    success_rate: float
