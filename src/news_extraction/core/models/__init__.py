"""SQLAlchemy ORM models for the news extraction pipeline.

All models are imported here so that:
1. ``Base.metadata.create_all()`` sees every table.
2. Application code can do ``from news_extraction.core.models import ExternalUrl``
   without knowing which sub-module a model lives in.
"""

from __future__ import annotations

from news_extraction.core.models.base import Base, TimestampMixin, new_id, utcnow
from news_extraction.core.models.articles import ExtractedArticle
from news_extraction.core.models.external_url import URL_STATUSES, ExternalUrl
from news_extraction.core.models.extraction_config import ExtractionConfig
from news_extraction.core.models.jobs import (
    JOB_STATUSES,
    LOG_STATUSES,
    TERMINAL_JOB_STATUSES,
    ExtractionJob,
    ExtractionLog,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "new_id",
    "utcnow",
    "ExtractedArticle",
    "ExternalUrl",
    "URL_STATUSES",
    "ExtractionConfig",
    "ExtractionJob",
    "ExtractionLog",
    "JOB_STATUSES",
    "LOG_STATUSES",
    "TERMINAL_JOB_STATUSES",
]
