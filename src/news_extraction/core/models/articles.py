"""SQLAlchemy ORM model for extracted article content."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from news_extraction.core.models.base import Base, new_id, utcnow


class ExtractedArticle(Base):
    """Structured content extracted from one article URL.

    Attributes:
        id: String UUID primary key.
        source_url: The normalised URL that was requested.
        final_url: The URL after redirects.
        domain: Target domain.
        facebook_post_id: Origin post id, when known.
        page_id: Origin page id, when known.
        title: Article headline.  Never empty.
        content: Article body text.  Never empty.
        images: Absolute image URLs.
        published_at: Publication timestamp, when found.
        author: Byline, when found.
        categories: Section / category labels.
        excerpt: Summary or standfirst, when found.
        tags: Tag labels.
        keywords: Most frequent content words.
        extracted_at: When the extraction succeeded.
        config_id: Extraction config used.
        extraction_metadata: Method, timing and HTTP details.
        quality: Completeness and confidence scores.
        status: Always ``"extracted"`` for stored rows.
    """

    __tablename__ = "extracted_articles"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    source_url: Mapped[str] = mapped_column(sa.String(2048), nullable=False)
    final_url: Mapped[Optional[str]] = mapped_column(sa.String(2048), nullable=True)
    domain: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    facebook_post_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)
    page_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)

    title: Mapped[str] = mapped_column(sa.Text, nullable=False)
    content: Mapped[str] = mapped_column(sa.Text, nullable=False)
    images: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    published_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    author: Mapped[Optional[str]] = mapped_column(sa.String(500), nullable=True)
    categories: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    excerpt: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    tags: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    keywords: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)

    extracted_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    config_id: Mapped[Optional[str]] = mapped_column(sa.String(36), nullable=True)
    extraction_metadata: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    quality: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="extracted")

    __table_args__ = (
        sa.Index("idx_extracted_articles_source_url", "source_url"),
        sa.Index("idx_extracted_articles_domain", "domain"),
        sa.Index("idx_extracted_articles_extracted_at", "extracted_at"),
        sa.Index("idx_extracted_articles_page_id", "page_id"),
    )
