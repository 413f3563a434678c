"""SQLAlchemy ORM model for external article URLs found in social posts."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from news_extraction.core.models.base import Base, TimestampMixin, new_id, utcnow

#: Allowed values of :attr:`ExternalUrl.extraction_status`.
URL_STATUSES: tuple[str, ...] = ("pending", "extracted", "failed", "skipped")


class ExternalUrl(TimestampMixin, Base):
    """A unique normalised article URL discovered in a social-media post.

    ``has_config`` and ``config_id`` are a denormalised pointer to the active
    :class:`~news_extraction.core.models.extraction_config.ExtractionConfig`
    for :attr:`domain`.  The config registry re-validates them whenever a
    config is created, toggled, updated or deleted.

    Attributes:
        id: String UUID primary key.
        url: Normalised URL.  Unique.
        domain: Host of :attr:`url` without ``www.``.
        facebook_post_id: Id of the post the URL was first seen in.
        page_id: Id of the page that published the post.
        post_url: Permalink of the post.
        detected_at: When discovery first saw the URL.
        has_config: ``True`` iff an active config exists for the domain.
        config_id: Id of that config, or ``None``.
        extraction_status: One of :data:`URL_STATUSES`.
        last_attempt_at: When a worker last tried to extract the URL.
        extraction_attempts: Number of failed attempts so far.
        last_error: Message of the most recent failure.
    """

    __tablename__ = "external_urls"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    url: Mapped[str] = mapped_column(sa.String(2048), nullable=False, unique=True)
    domain: Mapped[str] = mapped_column(sa.String(255), nullable=False)

    facebook_post_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)
    page_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)
    post_url: Mapped[Optional[str]] = mapped_column(sa.String(2048), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    has_config: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    config_id: Mapped[Optional[str]] = mapped_column(sa.String(36), nullable=True)

    extraction_status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        default="pending",
    )
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    extraction_attempts: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    __table_args__ = (
        sa.Index("idx_external_urls_domain", "domain"),
        sa.Index("idx_external_urls_extraction_status", "extraction_status"),
        sa.Index("idx_external_urls_detected_at", "detected_at"),
        sa.Index("idx_external_urls_domain_status", "domain", "extraction_status"),
    )
