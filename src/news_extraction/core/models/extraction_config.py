"""SQLAlchemy ORM model for per-domain extraction configurations.

One row per target news domain.  ``selectors``, ``settings`` and
``custom_headers`` are stored as JSON documents; their shape is validated by
the pydantic schemas in :mod:`news_extraction.core.schemas.config` at write
time, never at extraction time.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from news_extraction.core.models.base import Base, TimestampMixin, new_id


class ExtractionConfig(TimestampMixin, Base):
    """Selector and fetch settings for one news domain.

    Attributes:
        id: String UUID primary key.
        domain: Normalised host name (lower-case, no ``www.``).  Unique.
        name: Human-readable site name.
        is_active: Inactive configs are ignored by discovery and rejected by
            the orchestrator.
        selectors: JSON object with required ``title`` / ``content`` and
            optional ``images``, ``published_at``, ``author``, ``categories``,
            ``excerpt`` and ``tags`` selectors.
        settings: JSON object with ``use_rendered_dom``, ``wait_time_ms``,
            ``requests_per_minute``, ``timeout_ms``, ``retry_attempts`` and
            ``respect_robots``.
        custom_headers: Extra HTTP headers sent with every request.
        notes: Free-text operator notes.
        total_extractions: Number of extraction attempts recorded.
        successful_extractions: Number of successful attempts.
        failed_extractions: Number of failed attempts.
        average_extraction_ms: Incremental mean of attempt latency.
        last_extraction_at: Timestamp of the most recent attempt.
    """

    __tablename__ = "extraction_configs"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    domain: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    selectors: Mapped[dict] = mapped_column(sa.JSON, nullable=False)
    settings: Mapped[dict] = mapped_column(sa.JSON, nullable=False)
    custom_headers: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    # Rolling statistics
    total_extractions: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    successful_extractions: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    failed_extractions: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    average_extraction_ms: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    last_extraction_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        sa.Index("idx_extraction_configs_is_active", "is_active"),
    )
