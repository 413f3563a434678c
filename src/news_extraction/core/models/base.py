"""SQLAlchemy declarative base and shared mixins for all ORM models.

Provides:
- Base: the DeclarativeBase subclass all models inherit from
- TimestampMixin: created_at / updated_at columns
- new_id(): string UUID generator used for primary keys
- utcnow(): timezone-aware "now" used for column defaults

Column types stay portable (``sa.JSON``, string ids) so that the same models
run on PostgreSQL in production and SQLite in the test suite.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


def new_id() -> str:
    """Return a new random UUID4 as a string."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Shared declarative base for all news extraction models."""


class TimestampMixin:
    """Adds created_at and updated_at columns with application-side defaults.

    ``updated_at`` is refreshed by the ORM on every UPDATE.
    """

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
