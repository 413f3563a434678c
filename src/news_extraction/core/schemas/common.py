"""Pagination primitives shared by every list operation."""

from __future__ import annotations

import math
from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PageParams(BaseModel):
    """1-based page request.

    Attributes:
        page: Page number, starting at 1.
        limit: Page size (1-100).
    """

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Page(BaseModel, Generic[T]):
    """One page of results plus the total match count."""

    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0
