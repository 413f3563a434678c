"""Redis-backed cache of successful extraction results.

Entries are keyed by a fingerprint of the normalised URL and the serialised
selector set, so changing a domain's selectors naturally bypasses stale
entries.  Only successes are ever written; a transient failure must not
poison later retries.

Redis outages degrade to cache misses (fail-open) with a warning.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass

import redis.asyncio as aioredis
from pydantic import ValidationError

from news_extraction.core.schemas.config import SelectorSet
from news_extraction.core.schemas.extraction import ExtractionResult
from news_extraction.core.urls import extract_domain, normalize_url

logger = logging.getLogger(__name__)

#: Namespace prefix of every cache key.
CACHE_KEY_PREFIX = "extraction:cache"

#: Default entry lifetime (seconds).
DEFAULT_TTL_SECONDS = 1800


def fingerprint(url: str, selectors: SelectorSet) -> str:
    """Return the cache key for ``url`` extracted with ``selectors``.

    Format::

        extraction:cache:{domain}:{sha256(url)[:16]}:{sha256(selectors)[:8]}

    The URL is normalised first and the selectors are serialised with sorted
    keys, so equivalent inputs always map to the same key.
    """
    normalized = normalize_url(url)
    url_hash = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]
    serialized = json.dumps(selectors.model_dump(exclude_none=True), sort_keys=True)
    selector_hash = hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:8]
    return f"{CACHE_KEY_PREFIX}:{extract_domain(normalized)}:{url_hash}:{selector_hash}"


@dataclass
class ExtractionCache:
    """Read/write-through cache for :class:`ExtractionResult` values.

    Attributes:
        redis_client: An initialised ``redis.asyncio.Redis`` connection.
        ttl_seconds: Default entry lifetime.
    """

    redis_client: aioredis.Redis
    ttl_seconds: int = DEFAULT_TTL_SECONDS

    async def get(self, key: str) -> ExtractionResult | None:
        """Return the cached result for ``key``, or ``None`` on miss.

        Corrupt entries are deleted and reported as misses.
        """
        try:
            raw = await self.redis_client.get(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("scraper: cache read failed for %s: %s; treating as miss", key, exc)
            return None
        if raw is None:
            return None
        try:
            return ExtractionResult.model_validate_json(raw)
        except ValidationError:
            logger.warning("scraper: discarding corrupt cache entry %s", key)
            await self.invalidate(key)
            return None

    async def set(
        self,
        key: str,
        result: ExtractionResult,
        ttl_seconds: int | None = None,
    ) -> None:
        """Store ``result`` under ``key`` with a TTL."""
        try:
            await self.redis_client.set(
                key,
                result.model_dump_json(),
                ex=ttl_seconds or self.ttl_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("scraper: cache write failed for %s: %s", key, exc)

    async def invalidate(self, key: str) -> None:
        """Delete ``key`` if present."""
        try:
            await self.redis_client.delete(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("scraper: cache delete failed for %s: %s", key, exc)
