"""Redis-backed fixed-window rate limiter for outbound requests per target domain.

Each domain gets one counter per time bucket (``floor(now / window)``).  A Lua
script increments the counter and sets its expiry on first use in a single
atomic step, so every Celery worker sharing the Redis instance sees one
consistent budget.  This is a fixed window, not a sliding one: a burst of
``limit`` requests at the end of one bucket may be followed by ``limit`` more
at the start of the next.

Typical usage::

    redis_client = get_redis_client()
    limiter = DomainRateLimiter(redis_client)

    await limiter.acquire("example.com", limit=30)   # raises RateLimitedError
    allowed = await limiter.try_acquire("example.com", limit=30)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

import redis.asyncio as aioredis

from news_extraction.core.exceptions import RateLimitedError

logger = logging.getLogger(__name__)

#: Namespace prefix of every limiter key.
KEY_PREFIX = "ratelimit:domain"

# ---------------------------------------------------------------------------
# Lua scripts
# ---------------------------------------------------------------------------

# Atomic increment-with-expiry.
#
# KEYS[1]  counter key for the current window bucket
# ARGV[1]  expiry in seconds (window length plus a small buffer)
#
# Returns the counter value after the increment.
_LUA_INCR_EXPIRE = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
end
return count
"""


# ---------------------------------------------------------------------------
# DomainRateLimiter
# ---------------------------------------------------------------------------


@dataclass
class DomainRateLimiter:
    """Cross-worker per-domain request budget.

    Keys are namespaced as::

        ratelimit:domain:{domain}:{bucket}

    Attributes:
        redis_client: An initialised ``redis.asyncio.Redis`` connection.
        window_seconds: Length of one fixed window.
        clock: Returns the current Unix time; replaceable in tests.
    """

    redis_client: aioredis.Redis
    window_seconds: int = 60
    clock: Callable[[], float] = field(default=time.time, repr=False)
    _sha_incr: str = field(default="", init=False, repr=False)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _bucket(self, now: float) -> int:
        return int(now // self.window_seconds)

    def _key(self, domain: str, bucket: int) -> str:
        """Build the namespaced counter key for ``domain`` in ``bucket``."""
        return f"{KEY_PREFIX}:{domain.lower()}:{bucket}"

    def seconds_until_reset(self, now: float | None = None) -> float:
        """Return the seconds left in the current window."""
        current = self.clock() if now is None else now
        return (self._bucket(current) + 1) * self.window_seconds - current

    async def _ensure_script_loaded(self) -> None:
        """Upload the Lua script to Redis and cache its SHA1 hash.

        Called lazily so that the Redis connection is not required at
        construction time.
        """
        if self._sha_incr:
            return
        self._sha_incr = await self.redis_client.script_load(_LUA_INCR_EXPIRE)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def try_acquire(self, domain: str, limit: int) -> bool:
        """Record one request for ``domain`` if the current window has room.

        The counter is incremented unconditionally; the request is allowed
        when the post-increment count does not exceed ``limit``.  With
        ``limit = N`` the (N+1)-th call in a window returns ``False`` and the
        first call of the next window returns ``True``.

        When Redis is unreachable the request is allowed and a warning is
        logged (fail-open).

        Args:
            domain: Target domain.
            limit: Requests allowed per window.

        Returns:
            ``True`` if the request may proceed.
        """
        key = self._key(domain, self._bucket(self.clock()))
        try:
            await self._ensure_script_loaded()
            count = await self.redis_client.evalsha(  # type: ignore[attr-defined]
                self._sha_incr,
                1,
                key,
                str(self.window_seconds + 5),
            )
        except Exception:  # noqa: BLE001
            logger.warning(
                "Redis unavailable; allowing request without rate limiting",
                extra={"domain": domain},
            )
            return True

        allowed = int(count) <= limit
        if not allowed:
            logger.info(
                "scraper: rate limit reached for %s (%s/%d)", domain, count, limit
            )
        return allowed

    async def acquire(self, domain: str, limit: int) -> None:
        """Like :meth:`try_acquire` but raise when the budget is spent.

        Raises:
            RateLimitedError: The domain's budget for this window is exhausted.
                ``retry_after`` holds the seconds until the window resets.
        """
        if not await self.try_acquire(domain, limit):
            retry_after = self.seconds_until_reset()
            raise RateLimitedError(
                f"Rate limit exceeded for {domain}: {limit} requests per "
                f"{self.window_seconds}s",
                domain=domain,
                retry_after=retry_after,
            )

    async def reset(self, domain: str) -> None:
        """Clear the current window's counter for ``domain``."""
        await self.redis_client.delete(self._key(domain, self._bucket(self.clock())))


def get_redis_client() -> aioredis.Redis:
    """Create an async Redis client from application settings.

    The client connects lazily on first command.

    Returns:
        A :class:`redis.asyncio.Redis` instance.
    """
    from news_extraction.config.settings import get_settings  # noqa: PLC0415

    return aioredis.from_url(
        get_settings().redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
