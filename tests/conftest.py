"""Shared pytest fixtures for news extraction tests.

Fixture summary
---------------
engine            — In-memory SQLite engine with every table created.
session_factory   — ``SessionFactory`` bound to ``engine``.
fake_redis        — In-process stand-in for ``redis.asyncio.Redis``.
clock             — Controllable clock for the rate limiter.
example_config    — Active ``example.com`` config stored through the registry.

All tests run without PostgreSQL, Redis, a broker or network access.  HTTP
traffic is mocked with ``respx``.
"""

from __future__ import annotations

import os
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Set env vars before any application module is imported so that Settings()
# never points at a real database or broker during collection.

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "DATABASE_URL": "sqlite://",
    "REDIS_URL": "redis://localhost:6379/15",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "BATCH_ITEM_DELAY_SECONDS": "0",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)

# ---------------------------------------------------------------------------
# Application imports (after env bootstrap)
# ---------------------------------------------------------------------------

from news_extraction.config.settings import Settings, get_settings  # noqa: E402
from news_extraction.core.config_registry import ConfigRegistry  # noqa: E402
from news_extraction.core.database import (  # noqa: E402
    _build_engine,
    init_db,
    make_session_factory,
)
from news_extraction.core.schemas import ExtractionConfigCreate, SelectorSet  # noqa: E402

# Clear the lru_cache so Settings() re-reads from the patched environment.
get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    """Return a fresh in-memory SQLite engine with all tables created."""
    eng = _build_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def settings() -> Settings:
    """Settings with no inter-item batch delay."""
    return Settings(batch_item_delay_seconds=0)


# ---------------------------------------------------------------------------
# Redis stand-in
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced Unix clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Dict-backed subset of ``redis.asyncio.Redis`` used by the pipeline.

    Supports ``get``/``set``/``delete``/``incr``/``expire`` plus
    ``script_load``/``evalsha`` for the limiter's INCR+EXPIRE script.  Expiry
    follows the shared :class:`FakeClock`.
    """

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._data: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self.calls: list[str] = []

    def _purge(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= self._clock():
            self._data.pop(key, None)
            self._expires.pop(key, None)

    async def get(self, key: str) -> Any:
        self.calls.append("get")
        self._purge(key)
        return self._data.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self.calls.append("set")
        self._data[key] = value
        if ex is not None:
            self._expires[key] = self._clock() + ex
        else:
            self._expires.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        self.calls.append("delete")
        removed = 0
        for key in keys:
            removed += int(self._data.pop(key, None) is not None)
            self._expires.pop(key, None)
        return removed

    async def incr(self, key: str) -> int:
        self._purge(key)
        self._data[key] = int(self._data.get(key, 0)) + 1
        return self._data[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self._expires[key] = self._clock() + int(seconds)
        return True

    async def script_load(self, script: str) -> str:
        self.calls.append("script_load")
        return "sha-incr-expire"

    async def evalsha(self, sha: str, numkeys: int, *args: str) -> int:
        self.calls.append("evalsha")
        key, ttl = args[0], args[1]
        count = await self.incr(key)
        if count == 1:
            await self.expire(key, int(ttl))
        return count

    async def aclose(self) -> None:
        return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


# ---------------------------------------------------------------------------
# Shared domain data
# ---------------------------------------------------------------------------


@pytest.fixture
def example_config(session_factory):
    """Register the ``example.com`` config used by the end-to-end scenarios."""
    registry = ConfigRegistry(session_factory)
    return registry.create(
        ExtractionConfigCreate(
            domain="example.com",
            name="Example",
            selectors=SelectorSet(title="h1", content=".body"),
        )
    )
