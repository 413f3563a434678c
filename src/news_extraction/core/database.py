"""Synchronous SQLAlchemy engine and session factory.

Provides:
- get_engine():           the lazily created application-wide Engine
- get_sync_session():     context manager yielding a Session (default factory)
- make_session_factory(): build an equivalent context-manager factory for
                          any Engine (tests bind one to in-memory SQLite)
- init_db():              create all tables on an engine
- SessionFactory:         the callable type every service accepts

Workers run extraction inside ``asyncio.run()`` but persist through blocking
sessions, so no async driver is involved.  Connection pooling follows the
worker model: a small pool per process with pre-ping enabled.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Import Base so callers can do:
#   from news_extraction.core.database import Base
# without importing individual model files.
from news_extraction.core.models import Base

SessionFactory = Callable[[], AbstractContextManager[Session]]
"""Zero-argument callable returning a context manager that yields a Session."""


def _build_engine(database_url: str) -> Engine:
    """Create a synchronous engine from a database URL.

    SQLite URLs get a single shared connection so that in-memory databases
    are visible to every session.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


@lru_cache
def get_engine() -> Engine:
    """Return the process-wide engine built from application settings.

    Settings are imported lazily so that test code can patch the environment
    before the engine is created.
    """
    from news_extraction.config.settings import get_settings  # noqa: PLC0415

    return _build_engine(get_settings().database_url)


def make_session_factory(engine: Engine) -> SessionFactory:
    """Return a session context-manager factory bound to ``engine``.

    The yielded session is rolled back on exception and always closed.
    Callers commit explicitly.

    Args:
        engine: The engine sessions should be bound to.

    Returns:
        A zero-argument callable usable as ``with factory() as session:``.
    """
    session_maker = sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )

    @contextmanager
    def _session_scope() -> Generator[Session, None, None]:
        session = session_maker()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _session_scope


@lru_cache
def _default_session_factory() -> SessionFactory:
    return make_session_factory(get_engine())


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Yield a synchronous Session bound to the application engine.

    Usage::

        with get_sync_session() as session:
            session.add(row)
            session.commit()
    """
    with _default_session_factory()() as session:
        yield session


def init_db(engine: Engine | None = None) -> None:
    """Create every table known to ``Base.metadata`` on ``engine``.

    Args:
        engine: Target engine.  Defaults to :func:`get_engine`.
    """
    Base.metadata.create_all(engine or get_engine())
