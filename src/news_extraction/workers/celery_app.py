"""Celery application for the news extraction pipeline.

Configures the broker, result backend, serialization and task routing.  All
configuration values are sourced from ``Settings`` so that no secrets or
environment-specific values are hard-coded here.

Usage (starting a worker)::

    celery -A news_extraction.workers.celery_app worker -Q extraction --loglevel=info

Usage (within application code)::

    from news_extraction.workers.celery_app import celery_app

    celery_app.send_task(
        "news_extraction.workers.tasks.extract_article_task",
        args=[job_id],
        task_id=job_id,
    )
"""

from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging, worker_process_init
from dotenv import load_dotenv

# Load .env values into os.environ before settings are read.
load_dotenv()

from news_extraction.config.settings import get_settings  # noqa: E402

settings = get_settings()

#: The global Celery application instance.
celery_app = Celery(
    "news_extraction",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["news_extraction.workers.tasks"],
)

# ---------------------------------------------------------------------------
# Core configuration
# ---------------------------------------------------------------------------

celery_app.conf.update(
    # All task arguments and return values must be JSON-serializable.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge only after the task has completed so that a crashed worker
    # does not lose the job.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # One job at a time per worker process.
    worker_prefetch_multiplier=1,
    # Keep task results for 24 hours for status polling.
    result_expires=86_400,
    task_track_started=True,
    # Redis transport priorities: 0 is highest, 9 lowest.
    broker_transport_options={
        "priority_steps": list(range(10)),
        "sep": ":",
        "queue_order_strategy": "priority",
    },
    task_default_priority=5,
    task_default_queue=settings.extraction_queue,
    task_routes={
        "news_extraction.workers.tasks.extract_article_task": {
            "queue": settings.extraction_queue,
        },
        "news_extraction.workers.tasks.extract_batch_task": {
            "queue": settings.extraction_queue,
            "soft_time_limit": 7_200,   # 2 hours
            "time_limit": 10_800,        # 3 hours
        },
    },
)


# ---------------------------------------------------------------------------
# Logging: let structlog own the root logger in worker processes
# ---------------------------------------------------------------------------
@setup_logging.connect
def _configure_worker_logging(**kwargs: object) -> None:  # noqa: ARG001
    """Replace Celery's default logging setup with the structlog pipeline."""
    from news_extraction.core.logging_config import configure_logging  # noqa: PLC0415

    configure_logging(settings.log_level)


# ---------------------------------------------------------------------------
# Engine disposal on fork
# ---------------------------------------------------------------------------
@worker_process_init.connect
def _dispose_engine_on_fork(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the SQLAlchemy pool inherited from the parent process.

    Pooled connections opened before ``fork()`` must not be shared with the
    child, so the child starts with an empty pool.
    """
    from news_extraction.core.database import get_engine  # noqa: PLC0415

    get_engine().dispose(close=False)
