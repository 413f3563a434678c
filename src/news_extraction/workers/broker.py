"""Hand-off of persisted jobs to the queue broker.

The orchestrator persists a job row first and then submits only its id; the
task re-reads everything else from the database.  The Celery task id equals
the job id so that broker state and job rows can be correlated.
"""

from __future__ import annotations

from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)

#: Fully-qualified Celery task names.
SINGLE_TASK_NAME = "news_extraction.workers.tasks.extract_article_task"
BATCH_TASK_NAME = "news_extraction.workers.tasks.extract_batch_task"


def celery_priority(priority: int) -> int:
    """Map a job priority (1 highest .. 10 lowest) onto Celery's 0..9 range."""
    return max(0, min(9, priority - 1))


class JobBroker(Protocol):
    """Queue submission collaborator of the job orchestrator."""

    def submit(
        self,
        job_id: str,
        *,
        job_type: str,
        priority: int,
        countdown: float | None = None,
    ) -> None: ...


class CeleryJobBroker:
    """Submit jobs to the Celery extraction queue.

    Args:
        app: The Celery application.  Defaults to
            :data:`news_extraction.workers.celery_app.celery_app`.
        queue: Queue name.  Defaults to ``settings.extraction_queue``.
    """

    def __init__(self, app: Any = None, queue: str | None = None) -> None:
        if app is None:
            from news_extraction.workers.celery_app import celery_app  # noqa: PLC0415

            app = celery_app
        if queue is None:
            from news_extraction.config.settings import get_settings  # noqa: PLC0415

            queue = get_settings().extraction_queue
        self._app = app
        self._queue = queue

    def submit(
        self,
        job_id: str,
        *,
        job_type: str,
        priority: int,
        countdown: float | None = None,
    ) -> None:
        """Send the job's task to the queue.

        Args:
            job_id: Persisted job id; also used as the Celery task id.
            job_type: ``"single"`` or ``"batch"``.
            priority: Job priority, 1 (highest) to 10 (lowest).
            countdown: Seconds to wait before the task becomes eligible.
        """
        name = BATCH_TASK_NAME if job_type == "batch" else SINGLE_TASK_NAME
        self._app.send_task(
            name,
            args=[job_id],
            task_id=job_id,
            priority=celery_priority(priority),
            queue=self._queue,
            countdown=countdown,
        )
        logger.debug("broker.submitted", job_id=job_id, task=name, priority=priority)
