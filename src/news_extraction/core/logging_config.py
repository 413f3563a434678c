"""Structured logging configuration using structlog.

Call ``configure_logging()`` once per process.  Celery workers do this from
the ``setup_logging`` signal in :mod:`news_extraction.workers.celery_app`;
scripts call it directly.  All modules can then use either the stdlib logging
API or structlog:

Stdlib usage (low-level fetchers)::

    import logging
    logger = logging.getLogger(__name__)
    logger.info("scraper: fetched %s", url)

Structlog usage (services, with context binding)::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("discovery.persisted", new_urls=3, domain="example.com")

A ``job_id`` context variable is set by the Celery task wrapper and merged
into every record emitted while that job runs.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

# ---------------------------------------------------------------------------
# Context variable, set by the task wrapper and read by the log processor
# ---------------------------------------------------------------------------

job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)
"""Id of the extraction job currently executing in this context.

Usage in a task::

    from news_extraction.core.logging_config import job_id_var
    token = job_id_var.set(job_id)
    try:
        ...
    finally:
        job_id_var.reset(token)
"""


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


_SECRET_SUBSTRINGS: frozenset[str] = frozenset({
    "api_key",
    "password",
    "secret",
    "token",
    "authorization",
    "cookie",
    "x-api-key",
})
"""Lower-cased substrings that identify log event-dict keys whose values
must be redacted before the record reaches any renderer.  Per-domain custom
headers are the usual carrier."""


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Replace values of secret-bearing keys with a redaction marker.

    Scans both top-level keys and any nested ``dict`` values one level deep.

    Args:
        logger: The wrapped logger instance (unused).
        method_name: The log method name (unused).
        event_dict: Mutable event dictionary being assembled.

    Returns:
        The event dict with sensitive values replaced by ``"[REDACTED]"``.
    """
    redacted = "[REDACTED]"
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        if any(secret in key_lower for secret in _SECRET_SUBSTRINGS):
            event_dict[key] = redacted
            continue
        val = event_dict[key]
        if isinstance(val, dict):
            cleaned = dict(val)
            for nested_key in list(cleaned.keys()):
                if any(secret in str(nested_key).lower() for secret in _SECRET_SUBSTRINGS):
                    cleaned[nested_key] = redacted
            event_dict[key] = cleaned
    return event_dict


def _inject_job_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Inject the current job id into the log event dict if set."""
    job_id = job_id_var.get()
    if job_id is not None and "job_id" not in event_dict:
        event_dict["job_id"] = job_id
    return event_dict


# ---------------------------------------------------------------------------
# Public configuration entry-point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog with JSON output for production.

    In production (log_level != ``"DEBUG"``), outputs newline-delimited JSON.
    In development (log_level == ``"DEBUG"``), uses structlog's
    ``ConsoleRenderer`` for human-readable output.

    Standard fields added to every log record: ``timestamp``, ``level``,
    ``logger``, ``event`` and, inside a job, ``job_id``.

    Calling this function more than once is safe; the root handlers are
    replaced on every call.

    Args:
        log_level: Logging verbosity string.  One of ``"DEBUG"``, ``"INFO"``,
            ``"WARNING"``, ``"ERROR"``, ``"CRITICAL"``.  Case-insensitive.
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_job_id,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_development:
        final_renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=True,
        )
    else:
        final_renderer = structlog.processors.JSONRenderer()

    # Route stdlib ``logging.getLogger(__name__)`` records through the same
    # processor chain.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    if not is_development:
        for noisy_logger in ("httpx", "httpcore", "trafilatura", "htmldate"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
