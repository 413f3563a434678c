"""Application-wide exception hierarchy for the news extraction pipeline.

All custom exceptions subclass ``NewsExtractionError``, enabling consistent
error handling and structured logging across the application.

Hierarchy::

    NewsExtractionError
    ├── ExtractionError            (kind: ErrorKind, details: dict)
    │   ├── InvalidUrlError        parsing
    │   ├── RateLimitedError       rate_limit (domain, retry_after)
    │   ├── NetworkError           network    (status_code)
    │   │   └── RenderError        network
    │   ├── FetchTimeoutError      timeout
    │   ├── ParsingError           parsing
    │   └── SelectorError          selector   (field, selector)
    │       ├── NoTitleFoundError
    │       └── NoContentFoundError
    ├── ConfigError
    │   ├── ConfigNotFoundError
    │   ├── ConfigInactiveError
    │   ├── ConfigConflictError
    │   └── ConfigInUseError
    └── JobError
        ├── JobNotFoundError
        └── JobStateError
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    """Failure taxonomy shared by logs, job error records and retry policy."""

    NETWORK = "network"
    PARSING = "parsing"
    SELECTOR = "selector"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    UNKNOWN = "unknown"


class NewsExtractionError(Exception):
    """Base class for all news extraction exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Extraction exceptions
# ---------------------------------------------------------------------------


class ExtractionError(NewsExtractionError):
    """Raised when a single URL cannot be extracted.

    Subclasses pin :attr:`kind` to a taxonomy entry.  The base class leaves it
    as ``None`` so that :func:`news_extraction.scraper.quality.classify` falls
    back to message inspection.

    Args:
        message: Human-readable description of the failure.
        url: The URL being extracted, when known.
        details: Extra structured context recorded in extraction logs.
    """

    kind: ErrorKind | None = None
    code: str = "EXTRACTION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.details = details or {}


class InvalidUrlError(ExtractionError):
    """Raised when a URL is not a syntactically valid http(s) URL."""

    kind = ErrorKind.PARSING
    code = "INVALID_URL"


class RateLimitedError(ExtractionError):
    """Raised when the per-domain request budget for the current window is spent.

    Args:
        message: Human-readable description of the rate limit.
        domain: The domain whose budget is exhausted.
        retry_after: Seconds until the window resets.  Defaults to 60.
    """

    kind = ErrorKind.RATE_LIMIT
    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        *,
        domain: str | None = None,
        retry_after: float = 60.0,
        url: str | None = None,
    ) -> None:
        super().__init__(message, url=url, details={"domain": domain, "retry_after": retry_after})
        self.domain = domain
        self.retry_after = retry_after


class NetworkError(ExtractionError):
    """Raised when the remote site cannot be reached or answers with an error status.

    Args:
        message: Human-readable description of the failure.
        status_code: HTTP status code if a response was received.
    """

    kind = ErrorKind.NETWORK
    code = "NETWORK_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, url=url, details={"status_code": status_code})
        self.status_code = status_code


class RenderError(NetworkError):
    """Raised when the headless browser fails to render a page."""

    code = "RENDER_ERROR"


class FetchTimeoutError(ExtractionError):
    """Raised when a fetch or render exceeds the configured timeout."""

    kind = ErrorKind.TIMEOUT
    code = "TIMEOUT"


class ParsingError(ExtractionError):
    """Raised when a response body cannot be parsed as an HTML document."""

    kind = ErrorKind.PARSING
    code = "PARSING_ERROR"


class SelectorError(ExtractionError):
    """Raised when a required selector yields no text.

    Args:
        message: Human-readable description of the failure.
        field: Name of the article field (``"title"`` or ``"content"``).
        selector: The configured selector that matched nothing.
    """

    kind = ErrorKind.SELECTOR
    code = "SELECTOR_ERROR"

    def __init__(
        self,
        message: str,
        *,
        field: str,
        selector: str | list[str],
        url: str | None = None,
    ) -> None:
        super().__init__(message, url=url, details={"field": field, "selector": selector})
        self.field = field
        self.selector = selector


class NoTitleFoundError(SelectorError):
    """Raised when the title selector yields empty text."""

    code = "NO_TITLE_FOUND"


class NoContentFoundError(SelectorError):
    """Raised when the content selector yields empty text."""

    code = "NO_CONTENT_FOUND"


# ---------------------------------------------------------------------------
# Configuration registry exceptions
# ---------------------------------------------------------------------------


class ConfigError(NewsExtractionError):
    """Base class for extraction configuration errors."""

    code: str = "CONFIG_ERROR"


class ConfigNotFoundError(ConfigError):
    """Raised when no extraction configuration matches an id or domain.

    Args:
        message: Human-readable description.
        config_id: The requested configuration id, when known.
        domain: The requested domain, when known.
    """

    code = "CONFIG_NOT_FOUND"

    def __init__(
        self,
        message: str,
        config_id: str | None = None,
        domain: str | None = None,
    ) -> None:
        super().__init__(message)
        self.config_id = config_id
        self.domain = domain


class ConfigInactiveError(ConfigError):
    """Raised when an extraction is requested with a deactivated configuration."""

    code = "CONFIG_INACTIVE"

    def __init__(self, message: str, config_id: str | None = None) -> None:
        super().__init__(message)
        self.config_id = config_id


class ConfigConflictError(ConfigError):
    """Raised when a configuration already exists for a domain."""

    code = "CONFIG_CONFLICT"

    def __init__(self, message: str, domain: str) -> None:
        super().__init__(message)
        self.domain = domain


class ConfigInUseError(ConfigError):
    """Raised when deleting a configuration that unfinished jobs still reference."""

    code = "CONFIG_IN_USE"

    def __init__(self, message: str, config_id: str, job_count: int) -> None:
        super().__init__(message)
        self.config_id = config_id
        self.job_count = job_count


# ---------------------------------------------------------------------------
# Job exceptions
# ---------------------------------------------------------------------------


class JobError(NewsExtractionError):
    """Base class for job orchestration errors."""


class JobNotFoundError(JobError):
    """Raised when a job id does not exist."""

    def __init__(self, message: str, job_id: str) -> None:
        super().__init__(message)
        self.job_id = job_id


class JobStateError(JobError):
    """Raised when an operation is not valid for the job's current status.

    Args:
        message: Human-readable description.
        job_id: The job the operation targeted.
        status: The job's current status.
    """

    def __init__(self, message: str, job_id: str, status: str) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.status = status
