"""Tests for the Celery task bodies in news_extraction.workers.tasks.

``execute_job`` is driven directly with a fake bound task and stub
runners, so neither a broker nor a Celery worker is needed.

Tests cover:
- claim_job() marks jobs active and skips missing or finished ones
- a successful run stores the result and reports progress
- a failing run with attempts left is marked delayed and retried with backoff
- the final failing attempt marks the job failed with a classified error
- retry_countdown() honours the limiter's retry_after
- an attempt slower than the job timeout fails with a timeout error
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from news_extraction.core.exceptions import (
    FetchTimeoutError,
    NetworkError,
    NoTitleFoundError,
    RateLimitedError,
)
from news_extraction.core.models import ExtractionJob
from news_extraction.workers.tasks import (
    claim_job,
    error_payload,
    execute_job,
    retry_countdown,
)


class _RetryRequested(Exception):
    """Stand-in for celery.exceptions.Retry."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _add_job(
    session_factory, *, status: str = "pending", attempts: int = 3, timeout_ms: int = 60_000
) -> str:
    with session_factory() as session:
        job = ExtractionJob(
            job_type="single",
            source_url="https://example.com/a",
            domain="example.com",
            config_id="cfg-1",
            status=status,
            job_options={
                "priority": 5,
                "attempts": attempts,
                "timeout_ms": timeout_ms,
                "force": False,
            },
            job_metadata={},
        )
        session.add(job)
        session.commit()
        return job.job_id


def _job_row(session_factory, job_id: str) -> ExtractionJob:
    with session_factory() as session:
        return session.get(ExtractionJob, job_id)


def _fake_task() -> MagicMock:
    task = MagicMock()
    task.retry.return_value = _RetryRequested()
    return task


def _succeeding_runner(result: dict):
    async def runner(job, progress):
        progress(50)
        return result

    return runner


def _failing_runner(exc: Exception):
    async def runner(job, progress):
        raise exc

    return runner


def _slow_runner(seconds: float):
    async def runner(job, progress):
        await asyncio.sleep(seconds)
        return {"extracted_id": "late"}

    return runner


# ---------------------------------------------------------------------------
# claim_job
# ---------------------------------------------------------------------------


class TestClaimJob:
    def test_claim_marks_active(self, session_factory) -> None:
        job_id = _add_job(session_factory)

        job = claim_job(job_id, session_factory)

        assert job.status == "active"
        assert job.attempts_made == 1
        assert job.started_at is not None

    def test_started_at_kept_on_reclaim(self, session_factory) -> None:
        job_id = _add_job(session_factory)
        first = claim_job(job_id, session_factory)
        second = claim_job(job_id, session_factory)

        assert second.attempts_made == 2
        # SQLite drops tzinfo on the way back.
        assert second.started_at.replace(tzinfo=None) == first.started_at.replace(tzinfo=None)

    @pytest.mark.parametrize("status", ["completed", "failed"])
    def test_terminal_jobs_are_skipped(self, session_factory, status: str) -> None:
        job_id = _add_job(session_factory, status=status)
        assert claim_job(job_id, session_factory) is None
        assert _job_row(session_factory, job_id).attempts_made == 0

    def test_missing_job(self, session_factory) -> None:
        assert claim_job("missing", session_factory) is None


# ---------------------------------------------------------------------------
# execute_job
# ---------------------------------------------------------------------------


class TestExecuteJob:
    def test_success(self, session_factory, settings) -> None:
        job_id = _add_job(session_factory)
        task = _fake_task()

        result = execute_job(
            task, job_id, _succeeding_runner({"extracted_id": "art-1"}), session_factory, settings
        )

        assert result == {"extracted_id": "art-1"}
        row = _job_row(session_factory, job_id)
        assert row.status == "completed"
        assert row.progress == 100
        assert row.result == {"extracted_id": "art-1"}
        assert row.completed_at is not None
        task.update_state.assert_called_once_with(
            state="PROGRESS", meta={"job_id": job_id, "progress": 50}
        )

    def test_failure_with_attempts_left_is_retried(self, session_factory, settings) -> None:
        job_id = _add_job(session_factory, attempts=3)
        task = _fake_task()
        exc = NetworkError("HTTP 503", status_code=503)

        with pytest.raises(_RetryRequested):
            execute_job(task, job_id, _failing_runner(exc), session_factory, settings)

        task.retry.assert_called_once_with(
            exc=exc, countdown=settings.job_backoff_base_seconds, max_retries=2
        )
        row = _job_row(session_factory, job_id)
        assert row.status == "delayed"
        assert row.error["kind"] == "network"
        assert row.error["retryCount"] == 0
        assert row.completed_at is None

    def test_final_attempt_marks_failed(self, session_factory, settings) -> None:
        job_id = _add_job(session_factory, attempts=2)
        task = _fake_task()
        exc = NoTitleFoundError("No title found", field="title", selector="h1")

        with pytest.raises(_RetryRequested):
            execute_job(task, job_id, _failing_runner(exc), session_factory, settings)
        with pytest.raises(NoTitleFoundError):
            execute_job(task, job_id, _failing_runner(exc), session_factory, settings)

        row = _job_row(session_factory, job_id)
        assert row.status == "failed"
        assert row.attempts_made == 2
        assert row.error == {
            "message": "No title found",
            "code": "NO_TITLE_FOUND",
            "kind": "selector",
            "retryCount": 1,
        }
        assert row.completed_at is not None
        assert task.retry.call_count == 1

    def test_attempt_exceeding_timeout_fails(self, session_factory, settings) -> None:
        job_id = _add_job(session_factory, attempts=1, timeout_ms=50)
        task = _fake_task()

        with pytest.raises(FetchTimeoutError):
            execute_job(task, job_id, _slow_runner(2.0), session_factory, settings)

        row = _job_row(session_factory, job_id)
        assert row.status == "failed"
        assert row.result is None
        assert row.error["kind"] == "timeout"
        assert row.error["code"] == "TIMEOUT"
        task.retry.assert_not_called()

    def test_timeout_with_attempts_left_is_retried(self, session_factory, settings) -> None:
        job_id = _add_job(session_factory, attempts=2, timeout_ms=50)
        task = _fake_task()

        with pytest.raises(_RetryRequested):
            execute_job(task, job_id, _slow_runner(2.0), session_factory, settings)

        assert _job_row(session_factory, job_id).status == "delayed"
        (call,) = task.retry.call_args_list
        assert isinstance(call.kwargs["exc"], FetchTimeoutError)

    def test_finished_job_is_not_run(self, session_factory, settings) -> None:
        job_id = _add_job(session_factory, status="completed")
        runner = MagicMock()

        result = execute_job(_fake_task(), job_id, runner, session_factory, settings)

        assert result == {"job_id": job_id, "skipped": True}
        runner.assert_not_called()


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestRetryCountdown:
    def test_exponential_backoff(self) -> None:
        exc = NetworkError("boom")
        assert [retry_countdown(exc, n, 5.0) for n in range(4)] == [5.0, 10.0, 20.0, 40.0]

    def test_rate_limit_waits_for_window(self) -> None:
        exc = RateLimitedError("limited", domain="example.com", retry_after=42.0)
        assert retry_countdown(exc, 0, 5.0) == 42.0
        assert retry_countdown(exc, 4, 5.0) == 80.0


class TestErrorPayload:
    def test_unknown_exception_uses_type_name(self) -> None:
        payload = error_payload(ValueError("weird"), 2)
        assert payload == {
            "message": "weird",
            "code": "ValueError",
            "kind": "unknown",
            "retryCount": 2,
        }
