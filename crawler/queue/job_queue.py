"""
Persistent priority job queue with retries, backoff and stall recovery.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlparse

from crawler.config.models import QueueSettings
from crawler.domain.jobs import (
    PRIORITY_URGENT,
    BulkEnqueueResult,
    BulkItemError,
    JobStatus,
    QueueStats,
    ScrapeJob,
)
from crawler.errors import JobQueueError, JobValidationError
from crawler.logging_utils import log_event
from crawler.queue.stores.base import JobStore
from crawler.queue.stores.memory import InMemoryJobStore

logger = logging.getLogger(__name__)

STALLED_ERROR = "job stalled more than allowable limit"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobQueue:
    """
    Synchronous, thread-safe queue facade over a ``JobStore``.

    Every state transition goes through the store's atomic ``update`` so
    concurrent workers never double-claim or double-finish a job.
    """

    def __init__(
        self,
        *,
        store: JobStore | None = None,
        settings: QueueSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store or InMemoryJobStore()
        self._settings = settings or QueueSettings()
        self._clock = clock
        self._rng = rng or random.Random()

    @property
    def settings(self) -> QueueSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(self, job: ScrapeJob) -> str:
        self._validate(job)
        now = self._clock()
        prepared = replace(
            job.copy(),
            id=job.id.strip() or uuid.uuid4().hex,
            brand=job.brand.strip(),
            status=JobStatus.WAITING,
            attempt_count=0,
            stalled_count=0,
            enqueued_at=now,
            worker_id=None,
            heartbeat_deadline=None,
            progress={},
            result=None,
            last_error=None,
            started_at=None,
            finished_at=None,
        )
        stored = self._store.add(prepared)
        log_event(
            logger,
            logging.INFO,
            "job_enqueued",
            job_id=stored.id,
            brand=stored.brand,
            priority=stored.priority,
            delay_until=stored.delay_until,
        )
        return stored.id

    def enqueue_bulk(self, jobs: Iterable[ScrapeJob]) -> BulkEnqueueResult:
        job_ids: list[str] = []
        errors: list[BulkItemError] = []
        for index, job in enumerate(jobs):
            try:
                job_ids.append(self.enqueue(job))
            except JobQueueError as exc:
                errors.append(BulkItemError(index=index, url=job.url, error=str(exc)))
        log_event(logger, logging.INFO, "jobs_bulk_enqueued", enqueued=len(job_ids), errors=len(errors))
        return BulkEnqueueResult(job_ids=job_ids, errors=errors)

    def enqueue_priority(self, job: ScrapeJob) -> str:
        return self.enqueue(replace(job, priority=max(job.priority, PRIORITY_URGENT)))

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def dequeue(self, worker_id: str) -> ScrapeJob | None:
        now = self._clock()
        job = self._store.claim_next(
            worker_id=worker_id,
            now=now,
            heartbeat_deadline=self._heartbeat_deadline(now),
        )
        if job is not None:
            log_event(
                logger,
                logging.INFO,
                "job_claimed",
                job_id=job.id,
                worker_id=worker_id,
                attempt=job.attempt_count + 1,
                max_attempts=job.max_attempts,
            )
        return job

    def heartbeat(self, job_id: str, worker_id: str, progress: str | None = None) -> bool:
        now = self._clock()

        def mutate(job: ScrapeJob) -> bool:
            if job.status != JobStatus.ACTIVE or job.worker_id != worker_id:
                return False
            job.heartbeat_deadline = self._heartbeat_deadline(now)
            if progress is not None:
                job.progress = {"stage": progress, "updated_at": now.isoformat()}
            return True

        return self._store.update(job_id, mutate) is not None

    def complete(self, job_id: str, result: dict[str, Any], worker_id: str | None = None) -> bool:
        """
        Record a success. Returns False when the call was a no-op.
        """

        now = self._clock()

        def mutate(job: ScrapeJob) -> bool:
            if job.is_terminal:
                return False
            if job.status == JobStatus.ACTIVE and worker_id is not None and job.worker_id != worker_id:
                return False
            job.status = JobStatus.COMPLETED
            job.result = dict(result)
            job.finished_at = now
            job.worker_id = None
            job.heartbeat_deadline = None
            job.last_error = None
            return True

        updated = self._store.update(job_id, mutate)
        if updated is None:
            log_event(logger, logging.DEBUG, "job_complete_ignored", job_id=job_id, worker_id=worker_id)
            return False

        log_event(logger, logging.INFO, "job_completed", job_id=job_id, attempts=updated.attempt_count + 1)
        self._store.trim_terminal(JobStatus.COMPLETED, keep=self._settings.keep_completed)
        return True

    def fail(
        self,
        job_id: str,
        error: str,
        *,
        retryable: bool = True,
        worker_id: str | None = None,
    ) -> ScrapeJob | None:
        """
        Record a failed attempt; re-queue under backoff or fail terminally.

        Returns the updated job, or None when the job is unknown, already
        finished or no longer held by ``worker_id``.
        """

        now = self._clock()

        def mutate(job: ScrapeJob) -> bool:
            if job.status != JobStatus.ACTIVE:
                return False
            if worker_id is not None and job.worker_id != worker_id:
                return False
            job.attempt_count += 1
            job.last_error = error
            job.worker_id = None
            job.heartbeat_deadline = None
            if retryable and job.attempt_count < job.max_attempts:
                job.status = JobStatus.WAITING
                job.delay_until = now + timedelta(seconds=self.calculate_backoff(job.attempt_count))
            else:
                job.status = JobStatus.FAILED
                job.finished_at = now
            return True

        updated = self._store.update(job_id, mutate)
        if updated is None:
            log_event(logger, logging.DEBUG, "job_fail_ignored", job_id=job_id, worker_id=worker_id)
            return None

        if updated.status == JobStatus.FAILED:
            log_event(
                logger,
                logging.WARNING,
                "job_failed",
                job_id=job_id,
                attempts=updated.attempt_count,
                retryable=retryable,
                error=error,
            )
            self._store.trim_terminal(JobStatus.FAILED, keep=self._settings.keep_failed)
        else:
            log_event(
                logger,
                logging.INFO,
                "job_retry_scheduled",
                job_id=job_id,
                attempts=updated.attempt_count,
                delay_until=updated.delay_until,
                error=error,
            )
        return updated

    def defer(self, job_id: str, delay_seconds: float, *, worker_id: str | None = None) -> bool:
        """
        Put a claimed job back to waiting for ``delay_seconds`` without
        spending an attempt. Returns False when the job is not held.
        """

        now = self._clock()

        def mutate(job: ScrapeJob) -> bool:
            if job.status != JobStatus.ACTIVE:
                return False
            if worker_id is not None and job.worker_id != worker_id:
                return False
            job.status = JobStatus.WAITING
            job.delay_until = now + timedelta(seconds=max(0.0, delay_seconds))
            job.worker_id = None
            job.heartbeat_deadline = None
            return True

        updated = self._store.update(job_id, mutate)
        if updated is None:
            log_event(logger, logging.DEBUG, "job_defer_ignored", job_id=job_id, worker_id=worker_id)
            return False

        log_event(
            logger,
            logging.INFO,
            "job_deferred",
            job_id=job_id,
            attempts=updated.attempt_count,
            delay_until=updated.delay_until,
        )
        return True

    def calculate_backoff(self, attempt_count: int) -> float:
        """
        Exponential delay for the given number of failed attempts, plus jitter.
        """

        exponent = max(0, attempt_count - 1)
        delay = min(
            self._settings.backoff_base_seconds * (2**exponent),
            self._settings.backoff_max_seconds,
        )
        return delay + self._rng.uniform(0, self._settings.backoff_jitter_seconds)

    def recover_stalled(self) -> list[str]:
        return [job.id for job in self.recover_stalled_jobs()]

    def recover_stalled_jobs(self) -> list[ScrapeJob]:
        """
        Return stalled active jobs to waiting, or fail them once they stalled
        too often. Returns every job handled, as updated.
        """

        now = self._clock()
        handled: list[ScrapeJob] = []
        for stalled in self._store.list_stalled(now=now):

            def mutate(job: ScrapeJob) -> bool:
                if job.status != JobStatus.ACTIVE:
                    return False
                if job.heartbeat_deadline is None or job.heartbeat_deadline >= now:
                    return False
                job.stalled_count += 1
                job.attempt_count += 1
                job.worker_id = None
                job.heartbeat_deadline = None
                if (
                    job.stalled_count > self._settings.max_stalled_count
                    or job.attempt_count >= job.max_attempts
                ):
                    job.status = JobStatus.FAILED
                    job.last_error = STALLED_ERROR
                    job.finished_at = now
                else:
                    job.status = JobStatus.WAITING
                    job.delay_until = None
                return True

            updated = self._store.update(stalled.id, mutate)
            if updated is None:
                continue
            handled.append(updated)
            log_event(
                logger,
                logging.WARNING,
                "job_stalled",
                job_id=updated.id,
                stalled_count=updated.stalled_count,
                status=updated.status,
            )
        if handled:
            self._store.trim_terminal(JobStatus.FAILED, keep=self._settings.keep_failed)
        return handled

    # ------------------------------------------------------------------
    # Inspection and admin
    # ------------------------------------------------------------------

    def stats(self) -> QueueStats:
        return self._store.counts(now=self._clock())

    def get(self, job_id: str) -> ScrapeJob | None:
        return self._store.get(job_id)

    def get_by_status(self, status: str, limit: int = 50) -> list[ScrapeJob]:
        if status not in JobStatus.QUERYABLE:
            raise JobValidationError(f"Unknown job status: {status}")
        return self._store.list_by_status(status, now=self._clock(), limit=limit)

    def retry(self, job_id: str) -> bool:
        """
        Move a failed job back to waiting with a fresh attempt budget.
        """

        def mutate(job: ScrapeJob) -> bool:
            if job.status != JobStatus.FAILED:
                return False
            job.status = JobStatus.WAITING
            job.attempt_count = 0
            job.stalled_count = 0
            job.delay_until = None
            job.finished_at = None
            job.progress = {}
            job.last_error = None
            job.result = None
            return True

        retried = self._store.update(job_id, mutate) is not None
        if retried:
            log_event(logger, logging.INFO, "job_retried", job_id=job_id)
        return retried

    def retry_failed(self, limit: int = 100) -> int:
        failed = self._store.list_by_status(JobStatus.FAILED, now=self._clock(), limit=limit)
        return sum(1 for job in failed if self.retry(job.id))

    def remove(self, job_id: str) -> bool:
        removed = self._store.delete(job_id)
        if removed:
            log_event(logger, logging.INFO, "job_removed", job_id=job_id)
        return removed

    def clean(self, status: str = JobStatus.COMPLETED, limit: int = 1000) -> int:
        """
        Remove up to ``limit`` jobs in ``status``. Active jobs are never cleaned.
        """

        if status == JobStatus.ACTIVE:
            raise JobValidationError("Active jobs cannot be cleaned; stop the workers first.")
        jobs = self.get_by_status(status, limit=limit)
        removed = sum(1 for job in jobs if self._store.delete(job.id))
        log_event(logger, logging.INFO, "jobs_cleaned", status=status, removed=removed)
        return removed

    def ping(self) -> bool:
        return self._store.ping()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _heartbeat_deadline(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self._settings.heartbeat_timeout_seconds)

    @staticmethod
    def _validate(job: ScrapeJob) -> None:
        if job.max_attempts < 1:
            raise JobValidationError(f"max_attempts must be >= 1 (got {job.max_attempts})")
        if not job.brand or not job.brand.strip():
            raise JobValidationError("brand must not be empty")
        parsed = urlparse(job.url or "")
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise JobValidationError(f"url must be an absolute http(s) URL (got {job.url!r})")
