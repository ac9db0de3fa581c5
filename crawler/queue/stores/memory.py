"""
In-process job store.
"""

from __future__ import annotations

import itertools
import threading
from datetime import datetime

from crawler.domain.jobs import JobStatus, QueueStats, ScrapeJob
from crawler.errors import DuplicateJobError
from crawler.queue.stores.base import JobMutation, JobStore


class InMemoryJobStore(JobStore):
    """
    Dict-backed store guarded by a single lock.

    Suitable for tests and single-process runs; state is lost on exit.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, ScrapeJob] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)

    def add(self, job: ScrapeJob) -> ScrapeJob:
        with self._lock:
            if job.id in self._jobs:
                raise DuplicateJobError(f"Job id already exists: {job.id}")
            stored = job.copy()
            stored.sequence = next(self._sequence)
            self._jobs[stored.id] = stored
            return stored.copy()

    def get(self, job_id: str) -> ScrapeJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.copy() if job is not None else None

    def claim_next(
        self,
        *,
        worker_id: str,
        now: datetime,
        heartbeat_deadline: datetime,
    ) -> ScrapeJob | None:
        with self._lock:
            eligible = [job for job in self._jobs.values() if job.is_eligible(now)]
            if not eligible:
                return None
            job = min(eligible, key=lambda item: (-item.priority, item.sequence))
            job.status = JobStatus.ACTIVE
            job.worker_id = worker_id
            job.heartbeat_deadline = heartbeat_deadline
            job.started_at = now
            job.delay_until = None
            return job.copy()

    def update(self, job_id: str, mutate: JobMutation) -> ScrapeJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            draft = job.copy()
            if not mutate(draft):
                return None
            self._jobs[job_id] = draft
            return draft.copy()

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list_by_status(self, status: str, *, now: datetime, limit: int) -> list[ScrapeJob]:
        with self._lock:
            matched = [job for job in self._jobs.values() if _matches(job, status, now)]
        if status in JobStatus.TERMINAL:
            matched.sort(key=lambda job: (job.finished_at or now, job.sequence), reverse=True)
        else:
            matched.sort(key=lambda job: (-job.priority, job.sequence))
        return [job.copy() for job in matched[: max(0, limit)]]

    def counts(self, *, now: datetime) -> QueueStats:
        with self._lock:
            jobs = list(self._jobs.values())
        return QueueStats(
            active=sum(1 for job in jobs if job.status == JobStatus.ACTIVE),
            waiting=sum(1 for job in jobs if job.is_eligible(now)),
            completed=sum(1 for job in jobs if job.status == JobStatus.COMPLETED),
            failed=sum(1 for job in jobs if job.status == JobStatus.FAILED),
            delayed=sum(1 for job in jobs if job.is_delayed(now)),
        )

    def list_stalled(self, *, now: datetime) -> list[ScrapeJob]:
        with self._lock:
            return [
                job.copy()
                for job in self._jobs.values()
                if job.status == JobStatus.ACTIVE
                and job.heartbeat_deadline is not None
                and job.heartbeat_deadline < now
            ]

    def trim_terminal(self, status: str, *, keep: int) -> int:
        with self._lock:
            finished = sorted(
                (job for job in self._jobs.values() if job.status == status),
                key=lambda job: (job.finished_at is not None, job.finished_at, job.sequence),
                reverse=True,
            )
            stale = finished[max(0, keep):]
            for job in stale:
                del self._jobs[job.id]
            return len(stale)

    def ping(self) -> bool:
        return True


def _matches(job: ScrapeJob, status: str, now: datetime) -> bool:
    if status == JobStatus.DELAYED:
        return job.is_delayed(now)
    if status == JobStatus.WAITING:
        return job.is_eligible(now)
    return job.status == status
